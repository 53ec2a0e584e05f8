"""
Input records read by the FacturaE pipeline, plus the submission sub-record.

Invoices, clients, companies and certificates are owned by the rest of the
system and reach this package through the repository collaborator. The
pipeline only reads them; the one thing it writes is ``SubmissionState``.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import date, datetime
from decimal import Decimal

from .constants import NON_BILLABLE_LINE_TYPES, FACEEnvironment, FACEStatus, HistoryAction


@dataclass
class Address:
    """Postal address in Spain."""

    street: str = ""
    number: str = ""
    floor: str = ""
    post_code: str = ""
    town: str = ""
    province: str = ""

    @property
    def line(self) -> str:
        """Street, number and floor joined as FacturaE expects."""
        return ", ".join(part for part in (self.street, self.number, self.floor) if part)

    @property
    def is_empty(self) -> bool:
        return not (self.line or self.post_code or self.town or self.province)


@dataclass
class EInvoicingConfig:
    """DIR3 configuration of a party that receives invoices through FACE."""

    enabled: bool = False
    managing_body_code: str = ""
    managing_body_name: str = ""
    processing_unit_code: str = ""
    processing_unit_name: str = ""
    accounting_office_code: str = ""
    accounting_office_name: str = ""
    delivery_point_code: str = ""
    delivery_point_name: str = ""

    def missing_codes(self) -> list[str]:
        """Human-readable names of the mandatory DIR3 codes that are absent."""
        missing = []
        if not self.managing_body_code:
            missing.append("managing body")
        if not self.processing_unit_code:
            missing.append("processing unit")
        if not self.accounting_office_code:
            missing.append("accounting office")
        return missing


@dataclass
class ClientRecord:
    id: str
    name: str
    nif: str
    client_type: str = "company"  # "company" or "individual"
    trade_name: str = ""
    address: Address = field(default_factory=Address)
    phone: str = ""
    email: str = ""
    web: str = ""
    einvoicing: EInvoicingConfig = field(default_factory=EInvoicingConfig)

    @property
    def is_individual(self) -> bool:
        return self.client_type == "individual"


@dataclass
class CompanyRecord:
    name: str
    nif: str
    legal_name: str = ""
    trade_name: str = ""
    address: Address = field(default_factory=Address)
    phone: str = ""
    email: str = ""
    web: str = ""
    iban: str = ""
    einvoicing: EInvoicingConfig = field(default_factory=EInvoicingConfig)

    @property
    def corporate_name(self) -> str:
        return self.legal_name or self.name


@dataclass
class InvoiceLineRecord:
    name: str
    quantity: Decimal
    unit_price: Decimal
    vat_rate: Decimal
    line_type: str = "product"
    description: str = ""
    code: str = ""
    discount_percent: Decimal = Decimal("0")
    discount_amount: Decimal = Decimal("0")
    subtotal: Decimal | None = None  # Stored net amount of the line
    vat_amount: Decimal | None = None
    surcharge_rate: Decimal = Decimal("0")
    surcharge_amount: Decimal = Decimal("0")
    unit: str = ""
    included_in_total: bool = True


@dataclass
class VatBreakdown:
    """One entry of the invoice's stored tax breakdown, per VAT rate."""

    rate: Decimal
    base: Decimal
    amount: Decimal
    surcharge_rate: Decimal = Decimal("0")
    surcharge_amount: Decimal = Decimal("0")


@dataclass
class InvoiceTotalsRecord:
    gross_subtotal: Decimal
    net_subtotal: Decimal
    total_vat: Decimal
    total: Decimal
    total_discounts: Decimal = Decimal("0")
    total_surcharge: Decimal = Decimal("0")


@dataclass
class DueDate:
    date: date
    amount: Decimal
    payment_method: str = "transfer"


@dataclass
class HistoryEntry:
    """One entry of the append-only submission log."""

    action: HistoryAction
    timestamp: datetime
    code: str = ""
    reason: str = ""
    detail: str = ""


@dataclass
class SubmissionState:
    """FACE submission sub-record of an invoice."""

    registration_number: str = ""
    state: FACEStatus | None = None
    environment: FACEEnvironment | None = None
    submitted_at: datetime | None = None
    last_queried_at: datetime | None = None
    history: list[HistoryEntry] = field(default_factory=list)

    @property
    def is_submitted(self) -> bool:
        return bool(self.registration_number)


@dataclass
class InvoiceRecord:
    id: str
    code: str
    date: date | None
    client_id: str
    lines: list[InvoiceLineRecord] = field(default_factory=list)
    totals: InvoiceTotalsRecord | None = None
    vat_breakdown: list[VatBreakdown] = field(default_factory=list)
    series: str = ""
    number: str = ""
    invoice_type: str = "complete"  # "complete", "simplified" or "summary"
    withholding_percent: Decimal = Decimal("0")
    withholding_amount: Decimal | None = None
    outstanding_amount: Decimal | None = None
    global_discount_percent: Decimal = Decimal("0")
    global_discount_amount: Decimal = Decimal("0")
    due_dates: list[DueDate] = field(default_factory=list)
    is_rectification: bool = False
    rectified_invoice_code: str = ""
    rectification_reason: str = ""
    rectification_description: str = ""
    operation_date: date | None = None
    billing_period_start: date | None = None
    billing_period_end: date | None = None
    notes: str = ""
    footer: str = ""
    submission: SubmissionState = field(default_factory=SubmissionState)

    @property
    def total(self) -> Decimal:
        return self.totals.total if self.totals else Decimal("0")

    @property
    def billable_lines(self) -> list[InvoiceLineRecord]:
        return [
            line for line in self.lines if line.line_type not in NON_BILLABLE_LINE_TYPES and line.included_in_total
        ]


@dataclass
class CertificateRecord:
    """
    Signing certificate as stored by the certificate store.

    The key container is either PKCS#12 bytes (with optional password) or a
    PEM certificate plus PEM private key, itself optionally encrypted.
    """

    id: str
    subject: str
    issuer: str
    serial_number: str
    valid_from: datetime
    valid_until: datetime
    is_active: bool = True
    pkcs12_data: bytes | None = None
    pkcs12_password: str = ""
    certificate_pem: bytes | None = None
    private_key_pem: bytes | None = None
    private_key_password: str = ""

"""
FacturaE document model.

``EInvoiceDocument`` is the composed artifact the Document Builder produces
before rendering it to XML: a file header (single or batch), the seller and
buyer parties, and one or more invoice blocks.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import date
from decimal import ROUND_HALF_UP, Decimal

from .constants import (
    SCHEMA_VERSION,
    AdministrativeRole,
    CorrectionMethod,
    InvoiceClass,
    InvoiceDocumentType,
    InvoiceIssuerType,
    Modality,
    PaymentMeans,
    PersonType,
    ResidenceType,
)

CENT = Decimal("0.01")
# Nudge applied before rounding so values stored as 1.005 round up
ROUNDING_EPSILON = Decimal("1e-9")


def round_amount(value: Decimal | float | int | None) -> Decimal:
    """Round half away from zero to two decimals."""
    amount = Decimal(str(value or 0))
    nudged = amount + ROUNDING_EPSILON if amount >= 0 else amount - ROUNDING_EPSILON
    return nudged.quantize(CENT, rounding=ROUND_HALF_UP)


def format_amount(value: Decimal | float | int | None) -> str:
    """Format a monetary amount as FacturaE expects it, always two decimals."""
    return f"{round_amount(value):.2f}"


def format_quantity(value: Decimal | float | int) -> str:
    return f"{Decimal(str(value)).normalize():f}"


def format_date(value: date | None) -> str:
    """Format date as YYYY-MM-DD."""
    if value is None:
        return ""
    return value.strftime("%Y-%m-%d")


@dataclass
class Batch:
    identifier: str
    invoices_count: int
    total_amount: Decimal
    total_outstanding: Decimal
    total_executable: Decimal
    currency: str


@dataclass
class FileHeader:
    modality: Modality
    issuer_type: InvoiceIssuerType = InvoiceIssuerType.SELLER
    batch: Batch | None = None

    @property
    def schema_version(self) -> str:
        return SCHEMA_VERSION


@dataclass
class AdministrativeCentre:
    code: str
    role: AdministrativeRole
    name: str = ""


@dataclass
class PartyAddress:
    address: str
    post_code: str
    town: str
    province: str
    country_code: str


@dataclass
class ContactDetails:
    telephone: str = ""
    email: str = ""
    web: str = ""

    @property
    def is_empty(self) -> bool:
        return not (self.telephone or self.email or self.web)


@dataclass
class Party:
    """
    Seller or buyer.

    Legal entities carry ``corporate_name``; natural persons carry the
    split ``name``/``first_surname``/``second_surname``.
    """

    tax_id: str
    person_type: PersonType
    residence_type: ResidenceType
    corporate_name: str = ""
    trade_name: str = ""
    name: str = ""
    first_surname: str = ""
    second_surname: str = ""
    address: PartyAddress | None = None
    contact: ContactDetails = field(default_factory=ContactDetails)
    administrative_centres: list[AdministrativeCentre] = field(default_factory=list)

    @property
    def is_legal_entity(self) -> bool:
        return self.person_type == PersonType.LEGAL


@dataclass
class Corrective:
    invoice_number: str
    series_code: str
    reason_code: str
    reason_description: str
    period_start: date | None
    period_end: date | None
    correction_method: CorrectionMethod = CorrectionMethod.DIFFERENCES


@dataclass
class TaxEntry:
    """TaxesOutputs or TaxesWithheld entry."""

    tax_type: str
    rate: Decimal
    base: Decimal
    amount: Decimal
    surcharge_rate: Decimal = Decimal("0")
    surcharge_amount: Decimal = Decimal("0")


@dataclass
class InvoiceLine:
    sequence: int
    description: str
    quantity: Decimal
    unit_of_measure: str
    unit_price: Decimal
    total_cost: Decimal
    gross_amount: Decimal
    tax: TaxEntry
    discount_reason: str = ""
    discount_rate: Decimal = Decimal("0")
    discount_amount: Decimal = Decimal("0")
    additional_information: str = ""
    article_code: str = ""


@dataclass
class Installment:
    due_date: date
    amount: Decimal
    payment_means: PaymentMeans
    account: str = ""


@dataclass
class InvoiceTotals:
    total_gross_amount: Decimal
    total_general_discounts: Decimal
    total_gross_amount_before_taxes: Decimal
    total_tax_outputs: Decimal
    total_taxes_withheld: Decimal
    invoice_total: Decimal
    total_outstanding: Decimal
    total_executable: Decimal
    general_discount_rate: Decimal = Decimal("0")


@dataclass
class Invoice:
    number: str
    series_code: str
    document_type: InvoiceDocumentType
    invoice_class: InvoiceClass
    issue_date: date
    currency: str
    language: str
    totals: InvoiceTotals
    taxes_outputs: list[TaxEntry]
    lines: list[InvoiceLine]
    operation_date: date | None = None
    period_start: date | None = None
    period_end: date | None = None
    taxes_withheld: list[TaxEntry] = field(default_factory=list)
    corrective: Corrective | None = None
    installments: list[Installment] = field(default_factory=list)
    legal_literals: list[str] = field(default_factory=list)


@dataclass
class EInvoiceDocument:
    header: FileHeader
    seller: Party
    buyer: Party
    invoices: list[Invoice]

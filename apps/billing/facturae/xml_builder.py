"""
FacturaE 3.2.2 document builder.

Composes an ``EInvoiceDocument`` from invoice, client and company records
and renders it to XML, for a single invoice or a batch.

Reference:
- FacturaE 3.2.2: http://www.facturae.gob.es/formato/Paginas/version-3-2-2.aspx

Usage:
    builder = FacturaEBuilder(repository)
    result = builder.generate(invoice_id)
    if result.success:
        xml = result.xml
"""

from __future__ import annotations

import logging
import re
from collections.abc import Callable
from dataclasses import dataclass, field
from datetime import date, datetime
from decimal import Decimal
from typing import TYPE_CHECKING

from django.utils import timezone
from lxml import etree

from .constants import (
    DEFAULT_UNIT_OF_MEASURE,
    FACTURAE_NAMESPACE,
    FACTURAE_PREFIX,
    PAYMENT_METHOD_MAP,
    TAX_TYPE_IRPF,
    TAX_TYPE_IVA,
    AdministrativeRole,
    InvoiceClass,
    InvoiceDocumentType,
    Modality,
    PaymentMeans,
    PersonType,
    RectificationReason,
    ResidenceType,
)
from .document import (
    AdministrativeCentre,
    Batch,
    ContactDetails,
    Corrective,
    EInvoiceDocument,
    FileHeader,
    Installment,
    Invoice,
    InvoiceLine,
    InvoiceTotals,
    Party,
    PartyAddress,
    TaxEntry,
    format_amount,
    format_date,
    format_quantity,
    round_amount,
)
from .exceptions import ERROR_TYPES, FacturaEError, NotFoundError, ValidationError
from .settings import FacturaESettings
from .xml_writer import serialize

if TYPE_CHECKING:
    from .records import Address, ClientRecord, CompanyRecord, EInvoicingConfig, InvoiceLineRecord, InvoiceRecord
    from .repository import FacturaERepository
    from .signer import XAdESSigner

logger = logging.getLogger(__name__)

EU_RESIDENT_NIF = re.compile(r"^[XYZ]")
DEFAULT_CORRECTIVE_DESCRIPTION = "Rectificación de factura"
LINE_DISCOUNT_REASON = "Descuento"
GENERAL_DISCOUNT_REASON = "Descuento general"


@dataclass
class GenerateOptions:
    """Options for ``FacturaEBuilder.generate``."""

    sign: bool = False
    certificate_id: str = ""


@dataclass
class GenerationResult:
    """Result of document generation."""

    success: bool
    xml: str = ""
    file_name: str = ""
    document: EInvoiceDocument | None = None
    signed: bool = False
    warnings: list[str] = field(default_factory=list)
    errors: list[str] = field(default_factory=list)
    error_type: str = ""

    @classmethod
    def ok(
        cls,
        xml: str,
        file_name: str,
        document: EInvoiceDocument,
        warnings: list[str] | None = None,
        signed: bool = False,
    ) -> GenerationResult:
        return cls(
            success=True, xml=xml, file_name=file_name, document=document, signed=signed, warnings=warnings or []
        )

    @classmethod
    def error(cls, exc: FacturaEError) -> GenerationResult:
        return cls(success=False, errors=exc.errors, error_type=exc.error_type)


def file_name_for(invoice_code: str) -> str:
    """Artifact name of a single signed invoice."""
    return f"FacturaE_{re.sub(r'[^a-zA-Z0-9]', '_', invoice_code)}.xsig"


def batch_file_name_for(batch_id: str) -> str:
    return f"FacturaE_Lote_{batch_id}.xsig"


def residence_type_for(nif: str) -> ResidenceType:
    """NIE numbers (X/Y/Z prefix) are classified as EU residents."""
    if nif and EU_RESIDENT_NIF.match(nif):
        return ResidenceType.EU_RESIDENT
    return ResidenceType.RESIDENT


def validate_records(invoice: InvoiceRecord, client: ClientRecord, company: CompanyRecord) -> list[str]:
    """Mandatory business checks run before any document is built."""
    errors = []

    if not invoice.code:
        errors.append("Invoice has no code")
    if not invoice.date:
        errors.append("Invoice has no date")
    if not invoice.lines:
        errors.append("Invoice has no lines")
    if invoice.totals is None or not invoice.total:
        errors.append("Invoice has no total")
    elif invoice.total < 0 and not invoice.is_rectification:
        errors.append("Invoice total must be positive")
    if not invoice.vat_breakdown:
        errors.append("Invoice has no VAT breakdown")

    if not client.nif:
        errors.append("Client has no NIF")
    if not client.name:
        errors.append("Client has no name")

    if not company.nif:
        errors.append("Company has no NIF")
    if not company.corporate_name:
        errors.append("Company has no name")

    if client.einvoicing.enabled:
        errors.extend(f"Missing DIR3 {name} code" for name in client.einvoicing.missing_codes())

    return errors


class FacturaEBuilder:
    """
    Build FacturaE 3.2.2 documents.

    Records are loaded through the repository collaborator. Tax outputs and
    totals come from the invoice's stored breakdown, never recomputed.
    """

    def __init__(
        self,
        repository: FacturaERepository,
        signer: XAdESSigner | None = None,
        facturae_settings: FacturaESettings | None = None,
        clock: Callable[[], datetime] = timezone.now,
    ):
        self.repository = repository
        self.signer = signer
        self.settings = facturae_settings or FacturaESettings()
        self.clock = clock

    # --- Public API ---

    def generate(self, invoice_id: str, options: GenerateOptions | None = None) -> GenerationResult:
        """
        Generate the FacturaE document of one invoice.

        Args:
            invoice_id: Invoice to convert
            options: Optional signing of the generated document

        Returns:
            GenerationResult with the XML and artifact name, or the list of
            validation errors when the records are incomplete
        """
        options = options or GenerateOptions()
        try:
            invoice, client, company = self._load(invoice_id)
            errors = validate_records(invoice, client, company)
            if errors:
                raise ValidationError(f"Invoice {invoice.code or invoice_id} is not valid for FacturaE", errors)

            document = self.compose(invoice, client, company)
            xml = self.render(document)
            warnings = self.rounding_warnings(invoice)

            signed = False
            if options.sign:
                xml, sign_warnings = self._sign(xml, options.certificate_id)
                warnings.extend(sign_warnings)
                signed = True
        except FacturaEError as e:
            logger.error(f"FacturaE generation failed for invoice {invoice_id}: {e.errors}")
            return GenerationResult.error(e)

        logger.info(f"FacturaE document generated for invoice {invoice.code}")
        return GenerationResult.ok(xml, file_name_for(invoice.code), document, warnings, signed)

    def generate_batch(self, invoice_ids: list[str]) -> GenerationResult:
        """
        Generate one batch document for several invoices.

        Invoices that cannot be resolved or fail validation are skipped with
        a warning. The batch fails only if no invoice remains.
        """
        warnings: list[str] = []
        try:
            company = self.repository.find_company()
            if company is None:
                raise NotFoundError("Company data not found")

            accepted: list[tuple[InvoiceRecord, ClientRecord]] = []
            clients: dict[str, ClientRecord] = {}
            for invoice_id in invoice_ids:
                invoice = self.repository.find_invoice(invoice_id)
                if invoice is None:
                    warnings.append(f"Invoice {invoice_id} not found, skipped from batch")
                    continue

                client = clients.get(invoice.client_id) or self.repository.find_client(invoice.client_id)
                if client is None:
                    warnings.append(f"Client of invoice {invoice.code} not found, skipped from batch")
                    continue
                clients[invoice.client_id] = client

                errors = validate_records(invoice, client, company)
                if errors:
                    warnings.append(f"Invoice {invoice.code} skipped from batch: {'; '.join(errors)}")
                    continue

                accepted.append((invoice, client))

            if not accepted:
                raise ValidationError("No valid invoices to build the batch")

            document = self._compose_batch(accepted, company, warnings)
            xml = self.render(document)
        except FacturaEError as e:
            logger.error(f"FacturaE batch generation failed: {e.errors}")
            return GenerationResult.error(e)

        for warning in warnings:
            logger.warning(f"FacturaE batch: {warning}")
        for invoice, _client in accepted:
            warnings.extend(self.rounding_warnings(invoice))

        batch_id = document.header.batch.identifier
        logger.info(f"FacturaE batch {batch_id} generated with {len(accepted)} invoices")
        return GenerationResult.ok(xml, batch_file_name_for(batch_id), document, warnings)

    def compose(self, invoice: InvoiceRecord, client: ClientRecord, company: CompanyRecord) -> EInvoiceDocument:
        """Compose the single-invoice document from validated records."""
        return EInvoiceDocument(
            header=FileHeader(modality=Modality.SINGLE),
            seller=self._build_seller(company),
            buyer=self._build_buyer(client),
            invoices=[self._build_invoice(invoice, company)],
        )

    def render(self, document: EInvoiceDocument) -> str:
        """Render a document to its serialized XML text."""
        root = etree.Element(f"{{{FACTURAE_NAMESPACE}}}Facturae", nsmap={FACTURAE_PREFIX: FACTURAE_NAMESPACE})
        self._add_file_header(root, document.header)
        parties = self._add_element(root, "Parties")
        self._add_party(parties, "SellerParty", document.seller)
        self._add_party(parties, "BuyerParty", document.buyer)
        invoices = self._add_element(root, "Invoices")
        for invoice in document.invoices:
            self._add_invoice(invoices, invoice)
        return serialize(root)

    def rounding_warnings(self, invoice: InvoiceRecord) -> list[str]:
        """
        Compare per-line rounded amounts with the stored aggregates.

        Lines are rounded one by one and then summed, which can differ by a
        cent from rounding the aggregate. The document keeps the stored
        totals; the difference is only reported.
        """
        if invoice.totals is None:
            return []

        warnings = []
        lines = invoice.billable_lines
        line_base = sum((self._line_gross(line) for line in lines), Decimal("0"))
        line_tax = sum((self._line_tax(line, self._line_gross(line)) for line in lines), Decimal("0"))

        base_diff = line_base - round_amount(invoice.totals.net_subtotal)
        if base_diff and not invoice.global_discount_amount:
            warnings.append(f"Invoice {invoice.code}: line bases differ from stored net subtotal by {base_diff}")
        tax_diff = line_tax - round_amount(invoice.totals.total_vat)
        if tax_diff and not invoice.global_discount_amount:
            warnings.append(f"Invoice {invoice.code}: line taxes differ from stored VAT total by {tax_diff}")

        for warning in warnings:
            logger.warning(f"FacturaE rounding discrepancy: {warning}")
        return warnings

    # --- Loading ---

    def _load(self, invoice_id: str) -> tuple[InvoiceRecord, ClientRecord, CompanyRecord]:
        invoice = self.repository.find_invoice(invoice_id)
        if invoice is None:
            raise NotFoundError(f"Invoice {invoice_id} not found")
        client = self.repository.find_client(invoice.client_id)
        if client is None:
            raise NotFoundError(f"Client {invoice.client_id} not found")
        company = self.repository.find_company()
        if company is None:
            raise NotFoundError("Company data not found")
        return invoice, client, company

    def _sign(self, xml: str, certificate_id: str) -> tuple[str, list[str]]:
        if self.signer is None:
            raise ValidationError("Signing requested but no signer is configured")
        if not certificate_id:
            raise ValidationError("Signing requested without a certificate")
        result = self.signer.sign(xml, certificate_id)
        if not result.success:
            error_class = ERROR_TYPES.get(result.error_type, FacturaEError)
            raise error_class("Signing failed", result.errors)
        return result.signed_xml, result.warnings

    # --- Composition ---

    def _compose_batch(
        self,
        accepted: list[tuple[InvoiceRecord, ClientRecord]],
        company: CompanyRecord,
        warnings: list[str],
    ) -> EInvoiceDocument:
        first_invoice, first_client = accepted[0]
        client_ids = {invoice.client_id for invoice, _client in accepted}
        if len(client_ids) > 1:
            warnings.append(
                f"Batch spans {len(client_ids)} clients; buyer taken from invoice {first_invoice.code}"
            )

        total = sum((round_amount(invoice.total) for invoice, _client in accepted), Decimal("0"))
        outstanding = sum((round_amount(self._outstanding(invoice)) for invoice, _client in accepted), Decimal("0"))
        batch = Batch(
            identifier=f"LOTE-{int(self.clock().timestamp() * 1000)}",
            invoices_count=len(accepted),
            total_amount=total,
            total_outstanding=outstanding,
            total_executable=outstanding,
            currency=self.settings.currency,
        )

        return EInvoiceDocument(
            header=FileHeader(modality=Modality.BATCH, batch=batch),
            seller=self._build_seller(company),
            buyer=self._build_buyer(first_client),
            invoices=[self._build_invoice(invoice, company) for invoice, _client in accepted],
        )

    def _build_seller(self, company: CompanyRecord) -> Party:
        return Party(
            tax_id=company.nif,
            person_type=PersonType.LEGAL,
            residence_type=residence_type_for(company.nif),
            corporate_name=company.corporate_name,
            trade_name=company.trade_name,
            address=self._build_address(company.address),
            contact=ContactDetails(telephone=company.phone, email=company.email, web=company.web),
            administrative_centres=self._build_centres(company.einvoicing),
        )

    def _build_buyer(self, client: ClientRecord) -> Party:
        party = Party(
            tax_id=client.nif,
            person_type=PersonType.NATURAL if client.is_individual else PersonType.LEGAL,
            residence_type=residence_type_for(client.nif),
            address=self._build_address(client.address),
            contact=ContactDetails(telephone=client.phone, email=client.email, web=client.web),
            administrative_centres=self._build_centres(client.einvoicing),
        )
        if client.is_individual:
            parts = client.name.split()
            party.name = parts[0] if parts else ""
            party.first_surname = parts[1] if len(parts) > 1 else ""
            party.second_surname = " ".join(parts[2:])
        else:
            party.corporate_name = client.name
            party.trade_name = client.trade_name
        return party

    def _build_address(self, address: Address) -> PartyAddress | None:
        if address.is_empty:
            return None
        return PartyAddress(
            address=address.line,
            post_code=address.post_code,
            town=address.town,
            province=address.province,
            country_code=self.settings.country_code,
        )

    def _build_centres(self, config: EInvoicingConfig) -> list[AdministrativeCentre]:
        if not config.enabled:
            return []
        entries = [
            (config.managing_body_code, AdministrativeRole.MANAGING_BODY, config.managing_body_name),
            (config.processing_unit_code, AdministrativeRole.PROCESSING_UNIT, config.processing_unit_name),
            (config.accounting_office_code, AdministrativeRole.ACCOUNTING_OFFICE, config.accounting_office_name),
        ]
        if config.delivery_point_code:
            entries.append((config.delivery_point_code, AdministrativeRole.DELIVERY_POINT, config.delivery_point_name))
        return [AdministrativeCentre(code=code, role=role, name=name) for code, role, name in entries]

    def _build_invoice(self, invoice: InvoiceRecord, company: CompanyRecord) -> Invoice:
        withheld = self._build_taxes_withheld(invoice)
        built = Invoice(
            number=invoice.number or invoice.code,
            series_code=invoice.series,
            document_type=(
                InvoiceDocumentType.SIMPLIFIED if invoice.invoice_type == "simplified" else InvoiceDocumentType.COMPLETE
            ),
            invoice_class=self._invoice_class(invoice),
            issue_date=invoice.date,
            operation_date=invoice.operation_date,
            currency=self.settings.currency,
            language=self.settings.language,
            taxes_outputs=[
                TaxEntry(
                    tax_type=TAX_TYPE_IVA,
                    rate=entry.rate,
                    base=round_amount(entry.base),
                    amount=round_amount(entry.amount),
                    surcharge_rate=entry.surcharge_rate,
                    surcharge_amount=round_amount(entry.surcharge_amount),
                )
                for entry in invoice.vat_breakdown
            ],
            taxes_withheld=withheld,
            totals=self._build_totals(invoice, withheld),
            lines=[self._build_line(seq, line) for seq, line in enumerate(invoice.billable_lines, start=1)],
            installments=[
                self._build_installment(due.date, due.amount, due.payment_method, company) for due in invoice.due_dates
            ],
            legal_literals=[text for text in (invoice.notes, invoice.footer) if text],
        )
        if invoice.billing_period_start and invoice.billing_period_end:
            built.period_start = invoice.billing_period_start
            built.period_end = invoice.billing_period_end
        if invoice.is_rectification and invoice.rectified_invoice_code:
            built.corrective = self._build_corrective(invoice)
        return built

    def _invoice_class(self, invoice: InvoiceRecord) -> InvoiceClass:
        if invoice.is_rectification:
            return InvoiceClass.ORIGINAL_CORRECTIVE
        if invoice.invoice_type == "summary":
            return InvoiceClass.ORIGINAL_SUMMARY
        return InvoiceClass.ORIGINAL

    def _build_corrective(self, invoice: InvoiceRecord) -> Corrective:
        series, _sep, number = invoice.rectified_invoice_code.rpartition("-")
        try:
            reason_code = RectificationReason(invoice.rectification_reason).reason_code
        except ValueError:
            reason_code = RectificationReason.OTHER.reason_code
        return Corrective(
            invoice_number=number,
            series_code=series,
            reason_code=reason_code,
            reason_description=invoice.rectification_description or DEFAULT_CORRECTIVE_DESCRIPTION,
            period_start=invoice.date,
            period_end=invoice.date,
        )

    def _build_taxes_withheld(self, invoice: InvoiceRecord) -> list[TaxEntry]:
        if invoice.withholding_percent <= 0:
            return []
        base = invoice.totals.net_subtotal
        amount = invoice.withholding_amount
        if amount is None:
            amount = base * invoice.withholding_percent / 100
        return [
            TaxEntry(
                tax_type=TAX_TYPE_IRPF,
                rate=invoice.withholding_percent,
                base=round_amount(base),
                amount=round_amount(amount),
            )
        ]

    def _build_totals(self, invoice: InvoiceRecord, withheld: list[TaxEntry]) -> InvoiceTotals:
        totals = invoice.totals
        outstanding = round_amount(self._outstanding(invoice))
        return InvoiceTotals(
            total_gross_amount=round_amount(totals.gross_subtotal),
            total_general_discounts=round_amount(totals.total_discounts),
            general_discount_rate=invoice.global_discount_percent,
            total_gross_amount_before_taxes=round_amount(totals.net_subtotal),
            total_tax_outputs=round_amount(totals.total_vat + totals.total_surcharge),
            total_taxes_withheld=sum((entry.amount for entry in withheld), Decimal("0")),
            invoice_total=round_amount(totals.total),
            total_outstanding=outstanding,
            total_executable=outstanding,
        )

    def _outstanding(self, invoice: InvoiceRecord) -> Decimal:
        if invoice.outstanding_amount is not None:
            return invoice.outstanding_amount
        return invoice.total

    def _line_gross(self, line: InvoiceLineRecord) -> Decimal:
        if line.subtotal is not None:
            return round_amount(line.subtotal)
        return round_amount(line.quantity * line.unit_price - line.discount_amount)

    def _line_tax(self, line: InvoiceLineRecord, gross: Decimal) -> Decimal:
        if line.vat_amount is not None:
            return round_amount(line.vat_amount)
        return round_amount(gross * line.vat_rate / 100)

    def _build_line(self, sequence: int, line: InvoiceLineRecord) -> InvoiceLine:
        gross = self._line_gross(line)
        return InvoiceLine(
            sequence=sequence,
            description=line.name,
            quantity=line.quantity,
            unit_of_measure=line.unit or DEFAULT_UNIT_OF_MEASURE,
            unit_price=round_amount(line.unit_price),
            total_cost=round_amount(line.quantity * line.unit_price),
            gross_amount=gross,
            discount_reason=LINE_DISCOUNT_REASON if line.discount_percent > 0 else "",
            discount_rate=line.discount_percent,
            discount_amount=round_amount(line.discount_amount),
            tax=TaxEntry(
                tax_type=TAX_TYPE_IVA,
                rate=line.vat_rate,
                base=gross,
                amount=self._line_tax(line, gross),
                surcharge_rate=line.surcharge_rate,
                surcharge_amount=round_amount(line.surcharge_amount),
            ),
            additional_information=line.description,
            article_code=line.code,
        )

    def _build_installment(
        self, due_date: date, amount: Decimal, payment_method: str, company: CompanyRecord
    ) -> Installment:
        means = PAYMENT_METHOD_MAP.get(payment_method, PaymentMeans.SPECIAL)
        return Installment(
            due_date=due_date,
            amount=round_amount(amount),
            payment_means=means,
            account=company.iban if means == PaymentMeans.TRANSFER else "",
        )

    # --- Rendering ---

    def _add_element(self, parent: etree._Element, tag: str, text: str | None = None) -> etree._Element:
        """Add element with optional text."""
        elem = etree.SubElement(parent, tag)
        if text is not None:
            elem.text = str(text)
        return elem

    def _add_total_amount(self, parent: etree._Element, tag: str, amount: Decimal) -> etree._Element:
        """Add element wrapping a TotalAmount."""
        wrapper = self._add_element(parent, tag)
        self._add_element(wrapper, "TotalAmount", format_amount(amount))
        return wrapper

    def _add_file_header(self, root: etree._Element, header: FileHeader) -> None:
        """Add FileHeader element."""
        elem = self._add_element(root, "FileHeader")
        self._add_element(elem, "SchemaVersion", header.schema_version)
        self._add_element(elem, "Modality", header.modality.value)
        self._add_element(elem, "InvoiceIssuerType", header.issuer_type.value)

        if header.batch is not None:
            batch = self._add_element(elem, "Batch")
            self._add_element(batch, "BatchIdentifier", header.batch.identifier)
            self._add_element(batch, "InvoicesCount", str(header.batch.invoices_count))
            self._add_total_amount(batch, "TotalInvoicesAmount", header.batch.total_amount)
            self._add_total_amount(batch, "TotalOutstandingAmount", header.batch.total_outstanding)
            self._add_total_amount(batch, "TotalExecutableAmount", header.batch.total_executable)
            self._add_element(batch, "InvoiceCurrencyCode", header.batch.currency)

    def _add_party(self, parent: etree._Element, tag: str, party: Party) -> None:
        """Add SellerParty or BuyerParty element."""
        elem = self._add_element(parent, tag)

        tax_id = self._add_element(elem, "TaxIdentification")
        self._add_element(tax_id, "PersonTypeCode", party.person_type.value)
        self._add_element(tax_id, "ResidenceTypeCode", party.residence_type.value)
        self._add_element(tax_id, "TaxIdentificationNumber", party.tax_id)

        if party.administrative_centres:
            centres = self._add_element(elem, "AdministrativeCentres")
            for centre in party.administrative_centres:
                centre_elem = self._add_element(centres, "AdministrativeCentre")
                self._add_element(centre_elem, "CentreCode", centre.code)
                self._add_element(centre_elem, "RoleTypeCode", centre.role.value)
                if centre.name:
                    self._add_element(centre_elem, "Name", centre.name)

        if party.is_legal_entity:
            entity = self._add_element(elem, "LegalEntity")
            self._add_element(entity, "CorporateName", party.corporate_name)
            if party.trade_name:
                self._add_element(entity, "TradeName", party.trade_name)
        else:
            entity = self._add_element(elem, "Individual")
            self._add_element(entity, "Name", party.name)
            self._add_element(entity, "FirstSurname", party.first_surname)
            if party.second_surname:
                self._add_element(entity, "SecondSurname", party.second_surname)

        if party.address is not None:
            address = self._add_element(entity, "AddressInSpain")
            self._add_element(address, "Address", party.address.address)
            self._add_element(address, "PostCode", party.address.post_code)
            self._add_element(address, "Town", party.address.town)
            self._add_element(address, "Province", party.address.province)
            self._add_element(address, "CountryCode", party.address.country_code)

        if not party.contact.is_empty:
            contact = self._add_element(entity, "ContactDetails")
            if party.contact.telephone:
                self._add_element(contact, "Telephone", party.contact.telephone)
            if party.contact.web:
                self._add_element(contact, "WebAddress", party.contact.web)
            if party.contact.email:
                self._add_element(contact, "ElectronicMail", party.contact.email)

    def _add_invoice(self, parent: etree._Element, invoice: Invoice) -> None:
        """Add Invoice element."""
        elem = self._add_element(parent, "Invoice")
        self._add_invoice_header(elem, invoice)
        self._add_issue_data(elem, invoice)

        taxes = self._add_element(elem, "TaxesOutputs")
        for tax in invoice.taxes_outputs:
            self._add_tax(taxes, tax)

        if invoice.taxes_withheld:
            withheld = self._add_element(elem, "TaxesWithheld")
            for tax in invoice.taxes_withheld:
                self._add_tax(withheld, tax)

        self._add_totals(elem, invoice.totals)

        items = self._add_element(elem, "Items")
        for line in invoice.lines:
            self._add_line(items, line)

        if invoice.installments:
            payment = self._add_element(elem, "PaymentDetails")
            for installment in invoice.installments:
                inst = self._add_element(payment, "Installment")
                self._add_element(inst, "InstallmentDueDate", format_date(installment.due_date))
                self._add_element(inst, "InstallmentAmount", format_amount(installment.amount))
                self._add_element(inst, "PaymentMeans", installment.payment_means.value)
                if installment.account:
                    account = self._add_element(inst, "AccountToBeCredited")
                    self._add_element(account, "IBAN", installment.account)

        if invoice.legal_literals:
            literals = self._add_element(elem, "LegalLiterals")
            for text in invoice.legal_literals:
                self._add_element(literals, "LegalReference", text)

    def _add_invoice_header(self, parent: etree._Element, invoice: Invoice) -> None:
        """Add InvoiceHeader element."""
        header = self._add_element(parent, "InvoiceHeader")
        self._add_element(header, "InvoiceNumber", invoice.number)
        if invoice.series_code:
            self._add_element(header, "InvoiceSeriesCode", invoice.series_code)
        self._add_element(header, "InvoiceDocumentType", invoice.document_type.value)
        self._add_element(header, "InvoiceClass", invoice.invoice_class.value)

        corrective = invoice.corrective
        if corrective is not None:
            elem = self._add_element(header, "Corrective")
            self._add_element(elem, "InvoiceNumber", corrective.invoice_number)
            if corrective.series_code:
                self._add_element(elem, "InvoiceSeriesCode", corrective.series_code)
            self._add_element(elem, "ReasonCode", corrective.reason_code)
            self._add_element(elem, "ReasonDescription", corrective.reason_description)
            period = self._add_element(elem, "TaxPeriod")
            self._add_element(period, "StartDate", format_date(corrective.period_start))
            self._add_element(period, "EndDate", format_date(corrective.period_end))
            self._add_element(elem, "CorrectionMethod", corrective.correction_method.value)

    def _add_issue_data(self, parent: etree._Element, invoice: Invoice) -> None:
        """Add InvoiceIssueData element."""
        data = self._add_element(parent, "InvoiceIssueData")
        self._add_element(data, "IssueDate", format_date(invoice.issue_date))
        if invoice.operation_date:
            self._add_element(data, "OperationDate", format_date(invoice.operation_date))
        if invoice.period_start and invoice.period_end:
            period = self._add_element(data, "InvoicingPeriod")
            self._add_element(period, "StartDate", format_date(invoice.period_start))
            self._add_element(period, "EndDate", format_date(invoice.period_end))
        self._add_element(data, "InvoiceCurrencyCode", invoice.currency)
        self._add_element(data, "LanguageName", invoice.language)

    def _add_tax(self, parent: etree._Element, tax: TaxEntry) -> None:
        """Add Tax element."""
        elem = self._add_element(parent, "Tax")
        self._add_element(elem, "TaxTypeCode", tax.tax_type)
        self._add_element(elem, "TaxRate", format_amount(tax.rate))
        self._add_total_amount(elem, "TaxableBase", tax.base)
        self._add_total_amount(elem, "TaxAmount", tax.amount)
        if tax.surcharge_rate and tax.surcharge_amount:
            self._add_element(elem, "EquivalenceSurcharge", format_amount(tax.surcharge_rate))
            self._add_total_amount(elem, "EquivalenceSurchargeAmount", tax.surcharge_amount)

    def _add_totals(self, parent: etree._Element, totals: InvoiceTotals) -> None:
        """Add InvoiceTotals element."""
        elem = self._add_element(parent, "InvoiceTotals")
        self._add_element(elem, "TotalGrossAmount", format_amount(totals.total_gross_amount))
        if totals.total_general_discounts:
            discounts = self._add_element(elem, "GeneralDiscounts")
            self._add_discount(
                discounts, GENERAL_DISCOUNT_REASON, totals.general_discount_rate, totals.total_general_discounts
            )
            self._add_element(elem, "TotalGeneralDiscounts", format_amount(totals.total_general_discounts))
        self._add_element(elem, "TotalGrossAmountBeforeTaxes", format_amount(totals.total_gross_amount_before_taxes))
        self._add_element(elem, "TotalTaxOutputs", format_amount(totals.total_tax_outputs))
        self._add_element(elem, "TotalTaxesWithheld", format_amount(totals.total_taxes_withheld))
        self._add_element(elem, "InvoiceTotal", format_amount(totals.invoice_total))
        self._add_element(elem, "TotalOutstandingAmount", format_amount(totals.total_outstanding))
        self._add_element(elem, "TotalExecutableAmount", format_amount(totals.total_executable))

    def _add_discount(self, parent: etree._Element, reason: str, rate: Decimal, amount: Decimal) -> None:
        """Add Discount element."""
        discount = self._add_element(parent, "Discount")
        self._add_element(discount, "DiscountReason", reason)
        if rate:
            self._add_element(discount, "DiscountRate", format_amount(rate))
        self._add_element(discount, "DiscountAmount", format_amount(amount))

    def _add_line(self, parent: etree._Element, line: InvoiceLine) -> None:
        """Add InvoiceLine element."""
        elem = self._add_element(parent, "InvoiceLine")
        self._add_element(elem, "SequenceNumber", str(line.sequence))
        self._add_element(elem, "ItemDescription", line.description)
        self._add_element(elem, "Quantity", format_quantity(line.quantity))
        self._add_element(elem, "UnitOfMeasure", line.unit_of_measure)
        self._add_element(elem, "UnitPriceWithoutTax", format_amount(line.unit_price))
        self._add_element(elem, "TotalCost", format_amount(line.total_cost))
        if line.discount_reason:
            discounts = self._add_element(elem, "DiscountsAndRebates")
            self._add_discount(discounts, line.discount_reason, line.discount_rate, line.discount_amount)
        self._add_element(elem, "GrossAmount", format_amount(line.gross_amount))
        taxes = self._add_element(elem, "TaxesOutputs")
        self._add_tax(taxes, line.tax)
        if line.additional_information:
            self._add_element(elem, "AdditionalLineItemInformation", line.additional_information)
        if line.article_code:
            self._add_element(elem, "ArticleCode", line.article_code)

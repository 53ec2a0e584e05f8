"""
FacturaE 3.2.2 and FACE constants.

Everything in this module is fixed by the FacturaE 3.2.2 format,
the official FacturaE signing policy or the FACE web service contract.
None of it is configurable at runtime.

Reference:
- FacturaE 3.2.2: http://www.facturae.gob.es/formato/Paginas/version-3-2-2.aspx
- Signing policy: http://www.facturae.es/politica_de_firma_formato_facturae/politica_de_firma_formato_facturae_v3_1.pdf
"""

from __future__ import annotations

from enum import StrEnum

# ===============================================================================
# FACTURAE FORMAT
# ===============================================================================

FACTURAE_NAMESPACE = "http://www.facturae.gob.es/formato/Versiones/Facturaev3_2_2.xml"
FACTURAE_PREFIX = "fe"
SCHEMA_VERSION = "3.2.2"

# Top-level elements every FacturaE document must contain
REQUIRED_ELEMENTS = ("FileHeader", "Parties", "Invoices", "SchemaVersion")

# Tax type codes
TAX_TYPE_IVA = "01"  # Value added tax
TAX_TYPE_IPSI = "02"  # Ceuta and Melilla
TAX_TYPE_IGIC = "03"  # Canary Islands
TAX_TYPE_IRPF = "04"  # Personal income tax withholding

# Line types that never become an InvoiceLine
NON_BILLABLE_LINE_TYPES = frozenset({"text", "subtotal"})

DEFAULT_UNIT_OF_MEASURE = "01"  # Units


class Modality(StrEnum):
    """FileHeader modality: one invoice or a batch."""

    SINGLE = "I"
    BATCH = "L"


class InvoiceIssuerType(StrEnum):
    """Who issues the invoice."""

    SELLER = "EM"
    RECEIVER = "RE"  # Self-billing
    THIRD_PARTY = "TE"


class InvoiceDocumentType(StrEnum):
    COMPLETE = "FC"
    SIMPLIFIED = "FA"
    SELF_BILLED = "AF"


class InvoiceClass(StrEnum):
    ORIGINAL = "OO"
    ORIGINAL_CORRECTIVE = "OR"
    ORIGINAL_SUMMARY = "OC"
    COPY_ORIGINAL = "CO"
    COPY_CORRECTIVE = "CR"
    COPY_SUMMARY = "CC"


class PersonType(StrEnum):
    NATURAL = "F"
    LEGAL = "J"


class ResidenceType(StrEnum):
    RESIDENT = "R"  # Resident in Spain
    EU_RESIDENT = "U"
    FOREIGN = "E"  # Outside the EU


class AdministrativeRole(StrEnum):
    """DIR3 administrative centre role codes."""

    MANAGING_BODY = "01"  # Órgano gestor
    PROCESSING_UNIT = "02"  # Unidad tramitadora
    ACCOUNTING_OFFICE = "03"  # Oficina contable
    DELIVERY_POINT = "04"  # Punto de entrega


class CorrectionMethod(StrEnum):
    FULL = "01"
    DIFFERENCES = "02"
    VOLUME_DISCOUNT = "03"
    AUTHORIZED_BY_TAX_AGENCY = "04"


class PaymentMeans(StrEnum):
    """FacturaE PaymentMeansType codes."""

    CASH = "01"
    DIRECT_DEBIT = "02"
    RECEIPT = "03"
    TRANSFER = "04"
    ACCEPTED_BILL = "05"
    DOCUMENTARY_CREDIT = "06"
    CONTRACT_AWARD = "07"
    BILL_OF_EXCHANGE = "08"
    PROMISSORY_NOTE_TO_ORDER = "09"
    PROMISSORY_NOTE = "10"
    CHEQUE = "11"
    REIMBURSEMENT = "12"
    SPECIAL = "13"
    SET_OFF = "14"
    POSTGIRO = "15"
    CERTIFIED_CHEQUE = "16"
    BANKERS_DRAFT = "17"
    CASH_ON_DELIVERY = "18"
    CARD = "19"


# Internal payment method -> FacturaE payment means
PAYMENT_METHOD_MAP: dict[str, PaymentMeans] = {
    "cash": PaymentMeans.CASH,
    "transfer": PaymentMeans.TRANSFER,
    "direct_debit": PaymentMeans.DIRECT_DEBIT,
    "cheque": PaymentMeans.CHEQUE,
    "promissory_note": PaymentMeans.PROMISSORY_NOTE_TO_ORDER,
    "card": PaymentMeans.CARD,
    "set_off": PaymentMeans.SET_OFF,
}


class RectificationReason(StrEnum):
    """Internal rectification reasons recorded on corrective invoices."""

    ISSUE_ERROR = "issue_error"
    RETURN = "return"
    POST_SALE_DISCOUNT = "post_sale_discount"
    BONUS = "bonus"
    INSOLVENCY = "insolvency"
    OTHER = "other"

    @property
    def reason_code(self) -> str:
        """FacturaE Corrective/ReasonCode for this reason."""
        return RECTIFICATION_REASON_CODES.get(self, "80")


RECTIFICATION_REASON_CODES: dict[RectificationReason, str] = {
    RectificationReason.ISSUE_ERROR: "01",
    RectificationReason.RETURN: "02",
    RectificationReason.POST_SALE_DISCOUNT: "03",
    RectificationReason.BONUS: "04",
    RectificationReason.INSOLVENCY: "85",
}

# ===============================================================================
# XADES-EPES SIGNATURE
# ===============================================================================

DS_NAMESPACE = "http://www.w3.org/2000/09/xmldsig#"
XADES_NAMESPACE = "http://uri.etsi.org/01903/v1.3.2#"
SIGNATURE_NAMESPACES = {"ds": DS_NAMESPACE, "xades": XADES_NAMESPACE}

# Official FacturaE signing policy v3.1
POLICY_IDENTIFIER = (
    "http://www.facturae.es/politica_de_firma_formato_facturae/politica_de_firma_formato_facturae_v3_1.pdf"
)
POLICY_HASH_VALUE = "Ohixl6upD6av8N7pEvDABhEL6hM="
POLICY_HASH_ALGORITHM = "http://www.w3.org/2000/09/xmldsig#sha1"
POLICY_DESCRIPTION = "Política de firma electrónica para facturación electrónica con formato Facturae"

C14N_ALGORITHM = "http://www.w3.org/TR/2001/REC-xml-c14n-20010315"
SHA256_ALGORITHM = "http://www.w3.org/2001/04/xmlenc#sha256"
ENVELOPED_SIGNATURE_TRANSFORM = "http://www.w3.org/2000/09/xmldsig#enveloped-signature"
SIGNED_PROPERTIES_TYPE = "http://uri.etsi.org/01903#SignedProperties"
RSA_SHA256_ALGORITHM = "http://www.w3.org/2001/04/xmldsig-more#rsa-sha256"
ECDSA_SHA256_ALGORITHM = "http://www.w3.org/2001/04/xmldsig-more#ecdsa-sha256"

# ===============================================================================
# FACE GATEWAY
# ===============================================================================

FACE_NAMESPACE = "https://webservice.face.gob.es/facturasspp2"
SOAP_ENVELOPE_NAMESPACE = "http://schemas.xmlsoap.org/soap/envelope/"
FACE_SUCCESS_CODE = "0"


class FACEEnvironment(StrEnum):
    STAGING = "staging"
    PRODUCTION = "production"


class FACEStatus(StrEnum):
    """Invoice processing states reported by FACE (tramitación codes)."""

    REGISTERED_ERS = "1200"  # Registered in the electronic registry
    REGISTERED_ARF = "1300"  # Registered in the accounting registry of invoices
    BOOKED = "2400"
    PAYMENT_RECOGNIZED = "2500"
    PAID = "2600"
    REJECTED = "3100"
    CANCELLED = "4100"
    PAYMENT_PROPOSED = "4200"
    PAYMENT_EXECUTED = "4300"

    @property
    def description(self) -> str:
        return FACE_STATUS_DESCRIPTIONS[self]

    @classmethod
    def terminal_statuses(cls) -> set[FACEStatus]:
        """States after which FACE reports no further progress."""
        return {cls.PAID, cls.PAYMENT_EXECUTED, cls.REJECTED, cls.CANCELLED}

    @classmethod
    def irreversible_statuses(cls) -> set[FACEStatus]:
        """States from which a cancellation request is refused."""
        return {cls.PAID, cls.CANCELLED, cls.PAYMENT_EXECUTED}

    @property
    def is_terminal(self) -> bool:
        return self in self.terminal_statuses()

    def can_transition_to(self, target: FACEStatus) -> bool:
        """Whether ``target`` is a legal next state of the FACE lifecycle."""
        if self.is_terminal:
            return False
        if target in (FACEStatus.REJECTED, FACEStatus.CANCELLED):
            return True
        return target in FACE_FORWARD_TRANSITIONS.get(self, set())


FACE_FORWARD_TRANSITIONS: dict[FACEStatus, set[FACEStatus]] = {
    FACEStatus.REGISTERED_ERS: {FACEStatus.REGISTERED_ARF},
    FACEStatus.REGISTERED_ARF: {FACEStatus.BOOKED},
    FACEStatus.BOOKED: {FACEStatus.PAYMENT_RECOGNIZED},
    FACEStatus.PAYMENT_RECOGNIZED: {FACEStatus.PAYMENT_PROPOSED, FACEStatus.PAID},
    FACEStatus.PAYMENT_PROPOSED: {FACEStatus.PAYMENT_EXECUTED},
}

FACE_STATUS_DESCRIPTIONS: dict[FACEStatus, str] = {
    FACEStatus.REGISTERED_ERS: "Registrada en Registro Electrónico Común",
    FACEStatus.REGISTERED_ARF: "Registrada en Registro Contable de Facturas",
    FACEStatus.BOOKED: "Contabilizada",
    FACEStatus.PAYMENT_RECOGNIZED: "Reconocida obligación de pago",
    FACEStatus.PAID: "Pagada",
    FACEStatus.REJECTED: "Rechazada",
    FACEStatus.CANCELLED: "Anulada",
    FACEStatus.PAYMENT_PROPOSED: "Propuesta de pago",
    FACEStatus.PAYMENT_EXECUTED: "Pago realizado",
}


class HistoryAction(StrEnum):
    """Actions recorded in the append-only submission history."""

    SUBMITTED = "submitted"
    QUERIED = "queried"
    CANCELLED = "cancelled"

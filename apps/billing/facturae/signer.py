"""
XAdES-EPES signer for FacturaE documents.

Produces an enveloped signature under the official FacturaE signing policy
v3.1. Three references are signed: the whole document (enveloped-signature
transform), the XAdES SignedProperties and the KeyInfo. SignedInfo is
canonicalized with inclusive C14N and signed with RSA or ECDSA over SHA-256.

The signature element is inserted as text immediately before the closing
root tag, so every byte of the unsigned document is preserved.

Reference:
- XAdES 1.3.2: ETSI TS 101 903
- http://www.facturae.es/politica_de_firma_formato_facturae/politica_de_firma_formato_facturae_v3_1.pdf
"""

from __future__ import annotations

import base64
import hashlib
import logging
import secrets
from collections.abc import Callable
from dataclasses import dataclass, field
from datetime import datetime
from typing import TYPE_CHECKING

from cryptography import x509
from cryptography.hazmat.primitives import hashes
from cryptography.hazmat.primitives.asymmetric import ec, padding
from cryptography.hazmat.primitives.asymmetric.utils import decode_dss_signature
from django.utils import timezone
from lxml import etree

from .certificates import (
    CertificateInfo,
    CertificateValidity,
    SigningMaterial,
    certificate_info,
    load_signing_material,
    validity,
)
from .constants import (
    C14N_ALGORITHM,
    DS_NAMESPACE,
    ENVELOPED_SIGNATURE_TRANSFORM,
    POLICY_DESCRIPTION,
    POLICY_HASH_ALGORITHM,
    POLICY_HASH_VALUE,
    POLICY_IDENTIFIER,
    SHA256_ALGORITHM,
    SIGNATURE_NAMESPACES,
    SIGNED_PROPERTIES_TYPE,
    XADES_NAMESPACE,
)
from .exceptions import CryptoError, FacturaEError, NotFoundError, ValidationError
from .settings import FacturaESettings

if TYPE_CHECKING:
    from .records import CertificateRecord
    from .repository import FacturaERepository

logger = logging.getLogger(__name__)

# Sub-elements a FacturaE signature must carry, by namespace prefix
REQUIRED_SIGNATURE_ELEMENTS = (
    ("ds", "SignedInfo"),
    ("ds", "SignatureValue"),
    ("ds", "KeyInfo"),
    ("ds", "X509Certificate"),
    ("xades", "SignedProperties"),
    ("xades", "SigningTime"),
    ("xades", "SignaturePolicyIdentifier"),
)


@dataclass
class SignatureMetadata:
    signer: str
    signing_time: datetime
    algorithm: str
    fingerprint: str  # SHA-256 of the signed document
    certificate_id: str


@dataclass
class SignatureResult:
    """Result of a signing operation."""

    success: bool
    signed_xml: str = ""
    metadata: SignatureMetadata | None = None
    warnings: list[str] = field(default_factory=list)
    errors: list[str] = field(default_factory=list)
    error_type: str = ""

    @classmethod
    def ok(cls, signed_xml: str, metadata: SignatureMetadata, warnings: list[str]) -> SignatureResult:
        return cls(success=True, signed_xml=signed_xml, metadata=metadata, warnings=warnings)

    @classmethod
    def error(cls, exc: FacturaEError) -> SignatureResult:
        return cls(success=False, errors=exc.errors, error_type=exc.error_type)


@dataclass
class VerificationResult:
    is_valid: bool
    signer: str = ""
    signing_time: datetime | None = None
    errors: list[str] = field(default_factory=list)


def _ds(tag: str) -> str:
    return f"{{{DS_NAMESPACE}}}{tag}"


def _xades(tag: str) -> str:
    return f"{{{XADES_NAMESPACE}}}{tag}"


def _b64_sha256(data: bytes) -> str:
    return base64.b64encode(hashlib.sha256(data).digest()).decode("ascii")


def _c14n(element: etree._Element) -> bytes:
    return etree.tostring(element, method="c14n", exclusive=False, with_comments=False)


def insert_before_root_close(xml: str, fragment: str) -> str:
    """Insert ``fragment`` immediately before the document's closing root tag."""
    position = xml.rstrip().rfind("</")
    if position < 0:
        raise ValidationError("Document has no closing root tag")
    return xml[:position] + fragment + xml[position:]


class XAdESSigner:
    """
    Sign and inspect FacturaE documents.

    Usage:
        signer = XAdESSigner(repository)
        result = signer.sign(xml, certificate_id)
    """

    def __init__(
        self,
        repository: FacturaERepository,
        facturae_settings: FacturaESettings | None = None,
        clock: Callable[[], datetime] = timezone.now,
        id_factory: Callable[[], str] | None = None,
    ):
        self.repository = repository
        self.settings = facturae_settings or FacturaESettings()
        self.clock = clock
        self.id_factory = id_factory or (lambda: secrets.token_hex(8))

    # --- Public API ---

    def sign(self, xml: str, certificate_id: str) -> SignatureResult:
        """
        Sign a FacturaE document with XAdES-EPES.

        Args:
            xml: Unsigned FacturaE XML
            certificate_id: Certificate used to sign

        Returns:
            SignatureResult with the signed XML and signing metadata. An
            expiring certificate adds a warning but does not fail.
        """
        try:
            certificate = self._load_certificate(certificate_id)
            now = self.clock()
            warnings = self._check_certificate(certificate, now)
            material = load_signing_material(certificate)
            signed_xml = self._embed_signature(xml, material, now)
        except FacturaEError as e:
            logger.error(f"FacturaE signing failed with certificate {certificate_id}: {e.errors}")
            return SignatureResult.error(e)

        metadata = SignatureMetadata(
            signer=certificate.subject,
            signing_time=now,
            algorithm=material.algorithm,
            fingerprint=hashlib.sha256(signed_xml.encode("utf-8")).hexdigest(),
            certificate_id=certificate_id,
        )
        logger.info(f"FacturaE document signed with certificate {certificate_id} ({material.algorithm})")
        return SignatureResult.ok(signed_xml, metadata, warnings)

    def verify(self, signed_xml: str) -> VerificationResult:
        """
        Check that a document carries a complete XAdES signature.

        Only the structure is checked; digests and the signature value are
        not recomputed.
        """
        try:
            doc = etree.fromstring(signed_xml.encode("utf-8"))
        except etree.XMLSyntaxError as e:
            return VerificationResult(is_valid=False, errors=[f"XML parsing failed: {e}"])

        signature = doc.find(f".//{_ds('Signature')}")
        if signature is None:
            return VerificationResult(is_valid=False, errors=["Document has no signature"])

        errors = [
            f"Signature has no {name} element"
            for prefix, name in REQUIRED_SIGNATURE_ELEMENTS
            if signature.find(f".//{prefix}:{name}", namespaces=SIGNATURE_NAMESPACES) is None
        ]

        identifier = signature.findtext(".//xades:SigPolicyId/xades:Identifier", namespaces=SIGNATURE_NAMESPACES)
        if identifier is not None and identifier.strip() != POLICY_IDENTIFIER:
            errors.append("Signature policy is not the FacturaE policy")

        signer = ""
        cert_text = signature.findtext(".//ds:X509Certificate", namespaces=SIGNATURE_NAMESPACES)
        if cert_text:
            try:
                cert = x509.load_der_x509_certificate(base64.b64decode(cert_text))
                signer = cert.subject.rfc4514_string()
            except ValueError:
                errors.append("Embedded certificate cannot be parsed")

        signing_time = None
        time_text = signature.findtext(".//xades:SigningTime", namespaces=SIGNATURE_NAMESPACES)
        if time_text:
            try:
                signing_time = datetime.fromisoformat(time_text.strip())
            except ValueError:
                errors.append(f"Invalid signing time {time_text!r}")

        return VerificationResult(is_valid=not errors, signer=signer, signing_time=signing_time, errors=errors)

    def validity(self, certificate: CertificateRecord) -> CertificateValidity:
        return validity(certificate, self.clock())

    def certificate_info(self, certificate_id: str) -> CertificateInfo | None:
        """Describe a stored certificate; ``None`` if it is missing or unreadable."""
        certificate = self.repository.find_certificate(certificate_id)
        if certificate is None:
            return None
        try:
            return certificate_info(certificate, self.clock())
        except CryptoError:
            return None

    def available_certificates(self) -> list[CertificateInfo]:
        """Active certificates that are valid right now. Unreadable ones are skipped."""
        now = self.clock()
        available = []
        for certificate in self.repository.list_active_certificates():
            try:
                info = certificate_info(certificate, now)
            except CryptoError:
                logger.warning(f"Skipping unreadable signing certificate {certificate.id}")
                continue
            if info.is_valid:
                available.append(info)
        return available

    # --- Certificate checks ---

    def _load_certificate(self, certificate_id: str) -> CertificateRecord:
        certificate = self.repository.find_certificate(certificate_id)
        if certificate is None:
            raise NotFoundError(f"Certificate {certificate_id} not found")
        return certificate

    def _check_certificate(self, certificate: CertificateRecord, now: datetime) -> list[str]:
        if not certificate.is_active:
            raise CryptoError(f"Certificate {certificate.id} is not active")
        if now < certificate.valid_from:
            raise CryptoError(f"Certificate {certificate.id} is not valid yet")
        if now > certificate.valid_until:
            raise CryptoError(f"Certificate {certificate.id} has expired")

        days = validity(certificate, now).days_remaining
        if days < self.settings.certificate_expiry_warning_days:
            logger.warning(f"Signing certificate {certificate.id} expires in {days} days")
            return [f"Certificate expires in {days} days"]
        return []

    # --- Signature assembly ---

    def _embed_signature(self, xml: str, material: SigningMaterial, now: datetime) -> str:
        try:
            doc = etree.fromstring(xml.encode("utf-8"))
        except etree.XMLSyntaxError as e:
            raise ValidationError(f"Document is not well-formed XML: {e}") from e
        if doc.find(f".//{_ds('Signature')}") is not None:
            raise ValidationError("Document is already signed")

        ids = {
            "signature": f"Signature-{self.id_factory()}",
            "signed_properties": f"SignedProperties-{self.id_factory()}",
            "key_info": f"KeyInfo-{self.id_factory()}",
            "reference": f"Reference-{self.id_factory()}",
        }
        document_digest = _b64_sha256(_c14n(doc))
        signature = self._build_signature(ids, document_digest, material, now)

        # Digests and the signature value are computed in document context,
        # where the inclusive C14N output includes inherited namespaces.
        placeholder = etree.tostring(signature, encoding="unicode")
        candidate = etree.fromstring(insert_before_root_close(xml, placeholder).encode("utf-8"))
        placed = candidate.find(_ds("Signature"))

        signed_info = placed.find(_ds("SignedInfo"))
        references = signed_info.findall(_ds("Reference"))
        signed_properties = placed.find(f".//{_xades('SignedProperties')}")
        key_info = placed.find(_ds("KeyInfo"))
        references[1].find(_ds("DigestValue")).text = _b64_sha256(_c14n(signed_properties))
        references[2].find(_ds("DigestValue")).text = _b64_sha256(_c14n(key_info))

        signature_value = self._signature_value(_c14n(signed_info), material)
        placed.find(_ds("SignatureValue")).text = signature_value

        fragment = etree.tostring(placed, encoding="unicode", with_tail=False)
        return insert_before_root_close(xml, fragment)

    def _signature_value(self, data: bytes, material: SigningMaterial) -> str:
        key = material.private_key
        if material.is_rsa:
            raw = key.sign(data, padding.PKCS1v15(), hashes.SHA256())
        else:
            # XMLDSig carries ECDSA signatures as raw r || s, not DER
            r, s = decode_dss_signature(key.sign(data, ec.ECDSA(hashes.SHA256())))
            size = (key.curve.key_size + 7) // 8
            raw = r.to_bytes(size, "big") + s.to_bytes(size, "big")
        return base64.b64encode(raw).decode("ascii")

    def _add(self, parent: etree._Element, tag: str, text: str | None = None, **attribs: str) -> etree._Element:
        """Add element with optional text and attributes."""
        elem = etree.SubElement(parent, tag, attrib=attribs)
        if text is not None:
            elem.text = text
        return elem

    def _build_signature(
        self, ids: dict[str, str], document_digest: str, material: SigningMaterial, now: datetime
    ) -> etree._Element:
        signature = etree.Element(_ds("Signature"), nsmap=SIGNATURE_NAMESPACES, Id=ids["signature"])
        self._add_signed_info(signature, ids, document_digest, material)
        self._add(signature, _ds("SignatureValue"), "")
        self._add_key_info(signature, ids["key_info"], material)

        obj = self._add(signature, _ds("Object"))
        qualifying = self._add(obj, _xades("QualifyingProperties"), Target=f"#{ids['signature']}")
        self._add_signed_properties(qualifying, ids, material, now)
        return signature

    def _add_signed_info(
        self, parent: etree._Element, ids: dict[str, str], document_digest: str, material: SigningMaterial
    ) -> None:
        """Add SignedInfo element with its three references."""
        signed_info = self._add(parent, _ds("SignedInfo"))
        self._add(signed_info, _ds("CanonicalizationMethod"), Algorithm=C14N_ALGORITHM)
        self._add(signed_info, _ds("SignatureMethod"), Algorithm=material.signature_method)

        document_ref = self._add(signed_info, _ds("Reference"), Id=ids["reference"], URI="")
        transforms = self._add(document_ref, _ds("Transforms"))
        self._add(transforms, _ds("Transform"), Algorithm=ENVELOPED_SIGNATURE_TRANSFORM)
        self._add(document_ref, _ds("DigestMethod"), Algorithm=SHA256_ALGORITHM)
        self._add(document_ref, _ds("DigestValue"), document_digest)

        properties_ref = self._add(
            signed_info, _ds("Reference"), URI=f"#{ids['signed_properties']}", Type=SIGNED_PROPERTIES_TYPE
        )
        self._add(properties_ref, _ds("DigestMethod"), Algorithm=SHA256_ALGORITHM)
        self._add(properties_ref, _ds("DigestValue"), "")

        key_info_ref = self._add(signed_info, _ds("Reference"), URI=f"#{ids['key_info']}")
        self._add(key_info_ref, _ds("DigestMethod"), Algorithm=SHA256_ALGORITHM)
        self._add(key_info_ref, _ds("DigestValue"), "")

    def _add_key_info(self, parent: etree._Element, key_info_id: str, material: SigningMaterial) -> None:
        """Add KeyInfo element with the certificate and, for RSA, the public key."""
        key_info = self._add(parent, _ds("KeyInfo"), Id=key_info_id)
        x509_data = self._add(key_info, _ds("X509Data"))
        self._add(x509_data, _ds("X509Certificate"), base64.b64encode(material.certificate_der).decode("ascii"))

        if material.is_rsa:
            numbers = material.certificate.public_key().public_numbers()
            key_value = self._add(key_info, _ds("KeyValue"))
            rsa_value = self._add(key_value, _ds("RSAKeyValue"))
            self._add(rsa_value, _ds("Modulus"), self._int_to_b64(numbers.n))
            self._add(rsa_value, _ds("Exponent"), self._int_to_b64(numbers.e))

    def _add_signed_properties(
        self, parent: etree._Element, ids: dict[str, str], material: SigningMaterial, now: datetime
    ) -> None:
        """Add XAdES SignedProperties element."""
        properties = self._add(parent, _xades("SignedProperties"), Id=ids["signed_properties"])
        signature_props = self._add(properties, _xades("SignedSignatureProperties"))
        self._add(signature_props, _xades("SigningTime"), now.isoformat())

        signing_cert = self._add(signature_props, _xades("SigningCertificate"))
        cert = self._add(signing_cert, _xades("Cert"))
        cert_digest = self._add(cert, _xades("CertDigest"))
        self._add(cert_digest, _ds("DigestMethod"), Algorithm=SHA256_ALGORITHM)
        self._add(cert_digest, _ds("DigestValue"), _b64_sha256(material.certificate_der))
        issuer_serial = self._add(cert, _xades("IssuerSerial"))
        self._add(issuer_serial, _ds("X509IssuerName"), material.certificate.issuer.rfc4514_string())
        self._add(issuer_serial, _ds("X509SerialNumber"), str(material.certificate.serial_number))

        policy = self._add(signature_props, _xades("SignaturePolicyIdentifier"))
        policy_id = self._add(policy, _xades("SignaturePolicyId"))
        sig_policy_id = self._add(policy_id, _xades("SigPolicyId"))
        self._add(sig_policy_id, _xades("Identifier"), POLICY_IDENTIFIER)
        self._add(sig_policy_id, _xades("Description"), POLICY_DESCRIPTION)
        policy_hash = self._add(policy_id, _xades("SigPolicyHash"))
        self._add(policy_hash, _ds("DigestMethod"), Algorithm=POLICY_HASH_ALGORITHM)
        self._add(policy_hash, _ds("DigestValue"), POLICY_HASH_VALUE)

        data_props = self._add(properties, _xades("SignedDataObjectProperties"))
        data_format = self._add(data_props, _xades("DataObjectFormat"), ObjectReference=f"#{ids['reference']}")
        self._add(data_format, _xades("MimeType"), "text/xml")

    @staticmethod
    def _int_to_b64(value: int) -> str:
        return base64.b64encode(value.to_bytes((value.bit_length() + 7) // 8, "big")).decode("ascii")

"""
Tests for XAdES-EPES signing.
"""

import base64
import hashlib
from datetime import timedelta

from cryptography import x509
from cryptography.hazmat.primitives import hashes
from cryptography.hazmat.primitives.asymmetric import ec, padding
from cryptography.hazmat.primitives.asymmetric.utils import encode_dss_signature
from django.test import SimpleTestCase, override_settings
from lxml import etree

from apps.billing.facturae.constants import (
    DS_NAMESPACE,
    POLICY_HASH_VALUE,
    POLICY_IDENTIFIER,
    SIGNATURE_NAMESPACES,
)
from apps.billing.facturae.exceptions import ValidationError
from apps.billing.facturae.repository import InMemoryRepository
from apps.billing.facturae.signer import XAdESSigner, insert_before_root_close
from apps.billing.facturae.validator import FacturaEValidator
from apps.billing.facturae.xml_builder import FacturaEBuilder, GenerateOptions

from .factories import FIXED_NOW, make_certificate, make_repository


def _ds(path: str) -> str:
    return path.replace("ds:", f"{{{DS_NAMESPACE}}}")


class InsertBeforeRootCloseTestCase(SimpleTestCase):
    def test_insert(self):
        self.assertEqual(insert_before_root_close("<a><b/></a>\n", "<c/>"), "<a><b/><c/></a>\n")

    def test_no_closing_tag(self):
        with self.assertRaises(ValidationError):
            insert_before_root_close("<a/>", "<c/>")


class XAdESSignerTestCase(SimpleTestCase):
    """Test XAdESSigner.sign with real RSA and EC keys."""

    @classmethod
    def setUpClass(cls):
        super().setUpClass()
        cls.rsa_certificate = make_certificate("cert-rsa", key_type="rsa")
        cls.ec_certificate = make_certificate("cert-ec", key_type="ec", container="pkcs12", password="pin")

    def setUp(self):
        self.repository = make_repository(certificates=[self.rsa_certificate, self.ec_certificate])
        self.signer = XAdESSigner(self.repository, clock=lambda: FIXED_NOW, id_factory=lambda: "0123abcd")
        self.xml = FacturaEBuilder(self.repository).generate("inv-1").xml

    def _verify_signature_value(self, signed_xml, certificate, is_rsa=True):
        doc = etree.fromstring(signed_xml.encode("utf-8"))
        signed_info = doc.find(_ds(".//ds:SignedInfo"))
        data = etree.tostring(signed_info, method="c14n")
        value = base64.b64decode(doc.findtext(_ds(".//ds:SignatureValue")))
        public_key = x509.load_pem_x509_certificate(certificate.certificate_pem).public_key()
        if is_rsa:
            public_key.verify(value, data, padding.PKCS1v15(), hashes.SHA256())
        else:
            half = len(value) // 2
            der = encode_dss_signature(int.from_bytes(value[:half], "big"), int.from_bytes(value[half:], "big"))
            public_key.verify(der, data, ec.ECDSA(hashes.SHA256()))

    def test_sign_rsa(self):
        """Test RSA signature value verifies against the certificate key."""
        result = self.signer.sign(self.xml, "cert-rsa")

        self.assertTrue(result.success)
        self.assertEqual(result.metadata.algorithm, "RSA-SHA256")
        self.assertEqual(result.metadata.signer, self.rsa_certificate.subject)
        self.assertEqual(result.metadata.signing_time, FIXED_NOW)
        self.assertEqual(result.metadata.fingerprint, hashlib.sha256(result.signed_xml.encode("utf-8")).hexdigest())
        self._verify_signature_value(result.signed_xml, self.rsa_certificate)

    def test_sign_ecdsa(self):
        """Test ECDSA signatures are raw r || s and verify."""
        result = self.signer.sign(self.xml, "cert-ec")

        self.assertTrue(result.success)
        self.assertEqual(result.metadata.algorithm, "ECDSA-SHA256")
        doc = etree.fromstring(result.signed_xml.encode("utf-8"))
        self.assertEqual(len(base64.b64decode(doc.findtext(_ds(".//ds:SignatureValue")))), 64)
        self.assertIsNone(doc.find(_ds(".//ds:RSAKeyValue")))
        self._verify_signature_value(result.signed_xml, self.ec_certificate, is_rsa=False)

    def test_unsigned_content_preserved(self):
        """Test the signature is inserted before the closing root tag only."""
        signed = self.signer.sign(self.xml, "cert-rsa").signed_xml
        start = signed.index("<ds:Signature")
        end = signed.rindex("</fe:Facturae>")

        self.assertEqual(signed[:start] + signed[end:], self.xml)

    def test_document_digest(self):
        """Test the enveloped reference digests the document without its signature."""
        signed = self.signer.sign(self.xml, "cert-rsa").signed_xml
        doc = etree.fromstring(signed.encode("utf-8"))
        signature = doc.find(_ds("ds:Signature"))
        reference_digest = signature.findtext(_ds("ds:SignedInfo/ds:Reference/ds:DigestValue"))
        doc.remove(signature)

        expected = base64.b64encode(hashlib.sha256(etree.tostring(doc, method="c14n")).digest()).decode("ascii")
        self.assertEqual(reference_digest, expected)

    def test_referenced_digests(self):
        """Test SignedProperties and KeyInfo digests match their canonical form."""
        signed = self.signer.sign(self.xml, "cert-rsa").signed_xml
        doc = etree.fromstring(signed.encode("utf-8"))
        references = doc.findall(_ds(".//ds:SignedInfo/ds:Reference"))

        for reference in references[1:]:
            target_id = reference.get("URI")[1:]
            target = doc.xpath(f"//*[@Id='{target_id}']")[0]
            digest = base64.b64encode(hashlib.sha256(etree.tostring(target, method="c14n")).digest()).decode()
            self.assertEqual(reference.findtext(_ds("ds:DigestValue")), digest)

    def test_signature_structure(self):
        """Test policy constants, identifiers and signed properties."""
        signed = self.signer.sign(self.xml, "cert-rsa").signed_xml
        doc = etree.fromstring(signed.encode("utf-8"))
        ns = SIGNATURE_NAMESPACES

        signature = doc.find("ds:Signature", namespaces=ns)
        self.assertEqual(signature.get("Id"), "Signature-0123abcd")
        references = signature.findall("ds:SignedInfo/ds:Reference", namespaces=ns)
        self.assertEqual(
            [ref.get("URI") for ref in references], ["", "#SignedProperties-0123abcd", "#KeyInfo-0123abcd"]
        )
        self.assertEqual(signature.findtext(".//xades:SigPolicyId/xades:Identifier", namespaces=ns), POLICY_IDENTIFIER)
        self.assertEqual(signature.findtext(".//xades:SigPolicyHash/ds:DigestValue", namespaces=ns), POLICY_HASH_VALUE)
        self.assertEqual(
            signature.find(".//xades:DataObjectFormat", namespaces=ns).get("ObjectReference"), "#Reference-0123abcd"
        )
        self.assertEqual(signature.findtext(".//xades:MimeType", namespaces=ns), "text/xml")
        self.assertEqual(signature.findtext(".//xades:SigningTime", namespaces=ns), FIXED_NOW.isoformat())
        self.assertIsNotNone(signature.find(".//ds:RSAKeyValue/ds:Modulus", namespaces=ns))

    def test_signed_document_still_validates(self):
        signed = self.signer.sign(self.xml, "cert-rsa").signed_xml
        self.assertTrue(FacturaEValidator().validate(signed).is_valid)

    def test_already_signed(self):
        signed = self.signer.sign(self.xml, "cert-rsa").signed_xml
        result = self.signer.sign(signed, "cert-rsa")
        self.assertFalse(result.success)
        self.assertEqual(result.errors, ["Document is already signed"])

    def test_malformed_document(self):
        result = self.signer.sign("<fe:Facturae>", "cert-rsa")
        self.assertFalse(result.success)
        self.assertEqual(result.error_type, "ValidationError")

    def test_certificate_not_found(self):
        result = self.signer.sign(self.xml, "missing")
        self.assertEqual(result.error_type, "NotFoundError")

    def test_builder_signs_with_signer(self):
        """Test generate(sign=True) produces a signed document."""
        builder = FacturaEBuilder(self.repository, signer=self.signer)
        result = builder.generate("inv-1", GenerateOptions(sign=True, certificate_id="cert-rsa"))

        self.assertTrue(result.success)
        self.assertTrue(result.signed)
        self.assertIn("<ds:Signature", result.xml)


class XAdESSignerCertificateTestCase(SimpleTestCase):
    """Test certificate checks done before signing."""

    def _signer(self, certificate):
        return XAdESSigner(InMemoryRepository(certificates=[certificate]), clock=lambda: FIXED_NOW)

    def test_expired(self):
        certificate = make_certificate(key_type="ec", valid_until=FIXED_NOW - timedelta(days=1))
        result = self._signer(certificate).sign("<a></a>", certificate.id)
        self.assertEqual(result.error_type, "CryptoError")
        self.assertEqual(result.errors, ["Certificate cert-1 has expired"])

    def test_not_yet_valid(self):
        certificate = make_certificate(key_type="ec", valid_from=FIXED_NOW + timedelta(days=1))
        result = self._signer(certificate).sign("<a></a>", certificate.id)
        self.assertEqual(result.errors, ["Certificate cert-1 is not valid yet"])

    def test_inactive(self):
        certificate = make_certificate(key_type="ec", is_active=False)
        result = self._signer(certificate).sign("<a></a>", certificate.id)
        self.assertEqual(result.errors, ["Certificate cert-1 is not active"])

    def test_expiring_certificate_warns(self):
        """Test a certificate close to expiry signs with a warning."""
        certificate = make_certificate(key_type="ec", valid_until=FIXED_NOW + timedelta(days=5))
        result = self._signer(certificate).sign("<a></a>", certificate.id)
        self.assertTrue(result.success)
        self.assertEqual(result.warnings, ["Certificate expires in 5 days"])

    @override_settings(FACTURAE_CERTIFICATE_EXPIRY_WARNING_DAYS=3)
    def test_expiry_threshold_from_settings(self):
        certificate = make_certificate(key_type="ec", valid_until=FIXED_NOW + timedelta(days=5))
        result = self._signer(certificate).sign("<a></a>", certificate.id)
        self.assertEqual(result.warnings, [])

    def test_available_certificates(self):
        """Test only active, currently valid certificates are offered."""
        repository = InMemoryRepository(
            certificates=[
                make_certificate("valid", key_type="ec"),
                make_certificate("expired", key_type="ec", valid_until=FIXED_NOW - timedelta(days=1)),
                make_certificate("inactive", key_type="ec", is_active=False),
            ]
        )
        signer = XAdESSigner(repository, clock=lambda: FIXED_NOW)
        self.assertEqual([info.id for info in signer.available_certificates()], ["valid"])
        self.assertIsNone(signer.certificate_info("missing"))
        self.assertFalse(signer.certificate_info("expired").is_valid)

    def test_unreadable_certificate_skipped(self):
        """Test a corrupt stored certificate is left out instead of failing the listing."""
        broken = make_certificate("broken", key_type="ec")
        broken.certificate_pem = b"not a pem"
        repository = InMemoryRepository(certificates=[broken, make_certificate("valid", key_type="ec")])
        signer = XAdESSigner(repository, clock=lambda: FIXED_NOW)

        with self.assertLogs("apps.billing.facturae.signer", level="WARNING"):
            available = signer.available_certificates()

        self.assertEqual([info.id for info in available], ["valid"])
        self.assertIsNone(signer.certificate_info("broken"))

    def test_encrypted_key_without_password(self):
        """Test an undecryptable key is a signing error, not an exception."""
        certificate = make_certificate(key_type="ec", key_password="pin")
        certificate.private_key_password = ""

        result = self._signer(certificate).sign("<a></a>", certificate.id)

        self.assertFalse(result.success)
        self.assertEqual(result.error_type, "CryptoError")

    def test_encrypted_key_with_password(self):
        certificate = make_certificate(key_type="ec", key_password="pin")
        result = self._signer(certificate).sign("<a></a>", certificate.id)
        self.assertTrue(result.success)


class XAdESVerifyTestCase(SimpleTestCase):
    """Test structural verification."""

    @classmethod
    def setUpClass(cls):
        super().setUpClass()
        cls.certificate = make_certificate(key_type="ec")

    def setUp(self):
        repository = make_repository(certificates=[self.certificate])
        self.signer = XAdESSigner(repository, clock=lambda: FIXED_NOW)
        self.signed = self.signer.sign(FacturaEBuilder(repository).generate("inv-1").xml, "cert-1").signed_xml

    def test_verify_signed(self):
        result = self.signer.verify(self.signed)
        self.assertTrue(result.is_valid)
        self.assertEqual(result.signer, self.certificate.subject)
        self.assertEqual(result.signing_time, FIXED_NOW)

    def test_verify_unsigned(self):
        result = self.signer.verify("<a></a>")
        self.assertEqual(result.errors, ["Document has no signature"])

    def test_verify_malformed(self):
        self.assertFalse(self.signer.verify("<a>").is_valid)

    def test_verify_missing_signing_time(self):
        doc = etree.fromstring(self.signed.encode("utf-8"))
        signing_time = doc.find(".//xades:SigningTime", namespaces=SIGNATURE_NAMESPACES)
        signing_time.getparent().remove(signing_time)

        result = self.signer.verify(etree.tostring(doc, encoding="unicode"))

        self.assertFalse(result.is_valid)
        self.assertEqual(result.errors, ["Signature has no SigningTime element"])

    def test_verify_wrong_policy(self):
        tampered = self.signed.replace(POLICY_IDENTIFIER, "urn:other-policy")
        result = self.signer.verify(tampered)
        self.assertIn("Signature policy is not the FacturaE policy", result.errors)

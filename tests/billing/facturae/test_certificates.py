"""
Tests for certificate introspection and key container loading.
"""

import hashlib
from datetime import timedelta

from cryptography import x509
from cryptography.hazmat.primitives import serialization
from django.test import SimpleTestCase

from apps.billing.facturae.certificates import certificate_info, load_signing_material, validity
from apps.billing.facturae.exceptions import CryptoError

from .factories import FIXED_NOW, make_certificate


class CertificateValidityTestCase(SimpleTestCase):
    """Test validity window evaluation."""

    @classmethod
    def setUpClass(cls):
        super().setUpClass()
        cls.certificate = make_certificate(
            key_type="ec",
            valid_from=FIXED_NOW - timedelta(days=10),
            valid_until=FIXED_NOW + timedelta(days=10),
        )

    def test_inside_window(self):
        state = validity(self.certificate, FIXED_NOW)
        self.assertTrue(state.is_valid)
        self.assertEqual(state.days_remaining, 10)

    def test_boundaries_are_inclusive(self):
        """Test both window boundaries count as valid."""
        self.assertTrue(validity(self.certificate, self.certificate.valid_from).is_valid)
        self.assertTrue(validity(self.certificate, self.certificate.valid_until).is_valid)
        self.assertEqual(validity(self.certificate, self.certificate.valid_until).days_remaining, 0)

    def test_outside_window(self):
        one_second = timedelta(seconds=1)
        self.assertFalse(validity(self.certificate, self.certificate.valid_from - one_second).is_valid)
        self.assertFalse(validity(self.certificate, self.certificate.valid_until + one_second).is_valid)

    def test_days_remaining_rounds_up(self):
        """Test a partial day counts as a full remaining day."""
        now = self.certificate.valid_until - timedelta(hours=36)
        self.assertEqual(validity(self.certificate, now).days_remaining, 2)

    def test_inactive_certificate_is_invalid(self):
        certificate = make_certificate(key_type="ec", is_active=False)
        self.assertFalse(validity(certificate, FIXED_NOW).is_valid)


class LoadSigningMaterialTestCase(SimpleTestCase):
    """Test opening PEM and PKCS#12 key containers."""

    def test_pem_rsa(self):
        material = load_signing_material(make_certificate(key_type="rsa"))
        self.assertTrue(material.is_rsa)
        self.assertEqual(material.algorithm, "RSA-SHA256")
        self.assertEqual(material.signature_method, "http://www.w3.org/2001/04/xmldsig-more#rsa-sha256")

    def test_pem_ec(self):
        material = load_signing_material(make_certificate(key_type="ec"))
        self.assertFalse(material.is_rsa)
        self.assertEqual(material.algorithm, "ECDSA-SHA256")

    def test_pkcs12_with_password(self):
        certificate = make_certificate(key_type="ec", container="pkcs12", password="s3cret")
        material = load_signing_material(certificate)
        self.assertEqual(str(material.certificate.serial_number), certificate.serial_number)

    def test_pkcs12_wrong_password(self):
        certificate = make_certificate(key_type="ec", container="pkcs12", password="s3cret")
        certificate.pkcs12_password = "wrong"
        with self.assertRaises(CryptoError):
            load_signing_material(certificate)

    def test_missing_container(self):
        certificate = make_certificate(key_type="ec")
        certificate.private_key_pem = None
        with self.assertRaisesMessage(CryptoError, "has no key container"):
            load_signing_material(certificate)


class CertificateInfoTestCase(SimpleTestCase):
    def test_info(self):
        """Test public description with fingerprint of the DER certificate."""
        certificate = make_certificate(key_type="ec")
        info = certificate_info(certificate, FIXED_NOW)

        der = x509.load_pem_x509_certificate(certificate.certificate_pem).public_bytes(serialization.Encoding.DER)
        self.assertEqual(info.fingerprint, hashlib.sha256(der).hexdigest())
        self.assertEqual(info.algorithm, "EC")
        self.assertEqual(info.subject, certificate.subject)
        self.assertTrue(info.is_valid)
        self.assertEqual(info.days_remaining, 365)


class EncryptedKeyTestCase(SimpleTestCase):
    """Test PEM private keys stored encrypted."""

    def test_encrypted_pem_with_password(self):
        certificate = make_certificate(key_type="ec", key_password="pin")
        material = load_signing_material(certificate)
        self.assertEqual(str(material.certificate.serial_number), certificate.serial_number)

    def test_encrypted_pem_without_password(self):
        """Test a missing key password is reported as a crypto error."""
        certificate = make_certificate(key_type="ec", key_password="pin")
        certificate.private_key_password = ""
        with self.assertRaisesMessage(CryptoError, "key container could not be opened"):
            load_signing_material(certificate)

    def test_encrypted_pem_wrong_password(self):
        certificate = make_certificate(key_type="ec", key_password="pin")
        certificate.private_key_password = "wrong"
        with self.assertRaises(CryptoError):
            load_signing_material(certificate)

    def test_password_for_plain_pem(self):
        certificate = make_certificate(key_type="ec")
        certificate.private_key_password = "pin"
        with self.assertRaises(CryptoError):
            load_signing_material(certificate)


class CertificateInfoContainersTestCase(SimpleTestCase):
    """Test certificate_info across key containers."""

    def test_pkcs12_only(self):
        """Test PKCS#12-only records are described from the embedded certificate."""
        certificate = make_certificate(key_type="rsa", container="pkcs12", password="s3cret")
        pem = certificate.certificate_pem
        certificate.certificate_pem = None

        info = certificate_info(certificate, FIXED_NOW)

        der = x509.load_pem_x509_certificate(pem).public_bytes(serialization.Encoding.DER)
        self.assertEqual(info.fingerprint, hashlib.sha256(der).hexdigest())
        self.assertEqual(info.algorithm, "RSA")

    def test_unreadable_pem(self):
        certificate = make_certificate(key_type="ec")
        certificate.certificate_pem = b"not a pem"
        with self.assertRaisesMessage(CryptoError, "could not be read"):
            certificate_info(certificate, FIXED_NOW)

    def test_no_certificate(self):
        certificate = make_certificate(key_type="ec")
        certificate.certificate_pem = None
        with self.assertRaisesMessage(CryptoError, "has no readable certificate"):
            certificate_info(certificate, FIXED_NOW)

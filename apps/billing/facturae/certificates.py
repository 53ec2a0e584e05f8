"""
Signing certificate introspection and key loading.

Certificates are stored outside this package; here they are only evaluated
(validity window, days remaining) and opened for signing.
"""

from __future__ import annotations

import hashlib
import logging
import math
from dataclasses import dataclass
from datetime import datetime, timedelta

from cryptography import x509
from cryptography.exceptions import UnsupportedAlgorithm
from cryptography.hazmat.primitives import serialization
from cryptography.hazmat.primitives.asymmetric import ec, rsa
from cryptography.hazmat.primitives.serialization import pkcs12

from .constants import ECDSA_SHA256_ALGORITHM, RSA_SHA256_ALGORITHM
from .exceptions import CryptoError
from .records import CertificateRecord

logger = logging.getLogger(__name__)

ONE_DAY = timedelta(days=1)

KEY_CONTAINER_ERRORS = (ValueError, TypeError, UnsupportedAlgorithm)


def _password(value: str) -> bytes | None:
    return value.encode() if value else None


@dataclass
class CertificateValidity:
    is_valid: bool
    days_remaining: int


@dataclass
class CertificateInfo:
    """Public description of a stored certificate."""

    id: str
    subject: str
    issuer: str
    serial_number: str
    valid_from: datetime
    valid_until: datetime
    algorithm: str
    fingerprint: str
    is_valid: bool
    days_remaining: int


@dataclass
class SigningMaterial:
    """Opened key container: X.509 certificate plus its private key."""

    certificate: x509.Certificate
    private_key: rsa.RSAPrivateKey | ec.EllipticCurvePrivateKey

    @property
    def is_rsa(self) -> bool:
        return isinstance(self.private_key, rsa.RSAPrivateKey)

    @property
    def algorithm(self) -> str:
        return "RSA-SHA256" if self.is_rsa else "ECDSA-SHA256"

    @property
    def signature_method(self) -> str:
        return RSA_SHA256_ALGORITHM if self.is_rsa else ECDSA_SHA256_ALGORITHM

    @property
    def certificate_der(self) -> bytes:
        return self.certificate.public_bytes(serialization.Encoding.DER)


def validity(certificate: CertificateRecord, now: datetime) -> CertificateValidity:
    """
    Evaluate a certificate's validity window at ``now``.

    Both window boundaries are inclusive. ``days_remaining`` rounds up, so a
    certificate expiring later today still has one day left.
    """
    remaining = (certificate.valid_until - now) / ONE_DAY
    is_valid = certificate.is_active and certificate.valid_from <= now <= certificate.valid_until
    return CertificateValidity(is_valid=is_valid, days_remaining=math.ceil(remaining))


def load_signing_material(certificate: CertificateRecord) -> SigningMaterial:
    """
    Open the certificate's key container.

    Raises:
        CryptoError: If no container is stored, it cannot be decrypted, or
            the key type is neither RSA nor EC
    """
    try:
        if certificate.pkcs12_data:
            private_key, cert, _chain = pkcs12.load_key_and_certificates(
                certificate.pkcs12_data, _password(certificate.pkcs12_password)
            )
        elif certificate.certificate_pem and certificate.private_key_pem:
            cert = x509.load_pem_x509_certificate(certificate.certificate_pem)
            private_key = serialization.load_pem_private_key(
                certificate.private_key_pem, password=_password(certificate.private_key_password)
            )
        else:
            raise CryptoError(f"Certificate {certificate.id} has no key container")
    except KEY_CONTAINER_ERRORS as e:
        # TypeError: password missing for an encrypted key, or given for a plain one
        logger.error(f"Could not open key container of certificate {certificate.id}: {e}")
        raise CryptoError(f"Certificate {certificate.id} key container could not be opened") from e

    if cert is None or private_key is None:
        raise CryptoError(f"Certificate {certificate.id} key container is incomplete")
    if not isinstance(private_key, rsa.RSAPrivateKey | ec.EllipticCurvePrivateKey):
        raise CryptoError(f"Certificate {certificate.id} uses an unsupported key type")

    return SigningMaterial(certificate=cert, private_key=private_key)


def public_certificate(certificate: CertificateRecord) -> x509.Certificate:
    """
    Read the X.509 certificate of a stored record.

    The PEM certificate is preferred. PKCS#12-only records are opened with
    their password to reach the embedded certificate.

    Raises:
        CryptoError: If neither container holds a readable certificate
    """
    try:
        if certificate.certificate_pem:
            return x509.load_pem_x509_certificate(certificate.certificate_pem)
        if certificate.pkcs12_data:
            _key, cert, _chain = pkcs12.load_key_and_certificates(
                certificate.pkcs12_data, _password(certificate.pkcs12_password)
            )
            if cert is not None:
                return cert
    except KEY_CONTAINER_ERRORS as e:
        logger.warning(f"Could not read certificate {certificate.id}: {e}")
        raise CryptoError(f"Certificate {certificate.id} could not be read") from e
    raise CryptoError(f"Certificate {certificate.id} has no readable certificate")


def certificate_info(certificate: CertificateRecord, now: datetime) -> CertificateInfo:
    """
    Describe a certificate without exposing its private key.

    Raises:
        CryptoError: If the stored certificate cannot be read
    """
    state = validity(certificate, now)
    cert = public_certificate(certificate)
    fingerprint = hashlib.sha256(cert.public_bytes(serialization.Encoding.DER)).hexdigest()
    algorithm = "RSA" if isinstance(cert.public_key(), rsa.RSAPublicKey) else "EC"

    return CertificateInfo(
        id=certificate.id,
        subject=certificate.subject,
        issuer=certificate.issuer,
        serial_number=certificate.serial_number,
        valid_from=certificate.valid_from,
        valid_until=certificate.valid_until,
        algorithm=algorithm,
        fingerprint=fingerprint,
        is_valid=state.is_valid,
        days_remaining=state.days_remaining,
    )

"""
FACE web service client.

Posts SOAP envelopes to FACE over mutual TLS. There is no retry policy: a
timeout on ``enviarFactura`` is an indeterminate outcome, so callers must
query the invoice status rather than resubmit.

Usage:
    with FACEClient.for_environment(FACEEnvironment.STAGING) as client:
        response = client.query_invoice_status("REG-001")
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Any

import requests

from .constants import FACEEnvironment
from .exceptions import IntegrationError
from .settings import FacturaESettings
from .soap import (
    CancelResponse,
    StatusResponse,
    SubmitResponse,
    build_cancel_envelope,
    build_status_envelope,
    build_submit_envelope,
)

logger = logging.getLogger(__name__)


class FACEClientError(IntegrationError):
    """Base exception for FACE client errors."""


class NetworkError(FACEClientError):
    """Network communication failed."""


class HTTPStatusError(FACEClientError):
    """FACE answered with a non-SOAP HTTP error."""


@dataclass
class FACEConfig:
    """Configuration for the FACE client."""

    endpoint: str
    environment: FACEEnvironment
    timeout: int = 30
    client_cert_path: str = ""
    client_key_path: str = ""
    notification_email: str = ""

    @classmethod
    def from_settings(
        cls, environment: FACEEnvironment | str | None = None, facturae_settings: FacturaESettings | None = None
    ) -> FACEConfig:
        """Create config from Django settings."""
        facturae_settings = facturae_settings or FacturaESettings()
        env = FACEEnvironment(environment) if environment else facturae_settings.environment
        return cls(
            endpoint=facturae_settings.endpoint_for(env),
            environment=env,
            timeout=facturae_settings.timeout,
            client_cert_path=facturae_settings.client_cert_path,
            client_key_path=facturae_settings.client_key_path,
            notification_email=facturae_settings.notification_email,
        )

    @property
    def client_cert(self) -> tuple[str, str] | str | None:
        if self.client_cert_path and self.client_key_path:
            return (self.client_cert_path, self.client_key_path)
        return self.client_cert_path or None


class FACEClient:
    """
    SOAP client for the FACE supplier web service.

    Implements the transport collaborator used by ``FACEGateway``.
    """

    def __init__(self, config: FACEConfig | None = None):
        self.config = config or FACEConfig.from_settings()
        self._session: requests.Session | None = None

    @classmethod
    def for_environment(cls, environment: FACEEnvironment | str) -> FACEClient:
        return cls(FACEConfig.from_settings(environment))

    @property
    def session(self) -> requests.Session:
        """Get or create HTTP session."""
        if self._session is None:
            self._session = requests.Session()
            self._session.headers.update(
                {
                    "Content-Type": "text/xml; charset=utf-8",
                    "Accept": "text/xml",
                    "User-Agent": "FacturaE-FACE/1.0",
                }
            )
            cert = self.config.client_cert
            if cert:
                self._session.cert = cert
        return self._session

    def close(self) -> None:
        """Close HTTP session."""
        if self._session is not None:
            self._session.close()
            self._session = None

    def __enter__(self) -> FACEClient:
        return self

    def __exit__(self, *args: Any) -> None:
        self.close()

    # --- Operations ---

    def submit_invoice(self, signed_document: str, file_name: str, email: str = "") -> SubmitResponse:
        """
        Send a signed FacturaE document (``enviarFactura``).

        Args:
            signed_document: XAdES-signed FacturaE XML
            file_name: Artifact name reported to FACE
            email: Notification address; defaults to FACE_NOTIFICATION_EMAIL

        Returns:
            SubmitResponse with the registration number on success

        Raises:
            NetworkError: If the request fails or times out
            IntegrationError: If the response cannot be parsed or is a SOAP fault
        """
        envelope = build_submit_envelope(signed_document, file_name, email or self.config.notification_email)
        response = SubmitResponse.from_xml(self._post("enviarFactura", envelope))
        if response.is_success:
            logger.info(f"FACE accepted {file_name}: {response.registration_number}")
        else:
            logger.warning(f"FACE rejected {file_name}: [{response.result.code}] {response.result.description}")
        return response

    def query_invoice_status(self, registration_number: str) -> StatusResponse:
        """Query processing and cancellation state (``consultarEstadoFactura``)."""
        envelope = build_status_envelope(registration_number)
        response = StatusResponse.from_xml(self._post("consultarEstadoFactura", envelope))
        logger.info(f"FACE status for {registration_number}: {response.state_code or response.result.code}")
        return response

    def cancel_invoice(self, registration_number: str, reason: str) -> CancelResponse:
        """Request cancellation of a registered invoice (``anularFactura``)."""
        envelope = build_cancel_envelope(registration_number, reason)
        response = CancelResponse.from_xml(self._post("anularFactura", envelope))
        if not response.is_success:
            logger.warning(
                f"FACE refused cancellation of {registration_number}: "
                f"[{response.result.code}] {response.result.description}"
            )
        return response

    def _post(self, operation: str, envelope: bytes) -> bytes:
        """POST a SOAP envelope once, without retries."""
        try:
            response = self.session.post(
                self.config.endpoint,
                data=envelope,
                headers={"SOAPAction": f'"{operation}"'},
                timeout=self.config.timeout,
            )
        except requests.Timeout as e:
            logger.error(f"FACE {operation} timed out after {self.config.timeout}s")
            raise NetworkError(f"FACE {operation} timed out; outcome unknown, query status before retrying") from e
        except requests.RequestException as e:
            logger.error(f"FACE {operation} failed: {e}")
            raise NetworkError(f"FACE {operation} failed: {e}") from e

        # SOAP faults travel with HTTP 500 and are parsed from the body
        if response.status_code >= 400 and b"Fault" not in response.content:
            raise HTTPStatusError(f"FACE {operation} returned HTTP {response.status_code}")
        return response.content

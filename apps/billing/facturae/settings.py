"""
FacturaE configurable settings.

Values come from Django settings with sensible defaults, so every parameter
can be changed per deployment (or per test with ``override_settings``).
Fixed format constants live in ``constants`` instead.

Usage:
    from apps.billing.facturae.settings import FacturaESettings

    facturae_settings = FacturaESettings()
    url = facturae_settings.endpoint_for(FACEEnvironment.STAGING)
"""

from __future__ import annotations

import logging

from django.conf import settings as django_settings

from .constants import FACEEnvironment

logger = logging.getLogger(__name__)

DEFAULT_PRODUCTION_URL = "https://webservice.face.gob.es/facturasspp2"
DEFAULT_STAGING_URL = "https://se-face-pruebas.redsara.es/facturasspp2"


class FacturaESettings:
    """
    Read-through accessor for FacturaE/FACE settings.

    Settings are read on every access rather than cached, so
    ``override_settings`` takes effect immediately.
    """

    def _get(self, name: str, default):
        return getattr(django_settings, name, default)

    # --- Document ---

    @property
    def currency(self) -> str:
        return self._get("FACTURAE_CURRENCY", "EUR")

    @property
    def language(self) -> str:
        return self._get("FACTURAE_LANGUAGE", "es")

    @property
    def country_code(self) -> str:
        return self._get("FACTURAE_COUNTRY_CODE", "ESP")

    # --- Signing ---

    @property
    def certificate_expiry_warning_days(self) -> int:
        return int(self._get("FACTURAE_CERTIFICATE_EXPIRY_WARNING_DAYS", 30))

    # --- FACE ---

    @property
    def environment(self) -> FACEEnvironment:
        value = self._get("FACE_ENVIRONMENT", FACEEnvironment.STAGING.value)
        try:
            return FACEEnvironment(value)
        except ValueError:
            logger.warning(f"Unknown FACE_ENVIRONMENT {value!r}, using staging")
            return FACEEnvironment.STAGING

    @property
    def notification_email(self) -> str:
        return self._get("FACE_NOTIFICATION_EMAIL", "")

    @property
    def client_cert_path(self) -> str:
        return self._get("FACE_CLIENT_CERT_PATH", "")

    @property
    def client_key_path(self) -> str:
        return self._get("FACE_CLIENT_KEY_PATH", "")

    @property
    def timeout(self) -> int:
        return int(self._get("FACE_TIMEOUT_SECONDS", 30))

    def endpoint_for(self, environment: FACEEnvironment | str) -> str:
        """FACE web service URL for an environment."""
        if FACEEnvironment(environment) == FACEEnvironment.PRODUCTION:
            return self._get("FACE_PRODUCTION_URL", DEFAULT_PRODUCTION_URL)
        return self._get("FACE_STAGING_URL", DEFAULT_STAGING_URL)

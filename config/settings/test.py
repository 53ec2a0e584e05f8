"""
Test settings for the FacturaE/FACE billing pipeline
Fast, isolated testing environment.
"""

from .base import *  # noqa: F403

# ===============================================================================
# TEST FLAGS
# ===============================================================================

DEBUG = False
SECRET_KEY = "facturae-test-key"  # noqa: S105

# ===============================================================================
# FACE (never reach the real gateway from tests)
# ===============================================================================

FACE_ENVIRONMENT = "staging"
FACE_STAGING_URL = "https://face.test.invalid/facturasspp2"
FACE_PRODUCTION_URL = "https://face.production.invalid/facturasspp2"
FACE_NOTIFICATION_EMAIL = "facturas@example.com"
FACE_CLIENT_CERT_PATH = ""
FACE_CLIENT_KEY_PATH = ""

# ===============================================================================
# LOGGING (Minimal for tests)
# ===============================================================================

LOGGING = {
    "version": 1,
    "disable_existing_loggers": False,
    "handlers": {
        "null": {
            "class": "logging.NullHandler",
        },
    },
    "root": {
        "handlers": ["null"],
        "level": "CRITICAL",
    },
}

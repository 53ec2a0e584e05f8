"""
Django settings for the FacturaE/FACE billing pipeline - Base Configuration
Spanish public-sector electronic invoicing.
"""

import os
from pathlib import Path

# ===============================================================================
# CORE DJANGO SETTINGS
# ===============================================================================

BASE_DIR = Path(__file__).resolve().parent.parent.parent

SECRET_KEY = os.environ.get("DJANGO_SECRET_KEY", "facturae-insecure-development-key")
DEBUG = os.environ.get("DJANGO_DEBUG", "false").lower() == "true"

DJANGO_APPS: list[str] = [
    "django.contrib.contenttypes",
]

LOCAL_APPS: list[str] = [
    "apps.billing.facturae",
]

INSTALLED_APPS = DJANGO_APPS + LOCAL_APPS

DATABASES: dict[str, dict[str, str]] = {}

# ===============================================================================
# INTERNATIONALIZATION
# ===============================================================================

LANGUAGE_CODE = "es"
TIME_ZONE = "Europe/Madrid"
USE_I18N = True
USE_TZ = True

# ===============================================================================
# FACTURAE DOCUMENT SETTINGS
# ===============================================================================

FACTURAE_CURRENCY = "EUR"
FACTURAE_LANGUAGE = "es"
FACTURAE_COUNTRY_CODE = "ESP"
FACTURAE_CERTIFICATE_EXPIRY_WARNING_DAYS = int(os.environ.get("FACTURAE_CERTIFICATE_EXPIRY_WARNING_DAYS", "30"))

# ===============================================================================
# FACE GATEWAY SETTINGS
# ===============================================================================

FACE_ENVIRONMENT = os.environ.get("FACE_ENVIRONMENT", "staging")
FACE_PRODUCTION_URL = os.environ.get("FACE_PRODUCTION_URL", "https://webservice.face.gob.es/facturasspp2")
FACE_STAGING_URL = os.environ.get("FACE_STAGING_URL", "https://se-face-pruebas.redsara.es/facturasspp2")
FACE_NOTIFICATION_EMAIL = os.environ.get("FACE_NOTIFICATION_EMAIL", "")
FACE_CLIENT_CERT_PATH = os.environ.get("FACE_CLIENT_CERT_PATH", "")
FACE_CLIENT_KEY_PATH = os.environ.get("FACE_CLIENT_KEY_PATH", "")
FACE_TIMEOUT_SECONDS = int(os.environ.get("FACE_TIMEOUT_SECONDS", "30"))

# ===============================================================================
# LOGGING
# ===============================================================================

LOGGING = {
    "version": 1,
    "disable_existing_loggers": False,
    "formatters": {
        "verbose": {
            "format": "{levelname} {asctime} {module} {process:d} {thread:d} {message}",
            "style": "{",
        },
        "simple": {
            "format": "{levelname} {message}",
            "style": "{",
        },
    },
    "handlers": {
        "console": {
            "class": "logging.StreamHandler",
            "formatter": "verbose",
        },
    },
    "root": {
        "handlers": ["console"],
        "level": "INFO",
    },
    "loggers": {
        "django": {
            "handlers": ["console"],
            "level": "INFO",
            "propagate": False,
        },
        "apps": {
            "handlers": ["console"],
            "level": os.environ.get("FACTURAE_LOG_LEVEL", "INFO"),
            "propagate": False,
        },
    },
}

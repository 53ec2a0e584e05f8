# ===============================================================================
# PYTEST CONFIGURATION FOR THE FACTURAE PIPELINE
# ===============================================================================
"""
Global test configuration.

Test Structure:
- tests/ mirrors apps/ structure for app-specific tests
- Run FacturaE tests: pytest tests/billing/facturae/
"""

import os

import django


def pytest_configure():
    """Configure Django settings for pytest"""
    os.environ.setdefault("DJANGO_SETTINGS_MODULE", "config.settings.test")

    # Configure Django
    django.setup()

"""
Django app configuration for the FacturaE app
"""

from django.apps import AppConfig


class FacturaEConfig(AppConfig):
    name = "apps.billing.facturae"
    label = "facturae"
    verbose_name = "FacturaE / FACE"

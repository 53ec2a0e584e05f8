"""
Structural validator for FacturaE documents.

This is a smoke test, not XSD validation: it confirms the document parses,
contains the mandatory top-level blocks and declares schema version 3.2.2.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field

from lxml import etree

from .constants import FACTURAE_NAMESPACE, REQUIRED_ELEMENTS, SCHEMA_VERSION

logger = logging.getLogger(__name__)


@dataclass
class ValidationResult:
    """Result of structural validation."""

    is_valid: bool
    errors: list[str] = field(default_factory=list)
    warnings: list[str] = field(default_factory=list)

    def __str__(self) -> str:
        if self.is_valid:
            return "Valid"
        return f"Invalid: {len(self.errors)} errors, {len(self.warnings)} warnings"

    def add_error(self, message: str) -> None:
        self.errors.append(message)
        self.is_valid = False

    def add_warning(self, message: str) -> None:
        self.warnings.append(message)


class FacturaEValidator:
    def validate(self, xml_content: str) -> ValidationResult:
        """
        Check a FacturaE document for its mandatory structure.

        Args:
            xml_content: Signed or unsigned FacturaE XML

        Returns:
            ValidationResult with is_valid flag and any errors/warnings
        """
        result = ValidationResult(is_valid=True)

        if not xml_content or not xml_content.strip():
            result.add_error("XML document is empty")
            return result

        try:
            doc = etree.fromstring(xml_content.encode("utf-8"))
        except etree.XMLSyntaxError as e:
            result.add_error(f"XML parsing failed: {e}")
            return result

        root = etree.QName(doc)
        if root.localname != "Facturae":
            result.add_error(f"Root element is {root.localname}, expected Facturae")
        elif root.namespace != FACTURAE_NAMESPACE:
            result.add_warning(f"Unexpected FacturaE namespace {root.namespace}")

        for name in REQUIRED_ELEMENTS:
            if self._find(doc, name) is None:
                result.add_error(f"Missing element {name}")

        version = self._find(doc, "SchemaVersion")
        if version is not None and (version.text or "").strip() != SCHEMA_VERSION:
            result.add_warning(f"Schema version is not {SCHEMA_VERSION}")

        if not result.is_valid:
            logger.warning(f"FacturaE structural validation failed: {result.errors}")
        return result

    def _find(self, doc: etree._Element, name: str) -> etree._Element | None:
        """First descendant with the given local name, in any namespace."""
        found = doc.xpath(f"//*[local-name()='{name}']")
        return found[0] if found else None

"""
FACE web service envelopes and response parsing.

FACE (Punto General de Entrada de Facturas Electrónicas) exposes a SOAP
1.1 service. Requests carry simple string parameters and the signed
invoice as base64; every response carries a ``resultado`` block with a
code (``0`` on success) and a description.

Reference:
- https://face.gob.es/es/proveedores (web service for suppliers)
"""

from __future__ import annotations

import base64
import logging
from dataclasses import dataclass

from lxml import etree

from .constants import FACE_NAMESPACE, FACE_SUCCESS_CODE, SOAP_ENVELOPE_NAMESPACE
from .exceptions import IntegrationError

logger = logging.getLogger(__name__)

NAMESPACES = {"soapenv": SOAP_ENVELOPE_NAMESPACE, "sspp": FACE_NAMESPACE}
SIGNED_INVOICE_MIME = "application/xml"


def _soapenv(tag: str) -> str:
    return f"{{{SOAP_ENVELOPE_NAMESPACE}}}{tag}"


def _sspp(tag: str) -> str:
    return f"{{{FACE_NAMESPACE}}}{tag}"


def _envelope(operation: str) -> tuple[etree._Element, etree._Element]:
    envelope = etree.Element(_soapenv("Envelope"), nsmap=NAMESPACES)
    etree.SubElement(envelope, _soapenv("Header"))
    body = etree.SubElement(envelope, _soapenv("Body"))
    return envelope, etree.SubElement(body, _sspp(operation))


def _add(parent: etree._Element, tag: str, text: str | None = None) -> etree._Element:
    elem = etree.SubElement(parent, _sspp(tag))
    if text is not None:
        elem.text = text
    return elem


def _to_bytes(envelope: etree._Element) -> bytes:
    return etree.tostring(envelope, xml_declaration=True, encoding="UTF-8")


def build_submit_envelope(signed_document: str, file_name: str, email: str = "") -> bytes:
    """``enviarFactura`` request with the signed invoice as base64."""
    envelope, operation = _envelope("enviarFactura")
    _add(operation, "correo", email)
    invoice = _add(operation, "factura")
    _add(invoice, "factura", base64.b64encode(signed_document.encode("utf-8")).decode("ascii"))
    _add(invoice, "nombre", file_name)
    _add(invoice, "mime", SIGNED_INVOICE_MIME)
    _add(operation, "anexos")
    return _to_bytes(envelope)


def build_status_envelope(registration_number: str) -> bytes:
    """``consultarEstadoFactura`` request."""
    envelope, operation = _envelope("consultarEstadoFactura")
    _add(operation, "numeroRegistro", registration_number)
    return _to_bytes(envelope)


def build_cancel_envelope(registration_number: str, reason: str) -> bytes:
    """``anularFactura`` request."""
    envelope, operation = _envelope("anularFactura")
    _add(operation, "numeroRegistro", registration_number)
    _add(operation, "motivo", reason)
    return _to_bytes(envelope)


def _parse_body(content: bytes | str) -> etree._Element:
    """Parse a SOAP response and return its Body, raising on faults."""
    if isinstance(content, str):
        content = content.encode("utf-8")
    try:
        doc = etree.fromstring(content)
    except etree.XMLSyntaxError as e:
        raise IntegrationError(f"FACE returned malformed XML: {e}") from e

    body = doc.find(_soapenv("Body"))
    if body is None:
        raise IntegrationError("FACE response has no SOAP body")

    fault = body.find(_soapenv("Fault"))
    if fault is not None:
        message = (fault.findtext("faultstring") or "").strip() or "unknown fault"
        raise IntegrationError(f"FACE SOAP fault: {message}")
    return body


def _text(parent: etree._Element | None, name: str) -> str:
    """Text of the first descendant with local name ``name``, in any namespace."""
    if parent is None:
        return ""
    found = parent.xpath(f".//*[local-name()='{name}']")
    return (found[0].text or "").strip() if found else ""


def _child(parent: etree._Element, name: str) -> etree._Element | None:
    found = parent.xpath(f".//*[local-name()='{name}']")
    return found[0] if found else None


@dataclass
class FACEResult:
    """``resultado`` block shared by every FACE response."""

    code: str
    description: str

    @property
    def is_success(self) -> bool:
        return self.code == FACE_SUCCESS_CODE

    @classmethod
    def from_body(cls, body: etree._Element) -> FACEResult:
        result = _child(body, "resultado")
        if result is None:
            raise IntegrationError("FACE response has no resultado block")
        return cls(code=_text(result, "codigo"), description=_text(result, "descripcion"))


@dataclass
class SubmitResponse:
    result: FACEResult
    registration_number: str = ""

    @property
    def is_success(self) -> bool:
        return self.result.is_success and bool(self.registration_number)

    @classmethod
    def from_xml(cls, content: bytes | str) -> SubmitResponse:
        body = _parse_body(content)
        return cls(
            result=FACEResult.from_body(body),
            registration_number=_text(_child(body, "factura"), "numeroRegistro"),
        )


@dataclass
class StatusResponse:
    """
    Result of ``consultarEstadoFactura``.

    ``state_code`` is the processing (tramitación) state; the cancellation
    (anulación) sub-state is reported separately.
    """

    result: FACEResult
    registration_number: str = ""
    state_code: str = ""
    state_description: str = ""
    state_reason: str = ""
    cancellation_code: str = ""
    cancellation_description: str = ""
    cancellation_reason: str = ""

    @property
    def is_success(self) -> bool:
        return self.result.is_success

    @classmethod
    def from_xml(cls, content: bytes | str) -> StatusResponse:
        body = _parse_body(content)
        invoice = _child(body, "factura")
        processing = _child(invoice, "tramitacion") if invoice is not None else None
        cancellation = _child(invoice, "anulacion") if invoice is not None else None
        return cls(
            result=FACEResult.from_body(body),
            registration_number=_text(invoice, "numeroRegistro"),
            state_code=_text(processing, "codigo"),
            state_description=_text(processing, "descripcion"),
            state_reason=_text(processing, "motivo"),
            cancellation_code=_text(cancellation, "codigo"),
            cancellation_description=_text(cancellation, "descripcion"),
            cancellation_reason=_text(cancellation, "motivo"),
        )


@dataclass
class CancelResponse:
    result: FACEResult
    registration_number: str = ""

    @property
    def is_success(self) -> bool:
        return self.result.is_success

    @classmethod
    def from_xml(cls, content: bytes | str) -> CancelResponse:
        body = _parse_body(content)
        return cls(
            result=FACEResult.from_body(body),
            registration_number=_text(_child(body, "factura"), "numeroRegistro"),
        )

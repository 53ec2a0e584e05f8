"""
Deterministic XML serializer for FacturaE documents.

lxml's pretty printer leaves quotes and apostrophes unescaped in text
nodes; FacturaE consumers expect all five XML entities escaped, so the tree
is written out here instead. Output is stable: two-space indentation,
attributes in insertion order, namespace declarations where first used.
"""

from __future__ import annotations

from lxml import etree

XML_DECLARATION = '<?xml version="1.0" encoding="UTF-8"?>'
INDENT = "  "

_ESCAPES = (
    ("&", "&amp;"),
    ("<", "&lt;"),
    (">", "&gt;"),
    ('"', "&quot;"),
    ("'", "&apos;"),
)


def escape(value: str) -> str:
    """Escape the five predefined XML entities. ``&`` goes first."""
    for char, entity in _ESCAPES:
        value = value.replace(char, entity)
    return value


def _qualified_name(element: etree._Element) -> str:
    local = etree.QName(element).localname
    return f"{element.prefix}:{local}" if element.prefix else local


def _namespace_declarations(element: etree._Element) -> list[str]:
    parent = element.getparent()
    inherited = parent.nsmap if parent is not None else {}
    declarations = []
    for prefix, uri in element.nsmap.items():
        if inherited.get(prefix) == uri:
            continue
        name = f"xmlns:{prefix}" if prefix else "xmlns"
        declarations.append(f'{name}="{escape(uri)}"')
    return declarations


def _attributes(element: etree._Element) -> list[str]:
    rendered = []
    for key, value in element.attrib.items():
        qname = etree.QName(key)
        name = qname.localname
        if qname.namespace:
            prefix = next((p for p, uri in element.nsmap.items() if uri == qname.namespace and p), None)
            if prefix:
                name = f"{prefix}:{name}"
        rendered.append(f'{name}="{escape(value)}"')
    return rendered


def _write(element: etree._Element, depth: int, out: list[str]) -> None:
    pad = INDENT * depth
    name = _qualified_name(element)
    attrs = " ".join(_namespace_declarations(element) + _attributes(element))
    opening = f"{name} {attrs}" if attrs else name
    children = [child for child in element if isinstance(child.tag, str)]

    if children:
        out.append(f"{pad}<{opening}>")
        for child in children:
            _write(child, depth + 1, out)
        out.append(f"{pad}</{name}>")
    elif element.text:
        out.append(f"{pad}<{opening}>{escape(element.text)}</{name}>")
    else:
        out.append(f"{pad}<{opening}/>")


def serialize(root: etree._Element) -> str:
    """Serialize an element tree to an indented XML string with declaration."""
    out = [XML_DECLARATION]
    _write(root, 0, out)
    return "\n".join(out) + "\n"

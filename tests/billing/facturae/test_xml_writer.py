"""
Tests for the deterministic XML serializer.
"""

from django.test import SimpleTestCase
from lxml import etree

from apps.billing.facturae.xml_writer import escape, serialize


class EscapeTestCase(SimpleTestCase):
    def test_escapes_all_entities(self):
        """Test the five predefined entities are escaped."""
        self.assertEqual(escape("a & b < c > d \" e ' f"), "a &amp; b &lt; c &gt; d &quot; e &apos; f")

    def test_ampersand_escaped_once(self):
        """Test entities produced by escaping are not escaped again."""
        self.assertEqual(escape("<&>"), "&lt;&amp;&gt;")


class SerializeTestCase(SimpleTestCase):
    """Test serialize output layout."""

    def test_layout(self):
        """Test declaration, indentation, inline leaves and empty elements."""
        root = etree.Element("{urn:test}Root", nsmap={"t": "urn:test"})
        parent = etree.SubElement(root, "Parent")
        etree.SubElement(parent, "Leaf").text = "value"
        etree.SubElement(parent, "Empty")

        self.assertEqual(
            serialize(root),
            '<?xml version="1.0" encoding="UTF-8"?>\n'
            '<t:Root xmlns:t="urn:test">\n'
            "  <Parent>\n"
            "    <Leaf>value</Leaf>\n"
            "    <Empty/>\n"
            "  </Parent>\n"
            "</t:Root>\n",
        )

    def test_attributes_and_nested_namespace(self):
        """Test a namespace is declared where it is first used."""
        root = etree.Element("Root")
        child = etree.SubElement(root, "{urn:ds}Signature", nsmap={"ds": "urn:ds"}, Id="Signature-1")
        etree.SubElement(child, "{urn:ds}SignatureValue").text = "abc"

        output = serialize(root)

        self.assertIn('<ds:Signature xmlns:ds="urn:ds" Id="Signature-1">', output)
        self.assertIn("    <ds:SignatureValue>abc</ds:SignatureValue>", output)
        self.assertEqual(output.count("xmlns:ds"), 1)

    def test_text_is_escaped(self):
        root = etree.Element("Root")
        etree.SubElement(root, "Name").text = "Tom & Jerry's"
        self.assertIn("<Name>Tom &amp; Jerry&apos;s</Name>", serialize(root))

    def test_round_trip_parses(self):
        root = etree.Element("Root")
        etree.SubElement(root, "Name").text = '"quoted" <tag>'
        parsed = etree.fromstring(serialize(root).encode("utf-8"))
        self.assertEqual(parsed.findtext("Name"), '"quoted" <tag>')

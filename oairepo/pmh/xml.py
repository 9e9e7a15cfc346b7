from __future__ import annotations

from typing import Any, Dict, Mapping, Optional

from lxml import etree

OAI_PMH_NAMESPACE_URI = "http://www.openarchives.org/OAI/2.0/"
OAI_PMH_SCHEMA_URI = "http://www.openarchives.org/OAI/2.0/OAI-PMH.xsd"
XML_SCHEMA_NAMESPACE_URI = "http://www.w3.org/2001/XMLSchema-instance"

XSI_SCHEMA_LOCATION = f"{{{XML_SCHEMA_NAMESPACE_URI}}}schemaLocation"


def qualify(parent: etree._Element, tag: str) -> str:
    """Put an unqualified tag in the parent's namespace, as a DOM child would be."""
    if tag.startswith("{"):
        return tag
    namespace = etree.QName(parent).namespace
    return f"{{{namespace}}}{tag}" if namespace else tag


def append_element(
    parent: etree._Element,
    tag: str,
    text: Optional[Any] = None,
    attributes: Optional[Mapping[str, Any]] = None,
    nsmap: Optional[Dict[Optional[str], str]] = None,
) -> etree._Element:
    element = etree.SubElement(parent, qualify(parent, tag), nsmap=nsmap)
    if text is not None and text != "":
        element.text = str(text)
    for name, value in (attributes or {}).items():
        if value is not None:
            element.set(name, str(value))
    return element


def append_with_children(parent: etree._Element, tag: str, children: Mapping[str, Any]) -> etree._Element:
    """Append `tag` holding one child per `name => value`; dict values nest."""
    element = append_element(parent, tag)
    for name, value in children.items():
        if isinstance(value, Mapping):
            append_with_children(element, name, value)
        else:
            append_element(element, name, value)
    return element


def new_document() -> etree._Element:
    root = etree.Element(
        f"{{{OAI_PMH_NAMESPACE_URI}}}OAI-PMH",
        nsmap={None: OAI_PMH_NAMESPACE_URI, "xsi": XML_SCHEMA_NAMESPACE_URI},
    )
    root.set(XSI_SCHEMA_LOCATION, f"{OAI_PMH_NAMESPACE_URI} {OAI_PMH_SCHEMA_URI}")
    return root


def serialize(root: etree._Element, stylesheet: Optional[str] = None) -> bytes:
    if stylesheet:
        root.addprevious(etree.ProcessingInstruction("xml-stylesheet", f'type="text/xsl" href="{stylesheet}"'))
    return etree.tostring(
        root.getroottree(),
        xml_declaration=True,
        encoding="UTF-8",
        pretty_print=True,
        standalone=True,
    )

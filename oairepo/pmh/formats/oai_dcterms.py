"""oai_dcterms: the 55 Dublin Core terms.

Not a standardized format; its namespace and schema do not resolve. It is
an extended oai_dc used by some aggregators.
"""
from __future__ import annotations

from lxml import etree

from oairepo.pmh.formats.base import (
    MetadataFormatDescriptor,
    RenderContext,
    append_extra_identifiers,
    value_attributes,
)
from oairepo.pmh.xml import XML_SCHEMA_NAMESPACE_URI, XSI_SCHEMA_LOCATION, append_element
from oairepo.store.records import Record

METADATA_PREFIX = "oai_dcterms"
METADATA_NAMESPACE = "http://www.openarchives.org/OAI/2.0/oai_dcterms/"
METADATA_SCHEMA = "http://www.openarchives.org/OAI/2.0/oai_dcterms.xsd"
DC_NAMESPACE_URI = "http://purl.org/dc/elements/1.1/"
DCTERMS_NAMESPACE_URI = "http://purl.org/dc/terms/"

DC_TERMS = [
    "dc:title",
    "dc:creator",
    "dc:subject",
    "dc:description",
    "dc:publisher",
    "dc:contributor",
    "dc:date",
    "dc:type",
    "dc:format",
    "dc:identifier",
    "dc:source",
    "dc:language",
    "dc:relation",
    "dc:coverage",
    "dc:rights",
    "dcterms:abstract",
    "dcterms:accessRights",
    "dcterms:accrualMethod",
    "dcterms:accrualPeriodicity",
    "dcterms:accrualPolicy",
    "dcterms:alternative",
    "dcterms:audience",
    "dcterms:available",
    "dcterms:bibliographicCitation",
    "dcterms:conformsTo",
    "dcterms:created",
    "dcterms:dateAccepted",
    "dcterms:dateCopyrighted",
    "dcterms:dateSubmitted",
    "dcterms:educationLevel",
    "dcterms:extent",
    "dcterms:hasFormat",
    "dcterms:hasPart",
    "dcterms:hasVersion",
    "dcterms:instructionalMethod",
    "dcterms:isFormatOf",
    "dcterms:isPartOf",
    "dcterms:isReferencedBy",
    "dcterms:isReplacedBy",
    "dcterms:isRequiredBy",
    "dcterms:issued",
    "dcterms:isVersionOf",
    "dcterms:license",
    "dcterms:mediator",
    "dcterms:medium",
    "dcterms:modified",
    "dcterms:provenance",
    "dcterms:references",
    "dcterms:replaces",
    "dcterms:requires",
    "dcterms:rightsHolder",
    "dcterms:spatial",
    "dcterms:tableOfContents",
    "dcterms:temporal",
    "dcterms:valid",
]

_NAMESPACES = {"dc": DC_NAMESPACE_URI, "dcterms": DCTERMS_NAMESPACE_URI}


def write_oai_dcterms(parent: etree._Element, record: Record, context: RenderContext) -> None:
    root = append_element(
        parent,
        f"{{{METADATA_NAMESPACE}}}dcterms",
        nsmap={
            "oai_dcterms": METADATA_NAMESPACE,
            "dc": DC_NAMESPACE_URI,
            "dcterms": DCTERMS_NAMESPACE_URI,
            "xsi": XML_SCHEMA_NAMESPACE_URI,
        },
    )
    root.set(XSI_SCHEMA_LOCATION, f"{METADATA_NAMESPACE} {METADATA_SCHEMA}")

    for output_term in DC_TERMS:
        prefix, local = output_term.split(":")
        tag = f"{{{_NAMESPACES[prefix]}}}{local}"
        for value in record.all_values(f"dcterms:{local}"):
            append_element(root, tag, value.text, value_attributes(value))

    append_extra_identifiers(root, f"{{{DC_NAMESPACE_URI}}}identifier", record, context)


OAI_DCTERMS = MetadataFormatDescriptor(
    prefix=METADATA_PREFIX,
    schema=METADATA_SCHEMA,
    namespace=METADATA_NAMESPACE,
    write=write_oai_dcterms,
)

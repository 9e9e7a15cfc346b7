"""oai_dc: the 15 unqualified Dublin Core elements, required by the protocol."""
from __future__ import annotations

from typing import Dict, List

from lxml import etree

from oairepo.pmh.formats.base import MetadataFormatDescriptor, RenderContext, append_extra_identifiers
from oairepo.pmh.xml import XML_SCHEMA_NAMESPACE_URI, XSI_SCHEMA_LOCATION, append_element
from oairepo.store.records import Record, Value

METADATA_PREFIX = "oai_dc"
METADATA_NAMESPACE = "http://www.openarchives.org/OAI/2.0/oai_dc/"
METADATA_SCHEMA = "http://www.openarchives.org/OAI/2.0/oai_dc.xsd"
DC_NAMESPACE_URI = "http://purl.org/dc/elements/1.1/"

# Order required by the oai_dc schema.
DC_ELEMENTS = [
    "title",
    "creator",
    "subject",
    "description",
    "publisher",
    "contributor",
    "date",
    "type",
    "format",
    "identifier",
    "source",
    "language",
    "relation",
    "coverage",
    "rights",
]

# DCMI refinements exposed under their generic element when folding is on.
DC_REFINEMENTS: Dict[str, List[str]] = {
    "dcterms:title": ["dcterms:alternative"],
    "dcterms:description": ["dcterms:tableOfContents", "dcterms:abstract"],
    "dcterms:date": [
        "dcterms:created",
        "dcterms:valid",
        "dcterms:available",
        "dcterms:issued",
        "dcterms:modified",
        "dcterms:dateAccepted",
        "dcterms:dateCopyrighted",
        "dcterms:dateSubmitted",
    ],
    "dcterms:format": ["dcterms:extent", "dcterms:medium"],
    "dcterms:identifier": ["dcterms:bibliographicCitation"],
    "dcterms:relation": [
        "dcterms:isVersionOf",
        "dcterms:hasVersion",
        "dcterms:isReplacedBy",
        "dcterms:replaces",
        "dcterms:isRequiredBy",
        "dcterms:requires",
        "dcterms:isPartOf",
        "dcterms:hasPart",
        "dcterms:isReferencedBy",
        "dcterms:references",
        "dcterms:isFormatOf",
        "dcterms:hasFormat",
        "dcterms:conformsTo",
    ],
    "dcterms:coverage": ["dcterms:spatial", "dcterms:temporal"],
    "dcterms:rights": ["dcterms:accessRights", "dcterms:license"],
}


def generic_values(record: Record, term: str, fold_refinements: bool) -> List[Value]:
    values = record.all_values(term)
    if fold_refinements:
        for refinement in DC_REFINEMENTS.get(term, []):
            values.extend(record.all_values(refinement))
    return values


def write_oai_dc(parent: etree._Element, record: Record, context: RenderContext) -> None:
    dc = append_element(
        parent,
        f"{{{METADATA_NAMESPACE}}}dc",
        nsmap={"oai_dc": METADATA_NAMESPACE, "dc": DC_NAMESPACE_URI, "xsi": XML_SCHEMA_NAMESPACE_URI},
    )
    dc.set(XSI_SCHEMA_LOCATION, f"{METADATA_NAMESPACE} {METADATA_SCHEMA}")

    for name in DC_ELEMENTS:
        for value in generic_values(record, f"dcterms:{name}", context.generic_dc_refinements):
            append_element(dc, f"{{{DC_NAMESPACE_URI}}}{name}", value.text)

    append_extra_identifiers(dc, f"{{{DC_NAMESPACE_URI}}}identifier", record, context)


OAI_DC = MetadataFormatDescriptor(
    prefix=METADATA_PREFIX,
    schema=METADATA_SCHEMA,
    namespace=METADATA_NAMESPACE,
    write=write_oai_dc,
)

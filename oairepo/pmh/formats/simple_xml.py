"""simple_xml: every value of the record, under its own vocabulary namespace.

Not standardized: the namespace and schema do not resolve, so no
schemaLocation is emitted.
"""
from __future__ import annotations

import logging

from lxml import etree

from oairepo.pmh.formats.base import (
    MetadataFormatDescriptor,
    RenderContext,
    single_identifier,
    value_attributes,
)
from oairepo.pmh.xml import XML_SCHEMA_NAMESPACE_URI, append_element
from oairepo.store.records import Record

logger = logging.getLogger(__name__)

METADATA_PREFIX = "simple_xml"
METADATA_NAMESPACE = "http://www.openarchives.org/OAI/2.0/simple_xml/"
METADATA_SCHEMA = "http://www.openarchives.org/OAI/2.0/simple_xml.xsd"

VOCABULARIES = {
    "dcterms": "http://purl.org/dc/terms/",
    "dctype": "http://purl.org/dc/dcmitype/",
    "bibo": "http://purl.org/ontology/bibo/",
    "foaf": "http://xmlns.com/foaf/0.1/",
    "schema": "http://schema.org/",
}


def write_simple_xml(parent: etree._Element, record: Record, context: RenderContext) -> None:
    used = {"dcterms", "dctype"}
    for term in record.values:
        prefix = term.partition(":")[0]
        if prefix in VOCABULARIES:
            used.add(prefix)
    nsmap = {None: METADATA_NAMESPACE, "xsi": XML_SCHEMA_NAMESPACE_URI}
    nsmap.update({prefix: VOCABULARIES[prefix] for prefix in sorted(used)})

    root = append_element(parent, f"{{{METADATA_NAMESPACE}}}simple_xml", nsmap=nsmap)
    attributes = {
        "resource_class": record.resource_class,
        "created": record.created.isoformat(),
        "modified": record.modified.isoformat() if record.modified else None,
        "title": record.title,
    }
    for name, value in attributes.items():
        if value is not None:
            root.set(name, value)

    for term, values in record.values.items():
        prefix, _, local = term.partition(":")
        if prefix not in VOCABULARIES or not local:
            logger.debug("Skipping term without known vocabulary", extra={"term": term})
            continue
        for value in values:
            append_element(root, f"{{{VOCABULARIES[prefix]}}}{local}", value.text, value_attributes(value))

    identifier = single_identifier(record, context)
    if identifier:
        append_element(
            root,
            f"{{{VOCABULARIES['dcterms']}}}identifier",
            identifier,
            {f"{{{XML_SCHEMA_NAMESPACE_URI}}}type": "dcterms:URI"},
        )
    if context.expose_media:
        for url in record.media:
            append_element(
                root,
                f"{{{VOCABULARIES['dcterms']}}}hasPart",
                url,
                {f"{{{XML_SCHEMA_NAMESPACE_URI}}}type": "dcterms:URI"},
            )


SIMPLE_XML = MetadataFormatDescriptor(
    prefix=METADATA_PREFIX,
    schema=METADATA_SCHEMA,
    namespace=METADATA_NAMESPACE,
    write=write_simple_xml,
)

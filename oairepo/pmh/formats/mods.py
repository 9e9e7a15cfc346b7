"""MODS output, following the Library of Congress DC-simple to MODS mapping.

See http://www.loc.gov/standards/mods/dcsimple-mods.html
"""
from __future__ import annotations

from lxml import etree

from oairepo.pmh.formats.base import MetadataFormatDescriptor, RenderContext, single_identifier
from oairepo.pmh.xml import XML_SCHEMA_NAMESPACE_URI, XSI_SCHEMA_LOCATION, append_element
from oairepo.store.records import Record

METADATA_PREFIX = "mods"
METADATA_NAMESPACE = "http://www.loc.gov/mods/v3"
METADATA_SCHEMA = "http://www.loc.gov/standards/mods/v3/mods-3-3.xsd"


def _is_url(text: str) -> bool:
    return text.startswith(("http://", "https://"))


def _append_name(mods: etree._Element, name: str, role: str) -> None:
    element = append_element(mods, "name")
    append_element(element, "namePart", name)
    role_element = append_element(element, "role")
    append_element(role_element, "roleTerm", role, {"type": "text"})


def _append_related_item(mods: etree._Element, text: str, original: bool = False) -> None:
    related = append_element(mods, "relatedItem", attributes={"type": "original"} if original else None)
    if _is_url(text):
        location = append_element(related, "location")
        append_element(location, "url", text)
    else:
        title_info = append_element(related, "titleInfo")
        append_element(title_info, "title", text)


def write_mods(parent: etree._Element, record: Record, context: RenderContext) -> None:
    mods = append_element(
        parent,
        f"{{{METADATA_NAMESPACE}}}mods",
        nsmap={None: METADATA_NAMESPACE, "xsi": XML_SCHEMA_NAMESPACE_URI},
    )
    mods.set(XSI_SCHEMA_LOCATION, f"{METADATA_NAMESPACE} {METADATA_SCHEMA}")

    for title in record.all_values("dcterms:title"):
        title_info = append_element(mods, "titleInfo")
        append_element(title_info, "title", title.text)

    for creator in record.all_values("dcterms:creator"):
        _append_name(mods, creator.text, "creator")
    for contributor in record.all_values("dcterms:contributor"):
        _append_name(mods, contributor.text, "contributor")

    for subject in record.all_values("dcterms:subject"):
        subject_element = append_element(mods, "subject")
        append_element(subject_element, "topic", subject.text)

    for description in record.all_values("dcterms:description"):
        append_element(mods, "note", description.text)

    for fmt in record.all_values("dcterms:format"):
        physical = append_element(mods, "physicalDescription")
        append_element(physical, "form", fmt.text)

    for language in record.all_values("dcterms:language"):
        language_element = append_element(mods, "language")
        append_element(language_element, "languageTerm", language.text, {"type": "text"})

    for rights in record.all_values("dcterms:rights"):
        append_element(mods, "accessCondition", rights.text)

    for genre in record.all_values("dcterms:type"):
        append_element(mods, "genre", genre.text)

    for identifier in record.all_values("dcterms:identifier"):
        append_element(mods, "identifier", identifier.text, {"type": "uri" if _is_url(identifier.text) else "local"})

    for source in record.all_values("dcterms:source"):
        _append_related_item(mods, source.text, original=True)
    for relation in record.all_values("dcterms:relation"):
        _append_related_item(mods, relation.text)

    url = single_identifier(record, context)
    if url or (context.expose_media and record.media):
        location = append_element(mods, "location")
        if url:
            append_element(location, "url", url, {"usage": "primary display"})
        if context.expose_media:
            for media_url in record.media:
                append_element(location, "url", media_url)

    publishers = record.all_values("dcterms:publisher")
    dates = record.all_values("dcterms:date")
    # An empty originInfo is invalid MODS.
    if publishers or dates:
        origin = append_element(mods, "originInfo")
        for publisher in publishers:
            append_element(origin, "publisher", publisher.text)
        for date in dates:
            append_element(origin, "dateOther", date.text)

    record_info = append_element(mods, "recordInfo")
    append_element(record_info, "recordIdentifier", context.codec.local_key(record))


MODS = MetadataFormatDescriptor(
    prefix=METADATA_PREFIX,
    schema=METADATA_SCHEMA,
    namespace=METADATA_NAMESPACE,
    write=write_mods,
)

"""Renderer plumbing shared by every metadata format.

A format is described by a `MetadataFormatDescriptor`: its prefix, schema,
namespace and the function writing the metadata payload. A `Renderer` binds
a descriptor to the runtime parameters of one repository and adds the parts
common to every format (declaration, header, record wrapper).
"""
from __future__ import annotations

from dataclasses import dataclass
from typing import Callable, Dict, Optional

from lxml import etree

from oairepo.pmh.dates import to_utc_string
from oairepo.pmh.identifier import IdentifierCodec
from oairepo.pmh.sets import SetProvider
from oairepo.pmh.xml import append_element, append_with_children
from oairepo.store.records import Record, Value


@dataclass(frozen=True)
class RenderContext:
    codec: IdentifierCodec
    set_provider: SetProvider
    is_global: bool = True
    site_slug: Optional[str] = None
    default_site: Optional[str] = None
    server_url: str = ""
    append_identifier: str = "none"
    expose_media: bool = False
    generic_dc_refinements: bool = False


MetadataWriter = Callable[[etree._Element, Record, RenderContext], None]


@dataclass(frozen=True)
class MetadataFormatDescriptor:
    prefix: str
    schema: str
    namespace: str
    write: MetadataWriter


class Renderer:
    def __init__(self, descriptor: MetadataFormatDescriptor, context: RenderContext):
        self.descriptor = descriptor
        self.context = context

    @property
    def prefix(self) -> str:
        return self.descriptor.prefix

    def declare(self, parent: etree._Element) -> etree._Element:
        return append_with_children(
            parent,
            "metadataFormat",
            {
                "metadataPrefix": self.descriptor.prefix,
                "schema": self.descriptor.schema,
                "metadataNamespace": self.descriptor.namespace,
            },
        )

    def render_header(self, parent: etree._Element, record: Record) -> etree._Element:
        header = append_with_children(
            parent,
            "header",
            {
                "identifier": self.context.codec.to_oai_id(record),
                "datestamp": to_utc_string(record.datestamp),
            },
        )
        for spec in self.context.set_provider.specs_for(record):
            append_element(header, "setSpec", spec)
        return header

    def render_record(
        self, parent: etree._Element, record: Record, payload: Optional[Record] = None
    ) -> etree._Element:
        """Render `record`. The header always comes from `record`; the metadata from `payload` when given."""
        element = append_element(parent, "record")
        self.render_header(element, record)
        metadata = append_element(element, "metadata")
        self.descriptor.write(metadata, payload if payload is not None else record, self.context)
        return element


def single_identifier(record: Record, context: RenderContext) -> Optional[str]:
    """The record URL appended as an extra identifier, per the configured mode."""
    mode = context.append_identifier
    if mode == "api_url":
        return record.api_url
    if mode not in ("relative_site_url", "absolute_site_url"):
        return None
    site = context.default_site if context.is_global else context.site_slug
    path = record.site_urls.get(site) if site else None
    if not path:
        return None
    if mode == "absolute_site_url" and not path.startswith(("http://", "https://")):
        return context.server_url.rstrip("/") + "/" + path.lstrip("/")
    return path


def append_extra_identifiers(parent: etree._Element, tag: str, record: Record, context: RenderContext) -> None:
    identifier = single_identifier(record, context)
    if identifier:
        append_element(parent, tag, identifier)
    if context.expose_media:
        for url in record.media:
            append_element(parent, tag, url)


XML_LANG = "{http://www.w3.org/XML/1998/namespace}lang"
XSI_TYPE = "{http://www.w3.org/2001/XMLSchema-instance}type"


def value_attributes(value: Value) -> Dict[str, str]:
    attributes = {}
    if value.language:
        attributes[XML_LANG] = value.language
    if value.is_uri:
        attributes[XSI_TYPE] = "dcterms:URI"
    return attributes

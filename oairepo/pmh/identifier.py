"""OAI identifiers of the form ``oai:<namespace>:<localKey>``.

The codec converts between those strings and the local record key. Its
namespace comes from an explicit `IdentifierContext` built once from the
settings, so two repositories in one process can use different namespaces.
"""
from __future__ import annotations

import re
from dataclasses import dataclass
from typing import Optional, Union

from lxml import etree

from oairepo.pmh.xml import XML_SCHEMA_NAMESPACE_URI, XSI_SCHEMA_LOCATION, append_element
from oairepo.store.records import Record, RecordSource

OAI_IDENTIFIER_NAMESPACE_URI = "http://www.openarchives.org/OAI/2.0/oai-identifier"
OAI_IDENTIFIER_SCHEMA_URI = "http://www.openarchives.org/OAI/2.0/oai-identifier.xsd"

DEFAULT_NAMESPACE_ID = "default.must.change"
SCHEME = "oai"
DELIMITER = ":"


def sanitize_namespace(raw: Optional[str]) -> str:
    name = re.sub(r"[^a-zA-Z0-9.\-]", "", raw or "")
    if not name or name == "localhost":
        return DEFAULT_NAMESPACE_ID
    return name


@dataclass(frozen=True)
class IdentifierContext:
    namespace_id: str
    identifier_property: Optional[str] = None

    @classmethod
    def create(cls, namespace_id: Optional[str], identifier_property: Optional[str] = None) -> "IdentifierContext":
        return cls(namespace_id=sanitize_namespace(namespace_id), identifier_property=identifier_property or None)


class IdentifierCodec:
    def __init__(self, context: IdentifierContext):
        self.context = context

    def local_key(self, record: Record) -> str:
        prop = self.context.identifier_property
        if prop:
            value = record.value(prop)
            if value is not None and value.text.strip():
                return value.text.strip()
        return record.key

    def to_oai_id(self, record_or_key: Union[Record, str, int]) -> str:
        if isinstance(record_or_key, Record):
            local = self.local_key(record_or_key)
        else:
            local = str(record_or_key)
        return f"{SCHEME}{DELIMITER}{self.context.namespace_id}{DELIMITER}{local}"

    def to_local_key(self, oai_id: Optional[str]) -> Optional[str]:
        """Return the local key of `oai_id`, or None when it is not one of ours."""
        if not oai_id:
            return None
        parts = oai_id.split(DELIMITER, 2)
        if len(parts) != 3:
            return None
        scheme, namespace_id, local = parts
        if scheme != SCHEME or namespace_id != self.context.namespace_id or not local:
            return None
        return local

    def find_record(self, source: RecordSource, oai_id: Optional[str]) -> Optional[Record]:
        local = self.to_local_key(oai_id)
        if local is None:
            return None
        prop = self.context.identifier_property
        if prop:
            record = source.find_by_property(prop, local)
            if record is not None:
                return record
        return source.find_by_id(local)

    def describe(self, parent: etree._Element) -> etree._Element:
        block = append_element(
            parent,
            f"{{{OAI_IDENTIFIER_NAMESPACE_URI}}}oai-identifier",
            nsmap={None: OAI_IDENTIFIER_NAMESPACE_URI, "xsi": XML_SCHEMA_NAMESPACE_URI},
        )
        block.set(XSI_SCHEMA_LOCATION, f"{OAI_IDENTIFIER_NAMESPACE_URI} {OAI_IDENTIFIER_SCHEMA_URI}")
        append_element(block, "scheme", SCHEME)
        append_element(block, "repositoryIdentifier", self.context.namespace_id)
        append_element(block, "delimiter", DELIMITER)
        append_element(block, "sampleIdentifier", self.to_oai_id(1))
        return block

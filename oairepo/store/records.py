"""Record source consumed by the protocol engine.

The engine only needs point lookups, a filtered and paged enumeration in a
stable order, and the grouping entities (collections and sites) behind the
set taxonomies. `MemoryRecordSource` implements that contract over records
loaded from a YAML or JSON file.
"""
from __future__ import annotations

import logging
from dataclasses import dataclass, field
from datetime import date, datetime
from pathlib import Path
from typing import Any, Dict, Iterable, List, Optional, Protocol, Sequence, Tuple

import yaml

from oairepo.pmh.dates import as_utc

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class Value:
    text: str
    language: Optional[str] = None
    is_uri: bool = False

    def __str__(self) -> str:
        return self.text


@dataclass
class Record:
    key: str
    created: datetime
    modified: Optional[datetime] = None
    values: Dict[str, List[Value]] = field(default_factory=dict)
    collections: List[str] = field(default_factory=list)
    sites: List[str] = field(default_factory=list)
    public: bool = True
    media: List[str] = field(default_factory=list)
    api_url: Optional[str] = None
    site_urls: Dict[str, str] = field(default_factory=dict)
    resource_class: Optional[str] = None

    @property
    def datestamp(self) -> datetime:
        """Modification time, or creation time for never-modified records, to the second."""
        return as_utc(self.modified or self.created).replace(microsecond=0)

    def value(self, term: str) -> Optional[Value]:
        found = self.values.get(term) or []
        return found[0] if found else None

    def all_values(self, term: str) -> List[Value]:
        return list(self.values.get(term) or [])

    @property
    def title(self) -> Optional[str]:
        title = self.value("dcterms:title")
        return title.text if title else None


@dataclass(frozen=True)
class Collection:
    id: str
    title: str
    description: Optional[str] = None


@dataclass(frozen=True)
class Site:
    slug: str
    title: str
    collections: Tuple[str, ...] = ()


@dataclass(frozen=True)
class RecordFilter:
    site: Optional[str] = None
    collection: Optional[str] = None
    properties: Tuple[Tuple[str, str], ...] = ()
    date_from: Optional[datetime] = None
    date_until: Optional[datetime] = None

    def matches(self, record: Record) -> bool:
        if self.site is not None and self.site not in record.sites:
            return False
        if self.collection is not None and self.collection not in record.collections:
            return False
        for term, expected in self.properties:
            if expected not in (v.text for v in record.all_values(term)):
                return False
        stamp = record.datestamp
        if self.date_from is not None and stamp < self.date_from:
            return False
        if self.date_until is not None and stamp > self.date_until:
            return False
        return True


class RecordSource(Protocol):
    def find_by_id(self, key: str) -> Optional[Record]:
        ...

    def find_by_property(self, term: str, value: str) -> Optional[Record]:
        ...

    def query(self, record_filter: RecordFilter, offset: int, limit: int) -> Tuple[List[Record], int]:
        ...

    def collections(self) -> List[Collection]:
        ...

    def sites(self) -> List[Site]:
        ...


def _sort_key(key: str) -> Tuple[int, Any]:
    return (0, int(key)) if key.isdigit() else (1, key)


class MemoryRecordSource:
    """Publishable records held in memory, ordered by primary key."""

    def __init__(
        self,
        records: Iterable[Record] = (),
        collections: Iterable[Collection] = (),
        sites: Iterable[Site] = (),
    ):
        self._records: Dict[str, Record] = {}
        self._ordered: List[Record] = []
        for record in records:
            self.add(record)
        self._collections = list(collections)
        self._sites = list(sites)

    def add(self, record: Record) -> None:
        self._records[record.key] = record
        self._ordered = sorted(self._records.values(), key=lambda r: _sort_key(r.key))

    def find_by_id(self, key: str) -> Optional[Record]:
        record = self._records.get(str(key))
        if record is None or not record.public:
            return None
        return record

    def find_by_property(self, term: str, value: str) -> Optional[Record]:
        for record in self._ordered:
            first = record.value(term)
            if record.public and first is not None and first.text.strip() == value:
                return record
        return None

    def query(self, record_filter: RecordFilter, offset: int, limit: int) -> Tuple[List[Record], int]:
        matching = [r for r in self._ordered if r.public and record_filter.matches(r)]
        return matching[offset : offset + limit], len(matching)

    def collections(self) -> List[Collection]:
        return list(self._collections)

    def sites(self) -> List[Site]:
        return list(self._sites)

    @classmethod
    def from_file(cls, path: Path) -> "MemoryRecordSource":
        with open(path, "r", encoding="utf-8") as f:
            data = yaml.safe_load(f) or {}
        source = cls.from_dict(data)
        logger.info("Loaded records", extra={"records_file": str(path), "count": len(source._records)})
        return source

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "MemoryRecordSource":
        collections = [
            Collection(id=str(c["id"]), title=c.get("title") or str(c["id"]), description=c.get("description"))
            for c in data.get("collections") or []
        ]
        sites = [
            Site(slug=s["slug"], title=s.get("title") or s["slug"], collections=tuple(str(c) for c in s.get("collections") or []))
            for s in data.get("sites") or []
        ]
        records = [_record_from_dict(r) for r in data.get("records") or []]
        return cls(records, collections, sites)


def _coerce_datetime(raw: Any) -> Optional[datetime]:
    if raw is None or raw == "":
        return None
    if isinstance(raw, datetime):
        return as_utc(raw)
    if isinstance(raw, date):
        return as_utc(datetime(raw.year, raw.month, raw.day))
    text = str(raw).strip()
    if text.endswith("Z"):
        text = text[:-1] + "+00:00"
    return as_utc(datetime.fromisoformat(text))


def _coerce_values(raw: Sequence[Any]) -> List[Value]:
    out: List[Value] = []
    for item in raw:
        if isinstance(item, dict):
            if "@id" in item:
                out.append(Value(text=str(item["@id"]), is_uri=True))
            else:
                out.append(Value(text=str(item.get("@value", "")), language=item.get("@language")))
        else:
            out.append(Value(text=str(item)))
    return out


def _record_from_dict(raw: Dict[str, Any]) -> Record:
    values = {}
    for term, items in (raw.get("values") or {}).items():
        values[term] = _coerce_values(items if isinstance(items, list) else [items])
    return Record(
        key=str(raw["id"]),
        created=_coerce_datetime(raw["created"]),
        modified=_coerce_datetime(raw.get("modified")),
        values=values,
        collections=[str(c) for c in raw.get("collections") or []],
        sites=list(raw.get("sites") or []),
        public=bool(raw.get("public", True)),
        media=list(raw.get("media") or []),
        api_url=raw.get("api_url"),
        site_urls=dict(raw.get("site_urls") or {}),
        resource_class=raw.get("resource_class"),
    )

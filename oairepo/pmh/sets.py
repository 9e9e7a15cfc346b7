"""Set taxonomies.

One provider is active per repository. It enumerates the sets, maps a
record to the set specs it belongs to, and resolves a set spec back to the
constraint used to filter list requests.
"""
from __future__ import annotations

import dataclasses
from dataclasses import dataclass
from typing import Callable, Dict, List, Optional, Protocol, Sequence, Tuple

from oairepo.config import SavedQuery
from oairepo.pmh.errors import ConfigError
from oairepo.pmh.xml import append_with_children
from oairepo.store.records import Record, RecordFilter, RecordSource, Site


NO_SETS = "none"


@dataclass(frozen=True)
class OaiSet:
    spec: str
    name: str
    description: Optional[str] = None

    def append_to(self, parent) -> None:
        elements = {"setSpec": self.spec, "setName": self.name}
        if self.description:
            elements["setDescription"] = self.description
        append_with_children(parent, "set", elements)


@dataclass(frozen=True)
class SetHandle:
    spec: str
    collection: Optional[str] = None
    site: Optional[str] = None
    properties: Tuple[Tuple[str, str], ...] = ()

    def narrow(self, record_filter: RecordFilter) -> RecordFilter:
        changes = {}
        if self.collection is not None:
            changes["collection"] = self.collection
        if self.site is not None:
            changes["site"] = self.site
        if self.properties:
            changes["properties"] = record_filter.properties + self.properties
        return dataclasses.replace(record_filter, **changes)


class SetProvider(Protocol):
    taxonomy: str

    def list_all(self) -> List[OaiSet]:
        ...

    def specs_for(self, record: Record) -> List[str]:
        ...

    def resolve(self, spec: str) -> Optional[SetHandle]:
        ...


class NoSetProvider:
    taxonomy = NO_SETS

    def list_all(self) -> List[OaiSet]:
        return []

    def specs_for(self, record: Record) -> List[str]:
        return []

    def resolve(self, spec: str) -> Optional[SetHandle]:
        return None


class CollectionSetProvider:
    """One set per collection; a site-scoped repository only sees the site's collections."""

    taxonomy = "collection"

    def __init__(self, source: RecordSource, site: Optional[Site] = None, hide_empty: bool = True):
        self.source = source
        self.site = site
        self.hide_empty = hide_empty

    def _collections(self):
        collections = self.source.collections()
        if self.site is not None:
            allowed = set(self.site.collections)
            collections = [c for c in collections if c.id in allowed]
        return collections

    def _is_empty(self, collection_id: str) -> bool:
        scope = self.site.slug if self.site is not None else None
        _, total = self.source.query(RecordFilter(site=scope, collection=collection_id), 0, 0)
        return total == 0

    def list_all(self) -> List[OaiSet]:
        sets = []
        for collection in self._collections():
            if self.hide_empty and self._is_empty(collection.id):
                continue
            sets.append(OaiSet(spec=collection.id, name=collection.title, description=collection.description))
        return sets

    def specs_for(self, record: Record) -> List[str]:
        if self.site is None:
            return list(record.collections)
        allowed = set(self.site.collections)
        return [c for c in record.collections if c in allowed]

    def resolve(self, spec: str) -> Optional[SetHandle]:
        if any(c.id == spec for c in self._collections()):
            return SetHandle(spec=spec, collection=spec)
        return None


class SiteSetProvider:
    """One set per site, keyed by slug. Only meaningful for the global repository."""

    taxonomy = "site"

    def __init__(self, source: RecordSource):
        self.source = source

    def list_all(self) -> List[OaiSet]:
        return [OaiSet(spec=site.slug, name=site.title) for site in self.source.sites()]

    def specs_for(self, record: Record) -> List[str]:
        known = {site.slug for site in self.source.sites()}
        return [slug for slug in record.sites if slug in known]

    def resolve(self, spec: str) -> Optional[SetHandle]:
        if any(site.slug == spec for site in self.source.sites()):
            return SetHandle(spec=spec, site=spec)
        return None


class QuerySetProvider:
    """Sets defined by saved property queries."""

    taxonomy = "query"

    def __init__(self, queries: Sequence[SavedQuery]):
        self.queries = {q.spec: q for q in queries}

    @staticmethod
    def _constraint(query: SavedQuery) -> Tuple[Tuple[str, str], ...]:
        return tuple(sorted(query.properties.items()))

    def list_all(self) -> List[OaiSet]:
        return [OaiSet(spec=q.spec, name=q.name, description=q.description) for q in self.queries.values()]

    def specs_for(self, record: Record) -> List[str]:
        return [
            spec
            for spec, query in self.queries.items()
            if RecordFilter(properties=self._constraint(query)).matches(record)
        ]

    def resolve(self, spec: str) -> Optional[SetHandle]:
        query = self.queries.get(spec)
        if query is None:
            return None
        return SetHandle(spec=spec, properties=self._constraint(query))


@dataclass(frozen=True)
class SetProviderContext:
    source: RecordSource
    site: Optional[Site] = None
    hide_empty_sets: bool = True
    saved_queries: Tuple[SavedQuery, ...] = ()


SetProviderFactory = Callable[[SetProviderContext], SetProvider]


class SetProviderRegistry:
    def __init__(self, factories: Optional[Dict[str, SetProviderFactory]] = None):
        self._factories: Dict[str, SetProviderFactory] = dict(factories or {})

    def register(self, taxonomy: str, factory: SetProviderFactory) -> None:
        self._factories[taxonomy] = factory

    def names(self) -> List[str]:
        return list(self._factories)

    def create(self, taxonomy: str, context: SetProviderContext) -> SetProvider:
        try:
            factory = self._factories[taxonomy]
        except KeyError:
            raise ConfigError(f"Unknown set taxonomy '{taxonomy}'") from None
        return factory(context)


def default_set_providers() -> SetProviderRegistry:
    return SetProviderRegistry(
        {
            NO_SETS: lambda ctx: NoSetProvider(),
            "collection": lambda ctx: CollectionSetProvider(ctx.source, ctx.site, ctx.hide_empty_sets),
            "site": lambda ctx: SiteSetProvider(ctx.source),
            "query": lambda ctx: QuerySetProvider(ctx.saved_queries),
        }
    )

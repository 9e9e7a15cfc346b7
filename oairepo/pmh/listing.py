"""Flow-controlled ListIdentifiers / ListRecords responses.

Both verbs run the same filtered query and differ only in rendering a bare
header or a full record per row. Pages are cut at `list_limit` rows; a
resumption token carries the next cursor and the original filter so the
next page reruns the same query from a later offset.
"""
from __future__ import annotations

import dataclasses
import logging
from dataclasses import dataclass
from typing import Callable, Optional, Sequence

from lxml import etree

from oairepo.pmh.dates import parse_lower_bound, parse_upper_bound, to_utc_string
from oairepo.pmh.errors import OaiError, OaiErrorCode
from oairepo.pmh.formats.base import Renderer
from oairepo.pmh.sets import NO_SETS, SetProvider
from oairepo.pmh.transforms import ValueTransform, apply_transforms
from oairepo.pmh.xml import OAI_PMH_NAMESPACE_URI, append_element
from oairepo.store.records import RecordFilter, RecordSource
from oairepo.store.tokens import ResumptionToken, ResumptionTokenStore

logger = logging.getLogger(__name__)

LIST_VERBS = ("ListIdentifiers", "ListRecords")


@dataclass(frozen=True)
class ListPage:
    element: etree._Element
    total: int
    emitted: int
    next_token: Optional[ResumptionToken] = None


class ListResponseBuilder:
    def __init__(
        self,
        source: RecordSource,
        tokens: ResumptionTokenStore,
        set_provider: SetProvider,
        renderer_for: Callable[[str], Renderer],
        list_limit: int,
        base_filter: RecordFilter = RecordFilter(),
        transforms: Sequence[ValueTransform] = (),
    ):
        self.source = source
        self.tokens = tokens
        self.set_provider = set_provider
        self.renderer_for = renderer_for
        self.list_limit = list_limit
        self.base_filter = base_filter
        self.transforms = transforms

    def _build_filter(self, set_spec: Optional[str], date_from: Optional[str], date_until: Optional[str]) -> RecordFilter:
        record_filter = self.base_filter
        if set_spec:
            if self.set_provider.taxonomy == NO_SETS:
                raise OaiError(OaiErrorCode.NO_SET_HIERARCHY)
            handle = self.set_provider.resolve(set_spec)
            if handle is None:
                raise OaiError(OaiErrorCode.NO_RECORDS_MATCH, f"The set {set_spec!r} doesn't exist.")
            record_filter = handle.narrow(record_filter)
        changes = {}
        if date_from:
            changes["date_from"] = parse_lower_bound(date_from)
        if date_until:
            changes["date_until"] = parse_upper_bound(date_until)
        if changes:
            record_filter = dataclasses.replace(record_filter, **changes)
        return record_filter

    def run(
        self,
        verb: str,
        metadata_prefix: str,
        cursor: int,
        set_spec: Optional[str] = None,
        date_from: Optional[str] = None,
        date_until: Optional[str] = None,
    ) -> ListPage:
        """Render one page of `verb`.

        Raises:
            OaiError: noSetHierarchy, noRecordsMatch or cannotDisseminateFormat.
        """
        if verb not in LIST_VERBS:
            raise ValueError(f"{verb} is not a list verb")
        record_filter = self._build_filter(set_spec, date_from, date_until)
        try:
            renderer = self.renderer_for(metadata_prefix)
        except KeyError:
            raise OaiError(OaiErrorCode.CANNOT_DISSEMINATE_FORMAT) from None

        rows, total = self.source.query(record_filter, cursor, self.list_limit)
        if total == 0 or not rows:
            raise OaiError(OaiErrorCode.NO_RECORDS_MATCH)

        element = etree.Element(f"{{{OAI_PMH_NAMESPACE_URI}}}{verb}", nsmap={None: OAI_PMH_NAMESPACE_URI})
        for record in rows:
            if verb == "ListIdentifiers":
                renderer.render_header(element, record)
            else:
                renderer.render_record(element, record, apply_transforms(record, self.transforms))

        next_token = None
        if total > cursor + self.list_limit:
            next_token = self.tokens.create(
                verb, metadata_prefix, cursor + self.list_limit, set_spec, date_from, date_until
            )
            append_element(
                element,
                "resumptionToken",
                next_token.id,
                {
                    "expirationDate": to_utc_string(next_token.expiration),
                    "completeListSize": total,
                    "cursor": cursor,
                },
            )
        elif cursor != 0:
            # Last page of a resumed list: an empty token tells the harvester to stop.
            append_element(element, "resumptionToken")

        logger.info(
            "list page rendered",
            extra={"verb": verb, "prefix": metadata_prefix, "cursor": cursor, "rows": len(rows), "total": total},
        )
        return ListPage(element=element, total=total, emitted=len(rows), next_token=next_token)

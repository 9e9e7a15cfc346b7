import sys
from datetime import datetime, timedelta, timezone
from pathlib import Path

import pytest
from lxml import etree

# Ensure the `oairepo` package is importable when running tests from repo root
ROOT = Path(__file__).resolve().parents[1]
if str(ROOT) not in sys.path:
    sys.path.insert(0, str(ROOT))

from oairepo.config import RepositorySettings
from oairepo.pmh.dispatcher import build_dispatcher
from oairepo.pmh.xml import OAI_PMH_NAMESPACE_URI
from oairepo.store.records import MemoryRecordSource
from oairepo.store.tokens import ResumptionTokenStore

NS = {
    "oai": OAI_PMH_NAMESPACE_URI,
    "oai_dc": "http://www.openarchives.org/OAI/2.0/oai_dc/",
    "dc": "http://purl.org/dc/elements/1.1/",
    "dcterms": "http://purl.org/dc/terms/",
    "mods": "http://www.loc.gov/mods/v3",
    "id": "http://www.openarchives.org/OAI/2.0/oai-identifier",
}

RECORDS = {
    "collections": [
        {"id": "maps", "title": "Maps", "description": "Printed and drawn maps"},
        {"id": "letters", "title": "Letters"},
        {"id": "empty", "title": "Nothing here yet"},
    ],
    "sites": [
        {"slug": "archive", "title": "The Archive", "collections": ["maps"]},
        {"slug": "museum", "title": "The Museum", "collections": ["letters"]},
    ],
    "records": [
        {
            "id": 1,
            "created": "2024-01-01T10:00:00Z",
            "values": {
                "dcterms:title": ["Map of Avalon"],
                "dcterms:creator": ["Ada Cartographer"],
                "dcterms:abstract": ["Hand coloured"],
                "dcterms:type": ["map"],
                "dcterms:subject": [{"@value": "Geography", "@language": "en"}],
                "dcterms:source": [{"@id": "https://example.org/originals/1"}],
            },
            "collections": ["maps"],
            "sites": ["archive"],
            "media": ["https://example.org/files/1.jpg"],
            "api_url": "https://example.org/api/items/1",
            "site_urls": {"archive": "/s/archive/item/1"},
            "resource_class": "bibo:Map",
        },
        {
            "id": 2,
            "created": "2024-01-02T00:00:00Z",
            "modified": "2024-03-01T00:00:00Z",
            "values": {"dcterms:title": ["Letter to Bea"], "dcterms:type": ["letter"]},
            "collections": ["letters"],
            "sites": ["museum"],
        },
        {
            "id": 3,
            "created": "2024-01-02T23:59:59Z",
            "values": {"dcterms:title": ["  Map of Camelot  "], "dcterms:type": ["map"]},
            "collections": ["maps"],
            "sites": ["archive", "museum"],
        },
        {
            "id": 4,
            "created": "2024-02-15T08:30:00Z",
            "values": {"dcterms:title": ["Private draft"]},
            "collections": ["maps"],
            "public": False,
        },
        {
            "id": 5,
            "created": "2024-02-20T00:00:00Z",
            "values": {
                "dcterms:title": ["Letter from Eve"],
                "dcterms:identifier": ["ark:/12345/e5"],
                "dcterms:type": ["letter"],
            },
            "collections": ["letters"],
        },
        {
            "id": 6,
            "created": "2024-04-01T00:00:00Z",
            "values": {"dcterms:title": ["Map of Fairyland"], "dcterms:type": ["map"]},
            "collections": ["maps"],
        },
    ],
}

# Public record keys in primary-key order.
PUBLIC_KEYS = ["1", "2", "3", "5", "6"]


class FakeClock:
    def __init__(self, now: datetime):
        self.now = now

    def __call__(self) -> datetime:
        return self.now

    def advance(self, minutes: int) -> None:
        self.now = self.now + timedelta(minutes=minutes)


def parse(body: bytes) -> etree._Element:
    return etree.fromstring(body)


def error_codes(root: etree._Element):
    return [e.get("code") for e in root.findall("oai:error", NS)]


def header_identifiers(root: etree._Element):
    return [e.text for e in root.iterfind(".//oai:header/oai:identifier", NS)]


@pytest.fixture
def clock():
    return FakeClock(datetime(2024, 6, 1, 12, 0, 0, tzinfo=timezone.utc))


@pytest.fixture
def source():
    return MemoryRecordSource.from_dict(RECORDS)


@pytest.fixture
def settings(tmp_path):
    return RepositorySettings(
        name="Test repository",
        namespace_id="example.org",
        admin_email="oai@example.org",
        list_limit=2,
        data_dir=tmp_path,
    )


@pytest.fixture
def tokens(settings, clock):
    return ResumptionTokenStore(settings.token_db, settings.token_expiration_minutes, clock=clock)


@pytest.fixture
def make_dispatcher(settings, source, tokens, clock):
    def _make(site=None, **overrides):
        merged = RepositorySettings(**{**settings.model_dump(), **overrides})
        site_obj = next((s for s in source.sites() if s.slug == site), None) if site else None
        return build_dispatcher(
            merged,
            source,
            tokens,
            base_url="http://repo.example.org/oai",
            site=site_obj,
            server_url="http://repo.example.org/",
            clock=clock,
        )

    return _make


@pytest.fixture
def oai(make_dispatcher):
    """Run one request given as (key, value) pairs and return the parsed response."""

    def _request(*pairs, method="GET", site=None, **overrides):
        dispatcher = make_dispatcher(site=site, **overrides)
        return parse(dispatcher.handle(method, list(pairs)))

    return _request

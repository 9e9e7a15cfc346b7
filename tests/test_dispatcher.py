from datetime import datetime, timezone

import pytest
from lxml import etree

from conftest import NS, PUBLIC_KEYS, error_codes, header_identifiers, parse
from oairepo.pmh.xml import OAI_PMH_NAMESPACE_URI
from oairepo.store.records import Value

LIST_ARGS = (("verb", "ListRecords"), ("metadataPrefix", "oai_dc"))


def verb_elements(root):
    return [etree.QName(child).localname for child in root][2:]


def test_envelope(oai):
    root = oai(("verb", "Identify"))
    assert root.tag == f"{{{OAI_PMH_NAMESPACE_URI}}}OAI-PMH"
    assert root.findtext("oai:responseDate", namespaces=NS) == "2024-06-01T12:00:00Z"
    request = root.find("oai:request", NS)
    assert request.text == "http://repo.example.org/oai"
    assert dict(request.attrib) == {"verb": "Identify"}
    assert verb_elements(root) == ["Identify"]


def test_serialized_document_is_utf8_xml(make_dispatcher):
    body = make_dispatcher().handle("GET", [("verb", "Identify")])
    assert body.startswith(b"<?xml version='1.0' encoding='UTF-8' standalone='yes'?>")


def test_stylesheet_processing_instruction(make_dispatcher):
    body = make_dispatcher(stylesheet="/static/oai2.xsl").handle("GET", [("verb", "Identify")])
    assert b'<?xml-stylesheet type="text/xsl" href="/static/oai2.xsl"?>' in body


def test_identify(oai):
    identify = oai(("verb", "Identify")).find("oai:Identify", NS)
    assert identify.findtext("oai:repositoryName", namespaces=NS) == "Test repository"
    assert identify.findtext("oai:baseURL", namespaces=NS) == "http://repo.example.org/oai"
    assert identify.findtext("oai:protocolVersion", namespaces=NS) == "2.0"
    assert identify.findtext("oai:adminEmail", namespaces=NS) == "oai@example.org"
    assert identify.findtext("oai:earliestDatestamp", namespaces=NS) == "1970-01-01T00:00:00Z"
    assert identify.findtext("oai:deletedRecord", namespaces=NS) == "no"
    assert identify.findtext("oai:granularity", namespaces=NS) == "YYYY-MM-DDThh:mm:ssZ"
    assert identify.findtext(".//id:repositoryIdentifier", namespaces=NS) == "example.org"
    toolkit = identify.find(".//{http://oai.dlib.vt.edu/OAI/metadata/toolkit}toolkit")
    assert toolkit.findtext("{http://oai.dlib.vt.edu/OAI/metadata/toolkit}title") == "oairepo"


def test_configured_base_url_wins(oai):
    root = oai(("verb", "Identify"), base_url="https://oai.example.org/")
    assert root.findtext("oai:request", namespaces=NS) == "https://oai.example.org/"


def test_missing_verb(oai):
    root = oai()
    assert error_codes(root) == ["badVerb"]
    assert verb_elements(root) == ["error"]


def test_empty_verb(oai):
    assert error_codes(oai(("verb", ""))) == ["badVerb"]


def test_unknown_verb_is_fatal_even_with_a_token(oai):
    root = oai(("verb", "ListEverything"), ("resumptionToken", "abc"))
    assert error_codes(root) == ["badVerb"]
    assert dict(root.find("oai:request", NS).attrib) == {"verb": "ListEverything", "resumptionToken": "abc"}


def test_request_echoes_arguments_on_error(oai):
    root = oai(("verb", "ListRecords"), ("from", "2024-02-30"), ("colour", "red"))
    assert dict(root.find("oai:request", NS).attrib) == {"verb": "ListRecords", "from": "2024-02-30", "colour": "red"}
    assert error_codes(root) == ["badArgument"] * 3
    assert root.find("oai:ListRecords", NS) is None


def test_duplicate_arguments_echo_the_first_value(oai):
    root = oai(("verb", "Identify"), ("verb", "Identify"))
    assert error_codes(root) == ["badArgument"]
    assert root.find("oai:request", NS).get("verb") == "Identify"


def test_argument_names_invalid_as_attributes_are_not_echoed(oai):
    root = oai(("verb", "Identify"), ("bad name", "x"))
    assert dict(root.find("oai:request", NS).attrib) == {"verb": "Identify"}
    assert error_codes(root) == ["badArgument"]


def test_other_http_methods_are_rejected(oai):
    root = oai(("verb", "Identify"), method="PUT")
    assert error_codes(root) == ["badArgument"]
    assert root.find("oai:Identify", NS) is None


def test_post_is_handled_like_get(oai):
    assert oai(("verb", "Identify"), method="POST").find("oai:Identify", NS) is not None


def test_get_record(oai):
    root = oai(("verb", "GetRecord"), ("identifier", "oai:example.org:3"), ("metadataPrefix", "oai_dc"))
    record = root.find("oai:GetRecord/oai:record", NS)
    assert record.findtext("oai:header/oai:identifier", namespaces=NS) == "oai:example.org:3"
    assert record.findtext("oai:header/oai:datestamp", namespaces=NS) == "2024-01-02T23:59:59Z"
    # Values are stripped by the default transform list.
    assert record.findtext(".//dc:title", namespaces=NS) == "Map of Camelot"


@pytest.mark.parametrize(
    "identifier",
    ["oai:example.org:999", "oai:other.org:3", "oai:example.org:4", "3"],
)
def test_get_record_unknown_identifier(oai, identifier):
    root = oai(("verb", "GetRecord"), ("identifier", identifier), ("metadataPrefix", "oai_dc"))
    assert error_codes(root) == ["idDoesNotExist"]
    assert root.find("oai:GetRecord", NS) is None


def test_get_record_unknown_format(oai):
    root = oai(("verb", "GetRecord"), ("identifier", "oai:example.org:999"), ("metadataPrefix", "marc21"))
    assert error_codes(root) == ["cannotDisseminateFormat"]


def test_get_record_by_identifier_property(oai):
    root = oai(
        ("verb", "GetRecord"),
        ("identifier", "oai:example.org:ark:/12345/e5"),
        ("metadataPrefix", "oai_dc"),
        identifier_property="dcterms:identifier",
    )
    assert header_identifiers(root) == ["oai:example.org:ark:/12345/e5"]


def test_listed_identifiers_resolve_with_identifier_property(source, make_dispatcher):
    source.find_by_id("5").values["dcterms:identifier"] = [Value(" ark:/12345/e5 ")]
    dispatcher = make_dispatcher(identifier_property="dcterms:identifier", list_limit=10)
    listed = header_identifiers(
        parse(dispatcher.handle("GET", [("verb", "ListIdentifiers"), ("metadataPrefix", "oai_dc")]))
    )
    assert "oai:example.org:ark:/12345/e5" in listed

    for identifier in listed:
        root = parse(
            dispatcher.handle(
                "GET", [("verb", "GetRecord"), ("identifier", identifier), ("metadataPrefix", "oai_dc")]
            )
        )
        assert error_codes(root) == []
        assert header_identifiers(root) == [identifier]
        root = parse(dispatcher.handle("GET", [("verb", "ListMetadataFormats"), ("identifier", identifier)]))
        assert error_codes(root) == []


@pytest.mark.parametrize("verb", ["ListIdentifiers", "ListRecords"])
def test_hidden_identifier_property_keeps_header_identifiers(oai, verb):
    args = [("verb", verb), ("metadataPrefix", "oai_dc")]
    shown = oai(*args, identifier_property="dcterms:identifier", list_limit=10)
    hidden = oai(
        *args, identifier_property="dcterms:identifier", hidden_terms=["dcterms:identifier"], list_limit=10
    )
    assert header_identifiers(hidden) == header_identifiers(shown)
    assert "oai:example.org:ark:/12345/e5" in header_identifiers(hidden)


def test_hidden_terms(oai):
    root = oai(
        ("verb", "GetRecord"),
        ("identifier", "oai:example.org:1"),
        ("metadataPrefix", "oai_dc"),
        hidden_terms=["dcterms:creator"],
    )
    assert root.find(".//dc:creator", NS) is None
    assert root.findtext(".//dc:title", namespaces=NS) == "Map of Avalon"


def test_absolute_site_url_identifier(oai):
    root = oai(
        ("verb", "GetRecord"),
        ("identifier", "oai:example.org:1"),
        ("metadataPrefix", "oai_dc"),
        append_identifier_global="absolute_site_url",
        default_site="archive",
    )
    assert root.findtext(".//dc:identifier", namespaces=NS) == "http://repo.example.org/s/archive/item/1"


def test_list_metadata_formats(oai):
    root = oai(("verb", "ListMetadataFormats"))
    prefixes = [e.text for e in root.iterfind(".//oai:metadataPrefix", NS)]
    assert prefixes == ["oai_dc", "oai_dcterms", "mods", "simple_xml"]


def test_list_metadata_formats_respects_allow_list(oai):
    root = oai(("verb", "ListMetadataFormats"), metadata_formats=["oai_dc"])
    assert [e.text for e in root.iterfind(".//oai:metadataPrefix", NS)] == ["oai_dc"]


def test_list_metadata_formats_for_an_item(oai):
    root = oai(("verb", "ListMetadataFormats"), ("identifier", "oai:example.org:1"))
    assert len(root.findall(".//oai:metadataFormat", NS)) == 4
    root = oai(("verb", "ListMetadataFormats"), ("identifier", "oai:example.org:999"))
    assert error_codes(root) == ["idDoesNotExist"]


def test_no_metadata_formats(oai):
    assert error_codes(oai(("verb", "ListMetadataFormats"), metadata_formats=[])) == ["noMetadataFormats"]


def test_list_sets(oai):
    root = oai(("verb", "ListSets"))
    assert [e.text for e in root.iterfind(".//oai:setSpec", NS)] == ["maps", "letters"]
    root = oai(("verb", "ListSets"), hide_empty_sets=False)
    assert [e.text for e in root.iterfind(".//oai:setSpec", NS)] == ["maps", "letters", "empty"]


def test_list_sets_without_hierarchy(oai):
    assert error_codes(oai(("verb", "ListSets"), global_repository="none")) == ["noSetHierarchy"]


def test_list_with_set_but_no_hierarchy(oai):
    root = oai(*LIST_ARGS, ("set", "maps"), global_repository="none")
    assert error_codes(root) == ["noSetHierarchy"]


def test_list_with_unknown_set(oai):
    assert error_codes(oai(*LIST_ARGS, ("set", "globes"))) == ["noRecordsMatch"]


def test_site_taxonomy(oai):
    root = oai(("verb", "ListIdentifiers"), ("metadataPrefix", "oai_dc"), ("set", "museum"), global_repository="site")
    assert header_identifiers(root) == ["oai:example.org:2", "oai:example.org:3"]
    header = next(h for h in root.iterfind(".//oai:header", NS) if h.findtext("oai:identifier", namespaces=NS) == "oai:example.org:3")
    specs = [e.text for e in header.findall("oai:setSpec", NS)]
    assert specs == ["archive", "museum"]


def test_query_taxonomy(oai):
    queries = [{"spec": "maps", "name": "All maps", "properties": {"dcterms:type": "map"}}]
    root = oai(
        ("verb", "ListIdentifiers"),
        ("metadataPrefix", "oai_dc"),
        ("set", "maps"),
        global_repository="query",
        saved_queries=queries,
        list_limit=10,
    )
    assert header_identifiers(root) == ["oai:example.org:1", "oai:example.org:3", "oai:example.org:6"]


def test_date_range_uses_effective_datestamp(oai):
    root = oai(("verb", "ListIdentifiers"), ("metadataPrefix", "oai_dc"), ("until", "2024-01-02"))
    # Record 2 was created on 2024-01-02 but modified later.
    assert header_identifiers(root) == ["oai:example.org:1", "oai:example.org:3"]


def test_from_bound_is_inclusive(oai):
    root = oai(("verb", "ListIdentifiers"), ("metadataPrefix", "oai_dc"), ("from", "2024-03-01T00:00:00Z"), list_limit=10)
    assert header_identifiers(root) == ["oai:example.org:2", "oai:example.org:6"]


def test_until_matches_a_sub_second_datestamp(source, oai):
    source.find_by_id("3").created = datetime(2024, 1, 2, 10, 0, 0, 500000, tzinfo=timezone.utc)
    root = oai(("verb", "ListIdentifiers"), ("metadataPrefix", "oai_dc"), ("until", "2024-01-02T10:00:00Z"))
    assert header_identifiers(root) == ["oai:example.org:1", "oai:example.org:3"]
    stamps = [e.text for e in root.iterfind(".//oai:header/oai:datestamp", NS)]
    assert stamps[-1] == "2024-01-02T10:00:00Z"


def test_no_records_match(oai):
    assert error_codes(oai(*LIST_ARGS, ("from", "2030-01-01"))) == ["noRecordsMatch"]


def test_full_harvest_with_resumption_tokens(make_dispatcher):
    dispatcher = make_dispatcher()
    root = parse(dispatcher.handle("GET", list(LIST_ARGS)))
    seen = header_identifiers(root)
    requests = 1
    while True:
        token = root.find("oai:ListRecords/oai:resumptionToken", NS)
        if token is None or not token.text:
            break
        root = parse(dispatcher.handle("POST", [("verb", "ListRecords"), ("resumptionToken", token.text)]))
        assert error_codes(root) == []
        seen.extend(header_identifiers(root))
        requests += 1

    assert seen == [f"oai:example.org:{key}" for key in PUBLIC_KEYS]
    assert requests == 3
    assert token is not None and token.text is None


def test_exact_page_has_no_token(oai):
    root = oai(*LIST_ARGS, ("set", "letters"))
    assert len(root.findall(".//oai:record", NS)) == 2
    assert root.find(".//oai:resumptionToken", NS) is None


def first_token(dispatcher, verb="ListRecords"):
    root = parse(dispatcher.handle("GET", [("verb", verb), ("metadataPrefix", "oai_dc")]))
    return root.find(f"oai:{verb}/oai:resumptionToken", NS).text


def test_token_for_another_verb_is_rejected(make_dispatcher):
    dispatcher = make_dispatcher()
    token = first_token(dispatcher, "ListRecords")
    root = parse(dispatcher.handle("GET", [("verb", "ListIdentifiers"), ("resumptionToken", token)]))
    assert error_codes(root) == ["badResumptionToken"]


def test_unknown_token_is_rejected(oai):
    assert error_codes(oai(("verb", "ListRecords"), ("resumptionToken", "deadbeef"))) == ["badResumptionToken"]


def test_expired_token_is_rejected(make_dispatcher, clock):
    dispatcher = make_dispatcher()
    token = first_token(dispatcher)
    clock.advance(11)
    root = parse(dispatcher.handle("GET", [("verb", "ListRecords"), ("resumptionToken", token)]))
    assert error_codes(root) == ["badResumptionToken"]


def test_token_with_other_arguments_is_a_bad_argument(make_dispatcher):
    dispatcher = make_dispatcher()
    token = first_token(dispatcher)
    root = parse(
        dispatcher.handle("GET", [("verb", "ListRecords"), ("resumptionToken", token), ("metadataPrefix", "oai_dc")])
    )
    assert error_codes(root) == ["badArgument"]


def test_token_for_a_disabled_format(make_dispatcher):
    token = first_token(make_dispatcher())
    restricted = make_dispatcher(metadata_formats=["mods"])
    root = parse(restricted.handle("GET", [("verb", "ListRecords"), ("resumptionToken", token)]))
    assert error_codes(root) == ["cannotDisseminateFormat"]


def test_list_sets_token_is_rejected(make_dispatcher, tokens):
    token = tokens.create("ListSets", "oai_dc", 2)
    root = parse(make_dispatcher().handle("GET", [("verb", "ListSets"), ("resumptionToken", token.id)]))
    assert error_codes(root) == ["badResumptionToken"]


def test_site_scoped_repository(oai):
    root = oai(*LIST_ARGS, site="archive", by_site_repository="collection", list_limit=10)
    assert header_identifiers(root) == ["oai:example.org:1", "oai:example.org:3"]
    # Only the site's collections are visible as sets.
    assert [e.text for e in root.iterfind(".//oai:setSpec", NS)] == ["maps", "maps"]

    root = oai(("verb", "ListSets"), site="archive", by_site_repository="collection")
    assert [e.text for e in root.iterfind(".//oai:setSpec", NS)] == ["maps"]


def test_site_scoped_get_record_outside_the_site(oai):
    root = oai(
        ("verb", "GetRecord"),
        ("identifier", "oai:example.org:2"),
        ("metadataPrefix", "oai_dc"),
        site="archive",
    )
    assert error_codes(root) == ["idDoesNotExist"]


def test_site_scoped_repository_without_sets(oai):
    assert error_codes(oai(("verb", "ListSets"), site="museum")) == ["noSetHierarchy"]

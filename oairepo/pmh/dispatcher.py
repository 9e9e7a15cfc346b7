"""OAI-PMH request lifecycle.

`VerbDispatcher.handle` turns one request (HTTP method plus the ordered
argument pairs) into a complete OAI-PMH document:

1. build the envelope and echo every argument on ``<request>``;
2. check the method and the verb, then validate the verb's argument
   contract, accumulating every violation;
3. run the verb. Verb handlers raise `OaiError` on the first failure and
   never attach their element to the document unless they succeed;
4. render any errors and serialize.
"""
from __future__ import annotations

import logging
from typing import Callable, Dict, Optional, Sequence, Tuple

from lxml import etree

import oairepo
from oairepo.config import RepositorySettings
from oairepo.pmh.arguments import RESUMPTION_CONTRACT, VERB_CONTRACTS, ArgumentValidator, first_values
from oairepo.pmh.dates import EPOCH, OAI_GRANULARITY_STRING, to_utc_string, utcnow
from oairepo.pmh.errors import ErrorReporter, OaiError, OaiErrorCode
from oairepo.pmh.formats.base import RenderContext, Renderer
from oairepo.pmh.formats.registry import MetadataFormatRegistry, default_formats
from oairepo.pmh.identifier import IdentifierCodec, IdentifierContext
from oairepo.pmh.listing import LIST_VERBS, ListResponseBuilder
from oairepo.pmh.sets import SetProvider, SetProviderContext, default_set_providers
from oairepo.pmh.transforms import ValueTransform, apply_transforms, build_transforms
from oairepo.pmh.xml import (
    OAI_PMH_NAMESPACE_URI,
    XML_SCHEMA_NAMESPACE_URI,
    XSI_SCHEMA_LOCATION,
    append_element,
    append_with_children,
    new_document,
    serialize,
)
from oairepo.store.records import Record, RecordFilter, RecordSource, Site
from oairepo.store.tokens import ResumptionTokenStore, TokenStoreError

logger = logging.getLogger(__name__)

OAI_PMH_PROTOCOL_VERSION = "2.0"
ALLOWED_METHODS = ("GET", "POST")

TOOLKIT_NAMESPACE_URI = "http://oai.dlib.vt.edu/OAI/metadata/toolkit"
TOOLKIT_SCHEMA_URI = "http://oai.dlib.vt.edu/OAI/metadata/toolkit.xsd"
TOOLKIT = {
    "title": "oairepo",
    "author": {"name": "oairepo maintainers", "email": "oairepo@example.org"},
    "version": oairepo.__version__,
    "URL": "https://pypi.org/project/oairepo/",
}


class VerbDispatcher:
    def __init__(
        self,
        *,
        repository_name: str,
        admin_email: str,
        base_url: str,
        source: RecordSource,
        tokens: ResumptionTokenStore,
        formats: MetadataFormatRegistry,
        set_provider: SetProvider,
        render_context: RenderContext,
        list_limit: int,
        site: Optional[Site] = None,
        transforms: Sequence[ValueTransform] = (),
        stylesheet: Optional[str] = None,
        clock: Callable = utcnow,
    ):
        self.repository_name = repository_name
        self.admin_email = admin_email
        self.base_url = base_url
        self.source = source
        self.tokens = tokens
        self.formats = formats
        self.set_provider = set_provider
        self.render_context = render_context
        self.codec: IdentifierCodec = render_context.codec
        self.site = site
        self.transforms = list(transforms)
        self.stylesheet = stylesheet
        self.clock = clock
        self.validator = ArgumentValidator(formats)
        self.lists = ListResponseBuilder(
            source=source,
            tokens=tokens,
            set_provider=set_provider,
            renderer_for=self._renderer,
            list_limit=list_limit,
            base_filter=RecordFilter(site=site.slug) if site is not None else RecordFilter(),
            transforms=self.transforms,
        )

    def _renderer(self, prefix: str) -> Renderer:
        return self.formats.renderer(prefix, self.render_context)

    def handle(self, method: str, params: Sequence[Tuple[str, str]]) -> bytes:
        root = new_document()
        append_element(root, "responseDate", to_utc_string(self.clock()))
        values = first_values(params)
        request = append_element(root, "request", self.base_url)
        _echo_arguments(request, values)

        reporter = ErrorReporter()
        try:
            self._dispatch(root, method.upper(), params, values, reporter)
        except OaiError as error:
            reporter.add(error)
        reporter.render(root)

        logger.info(
            "oai request handled",
            extra={"verb": values.get("verb"), "method": method, "error_codes": reporter.codes},
        )
        return serialize(root, self.stylesheet)

    def _dispatch(
        self,
        root: etree._Element,
        method: str,
        params: Sequence[Tuple[str, str]],
        values: Dict[str, str],
        reporter: ErrorReporter,
    ) -> None:
        if method not in ALLOWED_METHODS:
            reporter.add(
                OaiError(
                    OaiErrorCode.BAD_ARGUMENT,
                    f'The OAI-PMH protocol version 2.0 supports only "GET" and "POST" requests, not "{method}".',
                )
            )

        verb = values.get("verb")
        if not verb:
            raise OaiError(OaiErrorCode.BAD_VERB, "No verb specified.")
        if verb not in VERB_CONTRACTS:
            raise OaiError(OaiErrorCode.BAD_VERB, f"Illegal OAI verb: {verb}.")

        token_id = values.get("resumptionToken")
        contract = RESUMPTION_CONTRACT if token_id else VERB_CONTRACTS[verb]
        reporter.extend(self.validator.validate(verb, params, contract.required, contract.optional))
        if reporter:
            return

        if token_id:
            self.resume_list(root, verb, token_id)
        elif verb in LIST_VERBS:
            page = self.lists.run(
                verb,
                values["metadataPrefix"],
                0,
                values.get("set"),
                values.get("from"),
                values.get("until"),
            )
            root.append(page.element)
        else:
            handlers = {
                "Identify": self.identify,
                "GetRecord": self.get_record,
                "ListMetadataFormats": self.list_metadata_formats,
                "ListSets": self.list_sets,
            }
            handlers[verb](root, values)

    def resume_list(self, root: etree._Element, verb: str, token_id: str) -> None:
        try:
            self.tokens.purge_expired()
        except TokenStoreError:
            logger.warning("Expired token purge failed", exc_info=True)

        token = self.tokens.resolve(token_id)
        if token is None or token.verb != verb or token.verb not in LIST_VERBS:
            raise OaiError(OaiErrorCode.BAD_RESUMPTION_TOKEN)
        if not self.formats.is_available(token.metadata_prefix):
            raise OaiError(OaiErrorCode.CANNOT_DISSEMINATE_FORMAT)

        page = self.lists.run(
            token.verb,
            token.metadata_prefix,
            token.cursor,
            token.set_spec,
            token.date_from,
            token.date_until,
        )
        root.append(page.element)

    def _find_record(self, identifier: Optional[str]) -> Record:
        record = self.codec.find_record(self.source, identifier)
        if record is None or (self.site is not None and self.site.slug not in record.sites):
            raise OaiError(OaiErrorCode.ID_DOES_NOT_EXIST)
        return record

    def identify(self, root: etree._Element, values: Dict[str, str]) -> None:
        # Element order is fixed by the schema.
        identify = append_with_children(
            root,
            "Identify",
            {
                "repositoryName": self.repository_name,
                "baseURL": self.base_url,
                "protocolVersion": OAI_PMH_PROTOCOL_VERSION,
                "adminEmail": self.admin_email,
                "earliestDatestamp": to_utc_string(EPOCH),
                "deletedRecord": "no",
                "granularity": OAI_GRANULARITY_STRING,
            },
        )
        self.codec.describe(append_element(identify, "description"))

        description = append_element(identify, "description")
        toolkit = append_element(
            description,
            f"{{{TOOLKIT_NAMESPACE_URI}}}toolkit",
            nsmap={None: TOOLKIT_NAMESPACE_URI, "xsi": XML_SCHEMA_NAMESPACE_URI},
        )
        toolkit.set(XSI_SCHEMA_LOCATION, f"{TOOLKIT_NAMESPACE_URI} {TOOLKIT_SCHEMA_URI}")
        for name, value in TOOLKIT.items():
            if isinstance(value, dict):
                append_with_children(toolkit, name, value)
            else:
                append_element(toolkit, name, value)

    def get_record(self, root: etree._Element, values: Dict[str, str]) -> None:
        record = self._find_record(values.get("identifier"))
        renderer = self._renderer(values["metadataPrefix"])
        element = etree.Element(f"{{{OAI_PMH_NAMESPACE_URI}}}GetRecord", nsmap={None: OAI_PMH_NAMESPACE_URI})
        renderer.render_record(element, record, apply_transforms(record, self.transforms))
        root.append(element)

    def list_metadata_formats(self, root: etree._Element, values: Dict[str, str]) -> None:
        identifier = values.get("identifier")
        # The record is only checked for existence.
        if identifier:
            self._find_record(identifier)
        descriptors = self.formats.available()
        if not descriptors:
            raise OaiError(OaiErrorCode.NO_METADATA_FORMATS)
        element = append_element(root, "ListMetadataFormats")
        for descriptor in descriptors:
            Renderer(descriptor, self.render_context).declare(element)

    def list_sets(self, root: etree._Element, values: Dict[str, str]) -> None:
        sets = self.set_provider.list_all()
        if not sets:
            raise OaiError(OaiErrorCode.NO_SET_HIERARCHY)
        element = append_element(root, "ListSets")
        for oai_set in sets:
            oai_set.append_to(element)


def _echo_arguments(request: etree._Element, values: Dict[str, str]) -> None:
    for key, value in values.items():
        try:
            request.set(key, value)
        except ValueError:
            logger.warning("Argument name cannot be echoed as an XML attribute", extra={"argument": key})


def build_dispatcher(
    settings: RepositorySettings,
    source: RecordSource,
    tokens: ResumptionTokenStore,
    base_url: str,
    site: Optional[Site] = None,
    server_url: str = "",
    clock: Callable = utcnow,
) -> VerbDispatcher:
    """Resolve the settings of the global repository, or of `site`, into a dispatcher."""
    codec = IdentifierCodec(IdentifierContext.create(settings.namespace_id, settings.identifier_property))
    formats = default_formats(settings.metadata_formats)
    taxonomy = settings.repository_mode(site.slug if site is not None else None)
    set_provider = default_set_providers().create(
        taxonomy,
        SetProviderContext(
            source=source,
            site=site,
            hide_empty_sets=settings.hide_empty_sets,
            saved_queries=tuple(settings.saved_queries),
        ),
    )
    is_global = site is None
    render_context = RenderContext(
        codec=codec,
        set_provider=set_provider,
        is_global=is_global,
        site_slug=None if is_global else site.slug,
        default_site=settings.default_site,
        server_url=server_url,
        append_identifier=settings.append_identifier_global if is_global else settings.append_identifier_site,
        expose_media=settings.expose_media,
        generic_dc_refinements=settings.generic_dc_refinements,
    )
    return VerbDispatcher(
        repository_name=settings.name,
        admin_email=settings.admin_email,
        base_url=settings.base_url or base_url,
        source=source,
        tokens=tokens,
        formats=formats,
        set_provider=set_provider,
        render_context=render_context,
        list_limit=settings.list_limit,
        site=site,
        transforms=build_transforms(settings.value_transforms, settings.hidden_terms),
        stylesheet=settings.stylesheet,
        clock=clock,
    )

import logging
from typing import List, Optional, Tuple
from urllib.parse import parse_qsl

from fastapi import FastAPI, HTTPException, Request, Response
from fastapi.concurrency import run_in_threadpool

from oairepo import __version__
from oairepo.config import RepositorySettings, load_settings
from oairepo.logging_config import configure_logging
from oairepo.pmh.dispatcher import build_dispatcher
from oairepo.store.records import MemoryRecordSource, RecordSource, Site
from oairepo.store.tokens import ResumptionTokenStore

configure_logging()
logger = logging.getLogger(__name__)

app = FastAPI(title="oairepo OAI-PMH repository", version=__version__)

OAI_MEDIA_TYPE = "text/xml; charset=UTF-8"
# Methods other than GET and POST are answered with badArgument by the dispatcher.
OAI_METHODS = ["GET", "POST", "PUT", "PATCH", "DELETE", "HEAD", "OPTIONS"]


class OaiService:
    """Process-wide, read-only state shared by every OAI-PMH request."""

    def __init__(self, settings: RepositorySettings, source: RecordSource, tokens: ResumptionTokenStore):
        self.settings = settings
        self.source = source
        self.tokens = tokens

    def is_enabled(self, site_slug: Optional[str]) -> bool:
        return self.settings.repository_mode(site_slug) != "disabled"

    def find_site(self, slug: str) -> Optional[Site]:
        for site in self.source.sites():
            if site.slug == slug:
                return site
        return None

    def handle(
        self,
        method: str,
        params: List[Tuple[str, str]],
        base_url: str,
        server_url: str,
        site: Optional[Site] = None,
    ) -> bytes:
        dispatcher = build_dispatcher(
            self.settings, self.source, self.tokens, base_url, site=site, server_url=server_url
        )
        return dispatcher.handle(method, params)


def create_service(settings: Optional[RepositorySettings] = None) -> OaiService:
    settings = settings or load_settings()
    configure_logging(settings.log_level)
    if settings.records_file:
        source = MemoryRecordSource.from_file(settings.records_file)
    else:
        logger.warning("No records_file configured; serving an empty repository")
        source = MemoryRecordSource()
    tokens = ResumptionTokenStore(settings.token_db, settings.token_expiration_minutes)
    return OaiService(settings, source, tokens)


service: Optional[OaiService] = None
_service_init_error: Optional[Exception] = None
try:
    service = create_service()
except Exception as exc:  # noqa: BLE001 - surface initialization failures clearly
    _service_init_error = exc
    logger.exception("Failed to initialize OAI-PMH service")


async def _request_params(request: Request) -> List[Tuple[str, str]]:
    if request.method == "POST":
        body = await request.body()
        return parse_qsl(body.decode("utf-8", errors="replace"), keep_blank_values=True)
    return list(request.query_params.multi_items())


async def _respond(request: Request, site_slug: Optional[str] = None) -> Response:
    if service is None:
        logger.error("OAI-PMH service unavailable", extra={"error": repr(_service_init_error)})
        raise HTTPException(
            status_code=503,
            detail="OAI-PMH service unavailable. Check the repository settings and the records file.",
        )
    if not service.is_enabled(site_slug):
        raise HTTPException(status_code=404, detail="Repository disabled")

    site = None
    if site_slug is not None:
        site = service.find_site(site_slug)
        if site is None:
            raise HTTPException(status_code=404, detail=f"Unknown site '{site_slug}'")

    params = await _request_params(request)
    body = await run_in_threadpool(
        service.handle,
        request.method,
        params,
        str(request.url.replace(query="")),
        str(request.base_url),
        site,
    )
    return Response(content=body, media_type=OAI_MEDIA_TYPE)


@app.get("/healthz")
def healthz():
    return {"ok": True}


@app.api_route("/oai", methods=OAI_METHODS)
async def oai(request: Request):
    return await _respond(request)


@app.api_route("/s/{site}/oai", methods=OAI_METHODS)
async def site_oai(site: str, request: Request):
    return await _respond(request, site)

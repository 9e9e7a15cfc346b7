"""Repository settings.

Settings are read once at process start from a YAML file (``OAI_CONFIG``)
and a few environment overrides, validated with pydantic, and then shared
read-only by every request.
"""
from __future__ import annotations

import logging
import os
from pathlib import Path
from typing import Dict, List, Literal, Optional

import yaml
from pydantic import BaseModel, Field, ValidationError, field_validator, model_validator

from oairepo.pmh.errors import ConfigError
from oairepo.pmh.identifier import sanitize_namespace

logger = logging.getLogger(__name__)

BASE_DIR = Path(__file__).resolve().parents[1]

ALL_FORMATS = ["oai_dc", "oai_dcterms", "mods", "simple_xml"]

AppendIdentifier = Literal["none", "api_url", "relative_site_url", "absolute_site_url"]


def _resolve_data_dir() -> Path:
    raw = (os.environ.get("OAI_DATA_DIR") or "").strip()

    # Relative paths are taken from the repo root so the API and the CLI agree
    # on where tokens live regardless of the working directory.
    if not raw:
        return BASE_DIR / "data"
    path = Path(raw)
    return path if path.is_absolute() else (BASE_DIR / path)


class SavedQuery(BaseModel):
    spec: str = Field(..., min_length=1)
    name: str
    description: Optional[str] = None
    properties: Dict[str, str] = Field(default_factory=dict)


class RepositorySettings(BaseModel):
    name: str = "OAI-PMH repository"
    namespace_id: str = "default.must.change"
    admin_email: str = "admin@example.org"
    base_url: Optional[str] = None

    list_limit: int = Field(50, ge=1, description="Records per list response page")
    token_expiration_minutes: int = Field(10, ge=1)

    metadata_formats: List[str] = Field(default_factory=lambda: list(ALL_FORMATS))

    global_repository: Literal["disabled", "none", "collection", "site", "query"] = "collection"
    by_site_repository: Literal["disabled", "none", "collection"] = "none"
    hide_empty_sets: bool = True
    saved_queries: List[SavedQuery] = Field(default_factory=list)

    expose_media: bool = False
    identifier_property: Optional[str] = None
    append_identifier_global: AppendIdentifier = "none"
    append_identifier_site: AppendIdentifier = "none"
    default_site: Optional[str] = None
    generic_dc_refinements: bool = False

    hidden_terms: List[str] = Field(default_factory=list)
    value_transforms: List[str] = Field(default_factory=lambda: ["strip"])

    stylesheet: Optional[str] = None

    data_dir: Path = Field(default_factory=_resolve_data_dir)
    token_db: Optional[Path] = None
    records_file: Optional[Path] = None

    log_level: str = "INFO"

    @field_validator("namespace_id", mode="before")
    @classmethod
    def _sanitize_namespace(cls, value):
        return sanitize_namespace(value)

    @model_validator(mode="after")
    def _default_token_db(self):
        if self.token_db is None:
            self.token_db = self.data_dir / "tokens.sqlite3"
        return self

    def repository_mode(self, site: Optional[str]) -> str:
        return self.by_site_repository if site else self.global_repository


ENV_OVERRIDES = {
    "OAI_NAMESPACE_ID": "namespace_id",
    "OAI_BASE_URL": "base_url",
    "OAI_DATA_DIR": "data_dir",
    "OAI_RECORDS_FILE": "records_file",
}


def load_settings(path: Optional[str] = None) -> RepositorySettings:
    """Build settings from a YAML file and environment overrides.

    Raises:
        ConfigError: the file is unreadable or a value is invalid.
    """
    path = path or os.environ.get("OAI_CONFIG")
    raw: Dict = {}
    if path:
        try:
            with open(path, "r", encoding="utf-8") as f:
                raw = yaml.safe_load(f) or {}
        except (OSError, yaml.YAMLError) as error:
            raise ConfigError(f"Cannot read settings file {path}: {error}") from error
        if not isinstance(raw, dict):
            raise ConfigError(f"Settings file {path} must contain a mapping")

    for env_name, field_name in ENV_OVERRIDES.items():
        value = (os.environ.get(env_name) or "").strip()
        if value:
            raw[field_name] = value

    try:
        settings = RepositorySettings(**raw)
    except ValidationError as error:
        raise ConfigError(f"Invalid repository settings: {error}") from error

    logger.info(
        "Loaded repository settings",
        extra={"config": path, "namespace_id": settings.namespace_id, "formats": settings.metadata_formats},
    )
    return settings

from __future__ import annotations

import logging
from enum import Enum
from typing import Iterable, List, Optional

from lxml import etree

from oairepo.pmh.xml import append_element

logger = logging.getLogger(__name__)


class OaiErrorCode(str, Enum):
    BAD_ARGUMENT = "badArgument"
    BAD_RESUMPTION_TOKEN = "badResumptionToken"
    BAD_VERB = "badVerb"
    CANNOT_DISSEMINATE_FORMAT = "cannotDisseminateFormat"
    ID_DOES_NOT_EXIST = "idDoesNotExist"
    NO_RECORDS_MATCH = "noRecordsMatch"
    NO_METADATA_FORMATS = "noMetadataFormats"
    NO_SET_HIERARCHY = "noSetHierarchy"


DEFAULT_MESSAGES = {
    OaiErrorCode.BAD_ARGUMENT: "The request includes illegal arguments or is missing required arguments.",
    OaiErrorCode.BAD_RESUMPTION_TOKEN: "The value of the resumptionToken argument is invalid or expired.",
    OaiErrorCode.BAD_VERB: "Value of the verb argument is not a legal OAI-PMH verb.",
    OaiErrorCode.CANNOT_DISSEMINATE_FORMAT: "The metadata format identified by metadataPrefix is not supported.",
    OaiErrorCode.ID_DOES_NOT_EXIST: "The value of the identifier argument is unknown or illegal in this repository.",
    OaiErrorCode.NO_RECORDS_MATCH: "No records match the given criteria.",
    OaiErrorCode.NO_METADATA_FORMATS: "There are no metadata formats available for the specified item.",
    OaiErrorCode.NO_SET_HIERARCHY: "The repository does not support sets.",
}


class ConfigError(Exception):
    """Raised for invalid repository settings."""


class OaiError(Exception):
    """A protocol error reported to the harvester as an <error> element."""

    def __init__(self, code: OaiErrorCode, message: Optional[str] = None):
        self.code = OaiErrorCode(code)
        self.message = message or DEFAULT_MESSAGES[self.code]
        super().__init__(f"{self.code.value}: {self.message}")

    def __eq__(self, other):
        if not isinstance(other, OaiError):
            return NotImplemented
        return self.code == other.code and self.message == other.message

    def __hash__(self):
        return hash((self.code, self.message))


class ErrorReporter:
    """Collects protocol errors for one response and renders them."""

    def __init__(self) -> None:
        self._errors: List[OaiError] = []

    def add(self, error: OaiError) -> None:
        self._errors.append(error)

    def extend(self, errors: Iterable[OaiError]) -> None:
        for error in errors:
            self.add(error)

    @property
    def errors(self) -> List[OaiError]:
        return list(self._errors)

    @property
    def codes(self) -> List[str]:
        return [e.code.value for e in self._errors]

    def __bool__(self) -> bool:
        return bool(self._errors)

    def render(self, root: etree._Element) -> None:
        for error in self._errors:
            append_element(root, "error", error.message, {"code": error.code.value})
        if self._errors:
            logger.info("oai errors reported", extra={"codes": self.codes})

from __future__ import annotations

import logging
from collections import Counter
from typing import Dict, List, NamedTuple, Sequence, Tuple

from oairepo.pmh.dates import granularity
from oairepo.pmh.errors import OaiError, OaiErrorCode
from oairepo.pmh.formats.registry import MetadataFormatRegistry

logger = logging.getLogger(__name__)


class ArgumentContract(NamedTuple):
    required: Tuple[str, ...] = ()
    optional: Tuple[str, ...] = ()


VERB_CONTRACTS: Dict[str, ArgumentContract] = {
    "Identify": ArgumentContract(),
    "GetRecord": ArgumentContract(required=("identifier", "metadataPrefix")),
    "ListIdentifiers": ArgumentContract(required=("metadataPrefix",), optional=("from", "until", "set")),
    "ListRecords": ArgumentContract(required=("metadataPrefix",), optional=("from", "until", "set")),
    "ListSets": ArgumentContract(),
    "ListMetadataFormats": ArgumentContract(optional=("identifier",)),
}

# A resumptionToken replaces every other argument of the verb.
RESUMPTION_CONTRACT = ArgumentContract(required=("resumptionToken",))


def first_values(params: Sequence[Tuple[str, str]]) -> Dict[str, str]:
    """Flatten a multi-map, keeping the first value of repeated keys."""
    values: Dict[str, str] = {}
    for key, value in params:
        values.setdefault(key, value)
    return values


class ArgumentValidator:
    """Checks a request's arguments against a verb contract.

    Every check runs; the caller gets all violations at once.
    """

    def __init__(self, formats: MetadataFormatRegistry):
        self.formats = formats

    def validate(
        self,
        verb: str,
        params: Sequence[Tuple[str, str]],
        required: Sequence[str],
        optional: Sequence[str],
    ) -> List[OaiError]:
        errors: List[OaiError] = []
        values = first_values(params)

        counts = Counter(key for key, _ in params)
        for key, count in counts.items():
            if count > 1:
                errors.append(OaiError(OaiErrorCode.BAD_ARGUMENT, f"Duplicate arguments in request: {key}."))

        for key in ("verb", *required):
            if not values.get(key):
                errors.append(OaiError(OaiErrorCode.BAD_ARGUMENT, f"Missing required argument {key}."))

        allowed = {"verb", *required, *optional}
        for key in values:
            if key not in allowed:
                errors.append(OaiError(OaiErrorCode.BAD_ARGUMENT, f"Unknown argument {key}."))

        date_from = values.get("from")
        date_until = values.get("until")
        from_granularity = granularity(date_from)
        until_granularity = granularity(date_until)
        if date_from is not None and from_granularity is None:
            errors.append(OaiError(OaiErrorCode.BAD_ARGUMENT, f"Invalid date/time argument from: {date_from!r}."))
        if date_until is not None and until_granularity is None:
            errors.append(OaiError(OaiErrorCode.BAD_ARGUMENT, f"Invalid date/time argument until: {date_until!r}."))
        if from_granularity and until_granularity and from_granularity != until_granularity:
            errors.append(OaiError(OaiErrorCode.BAD_ARGUMENT, "Date/time arguments of differing granularity."))

        prefix = values.get("metadataPrefix")
        if prefix and not self.formats.is_available(prefix):
            errors.append(
                OaiError(
                    OaiErrorCode.CANNOT_DISSEMINATE_FORMAT,
                    f"The metadata format {prefix!r} is not supported by this repository.",
                )
            )
        if errors:
            logger.debug("argument validation failed", extra={"verb": verb, "errors": len(errors)})
        return errors

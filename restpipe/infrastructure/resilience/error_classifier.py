"""Response classification.

Decides whether a completed response is a success, a retryable server
error, a structured API error (possibly hidden inside an HTTP 200) or a
plain HTTP error. Performs no I/O and is deterministic.
"""

import json
import logging
from typing import Any, List, Optional

from restpipe.domain.models.common import ApiErrorEntry, MediaType
from restpipe.domain.models.http import ResponseEnvelope
from restpipe.domain.models.resilience import Classification, Outcome

logger = logging.getLogger(__name__)

JSON_MEDIA_TYPE = MediaType("application/json")

_decoder = json.JSONDecoder()


def is_json_media_type(media_type: Optional[str]) -> bool:
    """True for application/json and application/*+json."""
    if not media_type:
        return False
    return media_type == JSON_MEDIA_TYPE or (media_type.startswith("application/") and media_type.endswith("+json"))


class ErrorClassifier:
    """Classifies ResponseEnvelopes into Outcomes."""

    def classify(self, response: ResponseEnvelope) -> Classification:
        """Classifies a response.

        Order matters: a 5xx is always transient, a recognised error body
        wins over any other status (legacy endpoints answer 200 with an
        error payload), and only then does the status code decide.
        """
        if 500 <= response.status_code <= 599:
            return Classification(Outcome.TRANSIENT_SERVER_ERROR)

        errors = self.extract_errors(response) if is_json_media_type(response.media_type) else []
        if errors:
            return Classification(Outcome.API_ERROR, errors)

        if not response.successful:
            return Classification(Outcome.HTTP_ERROR)
        return Classification(Outcome.SUCCESS)

    def extract_errors(self, response: ResponseEnvelope) -> List[ApiErrorEntry]:
        """Decodes a recognised API-error envelope from the body.

        Parsing is lenient: only the first JSON value is read, so trailing
        data is ignored. An empty or malformed body yields no errors.
        """
        body = response.body.strip()
        if not body:
            return []
        try:
            payload, _ = _decoder.raw_decode(body)
        except ValueError as e:
            logger.debug(f"Response body is not valid JSON ({e}); treating as unstructured")
            return []
        return _array_errors(payload) or _object_errors(payload)


def _array_errors(payload: Any) -> List[ApiErrorEntry]:
    # {"json": {"errors": [["CODE", "explanation", "field"], ...]}}
    if not isinstance(payload, dict):
        return []
    inner = payload.get("json")
    if not isinstance(inner, dict):
        return []
    raw_errors = inner.get("errors")
    if not isinstance(raw_errors, list):
        return []

    errors: List[ApiErrorEntry] = []
    for entry in raw_errors:
        if not isinstance(entry, (list, tuple)) or not entry:
            continue
        field = entry[2] if len(entry) > 2 and entry[2] else None
        errors.append(ApiErrorEntry(
            code=str(entry[0]),
            explanation=str(entry[1]) if len(entry) > 1 and entry[1] is not None else "",
            field=str(field) if field is not None else None,
        ))
    return errors


def _object_errors(payload: Any) -> List[ApiErrorEntry]:
    # {"reason": "PRIVATE", "explanation": "...", "message": "Forbidden"}
    if not isinstance(payload, dict):
        return []
    reason = payload.get("reason")
    explanation = payload.get("explanation")
    if isinstance(reason, str) and isinstance(explanation, str):
        return [ApiErrorEntry(code=reason, explanation=explanation, field=None)]
    return []

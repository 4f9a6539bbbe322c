"""Cloud function handlers (AWS Lambda style ``handler(event, context)``).

The classifier is created on the first invocation and reused by every later
invocation in the same process. A failure to load the model propagates to
the runtime so the instance is marked unhealthy.
"""

from __future__ import annotations

import base64
import binascii
import logging
import threading
from typing import Any

from tagserve.config import get_settings
from tagserve.logs import configure_logging
from tagserve.ml.errors import ClassifyError, FetchError, InvalidImageError
from tagserve.ml.image_classifier import ImageClassifier

logger = logging.getLogger(__name__)

_classifier: ImageClassifier | None = None
_classifier_lock = threading.Lock()


def get_classifier() -> ImageClassifier:
    """Return the process-wide classifier, loading it on first use."""
    global _classifier  # noqa: PLW0603
    if _classifier is None:
        with _classifier_lock:
            if _classifier is None:
                settings = get_settings()
                configure_logging(settings.log_level)
                _classifier = ImageClassifier.from_settings(settings)
                logger.debug("Loaded model in memory")
    return _classifier


def set_classifier(classifier: ImageClassifier | None) -> None:
    """Install (or clear) the process-wide classifier."""
    global _classifier  # noqa: PLW0603
    with _classifier_lock:
        _classifier = classifier


def _event_body(event: dict[str, Any]) -> bytes:
    body = event.get("body") or b""
    if isinstance(body, str):
        if event.get("isBase64Encoded"):
            try:
                return base64.b64decode(body, validate=True)
            except binascii.Error as exc:
                raise InvalidImageError("Request body is not valid base64") from exc
        return body.encode("utf-8")
    return bytes(body)


def _status_for(exc: ClassifyError) -> int:
    if isinstance(exc, InvalidImageError):
        return 400
    if isinstance(exc, FetchError):
        return 502
    return 500


def raw_handler(event: dict[str, Any], context: object = None) -> dict[str, Any]:
    """Classify the raw image bytes carried in an HTTP-triggered event body."""
    logger.debug("Received request (body %d chars)", len(event.get("body") or ""))
    classifier = get_classifier()
    try:
        result = classifier.classify_from_raw(_event_body(event))
    except ClassifyError as exc:
        logger.warning("Classification failure: %s", exc)
        return {
            "statusCode": _status_for(exc),
            "headers": {"Content-Type": "text/plain"},
            "body": f"Classification failure: '{exc}'",
        }
    return {
        "statusCode": 200,
        "headers": {"Content-Type": "application/json"},
        "body": result.to_json(),
    }


def url_handler(event: dict[str, Any], context: object = None) -> dict[str, Any]:
    """Classify the image at ``event["url"]``; returns ``{"tag", "probability"}``.

    Errors are raised to the runtime, which reports them as a failed invocation.
    """
    url = event.get("url")
    if not isinstance(url, str) or not url:
        raise FetchError("Event has no 'url' field")
    return get_classifier().classify_from_url(url).to_dict(minimal=True)

"""Blocking image download over HTTP.

No retries happen here. A failed fetch is reported to the caller at once.
"""

from __future__ import annotations

import logging

import httpx

from tagserve.ml.errors import FetchError

logger = logging.getLogger(__name__)

_CHUNK_SIZE = 64 * 1024


def fetch_bytes(
    url: str,
    *,
    client: httpx.Client | None = None,
    timeout: float | None = 10.0,
    max_bytes: int | None = None,
) -> bytes:
    """GET ``url`` and return the complete response body.

    Args:
        url: Absolute http(s) URL.
        client: Optional shared client; a short-lived one is used otherwise.
        timeout: Connect/read/write/pool timeout in seconds, ``None`` or 0 for none.
        max_bytes: Reject bodies larger than this many bytes.

    Raises:
        FetchError: On an invalid URL, network failure or timeout, a non-2xx
            status, a truncated body, or an oversized body.
    """
    if client is None:
        with httpx.Client(follow_redirects=True) as own_client:
            return _fetch(own_client, url, timeout=timeout, max_bytes=max_bytes)
    return _fetch(client, url, timeout=timeout, max_bytes=max_bytes)


def _fetch(client: httpx.Client, url: str, *, timeout: float | None, max_bytes: int | None) -> bytes:
    request_timeout = httpx.Timeout(timeout or None)
    try:
        with client.stream("GET", url, timeout=request_timeout) as response:
            if not response.is_success:
                raise FetchError(f"Fetching {url} failed with HTTP {response.status_code}")

            expected = _content_length(response)
            if max_bytes is not None and expected is not None and expected > max_bytes:
                raise FetchError(f"Image at {url} is too large ({expected} bytes > {max_bytes})")

            buf = bytearray()
            for chunk in response.iter_bytes(_CHUNK_SIZE):
                buf.extend(chunk)
                if max_bytes is not None and len(buf) > max_bytes:
                    raise FetchError(f"Image at {url} is too large (> {max_bytes} bytes)")
    except (httpx.InvalidURL, httpx.UnsupportedProtocol) as exc:
        raise FetchError(f"Invalid URL: {url}") from exc
    except httpx.TimeoutException as exc:
        raise FetchError(f"Timed out fetching {url}") from exc
    except httpx.HTTPError as exc:
        raise FetchError(f"Could not read image from {url}: {exc}") from exc

    if expected is not None and len(buf) < expected:
        raise FetchError(f"Could not read image from {url}: got {len(buf)} of {expected} bytes")

    logger.debug("Fetched %d bytes from %s", len(buf), url)
    return bytes(buf)


def _content_length(response: httpx.Response) -> int | None:
    # Content-Length counts encoded bytes; iter_bytes() yields decoded ones.
    value = response.headers.get("content-length")
    if value is None or response.headers.get("content-encoding", "identity") != "identity":
        return None
    try:
        return int(value)
    except ValueError:
        return None

"""requests helpers shared by HTTP-backed providers."""

from __future__ import annotations

from collections.abc import Iterator, Mapping
import json
from typing import Any, Protocol

import requests
from requests import exceptions as requests_exceptions

from ..errors import ProviderError, ProviderFailureError, ProviderTimeout

__all__ = ["SessionProtocol", "create_session", "normalize_error", "post_json", "stream_events"]


class SessionProtocol(Protocol):
    headers: Any

    def post(self, url: str, *args: Any, **kwargs: Any) -> Any:
        ...


def create_session() -> requests.Session:
    return requests.Session()


def normalize_error(exc: Exception) -> Exception:
    if isinstance(exc, ProviderFailureError):
        return exc
    if isinstance(exc, requests_exceptions.Timeout):
        return ProviderTimeout(str(exc) or "request timed out")
    if isinstance(exc, requests_exceptions.HTTPError):
        response = getattr(exc, "response", None)
        status = getattr(response, "status_code", None)
        try:
            code = int(status) if status is not None else None
        except (TypeError, ValueError):
            code = None
        if code in {408, 504}:
            return ProviderTimeout(str(exc))
        return ProviderError(f"HTTP {code}: {exc}" if code is not None else str(exc))
    if isinstance(exc, requests_exceptions.RequestException):
        return ProviderError(str(exc))
    if isinstance(exc, ValueError):
        return ProviderError(f"invalid JSON response: {exc}")
    return exc


def post_json(
    session: SessionProtocol,
    url: str,
    payload: Mapping[str, Any],
    *,
    headers: Mapping[str, str],
    timeout: float,
) -> Any:
    """POST ``payload`` and return the decoded JSON body, translating errors."""
    try:
        response = session.post(url, json=dict(payload), headers=dict(headers), timeout=timeout)
    except Exception as exc:
        raise normalize_error(exc) from exc
    try:
        response.raise_for_status()
        return response.json()
    except Exception as exc:
        raise normalize_error(exc) from exc
    finally:
        close = getattr(response, "close", None)
        if callable(close):
            close()


def _decode_event(raw_line: Any) -> Any:
    decoded = raw_line.decode("utf-8") if isinstance(raw_line, bytes) else str(raw_line)
    decoded = decoded.strip()
    if decoded.startswith("data:"):
        decoded = decoded[len("data:") :].strip()
    if not decoded or decoded == "[DONE]":
        return None
    try:
        return json.loads(decoded)
    except json.JSONDecodeError:
        return None


def stream_events(
    session: SessionProtocol,
    url: str,
    payload: Mapping[str, Any],
    *,
    headers: Mapping[str, str],
    timeout: float,
) -> Iterator[Mapping[str, Any]]:
    """POST with ``stream=True`` and yield each server-sent JSON event."""
    try:
        response = session.post(
            url, json=dict(payload), headers=dict(headers), timeout=timeout, stream=True
        )
    except Exception as exc:
        raise normalize_error(exc) from exc
    try:
        response.raise_for_status()
        for raw_line in response.iter_lines():
            if not raw_line:
                continue
            event = _decode_event(raw_line)
            if isinstance(event, Mapping):
                yield event
    except Exception as exc:
        raise normalize_error(exc) from exc
    finally:
        close = getattr(response, "close", None)
        if callable(close):
            close()

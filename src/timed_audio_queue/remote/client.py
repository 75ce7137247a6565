"""HTTP client for the sounds (recordings) and sound-shares REST API."""

from __future__ import annotations

import json
from dataclasses import dataclass, field
from http.client import HTTPException
from typing import Any, Callable
from urllib.error import HTTPError, URLError
from urllib.parse import quote
from urllib.request import Request, urlopen


class RecordingsSourceError(RuntimeError):
    """Raised when the recordings API cannot be reached or returns garbage."""


@dataclass(slots=True)
class HTTPResult:
    status: int
    headers: dict[str, str] = field(default_factory=dict)
    body: bytes = b""

    def header(self, name: str) -> str | None:
        wanted = name.lower()
        for key, value in self.headers.items():
            if key.lower() == wanted:
                return value
        return None


_HTTPTransport = Callable[[str, str, dict[str, object] | None, dict[str, str], float], HTTPResult]


@dataclass(slots=True)
class RecordingsSnapshot:
    payloads: list[dict[str, Any]]
    server_date: str | None = None


@dataclass(slots=True)
class RecordingsClient:
    base_url: str
    timeout_sec: float = 6.0
    transport: _HTTPTransport | None = None

    def fetch(self) -> RecordingsSnapshot:
        """GET /sounds, keeping the response `Date` header for clock reconciliation."""
        result = self._request("GET", "/sounds")
        decoded = _decode_json(result)
        if not isinstance(decoded, list):
            raise RecordingsSourceError("sounds response must be a JSON list")
        payloads = [item for item in decoded if isinstance(item, dict) and item.get("id") and item.get("file_url")]
        return RecordingsSnapshot(payloads=payloads, server_date=result.header("Date"))

    def list_shares(self) -> list[dict[str, Any]]:
        decoded = _decode_json(self._request("GET", "/sound-shares"))
        if not isinstance(decoded, list):
            raise RecordingsSourceError("sound-shares response must be a JSON list")
        return [item for item in decoded if isinstance(item, dict)]

    def create_share(self, sound_id: str, user_email: str) -> dict[str, Any]:
        result = self._request("POST", "/sound-shares", {"sound_id": sound_id, "user_email": user_email})
        decoded = _decode_json(result)
        if not isinstance(decoded, dict):
            raise RecordingsSourceError("sound-share response must be a JSON object")
        return decoded

    def delete_share(self, share_id: str) -> None:
        self._request("DELETE", f"/sound-shares/{quote(share_id, safe='')}")

    def _request(self, method: str, path: str, payload: dict[str, object] | None = None) -> HTTPResult:
        url = f"{self.base_url.rstrip('/')}{path}"
        headers = {"Accept": "application/json"}
        if payload is not None:
            headers["Content-Type"] = "application/json"
        transport = self.transport or _default_http_transport
        try:
            result = transport(method, url, payload, headers, self.timeout_sec)
        except HTTPError as exc:
            raise RecordingsSourceError(f"{method} {url} failed with HTTP {exc.code}") from exc
        except (URLError, OSError, TimeoutError, HTTPException) as exc:
            raise RecordingsSourceError(f"{method} {url} failed: {exc}") from exc
        if result.status >= 400:
            raise RecordingsSourceError(f"{method} {url} failed with HTTP {result.status}")
        return result


def _default_http_transport(
    method: str,
    url: str,
    payload: dict[str, object] | None,
    headers: dict[str, str],
    timeout_sec: float,
) -> HTTPResult:
    body = json.dumps(payload).encode("utf-8") if payload is not None else None
    req = Request(url, data=body, headers=headers, method=method)
    with urlopen(req, timeout=timeout_sec) as resp:  # noqa: S310
        return HTTPResult(status=resp.status, headers=dict(resp.headers.items()), body=resp.read())


def _decode_json(result: HTTPResult) -> Any:
    if not result.body:
        return None
    try:
        return json.loads(result.body.decode("utf-8"))
    except (UnicodeDecodeError, json.JSONDecodeError) as exc:
        raise RecordingsSourceError(f"response decode failed: {exc}") from exc

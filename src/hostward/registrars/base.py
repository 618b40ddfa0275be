"""Shared types for registrar adapters.

Every adapter reports records in one normalized shape:

    DNSRecord(type="A", name="@", content="75.2.60.5", ttl=3600)
    DNSRecord(type="CNAME", name="www", content="site.netlify.app", ttl=3600)

Adapter functions raise RegistrarError; the package-level entry points catch
it and return it as a value, so nothing registrar-specific escapes.
"""

from __future__ import annotations

from collections.abc import Awaitable, Callable
from dataclasses import dataclass, field
from typing import Any, NamedTuple

import httpx
import structlog

from hostward.core.exceptions import RegistrarError, RegistrarErrorKind

logger = structlog.get_logger()


@dataclass
class DNSRecord:
    """A DNS record in registrar-neutral form. ``name`` is ``@`` or a bare label."""

    type: str
    name: str
    content: str
    ttl: int = 3600
    priority: int | None = None
    id: str | None = None

    def to_dict(self) -> dict[str, Any]:
        data: dict[str, Any] = {
            "type": self.type,
            "name": self.name,
            "content": self.content,
            "ttl": self.ttl,
        }
        if self.priority is not None:
            data["priority"] = self.priority
        if self.id is not None:
            data["id"] = self.id
        return data

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> DNSRecord:
        return cls(
            type=str(data["type"]).upper(),
            name=str(data.get("name") or "@"),
            content=str(data.get("content") or data.get("value") or ""),
            ttl=int(data.get("ttl") or 3600),
            priority=data.get("priority"),
            id=data.get("id"),
        )


@dataclass
class RegistrarCredential:
    """Per-call registrar credentials. Never persisted; secrets hidden from repr."""

    registrar_code: str
    api_key: str | None = field(default=None, repr=False)
    api_secret: str | None = field(default=None, repr=False)
    user_id: str | None = None
    zone: str | None = None
    client_ip: str | None = None

    def require(self, *names: str) -> None:
        """Fail with an authentication error if any named field is empty."""
        missing = [name for name in names if not getattr(self, name)]
        if missing:
            raise RegistrarError(
                self.registrar_code,
                f"Missing credentials: {', '.join(missing)}",
                RegistrarErrorKind.AUTHENTICATION,
            )


@dataclass
class RegistrarResult:
    """Records or an error, never both."""

    registrar_code: str
    records: list[DNSRecord] = field(default_factory=list)
    error: RegistrarError | None = None

    @property
    def ok(self) -> bool:
        return self.error is None

    def to_dict(self) -> dict[str, Any]:
        return {
            "registrar": self.registrar_code,
            "success": self.ok,
            "records": [record.to_dict() for record in self.records],
            "error": _error_dict(self.error),
        }


@dataclass
class RecordChangeResult:
    """Outcome of pushing records to a registrar."""

    registrar_code: str
    created: int = 0
    updated: int = 0
    unchanged: int = 0
    failed: int = 0
    errors: list[str] = field(default_factory=list)
    error: RegistrarError | None = None

    @property
    def success(self) -> bool:
        return self.error is None and self.failed == 0

    def record_failure(self, record: DNSRecord, message: str) -> None:
        self.failed += 1
        self.errors.append(f"{record.type} {record.name}: {message}")

    def to_dict(self) -> dict[str, Any]:
        return {
            "registrar": self.registrar_code,
            "success": self.success,
            "created": self.created,
            "updated": self.updated,
            "unchanged": self.unchanged,
            "failed": self.failed,
            "errors": list(self.errors),
            "error": _error_dict(self.error),
        }


def _error_dict(error: RegistrarError | None) -> dict[str, str] | None:
    if error is None:
        return None
    return {"kind": error.kind.value, "message": error.message}


ListRecords = Callable[[str, RegistrarCredential, httpx.AsyncClient], Awaitable[list[DNSRecord]]]
UpsertRecords = Callable[
    [str, list[DNSRecord], RegistrarCredential, httpx.AsyncClient],
    Awaitable[RecordChangeResult],
]


class RegistrarAdapter(NamedTuple):
    """Lookup-table entry: a registrar's display name and its functions."""

    name: str
    list_records: ListRecords
    upsert_records: UpsertRecords | None = None


# A name holds at most one record of these types.
SINGLE_VALUE_TYPES = frozenset({"CNAME"})


def _comparable(record: DNSRecord) -> str:
    content = record.content.strip().strip('"')
    if record.type == "TXT":
        return content
    return content.rstrip(".").lower()


def txt_key(content: str) -> str | None:
    """The ``key=`` part of a TXT value: ``blo-verification=abc`` -> ``blo-verification=``."""
    key, sep, _ = content.strip().strip('"').partition("=")
    if not sep or not key or " " in key:
        return None
    return f"{key}="


def _find_match(
    record: DNSRecord,
    existing: list[DNSRecord],
    claimed: set[int],
) -> int | None:
    candidates = [
        i
        for i, current in enumerate(existing)
        if i not in claimed and current.type == record.type and current.name == record.name
    ]
    for i in candidates:
        if _comparable(existing[i]) == _comparable(record):
            return i
    if record.type in SINGLE_VALUE_TYPES and candidates:
        return candidates[0]
    if record.type == "TXT":
        key = txt_key(record.content)
        if key:
            for i in candidates:
                if existing[i].content.strip().strip('"').startswith(key):
                    return i
    return None


def pair_with_existing(
    records: list[DNSRecord],
    existing: list[DNSRecord],
) -> list[tuple[DNSRecord, DNSRecord | None]]:
    """Pair each desired record with the existing record it replaces, if any.

    Both lists must use relative names and upper-case types. Matching rules:
    - identical content always matches (the record is already in place)
    - single-value types (CNAME) replace whatever sits at the name
    - a TXT record only replaces a TXT with the same ``key=`` prefix, so an
      SPF record next to the verification token is left alone
    - other multi-value types (A, MX, ...) never replace a different value

    Each existing record is paired at most once; unpaired records are new.
    """
    claimed: set[int] = set()
    pairs: list[tuple[DNSRecord, DNSRecord | None]] = []
    for record in records:
        index = _find_match(record, existing, claimed)
        if index is None:
            pairs.append((record, None))
        else:
            claimed.add(index)
            pairs.append((record, existing[index]))
    return pairs


def is_unchanged(record: DNSRecord, current: DNSRecord) -> bool:
    return _comparable(record) == _comparable(current)


def decode_json(response: httpx.Response, registrar_code: str, expected: type = dict) -> Any:
    """Decode a successful response body, failing as a registrar API error.

    Raises:
        RegistrarError: If the body is not JSON or not of the expected shape.
    """
    try:
        body = response.json()
    except ValueError as e:
        raise RegistrarError(
            registrar_code,
            f"Invalid JSON response (HTTP {response.status_code}): {response.text[:100]!r}",
        ) from e
    if not isinstance(body, expected):
        raise RegistrarError(
            registrar_code,
            f"Unexpected response shape: expected {expected.__name__}, "
            f"got {type(body).__name__}",
        )
    return body


def _error_message(response: httpx.Response) -> str:
    """Pull a human-readable message out of a JSON error body."""
    try:
        body = response.json()
    except ValueError:
        return response.text[:200] or response.reason_phrase
    if isinstance(body, dict):
        errors = body.get("errors")
        if isinstance(errors, list) and errors:
            return "; ".join(
                str(e.get("message", e)) if isinstance(e, dict) else str(e) for e in errors
            )
        if body.get("message"):
            return str(body["message"])
    return response.reason_phrase


async def send(
    client: httpx.AsyncClient,
    registrar_code: str,
    method: str,
    url: str,
    **kwargs: Any,
) -> httpx.Response:
    """Send a request and translate failures into RegistrarError.

    401/403 become authentication errors and 404 becomes zone-not-found;
    other 4xx/5xx responses become API errors carrying the registrar's message.
    """
    try:
        response = await client.request(method, url, **kwargs)
    except httpx.TimeoutException as e:
        raise RegistrarError(
            registrar_code, f"Request timed out: {method} {url}", RegistrarErrorKind.TRANSPORT
        ) from e
    except httpx.RequestError as e:
        raise RegistrarError(
            registrar_code, f"Connection failed: {e}", RegistrarErrorKind.TRANSPORT
        ) from e

    if response.is_success:
        return response

    message = _error_message(response)
    logger.info(
        "Registrar request failed",
        registrar=registrar_code,
        method=method,
        status=response.status_code,
        error=message,
    )
    if response.status_code in (401, 403):
        raise RegistrarError(
            registrar_code,
            f"Authentication failed: {message}",
            RegistrarErrorKind.AUTHENTICATION,
        )
    if response.status_code == 404:
        raise RegistrarError(
            registrar_code,
            f"Domain not found in this account: {message}",
            RegistrarErrorKind.ZONE_NOT_FOUND,
        )
    raise RegistrarError(registrar_code, f"HTTP {response.status_code}: {message}")

"""Public DNS lookups for domain verification.

This checks what the world actually sees, independent of any registrar
credentials. Each lookup is bounded by a timeout and never raises: failures
(NXDOMAIN, timeouts, resolver errors) are captured on the returned
DNSLookup so one broken record type cannot abort the others.

Example:
    resolver = DNSResolver(timeout=5.0)
    txt = await resolver.resolve_txt("example.com")
    if txt.error:
        print("lookup failed:", txt.error)
    else:
        print(txt.values)
"""

from __future__ import annotations

import asyncio
from dataclasses import asdict, dataclass, field
from typing import Any

import aiodns
import structlog

from hostward.observability.metrics import DNS_LOOKUPS

logger = structlog.get_logger()

_ERROR_MESSAGES = {
    aiodns.error.ARES_ENOTFOUND: "domain does not exist (NXDOMAIN)",
    aiodns.error.ARES_ETIMEOUT: "DNS server timed out",
    aiodns.error.ARES_ECONNREFUSED: "DNS server refused the connection",
    aiodns.error.ARES_ESERVFAIL: "DNS server failure (SERVFAIL)",
    aiodns.error.ARES_EREFUSED: "DNS query refused",
}

# Answers that mean "the name exists but has no record of this type".
_EMPTY_ANSWER_CODES = {aiodns.error.ARES_ENODATA}


@dataclass
class DNSLookup:
    """Outcome of one record-type lookup."""

    record_type: str
    name: str
    values: list[str] = field(default_factory=list)
    error: str | None = None
    timed_out: bool = False

    @property
    def ok(self) -> bool:
        return self.error is None

    def to_dict(self) -> dict[str, Any]:
        return asdict(self)


def _decode(value: Any) -> str:
    if isinstance(value, bytes):
        return value.decode("utf-8", errors="replace")
    return str(value)


def _flatten_txt(text: Any) -> str:
    """Join multi-part TXT strings with spaces."""
    if isinstance(text, (list, tuple)):
        return " ".join(_decode(part) for part in text)
    return _decode(text)


class DNSResolver:
    """Resolves TXT, A, CNAME and NS records via public DNS."""

    def __init__(
        self,
        timeout: float = 5.0,
        nameservers: list[str] | None = None,
        resolver: aiodns.DNSResolver | None = None,
    ) -> None:
        """Initialize DNS resolver.

        Args:
            timeout: Upper bound in seconds for a single lookup.
            nameservers: Optional nameservers instead of the system ones.
            resolver: Pre-built aiodns resolver (tests inject a fake).
        """
        self.timeout = timeout
        self.nameservers = nameservers or None
        self._resolver = resolver

    def _get_resolver(self) -> aiodns.DNSResolver:
        """Create the aiodns resolver lazily, inside the running loop."""
        if self._resolver is None:
            self._resolver = aiodns.DNSResolver(
                nameservers=self.nameservers,
                timeout=self.timeout,
                tries=1,
            )
        return self._resolver

    async def _query(self, name: str, record_type: str) -> tuple[Any, DNSLookup]:
        lookup = DNSLookup(record_type=record_type, name=name)
        resolver = self._get_resolver()
        try:
            answer = await asyncio.wait_for(
                resolver.query(name, record_type),
                timeout=self.timeout,
            )
        except TimeoutError:
            lookup.error = f"DNS lookup timed out after {self.timeout:g}s"
            lookup.timed_out = True
            DNS_LOOKUPS.labels(record_type, "timeout").inc()
            logger.info("DNS lookup timed out", name=name, record_type=record_type)
            return None, lookup
        except aiodns.error.DNSError as e:
            code = e.args[0] if e.args else None
            if code in _EMPTY_ANSWER_CODES:
                DNS_LOOKUPS.labels(record_type, "empty").inc()
                return None, lookup
            lookup.error = _ERROR_MESSAGES.get(code) or (
                str(e.args[1]) if len(e.args) > 1 else "DNS lookup failed"
            )
            lookup.timed_out = code == aiodns.error.ARES_ETIMEOUT
            DNS_LOOKUPS.labels(record_type, "timeout" if lookup.timed_out else "error").inc()
            logger.info(
                "DNS lookup failed",
                name=name,
                record_type=record_type,
                error=lookup.error,
            )
            return None, lookup

        DNS_LOOKUPS.labels(record_type, "ok" if answer else "empty").inc()
        return answer, lookup

    async def resolve_txt(self, name: str) -> DNSLookup:
        """Resolve TXT records; multi-part values are joined with spaces."""
        answer, lookup = await self._query(name, "TXT")
        if answer:
            lookup.values = [_flatten_txt(record.text) for record in answer]
        return lookup

    async def resolve_a(self, name: str) -> DNSLookup:
        """Resolve IPv4 addresses."""
        answer, lookup = await self._query(name, "A")
        if answer:
            lookup.values = [record.host for record in answer]
        return lookup

    async def resolve_ns(self, name: str) -> DNSLookup:
        """Resolve the authoritative nameservers, lowercased without trailing dots."""
        answer, lookup = await self._query(name, "NS")
        if answer:
            lookup.values = [_decode(record.host).rstrip(".").lower() for record in answer]
        return lookup

    async def resolve_cname(self, name: str) -> DNSLookup:
        """Resolve the CNAME target(s), without trailing dots."""
        answer, lookup = await self._query(name, "CNAME")
        if answer:
            records = answer if isinstance(answer, (list, tuple)) else [answer]
            lookup.values = [_decode(record.cname).rstrip(".").lower() for record in records]
        return lookup

    async def is_resolvable(self, name: str) -> bool:
        """Quick check that a name resolves to at least one IPv4 address."""
        lookup = await self.resolve_a(name)
        return bool(lookup.values)

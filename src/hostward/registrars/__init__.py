"""Hostward registrar adapters.

Reads (and, where the registrar allows it, writes) DNS records through each
registrar's management API and normalizes them to one shape.

Supported registrars:
- cloudflare: REST + JSON, bearer token, zone lookup
- namecheap: XML over query string, read-only
- godaddy: REST + JSON, sso-key header
- digitalocean: REST + JSON, bearer token

Usage:
    from hostward.registrars import RegistrarCredential, list_records

    credentials = RegistrarCredential("cloudflare", api_key="cf-token")
    result = await list_records("example.com", credentials)

    if result.ok:
        for record in result.records:
            print(record.type, record.name, record.content)
    else:
        print(result.error)

Registrars can also be guessed from public NS records with
``detect_registrar(domain)``.

Adding a registrar means writing one module with ``list_records`` (and
optionally ``upsert_records``) and adding an entry to REGISTRAR_ADAPTERS.
"""

from __future__ import annotations

import asyncio
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager
from dataclasses import replace

import httpx
import structlog

from hostward.core.exceptions import RegistrarError, RegistrarErrorKind
from hostward.domains.names import relative_record_name, validate_domain
from hostward.observability.metrics import REGISTRAR_CALLS
from hostward.registrars import cloudflare, digitalocean, godaddy, namecheap
from hostward.registrars.base import (
    DNSRecord,
    RecordChangeResult,
    RegistrarAdapter,
    RegistrarCredential,
    RegistrarResult,
)
from hostward.registrars.detection import (
    NAMESERVER_PATTERNS,
    RegistrarDetection,
    detect_registrar,
    identify_registrar,
)

logger = structlog.get_logger()

DEFAULT_TIMEOUT = 10.0

REGISTRAR_ADAPTERS: dict[str, RegistrarAdapter] = {
    "cloudflare": RegistrarAdapter(
        "Cloudflare", cloudflare.list_records, cloudflare.upsert_records
    ),
    "namecheap": RegistrarAdapter("Namecheap", namecheap.list_records),
    "godaddy": RegistrarAdapter("GoDaddy", godaddy.list_records, godaddy.upsert_records),
    "digitalocean": RegistrarAdapter(
        "DigitalOcean", digitalocean.list_records, digitalocean.upsert_records
    ),
}


def get_adapter(registrar_code: str) -> RegistrarAdapter:
    """Get a registrar adapter by code.

    Raises:
        RegistrarError: If no adapter is registered for the code.
    """
    adapter = REGISTRAR_ADAPTERS.get(registrar_code.lower())
    if adapter is None:
        raise RegistrarError(
            registrar_code,
            f"Unsupported registrar: {registrar_code!r}. "
            f"Supported: {', '.join(sorted(REGISTRAR_ADAPTERS))}",
            RegistrarErrorKind.UNKNOWN_REGISTRAR,
        )
    return adapter


@asynccontextmanager
async def _client_scope(
    client: httpx.AsyncClient | None,
    timeout: float,
) -> AsyncIterator[httpx.AsyncClient]:
    """Use the caller's client, or a short-lived one closed on exit."""
    if client is not None:
        yield client
        return
    async with httpx.AsyncClient(timeout=timeout) as owned:
        yield owned


def normalize_records(records: list[DNSRecord], domain: str) -> list[DNSRecord]:
    """Reduce every record name to ``@`` or a bare label."""
    return [
        replace(record, type=record.type.upper(), name=relative_record_name(record.name, domain))
        for record in records
    ]


async def list_records(
    domain: str,
    credentials: RegistrarCredential,
    client: httpx.AsyncClient | None = None,
    timeout: float = DEFAULT_TIMEOUT,
) -> RegistrarResult:
    """List a domain's records at its registrar.

    Record names are relative to the zone that holds them: ``@`` is the zone
    apex, which for a subdomain looked up in its parent zone is the parent.
    Registrar failures are returned on ``result.error`` with an empty record
    list; they are never raised.

    Raises:
        InvalidDomainFormat: If the domain is malformed.
    """
    domain = validate_domain(domain)
    code = credentials.registrar_code.lower()
    try:
        adapter = get_adapter(code)
        async with _client_scope(client, timeout) as http:
            records = await adapter.list_records(domain, credentials, http)
    except RegistrarError as e:
        REGISTRAR_CALLS.labels(code, "list", e.kind.value).inc()
        logger.warning("Registrar lookup failed", registrar=code, domain=domain, error=e.message)
        return RegistrarResult(code, error=e)

    REGISTRAR_CALLS.labels(code, "list", "ok").inc()
    logger.info("Registrar records listed", registrar=code, domain=domain, count=len(records))
    return RegistrarResult(code, records=normalize_records(records, domain))


async def list_records_many(
    domain: str,
    credentials_list: list[RegistrarCredential],
    client: httpx.AsyncClient | None = None,
    timeout: float = DEFAULT_TIMEOUT,
) -> list[RegistrarResult]:
    """Query several registrars concurrently; results keep input order."""
    domain = validate_domain(domain)
    async with _client_scope(client, timeout) as http:
        return list(
            await asyncio.gather(
                *(list_records(domain, credentials, http) for credentials in credentials_list)
            )
        )


async def update_records(
    domain: str,
    records: list[DNSRecord],
    credentials: RegistrarCredential,
    client: httpx.AsyncClient | None = None,
    timeout: float = DEFAULT_TIMEOUT,
) -> RecordChangeResult:
    """Create or update records at the registrar.

    Per-record failures are counted on the result. Failures that stop the
    whole operation (auth, unknown zone, unsupported registrar) are returned
    on ``result.error``.

    Raises:
        InvalidDomainFormat: If the domain is malformed.
    """
    domain = validate_domain(domain)
    code = credentials.registrar_code.lower()
    try:
        adapter = get_adapter(code)
        if adapter.upsert_records is None:
            raise RegistrarError(
                code,
                f"{adapter.name} does not support updating DNS records",
                RegistrarErrorKind.UNSUPPORTED,
            )
        async with _client_scope(client, timeout) as http:
            result = await adapter.upsert_records(
                domain, normalize_records(records, domain), credentials, http
            )
    except RegistrarError as e:
        REGISTRAR_CALLS.labels(code, "update", e.kind.value).inc()
        logger.warning("Registrar update failed", registrar=code, domain=domain, error=e.message)
        return RecordChangeResult(code, failed=len(records), error=e)

    REGISTRAR_CALLS.labels(code, "update", "ok" if result.success else "partial").inc()
    logger.info(
        "Registrar records updated",
        registrar=code,
        domain=domain,
        created=result.created,
        updated=result.updated,
        failed=result.failed,
    )
    return result


__all__ = [
    "NAMESERVER_PATTERNS",
    "REGISTRAR_ADAPTERS",
    "DNSRecord",
    "RecordChangeResult",
    "RegistrarAdapter",
    "RegistrarCredential",
    "RegistrarDetection",
    "RegistrarResult",
    "detect_registrar",
    "get_adapter",
    "identify_registrar",
    "list_records",
    "list_records_many",
    "normalize_records",
    "update_records",
]

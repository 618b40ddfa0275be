"""Cloudflare DNS (REST + JSON, bearer token).

Records are scoped to a zone. The zone comes from ``credentials.zone`` (an id)
when given, otherwise it is looked up by name, walking up to parent domains
so ``blog.example.com`` finds the ``example.com`` zone. Cloudflare returns
fully-qualified names; they are made relative to the zone that holds them.
"""

from __future__ import annotations

from typing import Any, NamedTuple

import httpx

from hostward.core.exceptions import RegistrarError, RegistrarErrorKind
from hostward.domains.names import absolute_record_name, relative_record_name
from hostward.registrars.base import (
    DNSRecord,
    RecordChangeResult,
    RegistrarCredential,
    decode_json,
    is_unchanged,
    pair_with_existing,
    send,
)

CODE = "cloudflare"
API_URL = "https://api.cloudflare.com/client/v4"
PAGE_SIZE = 100


class Zone(NamedTuple):
    id: str
    name: str


def _headers(credentials: RegistrarCredential) -> dict[str, str]:
    credentials.require("api_key")
    return {
        "Authorization": f"Bearer {credentials.api_key}",
        "Content-Type": "application/json",
    }


def _unwrap(response: httpx.Response) -> dict[str, Any]:
    """Cloudflare wraps every reply in {success, errors, result}."""
    body = decode_json(response, CODE)
    if not body.get("success", False):
        messages = [e.get("message", "unknown error") for e in body.get("errors", [])]
        raise RegistrarError(CODE, "; ".join(messages) or "Cloudflare API error")
    return body


async def find_zone(
    domain: str,
    credentials: RegistrarCredential,
    client: httpx.AsyncClient,
) -> Zone:
    headers = _headers(credentials)
    if credentials.zone:
        response = await send(
            client, CODE, "GET", f"{API_URL}/zones/{credentials.zone}", headers=headers
        )
        result = _unwrap(response).get("result") or {}
        return Zone(credentials.zone, str(result.get("name") or domain).lower())

    labels = domain.split(".")
    for i in range(len(labels) - 1):
        candidate = ".".join(labels[i:])
        response = await send(
            client, CODE, "GET", f"{API_URL}/zones", params={"name": candidate}, headers=headers
        )
        zones = _unwrap(response).get("result") or []
        if zones:
            return Zone(zones[0]["id"], str(zones[0].get("name") or candidate).lower())

    raise RegistrarError(
        CODE,
        f"No Cloudflare zone found for {domain}",
        RegistrarErrorKind.ZONE_NOT_FOUND,
    )


async def _fetch(
    zone: Zone,
    credentials: RegistrarCredential,
    client: httpx.AsyncClient,
) -> list[DNSRecord]:
    headers = _headers(credentials)
    records: list[DNSRecord] = []
    page = 1
    while True:
        response = await send(
            client,
            CODE,
            "GET",
            f"{API_URL}/zones/{zone.id}/dns_records",
            params={"page": page, "per_page": PAGE_SIZE},
            headers=headers,
        )
        body = _unwrap(response)
        records.extend(
            DNSRecord(
                id=raw.get("id"),
                type=str(raw["type"]).upper(),
                name=relative_record_name(raw["name"], zone.name),
                content=raw["content"],
                ttl=raw.get("ttl") or 1,
                priority=raw.get("priority"),
            )
            for raw in body.get("result") or []
        )
        total_pages = (body.get("result_info") or {}).get("total_pages") or 1
        if page >= total_pages:
            return records
        page += 1


async def list_records(
    domain: str,
    credentials: RegistrarCredential,
    client: httpx.AsyncClient,
) -> list[DNSRecord]:
    zone = await find_zone(domain, credentials, client)
    return await _fetch(zone, credentials, client)


async def upsert_records(
    domain: str,
    records: list[DNSRecord],
    credentials: RegistrarCredential,
    client: httpx.AsyncClient,
) -> RecordChangeResult:
    """Replace matched records in place and create the rest."""
    zone = await find_zone(domain, credentials, client)
    existing = await _fetch(zone, credentials, client)
    headers = _headers(credentials)
    result = RecordChangeResult(CODE)

    # Names arrive relative to ``domain``; re-anchor them on the zone.
    desired = [
        DNSRecord(
            type=record.type,
            name=relative_record_name(absolute_record_name(record.name, domain), zone.name),
            content=record.content,
            ttl=record.ttl,
            priority=record.priority,
        )
        for record in records
    ]

    for record, current in pair_with_existing(desired, existing):
        if current is not None and is_unchanged(record, current):
            result.unchanged += 1
            continue

        payload: dict[str, Any] = {
            "type": record.type,
            "name": absolute_record_name(record.name, zone.name),
            "content": record.content,
            "ttl": record.ttl,
        }
        if record.priority is not None:
            payload["priority"] = record.priority

        try:
            if current is not None:
                response = await send(
                    client,
                    CODE,
                    "PUT",
                    f"{API_URL}/zones/{zone.id}/dns_records/{current.id}",
                    json=payload,
                    headers=headers,
                )
                _unwrap(response)
                result.updated += 1
            else:
                response = await send(
                    client,
                    CODE,
                    "POST",
                    f"{API_URL}/zones/{zone.id}/dns_records",
                    json=payload,
                    headers=headers,
                )
                _unwrap(response)
                result.created += 1
        except RegistrarError as e:
            result.record_failure(record, e.message)

    return result

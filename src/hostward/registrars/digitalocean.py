"""DigitalOcean DNS (REST + JSON, bearer token, ``domain_records`` envelope)."""

from __future__ import annotations

from typing import Any

import httpx

from hostward.core.exceptions import RegistrarError
from hostward.domains.names import relative_record_name
from hostward.registrars.base import (
    DNSRecord,
    RecordChangeResult,
    RegistrarCredential,
    decode_json,
    is_unchanged,
    pair_with_existing,
    send,
)

CODE = "digitalocean"
API_URL = "https://api.digitalocean.com/v2"
PAGE_SIZE = 200


def _headers(credentials: RegistrarCredential) -> dict[str, str]:
    credentials.require("api_key")
    return {
        "Authorization": f"Bearer {credentials.api_key}",
        "Content-Type": "application/json",
    }


def _to_record(raw: dict[str, Any], domain: str) -> DNSRecord:
    return DNSRecord(
        id=str(raw["id"]) if raw.get("id") is not None else None,
        type=str(raw["type"]).upper(),
        name=relative_record_name(raw.get("name") or "@", domain),
        content=raw.get("data", ""),
        ttl=raw.get("ttl") or 1800,
        priority=raw.get("priority"),
    )


async def list_records(
    domain: str,
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
            f"{API_URL}/domains/{domain}/records",
            params={"page": page, "per_page": PAGE_SIZE},
            headers=headers,
        )
        body = decode_json(response, CODE)
        records.extend(_to_record(raw, domain) for raw in body.get("domain_records") or [])
        pages = (body.get("links") or {}).get("pages") or {}
        if not pages.get("next"):
            return records
        page += 1


async def upsert_records(
    domain: str,
    records: list[DNSRecord],
    credentials: RegistrarCredential,
    client: httpx.AsyncClient,
) -> RecordChangeResult:
    """Replace matched records in place and create the rest."""
    existing = await list_records(domain, credentials, client)
    headers = _headers(credentials)
    result = RecordChangeResult(CODE)

    for record, current in pair_with_existing(records, existing):
        if current is not None and is_unchanged(record, current):
            result.unchanged += 1
            continue

        payload: dict[str, Any] = {
            "type": record.type,
            "name": record.name,
            "data": record.content,
            "ttl": record.ttl,
        }
        if record.priority is not None:
            payload["priority"] = record.priority

        try:
            if current is not None:
                await send(
                    client,
                    CODE,
                    "PUT",
                    f"{API_URL}/domains/{domain}/records/{current.id}",
                    json=payload,
                    headers=headers,
                )
                result.updated += 1
            else:
                await send(
                    client,
                    CODE,
                    "POST",
                    f"{API_URL}/domains/{domain}/records",
                    json=payload,
                    headers=headers,
                )
                result.created += 1
        except RegistrarError as e:
            result.record_failure(record, e.message)

    return result

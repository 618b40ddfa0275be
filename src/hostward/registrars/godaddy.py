"""GoDaddy DNS (REST + JSON, ``sso-key`` auth header).

GoDaddy records carry no ids. Writes go through ``PUT /records/<type>``,
which replaces every record of that type, so existing records of the type
that are not being replaced are sent back unchanged.
"""

from __future__ import annotations

from collections import defaultdict
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

CODE = "godaddy"
API_URL = "https://api.godaddy.com/v1"


def _headers(credentials: RegistrarCredential) -> dict[str, str]:
    credentials.require("api_key", "api_secret")
    return {
        "Authorization": f"sso-key {credentials.api_key}:{credentials.api_secret}",
        "Accept": "application/json",
    }


def _to_record(raw: dict[str, Any], domain: str) -> DNSRecord:
    return DNSRecord(
        type=str(raw["type"]).upper(),
        name=relative_record_name(raw.get("name") or "@", domain),
        content=raw.get("data", ""),
        ttl=raw.get("ttl") or 3600,
        priority=raw.get("priority"),
    )


def _to_payload(record: DNSRecord) -> dict[str, Any]:
    payload: dict[str, Any] = {
        "name": record.name,
        "data": record.content,
        "ttl": max(record.ttl, 600),
    }
    if record.priority is not None:
        payload["priority"] = record.priority
    return payload


async def list_records(
    domain: str,
    credentials: RegistrarCredential,
    client: httpx.AsyncClient,
) -> list[DNSRecord]:
    response = await send(
        client,
        CODE,
        "GET",
        f"{API_URL}/domains/{domain}/records",
        headers=_headers(credentials),
    )
    return [_to_record(raw, domain) for raw in decode_json(response, CODE, list)]


async def upsert_records(
    domain: str,
    records: list[DNSRecord],
    credentials: RegistrarCredential,
    client: httpx.AsyncClient,
) -> RecordChangeResult:
    existing = await list_records(domain, credentials, client)
    headers = _headers(credentials)
    result = RecordChangeResult(CODE)

    by_type: dict[str, list[DNSRecord]] = defaultdict(list)
    for record in records:
        by_type[record.type.upper()].append(record)

    for record_type, changes in by_type.items():
        current = [r for r in existing if r.type == record_type]
        pairs = pair_with_existing(changes, current)
        replaced = {id(match) for _, match in pairs if match is not None}
        kept = [r for r in current if id(r) not in replaced]

        if all(match is not None and is_unchanged(record, match) for record, match in pairs):
            result.unchanged += len(changes)
            continue

        payload = [_to_payload(r) for r in kept + changes]
        try:
            await send(
                client,
                CODE,
                "PUT",
                f"{API_URL}/domains/{domain}/records/{record_type}",
                json=payload,
                headers=headers,
            )
        except RegistrarError as e:
            for record in changes:
                result.record_failure(record, e.message)
            continue

        for record, match in pairs:
            if match is None:
                result.created += 1
            elif is_unchanged(record, match):
                result.unchanged += 1
            else:
                result.updated += 1

    return result

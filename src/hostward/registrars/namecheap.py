"""Namecheap DNS (XML over query string).

    GET https://api.namecheap.com/xml.response
        ?ApiUser=..&ApiKey=..&UserName=..&ClientIp=..
        &Command=namecheap.domains.dns.getHosts&SLD=example&TLD=com

    <ApiResponse Status="OK">
      <CommandResponse>
        <DomainDNSGetHostsResult Domain="example.com">
          <host HostId="1" Name="@" Type="A" Address="75.2.60.5" TTL="1800"/>
        </DomainDNSGetHostsResult>
      </CommandResponse>
    </ApiResponse>

Namecheap's setHosts replaces the whole zone in one call, so writes are not
offered through this adapter.
"""

from __future__ import annotations

import httpx
from lxml import etree

from hostward.core.exceptions import RegistrarError, RegistrarErrorKind
from hostward.registrars.base import DNSRecord, RegistrarCredential, send

CODE = "namecheap"
API_URL = "https://api.namecheap.com/xml.response"

_AUTH_HINTS = ("api key", "apikey", "apiuser", "username", "whitelist", "ip address")


def split_domain(domain: str) -> tuple[str, str]:
    """Split into Namecheap's SLD/TLD pair: example.co.uk -> (example, co.uk)."""
    sld, _, tld = domain.partition(".")
    return sld, tld


def _check_status(root: etree._Element) -> None:
    if (root.get("Status") or "").upper() != "ERROR":
        return
    messages = [(el.text or "").strip() for el in root.iter("{*}Error")]
    message = "; ".join(m for m in messages if m) or "Namecheap API error"
    lowered = message.lower()
    if any(hint in lowered for hint in _AUTH_HINTS):
        kind = RegistrarErrorKind.AUTHENTICATION
    elif "domain" in lowered and ("not found" in lowered or "not associated" in lowered):
        kind = RegistrarErrorKind.ZONE_NOT_FOUND
    else:
        kind = RegistrarErrorKind.API
    raise RegistrarError(CODE, message, kind)


def parse_hosts(content: bytes) -> list[DNSRecord]:
    """Parse a getHosts response body into normalized records."""
    try:
        root = etree.fromstring(content)
    except etree.XMLSyntaxError as e:
        raise RegistrarError(CODE, f"Invalid XML response: {e}") from e

    _check_status(root)

    records = []
    for host in root.iter("{*}host"):
        record_type = (host.get("Type") or "").upper()
        mx_pref = host.get("MXPref")
        records.append(
            DNSRecord(
                id=host.get("HostId"),
                type=record_type,
                name=host.get("Name") or "@",
                content=host.get("Address") or "",
                ttl=int(host.get("TTL") or 1800),
                priority=int(mx_pref) if record_type == "MX" and mx_pref else None,
            )
        )
    return records


async def list_records(
    domain: str,
    credentials: RegistrarCredential,
    client: httpx.AsyncClient,
) -> list[DNSRecord]:
    credentials.require("api_key", "user_id", "client_ip")
    sld, tld = split_domain(domain)
    params = {
        "ApiUser": credentials.user_id,
        "ApiKey": credentials.api_key,
        "UserName": credentials.user_id,
        "ClientIp": credentials.client_ip,
        "Command": "namecheap.domains.dns.getHosts",
        "SLD": sld,
        "TLD": tld,
    }
    response = await send(client, CODE, "GET", API_URL, params=params)
    return parse_hosts(response.content)

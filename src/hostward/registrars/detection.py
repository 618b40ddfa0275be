"""Registrar detection from a domain's nameservers.

The NS records of a zone usually name the DNS host, which for most users is
also where records are managed:

    example.com  NS  ada.ns.cloudflare.com      -> cloudflare
    example.com  NS  dns1.registrar-servers.com -> namecheap
    example.com  NS  ns07.domaincontrol.com     -> godaddy
    example.com  NS  ns1.digitalocean.com       -> digitalocean

Subdomains have no NS records of their own, so the lookup walks up to the
parent until one answers.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any

import structlog

from hostward.domains.names import validate_domain
from hostward.domains.resolver import DNSResolver

logger = structlog.get_logger()

# Keys are registrar adapter codes.
NAMESERVER_PATTERNS: dict[str, tuple[str, ...]] = {
    "cloudflare": ("cloudflare.com",),
    "namecheap": ("registrar-servers.com", "namecheap.com"),
    "godaddy": ("domaincontrol.com", "godaddy.com"),
    "digitalocean": ("digitalocean.com",),
}


@dataclass
class RegistrarDetection:
    """Which registrar serves a domain's DNS, if recognizable."""

    domain: str
    registrar_code: str | None = None
    zone: str | None = None
    nameservers: list[str] = field(default_factory=list)
    error: str | None = None

    @property
    def detected(self) -> bool:
        return self.registrar_code is not None

    def to_dict(self) -> dict[str, Any]:
        return {
            "domain": self.domain,
            "registrar": self.registrar_code,
            "zone": self.zone,
            "nameservers": list(self.nameservers),
            "error": self.error,
        }


def identify_registrar(nameservers: list[str]) -> str | None:
    """Match nameserver hostnames against the known registrar patterns.

    Examples:
        >>> identify_registrar(["ada.ns.cloudflare.com", "bob.ns.cloudflare.com"])
        'cloudflare'
        >>> identify_registrar(["ns1.example.net"]) is None
        True
    """
    hosts = [ns.rstrip(".").lower() for ns in nameservers]
    for code, suffixes in NAMESERVER_PATTERNS.items():
        for host in hosts:
            if any(host == suffix or host.endswith(f".{suffix}") for suffix in suffixes):
                return code
    return None


async def detect_registrar(domain: str, resolver: DNSResolver | None = None) -> RegistrarDetection:
    """Find the registrar serving a domain's DNS.

    Lookup failures are reported on ``error``; they are never raised.

    Raises:
        InvalidDomainFormat: If the domain is malformed.
    """
    name = validate_domain(domain)
    resolver = resolver or DNSResolver()
    detection = RegistrarDetection(domain=name)

    labels = name.split(".")
    for i in range(len(labels) - 1):
        candidate = ".".join(labels[i:])
        lookup = await resolver.resolve_ns(candidate)
        if lookup.error:
            detection.error = lookup.error
            continue
        if lookup.values:
            detection.zone = candidate
            detection.nameservers = lookup.values
            detection.registrar_code = identify_registrar(lookup.values)
            detection.error = None
            break

    if detection.zone is None and detection.error is None:
        detection.error = f"No nameservers found for {name}"

    logger.info(
        "Registrar detection",
        domain=name,
        registrar=detection.registrar_code,
        nameservers=detection.nameservers,
    )
    return detection

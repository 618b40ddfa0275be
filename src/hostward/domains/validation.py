"""One validation pass for a custom domain.

A pass checks three records against public DNS:

    example.com      TXT    "blo-verification=<token>"   (ownership, required)
    example.com      A      <hosting IP>                 (routing, required)
    www.example.com  CNAME  <site>.netlify.app           (advisory)

The engine is pure: it reads DNS and returns a ValidationResult. Persisting
the outcome is DomainStatusStore's job.
"""

from __future__ import annotations

import asyncio
import time
from dataclasses import dataclass, field
from typing import Any

import structlog

from hostward.domains.resolver import DNSLookup, DNSResolver
from hostward.domains.storage import Domain
from hostward.observability.metrics import VALIDATION_DURATION

logger = structlog.get_logger()


@dataclass
class ValidationResult:
    """Outcome of one validation pass.

    ``errors`` holds TXT and A failures only; CNAME findings go to
    ``notices`` so an active domain never carries a validation error.
    """

    domain: str
    txt_validated: bool
    a_validated: bool
    cname_validated: bool
    errors: list[str] = field(default_factory=list)
    notices: list[str] = field(default_factory=list)
    dns_snapshot: dict[str, Any] = field(default_factory=dict)

    @property
    def is_valid(self) -> bool:
        """Activation requires TXT and A; CNAME does not gate it."""
        return self.txt_validated and self.a_validated

    @property
    def error_message(self) -> str | None:
        return "; ".join(self.errors) or None

    def to_dict(self) -> dict[str, Any]:
        return {
            "domain": self.domain,
            "is_valid": self.is_valid,
            "txt_validated": self.txt_validated,
            "a_validated": self.a_validated,
            "cname_validated": self.cname_validated,
            "errors": list(self.errors),
            "notices": list(self.notices),
            "dns_snapshot": self.dns_snapshot,
        }


def _lookup_failure(lookup: DNSLookup) -> str:
    return f" (lookup failed: {lookup.error})" if lookup.error else ""


class ValidationEngine:
    """Checks live DNS for a domain against its expected values."""

    def __init__(
        self,
        resolver: DNSResolver,
        hosting_ips: list[str] | None = None,
    ) -> None:
        """Initialize the engine.

        Args:
            resolver: DNS resolver used for every lookup.
            hosting_ips: Load balancer IPs a root domain may point at. A
                domain's own ``required_a_record`` is always accepted too.
        """
        self.resolver = resolver
        self.hosting_ips = list(hosting_ips or [])

    def accepted_ips(self, domain: Domain) -> list[str]:
        ips = [domain.required_a_record] if domain.required_a_record else []
        return ips + [ip for ip in self.hosting_ips if ip not in ips]

    def _check_txt(self, domain: Domain, lookup: DNSLookup) -> tuple[bool, str | None]:
        expected = domain.expected_txt_value
        if any(expected in value for value in lookup.values):
            return True, None
        return False, f"TXT record not found. Expected: {expected}{_lookup_failure(lookup)}"

    def _check_a(self, domain: Domain, lookup: DNSLookup) -> tuple[bool, str | None]:
        accepted = self.accepted_ips(domain)
        if not accepted:
            return False, "No hosting IP configured to compare A records against"
        if any(ip in accepted for ip in lookup.values):
            return True, None
        found = ", ".join(lookup.values) if lookup.values else "none"
        return False, (
            f"A record doesn't point to our hosting IP: {accepted[0]}. "
            f"Found: {found}{_lookup_failure(lookup)}"
        )

    def _check_cname(self, domain: Domain, lookup: DNSLookup) -> tuple[bool, str | None]:
        targets = {domain.domain_name}
        if domain.required_cname:
            targets.add(domain.required_cname.rstrip(".").lower())
        if any(value in targets for value in lookup.values):
            return True, None
        expected = domain.required_cname or domain.domain_name
        if lookup.error:
            return False, f"CNAME check for {lookup.name} skipped: {lookup.error}"
        found = ", ".join(lookup.values) if lookup.values else "none"
        return False, f"CNAME for {lookup.name} should point to {expected}. Found: {found}"

    async def validate(self, domain: Domain) -> ValidationResult:
        """Run one validation pass.

        The three lookups run concurrently. A failing lookup is recorded on
        the result and never aborts the others.
        """
        name = domain.domain_name
        started = time.perf_counter()
        txt, a, cname = await asyncio.gather(
            self.resolver.resolve_txt(name),
            self.resolver.resolve_a(name),
            self.resolver.resolve_cname(f"www.{name}"),
        )
        VALIDATION_DURATION.observe(time.perf_counter() - started)

        txt_ok, txt_error = self._check_txt(domain, txt)
        a_ok, a_error = self._check_a(domain, a)
        cname_ok, cname_notice = self._check_cname(domain, cname)

        result = ValidationResult(
            domain=name,
            txt_validated=txt_ok,
            a_validated=a_ok,
            cname_validated=cname_ok,
            errors=[error for error in (txt_error, a_error) if error],
            notices=[cname_notice] if cname_notice else [],
            dns_snapshot={
                "txt": txt.to_dict(),
                "a": a.to_dict(),
                "cname": cname.to_dict(),
                "expected": {
                    "txt": domain.expected_txt_value,
                    "a": self.accepted_ips(domain),
                    "cname": domain.required_cname,
                },
            },
        )

        logger.info(
            "Validation pass finished",
            domain=name,
            txt=txt_ok,
            a=a_ok,
            cname=cname_ok,
            valid=result.is_valid,
        )
        return result

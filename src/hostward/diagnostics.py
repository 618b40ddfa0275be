"""Read-only troubleshooting report for the domain pipeline.

Checks, in order:
1. Hosting credentials are present and look well-formed
2. The domain is well-formed
3. The hosting account is reachable with that token
4. The serving site is reachable (and whether the domain is attached)
5. The domain resolves in public DNS

Nothing here mutates domains or the hosting site.
"""

from __future__ import annotations

import uuid
from dataclasses import dataclass, field
from enum import Enum
from typing import Any

import structlog

from hostward.core.config import HostingConfig
from hostward.core.exceptions import HostwardError, InvalidDomainFormat, format_error_for_user
from hostward.domains.names import validate_domain
from hostward.domains.resolver import DNSResolver
from hostward.provisioning.client import ProvisioningClient, SiteInfo

logger = structlog.get_logger()

MIN_TOKEN_LENGTH = 20


class Severity(str, Enum):
    CRITICAL = "critical"
    WARNING = "warning"
    SUCCESS = "success"


@dataclass
class DiagnosticCheck:
    name: str
    severity: Severity
    message: str
    recommendation: str | None = None
    details: dict[str, Any] = field(default_factory=dict)

    def to_dict(self) -> dict[str, Any]:
        return {
            "name": self.name,
            "severity": self.severity.value,
            "message": self.message,
            "recommendation": self.recommendation,
            "details": self.details,
        }


@dataclass
class DiagnosticReport:
    """Checks plus an overall verdict: healthy, warning or critical."""

    checks: list[DiagnosticCheck]
    domain: str | None = None

    @property
    def status(self) -> str:
        severities = {check.severity for check in self.checks}
        if Severity.CRITICAL in severities:
            return "critical"
        if Severity.WARNING in severities:
            return "warning"
        return "healthy"

    @property
    def recommendations(self) -> dict[str, list[str]]:
        """Recommendations bucketed by severity."""
        buckets: dict[str, list[str]] = {s.value: [] for s in Severity}
        for check in self.checks:
            buckets[check.severity.value].append(check.recommendation or check.message)
        return buckets

    def to_dict(self) -> dict[str, Any]:
        return {
            "status": self.status,
            "domain": self.domain,
            "checks": [check.to_dict() for check in self.checks],
            "recommendations": self.recommendations,
        }


class DiagnosticService:
    """Builds a DiagnosticReport from configuration, hosting API and DNS."""

    def __init__(
        self,
        config: HostingConfig,
        provisioning: ProvisioningClient,
        resolver: DNSResolver,
    ) -> None:
        self.config = config
        self.provisioning = provisioning
        self.resolver = resolver

    def _check_credentials(self) -> list[DiagnosticCheck]:
        checks = []
        token = self.config.hosting_access_token
        if not token:
            checks.append(
                DiagnosticCheck(
                    "access_token",
                    Severity.CRITICAL,
                    "Hosting access token is not configured",
                    "Set HOSTWARD_HOSTING_ACCESS_TOKEN",
                )
            )
        elif len(token) < MIN_TOKEN_LENGTH:
            checks.append(
                DiagnosticCheck(
                    "access_token",
                    Severity.WARNING,
                    f"Hosting access token looks too short ({len(token)} characters)",
                    "Check that the full personal access token was copied",
                )
            )
        else:
            checks.append(
                DiagnosticCheck("access_token", Severity.SUCCESS, "Hosting access token is set")
            )

        site_id = self.config.hosting_site_id
        if not site_id:
            checks.append(
                DiagnosticCheck(
                    "site_id",
                    Severity.CRITICAL,
                    "Hosting site ID is not configured",
                    "Set HOSTWARD_HOSTING_SITE_ID",
                )
            )
        else:
            try:
                uuid.UUID(site_id)
            except ValueError:
                checks.append(
                    DiagnosticCheck(
                        "site_id",
                        Severity.WARNING,
                        f"Site ID {site_id!r} is not a UUID",
                        "Use the API ID from the site settings, not the site name",
                    )
                )
            else:
                checks.append(DiagnosticCheck("site_id", Severity.SUCCESS, "Site ID is set"))
        return checks

    async def _check_account(self) -> DiagnosticCheck:
        try:
            accounts = await self.provisioning.get_account()
        except HostwardError as e:
            return DiagnosticCheck(
                "account",
                Severity.CRITICAL,
                f"Hosting account unreachable: {format_error_for_user(e)}",
                "Verify the access token is valid and not expired",
            )
        names = [a.get("name") for a in accounts if isinstance(a, dict) and a.get("name")]
        return DiagnosticCheck(
            "account",
            Severity.SUCCESS,
            "Hosting account reachable",
            details={"accounts": names},
        )

    async def _check_site(self, domain: str | None) -> list[DiagnosticCheck]:
        try:
            site: SiteInfo = await self.provisioning.get_site_info()
        except HostwardError as e:
            return [
                DiagnosticCheck(
                    "site",
                    Severity.CRITICAL,
                    f"Hosting site unreachable: {format_error_for_user(e)}",
                    "Verify the site ID and that the token can access it",
                )
            ]

        checks = [
            DiagnosticCheck(
                "site",
                Severity.SUCCESS,
                f"Site {site.name or site.site_id} reachable",
                details=site.to_dict(),
            )
        ]
        if domain:
            if site.has_domain(domain):
                checks.append(
                    DiagnosticCheck(
                        "domain_attached", Severity.SUCCESS, f"{domain} is attached to the site"
                    )
                )
            else:
                checks.append(
                    DiagnosticCheck(
                        "domain_attached",
                        Severity.WARNING,
                        f"{domain} is not attached to the site",
                        f"Run 'hostward domain add {domain}' to attach it",
                    )
                )
        return checks

    async def _check_dns(self, domain: str) -> DiagnosticCheck:
        lookup = await self.resolver.resolve_a(domain)
        if lookup.values:
            return DiagnosticCheck(
                "dns",
                Severity.SUCCESS,
                f"{domain} resolves to {', '.join(lookup.values)}",
                details=lookup.to_dict(),
            )
        return DiagnosticCheck(
            "dns",
            Severity.WARNING,
            f"{domain} does not resolve: {lookup.error or 'no A records'}",
            "Publish the A records shown by 'hostward domain status' and wait for propagation",
            details=lookup.to_dict(),
        )

    async def diagnose(self, domain: str | None = None) -> DiagnosticReport:
        """Run every applicable check and return the report."""
        checks = self._check_credentials()
        configured = self.config.is_configured

        normalized: str | None = None
        if domain is not None:
            try:
                normalized = validate_domain(domain)
            except InvalidDomainFormat as e:
                checks.append(
                    DiagnosticCheck(
                        "domain_format",
                        Severity.CRITICAL,
                        e.message,
                        "Enter a bare domain such as example.com or blog.example.com",
                    )
                )
            else:
                checks.append(
                    DiagnosticCheck(
                        "domain_format", Severity.SUCCESS, f"{normalized} is well-formed"
                    )
                )

        if configured:
            checks.append(await self._check_account())
            checks.extend(await self._check_site(normalized))

        if normalized:
            checks.append(await self._check_dns(normalized))

        report = DiagnosticReport(checks=checks, domain=normalized or domain)
        logger.info("Diagnostics finished", domain=report.domain, status=report.status)
        return report

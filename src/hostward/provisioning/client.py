"""Hosting platform client for attaching custom domains.

Custom domains are added as aliases of one serving site, leaving the site's
primary domain untouched:

    GET   /sites/{site_id}                        read current aliases
    PATCH /sites/{site_id}  {"domain_aliases": [...]}  write the new list

The client also computes the DNS records a user has to publish. Root domains
point A records at the load balancer; subdomains use a CNAME to the site.
"""

from __future__ import annotations

from dataclasses import asdict, dataclass, field
from typing import Any

import httpx
import structlog

from hostward.core.config import HostingConfig
from hostward.core.exceptions import ConfigurationError, ProvisioningError, TransientNetworkError
from hostward.domains.names import (
    get_root_domain,
    is_subdomain,
    relative_record_name,
    validate_domain,
)
from hostward.observability.metrics import HOSTING_API_CALLS

logger = structlog.get_logger()


@dataclass
class RequiredRecord:
    """A DNS record the user must publish at their registrar."""

    type: str
    name: str
    value: str
    ttl: int = 3600
    required: bool = True
    description: str = ""

    def to_dict(self) -> dict[str, Any]:
        return asdict(self)


@dataclass
class SiteInfo:
    """Serving site metadata as reported by the hosting platform."""

    site_id: str
    name: str | None = None
    url: str | None = None
    custom_domain: str | None = None
    domain_aliases: list[str] = field(default_factory=list)
    ssl_url: str | None = None

    @property
    def ssl_enabled(self) -> bool:
        return bool(self.ssl_url)

    def has_domain(self, domain: str) -> bool:
        return domain == self.custom_domain or domain in self.domain_aliases

    @classmethod
    def from_api(cls, data: dict[str, Any]) -> SiteInfo:
        return cls(
            site_id=data.get("id") or data.get("site_id") or "",
            name=data.get("name"),
            url=data.get("ssl_url") or data.get("url"),
            custom_domain=data.get("custom_domain"),
            domain_aliases=list(data.get("domain_aliases") or []),
            ssl_url=data.get("ssl_url"),
        )

    def to_dict(self) -> dict[str, Any]:
        return {
            "site_id": self.site_id,
            "name": self.name,
            "url": self.url,
            "custom_domain": self.custom_domain,
            "domain_aliases": list(self.domain_aliases),
            "ssl_enabled": self.ssl_enabled,
        }


@dataclass
class ProvisioningResult:
    """Outcome of attaching a domain to the site."""

    site: SiteInfo
    domain: str
    is_subdomain: bool
    dns_records: list[RequiredRecord]
    already_attached: bool = False

    def to_dict(self) -> dict[str, Any]:
        return {
            "domain": self.domain,
            "is_subdomain": self.is_subdomain,
            "already_attached": self.already_attached,
            "site": self.site.to_dict(),
            "dns_records": [record.to_dict() for record in self.dns_records],
        }


@dataclass
class RemovalResult:
    """Outcome of detaching a domain. ``removed`` is False if it was absent."""

    domain: str
    removed: bool
    site: SiteInfo


def _friendly_message(status_code: int, domain: str | None, detail: str) -> str:
    if status_code == 401:
        return "Authentication failed. Please check the hosting access token configuration."
    if status_code == 403:
        return "Permission denied. The hosting token may not have sufficient permissions."
    if status_code == 404:
        return "Hosting site not found. Please verify the site ID is correct."
    if status_code == 422:
        return (
            f"Domain alias update failed. {domain or 'The domain'} may already be added "
            "as an alias, be invalid, or conflict with existing configuration."
        )
    if status_code == 429:
        return "Rate limit exceeded. Please wait a few minutes before trying again."
    if status_code >= 500:
        return "Hosting platform server error. Please try again later."
    return f"Hosting API request failed ({status_code}): {detail}"


def _detail(response: httpx.Response) -> str:
    try:
        body = response.json()
    except ValueError:
        return response.text[:200] or response.reason_phrase
    if isinstance(body, dict) and body.get("message"):
        return str(body["message"])
    return response.reason_phrase


class ProvisioningClient:
    """Attaches and detaches custom domains on the hosting platform.

    The HTTP client can be injected (tests pass one built on
    ``httpx.MockTransport``); otherwise one is created lazily and closed by
    ``close()``.
    """

    def __init__(
        self,
        config: HostingConfig | None = None,
        client: httpx.AsyncClient | None = None,
    ) -> None:
        self.config = config or HostingConfig()
        self._http_client = client
        self._owns_client = client is None

    async def _get_client(self) -> httpx.AsyncClient:
        """Get or create HTTP client."""
        if self._http_client is None:
            self._http_client = httpx.AsyncClient(timeout=self.config.http_timeout)
        return self._http_client

    async def close(self) -> None:
        """Close the HTTP client if this instance created it."""
        if self._http_client and self._owns_client:
            await self._http_client.aclose()
            self._http_client = None

    async def __aenter__(self) -> ProvisioningClient:
        return self

    async def __aexit__(self, *exc: object) -> None:
        await self.close()

    def _require_config(self) -> tuple[str, str]:
        token = self.config.hosting_access_token
        site_id = self.config.hosting_site_id
        if not token:
            raise ConfigurationError("Hosting access token is not configured")
        if not site_id:
            raise ConfigurationError("Hosting site ID is not configured")
        return token, site_id

    async def _request(
        self,
        operation: str,
        method: str,
        path: str,
        *,
        domain: str | None = None,
        **kwargs: Any,
    ) -> Any:
        token, _ = self._require_config()
        client = await self._get_client()
        url = f"{self.config.hosting_api_url.rstrip('/')}{path}"
        headers = {
            "Authorization": f"Bearer {token}",
            "Content-Type": "application/json",
        }
        try:
            response = await client.request(
                method, url, headers=headers, timeout=self.config.http_timeout, **kwargs
            )
        except httpx.TimeoutException as e:
            HOSTING_API_CALLS.labels(operation, "timeout").inc()
            raise TransientNetworkError(
                f"Hosting API timed out after {self.config.http_timeout:g}s"
            ) from e
        except httpx.RequestError as e:
            HOSTING_API_CALLS.labels(operation, "transport_error").inc()
            raise TransientNetworkError(f"Could not reach hosting API: {e}") from e

        if not response.is_success:
            HOSTING_API_CALLS.labels(operation, str(response.status_code)).inc()
            detail = _detail(response)
            logger.warning(
                "Hosting API request failed",
                operation=operation,
                status=response.status_code,
                error=detail,
            )
            raise ProvisioningError(
                _friendly_message(response.status_code, domain, detail),
                status_code=response.status_code,
            )

        HOSTING_API_CALLS.labels(operation, "ok").inc()
        return response.json() if response.content else {}

    def dns_records_for(
        self,
        domain: str,
        txt_record_value: str | None = None,
    ) -> list[RequiredRecord]:
        """DNS records the user must publish for ``domain``.

        Advisory only; nothing here is enforced.
        """
        target = self.config.get_cname_target() or ""
        records: list[RequiredRecord] = []

        if is_subdomain(domain):
            label = relative_record_name(domain, get_root_domain(domain))
            if txt_record_value:
                records.append(
                    RequiredRecord(
                        "TXT", label, txt_record_value, 300, True, "Proves domain ownership"
                    )
                )
            records.append(
                RequiredRecord(
                    "CNAME", label, target, 3600, True, "Points the subdomain to the site"
                )
            )
            return records

        if txt_record_value:
            records.append(
                RequiredRecord("TXT", "@", txt_record_value, 300, True, "Proves domain ownership")
            )
        for ip in self.config.get_ip_pool():
            records.append(
                RequiredRecord(
                    "A", "@", ip, 3600, True, "Points the root domain to the load balancer"
                )
            )
        records.append(
            RequiredRecord("CNAME", "www", target, 3600, False, "Points www to the site")
        )
        return records

    async def get_site_info(self) -> SiteInfo:
        """Read the serving site's current configuration."""
        _, site_id = self._require_config()
        data = await self._request("get_site", "GET", f"/sites/{site_id}")
        return SiteInfo.from_api(data)

    async def add_custom_domain(
        self,
        domain: str,
        txt_record_value: str | None = None,
    ) -> ProvisioningResult:
        """Attach ``domain`` to the site as an alias.

        Format is checked before any configuration or network access.
        Re-adding an attached domain is not an error; the result reports
        ``already_attached``.

        Raises:
            InvalidDomainFormat: Malformed domain (no request is sent).
            ConfigurationError: Token or site id missing.
            TransientNetworkError: Timeout or transport failure.
            ProvisioningError: The platform rejected the request.
        """
        domain = validate_domain(domain)
        _, site_id = self._require_config()
        subdomain = is_subdomain(domain)
        records = self.dns_records_for(domain, txt_record_value)

        site = await self.get_site_info()
        if site.has_domain(domain):
            logger.info("Domain already attached", domain=domain, site_id=site_id)
            return ProvisioningResult(site, domain, subdomain, records, already_attached=True)

        aliases = [*site.domain_aliases, domain]
        data = await self._request(
            "add_domain",
            "PATCH",
            f"/sites/{site_id}",
            domain=domain,
            json={"domain_aliases": aliases},
        )
        updated = SiteInfo.from_api(data) if data else site
        logger.info(
            "Domain attached",
            domain=domain,
            site_id=site_id,
            subdomain=subdomain,
            aliases=len(aliases),
        )
        return ProvisioningResult(updated, domain, subdomain, records)

    async def remove_custom_domain(self, domain: str) -> RemovalResult:
        """Detach ``domain``. Removing an absent domain succeeds with ``removed=False``."""
        domain = validate_domain(domain)
        _, site_id = self._require_config()

        site = await self.get_site_info()
        if domain not in site.domain_aliases:
            logger.info("Domain not attached, nothing to remove", domain=domain)
            return RemovalResult(domain, removed=False, site=site)

        aliases = [alias for alias in site.domain_aliases if alias != domain]
        data = await self._request(
            "remove_domain",
            "PATCH",
            f"/sites/{site_id}",
            domain=domain,
            json={"domain_aliases": aliases},
        )
        logger.info("Domain detached", domain=domain, site_id=site_id)
        return RemovalResult(domain, removed=True, site=SiteInfo.from_api(data) if data else site)

    async def get_ssl_status(self) -> dict[str, Any]:
        """Certificate state for the site (domains covered, expiry)."""
        _, site_id = self._require_config()
        return await self._request("get_ssl", "GET", f"/sites/{site_id}/ssl")

    async def get_account(self) -> list[dict[str, Any]]:
        """Accounts visible to the token; used to check the token works."""
        data = await self._request("get_account", "GET", "/accounts")
        return data if isinstance(data, list) else [data]

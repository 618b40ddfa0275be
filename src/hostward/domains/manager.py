"""Domain manager for the custom domain lifecycle.

This is the entry point the HTTP API, the CLI and schedulers call:
- Provisioning with a fresh verification token
- Validation passes (manual or scheduled) with status transitions
- DNS instructions and optional push to the user's registrar
- Listing, inspection and deletion

Usage:
    manager = DomainManager.from_config(get_config())
    await manager.initialize()

    provisioned = await manager.provision_domain("user-1", "example.com")
    outcome = await manager.request_validation(provisioned.domain.id)
    print(outcome.status_code, outcome.is_valid)
"""

from __future__ import annotations

import secrets
from dataclasses import dataclass
from typing import Any

import httpx
import structlog

from hostward import registrars
from hostward.core.config import HostwardConfig
from hostward.core.exceptions import (
    ConfigurationError,
    DomainNotFoundError,
    HostwardError,
    InvalidInputError,
    format_error_for_user,
)
from hostward.domains.names import get_root_domain, is_subdomain, validate_domain
from hostward.domains.resolver import DNSResolver
from hostward.domains.sqlite import SQLiteDomainRepository
from hostward.domains.status import DomainStatusStore
from hostward.domains.storage import (
    Domain,
    DomainRepository,
    DomainStatus,
    JsonDomainRepository,
    ValidationLog,
)
from hostward.domains.validation import ValidationEngine, ValidationResult
from hostward.provisioning.client import ProvisioningClient, RequiredRecord, SiteInfo

logger = structlog.get_logger()


@dataclass
class ProvisionedDomain:
    """A stored domain plus the DNS records the user has to publish."""

    domain: Domain
    dns_records: list[RequiredRecord]
    site: SiteInfo | None = None
    already_attached: bool = False
    created: bool = True

    def to_dict(self) -> dict[str, Any]:
        return {
            "domain": self.domain.to_dict(),
            "dns_records": [record.to_dict() for record in self.dns_records],
            "site": self.site.to_dict() if self.site else None,
            "already_attached": self.already_attached,
            "created": self.created,
        }


@dataclass
class ValidationOutcome:
    """Response of the validation trigger.

    ``status_code`` follows HTTP semantics: 200 for any completed pass (valid
    or not), 400 malformed input, 404 unknown domain, 503 not configured,
    500 anything else. ``error`` never contains a traceback.
    """

    status_code: int
    is_valid: bool = False
    domain: Domain | None = None
    result: ValidationResult | None = None
    error: str | None = None

    @property
    def ok(self) -> bool:
        return self.status_code == 200

    def to_dict(self) -> dict[str, Any]:
        return {
            "success": self.ok,
            "is_valid": self.is_valid,
            "domain": self.domain.to_dict() if self.domain else None,
            "result": self.result.to_dict() if self.result else None,
            "error": self.error,
        }


def _to_dns_records(records: list[RequiredRecord]) -> list[registrars.DNSRecord]:
    return [
        registrars.DNSRecord(type=r.type, name=r.name, content=r.value, ttl=r.ttl)
        for r in records
        if r.value
    ]


class DomainManager:
    """Coordinates storage, DNS validation and the hosting platform."""

    def __init__(
        self,
        repository: DomainRepository,
        engine: ValidationEngine,
        provisioning: ProvisioningClient,
        txt_prefix: str = "blo-verification",
        max_auto_retries: int = 5,
    ) -> None:
        """Initialize domain manager.

        Args:
            repository: Storage backend for domains and logs.
            engine: Validation engine used for every pass.
            provisioning: Hosting platform client.
            txt_prefix: Prefix of the ownership TXT value.
            max_auto_retries: Scheduled passes allowed per domain.
        """
        self.repository = repository
        self.engine = engine
        self.provisioning = provisioning
        self.status_store = DomainStatusStore(repository)
        self.txt_prefix = txt_prefix
        self.max_auto_retries = max_auto_retries

    @classmethod
    def from_config(
        cls,
        config: HostwardConfig,
        http_client: httpx.AsyncClient | None = None,
    ) -> DomainManager:
        """Wire a manager from configuration."""
        hosting = config.hosting
        verification = config.verification
        storage = config.storage

        repository: DomainRepository
        if storage.storage_backend == "json":
            repository = JsonDomainRepository(storage.storage_path)
        else:
            repository = SQLiteDomainRepository(storage.storage_path)

        resolver = DNSResolver(
            timeout=verification.dns_timeout,
            nameservers=verification.get_nameservers(),
        )
        return cls(
            repository=repository,
            engine=ValidationEngine(resolver, hosting_ips=hosting.get_ip_pool()),
            provisioning=ProvisioningClient(hosting, client=http_client),
            txt_prefix=verification.txt_prefix,
            max_auto_retries=verification.max_auto_retries,
        )

    async def initialize(self) -> None:
        await self.repository.initialize()

    async def close(self) -> None:
        await self.provisioning.close()
        await self.repository.close()

    def dns_instructions(self, domain: Domain) -> list[RequiredRecord]:
        """Records the user must publish for ``domain``."""
        return self.provisioning.dns_records_for(domain.domain_name, domain.expected_txt_value)

    async def provision_domain(
        self,
        owner_id: str,
        domain_name: str,
        *,
        attach: bool = True,
    ) -> ProvisionedDomain:
        """Register a domain and attach it to the hosting site.

        Provisioning the same domain again for the same owner returns the
        existing row. The hosting platform is contacted before the row is
        written, so a rejected attach leaves nothing behind. If a concurrent
        request for the same name wins the write, the alias stays attached
        for the winner.

        Args:
            owner_id: Opaque id of the requesting account.
            domain_name: Domain as typed by the user.
            attach: Attach to the hosting site. False only records the
                domain and computes instructions.

        Raises:
            InvalidDomainFormat: Malformed domain.
            InvalidInputError: Domain belongs to another owner.
            ConfigurationError: Hosting credentials missing (attach only).
            TransientNetworkError, ProvisioningError: Hosting API failures.
        """
        if not owner_id:
            raise InvalidInputError("Owner ID is required")
        name = validate_domain(domain_name)

        existing = await self.repository.get_by_name(name)
        if existing:
            if existing.owner_id != owner_id:
                raise InvalidInputError(f"Domain {name} is already registered to another account")
            return ProvisionedDomain(
                existing, self.dns_instructions(existing), already_attached=True, created=False
            )

        pool = self.engine.hosting_ips
        domain = Domain(
            owner_id=owner_id,
            domain_name=name,
            verification_token=secrets.token_hex(16),
            txt_prefix=self.txt_prefix,
            required_a_record=pool[0] if pool else None,
            required_cname=self.provisioning.config.get_cname_target(),
        )

        site: SiteInfo | None = None
        already_attached = False
        if attach:
            provisioned = await self.provisioning.add_custom_domain(name, domain.expected_txt_value)
            site = provisioned.site
            already_attached = provisioned.already_attached
            records = provisioned.dns_records
        else:
            records = self.dns_instructions(domain)

        try:
            await self.repository.create(domain)
        except InvalidInputError:
            # A concurrent provision of the same name committed first.
            winner = await self.repository.get_by_name(name)
            if winner is None:
                if attach and not already_attached:
                    await self.provisioning.remove_custom_domain(name)
                raise
            if winner.owner_id != owner_id:
                raise InvalidInputError(
                    f"Domain {name} is already registered to another account"
                ) from None
            logger.info("Domain provisioned concurrently", domain=name, domain_id=winner.id)
            return ProvisionedDomain(
                winner, self.dns_instructions(winner), site, already_attached=True, created=False
            )

        logger.info(
            "Domain provisioned",
            domain=name,
            owner=owner_id,
            domain_id=domain.id,
            attached=attach,
        )
        return ProvisionedDomain(domain, records, site, already_attached)

    async def request_validation(
        self,
        domain_id: str | None,
        *,
        manual: bool = True,
    ) -> ValidationOutcome:
        """Run one validation pass and commit its outcome.

        Never raises for expected failures; they are reported through
        ``status_code`` and ``error``.
        """
        if not domain_id:
            return ValidationOutcome(400, error="Domain ID is required")

        try:
            domain = await self.status_store.begin_validation(domain_id)
            result = await self.engine.validate(domain)
            is_valid = await self.status_store.apply_result(domain_id, result, manual=manual)
            domain = await self.repository.get(domain_id)
        except DomainNotFoundError as e:
            return ValidationOutcome(404, error=e.message)
        except InvalidInputError as e:
            return ValidationOutcome(400, error=e.message)
        except ConfigurationError as e:
            return ValidationOutcome(503, error=format_error_for_user(e))
        except HostwardError as e:
            logger.error("Validation failed", domain_id=domain_id, error=e.message)
            return ValidationOutcome(500, error=format_error_for_user(e))
        except Exception as e:
            logger.exception("Unexpected validation error", domain_id=domain_id)
            return ValidationOutcome(500, error=format_error_for_user(e))

        return ValidationOutcome(200, is_valid=is_valid, domain=domain, result=result)

    async def run_scheduled_validations(self) -> list[ValidationOutcome]:
        """Re-validate pending and failed domains that still have retries left.

        Intended to be called periodically by an external scheduler.
        """
        outcomes = []
        for domain in await self.repository.list():
            if domain.status not in (DomainStatus.PENDING, DomainStatus.FAILED):
                continue
            if domain.auto_retry_count >= self.max_auto_retries:
                continue
            outcomes.append(await self.request_validation(domain.id, manual=False))
        return outcomes

    async def get_domain(self, domain_id: str, owner_id: str | None = None) -> Domain:
        """Get a domain, scoped to ``owner_id`` when given.

        Raises:
            DomainNotFoundError: Unknown id, or owned by someone else.
        """
        domain = await self.repository.get(domain_id)
        if owner_id is not None and domain.owner_id != owner_id:
            raise DomainNotFoundError(domain_id)
        return domain

    async def find_domain(self, domain_name: str, owner_id: str | None = None) -> Domain:
        """Look a domain up by name, as typed by the user.

        Raises:
            InvalidDomainFormat: Malformed domain.
            DomainNotFoundError: Not registered, or owned by someone else.
        """
        name = validate_domain(domain_name)
        domain = await self.repository.get_by_name(name)
        if domain is None or (owner_id is not None and domain.owner_id != owner_id):
            raise DomainNotFoundError(name)
        return domain

    async def list_domains(self, owner_id: str | None = None) -> list[Domain]:
        return await self.repository.list(owner_id)

    async def list_logs(
        self,
        domain_id: str,
        owner_id: str | None = None,
        limit: int | None = None,
    ) -> list[ValidationLog]:
        await self.get_domain(domain_id, owner_id)
        return await self.repository.list_logs(domain_id, limit)

    async def delete_domain(
        self,
        domain_id: str,
        owner_id: str | None = None,
        *,
        detach: bool = True,
    ) -> bool:
        """Delete a domain and its logs, detaching it from the site first.

        Raises:
            DomainNotFoundError: Unknown id, or owned by someone else.
        """
        domain = await self.get_domain(domain_id, owner_id)
        if detach and self.provisioning.config.is_configured:
            await self.provisioning.remove_custom_domain(domain.domain_name)
        deleted = await self.repository.delete(domain_id)
        logger.info("Domain deleted", domain=domain.domain_name, domain_id=domain_id)
        return deleted

    async def push_records(
        self,
        domain_id: str,
        credentials: registrars.RegistrarCredential,
        owner_id: str | None = None,
        client: httpx.AsyncClient | None = None,
    ) -> registrars.RecordChangeResult:
        """Publish the domain's required records through its registrar."""
        domain = await self.get_domain(domain_id, owner_id)
        name = domain.domain_name
        zone = get_root_domain(name) if is_subdomain(name) else name
        return await registrars.update_records(
            zone,
            _to_dns_records(self.dns_instructions(domain)),
            credentials,
            client=client,
            timeout=self.provisioning.config.http_timeout,
        )

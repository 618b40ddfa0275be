"""Domain status state machine.

    pending ──> validating ──> active
                    ^    └───> failed
                    └── (any status can be revalidated)

Concurrent validations of the same domain are not serialized; the last
``apply_result`` to commit wins. Re-validation is idempotent so a lost
update is repaired by the next pass.
"""

from __future__ import annotations

from datetime import UTC, datetime

import structlog

from hostward.domains.storage import Domain, DomainRepository, DomainStatus, ValidationLog
from hostward.domains.validation import ValidationResult
from hostward.observability.metrics import VALIDATION_PASSES

logger = structlog.get_logger()


class DomainStatusStore:
    """Applies validation outcomes to persisted domains."""

    def __init__(self, repository: DomainRepository) -> None:
        self.repository = repository

    async def begin_validation(self, domain_id: str) -> Domain:
        """Move a domain to ``validating`` regardless of its prior status."""
        domain = await self.repository.get(domain_id)
        domain.status = DomainStatus.VALIDATING
        domain.updated_at = datetime.now(UTC)
        await self.repository.save(domain)
        return domain

    async def apply_result(
        self,
        domain_id: str,
        result: ValidationResult,
        *,
        manual: bool = True,
    ) -> bool:
        """Commit a validation result and its log row.

        Args:
            domain_id: Domain the pass ran for.
            result: Output of ValidationEngine.validate().
            manual: True for user-triggered passes (resets the retry
                counter), False for scheduled retries (increments it).

        Returns:
            Whether the domain is now active.
        """
        domain = await self.repository.get(domain_id)
        is_valid = result.is_valid
        now = datetime.now(UTC)

        domain.status = DomainStatus.ACTIVE if is_valid else DomainStatus.FAILED
        domain.txt_validated = result.txt_validated
        domain.a_validated = result.a_validated
        domain.cname_validated = result.cname_validated
        domain.last_validation_attempt_at = now
        domain.validation_error = None if is_valid else result.error_message
        domain.auto_retry_count = 0 if manual else domain.auto_retry_count + 1
        domain.updated_at = now

        log = ValidationLog(
            domain_id=domain.id,
            validation_type="full",
            success=is_valid,
            error_message=domain.validation_error,
            dns_response=result.dns_snapshot,
            created_at=now,
        )
        await self.repository.record_validation(domain, log)

        trigger = "manual" if manual else "scheduled"
        VALIDATION_PASSES.labels(domain.status.value, trigger).inc()
        logger.info(
            "Domain status updated",
            domain=domain.domain_name,
            status=domain.status.value,
            trigger=trigger,
            retries=domain.auto_retry_count,
        )
        return is_valid

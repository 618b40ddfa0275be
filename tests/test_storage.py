"""Tests for domain storage backends."""

from __future__ import annotations

from datetime import UTC, datetime, timedelta

import pytest

from conftest import make_domain
from hostward.core.exceptions import (
    DomainNotFoundError,
    InvalidInputError,
    StorageUnavailableError,
)
from hostward.domains.storage import (
    Domain,
    DomainStatus,
    JsonDomainRepository,
    ValidationLog,
)


def _log(domain: Domain, success: bool, minutes: int) -> ValidationLog:
    return ValidationLog(
        domain_id=domain.id,
        validation_type="full",
        success=success,
        error_message=None if success else "TXT record not found",
        dns_response={"txt": {"values": []}},
        created_at=datetime(2026, 1, 1, tzinfo=UTC) + timedelta(minutes=minutes),
    )


class TestDomainModel:
    """Tests for the Domain dataclass."""

    def test_expected_txt_value(self):
        """Test the TXT value combines prefix and token."""
        domain = make_domain()
        assert domain.expected_txt_value == "blo-verification=TOK123"

    def test_defaults(self):
        """Test a new domain starts pending with no checks passed."""
        domain = make_domain()
        assert domain.status == DomainStatus.PENDING
        assert not domain.txt_validated
        assert not domain.a_validated
        assert domain.auto_retry_count == 0
        assert domain.last_validation_attempt_at is None

    def test_dict_roundtrip_preserves_status(self):
        """Test to_dict/from_dict keeps enum and datetimes intact."""
        domain = make_domain(status=DomainStatus.ACTIVE, txt_validated=True, a_validated=True)
        domain.last_validation_attempt_at = datetime(2026, 1, 2, tzinfo=UTC)

        restored = Domain.from_dict(domain.to_dict())

        assert restored.status is DomainStatus.ACTIVE
        assert restored.is_active
        assert restored.last_validation_attempt_at == domain.last_validation_attempt_at
        assert restored.created_at == domain.created_at


class TestRepository:
    """Behavior shared by the JSON and SQLite backends."""

    @pytest.mark.asyncio
    async def test_create_and_get(self, repository):
        """Test a created domain can be read back by id and name."""
        domain = make_domain()
        await repository.create(domain)

        by_id = await repository.get(domain.id)
        by_name = await repository.get_by_name("example-test.com")

        assert by_id.domain_name == "example-test.com"
        assert by_id.verification_token == "TOK123"
        assert by_name is not None
        assert by_name.id == domain.id
        await repository.close()

    @pytest.mark.asyncio
    async def test_get_missing(self, repository):
        """Test unknown ids raise DomainNotFoundError."""
        with pytest.raises(DomainNotFoundError):
            await repository.get("nope")
        assert await repository.get_by_name("missing.com") is None
        await repository.close()

    @pytest.mark.asyncio
    async def test_duplicate_name_rejected(self, repository):
        """Test a domain name can only be registered once."""
        await repository.create(make_domain())
        with pytest.raises(InvalidInputError):
            await repository.create(make_domain(owner_id="user-2"))
        await repository.close()

    @pytest.mark.asyncio
    async def test_list_filters_by_owner(self, repository):
        """Test listing is scoped to the owner when given."""
        await repository.create(make_domain(domain_name="a.com"))
        await repository.create(make_domain(domain_name="b.com", owner_id="user-2"))

        mine = await repository.list("user-1")
        everything = await repository.list()

        assert [d.domain_name for d in mine] == ["a.com"]
        assert {d.domain_name for d in everything} == {"a.com", "b.com"}
        await repository.close()

    @pytest.mark.asyncio
    async def test_save_updates(self, repository):
        """Test save persists field changes."""
        domain = make_domain()
        await repository.create(domain)

        domain.status = DomainStatus.VALIDATING
        await repository.save(domain)

        assert (await repository.get(domain.id)).status == DomainStatus.VALIDATING
        await repository.close()

    @pytest.mark.asyncio
    async def test_save_missing(self, repository):
        """Test saving an unknown domain raises."""
        with pytest.raises(DomainNotFoundError):
            await repository.save(make_domain())
        await repository.close()

    @pytest.mark.asyncio
    async def test_record_validation_and_logs(self, repository):
        """Test record_validation updates the row and appends a log."""
        domain = make_domain()
        await repository.create(domain)

        domain.status = DomainStatus.FAILED
        await repository.record_validation(domain, _log(domain, False, 0))
        domain.status = DomainStatus.ACTIVE
        await repository.record_validation(domain, _log(domain, True, 1))

        logs = await repository.list_logs(domain.id)
        assert [log.success for log in logs] == [True, False]
        assert logs[1].error_message == "TXT record not found"
        assert logs[0].dns_response == {"txt": {"values": []}}
        assert (await repository.get(domain.id)).status == DomainStatus.ACTIVE

        limited = await repository.list_logs(domain.id, limit=1)
        assert len(limited) == 1
        assert limited[0].success
        assert await repository.list_logs(domain.id, limit=0) == []
        await repository.close()

    @pytest.mark.asyncio
    async def test_delete_cascades_logs(self, repository):
        """Test deleting a domain removes its logs."""
        domain = make_domain()
        await repository.create(domain)
        await repository.record_validation(domain, _log(domain, False, 0))

        assert await repository.delete(domain.id)
        assert not await repository.delete(domain.id)
        assert await repository.list_logs(domain.id) == []
        with pytest.raises(DomainNotFoundError):
            await repository.get(domain.id)
        await repository.close()


class TestJsonRepository:
    """JSON-specific behavior."""

    @pytest.mark.asyncio
    async def test_persists_across_instances(self, tmp_path):
        """Test data survives a fresh repository on the same file."""
        path = tmp_path / "domains.json"
        domain = make_domain()
        await JsonDomainRepository(path).create(domain)

        reopened = JsonDomainRepository(path)
        assert (await reopened.get(domain.id)).domain_name == "example-test.com"

    @pytest.mark.asyncio
    async def test_corrupt_file(self, tmp_path):
        """Test a corrupt file raises StorageUnavailableError."""
        path = tmp_path / "domains.json"
        path.write_text("{not json", encoding="utf-8")

        with pytest.raises(StorageUnavailableError):
            await JsonDomainRepository(path).list()

    @pytest.mark.asyncio
    async def test_invalidate_cache(self, tmp_path):
        """Test invalidate_cache picks up external changes."""
        path = tmp_path / "domains.json"
        repo = JsonDomainRepository(path)
        assert await repo.list() == []

        await JsonDomainRepository(path).create(make_domain())
        assert await repo.list() == []

        repo.invalidate_cache()
        assert len(await repo.list()) == 1

"""Persistence for domains and their validation logs.

Two backends implement DomainRepository:
- JsonDomainRepository: a single JSON file, suitable for self-hosted
  deployments with moderate domain counts
- SQLiteDomainRepository (hostward.domains.sqlite): relational storage with
  cascading log deletes

Storage file format (domains.json):
    {
        "domains": {
            "3f2a...": {
                "id": "3f2a...",
                "owner_id": "user-1",
                "domain_name": "example.com",
                "verification_token": "9c1e...",
                "status": "active",
                ...
            }
        },
        "validation_logs": {
            "3f2a...": [
                {"id": "...", "validation_type": "full", "success": true, ...}
            ]
        }
    }

A validation commit (domain row + log row) is always one write, so a
crash or cancellation never leaves a log without its status update.
"""

from __future__ import annotations

import asyncio
import json
import os
import uuid
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from datetime import UTC, datetime
from enum import Enum
from pathlib import Path
from typing import Any

from hostward.core.exceptions import (
    DomainNotFoundError,
    InvalidInputError,
    StorageUnavailableError,
)


def _utc_now() -> datetime:
    """Return current UTC datetime."""
    return datetime.now(UTC)


def _new_id() -> str:
    return uuid.uuid4().hex


def _parse_dt(value: str | None) -> datetime | None:
    return datetime.fromisoformat(value) if value else None


class DomainStatus(str, Enum):
    """Lifecycle status of a custom domain."""

    PENDING = "pending"
    VALIDATING = "validating"
    ACTIVE = "active"
    FAILED = "failed"


@dataclass
class Domain:
    """A custom domain a user wants the platform to serve.

    ``status`` is ACTIVE exactly when both the TXT ownership record and the
    A record validated on the latest pass. CNAME is advisory.
    """

    owner_id: str
    domain_name: str
    verification_token: str
    txt_prefix: str = "blo-verification"
    required_a_record: str | None = None
    required_cname: str | None = None
    status: DomainStatus = DomainStatus.PENDING
    txt_validated: bool = False
    a_validated: bool = False
    cname_validated: bool = False
    last_validation_attempt_at: datetime | None = None
    validation_error: str | None = None
    auto_retry_count: int = 0
    id: str = field(default_factory=_new_id)
    created_at: datetime = field(default_factory=_utc_now)
    updated_at: datetime = field(default_factory=_utc_now)

    @property
    def expected_txt_value(self) -> str:
        """TXT value that proves ownership (<prefix>=<token>)."""
        return f"{self.txt_prefix}={self.verification_token}"

    @property
    def is_active(self) -> bool:
        return self.status == DomainStatus.ACTIVE

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary for JSON serialization."""
        return {
            "id": self.id,
            "owner_id": self.owner_id,
            "domain_name": self.domain_name,
            "verification_token": self.verification_token,
            "txt_prefix": self.txt_prefix,
            "required_a_record": self.required_a_record,
            "required_cname": self.required_cname,
            "status": self.status.value,
            "txt_validated": self.txt_validated,
            "a_validated": self.a_validated,
            "cname_validated": self.cname_validated,
            "last_validation_attempt_at": self.last_validation_attempt_at.isoformat()
            if self.last_validation_attempt_at
            else None,
            "validation_error": self.validation_error,
            "auto_retry_count": self.auto_retry_count,
            "created_at": self.created_at.isoformat(),
            "updated_at": self.updated_at.isoformat(),
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> Domain:
        """Create from dictionary (JSON deserialization)."""
        return cls(
            id=data["id"],
            owner_id=data["owner_id"],
            domain_name=data["domain_name"],
            verification_token=data["verification_token"],
            txt_prefix=data.get("txt_prefix") or "blo-verification",
            required_a_record=data.get("required_a_record"),
            required_cname=data.get("required_cname"),
            status=DomainStatus(data.get("status", DomainStatus.PENDING.value)),
            txt_validated=bool(data.get("txt_validated", False)),
            a_validated=bool(data.get("a_validated", False)),
            cname_validated=bool(data.get("cname_validated", False)),
            last_validation_attempt_at=_parse_dt(data.get("last_validation_attempt_at")),
            validation_error=data.get("validation_error"),
            auto_retry_count=int(data.get("auto_retry_count") or 0),
            created_at=_parse_dt(data.get("created_at")) or _utc_now(),
            updated_at=_parse_dt(data.get("updated_at")) or _utc_now(),
        )


@dataclass(frozen=True)
class ValidationLog:
    """One row per validation pass. Never mutated after creation."""

    domain_id: str
    validation_type: str
    success: bool
    error_message: str | None
    dns_response: dict[str, Any]
    id: str = field(default_factory=_new_id)
    created_at: datetime = field(default_factory=_utc_now)

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "domain_id": self.domain_id,
            "validation_type": self.validation_type,
            "success": self.success,
            "error_message": self.error_message,
            "dns_response": self.dns_response,
            "created_at": self.created_at.isoformat(),
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> ValidationLog:
        return cls(
            id=data["id"],
            domain_id=data["domain_id"],
            validation_type=data.get("validation_type", "full"),
            success=bool(data["success"]),
            error_message=data.get("error_message"),
            dns_response=data.get("dns_response") or {},
            created_at=_parse_dt(data.get("created_at")) or _utc_now(),
        )


class DomainRepository(ABC):
    """Abstract storage for Domain rows and their append-only logs."""

    async def initialize(self) -> None:
        """Prepare the backend (create schema, files)."""

    async def close(self) -> None:
        """Release backend resources."""

    @abstractmethod
    async def create(self, domain: Domain) -> None:
        """Insert a new domain."""

    @abstractmethod
    async def get(self, domain_id: str) -> Domain:
        """Get a domain by id.

        Raises:
            DomainNotFoundError: If no such domain exists.
        """

    @abstractmethod
    async def get_by_name(self, domain_name: str) -> Domain | None:
        """Get a domain by its normalized name."""

    @abstractmethod
    async def list(self, owner_id: str | None = None) -> list[Domain]:
        """List domains, optionally scoped to one owner."""

    @abstractmethod
    async def save(self, domain: Domain) -> None:
        """Update an existing domain.

        Raises:
            DomainNotFoundError: If the domain was deleted meanwhile.
        """

    @abstractmethod
    async def record_validation(self, domain: Domain, log: ValidationLog) -> None:
        """Update the domain and append its log in a single commit."""

    @abstractmethod
    async def list_logs(self, domain_id: str, limit: int | None = None) -> list[ValidationLog]:
        """List logs for a domain, newest first."""

    @abstractmethod
    async def delete(self, domain_id: str) -> bool:
        """Delete a domain and all of its logs. Returns False if absent."""


class JsonDomainRepository(DomainRepository):
    """JSON file-based domain storage.

    Thread-safe via an asyncio lock. Every mutation rewrites the whole file
    through a temporary file and an atomic rename.
    """

    def __init__(self, storage_path: str | Path = "domains.json") -> None:
        """Initialize the repository.

        Args:
            storage_path: Path to the JSON storage file.
        """
        self.storage_path = Path(storage_path)
        self._lock = asyncio.Lock()
        self._cache: dict[str, Any] | None = None

    async def _load(self) -> dict[str, Any]:
        """Load raw data from the storage file."""
        if self._cache is not None:
            return self._cache

        if not self.storage_path.exists():
            self._cache = {"domains": {}, "validation_logs": {}}
            return self._cache

        try:
            content = await asyncio.to_thread(self.storage_path.read_text, encoding="utf-8")
            data = json.loads(content) if content.strip() else {}
        except OSError as e:
            raise StorageUnavailableError(f"Cannot read {self.storage_path}: {e}") from e
        except json.JSONDecodeError as e:
            raise StorageUnavailableError(f"Corrupt storage file {self.storage_path}: {e}") from e

        self._cache = {
            "domains": data.get("domains", {}),
            "validation_logs": data.get("validation_logs", {}),
        }
        return self._cache

    def _write(self, content: str) -> None:
        tmp_path = self.storage_path.with_name(self.storage_path.name + ".tmp")
        tmp_path.write_text(content, encoding="utf-8")
        os.replace(tmp_path, self.storage_path)

    async def _save(self, data: dict[str, Any]) -> None:
        """Save raw data to the storage file."""
        content = json.dumps(data, indent=2)
        try:
            await asyncio.to_thread(self._write, content)
        except OSError as e:
            self._cache = None
            raise StorageUnavailableError(f"Cannot write {self.storage_path}: {e}") from e
        self._cache = data

    async def create(self, domain: Domain) -> None:
        async with self._lock:
            data = await self._load()
            if any(raw["domain_name"] == domain.domain_name for raw in data["domains"].values()):
                raise InvalidInputError(f"Domain {domain.domain_name} is already registered")
            domains = dict(data["domains"])
            domains[domain.id] = domain.to_dict()
            await self._save({**data, "domains": domains})

    async def get(self, domain_id: str) -> Domain:
        async with self._lock:
            data = await self._load()
            raw = data["domains"].get(domain_id)
        if raw is None:
            raise DomainNotFoundError(domain_id)
        return Domain.from_dict(raw)

    async def get_by_name(self, domain_name: str) -> Domain | None:
        async with self._lock:
            data = await self._load()
            for raw in data["domains"].values():
                if raw["domain_name"] == domain_name:
                    return Domain.from_dict(raw)
        return None

    async def list(self, owner_id: str | None = None) -> list[Domain]:
        async with self._lock:
            data = await self._load()
            rows = [Domain.from_dict(raw) for raw in data["domains"].values()]
        if owner_id is not None:
            rows = [row for row in rows if row.owner_id == owner_id]
        return sorted(rows, key=lambda row: row.created_at, reverse=True)

    async def save(self, domain: Domain) -> None:
        async with self._lock:
            data = await self._load()
            if domain.id not in data["domains"]:
                raise DomainNotFoundError(domain.id)
            domains = dict(data["domains"])
            domains[domain.id] = domain.to_dict()
            await self._save({**data, "domains": domains})

    async def record_validation(self, domain: Domain, log: ValidationLog) -> None:
        async with self._lock:
            data = await self._load()
            if domain.id not in data["domains"]:
                raise DomainNotFoundError(domain.id)
            domains = dict(data["domains"])
            domains[domain.id] = domain.to_dict()
            logs = dict(data["validation_logs"])
            logs[domain.id] = [*logs.get(domain.id, []), log.to_dict()]
            await self._save({"domains": domains, "validation_logs": logs})

    async def list_logs(self, domain_id: str, limit: int | None = None) -> list[ValidationLog]:
        async with self._lock:
            data = await self._load()
            raw_logs = data["validation_logs"].get(domain_id, [])
            rows = [ValidationLog.from_dict(raw) for raw in raw_logs]
        rows.reverse()
        return rows if limit is None else rows[:limit]

    async def delete(self, domain_id: str) -> bool:
        async with self._lock:
            data = await self._load()
            if domain_id not in data["domains"]:
                return False
            domains = {k: v for k, v in data["domains"].items() if k != domain_id}
            logs = {k: v for k, v in data["validation_logs"].items() if k != domain_id}
            await self._save({"domains": domains, "validation_logs": logs})
            return True

    def invalidate_cache(self) -> None:
        """Invalidate the in-memory cache.

        Call this after external modifications to the storage file.
        """
        self._cache = None

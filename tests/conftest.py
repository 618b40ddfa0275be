"""Shared fixtures for Hostward tests."""

from __future__ import annotations

from unittest.mock import MagicMock

import pytest

from hostward.domains.resolver import DNSLookup, DNSResolver
from hostward.domains.sqlite import SQLiteDomainRepository
from hostward.domains.storage import Domain, JsonDomainRepository

HOSTING_IP = "203.0.113.10"
TOKEN = "TOK123"


class StaticResolver(DNSResolver):
    """Resolver that answers from fixed tables instead of the network."""

    def __init__(
        self,
        txt: list[str] | None = None,
        a: list[str] | None = None,
        cname: list[str] | None = None,
        errors: dict[str, str] | None = None,
        ns: dict[str, list[str]] | None = None,
    ) -> None:
        super().__init__(timeout=1.0, resolver=MagicMock())
        self.nameservers_by_name = ns or {}
        self.answers = {"TXT": txt or [], "A": a or [], "CNAME": cname or []}
        self.errors = errors or {}
        self.calls: list[tuple[str, str]] = []

    async def _lookup(self, record_type: str, name: str) -> DNSLookup:
        self.calls.append((record_type, name))
        error = self.errors.get(record_type)
        if error:
            return DNSLookup(record_type, name, error=error, timed_out="timed out" in error)
        return DNSLookup(record_type, name, values=list(self.answers[record_type]))

    async def resolve_txt(self, name: str) -> DNSLookup:
        return await self._lookup("TXT", name)

    async def resolve_a(self, name: str) -> DNSLookup:
        return await self._lookup("A", name)

    async def resolve_cname(self, name: str) -> DNSLookup:
        return await self._lookup("CNAME", name)

    async def resolve_ns(self, name: str) -> DNSLookup:
        self.calls.append(("NS", name))
        error = self.errors.get("NS")
        if error:
            return DNSLookup("NS", name, error=error, timed_out="timed out" in error)
        return DNSLookup("NS", name, values=list(self.nameservers_by_name.get(name, [])))


def make_domain(**overrides) -> Domain:
    """Build a Domain for example-test.com expecting blo-verification=TOK123."""
    values = {
        "owner_id": "user-1",
        "domain_name": "example-test.com",
        "verification_token": TOKEN,
        "required_a_record": HOSTING_IP,
        "required_cname": "site-123.netlify.app",
    }
    values.update(overrides)
    return Domain(**values)


@pytest.fixture(params=["json", "sqlite"])
def repository(request, tmp_path):
    """Each storage backend, backed by a fresh file."""
    if request.param == "json":
        return JsonDomainRepository(tmp_path / "domains.json")
    return SQLiteDomainRepository(tmp_path / "hostward.db")


@pytest.fixture(autouse=True)
def isolated_env(monkeypatch, tmp_path):
    """Keep HOSTWARD_* settings from the host out of tests."""
    import os

    import structlog

    from hostward.core.config import clear_config

    for key in list(os.environ):
        if key.startswith("HOSTWARD_"):
            monkeypatch.delenv(key, raising=False)
    monkeypatch.chdir(tmp_path)
    clear_config()
    yield
    clear_config()
    structlog.reset_defaults()

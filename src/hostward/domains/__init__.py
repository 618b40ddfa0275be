"""Hostward custom domain verification.

Proves that a user controls a domain by checking public DNS:

    example.com      TXT    "blo-verification=<token>"   ownership (required)
    example.com      A      75.2.60.5                    routing (required)
    www.example.com  CNAME  <site>.netlify.app           advisory

Features:
- Domain name normalization and format checks
- Concurrent TXT/A/CNAME lookups with bounded timeouts
- Status state machine (pending -> validating -> active/failed)
- JSON file or SQLite storage with one log row per validation pass

The orchestration entry point lives in ``hostward.domains.manager``:

    from hostward.domains.manager import DomainManager

    manager = DomainManager.from_config(get_config())
    provisioned = await manager.provision_domain("user-1", "example.com")
    outcome = await manager.request_validation(provisioned.domain.id)
"""

from hostward.domains.names import (
    get_root_domain,
    is_subdomain,
    is_valid_domain,
    normalize_domain,
    relative_record_name,
    validate_domain,
)
from hostward.domains.resolver import DNSLookup, DNSResolver
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

__all__ = [
    "Domain",
    "DomainRepository",
    "DomainStatus",
    "DomainStatusStore",
    "DNSLookup",
    "DNSResolver",
    "JsonDomainRepository",
    "SQLiteDomainRepository",
    "ValidationEngine",
    "ValidationLog",
    "ValidationResult",
    "get_root_domain",
    "is_subdomain",
    "is_valid_domain",
    "normalize_domain",
    "relative_record_name",
    "validate_domain",
]

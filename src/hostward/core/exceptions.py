"""Error taxonomy for Hostward.

Every error carries a stable ``code`` so callers (HTTP handlers, the CLI)
can map it to a response without string matching:

- ConfigurationError: operator problem, surfaced as "service unavailable"
- InvalidInputError: user problem, surfaced as a 4xx with a corrective hint
- TransientNetworkError: timeouts and transport failures, retried by callers
- RegistrarError: per-registrar failure (auth, zone missing, unsupported)
- ProvisioningError: hosting platform rejected a request

A validation pass whose DNS does not match yet is *not* an error; it is a
normal ValidationResult with ``is_valid == False``.
"""

from __future__ import annotations

from enum import Enum


class HostwardError(Exception):
    """Base class for all Hostward errors."""

    code = "internal_error"

    def __init__(self, message: str) -> None:
        super().__init__(message)
        self.message = message


class ConfigurationError(HostwardError):
    """A required credential or setting is missing."""

    code = "not_configured"


class InvalidInputError(HostwardError):
    """Caller supplied malformed or missing input."""

    code = "invalid_input"


class InvalidDomainFormat(InvalidInputError):
    """Domain name is not a valid public hostname."""

    code = "invalid_domain_format"

    def __init__(self, domain: str) -> None:
        super().__init__(f"Invalid domain format: {domain!r}")
        self.domain = domain


class TransientNetworkError(HostwardError):
    """Timeout or transport failure talking to an external service."""

    code = "network_error"


class DomainNotFoundError(HostwardError):
    """No domain with the given id exists."""

    code = "domain_not_found"

    def __init__(self, domain_id: str) -> None:
        super().__init__(f"Domain {domain_id} not found")
        self.domain_id = domain_id


class StorageUnavailableError(HostwardError):
    """The persistence backend could not be read or written."""

    code = "storage_unavailable"


class RegistrarErrorKind(str, Enum):
    """Why a registrar call failed."""

    TRANSPORT = "transport"
    AUTHENTICATION = "authentication"
    ZONE_NOT_FOUND = "zone_not_found"
    UNSUPPORTED = "unsupported"
    UNKNOWN_REGISTRAR = "unknown_registrar"
    API = "api"


class RegistrarError(HostwardError):
    """A registrar API call failed."""

    code = "registrar_error"

    def __init__(
        self,
        registrar_code: str,
        message: str,
        kind: RegistrarErrorKind = RegistrarErrorKind.API,
    ) -> None:
        super().__init__(message)
        self.registrar_code = registrar_code
        self.kind = kind

    def __str__(self) -> str:
        return f"[{self.registrar_code}] {self.message}"


class ProvisioningError(HostwardError):
    """The hosting platform rejected a custom-domain request."""

    code = "provisioning_error"

    def __init__(self, message: str, status_code: int | None = None) -> None:
        super().__init__(message)
        self.status_code = status_code


def format_error_for_user(error: BaseException) -> str:
    """Render an exception as a message safe to show to end users.

    Hostward errors already carry user-facing text. Anything else is
    reduced to its message so stack traces never leak.
    """
    if isinstance(error, ConfigurationError):
        return f"Service unavailable: {error.message}"
    if isinstance(error, HostwardError):
        return error.message
    if isinstance(error, TimeoutError):
        return "The operation timed out. Please try again."
    message = str(error).strip()
    return message or error.__class__.__name__

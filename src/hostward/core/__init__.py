"""Core."""

from .config import (
    HostingConfig,
    HostwardConfig,
    StorageConfig,
    VerificationConfig,
    clear_config,
    get_config,
)
from .exceptions import (
    ConfigurationError,
    DomainNotFoundError,
    HostwardError,
    InvalidDomainFormat,
    InvalidInputError,
    ProvisioningError,
    RegistrarError,
    RegistrarErrorKind,
    StorageUnavailableError,
    TransientNetworkError,
    format_error_for_user,
)

__all__ = [
    "HostingConfig",
    "HostwardConfig",
    "StorageConfig",
    "VerificationConfig",
    "clear_config",
    "get_config",
    "ConfigurationError",
    "DomainNotFoundError",
    "HostwardError",
    "InvalidDomainFormat",
    "InvalidInputError",
    "ProvisioningError",
    "RegistrarError",
    "RegistrarErrorKind",
    "StorageUnavailableError",
    "TransientNetworkError",
    "format_error_for_user",
]

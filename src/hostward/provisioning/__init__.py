"""Hosting platform provisioning for custom domains."""

from hostward.provisioning.client import (
    ProvisioningClient,
    ProvisioningResult,
    RemovalResult,
    RequiredRecord,
    SiteInfo,
)

__all__ = [
    "ProvisioningClient",
    "ProvisioningResult",
    "RemovalResult",
    "RequiredRecord",
    "SiteInfo",
]

"""Hostward - custom domain verification and provisioning.

Proves that a user controls a domain through public DNS, attaches the
domain to the hosting site, and tracks its status over time.
"""

__version__ = "0.3.0"

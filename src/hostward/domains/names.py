"""Domain name normalization and format checks.

User input arrives in every shape (``HTTPS://WWW.Example.com/``,
``example.com.``, ``blog.example.com/path``). Everything downstream works on
the normalized form: lowercase, no scheme, no ``www.`` prefix, no path and no
trailing dot or slash.

Classification is label-count based (no public suffix list):
    - example.com       -> root domain
    - blog.example.com  -> subdomain
"""

from __future__ import annotations

import re
from functools import lru_cache

from hostward.core.exceptions import InvalidDomainFormat

_SCHEME_RE = re.compile(r"^[a-z][a-z0-9+.-]*://")
_LABEL = r"[a-z0-9](?:[a-z0-9-]{0,61}[a-z0-9])?"
_DOMAIN_RE = re.compile(rf"^(?=.{{1,253}}$)(?:{_LABEL}\.)+[a-z]{{2,63}}$")


def normalize_domain(value: str) -> str:
    """Normalize a user-supplied domain string.

    Idempotent: ``normalize_domain(normalize_domain(x)) == normalize_domain(x)``.

    Examples:
        >>> normalize_domain("HTTPS://WWW.Example.com/")
        'example.com'
        >>> normalize_domain("blog.example.com.")
        'blog.example.com'
    """
    domain = value.strip().lower()
    while True:
        previous = domain
        domain = _SCHEME_RE.sub("", domain)
        domain = re.split(r"[/?#]", domain, maxsplit=1)[0]
        if domain.startswith("www."):
            domain = domain[4:]
        domain = domain.strip().rstrip(".")
        if domain == previous:
            return domain


@lru_cache(maxsize=1000)
def is_valid_domain(domain: str) -> bool:
    """Check that an already-normalized domain is a valid public hostname.

    Examples:
        >>> is_valid_domain("example.com")
        True
        >>> is_valid_domain("not a domain")
        False
        >>> is_valid_domain("localhost")
        False
    """
    return bool(_DOMAIN_RE.fullmatch(domain))


def validate_domain(value: str) -> str:
    """Normalize and validate a domain, returning the normalized form.

    Raises:
        InvalidDomainFormat: If the result is not a valid hostname.
    """
    domain = normalize_domain(value)
    if not is_valid_domain(domain):
        raise InvalidDomainFormat(value)
    return domain


def is_subdomain(domain: str) -> bool:
    """True if the domain has more than two labels (blog.example.com)."""
    return domain.count(".") >= 2


def get_root_domain(domain: str) -> str:
    """Return the last two labels of a domain.

    Examples:
        >>> get_root_domain("blog.example.com")
        'example.com'
        >>> get_root_domain("example.com")
        'example.com'
    """
    return ".".join(domain.split(".")[-2:])


def relative_record_name(native_name: str, domain: str) -> str:
    """Reduce a registrar-native record name to ``@`` or a bare label.

    Registrars disagree on naming: Cloudflare returns fully-qualified names,
    GoDaddy and DigitalOcean return relative ones. The result never ends in
    the domain suffix.

    Examples:
        >>> relative_record_name("example.com", "example.com")
        '@'
        >>> relative_record_name("www.example.com.", "example.com")
        'www'
        >>> relative_record_name("www", "example.com")
        'www'
    """
    name = native_name.strip().lower().rstrip(".")
    domain = domain.strip().lower().rstrip(".")
    if name in ("", "@", domain):
        return "@"
    suffix = f".{domain}"
    if name.endswith(suffix):
        return name[: -len(suffix)]
    return name


def absolute_record_name(name: str, domain: str) -> str:
    """Inverse of relative_record_name: ``@`` -> domain, ``www`` -> www.domain."""
    relative = relative_record_name(name, domain)
    return domain if relative == "@" else f"{relative}.{domain}"

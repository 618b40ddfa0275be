"""Tests for registrar adapters."""

from __future__ import annotations

import json

import httpx
import pytest

from conftest import StaticResolver
from hostward.core.exceptions import InvalidDomainFormat, RegistrarError, RegistrarErrorKind
from hostward.registrars import (
    NAMESERVER_PATTERNS,
    REGISTRAR_ADAPTERS,
    DNSRecord,
    RegistrarCredential,
    detect_registrar,
    get_adapter,
    identify_registrar,
    list_records,
    list_records_many,
    normalize_records,
    update_records,
)
from hostward.registrars.base import pair_with_existing
from hostward.registrars.namecheap import parse_hosts, split_domain

NAMECHEAP_OK = b"""<?xml version="1.0" encoding="utf-8"?>
<ApiResponse Status="OK" xmlns="http://api.namecheap.com/xml.response">
  <CommandResponse Type="namecheap.domains.dns.getHosts">
    <DomainDNSGetHostsResult Domain="example.com" IsUsingOurDNS="true">
      <host HostId="1" Name="@" Type="A" Address="75.2.60.5" MXPref="10" TTL="1800" />
      <host HostId="2" Name="www" Type="CNAME" Address="site.netlify.app." MXPref="10" TTL="1800" />
      <host HostId="3" Name="@" Type="MX" Address="mx.example.net" MXPref="20" TTL="1800" />
    </DomainDNSGetHostsResult>
  </CommandResponse>
</ApiResponse>
"""

NAMECHEAP_AUTH_ERROR = b"""<?xml version="1.0" encoding="utf-8"?>
<ApiResponse Status="ERROR" xmlns="http://api.namecheap.com/xml.response">
  <Errors>
    <Error Number="1011102">API Key is invalid or API access has not been enabled</Error>
  </Errors>
</ApiResponse>
"""


def _client(handler) -> httpx.AsyncClient:
    return httpx.AsyncClient(transport=httpx.MockTransport(handler))


def _cloudflare_ok(result, **extra):
    return httpx.Response(200, json={"success": True, "errors": [], "result": result, **extra})


class TestAdapterRegistry:
    """Tests for the adapter lookup table."""

    def test_known_registrars(self):
        """Test every supported registrar has an adapter."""
        assert set(REGISTRAR_ADAPTERS) == {"cloudflare", "namecheap", "godaddy", "digitalocean"}
        assert get_adapter("Cloudflare").name == "Cloudflare"

    def test_namecheap_is_read_only(self):
        """Test Namecheap offers no write function."""
        assert get_adapter("namecheap").upsert_records is None

    def test_unknown_registrar(self):
        """Test unknown codes raise with the supported list."""
        with pytest.raises(RegistrarError) as exc_info:
            get_adapter("unknown-registrar")
        assert exc_info.value.kind == RegistrarErrorKind.UNKNOWN_REGISTRAR
        assert "cloudflare" in exc_info.value.message


class TestListRecords:
    """Tests for the list_records entry point."""

    @pytest.mark.asyncio
    async def test_unknown_registrar_returns_error(self):
        """Test an unknown registrar yields an error result with no records."""
        result = await list_records("example.com", RegistrarCredential("unknown-registrar"))

        assert not result.ok
        assert result.records == []
        assert result.error.kind == RegistrarErrorKind.UNKNOWN_REGISTRAR
        assert "Unsupported registrar" in result.error.message

    @pytest.mark.asyncio
    async def test_invalid_domain_raises(self):
        """Test a malformed domain is rejected before any request."""
        with pytest.raises(InvalidDomainFormat):
            await list_records("not a domain", RegistrarCredential("cloudflare", api_key="x"))

    @pytest.mark.asyncio
    async def test_missing_credentials(self):
        """Test missing keys produce an authentication error without a request."""
        calls = []

        def handler(request):
            calls.append(request)
            return httpx.Response(500)

        async with _client(handler) as client:
            result = await list_records(
                "example.com", RegistrarCredential("godaddy", api_key="k"), client=client
            )

        assert result.error.kind == RegistrarErrorKind.AUTHENTICATION
        assert "api_secret" in result.error.message
        assert calls == []

    @pytest.mark.asyncio
    async def test_cloudflare(self):
        """Test Cloudflare zone lookup and record normalization."""
        seen = []

        def handler(request):
            seen.append(request)
            assert request.headers["Authorization"] == "Bearer cf-token"
            if request.url.path.endswith("/zones"):
                return _cloudflare_ok([{"id": "zone-1", "name": "example.com"}])
            return _cloudflare_ok(
                [
                    {"id": "r1", "type": "A", "name": "example.com",
                     "content": "75.2.60.5", "ttl": 1},
                    {"id": "r2", "type": "cname", "name": "www.example.com",
                     "content": "site.netlify.app", "ttl": 3600},
                ],
                result_info={"page": 1, "total_pages": 1},
            )

        async with _client(handler) as client:
            result = await list_records(
                "example.com", RegistrarCredential("cloudflare", api_key="cf-token"), client=client
            )

        assert result.ok
        assert [(r.type, r.name, r.content) for r in result.records] == [
            ("A", "@", "75.2.60.5"),
            ("CNAME", "www", "site.netlify.app"),
        ]
        assert seen[0].url.params["name"] == "example.com"
        assert seen[1].url.path == "/client/v4/zones/zone-1/dns_records"

    @pytest.mark.asyncio
    async def test_cloudflare_zone_walks_up(self):
        """Test a subdomain finds its parent zone and names are relative to that zone."""
        names = []

        def handler(request):
            if request.url.path.endswith("/zones"):
                names.append(request.url.params["name"])
                if request.url.params["name"] == "example.com":
                    return _cloudflare_ok([{"id": "zone-1", "name": "example.com"}])
                return _cloudflare_ok([])
            return _cloudflare_ok(
                [
                    {"id": "r1", "type": "A", "name": "example.com", "content": "75.2.60.5"},
                    {"id": "r2", "type": "CNAME", "name": "www.example.com", "content": "x.net"},
                    {"id": "r3", "type": "CNAME", "name": "blog.example.com", "content": "y.net"},
                ],
                result_info={"total_pages": 1},
            )

        async with _client(handler) as client:
            result = await list_records(
                "blog.example.com", RegistrarCredential("cloudflare", api_key="t"), client=client
            )

        assert result.ok
        assert names == ["blog.example.com", "example.com"]
        assert [r.name for r in result.records] == ["@", "www", "blog"]
        assert not any(r.name.endswith("example.com") for r in result.records)

    @pytest.mark.asyncio
    async def test_cloudflare_explicit_zone(self):
        """Test a zone id from the credentials is resolved to its name."""
        paths = []

        def handler(request):
            paths.append(request.url.path)
            if request.url.path.endswith("/zones/zone-9"):
                return _cloudflare_ok({"id": "zone-9", "name": "example.com"})
            return _cloudflare_ok(
                [{"id": "r1", "type": "TXT", "name": "shop.example.com", "content": "hello"}],
                result_info={"total_pages": 1},
            )

        async with _client(handler) as client:
            result = await list_records(
                "shop.example.com",
                RegistrarCredential("cloudflare", api_key="t", zone="zone-9"),
                client=client,
            )

        assert result.ok
        assert paths == ["/client/v4/zones/zone-9", "/client/v4/zones/zone-9/dns_records"]
        assert [r.name for r in result.records] == ["shop"]

    @pytest.mark.asyncio
    async def test_cloudflare_auth_failure(self):
        """Test a 403 maps to an authentication error."""

        def handler(request):
            return httpx.Response(
                403, json={"success": False, "errors": [{"message": "Invalid API Token"}]}
            )

        async with _client(handler) as client:
            result = await list_records(
                "example.com", RegistrarCredential("cloudflare", api_key="bad"), client=client
            )

        assert result.error.kind == RegistrarErrorKind.AUTHENTICATION
        assert "Invalid API Token" in result.error.message

    @pytest.mark.asyncio
    async def test_godaddy(self):
        """Test GoDaddy records and sso-key header."""

        def handler(request):
            assert request.headers["Authorization"] == "sso-key key:secret"
            assert request.url.path == "/v1/domains/example.com/records"
            return httpx.Response(
                200,
                json=[
                    {"type": "A", "name": "@", "data": "75.2.60.5", "ttl": 600},
                    {"type": "TXT", "name": "@", "data": "blo-verification=abc", "ttl": 600},
                ],
            )

        async with _client(handler) as client:
            result = await list_records(
                "example.com",
                RegistrarCredential("godaddy", api_key="key", api_secret="secret"),
                client=client,
            )

        assert result.ok
        assert result.records[1].content == "blo-verification=abc"

    @pytest.mark.asyncio
    async def test_godaddy_unknown_domain(self):
        """Test a 404 maps to zone-not-found."""

        def handler(request):
            return httpx.Response(404, json={"code": "NOT_FOUND", "message": "Domain not found"})

        async with _client(handler) as client:
            result = await list_records(
                "example.com",
                RegistrarCredential("godaddy", api_key="key", api_secret="secret"),
                client=client,
            )

        assert result.error.kind == RegistrarErrorKind.ZONE_NOT_FOUND

    @pytest.mark.asyncio
    async def test_digitalocean_pages(self):
        """Test DigitalOcean pagination follows links.pages.next."""

        def handler(request):
            page = int(request.url.params["page"])
            if page == 1:
                return httpx.Response(
                    200,
                    json={
                        "domain_records": [
                            {"id": 1, "type": "A", "name": "@", "data": "75.2.60.5"}
                        ],
                        "links": {"pages": {"next": "https://api.digitalocean.com/v2/...page=2"}},
                    },
                )
            return httpx.Response(
                200,
                json={
                    "domain_records": [{"id": 2, "type": "CNAME", "name": "www", "data": "@"}],
                    "links": {},
                },
            )

        async with _client(handler) as client:
            result = await list_records(
                "example.com", RegistrarCredential("digitalocean", api_key="do"), client=client
            )

        assert [r.id for r in result.records] == ["1", "2"]

    @pytest.mark.asyncio
    async def test_namecheap(self):
        """Test Namecheap XML is parsed and SLD/TLD are sent."""
        params = {}

        def handler(request):
            params.update(request.url.params)
            return httpx.Response(200, content=NAMECHEAP_OK)

        async with _client(handler) as client:
            result = await list_records(
                "example.com",
                RegistrarCredential(
                    "namecheap", api_key="nc", user_id="alice", client_ip="198.51.100.1"
                ),
                client=client,
            )

        assert result.ok
        assert params["SLD"] == "example"
        assert params["TLD"] == "com"
        assert params["Command"] == "namecheap.domains.dns.getHosts"
        assert [(r.type, r.name) for r in result.records] == [
            ("A", "@"),
            ("CNAME", "www"),
            ("MX", "@"),
        ]
        assert result.records[2].priority == 20
        assert result.records[0].priority is None

    @pytest.mark.asyncio
    async def test_transport_failure(self):
        """Test connection errors map to transport errors."""

        def handler(request):
            raise httpx.ConnectError("connection refused", request=request)

        async with _client(handler) as client:
            result = await list_records(
                "example.com", RegistrarCredential("digitalocean", api_key="do"), client=client
            )

        assert result.error.kind == RegistrarErrorKind.TRANSPORT

    @pytest.mark.asyncio
    async def test_list_records_many(self):
        """Test several registrars are queried and results keep input order."""

        def handler(request):
            return httpx.Response(200, json=[{"type": "A", "name": "@", "data": "75.2.60.5"}])

        async with _client(handler) as client:
            results = await list_records_many(
                "example.com",
                [
                    RegistrarCredential("unknown-registrar"),
                    RegistrarCredential("godaddy", api_key="k", api_secret="s"),
                ],
                client=client,
            )

        assert [r.registrar_code for r in results] == ["unknown-registrar", "godaddy"]
        assert not results[0].ok
        assert results[1].ok


class TestNamecheapParsing:
    """Tests for Namecheap helpers."""

    def test_split_domain(self):
        """Test SLD/TLD split keeps multi-label TLDs together."""
        assert split_domain("example.com") == ("example", "com")
        assert split_domain("example.co.uk") == ("example", "co.uk")

    def test_error_response(self):
        """Test API key errors are classified as authentication failures."""
        with pytest.raises(RegistrarError) as exc_info:
            parse_hosts(NAMECHEAP_AUTH_ERROR)
        assert exc_info.value.kind == RegistrarErrorKind.AUTHENTICATION

    def test_invalid_xml(self):
        """Test malformed XML is an API error."""
        with pytest.raises(RegistrarError) as exc_info:
            parse_hosts(b"<ApiResponse")
        assert exc_info.value.kind == RegistrarErrorKind.API


class TestNormalizeRecords:
    """Tests for record name normalization."""

    def test_names_relative(self):
        """Test absolute and relative names converge."""
        records = [
            DNSRecord("a", "example.com.", "1.2.3.4"),
            DNSRecord("CNAME", "www.example.com", "x"),
            DNSRecord("TXT", "@", "y"),
        ]

        normalized = normalize_records(records, "example.com")

        assert [(r.type, r.name) for r in normalized] == [
            ("A", "@"),
            ("CNAME", "www"),
            ("TXT", "@"),
        ]
        assert normalize_records(normalized, "example.com") == normalized


class TestUpdateRecords:
    """Tests for pushing records to registrars."""

    @pytest.mark.asyncio
    async def test_namecheap_unsupported(self):
        """Test writing through a read-only adapter is reported, not raised."""
        result = await update_records(
            "example.com", [DNSRecord("A", "@", "1.2.3.4")], RegistrarCredential("namecheap")
        )

        assert not result.success
        assert result.error.kind == RegistrarErrorKind.UNSUPPORTED
        assert result.failed == 1

    @pytest.mark.asyncio
    async def test_cloudflare_upsert(self):
        """Test a changed CNAME is updated in place and a new TXT created."""
        writes = []

        def handler(request):
            if request.url.path.endswith("/zones/zone-1"):
                return _cloudflare_ok({"id": "zone-1", "name": "example.com"})
            if request.method == "GET":
                return _cloudflare_ok(
                    [
                        {"id": "c1", "type": "CNAME", "name": "www.example.com",
                         "content": "old.example.net"},
                    ],
                    result_info={"total_pages": 1},
                )
            writes.append((request.method, request.url.path, json.loads(request.content)))
            return _cloudflare_ok({"id": "new"})

        async with _client(handler) as client:
            result = await update_records(
                "example.com",
                [
                    DNSRecord("CNAME", "www", "site.netlify.app"),
                    DNSRecord("TXT", "@", "blo-verification=abc"),
                ],
                RegistrarCredential("cloudflare", api_key="t", zone="zone-1"),
                client=client,
            )

        assert result.success
        assert (result.created, result.updated) == (1, 1)
        assert writes[0][0] == "PUT"
        assert writes[0][1].endswith("/dns_records/c1")
        assert writes[0][2]["name"] == "www.example.com"
        assert writes[1][0] == "POST"
        assert writes[1][2]["name"] == "example.com"

    @pytest.mark.asyncio
    async def test_cloudflare_keeps_spf_and_adds_every_ip(self):
        """Test pushing TXT and two A records leaves SPF and the existing A alone."""
        writes = []

        def handler(request):
            if request.url.path.endswith("/zones"):
                return _cloudflare_ok([{"id": "zone-1", "name": "example.com"}])
            if request.method == "GET":
                return _cloudflare_ok(
                    [
                        {"id": "spf", "type": "TXT", "name": "example.com",
                         "content": "v=spf1 -all"},
                        {"id": "a1", "type": "A", "name": "example.com", "content": "75.2.60.5"},
                    ],
                    result_info={"total_pages": 1},
                )
            writes.append((request.method, request.url.path, json.loads(request.content)))
            return _cloudflare_ok({"id": "new"})

        async with _client(handler) as client:
            result = await update_records(
                "example.com",
                [
                    DNSRecord("TXT", "@", "blo-verification=TOK"),
                    DNSRecord("A", "@", "75.2.60.5"),
                    DNSRecord("A", "@", "99.83.190.102"),
                ],
                RegistrarCredential("cloudflare", api_key="t"),
                client=client,
            )

        assert result.success
        assert (result.created, result.updated, result.unchanged) == (2, 0, 1)
        assert [(method, body["type"], body["content"]) for method, _, body in writes] == [
            ("POST", "TXT", "blo-verification=TOK"),
            ("POST", "A", "99.83.190.102"),
        ]
        assert not any(path.endswith(("/spf", "/a1")) for _, path, _ in writes)

    @pytest.mark.asyncio
    async def test_cloudflare_replaces_old_verification_token(self):
        """Test a stale verification TXT is updated instead of duplicated."""
        writes = []

        def handler(request):
            if request.url.path.endswith("/zones"):
                return _cloudflare_ok([{"id": "zone-1", "name": "example.com"}])
            if request.method == "GET":
                return _cloudflare_ok(
                    [
                        {"id": "spf", "type": "TXT", "name": "example.com",
                         "content": "v=spf1 -all"},
                        {"id": "tok", "type": "TXT", "name": "example.com",
                         "content": '"blo-verification=OLD"'},
                    ],
                    result_info={"total_pages": 1},
                )
            writes.append((request.method, request.url.path))
            return _cloudflare_ok({"id": "tok"})

        async with _client(handler) as client:
            result = await update_records(
                "example.com",
                [DNSRecord("TXT", "@", "blo-verification=NEW")],
                RegistrarCredential("cloudflare", api_key="t"),
                client=client,
            )

        assert result.updated == 1
        assert writes == [("PUT", "/client/v4/zones/zone-1/dns_records/tok")]

    @pytest.mark.asyncio
    async def test_cloudflare_subdomain_push_uses_zone_names(self):
        """Test records for a subdomain are written with zone-anchored names."""
        writes = []

        def handler(request):
            if request.url.path.endswith("/zones"):
                if request.url.params["name"] == "example.com":
                    return _cloudflare_ok([{"id": "zone-1", "name": "example.com"}])
                return _cloudflare_ok([])
            if request.method == "GET":
                return _cloudflare_ok([], result_info={"total_pages": 1})
            writes.append(json.loads(request.content))
            return _cloudflare_ok({"id": "new"})

        async with _client(handler) as client:
            result = await update_records(
                "blog.example.com",
                [DNSRecord("CNAME", "@", "site.netlify.app")],
                RegistrarCredential("cloudflare", api_key="t"),
                client=client,
            )

        assert result.created == 1
        assert writes[0]["name"] == "blog.example.com"

    @pytest.mark.asyncio
    async def test_digitalocean_partial_failure(self):
        """Test one rejected record does not stop the others."""

        def handler(request):
            if request.method == "GET":
                return httpx.Response(200, json={"domain_records": [], "links": {}})
            body = json.loads(request.content)
            if body["type"] == "TXT":
                return httpx.Response(422, json={"id": "unprocessable_entity", "message": "bad"})
            return httpx.Response(201, json={"domain_record": body})

        async with _client(handler) as client:
            result = await update_records(
                "example.com",
                [DNSRecord("A", "@", "75.2.60.5"), DNSRecord("TXT", "@", "x")],
                RegistrarCredential("digitalocean", api_key="do"),
                client=client,
            )

        assert result.created == 1
        assert result.failed == 1
        assert not result.success
        assert "HTTP 422" in result.errors[0]

    @pytest.mark.asyncio
    async def test_godaddy_keeps_other_records(self):
        """Test a type-level PUT resends untouched records of that type."""
        puts = {}

        def handler(request):
            if request.method == "GET":
                return httpx.Response(
                    200,
                    json=[
                        {"type": "CNAME", "name": "www", "data": "old.example.net"},
                        {"type": "CNAME", "name": "shop", "data": "shops.example.net"},
                    ],
                )
            puts[request.url.path] = json.loads(request.content)
            return httpx.Response(200)

        async with _client(handler) as client:
            result = await update_records(
                "example.com",
                [DNSRecord("CNAME", "www", "site.netlify.app")],
                RegistrarCredential("godaddy", api_key="k", api_secret="s"),
                client=client,
            )

        assert result.updated == 1
        payload = puts["/v1/domains/example.com/records/CNAME"]
        assert {item["name"]: item["data"] for item in payload} == {
            "shop": "shops.example.net",
            "www": "site.netlify.app",
        }

    @pytest.mark.asyncio
    async def test_godaddy_keeps_spf(self):
        """Test the verification TXT is added next to an existing SPF record."""
        puts = {}

        def handler(request):
            if request.method == "GET":
                return httpx.Response(
                    200,
                    json=[
                        {"type": "TXT", "name": "@", "data": "v=spf1 include:mail.test -all"},
                        {"type": "A", "name": "@", "data": "75.2.60.5"},
                    ],
                )
            puts[request.url.path] = json.loads(request.content)
            return httpx.Response(200)

        async with _client(handler) as client:
            result = await update_records(
                "example.com",
                [
                    DNSRecord("TXT", "@", "blo-verification=TOK"),
                    DNSRecord("A", "@", "75.2.60.5"),
                ],
                RegistrarCredential("godaddy", api_key="k", api_secret="s"),
                client=client,
            )

        assert (result.created, result.unchanged) == (1, 1)
        assert list(puts) == ["/v1/domains/example.com/records/TXT"]
        assert {item["data"] for item in puts["/v1/domains/example.com/records/TXT"]} == {
            "v=spf1 include:mail.test -all",
            "blo-verification=TOK",
        }

    @pytest.mark.asyncio
    async def test_digitalocean_adds_missing_ips(self):
        """Test a pool of A records never reuses one existing record id."""
        writes = []

        def handler(request):
            if request.method == "GET":
                return httpx.Response(
                    200,
                    json={
                        "domain_records": [
                            {"id": 7, "type": "A", "name": "@", "data": "75.2.60.5"},
                            {"id": 8, "type": "TXT", "name": "@", "data": "v=spf1 -all"},
                        ],
                        "links": {},
                    },
                )
            writes.append((request.method, request.url.path, json.loads(request.content)))
            return httpx.Response(201, json={"domain_record": {}})

        async with _client(handler) as client:
            result = await update_records(
                "example.com",
                [
                    DNSRecord("A", "@", "99.83.190.102"),
                    DNSRecord("A", "@", "75.2.60.5"),
                    DNSRecord("TXT", "@", "blo-verification=TOK"),
                ],
                RegistrarCredential("digitalocean", api_key="do"),
                client=client,
            )

        assert (result.created, result.updated, result.unchanged) == (2, 0, 1)
        assert [(method, path) for method, path, _ in writes] == [
            ("POST", "/v2/domains/example.com/records"),
            ("POST", "/v2/domains/example.com/records"),
        ]
        assert [body["data"] for _, _, body in writes] == [
            "99.83.190.102",
            "blo-verification=TOK",
        ]


class TestPairWithExisting:
    """Tests for matching desired records against a zone."""

    def test_rules(self):
        """Test CNAME replaces, A and foreign TXT values are kept, same-key TXT replaces."""
        existing = [
            DNSRecord("CNAME", "www", "old.net", id="c"),
            DNSRecord("A", "@", "1.1.1.1", id="a"),
            DNSRecord("TXT", "@", "v=spf1 -all", id="spf"),
            DNSRecord("TXT", "@", "blo-verification=OLD", id="tok"),
        ]
        desired = [
            DNSRecord("CNAME", "www", "new.net"),
            DNSRecord("A", "@", "2.2.2.2"),
            DNSRecord("TXT", "@", "blo-verification=NEW"),
        ]

        pairs = pair_with_existing(desired, existing)

        assert [match.id if match else None for _, match in pairs] == ["c", None, "tok"]

    def test_each_record_claimed_once(self):
        """Test two desired records never pair with the same existing one."""
        existing = [DNSRecord("CNAME", "www", "a.net", id="c")]
        desired = [DNSRecord("CNAME", "www", "b.net"), DNSRecord("CNAME", "www", "c.net")]

        pairs = pair_with_existing(desired, existing)

        assert [match.id if match else None for _, match in pairs] == ["c", None]


class TestMalformedResponses:
    """Tests for successful responses with unusable bodies."""

    @pytest.mark.asyncio
    @pytest.mark.parametrize(
        "registrar, credentials",
        [
            ("godaddy", {"api_key": "k", "api_secret": "s"}),
            ("digitalocean", {"api_key": "do"}),
            ("cloudflare", {"api_key": "cf"}),
        ],
    )
    async def test_html_body(self, registrar, credentials):
        """Test a 200 HTML page is returned as an API error, not raised."""

        def handler(request):
            return httpx.Response(200, text="<html>maintenance</html>")

        async with _client(handler) as client:
            result = await list_records(
                "example.com", RegistrarCredential(registrar, **credentials), client=client
            )

        assert not result.ok
        assert result.error.kind == RegistrarErrorKind.API
        assert "Invalid JSON response" in result.error.message

    @pytest.mark.asyncio
    async def test_unexpected_shape(self):
        """Test a JSON object where a list is expected is an API error."""

        def handler(request):
            return httpx.Response(200, json={"records": []})

        async with _client(handler) as client:
            result = await list_records(
                "example.com",
                RegistrarCredential("godaddy", api_key="k", api_secret="s"),
                client=client,
            )

        assert result.error.kind == RegistrarErrorKind.API
        assert "expected list" in result.error.message


class TestDetectRegistrar:
    """Tests for nameserver-based registrar detection."""

    def test_patterns_use_adapter_codes(self):
        """Test every detectable registrar has an adapter."""
        assert set(NAMESERVER_PATTERNS) <= set(REGISTRAR_ADAPTERS)

    @pytest.mark.parametrize(
        "nameservers, expected",
        [
            (["ada.ns.cloudflare.com", "bob.ns.cloudflare.com"], "cloudflare"),
            (["dns1.registrar-servers.com."], "namecheap"),
            (["NS07.DomainControl.com"], "godaddy"),
            (["ns1.digitalocean.com", "ns2.digitalocean.com"], "digitalocean"),
            (["ns-1.awsdns-01.org"], None),
            (["ns1.notcloudflare.com"], None),
            ([], None),
        ],
    )
    def test_identify(self, nameservers, expected):
        """Test nameserver hostnames map to adapter codes."""
        assert identify_registrar(nameservers) == expected

    @pytest.mark.asyncio
    async def test_walks_up_to_zone(self):
        """Test a subdomain is detected from its parent zone's NS records."""
        resolver = StaticResolver(ns={"example.com": ["ns1.digitalocean.com"]})

        detection = await detect_registrar("https://shop.example.com/", resolver)

        assert detection.detected
        assert detection.registrar_code == "digitalocean"
        assert detection.zone == "example.com"
        assert resolver.calls == [("NS", "shop.example.com"), ("NS", "example.com")]

    @pytest.mark.asyncio
    async def test_unrecognized_nameservers(self):
        """Test unknown nameservers are reported without a registrar."""
        resolver = StaticResolver(ns={"example.com": ["ns1.example-dns.net"]})

        detection = await detect_registrar("example.com", resolver)

        assert not detection.detected
        assert detection.nameservers == ["ns1.example-dns.net"]
        assert detection.error is None

    @pytest.mark.asyncio
    async def test_lookup_failure(self):
        """Test resolver errors are returned, not raised."""
        resolver = StaticResolver(errors={"NS": "domain does not exist (NXDOMAIN)"})

        detection = await detect_registrar("example.com", resolver)

        assert not detection.detected
        assert "NXDOMAIN" in detection.error
        assert detection.to_dict()["registrar"] is None

    @pytest.mark.asyncio
    async def test_no_nameservers(self):
        """Test an empty answer everywhere is reported."""
        detection = await detect_registrar("example.com", StaticResolver())

        assert detection.error == "No nameservers found for example.com"

    @pytest.mark.asyncio
    async def test_invalid_domain(self):
        """Test a malformed domain is rejected before any lookup."""
        resolver = StaticResolver()
        with pytest.raises(InvalidDomainFormat):
            await detect_registrar("not a domain", resolver)

        assert resolver.calls == []

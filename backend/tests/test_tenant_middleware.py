import os

from fastapi import FastAPI, Request
from fastapi.testclient import TestClient

os.environ.setdefault("SKIP_MIGRATIONS", "1")
os.environ.setdefault("DATABASE_URL", "sqlite:///:memory:")

from ekkle.core.config import settings
from ekkle.tenancy.errors import TenantResolutionError
from ekkle.tenancy.middleware import TenantResolverMiddleware
from ekkle.tenancy.resolver import TenantResolver
from ekkle.tenancy.session import SessionOutcome


ROOTS = ["ekkle.com.br", "www.ekkle.com.br", "admin.ekkle.com.br"]
SESSION_COOKIE = "sb-token=abc; Path=/; HttpOnly"


class StaticRefresher:
    def __init__(self, outcome: SessionOutcome) -> None:
        self.outcome = outcome
        self.calls = 0

    async def refresh(self, request):
        self.calls += 1
        return self.outcome


class FailingRefresher:
    async def refresh(self, request):
        raise RuntimeError("auth provider unavailable")


class BrokenResolver(TenantResolver):
    def resolve(self, host, path):
        raise TenantResolutionError("boom")


class PeerAddress:
    """Serve the app as if every connection came from ``host``."""

    def __init__(self, app, host):
        self.app = app
        self.host = host

    async def __call__(self, scope, receive, send):
        if scope["type"] == "http":
            scope = dict(scope, client=(self.host, 41000))
        await self.app(scope, receive, send)


def _build_client(*, outcome=None, refresher=None, resolver=None, peer=None):
    inner = FastAPI()

    @inner.get("/{full_path:path}")
    def echo(full_path: str, request: Request):
        return {
            "path": request.url.path,
            "scope_path": request.scope["path"],
            "raw_path": request.scope.get("raw_path", b"").decode("ascii"),
            "query": request.url.query,
            "church_slug": request.headers.get("x-church-slug"),
            "church_id": request.headers.get("x-church-id"),
            "pathname": request.headers.get("x-pathname"),
        }

    if refresher is None:
        refresher = StaticRefresher(outcome or SessionOutcome(set_cookies=(SESSION_COOKIE,)))
    inner.add_middleware(
        TenantResolverMiddleware,
        resolver=resolver or TenantResolver(root_hostnames=ROOTS, church_ids={"graca": "42"}),
        session_refresher=refresher,
    )
    return TestClient(PeerAddress(inner, peer) if peer else inner)


def _cookies(response):
    return response.headers.get_list("set-cookie")


def test_example_scenario_rewrites_and_keeps_cookie():
    client = _build_client()
    response = client.get("http://graca.ekkle.com.br/cultos")
    assert response.status_code == 200
    body = response.json()
    assert body["path"] == "/site/graca/cultos"
    assert body["church_slug"] == "graca"
    assert body["church_id"] == "42"
    assert SESSION_COOKIE in _cookies(response)


def test_query_string_survives_rewrite():
    client = _build_client()
    body = client.get("http://graca.ekkle.com.br/eventos?mes=10").json()
    assert body["path"] == "/site/graca/eventos"
    assert body["query"] == "mes=10"


def test_root_domain_passes_through_with_pathname():
    client = _build_client()
    response = client.get("http://www.ekkle.com.br/dashboard/membros")
    body = response.json()
    assert body["path"] == "/dashboard/membros"
    assert body["pathname"] == "/dashboard/membros"
    assert body["church_slug"] is None
    assert SESSION_COOKIE in _cookies(response)


def test_bypass_route_keeps_path_and_sets_slug():
    client = _build_client()
    response = client.get("http://graca.ekkle.com.br/dashboard")
    body = response.json()
    assert body["path"] == "/dashboard"
    assert body["church_slug"] == "graca"
    assert body["pathname"] is None
    assert SESSION_COOKIE in _cookies(response)


def test_session_redirect_short_circuits_everything():
    outcome = SessionOutcome(
        redirect_url="/assinatura-expirada",
        status_code=307,
        set_cookies=(SESSION_COOKIE,),
    )
    for url in (
        "http://graca.ekkle.com.br/cultos",
        "http://graca.ekkle.com.br/dashboard",
        "http://ekkle.com.br/",
    ):
        client = _build_client(outcome=outcome)
        response = client.get(url, follow_redirects=False)
        assert response.status_code == 307
        assert response.headers["location"] == "/assinatura-expirada"
        assert SESSION_COOKIE in _cookies(response)


def test_multiple_session_cookies_are_all_copied():
    cookies = ("sb-access=one; Path=/", "sb-refresh=two; Path=/")
    client = _build_client(outcome=SessionOutcome(set_cookies=cookies))
    response = client.get("http://graca.ekkle.com.br/sobre")
    assert set(cookies) <= set(_cookies(response))


def test_spoofed_tenant_headers_are_discarded():
    client = _build_client()
    body = client.get(
        "http://ekkle.com.br/dashboard",
        headers={"x-church-slug": "evil", "x-church-id": "1"},
    ).json()
    assert body["church_slug"] is None
    assert body["church_id"] is None

    body = client.get(
        "http://graca.ekkle.com.br/dashboard",
        headers={"x-church-slug": "evil", "x-pathname": "/forged"},
    ).json()
    assert body["church_slug"] == "graca"
    assert body["pathname"] is None


def test_resolution_failure_falls_back_to_original_request():
    client = _build_client(resolver=BrokenResolver(root_hostnames=ROOTS))
    response = client.get("http://graca.ekkle.com.br/cultos", headers={"x-church-slug": "evil"})
    assert response.status_code == 200
    body = response.json()
    assert body["path"] == "/cultos"
    assert body["church_slug"] is None
    assert SESSION_COOKIE in _cookies(response)


def test_session_refresh_failure_falls_back_without_error():
    client = _build_client(refresher=FailingRefresher())
    response = client.get("http://graca.ekkle.com.br/cultos")
    assert response.status_code == 200
    assert response.json()["path"] == "/cultos"
    assert _cookies(response) == []


def test_forwarded_host_used_only_when_proxy_headers_trusted(monkeypatch):
    client = _build_client()
    monkeypatch.setattr(settings, "TRUST_PROXY_HEADERS", False)
    body = client.get("http://ekkle.com.br/cultos", headers={"x-forwarded-host": "graca.ekkle.com.br"}).json()
    assert body["path"] == "/cultos"

    monkeypatch.setattr(settings, "TRUST_PROXY_HEADERS", True)
    monkeypatch.setattr(settings, "TRUSTED_PROXY_IPS", ["10.0.0.0/8"])
    body = client.get("http://ekkle.com.br/cultos", headers={"x-forwarded-host": "graca.ekkle.com.br"}).json()
    assert body["path"] == "/cultos"

    proxied = _build_client(peer="10.0.0.9")
    body = proxied.get("http://ekkle.com.br/cultos", headers={"x-forwarded-host": "graca.ekkle.com.br"}).json()
    assert body["path"] == "/site/graca/cultos"
    assert body["church_slug"] == "graca"


def test_forwarded_host_ignored_when_allow_list_is_empty(monkeypatch):
    monkeypatch.setattr(settings, "TRUST_PROXY_HEADERS", True)
    monkeypatch.setattr(settings, "TRUSTED_PROXY_IPS", [])
    client = _build_client(peer="10.0.0.9")
    body = client.get("http://ekkle.com.br/cultos", headers={"x-forwarded-host": "graca.ekkle.com.br"}).json()
    assert body["path"] == "/cultos"
    assert body["church_slug"] is None


def test_rewrite_keeps_encoded_hash_and_question_mark():
    client = _build_client()
    body = client.get("http://graca.ekkle.com.br/eventos%23retiro").json()
    assert body["scope_path"] == "/site/graca/eventos#retiro"
    assert body["raw_path"] == "/site/graca/eventos%23retiro"

    body = client.get("http://graca.ekkle.com.br/sobre%3Fx?aba=1").json()
    assert body["scope_path"] == "/site/graca/sobre?x"
    assert body["raw_path"] == "/site/graca/sobre%3Fx"
    assert body["query"] == "aba=1"


def test_rewrite_raw_path_for_plain_path():
    body = _build_client().get("http://graca.ekkle.com.br/cultos").json()
    assert body["raw_path"] == "/site/graca/cultos"


def test_refresher_runs_once_per_request():
    refresher = StaticRefresher(SessionOutcome())
    client = _build_client(refresher=refresher)
    client.get("http://graca.ekkle.com.br/")
    client.get("http://ekkle.com.br/")
    assert refresher.calls == 2

import os

# Pas de Redis pendant les tests: le rate limiting est désactivé dans le lifespan
os.environ.setdefault("DISABLE_FASTAPI_LIMITER_INIT_FOR_TESTS", "1")

import pytest
from typing import Any, Callable, Dict, Generator, List
from unittest.mock import MagicMock

import httpx
from cryptography.hazmat.primitives import serialization
from cryptography.hazmat.primitives.asymmetric import rsa
from fastapi.testclient import TestClient

from deelauto.app import app as fastapi_app
from deelauto.bunq import BunqClient
from deelauto.config import BunqConfig
from deelauto.utils.dependencies import get_bunq_client
from deelauto.utils.security import require_admin, require_user

# Marquage automatique selon le dossier
def pytest_collection_modifyitems(config, items):
    for item in items:
        nodeid = item.nodeid.replace("\\", "/")
        if "tests/unit/" in nodeid:
            item.add_marker(pytest.mark.unit)
        elif "tests/integration/" in nodeid:
            item.add_marker(pytest.mark.integration)

@pytest.fixture(scope="session")
def app():
    return fastapi_app

@pytest.fixture()
def client(app) -> Generator[TestClient, None, None]:
    with TestClient(app) as c:
        yield c

@pytest.fixture(autouse=True)
def _override_require_user(app):
    fake_user: Dict[str, Any] = {
        "id": "auth-user-1",
        "email": "jan@example.com",
        "role": "user",
        "metadata": {"full_name": "Jan"},
        "token": "fake-token",
    }
    app.dependency_overrides[require_user] = lambda: fake_user
    try:
        yield fake_user
    finally:
        app.dependency_overrides.pop(require_user, None)

@pytest.fixture
def admin_client(app, client):
    app.dependency_overrides[require_admin] = lambda: {"id": "admin-1", "role": "admin", "email": "admin@example.com"}
    yield client
    app.dependency_overrides.pop(require_admin, None)

# Aucun accès réseau à Supabase pendant les tests
@pytest.fixture(autouse=True)
def mock_supabase(monkeypatch) -> MagicMock:
    sb = MagicMock()
    monkeypatch.setattr("deelauto.infra.supabase_client.get_supabase", lambda: sb)
    monkeypatch.setattr("deelauto.infra.supabase_client.get_service_supabase", lambda: sb)
    return sb

# --- bunq ---

@pytest.fixture(scope="session")
def rsa_private_pem() -> str:
    key = rsa.generate_private_key(public_exponent=65537, key_size=2048)
    return key.private_bytes(
        encoding=serialization.Encoding.PEM,
        format=serialization.PrivateFormat.PKCS8,
        encryption_algorithm=serialization.NoEncryption(),
    ).decode("utf-8")

@pytest.fixture
def bunq_config(rsa_private_pem) -> BunqConfig:
    return BunqConfig(
        api_key="sandbox_api_key",
        client_public_key="-----BEGIN PUBLIC KEY-----\nMIIB\n-----END PUBLIC KEY-----",
        private_key=rsa_private_pem,
        monetary_account_id=42,
        base_url="https://bunq.test",
    )

class FakeBunqApi:
    """
    Faux serveur bunq pour httpx.MockTransport.
    - routes: {(méthode, chemin): réponse | callable(request) -> réponse}
    - calls: requêtes reçues, dans l'ordre
    """

    def __init__(self, routes: Dict[Any, Any]):
        self.routes = routes
        self.calls: List[httpx.Request] = []

    def __call__(self, request: httpx.Request) -> httpx.Response:
        self.calls.append(request)
        handler = self.routes.get((request.method, request.url.path))
        if handler is None:
            return httpx.Response(404, json={"Error": [{"error_description": "Route not found"}]})
        if callable(handler):
            return handler(request)
        status, body = handler
        return httpx.Response(status, json=body)

    def paths(self) -> List[str]:
        return [f"{r.method} {r.url.path}" for r in self.calls]

def handshake_routes(user_id: int = 7, session_token: str = "session-token") -> Dict[Any, Any]:
    return {
        ("POST", "/v1/installation"): (200, {"Response": [
            {"Id": {"id": 1}},
            {"Token": {"token": "installation-token"}},
            {"ServerPublicKey": {"server_public_key": "server-key"}},
        ]}),
        ("POST", "/v1/device-server"): (200, {"Response": [{"Id": {"id": 99}}]}),
        ("POST", "/v1/session-server"): (200, {"Response": [
            {"Id": {"id": 2}},
            {"Token": {"token": session_token}},
            {"UserPerson": {"id": user_id}},
        ]}),
        ("GET", "/v1/user"): (200, {"Response": [{"UserPerson": {"id": user_id, "display_name": "Deelauto"}}]}),
    }

@pytest.fixture
def make_bunq_client(bunq_config) -> Callable[..., BunqClient]:
    def _make(routes: Dict[Any, Any], config: BunqConfig = None):
        api = FakeBunqApi(routes)
        http = httpx.Client(transport=httpx.MockTransport(api))
        client = BunqClient(config or bunq_config, http=http, ip_resolver=lambda: "203.0.113.10")
        client.fake_api = api
        return client
    return _make

@pytest.fixture
def fake_bunq_client(app):
    """Client bunq factice injecté dans les routes (aucun appel réseau)."""
    fake = MagicMock(spec=BunqClient)
    app.dependency_overrides[get_bunq_client] = lambda: fake
    yield fake
    app.dependency_overrides.pop(get_bunq_client, None)


@pytest.fixture
def handshake():
    """Routes de la poignée de main bunq complète (à compléter par test)."""
    return handshake_routes

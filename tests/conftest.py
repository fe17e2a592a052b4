"""
conftest.py — Fixtures compartidas.

FakeHttp reemplaza a requests.Session: registra cada llamada
(método, url, json) y responde según rutas registradas por sufijo
de URL. Así los tests verifican el orden exacto de la secuencia
ref → blobs → tree → commit → ref sin tocar la red.
"""

from __future__ import annotations

import hashlib
import json
import threading
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from typing import Any, Callable

import pytest
import requests
from cryptography.hazmat.primitives import serialization
from cryptography.hazmat.primitives.asymmetric import rsa

from sitekeeper.auth.session import SessionContext
from sitekeeper.auth.vault import CredentialStore, CredentialVault
from sitekeeper.config import GitHubConfig

API = "https://api.github.com"
REPO_API = f"{API}/repos/octo/site"

# PBKDF2 con pocas iteraciones para que los tests sean rápidos
TEST_ITERATIONS = 1_000


@dataclass
class Call:
    method: str
    url: str
    json: Any = None
    headers: dict | None = None
    params: dict | None = None


def make_response(status: int = 200, body: Any = None, content: bytes | None = None) -> requests.Response:
    response = requests.Response()
    response.status_code = status
    response.reason = "OK" if status < 400 else "Error"
    if content is None:
        content = json.dumps(body if body is not None else {}).encode("utf-8")
    response._content = content
    response.headers["Content-Type"] = "application/json"
    return response


class FakeHttp:
    """Sesión HTTP falsa con rutas (método, sufijo de URL)."""

    def __init__(self):
        self.calls: list[Call] = []
        self._routes: list[tuple[str, str, Callable[[Call], requests.Response]]] = []
        self._lock = threading.Lock()

    def add(
        self,
        method: str,
        suffix: str,
        body: Any = None,
        status: int = 200,
        content: bytes | None = None,
        responder: Callable[[Call], requests.Response] | None = None,
    ) -> None:
        """Registra una ruta. Las registradas después ganan."""
        if responder is None:
            def responder(call: Call) -> requests.Response:
                return make_response(status, body, content)
        self._routes.insert(0, (method, suffix, responder))

    def fail(self, method: str, suffix: str, exc: Exception) -> None:
        def responder(call: Call) -> requests.Response:
            raise exc
        self._routes.insert(0, (method, suffix, responder))

    def request(self, method, url, headers=None, json=None, params=None, timeout=None):
        call = Call(method, url, json, headers, params)
        with self._lock:
            self.calls.append(call)
        for route_method, suffix, responder in self._routes:
            if route_method == method and url.endswith(suffix):
                return responder(call)
        raise AssertionError(f"Request inesperado: {method} {url}")

    def repo_calls(self) -> list[Call]:
        """Solo las llamadas a la Git Data API del repo (sin auth)."""
        return [c for c in self.calls if c.url.startswith(f"{REPO_API}/git/")]

    def count(self, method: str, suffix: str) -> int:
        return sum(1 for c in self.calls if c.method == method and c.url.endswith(suffix))


def _blob_responder(call: Call) -> requests.Response:
    digest = hashlib.sha1(call.json["content"].encode("ascii")).hexdigest()
    return make_response(201, {"sha": f"blob-{digest[:10]}"})


def install_happy_routes(http: FakeHttp) -> FakeHttp:
    expires = (datetime.now(timezone.utc) + timedelta(hours=1)).strftime("%Y-%m-%dT%H:%M:%SZ")
    http.add("GET", "/repos/octo/site/installation", {"id": 777})
    http.add("POST", "/app/installations/777/access_tokens",
             {"token": "ghs_test", "expires_at": expires}, status=201)
    http.add("GET", "/git/ref/heads/main", {"object": {"sha": "parent-sha"}})
    http.add("GET", "/git/commits/parent-sha", {"sha": "parent-sha", "tree": {"sha": "base-tree"}})
    http.add("POST", "/git/blobs", responder=_blob_responder)
    http.add("POST", "/git/trees", {"sha": "tree-sha"}, status=201)
    http.add("POST", "/git/commits", {"sha": "commit-sha"}, status=201)
    http.add("PATCH", "/git/refs/heads/main", {"object": {"sha": "commit-sha"}})
    return http


@pytest.fixture(scope="session")
def rsa_pem() -> bytes:
    key = rsa.generate_private_key(public_exponent=65537, key_size=2048)
    return key.private_bytes(
        encoding=serialization.Encoding.PEM,
        format=serialization.PrivateFormat.PKCS8,
        encryption_algorithm=serialization.NoEncryption(),
    )


@pytest.fixture
def http() -> FakeHttp:
    return FakeHttp()


@pytest.fixture
def api(http) -> FakeHttp:
    """FakeHttp con todas las rutas del camino feliz."""
    return install_happy_routes(http)


@pytest.fixture
def github_config() -> GitHubConfig:
    return GitHubConfig(owner="octo", repo="site", branch="main", app_id="12345")


@pytest.fixture
def session() -> SessionContext:
    return SessionContext()


@pytest.fixture
def store(tmp_path) -> CredentialStore:
    return CredentialStore(tmp_path / "secure-storage.json")


@pytest.fixture
def vault(store, session) -> CredentialVault:
    return CredentialVault(store, session, kdf_iterations=TEST_ITERATIONS)


@pytest.fixture
def unlocked_vault(vault, rsa_pem) -> CredentialVault:
    vault.initialize(rsa_pem, "secret123")
    return vault

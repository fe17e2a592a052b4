"""
token_broker.py — sitekeeper se autentica como GitHub App.

¿Por qué GitHub App en vez de Personal Access Token (PAT)?
    1. Permisos granulares: solo contents:write sobre el repo del sitio
    2. No está atada a una cuenta personal
    3. Se puede revocar sin afectar la cuenta del dueño
    4. Los commits aparecen firmados por la App

Flujo de autenticación (JWT → Installation Token):
    1. Pedir la private key al vault (tiene que estar desbloqueado)
    2. Generar JWT firmado con RS256 (válido 10 min)
    3. Resolver el installation id (configurado, o buscándolo por owner/repo)
    4. Intercambiar JWT por Installation Access Token (válido 1 hora)
    5. Guardarlo en la sesión; se reutiliza hasta que expire o lo invaliden

No hay renovación automática a mitad de una publicación: si GitHub
responde 401 más adelante, el pipeline llama invalidate() y el
siguiente intento vuelve a pasar por aquí.

Uso:
    from sitekeeper.auth.token_broker import TokenBroker
    broker = TokenBroker(vault, config.github)
    token = broker.get_auth_token()
"""

from __future__ import annotations

import time
from datetime import datetime

import jwt
import requests

from sitekeeper.auth.session import SessionContext
from sitekeeper.auth.vault import CredentialVault
from sitekeeper.config import GitHubConfig
from sitekeeper.errors import NotAuthenticated, UpstreamAuthError
from sitekeeper.utils.logger import get_logger

logger = get_logger("sitekeeper.github_app")

GITHUB_ACCEPT = "application/vnd.github+json"
GITHUB_API_VERSION = "2022-11-28"

# El token dura 1 hora; renovamos 5 min antes para margen
TOKEN_REFRESH_MARGIN = 5 * 60


def _parse_expires_at(raw: str | None) -> float | None:
    """'2026-10-18T12:00:00Z' → epoch. None si no viene o no se entiende."""
    if not raw:
        return None
    try:
        return datetime.fromisoformat(raw.replace("Z", "+00:00")).timestamp()
    except ValueError:
        return None


class TokenBroker:
    """
    Intercambia la private key por installation tokens de corta vida.

    La autenticación de GitHub Apps tiene dos pasos:
    1. JWT: Token temporal firmado con la private key de la App
    2. Installation Token: Token real que se usa para la API

    Args:
        vault: Bóveda de donde sale la private key.
        github: Configuración (app_id, owner/repo, installation_id, api_base).
        http: Sesión de requests compartida (se crea una si no se pasa).
        timeout: Timeout en segundos de cada request.
    """

    def __init__(
        self,
        vault: CredentialVault,
        github: GitHubConfig,
        http: requests.Session | None = None,
        timeout: int = 30,
    ):
        self._vault = vault
        self._github = github
        self._http = http or requests.Session()
        self._timeout = timeout

    @property
    def session(self) -> SessionContext:
        return self._vault.session

    def _generate_jwt(self, private_key: bytes) -> str:
        """
        Genera un JWT firmado con RS256.

        Campos:
        - iss: ID de la app (quién firma)
        - iat: Ahora - 60s (margen por relojes desfasados)
        - exp: Ahora + 10 min (máximo que acepta GitHub)

        Raises:
            UpstreamAuthError: Si falta el app_id o la key no sirve para firmar.
        """
        if not self._github.app_id:
            raise UpstreamAuthError("GITHUB_APP_ID no está configurado")

        ahora = int(time.time())
        payload = {
            "iss": str(self._github.app_id),
            "iat": ahora - 60,
            "exp": ahora + (10 * 60),
        }

        try:
            return jwt.encode(payload, private_key, algorithm="RS256")
        except (jwt.PyJWTError, ValueError, TypeError) as e:
            raise UpstreamAuthError(f"No se pudo firmar el JWT: {e}") from e

    def _app_headers(self, jwt_token: str) -> dict[str, str]:
        return {
            "Authorization": f"Bearer {jwt_token}",
            "Accept": GITHUB_ACCEPT,
            "X-GitHub-Api-Version": GITHUB_API_VERSION,
        }

    def _call(self, method: str, url: str, jwt_token: str, what: str) -> dict:
        """Request autenticada con el JWT; cualquier falla es UpstreamAuthError."""
        try:
            response = self._http.request(
                method,
                url,
                headers=self._app_headers(jwt_token),
                timeout=self._timeout,
            )
            response.raise_for_status()
            return response.json()
        except requests.RequestException as e:
            raise UpstreamAuthError(
                f"Error al obtener {what}: {e}\n"
                "Verifica que GITHUB_APP_ID, la instalación y "
                "la private key sean correctos."
            ) from e
        except ValueError as e:
            raise UpstreamAuthError(f"Respuesta inválida al obtener {what}") from e

    def _get_installation_id(self, jwt_token: str) -> str:
        """Busca la instalación de la App en owner/repo (o usa la configurada)."""
        if self._github.installation_id:
            return str(self._github.installation_id)

        url = (
            f"{self._github.api_base}/repos/"
            f"{self._github.owner}/{self._github.repo}/installation"
        )
        data = self._call("GET", url, jwt_token, "installation id")
        try:
            return str(data["id"])
        except (KeyError, TypeError) as e:
            raise UpstreamAuthError("La respuesta de installation no trae id") from e

    def _create_installation_token(
        self, jwt_token: str, installation_id: str
    ) -> tuple[str, float | None]:
        url = (
            f"{self._github.api_base}/app/installations/"
            f"{installation_id}/access_tokens"
        )
        data = self._call("POST", url, jwt_token, "Installation Token")
        try:
            token = data["token"]
        except (KeyError, TypeError) as e:
            raise UpstreamAuthError("La respuesta de access_tokens no trae token") from e
        return token, _parse_expires_at(data.get("expires_at"))

    def get_auth_token(self) -> str:
        """
        Obtiene un Installation Access Token válido.

        Si la sesión ya tiene uno que no ha expirado, lo reutiliza
        sin tocar la red. Si no, hace el intercambio completo.

        Returns:
            Installation Access Token listo para usar.

        Raises:
            NotAuthenticated: El vault está bloqueado.
            UpstreamAuthError: Falló la firma o el intercambio.
        """
        cached = self.session.token
        if cached and not cached.is_expired(TOKEN_REFRESH_MARGIN):
            return cached.value

        private_key = self._vault.current_key()
        if not private_key:
            raise NotAuthenticated("No hay private key en memoria; desbloquea el vault")

        jwt_token = self._generate_jwt(private_key)
        installation_id = self._get_installation_id(jwt_token)
        token, expires_at = self._create_installation_token(jwt_token, installation_id)

        # Sin expires_at usamos la vida estándar de 1 hora
        if expires_at is None:
            expires_at = time.time() + 60 * 60

        self.session.set_token(token, expires_at)
        logger.success("Autenticación GitHub App exitosa")
        return token

    def invalidate(self) -> None:
        """Descarta el token cacheado (p. ej. después de un 401)."""
        if self.session.token is not None:
            logger.warning("Token de instalación invalidado")
        self.session.clear_token()

    def is_configured(self) -> bool:
        """¿Hay suficiente configuración para intentar autenticar?"""
        return bool(self._github.app_id and self._github.is_configured())

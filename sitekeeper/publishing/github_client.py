"""
github_client.py — Cliente mínimo de la Git Data API de GitHub.

En vez de clonar el repo y hacer git push (como hacía la versión con
GitPython), hablamos directo con la API:

    GET   /repos/{o}/{r}/git/ref/heads/{branch}   → SHA del tip
    GET   /repos/{o}/{r}/git/commits/{sha}        → tree del tip
    POST  /repos/{o}/{r}/git/blobs                → SHA de cada archivo
    POST  /repos/{o}/{r}/git/trees                → SHA del nuevo tree
    POST  /repos/{o}/{r}/git/commits              → SHA del nuevo commit
    PATCH /repos/{o}/{r}/git/refs/heads/{branch}  → mover el branch
    GET   /repos/{o}/{r}/contents/{path}          → leer un archivo publicado

Cada método recibe el installation token; el cliente no sabe de dónde
sale. Los errores HTTP se traducen a la taxonomía de sitekeeper.errors:
    - 401 en cualquier llamada  → UpstreamAuthError
    - 403/404 al buscar el ref  → RepoUnavailable
    - red caída al buscar el ref → RepoUnavailable
    - cualquier otro error      → PipelineStageFailure con el mensaje de GitHub
"""

from __future__ import annotations

from typing import Any
from urllib.parse import quote

import requests

from sitekeeper.config import GitHubConfig
from sitekeeper.errors import PipelineStageFailure, RepoUnavailable, UpstreamAuthError

GITHUB_ACCEPT = "application/vnd.github+json"
GITHUB_RAW_ACCEPT = "application/vnd.github.raw+json"
GITHUB_API_VERSION = "2022-11-28"

# Nombres de etapa (aparecen en logs y en PipelineStageFailure)
REF_LOOKUP = "RefLookup"
BLOB_CREATION = "BlobCreation"
TREE_CREATION = "TreeCreation"
COMMIT_CREATION = "CommitCreation"
REF_UPDATE = "RefUpdate"
CONTENT_READ = "ContentRead"

FILE_MODE = "100644"


def _remote_message(response: requests.Response) -> str:
    """Extrae el 'message' que GitHub manda en los errores."""
    try:
        data = response.json()
    except ValueError:
        return response.text or response.reason or "sin detalle"
    if isinstance(data, dict) and data.get("message"):
        return str(data["message"])
    return response.text or "sin detalle"


class GitHubClient:
    """
    Wrapper de la REST API para un único owner/repo.

    Args:
        github: Configuración del repositorio destino.
        http: Sesión de requests compartida (se crea una si no se pasa).
        timeout: Timeout en segundos de cada request.
    """

    def __init__(
        self,
        github: GitHubConfig,
        http: requests.Session | None = None,
        timeout: int = 30,
    ):
        self._github = github
        self._http = http or requests.Session()
        self._timeout = timeout

    @property
    def github(self) -> GitHubConfig:
        return self._github

    def _repo_url(self, path: str) -> str:
        return (
            f"{self._github.api_base}/repos/"
            f"{self._github.owner}/{self._github.repo}{path}"
        )

    def _request(
        self,
        stage: str,
        token: str,
        method: str,
        path: str,
        json: dict | None = None,
        params: dict | None = None,
        accept: str = GITHUB_ACCEPT,
        allow_404: bool = False,
    ) -> requests.Response | None:
        headers = {
            "Authorization": f"Bearer {token}",
            "Accept": accept,
            "X-GitHub-Api-Version": GITHUB_API_VERSION,
        }
        try:
            response = self._http.request(
                method,
                self._repo_url(path),
                headers=headers,
                json=json,
                params=params,
                timeout=self._timeout,
            )
        except requests.RequestException as e:
            if stage == REF_LOOKUP:
                raise RepoUnavailable(
                    f"No se pudo contactar {self._github.full_name}: {e}"
                ) from e
            raise PipelineStageFailure(stage, str(e)) from e

        status = response.status_code
        if allow_404 and status == 404:
            return None
        if status == 401:
            raise UpstreamAuthError(
                f"GitHub rechazó el token en {stage}: {_remote_message(response)}"
            )
        if stage == REF_LOOKUP and status in (403, 404):
            raise RepoUnavailable(
                f"Repositorio o branch inaccesible ({self._github.full_name}"
                f"@{self._github.branch}): {_remote_message(response)}"
            )
        if status >= 400:
            raise PipelineStageFailure(stage, _remote_message(response), status)
        return response

    def _json(self, stage: str, response: requests.Response, key: str) -> Any:
        try:
            return response.json()[key]
        except (ValueError, KeyError, TypeError) as e:
            raise PipelineStageFailure(stage, f"Respuesta sin '{key}'") from e

    # ============================================================
    # Lectura
    # ============================================================

    def get_ref(self, token: str, branch: str) -> str:
        """SHA del commit al que apunta heads/{branch}."""
        response = self._request(
            REF_LOOKUP, token, "GET", f"/git/ref/heads/{quote(branch)}"
        )
        obj = self._json(REF_LOOKUP, response, "object")
        try:
            return obj["sha"]
        except (KeyError, TypeError) as e:
            raise PipelineStageFailure(REF_LOOKUP, "Ref sin SHA") from e

    def get_commit_tree(self, token: str, commit_sha: str) -> str:
        """SHA del tree raíz de un commit."""
        response = self._request(REF_LOOKUP, token, "GET", f"/git/commits/{commit_sha}")
        tree = self._json(REF_LOOKUP, response, "tree")
        try:
            return tree["sha"]
        except (KeyError, TypeError) as e:
            raise PipelineStageFailure(REF_LOOKUP, "Commit sin tree") from e

    def read_text_file(self, token: str, path: str, ref: str | None = None) -> str | None:
        """
        Lee un archivo de texto publicado. None si no existe.

        Usa el media type raw para no depender del límite de 1 MB
        del campo 'content' en base64.
        """
        response = self._request(
            CONTENT_READ,
            token,
            "GET",
            f"/contents/{quote(path.lstrip('/'))}",
            params={"ref": ref or self._github.branch},
            accept=GITHUB_RAW_ACCEPT,
            allow_404=True,
        )
        if response is None:
            return None
        return response.content.decode("utf-8")

    # ============================================================
    # Escritura de objetos git
    # ============================================================

    def create_blob(self, token: str, content_base64: str) -> str:
        """Sube contenido (siempre base64) y devuelve el SHA del blob."""
        response = self._request(
            BLOB_CREATION,
            token,
            "POST",
            "/git/blobs",
            json={"content": content_base64, "encoding": "base64"},
        )
        return self._json(BLOB_CREATION, response, "sha")

    def create_tree(
        self, token: str, items: list[dict[str, Any]], base_tree: str
    ) -> str:
        """
        Crea un tree encima de base_tree.

        items: [{path, mode, type, sha}], sha=None borra el path.
        """
        response = self._request(
            TREE_CREATION,
            token,
            "POST",
            "/git/trees",
            json={"base_tree": base_tree, "tree": items},
        )
        return self._json(TREE_CREATION, response, "sha")

    def create_commit(
        self, token: str, message: str, tree_sha: str, parents: list[str]
    ) -> str:
        response = self._request(
            COMMIT_CREATION,
            token,
            "POST",
            "/git/commits",
            json={"message": message, "tree": tree_sha, "parents": parents},
        )
        return self._json(COMMIT_CREATION, response, "sha")

    def update_ref(
        self, token: str, branch: str, commit_sha: str, force: bool = True
    ) -> None:
        """Mueve heads/{branch} al commit. Único paso visible desde afuera."""
        self._request(
            REF_UPDATE,
            token,
            "PATCH",
            f"/git/refs/heads/{quote(branch)}",
            json={"sha": commit_sha, "force": force},
        )

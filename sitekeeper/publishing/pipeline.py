"""
pipeline.py — De un ChangeSet a un commit en GitHub.

Flujo (estrictamente secuencial, cada etapa alimenta a la siguiente):
    1. RefLookup       → SHA del tip del branch y su tree
    2. BlobCreation    → un blob por cada write (en paralelo, se esperan todos)
    3. TreeCreation    → tree nuevo encima del tree del tip
                          (writes con su SHA, deletes con sha=None)
    4. CommitCreation  → commit con UN parent: el tip del paso 1
    5. RefUpdate       → mover el branch al commit nuevo (force)

Solo el paso 5 es visible para quien lee el repo. Si algo falla antes,
los blobs/trees/commits que ya se crearon quedan huérfanos en GitHub;
no se limpian porque son inertes mientras nadie los referencie.

El force del paso 5 solo es seguro porque hay un único operador
publicando. Con varios editores habría que re-leer el tip,
reconstruir el tree y reintentar.

Los workers del paso 2 comparten el requests.Session del cliente. Solo
hacen POST con headers propios por request (el token va en cada
llamada, no en el Session) y el pool de conexiones de urllib3 admite
uso concurrente. Si algún día se guardan cookies o auth en el Session,
cada worker necesitará el suyo.

Uso:
    from sitekeeper.publishing.pipeline import GitPipeline
    pipeline = GitPipeline(client, broker, branch="main")
    result = pipeline.publish(change_set)
    print(result.commit_sha)
"""

from __future__ import annotations

from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass, field

from sitekeeper.auth.token_broker import TokenBroker
from sitekeeper.errors import RepoUnavailable, UpstreamAuthError
from sitekeeper.publishing.changes import ChangeSet, FileChange
from sitekeeper.publishing.github_client import FILE_MODE, GitHubClient
from sitekeeper.utils.logger import get_logger

logger = get_logger("sitekeeper.pipeline")

TOTAL_STAGES = 5


@dataclass
class PublishResult:
    """
    Resultado de una publicación exitosa.

    Campos:
        commit_sha: SHA del commit nuevo (ya apuntado por el branch)
        tree_sha: SHA del tree del commit
        parent_sha: Tip del branch antes de publicar
        branch: Branch actualizado
        written: Paths escritos
        deleted: Paths borrados
    """
    commit_sha: str
    tree_sha: str
    parent_sha: str
    branch: str
    written: list[str] = field(default_factory=list)
    deleted: list[str] = field(default_factory=list)


class GitPipeline:
    """
    Ejecuta la secuencia blob → tree → commit → ref para un ChangeSet.

    Args:
        client: Cliente de la Git Data API.
        broker: De aquí sale el installation token.
        branch: Branch destino (default: el configurado en el cliente).
        blob_workers: Uploads de blobs simultáneos (1 = secuencial).
        force_update: Mover el ref con force=True.
    """

    def __init__(
        self,
        client: GitHubClient,
        broker: TokenBroker,
        branch: str | None = None,
        blob_workers: int = 4,
        force_update: bool = True,
    ):
        self._client = client
        self._broker = broker
        self._branch = branch or client.github.branch
        self._blob_workers = max(1, blob_workers)
        self._force_update = force_update

    @property
    def branch(self) -> str:
        return self._branch

    def _create_blobs(self, token: str, writes: list[FileChange]) -> list[str]:
        """SHAs de los blobs en el mismo orden que writes."""
        if not writes:
            return []

        def subir(change: FileChange) -> str:
            sha = self._client.create_blob(token, change.to_base64())
            logger.debug(f"Blob {sha[:7]} ← {change.path}")
            return sha

        workers = min(self._blob_workers, len(writes))
        if workers == 1:
            return [subir(change) for change in writes]

        with ThreadPoolExecutor(max_workers=workers) as pool:
            return list(pool.map(subir, writes))

    @staticmethod
    def _tree_items(
        change_set: ChangeSet, blob_shas: dict[str, str]
    ) -> list[dict]:
        items = []
        for change in change_set:
            items.append({
                "path": change.path,
                "mode": FILE_MODE,
                "type": "blob",
                "sha": blob_shas[change.path] if change.is_write else None,
            })
        return items

    def publish(self, change_set: ChangeSet) -> PublishResult:
        """
        Publica el ChangeSet como un único commit.

        Returns:
            PublishResult con el SHA del commit nuevo.

        Raises:
            ValueError: ChangeSet vacío.
            RepoUnavailable: owner/repo sin configurar o branch inaccesible.
            NotAuthenticated: Vault bloqueado.
            UpstreamAuthError: Token rechazado (el cache queda invalidado).
            PipelineStageFailure: Cualquier otra falla de una etapa.
        """
        if not change_set.changes:
            raise ValueError("El change-set está vacío, no hay nada que publicar")

        github = self._client.github
        if not github.is_configured():
            raise RepoUnavailable(
                "GitHub owner/repo no configurados; revisa config.yaml o GITHUB_OWNER/GITHUB_REPO"
            )

        token = self._broker.get_auth_token()

        try:
            return self._run(token, change_set)
        except UpstreamAuthError:
            self._broker.invalidate()
            raise

    def _run(self, token: str, change_set: ChangeSet) -> PublishResult:
        writes = change_set.writes
        deletes = change_set.deletes

        logger.step(1, TOTAL_STAGES, f"Buscando heads/{self._branch}...")
        parent_sha = self._client.get_ref(token, self._branch)
        base_tree = self._client.get_commit_tree(token, parent_sha)

        logger.step(2, TOTAL_STAGES, f"Subiendo {len(writes)} blob(s)...")
        shas = self._create_blobs(token, writes)
        blob_shas = {change.path: sha for change, sha in zip(writes, shas)}

        logger.step(
            3, TOTAL_STAGES,
            f"Construyendo tree ({len(writes)} write, {len(deletes)} delete)...",
        )
        tree_sha = self._client.create_tree(
            token, self._tree_items(change_set, blob_shas), base_tree
        )

        logger.step(4, TOTAL_STAGES, "Creando commit...")
        commit_sha = self._client.create_commit(
            token, change_set.message, tree_sha, [parent_sha]
        )

        logger.step(5, TOTAL_STAGES, f"Moviendo heads/{self._branch}...")
        self._client.update_ref(token, self._branch, commit_sha, force=self._force_update)

        logger.success(f"Commit {commit_sha[:7]} publicado — {change_set.message}")
        return PublishResult(
            commit_sha=commit_sha,
            tree_sha=tree_sha,
            parent_sha=parent_sha,
            branch=self._branch,
            written=[c.path for c in writes],
            deleted=[c.path for c in deletes],
        )

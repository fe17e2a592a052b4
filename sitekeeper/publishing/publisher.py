"""
publisher.py — Fachada que conecta vault, broker, builders y pipeline.

Es lo que usa la CLI (o cualquier otro frontend): recibe el estado
editado de un dominio, lee del repo el estado publicado para poder
hacer el diff, arma el ChangeSet con el builder correspondiente y lo
publica con el pipeline.

Uso:
    from sitekeeper.publishing.publisher import SitePublisher
    publisher = SitePublisher.from_config(load_config())
    publisher.vault.unlock(passphrase)
    result = publisher.publish_projects(projects, uploads={url: upload})
"""

from __future__ import annotations

import json
from typing import Any

import requests

from sitekeeper.auth.session import SessionContext
from sitekeeper.auth.token_broker import TokenBroker
from sitekeeper.auth.vault import CredentialStore, CredentialVault
from sitekeeper.builders.about import AboutBuilder
from sitekeeper.builders.base import StagedUpload
from sitekeeper.builders.blog import INDEX_PATH, BlogBuilder, BlogPost, post_paths
from sitekeeper.builders.listings import ProjectsBuilder, SharesBuilder
from sitekeeper.builders.pictures import PicturesBuilder
from sitekeeper.builders.site_content import SiteContentBuilder
from sitekeeper.config import AppConfig
from sitekeeper.errors import RepoUnavailable, UpstreamAuthError
from sitekeeper.publishing.changes import ChangeSet, FileChange
from sitekeeper.publishing.github_client import GitHubClient
from sitekeeper.publishing.pipeline import GitPipeline, PublishResult
from sitekeeper.utils.logger import get_logger

logger = get_logger("sitekeeper.publisher")


class SitePublisher:
    """
    Punto de entrada de alto nivel para publicar contenido del sitio.

    Args:
        config: Configuración de la app.
        vault: Bóveda de la private key.
        broker: Broker de installation tokens.
        client: Cliente de la API de GitHub.
        pipeline: Pipeline git.
    """

    def __init__(
        self,
        config: AppConfig,
        vault: CredentialVault,
        broker: TokenBroker,
        client: GitHubClient,
        pipeline: GitPipeline,
    ):
        self._config = config
        self.vault = vault
        self.broker = broker
        self.client = client
        self.pipeline = pipeline

        self.projects = ProjectsBuilder()
        self.shares = SharesBuilder()
        self.pictures = PicturesBuilder()
        self.site_content = SiteContentBuilder()
        self.about = AboutBuilder()
        self.blog = BlogBuilder()

    @classmethod
    def from_config(
        cls,
        config: AppConfig,
        session: SessionContext | None = None,
        http: requests.Session | None = None,
    ) -> SitePublisher:
        """Arma todo el grafo de objetos a partir de la configuración."""
        session = session or SessionContext()
        http = http or requests.Session()
        timeout = config.publish.timeout

        vault = CredentialVault(
            CredentialStore(config.vault.resolved_path),
            session,
            kdf_iterations=config.vault.kdf_iterations,
        )
        broker = TokenBroker(vault, config.github, http=http, timeout=timeout)
        client = GitHubClient(config.github, http=http, timeout=timeout)
        pipeline = GitPipeline(
            client,
            broker,
            branch=config.github.branch,
            blob_workers=config.publish.blob_workers,
            force_update=config.publish.force_update,
        )
        return cls(config, vault, broker, client, pipeline)

    # ============================================================
    # Lectura del estado publicado
    # ============================================================

    def read_text(self, path: str) -> str | None:
        """Lee un archivo del branch configurado (None si no existe)."""
        if not self._config.github.is_configured():
            raise RepoUnavailable("GitHub owner/repo no configurados")
        token = self.broker.get_auth_token()
        try:
            return self.client.read_text_file(token, path)
        except UpstreamAuthError:
            self.broker.invalidate()
            raise

    def read_json(self, path: str, default: Any) -> Any:
        """
        Lee y parsea un JSON publicado.

        Si no existe o está roto se usa `default`: un listado ilegible
        no debe impedir publicar el nuevo.
        """
        texto = self.read_text(path)
        if texto is None:
            return default
        try:
            data = json.loads(texto)
        except json.JSONDecodeError as e:
            logger.warning(f"{path} publicado no es JSON válido ({e}); se ignora")
            return default
        if default is not None and not isinstance(data, type(default)):
            logger.warning(f"{path} publicado no tiene la forma esperada; se ignora")
            return default
        return data

    def read_blog_post(self, slug: str) -> BlogPost | None:
        md_path, config_path = post_paths(slug)
        meta = self.read_json(config_path, None)
        if not isinstance(meta, dict):
            return None
        meta.setdefault("slug", slug)
        meta.setdefault("title", slug)
        return BlogPost.from_meta(meta, self.read_text(md_path) or "")

    # ============================================================
    # Publicación
    # ============================================================

    def publish(self, change_set: ChangeSet) -> PublishResult:
        """Publica un ChangeSet ya armado (aplica commit_prefix)."""
        prefix = self._config.publish.commit_prefix
        if prefix and not change_set.message.startswith(prefix):
            change_set.message = f"{prefix} {change_set.message}"
        return self.pipeline.publish(change_set)

    def publish_files(
        self,
        files: dict[str, bytes] | None = None,
        deletes: list[str] | None = None,
        message: str = "chore: update files",
    ) -> PublishResult:
        """Writes/deletes crudos, sin builder de dominio."""
        change_set = ChangeSet(message)
        for path, data in (files or {}).items():
            change_set.add(FileChange.binary(path, data))
        for path in deletes or []:
            change_set.add(FileChange.delete(path))
        return self.publish(change_set)

    def publish_projects(
        self,
        projects: list[dict[str, Any]],
        uploads: dict[str, StagedUpload] | None = None,
        previous: list[dict[str, Any]] | None = None,
    ) -> PublishResult:
        if previous is None:
            previous = self.read_json(ProjectsBuilder.LISTING_PATH, [])
        change_set, _ = self.projects.build(previous, projects, uploads)
        return self.publish(change_set)

    def publish_shares(
        self,
        shares: list[dict[str, Any]],
        uploads: dict[str, StagedUpload] | None = None,
        previous: list[dict[str, Any]] | None = None,
    ) -> PublishResult:
        if previous is None:
            previous = self.read_json(SharesBuilder.LISTING_PATH, [])
        change_set, _ = self.shares.build(previous, shares, uploads)
        return self.publish(change_set)

    def publish_pictures(
        self,
        pictures: list[dict[str, Any]],
        uploads: dict[str, StagedUpload] | None = None,
        previous: list[dict[str, Any]] | None = None,
    ) -> PublishResult:
        if previous is None:
            previous = self.read_json(PicturesBuilder.LISTING_PATH, [])
        change_set, _ = self.pictures.build(previous, pictures, uploads)
        return self.publish(change_set)

    def publish_site_content(
        self,
        content: dict[str, Any],
        card_styles: dict[str, Any],
        previous: dict[str, Any] | None = None,
        **assets: Any,
    ) -> PublishResult:
        """
        `assets` acepta lo mismo que SiteContentBuilder.build:
        favicon, avatar, art_uploads, removed_art, background_uploads,
        removed_backgrounds, social_button_uploads.
        """
        if previous is None:
            previous = self.read_json(SiteContentBuilder.SITE_CONTENT_PATH, {})
        change_set, _ = self.site_content.build(previous, content, card_styles, **assets)
        return self.publish(change_set)

    def publish_about(self, data: dict[str, Any]) -> PublishResult:
        return self.publish(self.about.build(data))

    def publish_blog_post(
        self,
        post: BlogPost,
        images: dict[str, StagedUpload] | None = None,
        cover: StagedUpload | None = None,
        original_slug: str | None = None,
    ) -> PublishResult:
        """
        Publica un post nuevo o editado.

        original_slug: slug con el que estaba publicado (si se renombró).
        """
        index = self.read_json(INDEX_PATH, [])
        previous = self.read_blog_post(original_slug or post.slug)
        change_set, _, _ = self.blog.build_publish(
            post, index, images=images, cover=cover, previous=previous
        )
        return self.publish(change_set)

    def delete_blog_post(self, slug: str) -> PublishResult:
        index = self.read_json(INDEX_PATH, [])
        previous = self.read_blog_post(slug)
        change_set, _ = self.blog.build_delete(slug, index, previous)
        return self.publish(change_set)

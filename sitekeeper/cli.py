"""
cli.py — Punto de entrada de sitekeeper.

Comandos disponibles:
    python -m sitekeeper setup --key-file app.pem     → Cifra y guarda la key
    python -m sitekeeper unlock                       → Verifica la passphrase
    python -m sitekeeper reset                        → Borra la key guardada
    python -m sitekeeper status                       → Muestra configuración
    python -m sitekeeper push --add a.txt=./a.txt     → Commit de archivos sueltos
    python -m sitekeeper projects list.json           → Publica proyectos
    python -m sitekeeper shares list.json             → Publica shares
    python -m sitekeeper pictures list.json           → Publica la galería
    python -m sitekeeper about about.json             → Publica la página about
    python -m sitekeeper site-content content.json card-styles.json
    python -m sitekeeper blog publish post.md --meta meta.json
    python -m sitekeeper blog delete mi-slug

La passphrase se pide con input oculto en cada comando que publica
(o se toma de SITEKEEPER_PASSPHRASE). La key descifrada solo vive
mientras corre el comando.

Los uploads se pasan como SLOT=ARCHIVO, donde SLOT es la clave que
usa cada dominio (url del proyecto, "id::índice" en la galería, id
del placeholder en el blog).
"""

from __future__ import annotations

import functools
import json
import sys
from pathlib import Path
from typing import Any, Callable

import click
from rich.panel import Panel
from rich.table import Table

from sitekeeper import __version__
from sitekeeper.builders.base import StagedUpload
from sitekeeper.builders.blog import BlogPost
from sitekeeper.config import load_config
from sitekeeper.errors import SiteKeeperError
from sitekeeper.publishing.pipeline import PublishResult
from sitekeeper.publishing.publisher import SitePublisher
from sitekeeper.utils.logger import console as rich_console
from sitekeeper.utils.logger import get_logger
from sitekeeper.utils.validators import slugify

logger = get_logger("sitekeeper.cli")

PASSPHRASE_ENV = "SITEKEEPER_PASSPHRASE"


# ================================================================
# Helpers
# ================================================================

def _fail(message: str) -> None:
    logger.error(message)
    sys.exit(1)


def _handle_errors(func: Callable) -> Callable:
    """Convierte errores conocidos en mensaje + exit code 1."""
    @functools.wraps(func)
    def wrapper(*args: Any, **kwargs: Any) -> Any:
        try:
            return func(*args, **kwargs)
        except SiteKeeperError as e:
            _fail(f"{type(e).__name__}: {e}")
        except (ValueError, FileNotFoundError) as e:
            _fail(str(e))
    return wrapper


def _passphrase_option(func: Callable) -> Callable:
    return click.option(
        "--passphrase",
        prompt="Passphrase",
        hide_input=True,
        envvar=PASSPHRASE_ENV,
        help=f"Passphrase del vault (o {PASSPHRASE_ENV})",
    )(func)


def _upload_option(name: str, help_text: str) -> Callable:
    return click.option(
        name, "uploads", multiple=True, metavar="SLOT=ARCHIVO", help=help_text
    )


def _parse_pairs(pairs: tuple[str, ...]) -> dict[str, str]:
    """('a=./x.png', 'b=./y.png') → {'a': './x.png', 'b': './y.png'}"""
    resultado = {}
    for pair in pairs:
        clave, sep, valor = pair.rpartition("=")
        if not sep or not clave or not valor:
            raise click.BadParameter(f"Se espera CLAVE=ARCHIVO, llegó: {pair}")
        resultado[clave] = valor
    return resultado


def _load_uploads(pairs: tuple[str, ...]) -> dict[str, StagedUpload]:
    return {
        slot: StagedUpload.from_path(path)
        for slot, path in _parse_pairs(pairs).items()
    }


def _read_json(path: str) -> Any:
    with open(path, "r", encoding="utf-8") as f:
        return json.load(f)


def _unlocked_publisher(passphrase: str) -> SitePublisher:
    publisher = SitePublisher.from_config(load_config())
    if not publisher.vault.has_stored_credential():
        raise ValueError("No hay credencial guardada. Ejecuta primero: sitekeeper setup")
    publisher.vault.unlock(passphrase)
    return publisher


def _show_result(result: PublishResult) -> None:
    lineas = [
        f"[bold]Commit:[/bold] {result.commit_sha}",
        f"[bold]Parent:[/bold] {result.parent_sha}",
        f"[bold]Branch:[/bold] {result.branch}",
        f"[bold]Escritos:[/bold] {len(result.written)}",
        f"[bold]Borrados:[/bold] {len(result.deleted)}",
    ]
    for path in result.deleted:
        lineas.append(f"  - {path}")
    rich_console.print(Panel("\n".join(lineas), title="Publicado", border_style="green"))


# ================================================================
# Comandos
# ================================================================

@click.group()
@click.version_option(version=__version__, prog_name="sitekeeper")
def main():
    """Publica el contenido del sitio directo al repo de GitHub."""
    pass


@main.command()
@click.option(
    "--key-file",
    required=True,
    type=click.Path(exists=True, dir_okay=False, path_type=Path),
    help="Private key (.pem) de la GitHub App",
)
@click.option(
    "--passphrase",
    prompt="Nueva passphrase",
    hide_input=True,
    confirmation_prompt=True,
    envvar=PASSPHRASE_ENV,
)
@click.option("--force", is_flag=True, help="Reemplaza una credencial existente")
@_handle_errors
def setup(key_file: Path, passphrase: str, force: bool):
    """Cifra la private key con una passphrase y la guarda."""
    publisher = SitePublisher.from_config(load_config())
    if publisher.vault.has_stored_credential() and not force:
        _fail("Ya hay una credencial guardada. Usa --force para reemplazarla.")
    publisher.vault.initialize(key_file.read_bytes(), passphrase)
    logger.info("Ya puedes borrar el .pem original si lo guardas en otro lado.")


@main.command()
@_passphrase_option
@_handle_errors
def unlock(passphrase: str):
    """Verifica que la passphrase descifra la key."""
    publisher = _unlocked_publisher(passphrase)
    publisher.vault.lock()


@main.command()
@click.confirmation_option(prompt="¿Borrar la credencial cifrada? No se puede deshacer")
@_handle_errors
def reset():
    """Borra la credencial guardada (memoria y disco)."""
    SitePublisher.from_config(load_config()).vault.reset()


@main.command()
def status():
    """Muestra la configuración y el estado del vault."""
    cfg = load_config()
    publisher = SitePublisher.from_config(cfg)

    tabla = Table(title="sitekeeper")
    tabla.add_column("Parámetro", style="cyan")
    tabla.add_column("Valor", style="green")

    tabla.add_row("Repositorio", cfg.github.full_name if cfg.github.is_configured() else "(no configurado)")
    tabla.add_row("Branch", cfg.github.branch)
    tabla.add_row("API", cfg.github.api_base)
    tabla.add_row("GitHub App", cfg.github.app_id or "(falta GITHUB_APP_ID)")
    tabla.add_row("Instalación", cfg.github.installation_id or "(se busca por repo)")
    tabla.add_row("Vault", str(cfg.vault.resolved_path))
    tabla.add_row(
        "Credencial",
        "guardada" if publisher.vault.has_stored_credential() else "no hay (ejecuta setup)",
    )
    tabla.add_row("Blobs en paralelo", str(cfg.publish.blob_workers))

    rich_console.print(tabla)


@main.command()
@click.option("--add", "adds", multiple=True, metavar="RUTA_REPO=ARCHIVO",
              help="Archivo local a escribir en el repo")
@click.option("--delete", "deletes", multiple=True, metavar="RUTA_REPO",
              help="Ruta del repo a borrar")
@click.option("--message", "-m", default="chore: update files", help="Mensaje del commit")
@_passphrase_option
@_handle_errors
def push(adds: tuple[str, ...], deletes: tuple[str, ...], message: str, passphrase: str):
    """Commit directo de archivos sueltos."""
    files = {
        repo_path: Path(local).read_bytes()
        for repo_path, local in _parse_pairs(adds).items()
    }
    if not files and not deletes:
        _fail("Nada que publicar: usa --add y/o --delete")
    publisher = _unlocked_publisher(passphrase)
    _show_result(publisher.publish_files(files, list(deletes), message))


@main.command()
@click.argument("list_json", type=click.Path(exists=True, dir_okay=False))
@_upload_option("--upload", "Imagen nueva para el proyecto con esa url")
@_passphrase_option
@_handle_errors
def projects(list_json: str, uploads: tuple[str, ...], passphrase: str):
    """Publica src/app/projects/list.json."""
    publisher = _unlocked_publisher(passphrase)
    _show_result(publisher.publish_projects(_read_json(list_json), _load_uploads(uploads)))


@main.command()
@click.argument("list_json", type=click.Path(exists=True, dir_okay=False))
@_upload_option("--upload", "Logo nuevo para el share con esa url")
@_passphrase_option
@_handle_errors
def shares(list_json: str, uploads: tuple[str, ...], passphrase: str):
    """Publica src/app/share/list.json."""
    publisher = _unlocked_publisher(passphrase)
    _show_result(publisher.publish_shares(_read_json(list_json), _load_uploads(uploads)))


@main.command()
@click.argument("list_json", type=click.Path(exists=True, dir_okay=False))
@_upload_option("--upload", "Foto nueva en el slot ID::ÍNDICE")
@_passphrase_option
@_handle_errors
def pictures(list_json: str, uploads: tuple[str, ...], passphrase: str):
    """Publica la galería (src/app/astro/list.json)."""
    publisher = _unlocked_publisher(passphrase)
    _show_result(publisher.publish_pictures(_read_json(list_json), _load_uploads(uploads)))


@main.command()
@click.argument("about_json", type=click.Path(exists=True, dir_okay=False))
@_passphrase_option
@_handle_errors
def about(about_json: str, passphrase: str):
    """Publica la página about."""
    publisher = _unlocked_publisher(passphrase)
    _show_result(publisher.publish_about(_read_json(about_json)))


@main.command("site-content")
@click.argument("content_json", type=click.Path(exists=True, dir_okay=False))
@click.argument("card_styles_json", type=click.Path(exists=True, dir_okay=False))
@click.option("--favicon", type=click.Path(exists=True, dir_okay=False), default=None)
@click.option("--avatar", type=click.Path(exists=True, dir_okay=False), default=None)
@click.option("--art", multiple=True, metavar="ID=ARCHIVO")
@click.option("--background", multiple=True, metavar="ID=ARCHIVO")
@click.option("--social-button", "social_buttons", multiple=True, metavar="ID=ARCHIVO")
@_passphrase_option
@_handle_errors
def site_content(
    content_json: str,
    card_styles_json: str,
    favicon: str | None,
    avatar: str | None,
    art: tuple[str, ...],
    background: tuple[str, ...],
    social_buttons: tuple[str, ...],
    passphrase: str,
):
    """Publica site-content.json, card-styles.json y sus imágenes."""
    publisher = _unlocked_publisher(passphrase)
    result = publisher.publish_site_content(
        _read_json(content_json),
        _read_json(card_styles_json),
        favicon=StagedUpload.from_path(favicon) if favicon else None,
        avatar=StagedUpload.from_path(avatar) if avatar else None,
        art_uploads=_load_uploads(art),
        background_uploads=_load_uploads(background),
        social_button_uploads=_load_uploads(social_buttons),
    )
    _show_result(result)


@main.group()
def blog():
    """Posts del blog."""
    pass


@blog.command("publish")
@click.argument("markdown", type=click.Path(exists=True, dir_okay=False, path_type=Path))
@click.option("--meta", "meta_json", required=True,
              type=click.Path(exists=True, dir_okay=False),
              help="JSON con slug, title, date, tags, summary...")
@_upload_option("--image", "Imagen para el placeholder local-image:ID")
@click.option("--cover", type=click.Path(exists=True, dir_okay=False), default=None)
@click.option("--original-slug", default=None, help="Slug anterior si se renombra")
@_passphrase_option
@_handle_errors
def blog_publish(
    markdown: Path,
    meta_json: str,
    uploads: tuple[str, ...],
    cover: str | None,
    original_slug: str | None,
    passphrase: str,
):
    """Publica o actualiza un post."""
    meta = _read_json(meta_json)
    if not meta.get("slug") and meta.get("title"):
        meta["slug"] = slugify(meta["title"])
    post = BlogPost.from_meta(meta, markdown.read_text(encoding="utf-8"))
    publisher = _unlocked_publisher(passphrase)
    result = publisher.publish_blog_post(
        post,
        images=_load_uploads(uploads),
        cover=StagedUpload.from_path(cover) if cover else None,
        original_slug=original_slug,
    )
    _show_result(result)


@blog.command("delete")
@click.argument("slug")
@_passphrase_option
@_handle_errors
def blog_delete(slug: str, passphrase: str):
    """Borra un post, sus imágenes y su entrada del índice."""
    publisher = _unlocked_publisher(passphrase)
    _show_result(publisher.delete_blog_post(slug))

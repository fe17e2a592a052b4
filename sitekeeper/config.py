"""
config.py — Carga y gestiona la configuración de sitekeeper.

Se encarga de:
1. Cargar config.yaml (repo destino, rutas, ajustes del pipeline)
2. Cargar .env (GITHUB_APP_ID y demás valores locales)
3. Resolver variables de entorno en los valores de config
4. Exponer todo como dataclasses

¿Qué NO va aquí?
    La private key y la passphrase. La key vive cifrada en el
    archivo del vault (vault.storage_path) y la passphrase solo
    la escribe el operador cuando desbloquea.

Uso:
    from sitekeeper.config import load_config
    config = load_config()
    print(config.github.owner, config.github.repo)
"""

from __future__ import annotations

import os
import re
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any

import yaml
from dotenv import load_dotenv


# ============================================================
# Dataclasses de configuración
# ============================================================

@dataclass
class GitHubConfig:
    """Repositorio destino e identidad de la GitHub App."""
    owner: str = ""
    repo: str = ""
    branch: str = "main"
    api_base: str = "https://api.github.com"
    app_id: str = ""
    # Si está vacío se busca por owner/repo en cada sesión
    installation_id: str = ""

    @property
    def full_name(self) -> str:
        return f"{self.owner}/{self.repo}"

    def is_configured(self) -> bool:
        """'-' es el placeholder de repo sin configurar."""
        return bool(
            self.owner and self.owner != "-"
            and self.repo and self.repo != "-"
        )


@dataclass
class VaultConfig:
    """Dónde y cómo se guarda la credencial cifrada."""
    storage_path: str = "~/.sitekeeper/secure-storage.json"
    kdf_iterations: int = 390_000

    @property
    def resolved_path(self) -> Path:
        return Path(self.storage_path).expanduser()


@dataclass
class PublishConfig:
    """Ajustes del pipeline git."""
    blob_workers: int = 4
    timeout: int = 30
    force_update: bool = True
    commit_prefix: str = ""


@dataclass
class AppConfig:
    """Configuración completa de la aplicación."""
    github: GitHubConfig = field(default_factory=GitHubConfig)
    vault: VaultConfig = field(default_factory=VaultConfig)
    publish: PublishConfig = field(default_factory=PublishConfig)


# Variables de entorno que sobreescriben la sección github
_GITHUB_ENV_VARS = {
    "app_id": "GITHUB_APP_ID",
    "installation_id": "GITHUB_APP_INSTALLATION_ID",
    "owner": "GITHUB_OWNER",
    "repo": "GITHUB_REPO",
    "branch": "GITHUB_BRANCH",
}


# ============================================================
# Funciones de carga
# ============================================================

def _resolve_env_vars(value: str) -> str:
    """
    Resuelve variables de entorno en un string.

    Ejemplo:
        "${GITHUB_OWNER}"       → "mi-usuario"
        "${HOME}/.sitekeeper"   → "/home/user/.sitekeeper"

    Si la variable no existe se deja el placeholder tal cual.
    """
    patron = re.compile(r"\$\{(\w+)\}")

    def reemplazar(match: re.Match) -> str:
        nombre_var = match.group(1)
        return os.environ.get(nombre_var, match.group(0))

    return patron.sub(reemplazar, value)


def _resolve_env_recursive(data: Any) -> Any:
    """Resuelve ${VARIABLE} en toda la estructura del YAML."""
    if isinstance(data, str):
        return _resolve_env_vars(data)
    elif isinstance(data, dict):
        return {k: _resolve_env_recursive(v) for k, v in data.items()}
    elif isinstance(data, list):
        return [_resolve_env_recursive(item) for item in data]
    return data


def _dict_to_dataclass(data: dict, cls: type) -> Any:
    """
    Convierte un diccionario a una dataclass, ignorando keys desconocidas.

    Si alguien agrega un campo al YAML que el código no conoce,
    simplemente lo ignoramos en vez de explotar.
    """
    campos_validos = {f.name for f in cls.__dataclass_fields__.values()}
    datos_filtrados = {k: v for k, v in (data or {}).items() if k in campos_validos}
    return cls(**datos_filtrados)


def _find_config_dir() -> Path:
    """
    Encuentra el directorio raíz del proyecto (donde está config.yaml).

    Busca hacia arriba desde el directorio actual.
    """
    current = Path.cwd()
    for parent in [current] + list(current.parents):
        if (parent / "config.yaml").exists():
            return parent
    return current


def _apply_env_overrides(github: GitHubConfig) -> None:
    """Los valores del entorno ganan sobre los del YAML."""
    for campo, variable in _GITHUB_ENV_VARS.items():
        valor = os.environ.get(variable, "")
        if valor:
            setattr(github, campo, valor)


def load_config(config_path: Path | None = None) -> AppConfig:
    """
    Carga la configuración completa de sitekeeper.

    Pasos:
    1. Carga .env para tener las variables de entorno disponibles
    2. Lee config.yaml (si no existe, valores por defecto)
    3. Resuelve ${VARIABLES} en los valores del YAML
    4. Convierte cada sección a su dataclass
    5. Aplica GITHUB_* del entorno

    Args:
        config_path: Ruta al config.yaml. Si es None, busca automáticamente.

    Returns:
        AppConfig lista para usar.
    """
    proyecto_dir = _find_config_dir()
    env_path = proyecto_dir / ".env"
    if env_path.exists():
        load_dotenv(env_path)

    if config_path is None:
        config_path = proyecto_dir / "config.yaml"

    raw_config: dict = {}
    if config_path.exists():
        with open(config_path, "r", encoding="utf-8") as f:
            raw_config = yaml.safe_load(f) or {}

    config_resuelto = _resolve_env_recursive(raw_config)

    app_config = AppConfig(
        github=_dict_to_dataclass(config_resuelto.get("github", {}), GitHubConfig),
        vault=_dict_to_dataclass(config_resuelto.get("vault", {}), VaultConfig),
        publish=_dict_to_dataclass(config_resuelto.get("publish", {}), PublishConfig),
    )

    # YAML puede traer ids numéricos; la API los quiere como string en URLs
    app_config.github.app_id = str(app_config.github.app_id or "")
    app_config.github.installation_id = str(app_config.github.installation_id or "")

    _apply_env_overrides(app_config.github)

    return app_config

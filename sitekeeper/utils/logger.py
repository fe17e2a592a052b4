"""
logger.py — Logging para sitekeeper usando Rich + archivo.

Dual output:
- Rich console: colores para uso interactivo desde la CLI
- Archivo rotativo: logs/sitekeeper.log para revisar publicaciones pasadas

Regla de oro: NUNCA se loguean secretos. Solo rutas, SHAs cortos y
mensajes de estado. Por si un mensaje de error de GitHub o de
requests arrastra uno, mask_secrets() tapa installation tokens,
JWTs y bloques PEM antes de imprimir o escribir a disco.

Uso:
    from sitekeeper.utils.logger import get_logger, console
    logger = get_logger("sitekeeper.pipeline")
    logger.info("Creando blobs...")
    logger.success("Commit publicado")
    logger.step(2, 5, "BlobCreation")
"""

from __future__ import annotations

import logging
import os
import re
import sys
from logging.handlers import RotatingFileHandler
from pathlib import Path

from rich.console import Console
from rich.theme import Theme

# En pytest no tocamos disco ni stdout raro
_in_pytest = "pytest" in sys.modules or "PYTEST_CURRENT_TEST" in os.environ

sitekeeper_theme = Theme({
    "info": "cyan",
    "success": "bold green",
    "warning": "bold yellow",
    "error": "bold red",
    "step": "bold magenta",
})

# Consola global — se usa en todo el proyecto
console = Console(theme=sitekeeper_theme)

# ================================================================
# Secretos
# ================================================================

# ghs_/ghp_/... de GitHub, JWT (tres segmentos base64url) y PEM completas
_SECRET_PATTERNS = (
    re.compile(r"\bgh[pousr]_[A-Za-z0-9_]+"),
    re.compile(r"\beyJ[\w-]*\.[\w-]+\.[\w-]*"),
    re.compile(r"-----BEGIN [A-Z ]+-----.*?-----END [A-Z ]+-----", re.DOTALL),
)
MASK = "***"


def mask_secrets(message: str) -> str:
    for pattern in _SECRET_PATTERNS:
        message = pattern.sub(MASK, message)
    return message


# ================================================================
# File logging setup
# ================================================================

LOG_DIR_ENV = "SITEKEEPER_LOG_DIR"

_file_logger: logging.Logger | None = None


def _setup_file_logger() -> logging.Logger:
    """Configura el logger de archivo con rotacion."""
    global _file_logger
    if _file_logger is not None:
        return _file_logger

    # No crear logs en pytest
    if _in_pytest:
        _file_logger = logging.getLogger("sitekeeper.null")
        _file_logger.addHandler(logging.NullHandler())
        return _file_logger

    log_dir = Path(os.environ.get(LOG_DIR_ENV, "logs"))
    log_dir.mkdir(parents=True, exist_ok=True)

    _file_logger = logging.getLogger("sitekeeper.file")
    _file_logger.setLevel(logging.DEBUG)
    _file_logger.propagate = False

    # Evitar handlers duplicados
    if not _file_logger.handlers:
        handler = RotatingFileHandler(
            log_dir / "sitekeeper.log",
            maxBytes=5 * 1024 * 1024,  # 5 MB
            backupCount=5,
            encoding="utf-8",
        )
        handler.setFormatter(logging.Formatter(
            "%(asctime)s [%(levelname)s] %(name)s: %(message)s",
            datefmt="%Y-%m-%d %H:%M:%S",
        ))
        _file_logger.addHandler(handler)

    return _file_logger


class SiteLogger:
    """
    Logger que imprime con Rich y guarda copia en archivo.

    Cada módulo crea su propio logger con un nombre para
    identificar de dónde viene cada mensaje.

    Args:
        name: Nombre del módulo (ej: "sitekeeper.vault")
    """

    def __init__(self, name: str):
        self._name = name
        self._file = _setup_file_logger()

    @property
    def name(self) -> str:
        return self._name

    def debug(self, message: str) -> None:
        """Solo archivo, no ensucia la consola."""
        message = mask_secrets(message)
        self._file.debug(f"[{self._name}] {message}")

    def info(self, message: str) -> None:
        """Mensaje informativo (cyan)."""
        message = mask_secrets(message)
        console.print(f"[info]i  {message}[/info]")
        self._file.info(f"[{self._name}] {message}")

    def success(self, message: str) -> None:
        """Mensaje de éxito (verde)."""
        message = mask_secrets(message)
        console.print(f"[success][OK] {message}[/success]")
        self._file.info(f"[{self._name}] OK: {message}")

    def warning(self, message: str) -> None:
        """Mensaje de advertencia (amarillo)."""
        message = mask_secrets(message)
        console.print(f"[warning][!] {message}[/warning]")
        self._file.warning(f"[{self._name}] {message}")

    def error(self, message: str) -> None:
        """Mensaje de error (rojo)."""
        message = mask_secrets(message)
        console.print(f"[error][X] {message}[/error]")
        self._file.error(f"[{self._name}] {message}")

    def step(self, number: int, total: int, message: str) -> None:
        """Paso de un proceso con varias etapas (pipeline git)."""
        message = mask_secrets(message)
        console.print(f"[step]  [{number}/{total}] {message}[/step]")
        self._file.info(f"[{self._name}] [{number}/{total}] {message}")


def get_logger(name: str = "sitekeeper") -> SiteLogger:
    """
    Obtiene un logger para el módulo especificado.

    Ejemplo:
        logger = get_logger("sitekeeper.builders")
        logger.info("Calculando diff de assets...")
    """
    return SiteLogger(name)

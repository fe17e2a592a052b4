"""
errors.py — Taxonomía de errores de sitekeeper.

Todas las fallas del flujo de autenticación y publicación heredan de
SiteKeeperError, así la CLI (o cualquier otro llamador) puede atrapar
una sola clase y mostrar el mensaje.

Ninguno se reintenta automáticamente. La única recuperación local es
invalidar el token cacheado después de un error de autenticación,
para que el siguiente intento pida uno nuevo.

    InvalidKeyFormat      → la private key no parece PEM (setup)
    UnlockFailed          → passphrase incorrecta o ciphertext corrupto
    NotAuthenticated      → no hay key en memoria (hay que desbloquear)
    UpstreamAuthError     → GitHub rechazó el JWT o el token
    RepoUnavailable       → owner/repo/branch mal configurados o inaccesibles
    PipelineStageFailure  → falló una etapa git ya autenticados
"""

from __future__ import annotations


class SiteKeeperError(Exception):
    """Base de todos los errores del proyecto."""


class InvalidKeyFormat(SiteKeeperError):
    """El material de la key no pasa la heurística PEM."""


class UnlockFailed(SiteKeeperError):
    """No se pudo descifrar la credencial guardada."""


class NotAuthenticated(SiteKeeperError):
    """Se pidió un token pero la sesión no tiene private key."""


class UpstreamAuthError(SiteKeeperError):
    """Firma del JWT o intercambio de token rechazado/fallido."""


class RepoUnavailable(SiteKeeperError):
    """El repositorio destino no está configurado o no responde."""


class PipelineStageFailure(SiteKeeperError):
    """
    Una etapa del pipeline git falló después de autenticar.

    Atributos:
        stage: Nombre de la etapa ("BlobCreation", "TreeCreation", ...)
        status_code: Código HTTP devuelto por GitHub (None si fue de red)
        remote_message: Mensaje de error tal cual lo mandó GitHub
    """

    def __init__(
        self,
        stage: str,
        remote_message: str,
        status_code: int | None = None,
    ):
        self.stage = stage
        self.status_code = status_code
        self.remote_message = remote_message
        detalle = f" (HTTP {status_code})" if status_code is not None else ""
        super().__init__(f"{stage} falló{detalle}: {remote_message}")

"""
session.py — Estado volátil de una sesión de publicación.

Aquí viven las dos cosas que NUNCA tocan el disco:
    1. La private key descifrada (raw key)
    2. El installation token cacheado

En vez de variables globales, todo va en un SessionContext que se
inyecta al vault y al token broker. Así el ciclo de vida es explícito:
    - unlock() del vault → set_raw_key()
    - lock() del vault   → clear()
    - fin del proceso    → el objeto desaparece

La key se guarda en un bytearray para poder sobreescribirla con
ceros al cerrar sesión. Python puede haber dejado copias en otros
lados (strings intermedios, buffers de cryptography), así que esto
es higiene de mejor esfuerzo, no una garantía.
"""

from __future__ import annotations

import time
from dataclasses import dataclass


@dataclass
class CachedToken:
    """
    Installation token con su expiración.

    Campos:
        value: El bearer token
        expires_at: Epoch en segundos (None si GitHub no lo mandó)
    """
    value: str
    expires_at: float | None = None

    def is_expired(self, margin: float = 0.0) -> bool:
        if self.expires_at is None:
            return False
        return time.time() >= self.expires_at - margin


class SessionContext:
    """Contenedor de la key en memoria y del token de la sesión."""

    def __init__(self) -> None:
        self._raw_key: bytearray | None = None
        self._token: CachedToken | None = None

    # ============================================================
    # Private key
    # ============================================================

    @property
    def has_key(self) -> bool:
        return self._raw_key is not None

    def set_raw_key(self, key_material: bytes) -> None:
        """Reemplaza la key actual (la anterior se pone en ceros)."""
        self._wipe_key()
        self._raw_key = bytearray(key_material)

    def raw_key(self) -> bytes | None:
        """Copia inmutable de la key para firmar el JWT."""
        if self._raw_key is None:
            return None
        return bytes(self._raw_key)

    def _wipe_key(self) -> None:
        if self._raw_key is not None:
            for i in range(len(self._raw_key)):
                self._raw_key[i] = 0
        self._raw_key = None

    # ============================================================
    # Installation token
    # ============================================================

    @property
    def token(self) -> CachedToken | None:
        return self._token

    def set_token(self, value: str, expires_at: float | None = None) -> None:
        self._token = CachedToken(value=value, expires_at=expires_at)

    def clear_token(self) -> None:
        self._token = None

    def clear(self) -> None:
        """Cierra la sesión: key en ceros y token descartado."""
        self._wipe_key()
        self.clear_token()

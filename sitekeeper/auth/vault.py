"""
vault.py — Bóveda de la private key de la GitHub App.

Separamos lo que se escribe a disco de lo que vive en memoria:
    - Disco: SOLO el ciphertext de la key (cifrado con la passphrase)
    - Memoria: SOLO la key en claro, mientras la sesión esté abierta

Si alguien copia el archivo del vault no puede hacer nada sin la
passphrase. Y la key en claro no existe fuera de una sesión desbloqueada.

Cifrado:
    PBKDF2-HMAC-SHA256 (salt aleatorio de 16 bytes) deriva una key de
    32 bytes a partir de la passphrase, y Fernet (AES-CBC + HMAC-SHA256)
    cifra la PEM. Fernet es autenticado: una passphrase incorrecta o un
    ciphertext alterado fallan con InvalidToken, no producen basura.

Si se pierde la passphrase, la key cifrada es irrecuperable. No hay
escrow; hay que volver a hacer setup con el .pem original.

Uso:
    from sitekeeper.auth.vault import CredentialVault, CredentialStore
    vault = CredentialVault(CredentialStore(path), session)
    vault.initialize(pem_bytes, "mi passphrase")   # primera vez
    vault.unlock("mi passphrase")                   # sesiones siguientes
    vault.lock()                                    # logout
"""

from __future__ import annotations

import base64
import binascii
import json
import os
import tempfile
from pathlib import Path
from typing import Any

from cryptography.fernet import Fernet, InvalidToken
from cryptography.hazmat.primitives import hashes
from cryptography.hazmat.primitives.kdf.pbkdf2 import PBKDF2HMAC

from sitekeeper.auth.session import SessionContext
from sitekeeper.errors import InvalidKeyFormat, UnlockFailed
from sitekeeper.utils.logger import get_logger

logger = get_logger("sitekeeper.vault")

# Nombre del registro dentro del archivo de almacenamiento
STORAGE_NAMESPACE = "sitekeeper-secure-storage"

PEM_HEADER = b"-----BEGIN"
# Una PEM real mide más de 1 KB; esto solo filtra basura obvia
MIN_PEM_LENGTH = 64

SALT_BYTES = 16
ENVELOPE_VERSION = 1
KDF_NAME = "pbkdf2-sha256"
DEFAULT_ITERATIONS = 390_000


def looks_like_pem(data: bytes) -> bool:
    """Empieza con -----BEGIN y no es diminuta."""
    return data.lstrip().startswith(PEM_HEADER) and len(data) >= MIN_PEM_LENGTH


def _derive_fernet_key(passphrase: str, salt: bytes, iterations: int) -> bytes:
    kdf = PBKDF2HMAC(
        algorithm=hashes.SHA256(),
        length=32,
        salt=salt,
        iterations=iterations,
    )
    return base64.urlsafe_b64encode(kdf.derive(passphrase.encode("utf-8")))


def encrypt_key(
    key_material: bytes,
    passphrase: str,
    iterations: int = DEFAULT_ITERATIONS,
) -> dict[str, Any]:
    """
    Cifra la key y devuelve el sobre que se guarda en disco.

    El sobre lleva todo lo necesario para descifrar excepto la
    passphrase: versión, KDF, iteraciones, salt y el token Fernet.
    """
    salt = os.urandom(SALT_BYTES)
    fernet = Fernet(_derive_fernet_key(passphrase, salt, iterations))
    return {
        "version": ENVELOPE_VERSION,
        "kdf": KDF_NAME,
        "iterations": iterations,
        "salt": base64.b64encode(salt).decode("ascii"),
        "token": fernet.encrypt(key_material).decode("ascii"),
    }


def decrypt_key(envelope: dict[str, Any], passphrase: str) -> bytes:
    """
    Descifra un sobre generado por encrypt_key().

    Raises:
        UnlockFailed: Passphrase incorrecta, sobre corrupto o KDF desconocido.
    """
    try:
        if envelope.get("kdf") != KDF_NAME:
            raise UnlockFailed(f"KDF no soportado: {envelope.get('kdf')}")
        salt = base64.b64decode(envelope["salt"], validate=True)
        iterations = int(envelope["iterations"])
        fernet = Fernet(_derive_fernet_key(passphrase, salt, iterations))
        return fernet.decrypt(envelope["token"].encode("ascii"))
    except InvalidToken as e:
        raise UnlockFailed("Passphrase incorrecta, no se pudo descifrar la key") from e
    except (KeyError, TypeError, ValueError, AttributeError, binascii.Error) as e:
        raise UnlockFailed(f"Credencial guardada corrupta: {e}") from e


class CredentialStore:
    """
    Almacenamiento durable: un archivo JSON con un único registro.

    Formato:
        {"sitekeeper-secure-storage": {"encrypted_key": {...sobre...}}}

    Otras keys del archivo se respetan. Se escribe de forma atómica
    (archivo temporal + os.replace) y con permisos 600.

    Args:
        path: Ruta del archivo JSON.
    """

    def __init__(self, path: str | Path):
        self._path = Path(path).expanduser()

    @property
    def path(self) -> Path:
        return self._path

    def _read_all(self) -> dict[str, Any]:
        if not self._path.exists():
            return {}
        try:
            data = json.loads(self._path.read_text(encoding="utf-8"))
        except (json.JSONDecodeError, UnicodeDecodeError):
            logger.warning(f"Archivo del vault ilegible: {self._path}")
            return {}
        return data if isinstance(data, dict) else {}

    def _write_all(self, data: dict[str, Any]) -> None:
        self._path.parent.mkdir(parents=True, exist_ok=True)
        fd, tmp_name = tempfile.mkstemp(
            dir=self._path.parent, prefix=".sitekeeper-", suffix=".tmp"
        )
        try:
            with os.fdopen(fd, "w", encoding="utf-8") as f:
                json.dump(data, f, indent=2)
            os.chmod(tmp_name, 0o600)
            os.replace(tmp_name, self._path)
        except BaseException:
            if os.path.exists(tmp_name):
                os.unlink(tmp_name)
            raise

    def load(self) -> dict[str, Any] | None:
        """Devuelve el sobre cifrado o None si no hay credencial."""
        record = self._read_all().get(STORAGE_NAMESPACE)
        if record is None:
            return None
        envelope = record.get("encrypted_key") if isinstance(record, dict) else None
        if not isinstance(envelope, dict):
            logger.warning(f"Registro del vault corrupto en {self._path}; se ignora")
            return None
        return envelope

    def save(self, envelope: dict[str, Any]) -> None:
        data = self._read_all()
        data[STORAGE_NAMESPACE] = {"encrypted_key": envelope}
        self._write_all(data)

    def erase(self) -> None:
        data = self._read_all()
        if STORAGE_NAMESPACE not in data:
            return
        del data[STORAGE_NAMESPACE]
        if data:
            self._write_all(data)
        else:
            self._path.unlink(missing_ok=True)


class CredentialVault:
    """
    Gestiona el ciclo de vida de la private key.

    Args:
        store: Almacenamiento durable del ciphertext.
        session: Contexto volátil donde queda la key en claro.
        kdf_iterations: Iteraciones de PBKDF2 para nuevos setups.
    """

    def __init__(
        self,
        store: CredentialStore,
        session: SessionContext,
        kdf_iterations: int = DEFAULT_ITERATIONS,
    ):
        self._store = store
        self._session = session
        self._kdf_iterations = kdf_iterations

    @property
    def session(self) -> SessionContext:
        return self._session

    @property
    def is_unlocked(self) -> bool:
        return self._session.has_key

    def has_stored_credential(self) -> bool:
        """Distingue el flujo de setup (False) del de unlock (True)."""
        return self._store.load() is not None

    def initialize(self, key_material: bytes, passphrase: str) -> None:
        """
        Setup inicial: cifra la key, la guarda y deja la sesión abierta.

        Raises:
            InvalidKeyFormat: Si key_material no parece una PEM.
            ValueError: Si la passphrase está vacía.
        """
        if not looks_like_pem(key_material):
            raise InvalidKeyFormat(
                "La key no parece una PEM (debe empezar con -----BEGIN). "
                "Descárgala desde la configuración de tu GitHub App."
            )
        if not passphrase:
            raise ValueError("La passphrase no puede estar vacía")

        envelope = encrypt_key(key_material, passphrase, self._kdf_iterations)
        self._store.save(envelope)
        self._session.clear()
        self._session.set_raw_key(key_material)
        logger.success(f"Credencial cifrada guardada en {self._store.path}")

    def unlock(self, passphrase: str) -> None:
        """
        Descifra la credencial guardada y la deja en memoria.

        Si falla, la sesión queda exactamente como estaba.

        Raises:
            UnlockFailed: No hay credencial, passphrase incorrecta,
                ciphertext corrupto o el resultado no parece PEM.
        """
        envelope = self._store.load()
        if envelope is None:
            raise UnlockFailed("No hay credencial guardada; ejecuta el setup primero")

        plaintext = decrypt_key(envelope, passphrase)
        if not looks_like_pem(plaintext):
            raise UnlockFailed("El contenido descifrado no es una PEM válida")

        self._session.set_raw_key(plaintext)
        logger.success("Vault desbloqueado")

    def lock(self, reset: bool = False) -> None:
        """
        Cierra la sesión. Con reset=True también borra el ciphertext.
        """
        self._session.clear()
        if reset:
            self._store.erase()
            logger.warning("Credencial guardada eliminada")
        else:
            logger.info("Sesión cerrada")

    def reset(self) -> None:
        """Borra todo: memoria y disco."""
        self.lock(reset=True)

    def current_key(self) -> bytes | None:
        """Key en claro para el token broker (None si está bloqueado)."""
        return self._session.raw_key()

"""
test_vault.py — Tests para la bóveda de credenciales.

Verificamos que:
1. Cifrar y descifrar devuelve la misma key
2. Una passphrase incorrecta falla sin tocar la sesión
3. Solo el ciphertext llega a disco
4. reset borra memoria y disco
"""

from __future__ import annotations

import json
import os
import stat

import pytest

from conftest import TEST_ITERATIONS
from sitekeeper.auth.vault import (
    KDF_NAME,
    STORAGE_NAMESPACE,
    CredentialStore,
    decrypt_key,
    encrypt_key,
    looks_like_pem,
)
from sitekeeper.errors import InvalidKeyFormat, UnlockFailed


# ================================================================
# Heurística PEM
# ================================================================

class TestLooksLikePem:

    def test_pem_real(self, rsa_pem):
        assert looks_like_pem(rsa_pem)

    def test_rechaza_texto_libre(self):
        assert not looks_like_pem(b"esto no es una key" * 10)

    def test_rechaza_header_solo(self):
        """Empieza bien pero es demasiado corta."""
        assert not looks_like_pem(b"-----BEGIN KEY-----")

    def test_tolera_espacios_iniciales(self, rsa_pem):
        assert looks_like_pem(b"\n  " + rsa_pem)


# ================================================================
# Sobre cifrado
# ================================================================

class TestEnvelope:

    def test_roundtrip(self, rsa_pem):
        envelope = encrypt_key(rsa_pem, "secret123", TEST_ITERATIONS)
        assert decrypt_key(envelope, "secret123") == rsa_pem

    def test_campos_del_sobre(self, rsa_pem):
        envelope = encrypt_key(rsa_pem, "secret123", TEST_ITERATIONS)
        assert envelope["kdf"] == KDF_NAME
        assert envelope["iterations"] == TEST_ITERATIONS
        assert envelope["version"] == 1
        assert "BEGIN" not in envelope["token"]

    def test_salt_distinto_cada_vez(self, rsa_pem):
        """La misma key y passphrase no producen el mismo ciphertext."""
        a = encrypt_key(rsa_pem, "secret123", TEST_ITERATIONS)
        b = encrypt_key(rsa_pem, "secret123", TEST_ITERATIONS)
        assert a["salt"] != b["salt"]
        assert a["token"] != b["token"]

    def test_passphrase_incorrecta(self, rsa_pem):
        envelope = encrypt_key(rsa_pem, "secret123", TEST_ITERATIONS)
        with pytest.raises(UnlockFailed, match="incorrecta"):
            decrypt_key(envelope, "wrong")

    def test_sobre_corrupto(self, rsa_pem):
        envelope = encrypt_key(rsa_pem, "secret123", TEST_ITERATIONS)
        envelope["salt"] = "%%%no-base64%%%"
        with pytest.raises(UnlockFailed):
            decrypt_key(envelope, "secret123")

    def test_kdf_desconocido(self, rsa_pem):
        envelope = encrypt_key(rsa_pem, "secret123", TEST_ITERATIONS)
        envelope["kdf"] = "md5"
        with pytest.raises(UnlockFailed, match="KDF"):
            decrypt_key(envelope, "secret123")


# ================================================================
# Almacenamiento
# ================================================================

class TestCredentialStore:

    def test_load_sin_archivo(self, store):
        assert store.load() is None

    def test_save_y_load(self, store):
        store.save({"token": "abc"})
        assert store.load() == {"token": "abc"}

    def test_respeta_otras_keys(self, tmp_path):
        path = tmp_path / "storage.json"
        path.write_text(json.dumps({"otra-app": {"x": 1}}), encoding="utf-8")

        store = CredentialStore(path)
        store.save({"token": "abc"})
        data = json.loads(path.read_text(encoding="utf-8"))
        assert data["otra-app"] == {"x": 1}
        assert data[STORAGE_NAMESPACE]["encrypted_key"] == {"token": "abc"}

        store.erase()
        data = json.loads(path.read_text(encoding="utf-8"))
        assert data == {"otra-app": {"x": 1}}

    def test_erase_borra_archivo_vacio(self, store):
        store.save({"token": "abc"})
        store.erase()
        assert not store.path.exists()

    def test_archivo_ilegible(self, store):
        store.path.write_text("{no es json", encoding="utf-8")
        assert store.load() is None

    def test_archivo_no_utf8(self, store):
        store.path.write_bytes(b"\xff\xfe\x00basura")
        assert store.load() is None

    @pytest.mark.parametrize("registro", [["x"], "texto", 42, {"encrypted_key": "x"}])
    def test_registro_corrupto(self, store, registro):
        store.path.write_text(json.dumps({STORAGE_NAMESPACE: registro}), encoding="utf-8")
        assert store.load() is None

    @pytest.mark.skipif(os.name == "nt", reason="permisos POSIX")
    def test_permisos_600(self, store):
        store.save({"token": "abc"})
        assert stat.S_IMODE(store.path.stat().st_mode) == 0o600


# ================================================================
# CredentialVault
# ================================================================

class TestCredentialVault:

    def test_initialize_deja_sesion_abierta(self, vault, rsa_pem):
        assert not vault.has_stored_credential()
        vault.initialize(rsa_pem, "secret123")
        assert vault.is_unlocked
        assert vault.has_stored_credential()
        assert vault.current_key() == rsa_pem

    def test_disco_sin_texto_plano(self, vault, store, rsa_pem):
        vault.initialize(rsa_pem, "secret123")
        contenido = store.path.read_text(encoding="utf-8")
        assert "BEGIN" not in contenido
        assert "secret123" not in contenido

    def test_initialize_rechaza_no_pem(self, vault):
        with pytest.raises(InvalidKeyFormat):
            vault.initialize(b"hola mundo", "secret123")
        assert not vault.has_stored_credential()
        assert not vault.is_unlocked

    def test_initialize_rechaza_passphrase_vacia(self, vault, rsa_pem):
        with pytest.raises(ValueError):
            vault.initialize(rsa_pem, "")

    def test_escenario_passphrase_incorrecta_y_correcta(self, vault, rsa_pem):
        """setup → lock → unlock('wrong') falla → unlock('secret123') funciona."""
        vault.initialize(rsa_pem, "secret123")
        vault.lock()
        assert not vault.is_unlocked

        with pytest.raises(UnlockFailed):
            vault.unlock("wrong")
        assert not vault.is_unlocked
        assert vault.current_key() is None

        vault.unlock("secret123")
        assert vault.current_key() == rsa_pem

    def test_unlock_fallido_no_toca_sesion_abierta(self, unlocked_vault, rsa_pem):
        with pytest.raises(UnlockFailed):
            unlocked_vault.unlock("wrong")
        assert unlocked_vault.current_key() == rsa_pem

    def test_unlock_sin_credencial(self, vault):
        with pytest.raises(UnlockFailed, match="setup"):
            vault.unlock("secret123")

    def test_registro_corrupto_equivale_a_sin_credencial(self, vault, store):
        store.path.parent.mkdir(parents=True, exist_ok=True)
        store.path.write_text(json.dumps({STORAGE_NAMESPACE: ["x"]}), encoding="utf-8")
        assert not vault.has_stored_credential()
        with pytest.raises(UnlockFailed, match="setup"):
            vault.unlock("secret123")

    def test_lock_limpia_token(self, unlocked_vault):
        unlocked_vault.session.set_token("ghs_x", None)
        unlocked_vault.lock()
        assert unlocked_vault.session.token is None
        assert unlocked_vault.has_stored_credential()

    def test_reset_borra_todo(self, unlocked_vault):
        unlocked_vault.reset()
        assert not unlocked_vault.is_unlocked
        assert not unlocked_vault.has_stored_credential()
        with pytest.raises(UnlockFailed):
            unlocked_vault.unlock("secret123")

    def test_initialize_reemplaza_credencial(self, unlocked_vault, rsa_pem):
        unlocked_vault.initialize(rsa_pem, "otra-passphrase")
        unlocked_vault.lock()
        with pytest.raises(UnlockFailed):
            unlocked_vault.unlock("secret123")
        unlocked_vault.unlock("otra-passphrase")
        assert unlocked_vault.is_unlocked

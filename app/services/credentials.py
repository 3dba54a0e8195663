import hashlib
import os
from abc import ABC, abstractmethod

from cryptography.exceptions import InvalidTag
from cryptography.hazmat.primitives.ciphers.aead import AESGCM

from app.config import settings
from app.services.errors import CredentialError

NONCE_SIZE = 12


class CredentialStore(ABC):
    """Encrypts and decrypts gateway credentials kept at rest."""

    @abstractmethod
    def encrypt(self, plaintext: str) -> str:
        ...

    @abstractmethod
    def decrypt(self, token: str) -> str:
        ...


class AesGcmCredentialStore(CredentialStore):
    """AES-256-GCM, serialised as ``<nonce hex>:<ciphertext+tag hex>``."""

    def __init__(self, key_material: str | None = None):
        material = key_material if key_material is not None else settings.ENCRYPTION_KEY
        if not material:
            raise CredentialError("ENCRYPTION_KEY is not configured")
        self._aead = AESGCM(hashlib.sha256(material.encode("utf-8")).digest())

    def encrypt(self, plaintext: str) -> str:
        if not plaintext:
            return ""
        nonce = os.urandom(NONCE_SIZE)
        ciphertext = self._aead.encrypt(nonce, plaintext.encode("utf-8"), None)
        return f"{nonce.hex()}:{ciphertext.hex()}"

    def decrypt(self, token: str) -> str:
        if not token:
            return ""
        try:
            nonce_hex, ciphertext_hex = token.split(":", 1)
            nonce = bytes.fromhex(nonce_hex)
            ciphertext = bytes.fromhex(ciphertext_hex)
        except ValueError as e:
            raise CredentialError(f"Malformed credential token: {e}") from e
        if len(nonce) != NONCE_SIZE:
            raise CredentialError("Malformed credential token: bad nonce length")
        try:
            return self._aead.decrypt(nonce, ciphertext, None).decode("utf-8")
        except InvalidTag as e:
            raise CredentialError("Credential token failed authentication") from e

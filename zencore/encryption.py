"""Whole-file AEAD envelope for streaming containers.

Layout (all fields fixed size)::

    version u8 | cipher_id u8 | salt[22] | nonce[12] | ciphertext || tag[16]

The salt is 16 random bytes in unpadded base64, fed to Argon2id to derive a
32-byte key. ``cipher_id`` makes the envelope self-describing, so decryption
never needs to be told which AEAD was used.
"""
from __future__ import annotations

import base64
import binascii
import os
import struct
from dataclasses import dataclass
from typing import Union

from argon2.exceptions import HashingError
from argon2.low_level import Type as _ArgonType, hash_secret_raw as _argon_hash
from Cryptodome.Cipher import AES, ChaCha20_Poly1305
from Cryptodome.Random import get_random_bytes

from .constants import (
    ENVELOPE_VERSION,
    ENVELOPE_HEADER_SIZE,
    CIPHER_AES_256_GCM,
    CIPHER_CHACHA20_POLY1305,
    CIPHER_NAMES,
    SALT_RAW_SIZE,
    SALT_TEXT_SIZE,
    NONCE_SIZE,
    TAG_SIZE,
    KEY_SIZE,
    ARGON_TIME_COST,
    ARGON_MEMORY_COST_KIB,
    ARGON_PARALLELISM,
    BACKUP_SUFFIX,
)
from .errors import DecryptionFailed, EnvelopeFormatError, KeyDerivationFailure, UnknownCipher


_HEADER_STRUCT = struct.Struct(f"<BB{SALT_TEXT_SIZE}s{NONCE_SIZE}s")

_CIPHER_ALIASES = {
    "aes": CIPHER_AES_256_GCM,
    "aes256": CIPHER_AES_256_GCM,
    "aes-256": CIPHER_AES_256_GCM,
    "aes-256-gcm": CIPHER_AES_256_GCM,
    "chacha": CIPHER_CHACHA20_POLY1305,
    "chacha20": CIPHER_CHACHA20_POLY1305,
    "chacha20-poly1305": CIPHER_CHACHA20_POLY1305,
}


def parse_cipher(cipher: Union[str, int]) -> int:
    """Map a cipher name (or id) to its envelope cipher id."""
    if isinstance(cipher, int):
        if cipher in CIPHER_NAMES:
            return cipher
        raise UnknownCipher(f"Unknown cipher ID: {cipher}")
    try:
        return _CIPHER_ALIASES[cipher.strip().lower()]
    except KeyError:
        raise UnknownCipher(f"Unknown cipher: {cipher}") from None


def cipher_name(cipher_id: int) -> str:
    return CIPHER_NAMES[parse_cipher(cipher_id)]


def new_salt() -> bytes:
    """Fresh KDF salt in its 22-byte text form."""
    return base64.b64encode(get_random_bytes(SALT_RAW_SIZE)).rstrip(b"=")


def _salt_bytes(salt_text: bytes) -> bytes:
    try:
        return base64.b64decode(salt_text + b"=" * (-len(salt_text) % 4), validate=True)
    except (binascii.Error, ValueError) as exc:
        raise EnvelopeFormatError(f"Invalid salt encoding: {exc}") from exc


def derive_key(password: str, salt_text: bytes) -> bytes:
    """Argon2id(password, salt) -> 32 key bytes."""
    try:
        return _argon_hash(
            password.encode("utf-8"),
            _salt_bytes(salt_text),
            time_cost=ARGON_TIME_COST,
            memory_cost=ARGON_MEMORY_COST_KIB,
            parallelism=ARGON_PARALLELISM,
            hash_len=KEY_SIZE,
            type=_ArgonType.ID,
        )
    except HashingError as exc:
        raise KeyDerivationFailure(f"Failed to hash password: {exc}") from exc


@dataclass(frozen=True)
class EnvelopeHeader:
    version: int
    cipher_id: int
    salt: bytes
    nonce: bytes

    def pack(self) -> bytes:
        return _HEADER_STRUCT.pack(self.version, self.cipher_id, self.salt, self.nonce)

    @classmethod
    def unpack(cls, data: bytes) -> "EnvelopeHeader":
        if len(data) < ENVELOPE_HEADER_SIZE + TAG_SIZE:
            raise EnvelopeFormatError("Invalid encrypted file format (too short)")
        version, cipher_id, salt, nonce = _HEADER_STRUCT.unpack_from(data, 0)
        if version != ENVELOPE_VERSION:
            raise EnvelopeFormatError(f"Unsupported encryption version: {version}")
        if cipher_id not in CIPHER_NAMES:
            raise EnvelopeFormatError(f"Unknown cipher ID: {cipher_id}")
        return cls(version, cipher_id, salt, nonce)


class EncryptionContext:
    def __init__(self, key: bytes, header: EnvelopeHeader):
        self.key = key
        self.header = header

    @classmethod
    def create(cls, password: str, cipher: Union[str, int] = CIPHER_AES_256_GCM) -> "EncryptionContext":
        cipher_id = parse_cipher(cipher)
        salt = new_salt()
        key = derive_key(password, salt)
        header = EnvelopeHeader(ENVELOPE_VERSION, cipher_id, salt, get_random_bytes(NONCE_SIZE))
        return cls(key, header)

    @classmethod
    def from_header(cls, password: str, header: EnvelopeHeader) -> "EncryptionContext":
        return cls(derive_key(password, header.salt), header)

    def _cipher(self):
        if self.header.cipher_id == CIPHER_AES_256_GCM:
            return AES.new(self.key, AES.MODE_GCM, nonce=self.header.nonce, mac_len=TAG_SIZE)
        return ChaCha20_Poly1305.new(key=self.key, nonce=self.header.nonce)

    def encrypt(self, plaintext: bytes) -> bytes:
        ciphertext, tag = self._cipher().encrypt_and_digest(plaintext)
        return ciphertext + tag

    def decrypt(self, payload: bytes) -> bytes:
        if len(payload) < TAG_SIZE:
            raise EnvelopeFormatError("Encrypted payload too short")
        try:
            return self._cipher().decrypt_and_verify(payload[:-TAG_SIZE], payload[-TAG_SIZE:])
        except ValueError:
            raise DecryptionFailed() from None


def seal(plaintext: bytes, password: str, cipher: Union[str, int] = CIPHER_AES_256_GCM) -> bytes:
    """Encrypt ``plaintext`` into a complete envelope."""
    ctx = EncryptionContext.create(password, cipher)
    return ctx.header.pack() + ctx.encrypt(plaintext)


def unseal(blob: bytes, password: str) -> bytes:
    """Open an envelope produced by ``seal``.

    Raises:
        EnvelopeFormatError: Header is malformed or of an unknown version/cipher.
        DecryptionFailed: Authentication failed (wrong password or corrupted data).
    """
    header = EnvelopeHeader.unpack(blob)
    ctx = EncryptionContext.from_header(password, header)
    return ctx.decrypt(blob[ENVELOPE_HEADER_SIZE:])


def read_header(path: str | os.PathLike) -> EnvelopeHeader:
    with open(path, "rb") as fh:
        head = fh.read(ENVELOPE_HEADER_SIZE + TAG_SIZE)
    return EnvelopeHeader.unpack(head)


def is_envelope(path: str | os.PathLike) -> bool:
    try:
        read_header(path)
    except (EnvelopeFormatError, OSError):
        return False
    return True


def _write_file(path: str, data: bytes) -> None:
    with open(path, "wb") as fh:
        fh.write(data)
        fh.flush()
        os.fsync(fh.fileno())


def encrypt_file(
    path: str | os.PathLike,
    password: str,
    cipher: Union[str, int] = CIPHER_AES_256_GCM,
    *,
    keep_backup: bool = False,
) -> str:
    """Encrypt ``path`` in place.

    The plaintext is renamed to ``<path>.bak`` before the envelope is
    written. A failed write moves the plaintext back over any partial
    envelope. The backup is removed once the envelope is on disk
    unless ``keep_backup`` is set.
    """
    path = os.fspath(path)
    with open(path, "rb") as fh:
        plaintext = fh.read()
    blob = seal(plaintext, password, cipher)

    backup_path = path + BACKUP_SUFFIX
    os.replace(path, backup_path)
    try:
        _write_file(path, blob)
    except BaseException:
        os.replace(backup_path, path)
        raise
    if not keep_backup:
        os.remove(backup_path)
    return path


def decrypt_file(path: str | os.PathLike, password: str) -> str:
    """Decrypt an envelope in place; the file is untouched on failure."""
    path = os.fspath(path)
    with open(path, "rb") as fh:
        blob = fh.read()
    plaintext = unseal(blob, password)
    tmp_path = path + ".tmp"
    _write_file(tmp_path, plaintext)
    os.replace(tmp_path, path)
    return path

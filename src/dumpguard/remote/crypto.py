"""Sealed boxes for streaming dumps to the owner of a public key.

Each chunk is sealed independently: a fresh X25519 key pair is generated,
a shared secret with the recipient's public key is expanded with HKDF-SHA256
into an AES-256-GCM key and nonce, and the ephemeral public key is prepended
to the ciphertext. Only the recipient's private key can open the box.
"""

from __future__ import annotations

from dataclasses import dataclass

from cryptography.exceptions import InvalidTag
from cryptography.hazmat.primitives import hashes, serialization
from cryptography.hazmat.primitives.asymmetric.x25519 import X25519PrivateKey, X25519PublicKey
from cryptography.hazmat.primitives.ciphers.aead import AESGCM
from cryptography.hazmat.primitives.kdf.hkdf import HKDF

from dumpguard.core.exceptions import DecryptionError, InvalidConfigurationError

KEY_SIZE = 32
_NONCE_SIZE = 12
_INFO = b"dumpguard sealed chunk"

_RAW = {"encoding": serialization.Encoding.Raw, "format": serialization.PublicFormat.Raw}


def _public_bytes(key: X25519PublicKey) -> bytes:
    return key.public_bytes(**_RAW)


def _derive(shared: bytes, ephemeral_public: bytes, recipient_public: bytes) -> tuple[bytes, bytes]:
    material = HKDF(
        algorithm=hashes.SHA256(),
        length=KEY_SIZE + _NONCE_SIZE,
        salt=ephemeral_public + recipient_public,
        info=_INFO,
    ).derive(shared)
    return material[:KEY_SIZE], material[KEY_SIZE:]


@dataclass(frozen=True)
class KeyPair:
    """Raw 32-byte X25519 key pair."""

    public_key: bytes
    private_key: bytes

    @classmethod
    def generate(cls) -> KeyPair:
        private = X25519PrivateKey.generate()
        return cls(
            public_key=_public_bytes(private.public_key()),
            private_key=private.private_bytes(
                encoding=serialization.Encoding.Raw,
                format=serialization.PrivateFormat.Raw,
                encryption_algorithm=serialization.NoEncryption(),
            ),
        )

    @classmethod
    def from_private_key(cls, private_key: bytes) -> KeyPair:
        private = X25519PrivateKey.from_private_bytes(private_key)
        return cls(public_key=_public_bytes(private.public_key()), private_key=private_key)

    @property
    def public_hex(self) -> str:
        return self.public_key.hex()

    @property
    def private_hex(self) -> str:
        return self.private_key.hex()


def load_key(value: str, name: str = "key") -> bytes:
    """Decode a hex encoded 32-byte key.

    Raises:
        InvalidConfigurationError: If *value* is not a hex string of the right length.
    """
    try:
        key = bytes.fromhex(value.strip())
    except ValueError as exc:
        raise InvalidConfigurationError(f"The {name} is not valid hex") from exc
    if len(key) != KEY_SIZE:
        raise InvalidConfigurationError(f"The {name} must be {KEY_SIZE} bytes, got {len(key)}")
    return key


def seal(message: bytes, public_key: bytes) -> bytes:
    """Encrypt *message* so only the holder of the matching private key can read it."""
    ephemeral = X25519PrivateKey.generate()
    ephemeral_public = _public_bytes(ephemeral.public_key())
    shared = ephemeral.exchange(X25519PublicKey.from_public_bytes(public_key))
    key, nonce = _derive(shared, ephemeral_public, public_key)
    return ephemeral_public + AESGCM(key).encrypt(nonce, message, None)


def open_sealed(box: bytes, private_key: bytes) -> bytes:
    """Decrypt a box produced by seal().

    Raises:
        DecryptionError: If the box is truncated or was sealed for another key.
    """
    if len(box) < KEY_SIZE:
        raise DecryptionError("Encrypted chunk is shorter than its header")
    pair = KeyPair.from_private_key(private_key)
    ephemeral_public = box[:KEY_SIZE]
    try:
        shared = X25519PrivateKey.from_private_bytes(private_key).exchange(
            X25519PublicKey.from_public_bytes(ephemeral_public)
        )
        key, nonce = _derive(shared, ephemeral_public, pair.public_key)
        return AESGCM(key).decrypt(nonce, box[KEY_SIZE:], None)
    except (InvalidTag, ValueError) as exc:
        raise DecryptionError(
            "Could not decrypt the dump. Check that the configured private key matches "
            "the public key registered on the server."
        ) from exc


def determine_encryption_overhead(chunk_size: int, public_key: bytes) -> int:
    """Return how many bytes sealing adds to a chunk of *chunk_size* bytes."""
    return len(seal(b"0" * chunk_size, public_key)) - chunk_size

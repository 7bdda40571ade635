# /*
# Copyright 2026 The Validator Lab Authors.
#
# Licensed under the Apache License, Version 2.0 (the "License");
# you may not use this file except in compliance with the License.
# You may obtain a copy of the License at
#
#     http://www.apache.org/licenses/LICENSE-2.0
#
# Unless required by applicable law or agreed to in writing, software
# distributed under the License is distributed on an "AS IS" BASIS,
# WITHOUT WARRANTIES OR CONDITIONS OF ANY KIND, either express or implied.
# See the License for the specific language governing permissions and
# limitations under the License.
# */

"""Ed25519 keypairs in the Solana CLI file format, and per-run key derivation."""

from __future__ import annotations

import itertools
import json
import os
import threading
from pathlib import Path

import base58
from cryptography.hazmat.primitives import hashes, serialization
from cryptography.hazmat.primitives.asymmetric.ed25519 import Ed25519PrivateKey
from cryptography.hazmat.primitives.kdf.hkdf import HKDF

from validator_lab.errors import KeyMaterialError, PreconditionError

SEED_BYTES = 32
_DERIVATION_INFO = b"validator-lab/keypair/"


class Keypair:
    """An ed25519 keypair.

    Serialised as a JSON array of 64 integers: the 32-byte secret seed
    followed by the 32-byte public key, as written by ``solana-keygen``.
    """

    __slots__ = ("_private", "_secret", "_public")

    def __init__(self, secret: bytes) -> None:
        if len(secret) != SEED_BYTES:
            raise ValueError(f"Keypair secret must be {SEED_BYTES} bytes, got {len(secret)}")
        self._secret = bytes(secret)
        self._private = Ed25519PrivateKey.from_private_bytes(self._secret)
        self._public = self._private.public_key().public_bytes(
            encoding=serialization.Encoding.Raw,
            format=serialization.PublicFormat.Raw,
        )

    @classmethod
    def generate(cls) -> Keypair:
        private = Ed25519PrivateKey.generate()
        return cls(private.private_bytes(
            encoding=serialization.Encoding.Raw,
            format=serialization.PrivateFormat.Raw,
            encryption_algorithm=serialization.NoEncryption(),
        ))

    @property
    def public_bytes(self) -> bytes:
        return self._public

    @property
    def pubkey(self) -> str:
        """Base58 form of the public key."""
        return base58.b58encode(self._public).decode("ascii")

    def sign(self, message: bytes) -> bytes:
        return self._private.sign(message)

    def to_json(self) -> str:
        return json.dumps(list(self._secret + self._public))

    @classmethod
    def from_json(cls, text: str) -> Keypair:
        """Parse the Solana keypair file format.

        Raises:
            ValueError: If the content is not 64 byte values or the embedded
                public key does not match the secret.
        """
        values = json.loads(text)
        if not isinstance(values, list) or len(values) != 2 * SEED_BYTES:
            raise ValueError(f"Keypair file must hold {2 * SEED_BYTES} integers")
        if not all(isinstance(v, int) and 0 <= v <= 255 for v in values):
            raise ValueError("Keypair file values must be integers in 0..255")
        raw = bytes(values)
        keypair = cls(raw[:SEED_BYTES])
        if keypair.public_bytes != raw[SEED_BYTES:]:
            raise ValueError("Keypair file public key does not match its secret")
        return keypair

    def __eq__(self, other: object) -> bool:
        if not isinstance(other, Keypair):
            return NotImplemented
        return self._secret == other._secret

    def __hash__(self) -> int:
        return hash(self._public)

    def __repr__(self) -> str:
        return f"Keypair({self.pubkey})"


# ============================================================================
# Keypair files
# ============================================================================

def write_keypair_file(keypair: Keypair, path: Path) -> Path:
    """Write *keypair* to *path*, creating parent directories.

    Raises:
        KeyMaterialError: If the file cannot be written.
    """
    try:
        path.parent.mkdir(parents=True, exist_ok=True)
        path.write_text(keypair.to_json())
        path.chmod(0o600)
    except OSError as err:
        raise KeyMaterialError(f"Failed to write keypair file {path}: {err}") from err
    return path


def read_keypair_file(path: Path) -> Keypair:
    """Read a keypair written by :func:`write_keypair_file` or ``solana-keygen``.

    Raises:
        PreconditionError: If the file does not exist.
        KeyMaterialError: If the file cannot be read or parsed.
    """
    if not path.is_file():
        raise PreconditionError(f"Keypair file not found: {path}", path)
    try:
        return Keypair.from_json(path.read_text())
    except (OSError, ValueError) as err:
        raise KeyMaterialError(f"Failed to read keypair file {path}: {err}") from err


def read_pubkey(path: Path) -> str:
    return read_keypair_file(path).pubkey


# ============================================================================
# Key derivation
# ============================================================================

class KeyDerivationStream:
    """Deterministic keypair stream derived from one per-run seed.

    Each call to :meth:`next_keypair` derives a fresh ed25519 secret with
    HKDF-SHA256 over the run seed and a monotonically increasing counter,
    so the same seed always yields the same sequence of keypairs.
    """

    def __init__(self, seed: bytes | None = None) -> None:
        if seed is None:
            seed = os.urandom(SEED_BYTES)
        if len(seed) != SEED_BYTES:
            raise ValueError(f"Key derivation seed must be {SEED_BYTES} bytes, got {len(seed)}")
        self._seed = seed
        self._counter = itertools.count()
        self._lock = threading.Lock()

    @property
    def seed(self) -> bytes:
        return self._seed

    def next_keypair(self) -> Keypair:
        with self._lock:
            position = next(self._counter)
        hkdf = HKDF(
            algorithm=hashes.SHA256(),
            length=SEED_BYTES,
            salt=None,
            info=_DERIVATION_INFO + position.to_bytes(8, "big"),
        )
        return Keypair(hkdf.derive(self._seed))

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

"""Shred version derivation from a genesis ledger."""

from __future__ import annotations

from pathlib import Path
from typing import Protocol

import base58

from validator_lab import logger
from validator_lab.constants import GENESIS_BIN_FILE
from validator_lab.errors import LedgerNotFoundError, ToolError

HASH_BYTES = 32
MAX_SHRED_VERSION = 0xFFFF


class GenesisHashSource(Protocol):
    def genesis_hash(self, ledger_dir: Path) -> str: ...


def version_from_hash(genesis_hash: bytes) -> int:
    """Fold a 32-byte hash into a non-zero u16 shred version.

    Byte pairs are XORed together into two accumulator bytes, read as a
    big-endian u16, then incremented with saturation at 65535.
    """
    if len(genesis_hash) != HASH_BYTES:
        raise ValueError(f"Genesis hash must be {HASH_BYTES} bytes, got {len(genesis_hash)}")
    high = low = 0
    for i in range(0, HASH_BYTES, 2):
        high ^= genesis_hash[i]
        low ^= genesis_hash[i + 1]
    return min((high << 8 | low) + 1, MAX_SHRED_VERSION)


def get_shred_version(ledger_dir: Path, tools: GenesisHashSource) -> int:
    """Derive the shred version of the ledger in *ledger_dir*.

    Args:
        ledger_dir: Ledger directory written by the genesis stage.
        tools: Source of the ledger's base58 genesis hash.

    Returns:
        The shred version.

    Raises:
        LedgerNotFoundError: If the ledger directory or its genesis file is missing.
        ToolError: If the genesis hash cannot be obtained or decoded.
    """
    if not ledger_dir.is_dir():
        raise LedgerNotFoundError(
            "Ledger Directory does not exist, have you created genesis yet??", ledger_dir)
    if not (ledger_dir / GENESIS_BIN_FILE).is_file():
        raise LedgerNotFoundError(
            f"No {GENESIS_BIN_FILE} in {ledger_dir}, have you created genesis yet??",
            ledger_dir / GENESIS_BIN_FILE)

    encoded = tools.genesis_hash(ledger_dir)
    try:
        raw = base58.b58decode(encoded)
    except ValueError as err:
        raise ToolError(f"Invalid genesis hash {encoded!r}") from err
    if len(raw) != HASH_BYTES:
        raise ToolError(f"Genesis hash {encoded!r} is not {HASH_BYTES} bytes")

    shred_version = version_from_hash(raw)
    logger.info("Shred Version: %d", shred_version)
    return shred_version

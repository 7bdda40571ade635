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

"""Key material generation, client funding, and genesis ledger creation."""

from __future__ import annotations

import functools
import shutil
from pathlib import Path

import sh

from validator_lab import console, logger
from validator_lab.config import GenesisFlags
from validator_lab.constants import (
    BENCH_TPS_BINARY,
    BENCH_TPS_FILE_TEMPLATE,
    BOOTSTRAP_DIR_NAME,
    CLIENT_ACCOUNTS_FILE,
    DEFAULT_CLIENT_LAMPORTS_PER_SIGNATURE,
    FAUCET_FILE,
    GENESIS_BINARY,
    LEDGER_TOOL_BINARY,
)
from validator_lab.errors import (
    GenesisError,
    InvalidRoleError,
    KeyMaterialError,
    PreconditionError,
    ToolError,
)
from validator_lab.keys import KeyDerivationStream, Keypair, read_keypair_file, write_keypair_file
from validator_lab.node import KeyMaterial, NodeRole, RoleKind
from validator_lab.utils import error_output, run_bounded


# ============================================================================
# Solana binaries
# ============================================================================

class SolanaTools:
    """Runs the solana binaries found in one install directory."""

    def __init__(self, exec_dir: Path) -> None:
        self.exec_dir = exec_dir

    def _command(self, binary: str) -> sh.Command:
        path = self.exec_dir / binary
        if not path.is_file():
            raise PreconditionError(f"{binary} not found in {self.exec_dir}", path)
        return sh.Command(str(path))

    def genesis(self, args: list[str]) -> str:
        cmd = self._command(GENESIS_BINARY)
        try:
            return str(cmd(*args))
        except sh.ErrorReturnCode as err:
            raise GenesisError("Genesis creation failed", detail=error_output(err)) from err

    def bench_tps(self, args: list[str]) -> str:
        cmd = self._command(BENCH_TPS_BINARY)
        try:
            return str(cmd(*args))
        except sh.ErrorReturnCode as err:
            raise ToolError(f"{BENCH_TPS_BINARY} failed", detail=error_output(err)) from err

    def genesis_hash(self, ledger_dir: Path) -> str:
        """Return the base58 genesis hash of the ledger in *ledger_dir*."""
        cmd = self._command(LEDGER_TOOL_BINARY)
        try:
            output = str(cmd("genesis-hash", "--ledger", str(ledger_dir)))
        except sh.ErrorReturnCode as err:
            raise ToolError(f"{LEDGER_TOOL_BINARY} genesis-hash failed",
                            detail=error_output(err)) from err
        words = output.split()
        return words[-1] if words else ""


# ============================================================================
# Key material
# ============================================================================

def keyfile_path(config_dir: Path, role: NodeRole, account: str, tag: str | None = None) -> Path:
    """Return the file a node's keypair of type *account* is stored in.

    The bootstrap validator's keys live next to its ledger in
    ``bootstrap-validator/{account}.json``; every other node uses
    ``{kind}-{account}[-{tag}]-{index}.json`` in the config directory.
    """
    if role.is_bootstrap:
        return config_dir / BOOTSTRAP_DIR_NAME / f"{account}.json"
    account_type = f"{account}-{tag}" if tag else account
    return config_dir / f"{role.kind.value}-{account_type}-{role.index}.json"


class KeyMaterialGenerator:
    """Generates and persists every keypair of one run.

    One :class:`KeyDerivationStream` is held per run; all faucet, identity,
    vote, and stake keypairs are drawn from it in generation order.
    """

    def __init__(self, config_dir: Path, stream: KeyDerivationStream,
                 deployment_tag: str | None = None) -> None:
        self.config_dir = config_dir
        self.deployment_tag = deployment_tag
        self._stream = stream

    @classmethod
    def new_run(
        cls,
        config_dir: Path,
        retain_previous: bool,
        seed: bytes | None = None,
        deployment_tag: str | None = None,
    ) -> KeyMaterialGenerator:
        """Start a run rooted at *config_dir*.

        Args:
            config_dir: Directory all key material is written to.
            retain_previous: Keep existing material (adding nodes to an existing
                cluster) instead of clearing the directory.
            seed: 32-byte derivation seed; random when omitted.
            deployment_tag: Tag added to non-bootstrap keyfile names.

        Raises:
            KeyMaterialError: If the directory cannot be cleared or created.
        """
        try:
            if not retain_previous and config_dir.exists():
                logger.info("Clearing previous key material in %s", config_dir)
                shutil.rmtree(config_dir)
            config_dir.mkdir(parents=True, exist_ok=True)
        except OSError as err:
            raise KeyMaterialError(f"Failed to prepare config directory {config_dir}: {err}") from err
        return cls(config_dir, KeyDerivationStream(seed), deployment_tag)

    @property
    def faucet_path(self) -> Path:
        return self.config_dir / FAUCET_FILE

    def keyfile_path(self, role: NodeRole, account: str) -> Path:
        return keyfile_path(self.config_dir, role, account, self.deployment_tag)

    def generate_faucet(self) -> Keypair:
        keypair = self._stream.next_keypair()
        write_keypair_file(keypair, self.faucet_path)
        logger.info("Generated faucet account %s", keypair.pubkey)
        return keypair

    def generate_accounts(self, kind: RoleKind, count: int) -> list[KeyMaterial]:
        """Generate and write ``count`` sets of keypairs for nodes of *kind*.

        Args:
            kind: Role kind to generate for.
            count: Number of nodes (indices ``0..count-1``).

        Returns:
            One KeyMaterial per node, in index order.

        Raises:
            InvalidRoleError: For clients, whose accounts come from bench-tps,
                or a bootstrap count other than 1.
            KeyMaterialError: If a keyfile cannot be written.
        """
        if kind is RoleKind.CLIENT:
            raise InvalidRoleError(
                f"Client account generation is not allowed (requested {count}); "
                "client accounts are produced by the client funding stage")
        if kind is RoleKind.BOOTSTRAP and count != 1:
            raise InvalidRoleError(f"Exactly one bootstrap validator is generated, not {count}")
        if count < 0:
            raise InvalidRoleError(f"Account count must be non-negative, got {count}")

        materials: list[KeyMaterial] = []
        for index in range(count):
            role = NodeRole(kind, index)
            accounts: dict[str, Keypair] = {}
            for account in role.account_types:
                keypair = self._stream.next_keypair()
                write_keypair_file(keypair, self.keyfile_path(role, account))
                accounts[account] = keypair
            materials.append(KeyMaterial(role, **accounts))
        if count:
            logger.info("Generated %d %s account set(s)", count, kind.value)
        return materials

    def load_identity(self, role: NodeRole) -> Keypair:
        """Read back the identity keypair of *role*."""
        return read_keypair_file(self.keyfile_path(role, "identity"))


# ============================================================================
# Genesis
# ============================================================================

class Genesis:
    """Creates the genesis ledger for a new cluster.

    Attributes:
        config_dir: Directory holding key material and the ledger.
        flags: Genesis parameters.
    """

    def __init__(self, config_dir: Path, flags: GenesisFlags, tools: SolanaTools,
                 max_workers: int | None = None) -> None:
        self.config_dir = config_dir
        self.flags = flags
        self._tools = tools
        self._max_workers = max_workers

    @property
    def ledger_dir(self) -> Path:
        return self.config_dir / BOOTSTRAP_DIR_NAME

    @property
    def client_accounts_path(self) -> Path:
        return self.config_dir / CLIENT_ACCOUNTS_FILE

    def bench_tps_path(self, index: int) -> Path:
        return self.config_dir / BENCH_TPS_FILE_TEMPLATE.format(index=index)

    def create_client_accounts(
        self,
        num_clients: int,
        bench_tps_args: tuple[str, ...] = (),
        target_lamports_per_signature: int | None = None,
    ) -> Path:
        """Fund client accounts with bench-tps and merge them for genesis.

        Runs one bench-tps invocation per client concurrently, each writing
        ``bench-tps-{i}.yml``, then concatenates every file minus its header
        line into ``client-accounts.yml``.

        Args:
            num_clients: Number of clients.
            bench_tps_args: Formatted extra bench-tps arguments.
            target_lamports_per_signature: Fee target; defaults to the genesis
                flag, then DEFAULT_CLIENT_LAMPORTS_PER_SIGNATURE.

        Returns:
            Path of the merged accounts file.

        Raises:
            ToolError: If any bench-tps invocation fails.
        """
        if target_lamports_per_signature is None:
            target_lamports_per_signature = self.flags.target_lamports_per_signature
        if target_lamports_per_signature is None:
            target_lamports_per_signature = DEFAULT_CLIENT_LAMPORTS_PER_SIGNATURE

        console.print(f"[yellow]\u2139\ufe0f  Funding {num_clients} client account file(s)...[/yellow]")
        tasks = {
            f"client-{index}": functools.partial(
                self._write_client_keys, index, target_lamports_per_signature, bench_tps_args)
            for index in range(num_clients)
        }
        run_bounded(tasks, max_workers=self._max_workers or num_clients)

        merged: list[str] = []
        for index in range(num_clients):
            lines = self.bench_tps_path(index).read_text().splitlines()
            merged.extend(lines[1:])
        self.client_accounts_path.write_text("\n".join(merged) + "\n" if merged else "")
        console.print(f"[green]\u2705 Wrote {self.client_accounts_path.name}[/green]")
        return self.client_accounts_path

    def _write_client_keys(self, index: int, lamports_per_signature: int,
                           bench_tps_args: tuple[str, ...]) -> Path:
        path = self.bench_tps_path(index)
        args = [
            "--write-client-keys", str(path),
            "--target-lamports-per-signature", str(lamports_per_signature),
            *bench_tps_args,
        ]
        self._tools.bench_tps(args)
        if not path.is_file():
            raise ToolError(f"bench-tps did not write {path}")
        console.print(f"[green]\u2713 {path.name}[/green]")
        return path

    def genesis_args(self) -> list[str]:
        """Build the genesis binary argument list."""
        flags = self.flags
        args = [
            "--bootstrap-validator-lamports", str(flags.bootstrap_validator_lamports),
            "--bootstrap-validator-stake-lamports", str(flags.bootstrap_validator_stake_lamports),
            "--hashes-per-tick", flags.hashes_per_tick,
            "--max-genesis-archive-unpacked-size", str(flags.max_genesis_archive_unpacked_size),
            "--faucet-lamports", str(flags.faucet_lamports),
            "--faucet-pubkey", str(self.config_dir / FAUCET_FILE),
            "--cluster-type", flags.cluster_type,
            "--ledger", str(self.ledger_dir),
        ]
        if flags.enable_warmup_epochs:
            args.append("--enable-warmup-epochs")

        bootstrap = NodeRole.bootstrap()
        args.append("--bootstrap-validator")
        args.extend(str(keyfile_path(self.config_dir, bootstrap, account))
                    for account in bootstrap.account_types)

        if flags.slots_per_epoch is not None:
            args.extend(["--slots-per-epoch", str(flags.slots_per_epoch)])
        if flags.target_lamports_per_signature is not None:
            args.extend(["--target-lamports-per-signature",
                         str(flags.target_lamports_per_signature)])
        if self.client_accounts_path.is_file():
            args.extend(["--primordial-accounts-file", str(self.client_accounts_path)])
        return args

    def generate(self) -> Path:
        """Run the genesis binary and return the ledger directory.

        Raises:
            PreconditionError: If the faucet keyfile is missing.
            GenesisError: If the genesis binary fails.
        """
        faucet = self.config_dir / FAUCET_FILE
        if not faucet.is_file():
            raise PreconditionError(f"Faucet keypair not found: {faucet}", faucet)
        args = self.genesis_args()
        logger.info("Running %s %s", GENESIS_BINARY, " ".join(args))
        self._tools.genesis(args)
        console.print("[green]\u2705 Created genesis ledger[/green]")
        return self.ledger_dir

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

"""Inspect subcommands (shred-version, namespace)."""

from __future__ import annotations

from pathlib import Path

import typer

from validator_lab import console
from validator_lab.constants import BOOTSTRAP_DIR_NAME, CONFIG_DIR_NAME, LOCAL_INSTALL_DIR_NAME
from validator_lab.errors import ConfigurationError
from validator_lab.genesis import SolanaTools
from validator_lab.kubernetes import KubectlClusterApi
from validator_lab.ledger import get_shred_version
from validator_lab.utils import require_command

app = typer.Typer(help="Inspect generated artifacts and the target cluster.")


@app.command("shred-version")
def shred_version(
    solana_root: Path = typer.Option(
        Path("."), "--solana-root", help="Directory holding config-k8s/ and the binaries"),
    ledger: Path | None = typer.Option(
        None, "--ledger", help="Ledger directory (default: <root>/config-k8s/bootstrap-validator)"),
    exec_dir: Path | None = typer.Option(
        None, "--exec-dir", help="Directory holding the ledger tool (default: <root>/farf/bin)"),
) -> None:
    """Print the shred version of a genesis ledger."""
    ledger = ledger or solana_root / CONFIG_DIR_NAME / BOOTSTRAP_DIR_NAME
    exec_dir = exec_dir or solana_root / LOCAL_INSTALL_DIR_NAME / "bin"
    version = get_shred_version(ledger, SolanaTools(exec_dir))
    console.print(f"[green]\u2705 Shred version: {version}[/green]")
    typer.echo(version)


@app.command("namespace")
def namespace(
    name: str = typer.Argument(..., help="Namespace to look up"),
) -> None:
    """Check that a namespace exists in the current kube context."""
    require_command("kubectl")
    if not KubectlClusterApi(name).namespace_exists():
        raise ConfigurationError(f"Namespace: '{name}' doesn't exist.")
    console.print(f"[green]\u2705 Namespace '{name}' exists[/green]")

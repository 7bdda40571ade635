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

"""
cli.py - Deploy validator test clusters on Kubernetes.

Subcommands:
    deploy     Deploy a cluster (bootstrap, RPC nodes, validators, clients)
    inspect    Inspect a generated ledger or the target namespace

Environment Variables:
    Cluster and image settings can be overridden via VLAB_* environment variables:
    - VLAB_NAMESPACE (default: default)
    - VLAB_REGISTRY (required unless --registry is given)
    - VLAB_IMAGE_TAG (default: latest)
    - VLAB_READINESS_TIMEOUT (default: 1200)
    - And more (see config classes for full list)

Examples:
    # Build from a local checkout and deploy 2 validators and an RPC node
    validator-lab deploy cluster --local-path ~/agave --registry gcr.io/my-project \\
        --num-validators 2 --num-rpc-nodes 1

    # Deploy a released version with 2 clients running bench-tps
    validator-lab deploy cluster --release-channel v1.18.15 --registry gcr.io/my-project \\
        --num-clients 2 --run-client --bench-tps-args "tx-count=5000 keypair-multiplier=4"

    # Add more validators to the running cluster
    validator-lab deploy cluster --local-path ~/agave --registry gcr.io/my-project \\
        --no-bootstrap --deployment-tag wave2 --num-validators 4 --build-type skip

    # Print the shred version of the last genesis
    validator-lab inspect shred-version --solana-root ~/agave

For detailed usage information, run: validator-lab --help
"""

from __future__ import annotations

import logging
import sys

import typer

from validator_lab import console
from validator_lab.commands import deploy_cmd, inspect_cmd

app = typer.Typer(
    help="Deploy validator test clusters on Kubernetes.",
    no_args_is_help=True,
)


@app.callback()
def _main_callback() -> None:
    """Initialize logging for all subcommands."""
    logging.basicConfig(
        level=logging.INFO,
        format="%(asctime)s [%(levelname)s] %(message)s",
        datefmt="%H:%M:%S",
    )


app.add_typer(deploy_cmd.app, name="deploy")
app.add_typer(inspect_cmd.app, name="inspect")


def main() -> None:
    try:
        app()
    except Exception as e:
        console.print(f"[red]\u274c {e}[/red]")
        sys.exit(1)


if __name__ == "__main__":
    main()

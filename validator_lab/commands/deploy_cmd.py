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

"""Deploy subcommands (cluster)."""

from __future__ import annotations

from pathlib import Path

import typer

from validator_lab.config import (
    BuildType,
    ClientConfig,
    ClusterConfig,
    DockerConfig,
    GenesisFlags,
    ValidatorConfig,
    apply_overrides,
    parse_bench_tps_args,
    resolve_build_options,
    validate_flags,
)
from validator_lab.errors import ConfigurationError
from validator_lab.orchestrator import run_deploy

app = typer.Typer(help="Deploy validator clusters.")


def parse_seed(seed: str | None) -> bytes | None:
    """Decode a 64-character hex key seed."""
    if seed is None:
        return None
    try:
        raw = bytes.fromhex(seed)
    except ValueError as err:
        raise ConfigurationError("--key-seed must be hex encoded") from err
    if len(raw) != 32:
        raise ConfigurationError(f"--key-seed must be 32 bytes, got {len(raw)}")
    return raw


@app.command("cluster")
def cluster(
    # Binary source
    local_path: Path | None = typer.Option(
        None, "--local-path", help="Build validator binaries from this local checkout"),
    release_channel: str | None = typer.Option(
        None, "--release-channel", help="Download this release instead (e.g. v1.18.15)"),
    build_type: BuildType = typer.Option(
        BuildType.RELEASE, "--build-type", help="Local build variant, or skip to reuse a build"),
    workdir: Path = typer.Option(
        Path("."), "--workdir", help="Working directory for --release-channel downloads"),
    # Cluster shape
    namespace: str | None = typer.Option(
        None, "--namespace", "-n", help="Kubernetes namespace (must exist)"),
    num_validators: int | None = typer.Option(
        None, "--num-validators", help="Number of validators"),
    num_rpc_nodes: int | None = typer.Option(
        None, "--num-rpc-nodes", help="Number of RPC nodes"),
    num_clients: int | None = typer.Option(
        None, "--num-clients", help="Number of clients to build images for"),
    run_client: bool = typer.Option(
        False, "--run-client", help="Deploy the clients after building them"),
    no_bootstrap: bool = typer.Option(
        False, "--no-bootstrap", help="Reuse the previous genesis and bootstrap validator"),
    deployment_tag: str | None = typer.Option(
        None, "--deployment-tag", help="Tag for node populations added with --no-bootstrap"),
    readiness_timeout: float | None = typer.Option(
        None, "--readiness-timeout", help="Seconds to wait for readiness (0 waits forever)"),
    key_seed: str | None = typer.Option(
        None, "--key-seed", help="Hex-encoded 32-byte seed for reproducible keys"),
    # Images
    registry: str | None = typer.Option(
        None, "--registry", help="Container registry (overrides VLAB_REGISTRY)"),
    image_name: str | None = typer.Option(
        None, "--image-name", help="Image base name"),
    base_image: str | None = typer.Option(
        None, "--base-image", help="Base image of every node image"),
    tag: str | None = typer.Option(
        None, "--tag", help="Image tag"),
    skip_docker_build: bool = typer.Option(
        False, "--skip-docker-build", help="Skip image build and push"),
    # Genesis
    hashes_per_tick: str | None = typer.Option(
        None, "--hashes-per-tick", help="auto, sleep, or a number"),
    slots_per_epoch: int | None = typer.Option(
        None, "--slots-per-epoch", help="Slots per epoch"),
    target_lamports_per_signature: int | None = typer.Option(
        None, "--target-lamports-per-signature", help="Target lamports per signature"),
    faucet_lamports: int | None = typer.Option(
        None, "--faucet-lamports", help="Lamports given to the faucet"),
    enable_warmup_epochs: bool | None = typer.Option(
        None, "--enable-warmup-epochs/--disable-warmup-epochs", help="Warmup epochs"),
    max_genesis_archive_unpacked_size: int | None = typer.Option(
        None, "--max-genesis-archive-unpacked-size", help="Max unpacked genesis archive bytes"),
    cluster_type: str | None = typer.Option(
        None, "--cluster-type", help="development, devnet, testnet, or mainnet-beta"),
    bootstrap_validator_sol: float | None = typer.Option(
        None, "--bootstrap-validator-sol", help="SOL given to the bootstrap validator"),
    bootstrap_validator_stake_sol: float | None = typer.Option(
        None, "--bootstrap-validator-stake-sol", help="SOL staked by the bootstrap validator"),
    # Validators
    internal_node_sol: float | None = typer.Option(
        None, "--internal-node-sol", help="SOL given to each validator"),
    internal_node_stake_sol: float | None = typer.Option(
        None, "--internal-node-stake-sol", help="SOL staked by each validator"),
    commission: int | None = typer.Option(
        None, "--commission", help="Vote account commission percentage of each validator"),
    limit_ledger_size: int | None = typer.Option(
        None, "--limit-ledger-size", help="Max ledger shreds kept by each node"),
    skip_poh_verify: bool = typer.Option(False, "--skip-poh-verify", help="Skip PoH verification"),
    no_snapshot_fetch: bool = typer.Option(
        False, "--no-snapshot-fetch", help="Do not fetch snapshots from the cluster"),
    require_tower: bool = typer.Option(False, "--require-tower", help="Require a saved tower"),
    enable_full_rpc: bool = typer.Option(
        False, "--full-rpc", help="Enable transaction history on RPC nodes"),
    tpu_enable_udp: bool = typer.Option(False, "--tpu-enable-udp", help="Enable UDP TPU"),
    tpu_disable_quic: bool = typer.Option(False, "--tpu-disable-quic", help="Disable QUIC TPU"),
    # Clients
    client_delay_start: int | None = typer.Option(
        None, "--client-delay-start", help="Seconds each client waits before starting"),
    client_to_run: str | None = typer.Option(
        None, "--client-to-run", help="Client program to run (e.g. bench-tps)"),
    client_type: str | None = typer.Option(
        None, "--client-type", help="tpu-client or rpc-client"),
    bench_tps_args: str | None = typer.Option(
        None, "--bench-tps-args", help='e.g. "tx-count=5000 thread-batch-sleep-ms=250"'),
    client_target_node: str | None = typer.Option(
        None, "--client-target-node", help="Pubkey of the node clients send to"),
    client_duration: int | None = typer.Option(
        None, "--client-duration-seconds", help="Seconds each client runs"),
    client_wait_for_n_nodes: int | None = typer.Option(
        None, "--client-wait-for-n-nodes", help="Nodes to discover before sending"),
) -> None:
    """Build images and deploy a bootstrap validator, RPC nodes, validators, and clients."""
    docker_cfg = apply_overrides(DockerConfig(), {
        "registry": registry,
        "image_name": image_name,
        "base_image": base_image,
        "image_tag": tag,
        "skip_docker_build": skip_docker_build or None,
    })
    cluster_cfg = apply_overrides(ClusterConfig(), {
        "namespace": namespace,
        "num_validators": num_validators,
        "num_rpc_nodes": num_rpc_nodes,
        "num_clients": num_clients,
        "run_client": run_client or None,
        "no_bootstrap": no_bootstrap or None,
        "deployment_tag": deployment_tag,
        "readiness_timeout": readiness_timeout,
    })

    validate_flags(
        local_path=local_path,
        release_channel=release_channel,
        registry=docker_cfg.registry,
        skip_docker_build=docker_cfg.skip_docker_build,
        num_clients=cluster_cfg.num_clients,
        run_client=cluster_cfg.run_client,
        no_bootstrap=cluster_cfg.no_bootstrap,
        deployment_tag=cluster_cfg.deployment_tag,
    )

    genesis_flags = apply_overrides(GenesisFlags(), {
        "hashes_per_tick": hashes_per_tick,
        "slots_per_epoch": slots_per_epoch,
        "target_lamports_per_signature": target_lamports_per_signature,
        "faucet_lamports": faucet_lamports,
        "enable_warmup_epochs": enable_warmup_epochs,
        "max_genesis_archive_unpacked_size": max_genesis_archive_unpacked_size,
        "cluster_type": cluster_type,
        "bootstrap_validator_sol": bootstrap_validator_sol,
        "bootstrap_validator_stake_sol": bootstrap_validator_stake_sol,
    })
    validator_cfg = apply_overrides(ValidatorConfig(), {
        "internal_node_sol": internal_node_sol,
        "internal_node_stake_sol": internal_node_stake_sol,
        "commission": commission,
        "max_ledger_size": limit_ledger_size,
        "skip_poh_verify": skip_poh_verify or None,
        "no_snapshot_fetch": no_snapshot_fetch or None,
        "require_tower": require_tower or None,
        "enable_full_rpc": enable_full_rpc or None,
        "tpu_enable_udp": tpu_enable_udp or None,
        "tpu_disable_quic": tpu_disable_quic or None,
    })
    client_cfg = apply_overrides(ClientConfig(), {
        "client_delay_start": client_delay_start,
        "client_to_run": client_to_run,
        "client_type": client_type,
        "bench_tps_args": parse_bench_tps_args(bench_tps_args) or None,
        "target_node": client_target_node,
        "duration": client_duration,
        "num_nodes": client_wait_for_n_nodes,
    })
    build_options = resolve_build_options(local_path, release_channel, build_type, workdir)

    run_deploy(
        cluster_cfg,
        docker_cfg,
        genesis_flags,
        validator_cfg,
        client_cfg,
        build_options,
        seed=parse_seed(key_seed),
    )

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

"""Configuration classes, build options, and config resolution/display."""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from pathlib import Path
from typing import Any, TypeVar

from pydantic import BaseModel, ConfigDict, Field, ValidationError, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict
from rich.panel import Panel

from validator_lab import console, logger
from validator_lab.constants import (
    CLIENT_TYPES,
    CLUSTER_TYPES,
    CONFIG_DIR_NAME,
    DEFAULT_APPLY_MAX_WORKERS,
    DEFAULT_BASE_IMAGE,
    DEFAULT_BOOTSTRAP_NODE_SOL,
    DEFAULT_BOOTSTRAP_NODE_STAKE_SOL,
    DEFAULT_CLIENT_DURATION_SECONDS,
    DEFAULT_CLIENT_TO_RUN,
    DEFAULT_CLIENT_TYPE,
    DEFAULT_CLUSTER_TYPE,
    DEFAULT_ENABLE_WARMUP_EPOCHS,
    DEFAULT_FAUCET_LAMPORTS,
    DEFAULT_HASHES_PER_TICK,
    DEFAULT_IMAGE_NAME,
    DEFAULT_IMAGE_TAG,
    DEFAULT_INTERNAL_NODE_SOL,
    DEFAULT_INTERNAL_NODE_STAKE_SOL,
    DEFAULT_MAX_GENESIS_ARCHIVE_UNPACKED_SIZE,
    DEFAULT_NAMESPACE,
    DEFAULT_PUSH_MAX_WORKERS,
    DEFAULT_READINESS_TIMEOUT_SECONDS,
    DEFAULT_VALIDATOR_COMMISSION,
    LAMPORTS_PER_SOL,
    READINESS_POLL_INTERVAL_SECONDS,
)
from validator_lab.errors import ConfigurationError

_DNS_LABEL = r"^[a-z0-9]([-a-z0-9]*[a-z0-9])?$"
_CLUSTER_TYPE_PATTERN = "^(" + "|".join(CLUSTER_TYPES) + ")$"
_CLIENT_TYPE_PATTERN = "^(" + "|".join(CLIENT_TYPES) + ")$"


# ============================================================================
# Configuration classes
# ============================================================================

class ClusterConfig(BaseSettings):
    """Cluster shape and deploy behaviour, auto-loaded from VLAB_* env vars.

    Attributes:
        namespace: Kubernetes namespace to deploy into (must already exist).
        num_validators: Number of standard validators.
        num_rpc_nodes: Number of RPC nodes.
        num_clients: Number of load-generating clients (images are built for each).
        run_client: Whether to deploy the clients after building their images.
        no_bootstrap: Reuse the previous run's genesis and bootstrap validator.
        deployment_tag: Tag distinguishing node populations added by separate runs.
        readiness_timeout: Seconds to wait for a workload to become ready, or None
            (also given as 0)
            to wait indefinitely.
        poll_interval: Seconds between readiness polls.
        max_workers: Maximum concurrent per-node apply tasks.
    """

    model_config = SettingsConfigDict(env_prefix="VLAB_", extra="ignore")

    namespace: str = Field(default=DEFAULT_NAMESPACE, pattern=_DNS_LABEL)
    num_validators: int = Field(default=0, ge=0, le=1000)
    num_rpc_nodes: int = Field(default=0, ge=0, le=1000)
    num_clients: int = Field(default=0, ge=0, le=1000)
    run_client: bool = False
    no_bootstrap: bool = False
    deployment_tag: str | None = Field(default=None, pattern=_DNS_LABEL)
    readiness_timeout: float | None = Field(default=DEFAULT_READINESS_TIMEOUT_SECONDS, gt=0)
    poll_interval: float = Field(default=READINESS_POLL_INTERVAL_SECONDS, gt=0)
    max_workers: int = Field(default=DEFAULT_APPLY_MAX_WORKERS, ge=1, le=64)

    @field_validator("readiness_timeout", mode="before")
    @classmethod
    def _zero_waits_forever(cls, value: Any) -> Any:
        if value in (0, "0", "0.0"):
            return None
        return value


class DockerConfig(BaseSettings):
    """Image build and push settings, auto-loaded from VLAB_* env vars.

    Attributes:
        registry: Registry the images are pushed to and pulled from.
        image_name: Image base name, prefixed with the node kind.
        base_image: Base image of every node image.
        image_tag: Image tag.
        skip_docker_build: Assume images were already built and pushed.
        push_workers: Maximum concurrent image pushes.
    """

    model_config = SettingsConfigDict(env_prefix="VLAB_", extra="ignore")

    registry: str | None = None
    image_name: str = DEFAULT_IMAGE_NAME
    base_image: str = DEFAULT_BASE_IMAGE
    image_tag: str = Field(default=DEFAULT_IMAGE_TAG, pattern=r"^[\w][\w.-]{0,127}$")
    skip_docker_build: bool = False
    push_workers: int = Field(default=DEFAULT_PUSH_MAX_WORKERS, ge=1, le=32)


class GenesisFlags(BaseModel):
    """Genesis ledger parameters, consumed once by the genesis stage."""

    model_config = ConfigDict(frozen=True)

    hashes_per_tick: str = Field(default=DEFAULT_HASHES_PER_TICK, pattern=r"^(auto|sleep|\d+)$")
    slots_per_epoch: int | None = Field(default=None, gt=0)
    target_lamports_per_signature: int | None = Field(default=None, ge=0)
    faucet_lamports: int = Field(default=DEFAULT_FAUCET_LAMPORTS, ge=0)
    enable_warmup_epochs: bool = DEFAULT_ENABLE_WARMUP_EPOCHS
    max_genesis_archive_unpacked_size: int = Field(
        default=DEFAULT_MAX_GENESIS_ARCHIVE_UNPACKED_SIZE, gt=0)
    cluster_type: str = Field(default=DEFAULT_CLUSTER_TYPE, pattern=_CLUSTER_TYPE_PATTERN)
    bootstrap_validator_sol: float = Field(default=DEFAULT_BOOTSTRAP_NODE_SOL, ge=0)
    bootstrap_validator_stake_sol: float = Field(default=DEFAULT_BOOTSTRAP_NODE_STAKE_SOL, ge=0)

    @property
    def bootstrap_validator_lamports(self) -> int:
        return sol_to_lamports(self.bootstrap_validator_sol)

    @property
    def bootstrap_validator_stake_lamports(self) -> int:
        return sol_to_lamports(self.bootstrap_validator_stake_sol)


class ValidatorConfig(BaseModel):
    """Startup options shared by the bootstrap, validator, and RPC nodes."""

    model_config = ConfigDict(frozen=True)

    internal_node_sol: float = Field(default=DEFAULT_INTERNAL_NODE_SOL, ge=0)
    internal_node_stake_sol: float = Field(default=DEFAULT_INTERNAL_NODE_STAKE_SOL, ge=0)
    commission: int = Field(default=DEFAULT_VALIDATOR_COMMISSION, ge=0, le=100)
    max_ledger_size: int | None = Field(default=None, gt=0)
    skip_poh_verify: bool = False
    no_snapshot_fetch: bool = False
    require_tower: bool = False
    enable_full_rpc: bool = False
    tpu_enable_udp: bool = False
    tpu_disable_quic: bool = False


class ClientConfig(BaseModel):
    """Load-generating client options."""

    model_config = ConfigDict(frozen=True)

    client_delay_start: int = Field(default=0, ge=0)
    client_to_run: str = DEFAULT_CLIENT_TO_RUN
    client_type: str = Field(default=DEFAULT_CLIENT_TYPE, pattern=_CLIENT_TYPE_PATTERN)
    bench_tps_args: tuple[str, ...] = ()
    target_node: str | None = None
    duration: int = Field(default=DEFAULT_CLIENT_DURATION_SECONDS, gt=0)
    num_nodes: int | None = Field(default=None, gt=0)


def sol_to_lamports(sol: float) -> int:
    return int(round(sol * LAMPORTS_PER_SOL))


# ============================================================================
# Build options
# ============================================================================

class DeployMethod(str, Enum):
    """Where the validator binaries come from."""

    LOCAL = "local"
    TAR = "tar"


class BuildType(str, Enum):
    """How a local checkout is built."""

    SKIP = "skip"
    DEBUG = "debug"
    RELEASE = "release"


@dataclass(frozen=True)
class BuildOptions:
    """Options for acquiring the validator binaries.

    Attributes:
        deploy_method: Build from a local checkout or download a release.
        solana_root: Checkout (local) or working directory (tar) all artifacts
            and the config directory live under.
        release_channel: Release version to download (tar only).
        build_type: Local build variant, or skip to reuse an existing build.
    """

    deploy_method: DeployMethod
    solana_root: Path
    release_channel: str | None = None
    build_type: BuildType = BuildType.RELEASE

    @property
    def config_dir(self) -> Path:
        return self.solana_root / CONFIG_DIR_NAME


# ============================================================================
# Config resolution
# ============================================================================

def parse_bench_tps_args(raw: str | None) -> tuple[str, ...]:
    """Format whitespace-separated bench-tps arguments as CLI flags.

    ``key=value`` pairs become ``--key value`` and come first; bare words
    become ``--word`` flags in their original order.

    Args:
        raw: Argument string such as ``"tx-count=5000 thread-batch-sleep-ms=250 use-durable-nonce"``.

    Returns:
        Tuple of formatted arguments (empty for None or blank input).
    """
    if not raw:
        return ()
    tokens = raw.split()
    valued: list[str] = []
    flags: list[str] = []
    for token in tokens:
        key, sep, value = token.partition("=")
        if sep:
            valued.extend([f"--{key}", value])
        else:
            flags.append(f"--{token}")
    return tuple(valued + flags)


def validate_flags(
    local_path: Path | None,
    release_channel: str | None,
    registry: str | None,
    skip_docker_build: bool,
    num_clients: int,
    run_client: bool,
    no_bootstrap: bool,
    deployment_tag: str | None,
) -> None:
    """Validate flag combinations before any external call is made.

    Args:
        local_path: Local validator checkout, or None.
        release_channel: Release channel to download, or None.
        registry: Container registry, or None.
        skip_docker_build: Whether image build and push is skipped.
        num_clients: Number of clients requested.
        run_client: Whether clients should be deployed.
        no_bootstrap: Whether the previous bootstrap is reused.
        deployment_tag: Deployment tag, or None.

    Raises:
        ConfigurationError: If the combination is invalid.
    """
    if local_path is None and release_channel is None:
        raise ConfigurationError("One of --local-path or --release-channel must be provided")
    if local_path is not None and release_channel is not None:
        raise ConfigurationError("--local-path and --release-channel are mutually exclusive")
    if local_path is not None and not local_path.is_dir():
        raise ConfigurationError(f"Build directory not found: {local_path}")
    if not registry:
        raise ConfigurationError("--registry is required (or set VLAB_REGISTRY)")
    if run_client and num_clients == 0:
        raise ConfigurationError("--run-client requires --num-clients > 0")
    if no_bootstrap and not deployment_tag:
        logger.warning(
            "--no-bootstrap without --deployment-tag; nodes from earlier runs with the "
            "same names will be overwritten"
        )
    if skip_docker_build:
        logger.warning("--skip-docker-build set; images must already exist in %s", registry)


T = TypeVar("T", bound=BaseModel)


def apply_overrides(cfg: T, overrides: dict[str, Any]) -> T:
    """Return a validated copy of *cfg* with every non-None override applied.

    Raises:
        ConfigurationError: If an override fails the field's constraints.
    """
    updates = {key: value for key, value in overrides.items() if value is not None}
    if not updates:
        return cfg
    try:
        return type(cfg).model_validate({**cfg.model_dump(), **updates})
    except ValidationError as err:
        raise ConfigurationError(f"Invalid configuration: {err}") from err


def resolve_build_options(
    local_path: Path | None,
    release_channel: str | None,
    build_type: BuildType,
    workdir: Path,
) -> BuildOptions:
    """Turn the mutually exclusive source flags into BuildOptions."""
    if local_path is not None:
        return BuildOptions(DeployMethod.LOCAL, local_path.resolve(), None, build_type)
    return BuildOptions(DeployMethod.TAR, workdir.resolve(), release_channel, build_type)


# ============================================================================
# Display
# ============================================================================

def display_config(
    cluster_cfg: ClusterConfig,
    docker_cfg: DockerConfig,
    build_options: BuildOptions,
    genesis_flags: GenesisFlags,
) -> None:
    """Print the resolved configuration.

    Args:
        cluster_cfg: Cluster shape configuration.
        docker_cfg: Image build and push configuration.
        build_options: Validator binary source.
        genesis_flags: Genesis parameters (shown only when genesis runs).
    """
    console.print(Panel.fit("Configuration", style="bold blue"))

    console.print("[yellow]Cluster:[/yellow]")
    console.print(f"  namespace         : {cluster_cfg.namespace}")
    console.print(f"  validators        : {cluster_cfg.num_validators}")
    console.print(f"  rpc_nodes         : {cluster_cfg.num_rpc_nodes}")
    console.print(f"  clients           : {cluster_cfg.num_clients} "
                  f"({'deploy' if cluster_cfg.run_client else 'build only'})")
    console.print(f"  deployment_tag    : {cluster_cfg.deployment_tag or '(none)'}")
    timeout = cluster_cfg.readiness_timeout
    console.print(f"  readiness_timeout : {f'{timeout:g}s' if timeout else 'disabled'}")

    console.print("[yellow]Build:[/yellow]")
    console.print(f"  deploy_method     : {build_options.deploy_method.value}")
    console.print(f"  solana_root       : {build_options.solana_root}")
    if build_options.release_channel:
        console.print(f"  release_channel   : {build_options.release_channel}")
    console.print(f"  build_type        : {build_options.build_type.value}")

    console.print("[yellow]Images:[/yellow]")
    console.print(f"  registry          : {docker_cfg.registry}")
    console.print(f"  image             : {docker_cfg.image_name}:{docker_cfg.image_tag}")
    console.print(f"  base_image        : {docker_cfg.base_image}")
    if docker_cfg.skip_docker_build:
        console.print("  build             : skipped")

    if cluster_cfg.no_bootstrap:
        console.print("[yellow]Genesis:[/yellow] reusing previous bootstrap validator")
    else:
        console.print("[yellow]Genesis:[/yellow]")
        console.print(f"  cluster_type      : {genesis_flags.cluster_type}")
        console.print(f"  hashes_per_tick   : {genesis_flags.hashes_per_tick}")
        console.print(f"  faucet_lamports   : {genesis_flags.faucet_lamports}")

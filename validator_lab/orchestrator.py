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

"""Deployment stage graph: genesis, images, and per-role deploys."""

from __future__ import annotations

import functools
import time
from collections.abc import Callable
from dataclasses import dataclass, field
from pathlib import Path
from typing import Protocol

from rich.panel import Panel

from validator_lab import console, logger
from validator_lab.config import (
    BuildOptions,
    ClientConfig,
    ClusterConfig,
    DockerConfig,
    GenesisFlags,
    ValidatorConfig,
    display_config,
)
from validator_lab.constants import BOOTSTRAP_DIR_NAME, CONFIG_DIR_NAME
from validator_lab.errors import ConfigurationError, LabError
from validator_lab.genesis import Genesis, KeyMaterialGenerator, SolanaTools
from validator_lab.images import ContainerBuildService, DockerBuildService, ImagePipeline
from validator_lab.kubernetes import ClusterApi, KubectlClusterApi
from validator_lab.ledger import get_shred_version
from validator_lab.node import ClusterFacts, ImageRef, NodeRole, RoleKind
from validator_lab.readiness import ReadinessGate
from validator_lab.release import BuildArtifacts, BuildConfig
from validator_lab.topology import ClusterNode, ClusterTopology, TopologyBuilder
from validator_lab.utils import require_command, run_bounded

STAGE_PREPARE = "prepare"
STAGE_GENESIS = "genesis"
STAGE_FACTS = "derive-facts"
STAGE_IMAGES = "images"
STAGE_BOOTSTRAP = "bootstrap"
STAGE_RPC = "rpc-nodes"
STAGE_VALIDATORS = "validators"
STAGE_CLIENTS = "clients"


class BinarySource(Protocol):
    """Anything that can prepare validator binaries (see BuildConfig)."""

    solana_root: Path
    install_dir_name: str

    def prepare(self) -> BuildArtifacts: ...


@dataclass
class DeploymentReport:
    """What a deployment run did.

    Attributes:
        facts: Facts derived from the genesis ledger.
        topology: Every node, with handles for the ones that were applied.
        stages_run: Stages that ran, in order.
        stages_skipped: Stages skipped by configuration.
    """

    facts: ClusterFacts | None = None
    topology: ClusterTopology = field(default_factory=ClusterTopology)
    stages_run: list[str] = field(default_factory=list)
    stages_skipped: list[str] = field(default_factory=list)


class DeploymentOrchestrator:
    """Runs the deployment stages in dependency order.

    Every stage is terminal on the first error: nothing is retried and
    nothing already applied is rolled back. Errors raised while a specific
    node is processed carry that node's role.
    """

    def __init__(
        self,
        cluster_cfg: ClusterConfig,
        docker_cfg: DockerConfig,
        genesis_flags: GenesisFlags,
        validator_cfg: ValidatorConfig,
        client_cfg: ClientConfig,
        build_config: BinarySource,
        api: ClusterApi,
        build_service: ContainerBuildService,
        tools_factory: Callable[[Path], SolanaTools] = SolanaTools,
        seed: bytes | None = None,
        sleep: Callable[[float], None] = time.sleep,
    ) -> None:
        self.cluster_cfg = cluster_cfg
        self.docker_cfg = docker_cfg
        self.genesis_flags = genesis_flags
        self.validator_cfg = validator_cfg
        self.client_cfg = client_cfg
        self.build_config = build_config
        self.api = api
        self.build_service = build_service
        self.tools_factory = tools_factory
        self.seed = seed
        self.report = DeploymentReport()
        self.gate = ReadinessGate(
            api,
            poll_interval=cluster_cfg.poll_interval,
            timeout=cluster_cfg.readiness_timeout,
            sleep=sleep,
        )
        self._tools: SolanaTools | None = None
        self._keygen: KeyMaterialGenerator | None = None
        self._builder: TopologyBuilder | None = None

    @property
    def config_dir(self) -> Path:
        return self.build_config.solana_root / CONFIG_DIR_NAME

    @property
    def genesis_enabled(self) -> bool:
        return not self.cluster_cfg.no_bootstrap

    @property
    def topology(self) -> ClusterTopology:
        return self.report.topology

    # ------------------------------------------------------------------------
    # Driver
    # ------------------------------------------------------------------------

    def run(self) -> DeploymentReport:
        """Run every stage and return the report.

        Raises:
            LabError: The first error from any stage.
        """
        self.preflight()
        self.prepare()
        self.genesis()
        facts = self.derive_facts()
        self.build_images()
        self.deploy_bootstrap()
        self.deploy_rpc_nodes()
        self.deploy_validators()
        self.deploy_clients()
        console.print(f"[green]\u2705 Deployment to '{self.cluster_cfg.namespace}' complete "
                      f"(shred version {facts.shred_version})[/green]")
        return self.report

    def _begin(self, stage: str, title: str) -> None:
        console.print(Panel.fit(title, style="bold blue"))
        self.report.stages_run.append(stage)

    def _skip(self, stage: str, reason: str) -> None:
        console.print(f"[yellow]\u2139\ufe0f  Skipping {stage}: {reason}[/yellow]")
        self.report.stages_skipped.append(stage)

    # ------------------------------------------------------------------------
    # Stages 0-1: preflight and binaries
    # ------------------------------------------------------------------------

    def preflight(self) -> None:
        """Check configuration and that the namespace exists."""
        if not self.docker_cfg.registry:
            raise ConfigurationError("A container registry is required")
        if self.cluster_cfg.run_client and self.cluster_cfg.num_clients == 0:
            raise ConfigurationError("run_client requires at least one client")
        namespace = self.cluster_cfg.namespace
        if not self.api.namespace_exists():
            raise ConfigurationError(f"Namespace: '{namespace}' doesn't exist. Exiting...")
        console.print(f"[green]\u2705 Namespace '{namespace}' exists[/green]")

    def prepare(self) -> BuildArtifacts:
        self._begin(STAGE_PREPARE, "Stage 1: Prepare validator binaries")
        artifacts = self.build_config.prepare()
        self._tools = self.tools_factory(artifacts.exec_dir)
        return artifacts

    @property
    def tools(self) -> SolanaTools:
        if self._tools is None:
            raise RuntimeError("prepare() must run before tools are used")
        return self._tools

    # ------------------------------------------------------------------------
    # Stage 2: genesis
    # ------------------------------------------------------------------------

    def _open_key_run(self) -> KeyMaterialGenerator:
        if self._keygen is None:
            self._keygen = KeyMaterialGenerator.new_run(
                self.config_dir,
                retain_previous=self.cluster_cfg.no_bootstrap,
                seed=self.seed,
                deployment_tag=self.cluster_cfg.deployment_tag,
            )
        return self._keygen

    def genesis(self) -> None:
        """Generate faucet and bootstrap keys, fund clients, and create the ledger."""
        keygen = self._open_key_run()
        if not self.genesis_enabled:
            self._skip(STAGE_GENESIS, "--no-bootstrap reuses the previous genesis")
            return

        self._begin(STAGE_GENESIS, "Stage 2: Genesis")
        keygen.generate_faucet()
        keygen.generate_accounts(RoleKind.BOOTSTRAP, 1)
        console.print("[green]\u2705 Generated faucet and bootstrap accounts[/green]")

        genesis = Genesis(self.config_dir, self.genesis_flags, self.tools)
        if self.cluster_cfg.num_clients > 0:
            genesis.create_client_accounts(
                self.cluster_cfg.num_clients, self.client_cfg.bench_tps_args)
        genesis.generate()

    # ------------------------------------------------------------------------
    # Stage 3: facts and topology
    # ------------------------------------------------------------------------

    def derive_facts(self) -> ClusterFacts:
        """Derive the shred version, generate node keys, and build every node.

        Raises:
            LedgerNotFoundError: If no ledger exists (e.g. --no-bootstrap on a
                fresh config directory).
        """
        self._begin(STAGE_FACTS, "Stage 3: Derive cluster facts")
        keygen = self._open_key_run()
        cfg = self.cluster_cfg

        shred_version = get_shred_version(self.config_dir / BOOTSTRAP_DIR_NAME, self.tools)
        bootstrap_identity = keygen.load_identity(NodeRole.bootstrap()).pubkey
        facts = ClusterFacts(
            shred_version=shred_version,
            bootstrap_identity=bootstrap_identity,
            known_validators=(bootstrap_identity,),
        )
        self.report.facts = facts
        console.print(f"[green]\u2705 Shred version {shred_version}, "
                      f"bootstrap identity {bootstrap_identity}[/green]")

        validators = keygen.generate_accounts(RoleKind.VALIDATOR, cfg.num_validators)
        rpc_nodes = keygen.generate_accounts(RoleKind.RPC_NODE, cfg.num_rpc_nodes)

        builder = self._topology_builder()
        if self.genesis_enabled:
            self.topology.add(builder.bootstrap_node(bootstrap_identity))
        for material in rpc_nodes:
            self.topology.add(self._build_node(
                material.role, builder.rpc_node,
                material.role.index, material.identity.pubkey, facts))
        for material in validators:
            self.topology.add(self._build_node(
                material.role, builder.validator_node,
                material.role.index, material.identity.pubkey, facts))
        for index in range(cfg.num_clients):
            self.topology.add(self._build_node(
                NodeRole.client(index), builder.client_node, index))
        logger.info("Built %d node(s)", len(self.topology))
        return facts

    def _topology_builder(self) -> TopologyBuilder:
        if self._builder is None:
            self._builder = TopologyBuilder(
                namespace=self.cluster_cfg.namespace,
                config_dir=self.config_dir,
                registry=self.docker_cfg.registry,
                image_name=self.docker_cfg.image_name,
                image_tag=self.docker_cfg.image_tag,
                validator_cfg=self.validator_cfg,
                client_cfg=self.client_cfg,
                deployment_tag=self.cluster_cfg.deployment_tag,
            )
        return self._builder

    @staticmethod
    def _build_node(role: NodeRole, build: Callable[..., ClusterNode], *args) -> ClusterNode:
        try:
            return build(*args)
        except LabError as err:
            err.annotate(role)
            raise

    # ------------------------------------------------------------------------
    # Stage 4: images
    # ------------------------------------------------------------------------

    def image_plan(self) -> list[tuple[NodeRole, ImageRef]]:
        """One image per populated kind, plus one per client index."""
        cfg = self.cluster_cfg
        builder = self._topology_builder()
        roles: list[NodeRole] = []
        if self.genesis_enabled:
            roles.append(NodeRole.bootstrap())
        if cfg.num_validators > 0:
            roles.append(NodeRole.validator(0))
        if cfg.num_rpc_nodes > 0:
            roles.append(NodeRole.rpc_node(0))
        roles.extend(NodeRole.client(i) for i in range(cfg.num_clients))
        return [(role, builder.image_for(role)) for role in roles]

    def build_images(self) -> None:
        if self.docker_cfg.skip_docker_build:
            self._skip(STAGE_IMAGES, "--skip-docker-build assumes images are already pushed")
            return
        plan = self.image_plan()
        if not plan:
            self._skip(STAGE_IMAGES, "no images to build")
            return
        self._begin(STAGE_IMAGES, "Stage 4: Build and push images")
        pipeline = ImagePipeline(
            self.build_service,
            build_root=self.build_config.solana_root,
            install_dir_name=self.build_config.install_dir_name,
            base_image=self.docker_cfg.base_image,
            push_workers=self.docker_cfg.push_workers,
        )
        pipeline.build_all(plan)
        pipeline.push_all([ref for _, ref in plan])

    # ------------------------------------------------------------------------
    # Stages 5-8: deploys
    # ------------------------------------------------------------------------

    def _apply_node(self, node: ClusterNode) -> ClusterNode:
        """Apply a node's Secret, workload, and Services, in that order."""
        try:
            node = node.with_secret(self.api.apply_secret(node.secret))
            node = node.with_workload(self.api.apply_workload(node.workload))
            node = node.with_services([self.api.apply_service(s) for s in node.services])
        except LabError as err:
            err.annotate(node.role)
            raise
        console.print(f"[green]\u2713 {node.role} applied ({node.workload_name})[/green]")
        return node

    def _apply_population(self, nodes: list[ClusterNode]) -> None:
        tasks = {str(node.role): functools.partial(self._apply_node, node) for node in nodes}
        results = run_bounded(tasks, max_workers=self.cluster_cfg.max_workers)
        for node in nodes:
            self.topology.add(results[str(node.role)])

    def deploy_bootstrap(self) -> None:
        if not self.genesis_enabled:
            self._skip(STAGE_BOOTSTRAP, "--no-bootstrap reuses the running bootstrap validator")
            return
        self._begin(STAGE_BOOTSTRAP, "Stage 5: Deploy bootstrap validator")
        node = self._apply_node(self.topology.bootstrap())
        self.topology.add(node)
        try:
            self.gate.wait_ready(node.workload_name)
        except LabError as err:
            err.annotate(node.role)
            raise

    def deploy_rpc_nodes(self) -> None:
        if self.cluster_cfg.num_rpc_nodes == 0:
            self._skip(STAGE_RPC, "no RPC nodes requested")
            return
        self._begin(STAGE_RPC, f"Stage 6: Deploy {self.cluster_cfg.num_rpc_nodes} RPC node(s)")
        nodes = self.topology.rpc_nodes()
        self._apply_population(nodes)
        self.gate.wait_any_ready([node.workload_name for node in nodes])

    def deploy_validators(self) -> None:
        if self.cluster_cfg.num_validators == 0:
            self._skip(STAGE_VALIDATORS, "no validators requested")
            return
        self._begin(STAGE_VALIDATORS,
                    f"Stage 7: Deploy {self.cluster_cfg.num_validators} validator(s)")
        self._apply_population(self.topology.validators())

    def deploy_clients(self) -> None:
        if self.cluster_cfg.num_clients == 0:
            self._skip(STAGE_CLIENTS, "no clients requested")
            return
        if not self.cluster_cfg.run_client:
            self._skip(STAGE_CLIENTS, "client images built; pass --run-client to deploy them")
            return
        self._begin(STAGE_CLIENTS, f"Stage 8: Deploy {self.cluster_cfg.num_clients} client(s)")
        self._apply_population(self.topology.clients())


# ============================================================================
# Entry point
# ============================================================================

def _check_prerequisites(skip_docker_build: bool) -> None:
    prereqs = ["kubectl"]
    if not skip_docker_build:
        prereqs.append("docker")
    console.print(Panel.fit("Checking prerequisites", style="bold blue"))
    for cmd in prereqs:
        require_command(cmd)
    console.print("[green]\u2705 All required tools are available[/green]")


def display_report(report: DeploymentReport) -> None:
    """Print the applied objects and skipped stages."""
    console.print(Panel.fit("Summary", style="bold blue"))
    if report.facts is not None:
        console.print(f"  shred_version     : {report.facts.shred_version}")
        console.print(f"  bootstrap         : {report.facts.bootstrap_identity}")
    for node in report.topology:
        status = "deployed" if node.deployed else "not deployed"
        console.print(f"  {str(node.role):<18}: {node.image} ({status})")
    if report.stages_skipped:
        console.print(f"  skipped stages    : {', '.join(report.stages_skipped)}")


def run_deploy(
    cluster_cfg: ClusterConfig,
    docker_cfg: DockerConfig,
    genesis_flags: GenesisFlags,
    validator_cfg: ValidatorConfig,
    client_cfg: ClientConfig,
    build_options: BuildOptions,
    seed: bytes | None = None,
) -> DeploymentReport:
    """Deploy a test cluster with kubectl and the local Docker daemon.

    Args:
        cluster_cfg: Cluster shape configuration.
        docker_cfg: Image build and push configuration.
        genesis_flags: Genesis parameters.
        validator_cfg: Startup options for validator-type nodes.
        client_cfg: Client options.
        build_options: Validator binary source.
        seed: Key derivation seed, or None for a random one.

    Returns:
        The deployment report.
    """
    _check_prerequisites(docker_cfg.skip_docker_build)
    display_config(cluster_cfg, docker_cfg, build_options, genesis_flags)

    build_service = DockerBuildService()
    try:
        orchestrator = DeploymentOrchestrator(
            cluster_cfg=cluster_cfg,
            docker_cfg=docker_cfg,
            genesis_flags=genesis_flags,
            validator_cfg=validator_cfg,
            client_cfg=client_cfg,
            build_config=BuildConfig(build_options),
            api=KubectlClusterApi(cluster_cfg.namespace),
            build_service=build_service,
            seed=seed,
        )
        report = orchestrator.run()
    finally:
        build_service.close()

    display_report(report)
    return report

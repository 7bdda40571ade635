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

"""In-memory model of every node in the cluster and how it is built."""

from __future__ import annotations

import dataclasses
from collections.abc import Iterable, Iterator
from dataclasses import dataclass
from pathlib import Path

from validator_lab.config import ClientConfig, ValidatorConfig
from validator_lab.constants import (
    BOOTSTRAP_SELECTOR,
    BOOTSTRAP_SERVICE_NAME,
    FAUCET_FILE,
    FAUCET_PORT,
    GOSSIP_PORT,
    LABEL_CLIENT_NAME,
    LABEL_CLIENT_TYPE,
    LABEL_DEPLOYMENT_TAG,
    LABEL_LOAD_BALANCER,
    LABEL_RPC_IDENTITY,
    LABEL_RPC_NAME,
    LABEL_SERVICE_NAME,
    LABEL_VALIDATOR_IDENTITY,
    LABEL_VALIDATOR_NAME,
    LABEL_VALIDATOR_TYPE,
    LOAD_BALANCER_SELECTOR,
    LOAD_BALANCER_SERVICE_NAME,
    RPC_PORT,
)
from validator_lab.errors import TopologyError
from validator_lab.genesis import keyfile_path
from validator_lab.manifests import (
    ResourceRef,
    direct_service_manifest,
    env_var,
    load_balancer_service_manifest,
    object_name,
    pod_ip_env,
    replica_set_manifest,
    resource_requests,
    secret_manifest,
)
from validator_lab.node import ClusterFacts, ImageRef, NodeRole, RoleKind
from validator_lab.startup_flags import (
    bootstrap_flags,
    client_flags,
    rpc_node_flags,
    startup_command,
    validator_flags,
)

# Label each kind's direct Service and ReplicaSet select on.
_SELECTOR_LABELS: dict[RoleKind, str] = {
    RoleKind.BOOTSTRAP: LABEL_SERVICE_NAME,
    RoleKind.VALIDATOR: LABEL_VALIDATOR_NAME,
    RoleKind.RPC_NODE: LABEL_RPC_NAME,
    RoleKind.CLIENT: LABEL_CLIENT_NAME,
}


# ============================================================================
# Cluster nodes
# ============================================================================

@dataclass(frozen=True)
class ClusterNode:
    """Everything needed to deploy one node, built before any API call.

    Applying the node's objects yields a new ClusterNode carrying the
    returned handles (see :meth:`with_secret` and :meth:`with_workload`).

    Attributes:
        role: The node's role.
        image: Image the node runs.
        identity: Base58 identity pubkey (None for clients).
        service_labels: Labels Services and the ReplicaSet select on.
        info_labels: Descriptive labels.
        secret: Secret manifest.
        workload: ReplicaSet manifest.
        services: Service manifests owned by the node.
        secret_ref: Handle of the applied Secret.
        workload_ref: Handle of the applied ReplicaSet.
        service_refs: Handles of the applied Services.
    """

    role: NodeRole
    image: ImageRef
    identity: str | None
    service_labels: dict[str, str]
    info_labels: dict[str, str]
    secret: dict
    workload: dict
    services: tuple[dict, ...] = ()
    secret_ref: ResourceRef | None = None
    workload_ref: ResourceRef | None = None
    service_refs: tuple[ResourceRef, ...] = ()

    def all_labels(self) -> dict[str, str]:
        """Info labels overlaid with service labels (service labels win)."""
        return {**self.info_labels, **self.service_labels}

    @property
    def workload_name(self) -> str:
        return object_name(self.workload)

    @property
    def deployed(self) -> bool:
        return self.secret_ref is not None and self.workload_ref is not None

    def with_secret(self, ref: ResourceRef) -> ClusterNode:
        return dataclasses.replace(self, secret_ref=ref)

    def with_workload(self, ref: ResourceRef) -> ClusterNode:
        return dataclasses.replace(self, workload_ref=ref)

    def with_services(self, refs: Iterable[ResourceRef]) -> ClusterNode:
        return dataclasses.replace(self, service_refs=tuple(refs))


class ClusterTopology:
    """Collection of cluster nodes keyed by role.

    Looking up a role kind with no configured nodes is an error rather
    than an empty result.
    """

    def __init__(self, nodes: Iterable[ClusterNode] = ()) -> None:
        self._nodes: dict[NodeRole, ClusterNode] = {}
        for node in nodes:
            self.add(node)

    def add(self, node: ClusterNode) -> None:
        """Insert *node*, replacing any node with the same role."""
        self._nodes[node.role] = node

    def get(self, role: NodeRole) -> ClusterNode:
        if not self._of_kind(role.kind):
            raise TopologyError(f"No {role.kind.value} nodes are configured")
        try:
            return self._nodes[role]
        except KeyError:
            count = len(self._of_kind(role.kind))
            raise TopologyError(
                f"{role} does not exist ({count} {role.kind.value} node(s) configured)") from None

    def bootstrap(self) -> ClusterNode:
        return self.get(NodeRole.bootstrap())

    def validator(self, index: int = 0) -> ClusterNode:
        return self.get(NodeRole.validator(index))

    def rpc(self, index: int = 0) -> ClusterNode:
        return self.get(NodeRole.rpc_node(index))

    def client(self, index: int) -> ClusterNode:
        return self.get(NodeRole.client(index))

    def validators(self) -> list[ClusterNode]:
        return self._of_kind(RoleKind.VALIDATOR)

    def rpc_nodes(self) -> list[ClusterNode]:
        return self._of_kind(RoleKind.RPC_NODE)

    def clients(self) -> list[ClusterNode]:
        return self._of_kind(RoleKind.CLIENT)

    def count(self, kind: RoleKind) -> int:
        return len(self._of_kind(kind))

    def all(self) -> list[ClusterNode]:
        order = list(RoleKind)
        return sorted(self._nodes.values(),
                      key=lambda n: (order.index(n.role.kind), n.role.index))

    def _of_kind(self, kind: RoleKind) -> list[ClusterNode]:
        nodes = [n for n in self._nodes.values() if n.role.kind is kind]
        return sorted(nodes, key=lambda n: n.role.index)

    def __iter__(self) -> Iterator[ClusterNode]:
        return iter(self.all())

    def __len__(self) -> int:
        return len(self._nodes)

    def __contains__(self, role: object) -> bool:
        return role in self._nodes


# ============================================================================
# Node construction
# ============================================================================

def cluster_address(service: str, namespace: str, port: int) -> str:
    return f"{service}.{namespace}.svc.cluster.local:{port}"


class TopologyBuilder:
    """Builds fully configured ClusterNodes for each role.

    Attributes:
        namespace: Namespace every object is created in.
        config_dir: Directory holding key material.
        registry: Image registry.
        image_name: Image base name.
        image_tag: Image tag.
        validator_cfg: Startup options for bootstrap, validator, and RPC nodes.
        client_cfg: Client options.
        deployment_tag: Tag added to non-bootstrap object names.
    """

    def __init__(
        self,
        namespace: str,
        config_dir: Path,
        registry: str,
        image_name: str,
        image_tag: str,
        validator_cfg: ValidatorConfig,
        client_cfg: ClientConfig,
        deployment_tag: str | None = None,
    ) -> None:
        self.namespace = namespace
        self.config_dir = config_dir
        self.registry = registry
        self.image_name = image_name
        self.image_tag = image_tag
        self.validator_cfg = validator_cfg
        self.client_cfg = client_cfg
        self.deployment_tag = deployment_tag

    def image_for(self, role: NodeRole) -> ImageRef:
        return ImageRef.for_role(role, self.registry, self.image_name, self.image_tag)

    def _selector(self, role: NodeRole) -> dict[str, str]:
        value = BOOTSTRAP_SELECTOR if role.is_bootstrap else role.name(self.deployment_tag)
        return {_SELECTOR_LABELS[role.kind]: value}

    def _keyfile(self, role: NodeRole, account: str) -> Path:
        return keyfile_path(self.config_dir, role, account, self.deployment_tag)

    def _bootstrap_env(self) -> list[dict]:
        return [
            env_var("BOOTSTRAP_RPC_ADDRESS",
                    cluster_address(BOOTSTRAP_SERVICE_NAME, self.namespace, RPC_PORT)),
            env_var("BOOTSTRAP_GOSSIP_ADDRESS",
                    cluster_address(BOOTSTRAP_SERVICE_NAME, self.namespace, GOSSIP_PORT)),
            env_var("BOOTSTRAP_FAUCET_ADDRESS",
                    cluster_address(BOOTSTRAP_SERVICE_NAME, self.namespace, FAUCET_PORT)),
        ]

    def _load_balancer_env(self) -> dict:
        return env_var("LOAD_BALANCER_RPC_ADDRESS",
                       cluster_address(LOAD_BALANCER_SERVICE_NAME, self.namespace, RPC_PORT))

    def _node(
        self,
        role: NodeRole,
        identity: str | None,
        service_labels: dict[str, str],
        info_labels: dict[str, str],
        secret_files: dict[str, Path],
        flags: list[str],
        env: list[dict],
        extra_services: tuple[dict, ...] = (),
    ) -> ClusterNode:
        tag = self.deployment_tag
        if tag and not role.is_bootstrap:
            info_labels = {**info_labels, LABEL_DEPLOYMENT_TAG: tag}
        image = self.image_for(role)
        pod_labels = {**info_labels, **service_labels}
        secret = secret_manifest(role.secret_name(tag), self.namespace, secret_files)
        workload = replica_set_manifest(
            name=role.workload_name(tag),
            namespace=self.namespace,
            selector=service_labels,
            pod_labels=pod_labels,
            container_name=role.name(tag),
            image=str(image),
            command=startup_command(role, flags),
            env=[pod_ip_env(), *env],
            secret_name=role.secret_name(tag),
            secret_mount_dir=role.secret_mount_dir,
            requests=resource_requests(role.kind.value),
        )
        service = direct_service_manifest(
            role.service_name(tag), self.namespace, self._selector(role))
        return ClusterNode(
            role=role,
            image=image,
            identity=identity,
            service_labels=service_labels,
            info_labels=info_labels,
            secret=secret,
            workload=workload,
            services=(service, *extra_services),
        )

    def bootstrap_node(self, identity: str) -> ClusterNode:
        """Bootstrap node with its direct Service plus the shared load balancer."""
        role = NodeRole.bootstrap()
        service_labels = {
            LABEL_LOAD_BALANCER: LOAD_BALANCER_SELECTOR,
            **self._selector(role),
        }
        info_labels = {
            LABEL_VALIDATOR_TYPE: "bootstrap",
            LABEL_VALIDATOR_IDENTITY: identity,
        }
        secret_files = {
            FAUCET_FILE: self.config_dir / FAUCET_FILE,
            **{f"{account}.json": self._keyfile(role, account) for account in role.account_types},
        }
        load_balancer = load_balancer_service_manifest(
            LOAD_BALANCER_SERVICE_NAME, self.namespace, {LABEL_LOAD_BALANCER: LOAD_BALANCER_SELECTOR})
        return self._node(role, identity, service_labels, info_labels, secret_files,
                          bootstrap_flags(self.validator_cfg), [],
                          extra_services=(load_balancer,))

    def validator_node(self, index: int, identity: str, facts: ClusterFacts) -> ClusterNode:
        role = NodeRole.validator(index)
        info_labels = {
            LABEL_VALIDATOR_TYPE: "validator",
            LABEL_VALIDATOR_IDENTITY: identity,
        }
        secret_files = {f"{account}.json": self._keyfile(role, account)
                        for account in role.account_types}
        return self._node(role, identity, self._selector(role), info_labels, secret_files,
                          validator_flags(self.validator_cfg, facts), self._bootstrap_env())

    def rpc_node(self, index: int, identity: str, facts: ClusterFacts) -> ClusterNode:
        """RPC node; carries the load-balancer label so the shared LB fronts it."""
        role = NodeRole.rpc_node(index)
        service_labels = {
            **self._selector(role),
            LABEL_LOAD_BALANCER: LOAD_BALANCER_SELECTOR,
        }
        info_labels = {LABEL_RPC_IDENTITY: identity}
        secret_files = {"identity.json": self._keyfile(role, "identity")}
        return self._node(role, identity, service_labels, info_labels, secret_files,
                          rpc_node_flags(self.validator_cfg, facts), self._bootstrap_env())

    def client_node(self, index: int) -> ClusterNode:
        role = NodeRole.client(index)
        info_labels = {LABEL_CLIENT_TYPE: self.client_cfg.client_type}
        secret_files = {FAUCET_FILE: self.config_dir / FAUCET_FILE}
        env = [*self._bootstrap_env(), self._load_balancer_env()]
        return self._node(role, None, self._selector(role), info_labels, secret_files,
                          client_flags(self.client_cfg), env)

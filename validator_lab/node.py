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

"""Node roles, image references, and per-role key material."""

from __future__ import annotations

import re
from dataclasses import dataclass
from enum import Enum
from typing import TYPE_CHECKING

from validator_lab.constants import BOOTSTRAP_SERVICE_NAME

if TYPE_CHECKING:
    from validator_lab.keys import Keypair


class RoleKind(str, Enum):
    """The four node kinds a test cluster is made of."""

    BOOTSTRAP = "bootstrap-validator"
    VALIDATOR = "validator"
    RPC_NODE = "rpc-node"
    CLIENT = "client"

    def __str__(self) -> str:
        return self.value


# ============================================================================
# Per-kind tables
# ============================================================================

ACCOUNT_TYPES: dict[RoleKind, tuple[str, ...]] = {
    RoleKind.BOOTSTRAP: ("identity", "vote", "stake"),
    RoleKind.VALIDATOR: ("identity", "vote", "stake"),
    RoleKind.RPC_NODE: ("identity",),
    RoleKind.CLIENT: (),
}

STARTUP_SCRIPTS: dict[RoleKind, str] = {
    RoleKind.BOOTSTRAP: "bootstrap-startup-script.sh",
    RoleKind.VALIDATOR: "validator-startup-script.sh",
    RoleKind.RPC_NODE: "rpc-node-startup-script.sh",
    RoleKind.CLIENT: "client-startup-script.sh",
}

SECRET_MOUNT_DIRS: dict[RoleKind, str] = {
    RoleKind.BOOTSTRAP: "bootstrap-accounts",
    RoleKind.VALIDATOR: "validator-accounts",
    RoleKind.RPC_NODE: "rpc-node-accounts",
    RoleKind.CLIENT: "client-accounts",
}

_SECRET_NAMES: dict[RoleKind, str] = {
    RoleKind.BOOTSTRAP: "bootstrap-accounts-secret",
    RoleKind.VALIDATOR: "validator-accounts-secret-{name}",
    RoleKind.RPC_NODE: "rpc-node-account-secret-{name}",
    RoleKind.CLIENT: "client-accounts-secret-{name}",
}

_SERVICE_NAMES: dict[RoleKind, str] = {
    RoleKind.BOOTSTRAP: BOOTSTRAP_SERVICE_NAME,
    RoleKind.VALIDATOR: "validator-service-{name}",
    RoleKind.RPC_NODE: "rpc-node-service-{name}",
    RoleKind.CLIENT: "client-service-{name}",
}


# ============================================================================
# Node roles
# ============================================================================

@dataclass(frozen=True)
class NodeRole:
    """One node of the cluster: a role kind plus a zero-based index.

    ``str(role)`` is DNS-label and filesystem safe, e.g. ``validator-3``.
    The bootstrap node is unique and always has index 0.

    Attributes:
        kind: Role kind of the node.
        index: Zero-based index within the kind.
    """

    kind: RoleKind
    index: int = 0

    def __post_init__(self) -> None:
        if self.index < 0:
            raise ValueError(f"Node index must be non-negative, got {self.index}")
        if self.kind is RoleKind.BOOTSTRAP and self.index != 0:
            raise ValueError("There is exactly one bootstrap validator (index 0)")

    @classmethod
    def bootstrap(cls) -> NodeRole:
        return cls(RoleKind.BOOTSTRAP)

    @classmethod
    def validator(cls, index: int) -> NodeRole:
        return cls(RoleKind.VALIDATOR, index)

    @classmethod
    def rpc_node(cls, index: int) -> NodeRole:
        return cls(RoleKind.RPC_NODE, index)

    @classmethod
    def client(cls, index: int) -> NodeRole:
        return cls(RoleKind.CLIENT, index)

    @property
    def is_bootstrap(self) -> bool:
        return self.kind is RoleKind.BOOTSTRAP

    @property
    def account_types(self) -> tuple[str, ...]:
        return ACCOUNT_TYPES[self.kind]

    @property
    def startup_script(self) -> str:
        return STARTUP_SCRIPTS[self.kind]

    @property
    def secret_mount_dir(self) -> str:
        return SECRET_MOUNT_DIRS[self.kind]

    def name(self, tag: str | None = None) -> str:
        """Return the node's Kubernetes name fragment.

        Args:
            tag: Optional deployment tag distinguishing populations added by
                separate invocations. Ignored for the bootstrap node.
        """
        if self.is_bootstrap:
            return self.kind.value
        if tag:
            return f"{self.kind.value}-{tag}-{self.index}"
        return f"{self.kind.value}-{self.index}"

    def secret_name(self, tag: str | None = None) -> str:
        return _SECRET_NAMES[self.kind].format(name=self._suffix(tag))

    def service_name(self, tag: str | None = None) -> str:
        return _SERVICE_NAMES[self.kind].format(name=self._suffix(tag))

    def workload_name(self, tag: str | None = None) -> str:
        return f"{self.name(tag)}-replicaset"

    def _suffix(self, tag: str | None) -> str:
        return f"{tag}-{self.index}" if tag else str(self.index)

    def __str__(self) -> str:
        return self.name()


# ============================================================================
# Image references
# ============================================================================

_CLIENT_NAME_RE = re.compile(r"^client-(\d+)-(.+)$")


@dataclass(frozen=True)
class ImageRef:
    """Container image reference for one node kind (or one client index).

    The canonical form is ``registry/kind[-index]-base_name:tag``. Clients
    carry their index because each client image bakes in its own funded
    accounts file; every other kind shares a single image.

    Attributes:
        registry: Registry host (may include a port and path components).
        kind: Role kind the image runs.
        base_name: Image base name shared across kinds.
        tag: Image tag.
        client_index: Client index, set only for client images.
    """

    registry: str
    kind: RoleKind
    base_name: str
    tag: str
    client_index: int | None = None

    def __post_init__(self) -> None:
        if not self.registry or not self.base_name or not self.tag:
            raise ValueError("Image registry, base name, and tag must be non-empty")
        if (self.kind is RoleKind.CLIENT) != (self.client_index is not None):
            raise ValueError("client_index is required for client images and only for them")

    @classmethod
    def for_role(cls, role: NodeRole, registry: str, base_name: str, tag: str) -> ImageRef:
        """Build the image reference a node of *role* runs."""
        client_index = role.index if role.kind is RoleKind.CLIENT else None
        return cls(registry, role.kind, base_name, tag, client_index)

    @property
    def name(self) -> str:
        if self.client_index is not None:
            return f"{self.kind.value}-{self.client_index}-{self.base_name}"
        return f"{self.kind.value}-{self.base_name}"

    @property
    def repository(self) -> str:
        return f"{self.registry}/{self.name}"

    def __str__(self) -> str:
        return f"{self.repository}:{self.tag}"

    @classmethod
    def parse(cls, value: str) -> ImageRef:
        """Parse the canonical string form back into an ImageRef.

        Raises:
            ValueError: If *value* is not a canonical image reference.
        """
        repository, sep, tag = value.rpartition(":")
        if not sep or "/" in tag:
            raise ValueError(f"Image reference has no tag: {value!r}")
        registry, sep, name = repository.rpartition("/")
        if not sep:
            raise ValueError(f"Image reference has no registry: {value!r}")

        match = _CLIENT_NAME_RE.match(name)
        if match:
            return cls(registry, RoleKind.CLIENT, match.group(2), tag, int(match.group(1)))
        for kind in (RoleKind.BOOTSTRAP, RoleKind.VALIDATOR, RoleKind.RPC_NODE):
            prefix = f"{kind.value}-"
            if name.startswith(prefix) and len(name) > len(prefix):
                return cls(registry, kind, name[len(prefix):], tag)
        raise ValueError(f"Image name does not start with a node kind: {name!r}")


# ============================================================================
# Cluster facts
# ============================================================================

@dataclass(frozen=True)
class ClusterFacts:
    """Facts discovered once genesis exists, shared by every later node.

    Attributes:
        shred_version: Shred version derived from the genesis hash.
        bootstrap_identity: Base58 identity of the bootstrap validator.
        known_validators: Identities non-bootstrap nodes trust.
    """

    shred_version: int
    bootstrap_identity: str
    known_validators: tuple[str, ...] = ()


# ============================================================================
# Key material
# ============================================================================

@dataclass(frozen=True)
class KeyMaterial:
    """Keypairs generated for one node.

    Attributes:
        role: Node the keys belong to.
        identity: Node identity keypair.
        vote: Vote account keypair (bootstrap and validators only).
        stake: Stake account keypair (bootstrap and validators only).
    """

    role: NodeRole
    identity: Keypair
    vote: Keypair | None = None
    stake: Keypair | None = None

    def accounts(self) -> dict[str, Keypair]:
        """Return the populated keypairs keyed by account type."""
        pairs = {"identity": self.identity, "vote": self.vote, "stake": self.stake}
        return {name: kp for name, kp in pairs.items() if kp is not None}

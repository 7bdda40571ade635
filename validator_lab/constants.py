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

"""Constants, resource loading, and resource_value helper."""

from __future__ import annotations

from pathlib import Path
from typing import Any

import yaml

# -- Resolved paths --
PACKAGE_DIR = Path(__file__).resolve().parent
SCRIPTS_DIR = PACKAGE_DIR / "scripts"


def load_resources() -> dict:
    """Load pod resource requests and port definitions from resources.yaml.

    Returns:
        Parsed YAML content as a nested dictionary.
    """
    resources_file = PACKAGE_DIR / "resources.yaml"
    with open(resources_file) as f:
        return yaml.safe_load(f)


RESOURCES = load_resources()


def resource_value(*keys: str, default: Any = None) -> Any:
    """Safely traverse the RESOURCES dict by key path.

    Args:
        *keys: Sequence of dictionary keys to traverse.
        default: Value to return if any key is missing.

    Returns:
        The value at the nested key path, or *default* if not found.
    """
    node = RESOURCES
    for key in keys:
        if not isinstance(node, dict):
            return default
        node = node.get(key)
        if node is None:
            return default
    return node


# -- Node ports --
GOSSIP_PORT = resource_value("ports", "gossip", "port", default=8001)
RPC_PORT = resource_value("ports", "rpc", "port", default=8899)
FAUCET_PORT = resource_value("ports", "faucet", "port", default=9900)

# -- Local layout (relative to the solana root) --
CONFIG_DIR_NAME = "config-k8s"
DOCKER_BUILD_DIR_NAME = "docker-build"
LOCAL_INSTALL_DIR_NAME = "farf"
RELEASE_INSTALL_DIR_NAME = "solana-release"
CARGO_INSTALL_SCRIPT = "scripts/cargo-install-all.sh"
VERSION_FILE_NAME = "version.yml"

# -- Config directory contents --
FAUCET_FILE = "faucet.json"
BOOTSTRAP_DIR_NAME = "bootstrap-validator"
GENESIS_BIN_FILE = "genesis.bin"
CLIENT_ACCOUNTS_FILE = "client-accounts.yml"
BENCH_TPS_FILE_TEMPLATE = "bench-tps-{index}.yml"

# -- Solana binaries --
GENESIS_BINARY = "solana-genesis"
BENCH_TPS_BINARY = "solana-bench-tps"
LEDGER_TOOL_BINARY = "agave-ledger-tool"

# -- Release downloads --
RELEASE_URL_TEMPLATE = (
    "https://github.com/anza-xyz/agave/releases/download/{channel}/"
    "solana-release-x86_64-unknown-linux-gnu.tar.bz2"
)
RELEASE_TARBALL_NAME = "solana-release.tar.bz2"
RELEASE_DOWNLOAD_TIMEOUT_SECONDS = 300
RELEASE_DOWNLOAD_CHUNK_BYTES = 1 << 20

# -- Genesis defaults --
LAMPORTS_PER_SOL = 1_000_000_000
DEFAULT_HASHES_PER_TICK = "auto"
DEFAULT_CLUSTER_TYPE = "development"
CLUSTER_TYPES = ("development", "devnet", "testnet", "mainnet-beta")
DEFAULT_FAUCET_LAMPORTS = 500_000_000_000_000_000
DEFAULT_MAX_GENESIS_ARCHIVE_UNPACKED_SIZE = 1_073_741_824
DEFAULT_BOOTSTRAP_NODE_SOL = 100.0
DEFAULT_BOOTSTRAP_NODE_STAKE_SOL = 10.0
DEFAULT_ENABLE_WARMUP_EPOCHS = True

# -- Validator defaults --
DEFAULT_INTERNAL_NODE_SOL = 10.0
DEFAULT_INTERNAL_NODE_STAKE_SOL = 1.0
DEFAULT_VALIDATOR_COMMISSION = 100

# -- Client defaults --
DEFAULT_CLIENT_LAMPORTS_PER_SIGNATURE = 42
DEFAULT_CLIENT_TO_RUN = "bench-tps"
DEFAULT_CLIENT_TYPE = "tpu-client"
CLIENT_TYPES = ("tpu-client", "rpc-client")
DEFAULT_CLIENT_DURATION_SECONDS = 7500

# -- Docker defaults --
DEFAULT_NAMESPACE = "default"
DEFAULT_IMAGE_NAME = "k8s-cluster-image"
DEFAULT_BASE_IMAGE = "ubuntu:20.04"
DEFAULT_IMAGE_TAG = "latest"
DEFAULT_PUSH_MAX_WORKERS = 5

# -- Container layout --
CONTAINER_HOME = "/home/solana"
CONTAINER_SCRIPTS_DIR = f"{CONTAINER_HOME}/k8s-cluster-scripts"
CONTAINER_LEDGER_DIR = f"{CONTAINER_HOME}/ledger"
CONTAINER_BIN_DIR = f"{CONTAINER_HOME}/.cargo/bin"
CONTAINER_CLIENT_ACCOUNTS_FILE = f"{CONTAINER_HOME}/client-accounts.yml"
CONTAINER_USER_ID = 1000
COMMON_SCRIPT = "common.sh"

# -- Labels --
LABEL_LOAD_BALANCER = "load-balancer/name"
LOAD_BALANCER_SELECTOR = "load-balancer-selector"
LABEL_SERVICE_NAME = "service/name"
BOOTSTRAP_SELECTOR = "bootstrap-validator-selector"
LABEL_VALIDATOR_NAME = "validator/name"
LABEL_VALIDATOR_TYPE = "validator/type"
LABEL_VALIDATOR_IDENTITY = "validator/identity"
LABEL_RPC_NAME = "rpc-node/name"
LABEL_RPC_IDENTITY = "rpc-node/identity"
LABEL_CLIENT_NAME = "client/name"
LABEL_CLIENT_TYPE = "client/type"
LABEL_DEPLOYMENT_TAG = "validator-lab/deployment-tag"

# -- Shared object names --
BOOTSTRAP_SERVICE_NAME = "bootstrap-validator-service"
LOAD_BALANCER_SERVICE_NAME = "bootstrap-and-rpc-node-lb-service"

# -- Kubernetes interaction --
KUBECTL_TIMEOUT_SECONDS = 60
DEFAULT_APPLY_MAX_WORKERS = 8
READINESS_POLL_INTERVAL_SECONDS = 1
DEFAULT_READINESS_TIMEOUT_SECONDS = 1200

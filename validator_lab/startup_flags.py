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

"""Container command lines for each node kind."""

from __future__ import annotations

from validator_lab.config import ClientConfig, ValidatorConfig
from validator_lab.constants import CONTAINER_SCRIPTS_DIR
from validator_lab.node import ClusterFacts, NodeRole

FULL_RPC_FLAGS = ("--enable-rpc-transaction-history", "--enable-extended-tx-metadata-storage")


def _common_flags(cfg: ValidatorConfig) -> list[str]:
    toggles = [
        (cfg.tpu_enable_udp, "--tpu-enable-udp"),
        (cfg.tpu_disable_quic, "--tpu-disable-quic"),
        (cfg.skip_poh_verify, "--skip-poh-verify"),
        (cfg.no_snapshot_fetch, "--no-snapshot-fetch"),
        (cfg.require_tower, "--require-tower"),
    ]
    flags = [flag for enabled, flag in toggles if enabled]
    if cfg.max_ledger_size is not None:
        flags.extend(["--limit-ledger-size", str(cfg.max_ledger_size)])
    return flags


def _cluster_flags(facts: ClusterFacts) -> list[str]:
    flags = ["--expected-shred-version", str(facts.shred_version)]
    for pubkey in facts.known_validators:
        flags.extend(["--known-validator", pubkey])
    return flags


def bootstrap_flags(cfg: ValidatorConfig) -> list[str]:
    # The bootstrap script always serves full RPC with transaction history.
    return _common_flags(cfg)


def validator_flags(cfg: ValidatorConfig, facts: ClusterFacts) -> list[str]:
    return [
        *_common_flags(cfg),
        "--internal-node-stake-sol", f"{cfg.internal_node_stake_sol:g}",
        "--internal-node-sol", f"{cfg.internal_node_sol:g}",
        "--commission", str(cfg.commission),
        *_cluster_flags(facts),
    ]


def rpc_node_flags(cfg: ValidatorConfig, facts: ClusterFacts) -> list[str]:
    flags = _common_flags(cfg)
    if cfg.enable_full_rpc:
        flags.extend(FULL_RPC_FLAGS)
    return [*flags, *_cluster_flags(facts)]


def client_flags(cfg: ClientConfig) -> list[str]:
    """Positional client arguments followed by runtime flags.

    The client startup script takes ``client_to_run``, the bench-tps extra
    arguments as a single word, and the client type positionally.
    """
    flags = [cfg.client_to_run, " ".join(cfg.bench_tps_args), cfg.client_type]
    if cfg.client_delay_start:
        flags.extend(["--delay-start", str(cfg.client_delay_start)])
    if cfg.target_node:
        flags.extend(["--target-node", cfg.target_node])
    flags.extend(["--duration", str(cfg.duration)])
    if cfg.num_nodes is not None:
        flags.extend(["--num-nodes", str(cfg.num_nodes)])
    return flags


def startup_command(role: NodeRole, flags: list[str]) -> list[str]:
    """Return the container command running *role*'s startup script."""
    return [f"{CONTAINER_SCRIPTS_DIR}/{role.startup_script}", *flags]

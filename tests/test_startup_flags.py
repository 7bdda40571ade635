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

"""Tests for per-role container command lines."""

from __future__ import annotations

import re

from validator_lab.config import ClientConfig, ValidatorConfig
from validator_lab.constants import SCRIPTS_DIR
from validator_lab.node import ClusterFacts, NodeRole
from validator_lab.startup_flags import (
    bootstrap_flags,
    client_flags,
    rpc_node_flags,
    startup_command,
    validator_flags,
)

FACTS = ClusterFacts(shred_version=4661, bootstrap_identity="Boot1111", known_validators=("Boot1111",))


def test_bootstrap_flags_only_carry_toggles():
    cfg = ValidatorConfig(tpu_enable_udp=True, max_ledger_size=200_000_000)
    assert bootstrap_flags(cfg) == ["--tpu-enable-udp", "--limit-ledger-size", "200000000"]
    assert bootstrap_flags(ValidatorConfig()) == []


def test_validator_flags_include_stake_and_cluster_facts():
    cfg = ValidatorConfig(internal_node_sol=10, internal_node_stake_sol=1.5, require_tower=True)
    assert validator_flags(cfg, FACTS) == [
        "--require-tower",
        "--internal-node-stake-sol", "1.5",
        "--internal-node-sol", "10",
        "--commission", "100",
        "--expected-shred-version", "4661",
        "--known-validator", "Boot1111",
    ]


def test_full_rpc_expands_to_history_flags():
    flags = rpc_node_flags(ValidatorConfig(enable_full_rpc=True), FACTS)
    assert flags[:2] == ["--enable-rpc-transaction-history", "--enable-extended-tx-metadata-storage"]
    assert "--internal-node-sol" not in flags


def test_client_flags_positional_then_runtime():
    cfg = ClientConfig(bench_tps_args=("--tx-count", "5000"), duration=60, num_nodes=3)
    assert client_flags(cfg) == [
        "bench-tps", "--tx-count 5000", "tpu-client", "--duration", "60", "--num-nodes", "3",
    ]


def test_client_flags_target_node():
    flags = client_flags(ClientConfig(target_node="Node1111"))
    assert flags[1] == ""
    assert flags[3:5] == ["--target-node", "Node1111"]


def test_startup_command_uses_role_script():
    command = startup_command(NodeRole.rpc_node(0), ["--x"])
    assert command == ["/home/solana/k8s-cluster-scripts/rpc-node-startup-script.sh", "--x"]


def test_full_rpc_only_reaches_rpc_nodes():
    cfg = ValidatorConfig(enable_full_rpc=True)
    assert "--enable-rpc-transaction-history" not in bootstrap_flags(cfg)
    assert "--enable-rpc-transaction-history" not in validator_flags(cfg, FACTS)
    assert "--enable-rpc-transaction-history" in rpc_node_flags(cfg, FACTS)


def test_script_defaults_do_not_repeat_caller_flags():
    for script in ("bootstrap-startup-script.sh", "rpc-node-startup-script.sh"):
        text = (SCRIPTS_DIR / script).read_text()
        assert re.search(r"^\s+--", text, re.MULTILINE) is None
        assert "default_arg --full-rpc-api" in text
    assert "default_arg()" in (SCRIPTS_DIR / "common.sh").read_text()


def test_validator_commission():
    assert validator_flags(ValidatorConfig(commission=5), FACTS)[4:6] == ["--commission", "5"]


def test_client_delay_start():
    flags = client_flags(ClientConfig(client_delay_start=30))
    assert flags[3:5] == ["--delay-start", "30"]
    assert "--delay-start" not in client_flags(ClientConfig())

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

"""Tests for the command-line surface."""

from __future__ import annotations

import pytest
from typer.testing import CliRunner

from conftest import GENESIS_HASH, GENESIS_SHRED_VERSION
from validator_lab.cli import app
from validator_lab.commands import deploy_cmd, inspect_cmd
from validator_lab.errors import ConfigurationError

runner = CliRunner()


def test_deploy_requires_a_binary_source():
    result = runner.invoke(app, ["deploy", "cluster", "--registry", "reg"])
    assert isinstance(result.exception, ConfigurationError)
    assert "--local-path or --release-channel" in str(result.exception)


def test_deploy_resolves_configuration(tmp_path, monkeypatch):
    captured = {}

    def fake_run_deploy(cluster_cfg, docker_cfg, genesis_flags, validator_cfg, client_cfg,
                        build_options, seed=None):
        captured.update(locals())

    monkeypatch.setattr(deploy_cmd, "run_deploy", fake_run_deploy)
    result = runner.invoke(app, [
        "deploy", "cluster",
        "--local-path", str(tmp_path),
        "--registry", "gcr.io/proj",
        "--namespace", "lab",
        "--num-validators", "3",
        "--num-clients", "1",
        "--run-client",
        "--commission", "7",
        "--client-delay-start", "30",
        "--readiness-timeout", "0",
        "--slots-per-epoch", "150",
        "--internal-node-stake-sol", "2.5",
        "--bench-tps-args", "tx-count=100 use-durable-nonce",
        "--key-seed", "00" * 32,
    ])

    assert result.exit_code == 0, result.output
    assert captured["cluster_cfg"].namespace == "lab"
    assert captured["cluster_cfg"].num_validators == 3
    assert captured["cluster_cfg"].run_client
    assert captured["cluster_cfg"].readiness_timeout is None
    assert captured["docker_cfg"].registry == "gcr.io/proj"
    assert captured["genesis_flags"].slots_per_epoch == 150
    assert captured["validator_cfg"].internal_node_stake_sol == 2.5
    assert captured["validator_cfg"].commission == 7
    assert captured["client_cfg"].client_delay_start == 30
    assert captured["client_cfg"].bench_tps_args == ("--tx-count", "100", "--use-durable-nonce")
    assert captured["build_options"].solana_root == tmp_path.resolve()
    assert captured["seed"] == bytes(32)


@pytest.mark.parametrize("seed", ["zz" * 32, "00" * 16])
def test_bad_key_seed(seed):
    with pytest.raises(ConfigurationError):
        deploy_cmd.parse_seed(seed)


def test_inspect_shred_version(tmp_path, monkeypatch):
    ledger = tmp_path / "config-k8s" / "bootstrap-validator"
    ledger.mkdir(parents=True)
    (ledger / "genesis.bin").write_bytes(b"genesis")

    class Tools:
        def __init__(self, exec_dir):
            self.exec_dir = exec_dir

        def genesis_hash(self, ledger_dir):
            return GENESIS_HASH

    monkeypatch.setattr(inspect_cmd, "SolanaTools", Tools)
    result = runner.invoke(app, ["inspect", "shred-version", "--solana-root", str(tmp_path)])
    assert result.exit_code == 0
    assert str(GENESIS_SHRED_VERSION) in result.stdout

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

"""Tests for cluster node construction and topology lookups."""

from __future__ import annotations

import dataclasses

import pytest

from validator_lab.config import ClientConfig, ValidatorConfig
from validator_lab.errors import PreconditionError, TopologyError
from validator_lab.genesis import KeyMaterialGenerator
from validator_lab.manifests import ResourceRef
from validator_lab.node import ClusterFacts, NodeRole, RoleKind
from validator_lab.topology import ClusterTopology, TopologyBuilder

FACTS = ClusterFacts(4661, "Boot1111", ("Boot1111",))


@pytest.fixture
def keys(tmp_path):
    keygen = KeyMaterialGenerator.new_run(tmp_path, retain_previous=False)
    keygen.generate_faucet()
    keygen.generate_accounts(RoleKind.BOOTSTRAP, 1)
    keygen.generate_accounts(RoleKind.VALIDATOR, 2)
    keygen.generate_accounts(RoleKind.RPC_NODE, 1)
    return keygen


def _builder(config_dir, tag=None):
    return TopologyBuilder(
        namespace="lab",
        config_dir=config_dir,
        registry="reg",
        image_name="img",
        image_tag="v1",
        validator_cfg=ValidatorConfig(),
        client_cfg=ClientConfig(),
        deployment_tag=tag,
    )


def _env(node):
    container = node.workload["spec"]["template"]["spec"]["containers"][0]
    return {e["name"]: e.get("value") for e in container["env"]}


def test_bootstrap_node(keys, tmp_path):
    node = _builder(tmp_path).bootstrap_node("Boot1111")

    assert node.service_labels == {
        "load-balancer/name": "load-balancer-selector",
        "service/name": "bootstrap-validator-selector",
    }
    assert node.info_labels == {"validator/type": "bootstrap", "validator/identity": "Boot1111"}
    assert sorted(node.secret["data"]) == ["faucet.json", "identity.json", "stake.json", "vote.json"]
    assert [s["metadata"]["name"] for s in node.services] == [
        "bootstrap-validator-service", "bootstrap-and-rpc-node-lb-service",
    ]
    assert node.workload_name == "bootstrap-validator-replicaset"
    assert str(node.image) == "reg/bootstrap-validator-img:v1"
    assert "BOOTSTRAP_RPC_ADDRESS" not in _env(node)


def test_validator_node_env_and_command(keys, tmp_path):
    node = _builder(tmp_path).validator_node(1, "Val1111", FACTS)

    env = _env(node)
    assert env["BOOTSTRAP_RPC_ADDRESS"] == "bootstrap-validator-service.lab.svc.cluster.local:8899"
    assert env["BOOTSTRAP_GOSSIP_ADDRESS"].endswith(":8001")
    assert env["MY_POD_IP"] is None
    command = node.workload["spec"]["template"]["spec"]["containers"][0]["command"]
    assert command[0].endswith("validator-startup-script.sh")
    assert "--expected-shred-version" in command
    assert node.services[0]["spec"]["selector"] == {"validator/name": "validator-1"}


def test_rpc_node_joins_load_balancer(keys, tmp_path):
    node = _builder(tmp_path).rpc_node(0, "Rpc1111", FACTS)
    assert node.service_labels["load-balancer/name"] == "load-balancer-selector"
    assert node.service_labels["rpc-node/name"] == "rpc-node-0"
    assert list(node.secret["data"]) == ["identity.json"]


def test_client_node(keys, tmp_path):
    node = _builder(tmp_path).client_node(0)
    assert node.identity is None
    assert list(node.secret["data"]) == ["faucet.json"]
    assert _env(node)["LOAD_BALANCER_RPC_ADDRESS"] == \
        "bootstrap-and-rpc-node-lb-service.lab.svc.cluster.local:8899"
    assert str(node.image) == "reg/client-0-img:v1"


def test_deployment_tag_names_and_labels(tmp_path):
    keygen = KeyMaterialGenerator.new_run(tmp_path, retain_previous=False, deployment_tag="wave2")
    keygen.generate_accounts(RoleKind.VALIDATOR, 1)

    node = _builder(tmp_path, tag="wave2").validator_node(0, "Val1111", FACTS)
    assert node.workload_name == "validator-wave2-0-replicaset"
    assert node.secret["metadata"]["name"] == "validator-accounts-secret-wave2-0"
    assert node.info_labels["validator-lab/deployment-tag"] == "wave2"
    assert node.all_labels()["validator/name"] == "validator-wave2-0"


def test_missing_keyfile_is_precondition_error(tmp_path):
    with pytest.raises(PreconditionError):
        _builder(tmp_path).validator_node(0, "Val1111", FACTS)


def test_service_labels_win_over_info_labels(keys, tmp_path):
    node = _builder(tmp_path).validator_node(0, "Val1111", FACTS)
    clashing = dataclasses.replace(node, info_labels={"validator/name": "other", "x": "y"})
    assert clashing.all_labels() == {"validator/name": "validator-0", "x": "y"}


def test_topology_lookups(keys, tmp_path):
    builder = _builder(tmp_path)
    topology = ClusterTopology([
        builder.validator_node(1, "Val2", FACTS),
        builder.bootstrap_node("Boot1111"),
        builder.validator_node(0, "Val1", FACTS),
    ])

    assert len(topology) == 3
    assert [n.role for n in topology] == [
        NodeRole.bootstrap(), NodeRole.validator(0), NodeRole.validator(1),
    ]
    assert topology.validator().identity == "Val1"
    assert topology.count(RoleKind.VALIDATOR) == 2
    assert NodeRole.validator(1) in topology

    with pytest.raises(TopologyError, match="No rpc-node nodes are configured"):
        topology.rpc()
    with pytest.raises(TopologyError, match="2 validator node"):
        topology.validator(5)


def test_applied_handles_replace_node(keys, tmp_path):
    node = _builder(tmp_path).validator_node(0, "Val1", FACTS)
    assert not node.deployed
    applied = node.with_secret(ResourceRef("secret", "s")).with_workload(ResourceRef("replicaset.apps", "w"))
    assert applied.deployed
    assert not node.deployed

    topology = ClusterTopology([node])
    topology.add(applied)
    assert topology.validator().deployed
    assert len(topology) == 1

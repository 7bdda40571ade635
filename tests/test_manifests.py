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

"""Tests for Kubernetes manifest builders."""

from __future__ import annotations

import base64

import pytest

from validator_lab.errors import PreconditionError
from validator_lab.manifests import (
    ResourceRef,
    direct_service_manifest,
    load_balancer_service_manifest,
    replica_set_manifest,
    resource_requests,
    secret_manifest,
)


def test_resource_ref_parse():
    ref = ResourceRef.parse("replicaset.apps/validator-0-replicaset\n")
    assert ref == ResourceRef("replicaset.apps", "validator-0-replicaset")
    assert str(ref) == "replicaset.apps/validator-0-replicaset"
    assert ResourceRef.parse("secret/s configured") == ResourceRef("secret", "s")
    with pytest.raises(ValueError):
        ResourceRef.parse("validator-0-replicaset")


def test_secret_holds_file_bytes(tmp_path):
    identity = tmp_path / "identity.json"
    identity.write_bytes(b"[1,2,3]")
    secret = secret_manifest("validator-accounts-secret-0", "lab", {"identity.json": identity})
    assert secret["kind"] == "Secret"
    assert secret["metadata"] == {"name": "validator-accounts-secret-0", "namespace": "lab"}
    assert base64.b64decode(secret["data"]["identity.json"]) == b"[1,2,3]"


def test_secret_requires_files(tmp_path):
    with pytest.raises(PreconditionError) as exc:
        secret_manifest("s", "lab", {"vote.json": tmp_path / "vote.json"})
    assert exc.value.path == tmp_path / "vote.json"


def test_replica_set_shape():
    manifest = replica_set_manifest(
        name="validator-0-replicaset",
        namespace="lab",
        selector={"validator/name": "validator-0"},
        pod_labels={"validator/name": "validator-0", "validator/type": "validator"},
        container_name="validator-0",
        image="reg/validator-img:v1",
        command=["/start.sh"],
        env=[{"name": "A", "value": "1"}],
        secret_name="validator-accounts-secret-0",
        secret_mount_dir="validator-accounts",
        requests=resource_requests("validator"),
    )
    spec = manifest["spec"]
    assert spec["replicas"] == 1
    assert spec["selector"]["matchLabels"] == {"validator/name": "validator-0"}
    pod = spec["template"]["spec"]
    container = pod["containers"][0]
    assert container["imagePullPolicy"] == "Always"
    assert container["volumeMounts"][0]["mountPath"] == "/home/solana/validator-accounts"
    assert container["resources"]["requests"] == {"cpu": "2", "memory": "4Gi"}
    assert pod["volumes"][0]["secret"]["secretName"] == "validator-accounts-secret-0"
    assert pod["securityContext"]["runAsUser"] == 1000


def test_direct_service_is_headless_with_all_ports():
    service = direct_service_manifest("validator-service-0", "lab", {"validator/name": "validator-0"})
    assert service["spec"]["clusterIP"] == "None"
    names = [p["name"] for p in service["spec"]["ports"]]
    assert names == ["gossip-tcp", "gossip-udp", "rpc-tcp", "rpc-pubsub-tcp", "faucet-tcp"]


def test_load_balancer_exposes_subset():
    service = load_balancer_service_manifest("lb", "lab", {"load-balancer/name": "x"})
    assert service["spec"]["type"] == "LoadBalancer"
    ports = {p["name"]: p["port"] for p in service["spec"]["ports"]}
    assert ports == {"gossip-tcp": 8001, "gossip-udp": 8001, "rpc-tcp": 8899, "rpc-pubsub-tcp": 8900}

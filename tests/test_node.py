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

"""Tests for node roles, object naming, and image references."""

from __future__ import annotations

import pytest

from validator_lab.node import ImageRef, KeyMaterial, NodeRole, RoleKind
from validator_lab.keys import Keypair


def test_bootstrap_is_unique():
    assert NodeRole.bootstrap() == NodeRole(RoleKind.BOOTSTRAP, 0)
    with pytest.raises(ValueError):
        NodeRole(RoleKind.BOOTSTRAP, 1)
    with pytest.raises(ValueError):
        NodeRole.validator(-1)


def test_names_are_dns_safe_and_tagged():
    role = NodeRole.validator(3)
    assert str(role) == "validator-3"
    assert role.name("wave2") == "validator-wave2-3"
    assert role.workload_name() == "validator-3-replicaset"
    assert role.secret_name("wave2") == "validator-accounts-secret-wave2-3"
    assert role.service_name() == "validator-service-3"


def test_bootstrap_names_ignore_tag():
    role = NodeRole.bootstrap()
    assert role.name("wave2") == "bootstrap-validator"
    assert role.workload_name("wave2") == "bootstrap-validator-replicaset"
    assert role.secret_name() == "bootstrap-accounts-secret"
    assert role.service_name() == "bootstrap-validator-service"


def test_per_kind_tables():
    assert NodeRole.rpc_node(0).account_types == ("identity",)
    assert NodeRole.client(0).account_types == ()
    assert NodeRole.bootstrap().startup_script == "bootstrap-startup-script.sh"
    assert NodeRole.rpc_node(1).secret_name() == "rpc-node-account-secret-1"
    assert NodeRole.client(2).secret_mount_dir == "client-accounts"


def test_image_ref_canonical_form():
    ref = ImageRef.for_role(NodeRole.validator(4), "gcr.io/proj", "k8s-cluster-image", "v1")
    assert str(ref) == "gcr.io/proj/validator-k8s-cluster-image:v1"
    assert ref.client_index is None

    client = ImageRef.for_role(NodeRole.client(2), "gcr.io/proj", "k8s-cluster-image", "v1")
    assert client.repository == "gcr.io/proj/client-2-k8s-cluster-image"


def test_client_images_are_distinct_per_index():
    refs = {str(ImageRef.for_role(NodeRole.client(i), "reg", "img", "v1")) for i in range(4)}
    assert len(refs) == 4
    shared = {str(ImageRef.for_role(NodeRole.validator(i), "reg", "img", "v1")) for i in range(4)}
    assert len(shared) == 1


def test_image_ref_parse_handles_registry_port():
    ref = ImageRef.parse("localhost:5000/team/rpc-node-img:latest")
    assert ref == ImageRef("localhost:5000/team", RoleKind.RPC_NODE, "img", "latest")

    client = ImageRef.parse("reg/client-11-img:v2")
    assert client.client_index == 11
    assert ImageRef.parse(str(client)) == client


@pytest.mark.parametrize("value", [
    "reg/validator-img",
    "validator-img:v1",
    "reg/mystery-img:v1",
    "localhost:5000/validator-img",
])
def test_image_ref_parse_rejects_non_canonical(value):
    with pytest.raises(ValueError):
        ImageRef.parse(value)


def test_image_ref_client_index_only_for_clients():
    with pytest.raises(ValueError):
        ImageRef("reg", RoleKind.CLIENT, "img", "v1")
    with pytest.raises(ValueError):
        ImageRef("reg", RoleKind.VALIDATOR, "img", "v1", client_index=0)
    with pytest.raises(ValueError):
        ImageRef("", RoleKind.VALIDATOR, "img", "v1")


def test_key_material_accounts_skips_missing():
    identity = Keypair.generate()
    material = KeyMaterial(NodeRole.rpc_node(0), identity)
    assert material.accounts() == {"identity": identity}

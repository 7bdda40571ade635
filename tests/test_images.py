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

"""Tests for per-role image builds and concurrent pushes."""

from __future__ import annotations

from pathlib import Path

import docker
import pytest

from conftest import FakeBuildService
from validator_lab.errors import BuildError, PreconditionError, PushError
from validator_lab.images import DockerBuildService, ImagePipeline
from validator_lab.node import ImageRef, NodeRole


def _ref(role: NodeRole) -> ImageRef:
    return ImageRef.for_role(role, "reg", "img", "v1")


@pytest.fixture
def solana_root(tmp_path) -> Path:
    config = tmp_path / "config-k8s"
    (config / "bootstrap-validator").mkdir(parents=True)
    (config / "bench-tps-0.yml").write_text("---\n")
    return tmp_path


def test_bootstrap_dockerfile_copies_ledger(solana_root):
    pipeline = ImagePipeline(FakeBuildService(), solana_root, "farf", "ubuntu:20.04")
    text = pipeline.dockerfile(NodeRole.bootstrap())
    assert text.startswith("FROM ubuntu:20.04\n")
    assert "COPY --chown=solana:solana ./config-k8s/bootstrap-validator /home/solana/ledger" in text
    assert "COPY ./farf/bin/ /home/solana/.cargo/bin/" in text
    assert "client-accounts.yml" not in text


def test_client_dockerfile_copies_its_accounts(solana_root):
    pipeline = ImagePipeline(FakeBuildService(), solana_root, "solana-release", "ubuntu:22.04")
    text = pipeline.dockerfile(NodeRole.client(0))
    assert "./config-k8s/bench-tps-0.yml /home/solana/client-accounts.yml" in text
    assert "./docker-build/client-0/scripts" in text
    assert "/home/solana/ledger" not in text


def test_build_writes_context(solana_root):
    service = FakeBuildService()
    pipeline = ImagePipeline(service, solana_root, "farf", "ubuntu:20.04")
    pipeline.build(NodeRole.validator(0), _ref(NodeRole.validator(0)))

    scratch = solana_root / "docker-build" / "validator"
    assert (scratch / "Dockerfile").is_file()
    assert (scratch / "scripts" / "validator-startup-script.sh").is_file()
    assert (scratch / "scripts" / "common.sh").is_file()
    assert service.builds == [
        ("reg/validator-img:v1", solana_root, Path("docker-build/validator/Dockerfile")),
    ]


def test_missing_client_accounts_is_precondition(solana_root):
    pipeline = ImagePipeline(FakeBuildService(), solana_root, "farf", "ubuntu:20.04")
    with pytest.raises(PreconditionError) as exc:
        pipeline.build(NodeRole.client(1), _ref(NodeRole.client(1)))
    assert exc.value.node == NodeRole.client(1)


def test_build_failure_carries_role(solana_root):
    class FailingService(FakeBuildService):
        def build(self, image_ref, context_dir, dockerfile):
            raise BuildError(f"Failed to build {image_ref}", detail="no space left on device")

    pipeline = ImagePipeline(FailingService(), solana_root, "farf", "ubuntu:20.04")
    with pytest.raises(BuildError) as exc:
        pipeline.build(NodeRole.rpc_node(0), _ref(NodeRole.rpc_node(0)))
    assert str(exc.value).startswith("[rpc-node-0]")


def test_push_all(solana_root):
    service = FakeBuildService()
    refs = [_ref(NodeRole.bootstrap()), _ref(NodeRole.validator(0)), _ref(NodeRole.client(0))]
    ImagePipeline(service, solana_root, "farf", "ubuntu:20.04", push_workers=2).push_all(refs)
    assert sorted(service.pushes) == sorted(str(r) for r in refs)


def test_push_failure_fails_phase(solana_root):
    service = FakeBuildService(fail_push="reg/validator-img:v1")
    refs = [_ref(NodeRole.validator(0)), _ref(NodeRole.rpc_node(0))]
    with pytest.raises(PushError, match="denied"):
        ImagePipeline(service, solana_root, "farf", "ubuntu:20.04").push_all(refs)


class FakeImages:
    def __init__(self, push_lines=(), build_error=None):
        self.push_lines = list(push_lines)
        self.build_error = build_error
        self.built = []

    def build(self, **kwargs):
        if self.build_error is not None:
            raise self.build_error
        self.built.append(kwargs)

    def push(self, repository, tag, stream, decode):
        return iter(self.push_lines)


class FakeDockerClient:
    def __init__(self, images):
        self.images = images
        self.closed = False

    def close(self):
        self.closed = True


def test_docker_service_build_and_close(tmp_path):
    images = FakeImages()
    client = FakeDockerClient(images)
    service = DockerBuildService(client)
    service.build(_ref(NodeRole.validator(0)), tmp_path, Path("docker-build/validator/Dockerfile"))
    service.close()

    assert images.built[0]["tag"] == "reg/validator-img:v1"
    assert images.built[0]["rm"] is True
    assert client.closed


def test_docker_service_build_log_in_error(tmp_path):
    error = docker.errors.BuildError("build failed", [{"stream": "Step 1/9\n"}, {"error": "bad\n"}])
    service = DockerBuildService(FakeDockerClient(FakeImages(build_error=error)))
    with pytest.raises(BuildError) as exc:
        service.build(_ref(NodeRole.validator(0)), tmp_path, Path("Dockerfile"))
    assert "Step 1/9" in exc.value.detail
    assert "bad" in exc.value.detail


def test_docker_service_push_error_line():
    lines = [{"status": "Preparing"}, {"error": "unauthorized: authentication required"}]
    service = DockerBuildService(FakeDockerClient(FakeImages(push_lines=lines)))
    with pytest.raises(PushError, match="unauthorized"):
        service.push(_ref(NodeRole.validator(0)))

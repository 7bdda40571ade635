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

"""Shared test doubles for the cluster API, image builds, and solana binaries."""

from __future__ import annotations

import threading
from dataclasses import dataclass
from pathlib import Path

import base58
import pytest

from validator_lab.constants import GENESIS_BIN_FILE
from validator_lab.errors import ApplyError, PushError
from validator_lab.kubernetes import WorkloadStatus
from validator_lab.manifests import ResourceRef, object_kind, object_name
from validator_lab.release import BuildArtifacts

# Folds to shred version 0x1234 + 1.
GENESIS_HASH_BYTES = bytes([0x12, 0x34]) + bytes(30)
GENESIS_HASH = base58.b58encode(GENESIS_HASH_BYTES).decode("ascii")
GENESIS_SHRED_VERSION = 0x1235


# --------- Test doubles ----------

@dataclass
class Call:
    op: str
    name: str


class FakeClusterApi:
    """Records applies in order; workload status is scripted per name."""

    def __init__(self, namespace_ok: bool = True, fail_on: str | None = None):
        self.namespace_ok = namespace_ok
        self.fail_on = fail_on
        self.calls: list[Call] = []
        self.status_calls: list[str] = []
        self.statuses: dict[str, WorkloadStatus] = {}
        self._lock = threading.Lock()

    def namespace_exists(self) -> bool:
        return self.namespace_ok

    def _apply(self, op: str, manifest: dict) -> ResourceRef:
        name = object_name(manifest)
        with self._lock:
            self.calls.append(Call(op, name))
        if name == self.fail_on:
            raise ApplyError(f"Failed to apply {name}", detail="admission webhook denied")
        return ResourceRef(object_kind(manifest).lower(), name)

    def apply_secret(self, manifest: dict) -> ResourceRef:
        return self._apply("secret", manifest)

    def apply_workload(self, manifest: dict) -> ResourceRef:
        return self._apply("workload", manifest)

    def apply_service(self, manifest: dict) -> ResourceRef:
        return self._apply("service", manifest)

    def get_workload_status(self, name: str) -> WorkloadStatus:
        with self._lock:
            self.status_calls.append(name)
        return self.statuses.get(name, WorkloadStatus(desired=1, available=1))

    def names(self, op: str) -> list[str]:
        return [c.name for c in self.calls if c.op == op]


class FakeBuildService:
    def __init__(self, fail_push: str | None = None):
        self.fail_push = fail_push
        self.builds: list[tuple[str, Path, Path]] = []
        self.pushes: list[str] = []
        self._lock = threading.Lock()

    def build(self, image_ref, context_dir, dockerfile):
        self.builds.append((str(image_ref), context_dir, dockerfile))

    def push(self, image_ref):
        if str(image_ref) == self.fail_push:
            raise PushError(f"Failed to push {image_ref}", detail="denied: requested access")
        with self._lock:
            self.pushes.append(str(image_ref))


class FakeSolanaTools:
    """Stands in for solana-genesis, solana-bench-tps, and the ledger tool."""

    def __init__(self, exec_dir: Path, genesis_hash: str = GENESIS_HASH):
        self.exec_dir = exec_dir
        self.hash = genesis_hash
        self.genesis_calls: list[list[str]] = []
        self.bench_tps_calls: list[list[str]] = []
        self._lock = threading.Lock()

    def genesis(self, args: list[str]) -> str:
        self.genesis_calls.append(list(args))
        ledger = Path(args[args.index("--ledger") + 1])
        ledger.mkdir(parents=True, exist_ok=True)
        (ledger / GENESIS_BIN_FILE).write_bytes(b"genesis")
        return ""

    def bench_tps(self, args: list[str]) -> str:
        with self._lock:
            self.bench_tps_calls.append(list(args))
        path = Path(args[args.index("--write-client-keys") + 1])
        index = path.stem.rsplit("-", 1)[-1]
        path.write_text(f"---\nclient{index}a: 1000\nclient{index}b: 1000\n")
        return ""

    def genesis_hash(self, ledger_dir: Path) -> str:
        return self.hash


class FakeBuildConfig:
    """BinarySource that just lays out an empty install directory."""

    install_dir_name = "farf"

    def __init__(self, solana_root: Path):
        self.solana_root = solana_root
        self.prepared = 0

    def prepare(self) -> BuildArtifacts:
        self.prepared += 1
        artifacts = BuildArtifacts(self.solana_root / self.install_dir_name)
        artifacts.exec_dir.mkdir(parents=True, exist_ok=True)
        return artifacts


@pytest.fixture(autouse=True)
def _isolate_env(monkeypatch):
    for name in ("VLAB_NAMESPACE", "VLAB_REGISTRY", "VLAB_NUM_VALIDATORS",
                 "VLAB_NUM_RPC_NODES", "VLAB_NUM_CLIENTS", "VLAB_READINESS_TIMEOUT"):
        monkeypatch.delenv(name, raising=False)


@pytest.fixture
def api():
    return FakeClusterApi()


@pytest.fixture
def build_service():
    return FakeBuildService()

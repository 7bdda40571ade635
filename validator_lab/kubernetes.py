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

"""Cluster API used by the orchestrator, and its kubectl implementation."""

from __future__ import annotations

import json
from dataclasses import dataclass
from typing import Protocol

import sh
import yaml

from validator_lab import logger
from validator_lab.constants import KUBECTL_TIMEOUT_SECONDS
from validator_lab.errors import ApplyError
from validator_lab.manifests import ResourceRef, object_kind, object_name
from validator_lab.utils import error_output, run_kubectl


@dataclass(frozen=True)
class WorkloadStatus:
    """Replica counts of one ReplicaSet."""

    desired: int
    available: int

    @property
    def ready(self) -> bool:
        return self.available >= self.desired

    @classmethod
    def from_replica_set(cls, replica_set: dict) -> WorkloadStatus:
        """Read counts from a ReplicaSet body; missing fields mean 1 desired, 0 available."""
        spec = replica_set.get("spec") or {}
        status = replica_set.get("status") or {}
        desired = spec.get("replicas")
        available = status.get("availableReplicas")
        return cls(
            desired=1 if desired is None else int(desired),
            available=0 if available is None else int(available),
        )


class ClusterApi(Protocol):
    """Operations the orchestrator needs from Kubernetes."""

    def namespace_exists(self) -> bool: ...

    def apply_secret(self, manifest: dict) -> ResourceRef: ...

    def apply_workload(self, manifest: dict) -> ResourceRef: ...

    def apply_service(self, manifest: dict) -> ResourceRef: ...

    def get_workload_status(self, name: str) -> WorkloadStatus: ...


class KubectlClusterApi:
    """ClusterApi backed by the kubectl CLI and the current kube context.

    Objects are created with ``kubectl apply`` so re-running a stage against
    existing objects updates them in place.
    """

    def __init__(self, namespace: str, timeout: int = KUBECTL_TIMEOUT_SECONDS) -> None:
        self.namespace = namespace
        self.timeout = timeout

    def namespace_exists(self) -> bool:
        ok, _, stderr = run_kubectl(
            ["get", "namespace", self.namespace, "-o", "name"], timeout=self.timeout)
        if ok:
            return True
        if "NotFound" in stderr:
            return False
        raise ApplyError(f"Failed to look up namespace '{self.namespace}'", detail=stderr)

    def _apply(self, manifest: dict) -> ResourceRef:
        kind, name = object_kind(manifest), object_name(manifest)
        try:
            output = sh.kubectl(
                "apply", "-n", self.namespace, "-f", "-", "-o", "name",
                _in=yaml.safe_dump(manifest, default_flow_style=False),
                _timeout=self.timeout,
            )
        except sh.ErrorReturnCode as err:
            raise ApplyError(f"Failed to apply {kind} {name}", detail=error_output(err)) from err
        except sh.TimeoutException as err:
            raise ApplyError(f"Timed out applying {kind} {name}") from err
        text = str(output).strip()
        if not text:
            return ResourceRef(kind.lower(), name)
        logger.info("Applied %s", text)
        return ResourceRef.parse(text.splitlines()[-1])

    def apply_secret(self, manifest: dict) -> ResourceRef:
        return self._apply(manifest)

    def apply_workload(self, manifest: dict) -> ResourceRef:
        return self._apply(manifest)

    def apply_service(self, manifest: dict) -> ResourceRef:
        return self._apply(manifest)

    def get_workload_status(self, name: str) -> WorkloadStatus:
        ok, stdout, stderr = run_kubectl(
            ["get", "replicaset", name, "-n", self.namespace, "-o", "json"], timeout=self.timeout)
        if not ok:
            raise ApplyError(f"Failed to read status of replicaset {name}", detail=stderr)
        try:
            body = json.loads(stdout)
        except json.JSONDecodeError as err:
            raise ApplyError(f"Unreadable status for replicaset {name}", detail=stdout) from err
        return WorkloadStatus.from_replica_set(body)

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

"""Kubernetes manifest builders for node secrets, workloads, and services."""

from __future__ import annotations

import base64
from dataclasses import dataclass
from pathlib import Path

from validator_lab.constants import CONTAINER_HOME, CONTAINER_USER_ID, resource_value
from validator_lab.errors import PreconditionError


@dataclass(frozen=True)
class ResourceRef:
    """Handle to an applied Kubernetes object, as printed by ``kubectl -o name``."""

    kind: str
    name: str

    @classmethod
    def parse(cls, value: str) -> ResourceRef:
        words = value.split()
        kind, sep, name = (words[0] if words else "").partition("/")
        if not sep or not name:
            raise ValueError(f"Not a kind/name reference: {value!r}")
        return cls(kind, name)

    def __str__(self) -> str:
        return f"{self.kind}/{self.name}"


def object_name(manifest: dict) -> str:
    return manifest["metadata"]["name"]


def object_kind(manifest: dict) -> str:
    return manifest["kind"]


# ============================================================================
# Secrets
# ============================================================================

def secret_manifest(name: str, namespace: str, files: dict[str, Path]) -> dict:
    """Build an Opaque Secret holding the contents of *files*.

    Args:
        name: Secret name.
        namespace: Target namespace.
        files: Mapping of secret key to the file whose bytes it holds.

    Returns:
        Kubernetes Secret resource as a dictionary.

    Raises:
        PreconditionError: If any file is missing.
    """
    data: dict[str, str] = {}
    for key, path in files.items():
        if not path.is_file():
            raise PreconditionError(f"Secret {name} needs {path}, which does not exist", path)
        data[key] = base64.b64encode(path.read_bytes()).decode("ascii")
    return {
        "apiVersion": "v1",
        "kind": "Secret",
        "metadata": {"name": name, "namespace": namespace},
        "type": "Opaque",
        "data": data,
    }


# ============================================================================
# Workloads
# ============================================================================

def pod_ip_env() -> dict:
    return {"name": "MY_POD_IP", "valueFrom": {"fieldRef": {"fieldPath": "status.podIP"}}}


def env_var(name: str, value: str) -> dict:
    return {"name": name, "value": value}


def resource_requests(kind: str) -> dict[str, str]:
    """Pod resource requests for a node kind, from resources.yaml."""
    requests = resource_value("requests", kind, default={})
    return {key: str(value) for key, value in requests.items()}


def replica_set_manifest(
    name: str,
    namespace: str,
    selector: dict[str, str],
    pod_labels: dict[str, str],
    container_name: str,
    image: str,
    command: list[str],
    env: list[dict],
    secret_name: str,
    secret_mount_dir: str,
    requests: dict[str, str],
) -> dict:
    """Build a single-replica ReplicaSet running one node.

    Args:
        name: ReplicaSet name.
        namespace: Target namespace.
        selector: Labels the ReplicaSet selects its pod by (subset of pod_labels).
        pod_labels: Full pod template labels.
        container_name: Name of the single container.
        image: Container image reference.
        command: Container command.
        env: Container environment entries.
        secret_name: Secret mounted into the container.
        secret_mount_dir: Directory under the container home the secret is mounted at.
        requests: Container resource requests.

    Returns:
        Kubernetes ReplicaSet resource as a dictionary.
    """
    container = {
        "name": container_name,
        "image": image,
        "imagePullPolicy": "Always",
        "command": command,
        "env": env,
        "volumeMounts": [{
            "name": "accounts",
            "mountPath": f"{CONTAINER_HOME}/{secret_mount_dir}",
            "readOnly": True,
        }],
        "resources": {"requests": requests},
    }
    return {
        "apiVersion": "apps/v1",
        "kind": "ReplicaSet",
        "metadata": {"name": name, "namespace": namespace, "labels": dict(pod_labels)},
        "spec": {
            "replicas": 1,
            "selector": {"matchLabels": dict(selector)},
            "template": {
                "metadata": {"labels": dict(pod_labels)},
                "spec": {
                    "containers": [container],
                    "volumes": [{"name": "accounts", "secret": {"secretName": secret_name}}],
                    "securityContext": {
                        "runAsUser": CONTAINER_USER_ID,
                        "runAsGroup": CONTAINER_USER_ID,
                    },
                },
            },
        },
    }


# ============================================================================
# Services
# ============================================================================

def service_ports(names: list[str] | None = None) -> list[dict]:
    """Expand port definitions from resources.yaml into Service ports.

    Args:
        names: Port names to include, or None for every defined port.
    """
    defined = resource_value("ports", default={})
    ports: list[dict] = []
    for port_name, spec in defined.items():
        if names is not None and port_name not in names:
            continue
        for protocol in spec.get("protocols", ["TCP"]):
            ports.append({
                "name": f"{port_name}-{protocol.lower()}",
                "port": spec["port"],
                "targetPort": spec["port"],
                "protocol": protocol,
            })
    return ports


def direct_service_manifest(name: str, namespace: str, selector: dict[str, str]) -> dict:
    """Build a headless Service addressing exactly one node's pod."""
    return {
        "apiVersion": "v1",
        "kind": "Service",
        "metadata": {"name": name, "namespace": namespace},
        "spec": {
            "clusterIP": "None",
            "selector": dict(selector),
            "ports": service_ports(),
        },
    }


def load_balancer_service_manifest(name: str, namespace: str, selector: dict[str, str]) -> dict:
    """Build the shared LoadBalancer Service fronting bootstrap and RPC nodes."""
    return {
        "apiVersion": "v1",
        "kind": "Service",
        "metadata": {"name": name, "namespace": namespace},
        "spec": {
            "type": "LoadBalancer",
            "selector": dict(selector),
            "ports": service_ports(resource_value("load_balancer_ports", default=None)),
        },
    }

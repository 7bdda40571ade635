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

"""Error hierarchy shared by every deployment stage.

All errors derive from :class:`LabError` (itself a ``RuntimeError``) so the CLI
can report any of them uniformly. Errors raised while a specific node is being
processed carry that node's role in :attr:`LabError.node`.
"""

from __future__ import annotations

from pathlib import Path
from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from validator_lab.node import NodeRole


class LabError(RuntimeError):
    """Base class for all validator-lab failures.

    Attributes:
        node: Role of the node being processed when the error was raised, if any.
    """

    def __init__(self, message: str, node: NodeRole | None = None) -> None:
        super().__init__(message)
        self.message = message
        self.node = node

    def annotate(self, node: NodeRole) -> LabError:
        """Attach *node* unless a more specific node is already recorded."""
        if self.node is None:
            self.node = node
        return self

    def __str__(self) -> str:
        if self.node is None:
            return self.message
        return f"[{self.node}] {self.message}"


# ============================================================================
# Configuration and precondition errors
# ============================================================================

class ConfigurationError(LabError):
    """Invalid flag combination or missing required setting."""


class InvalidRoleError(ConfigurationError):
    """An operation was requested for a role kind that does not support it."""


class PreconditionError(LabError):
    """A required file or tool is absent.

    Attributes:
        path: The missing path (or command name).
    """

    def __init__(self, message: str, path: Path | str, node: NodeRole | None = None) -> None:
        super().__init__(message, node)
        self.path = path


class LedgerNotFoundError(PreconditionError):
    """The ledger directory does not exist, so no shred version can be derived."""


class TopologyError(LabError):
    """Lookup of a node role that has no configured instance."""


class KeyMaterialError(LabError):
    """Keypair files could not be written or read."""


# ============================================================================
# External call errors
# ============================================================================

class ExternalCallError(LabError):
    """An external tool or API rejected a request.

    Attributes:
        detail: stderr or response body from the external call, verbatim.
    """

    def __init__(self, message: str, detail: str = "", node: NodeRole | None = None) -> None:
        super().__init__(message, node)
        self.detail = detail

    def __str__(self) -> str:
        base = super().__str__()
        if not self.detail:
            return base
        return f"{base}\n{self.detail.rstrip()}"


class BuildError(ExternalCallError):
    """Container image or validator binary build failed."""


class PushError(ExternalCallError):
    """Container image push failed."""


class ApplyError(ExternalCallError):
    """A Kubernetes apply or query was rejected."""


class GenesisError(ExternalCallError):
    """The genesis binary failed."""


class ToolError(ExternalCallError):
    """A helper binary (bench-tps, ledger tool, git) failed."""


class ReadinessTimeoutError(LabError):
    """A workload was accepted but did not become ready before the deadline."""

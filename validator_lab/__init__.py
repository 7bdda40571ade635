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

"""validator_lab - multi-role validator test cluster deployment on Kubernetes."""

from __future__ import annotations

import io
import logging
import threading
from collections.abc import Iterator
from contextlib import contextmanager

from rich.console import Console


class ThreadAwareConsole:
    """Console proxy that writes to a per-thread capture console when one is set.

    Per-node apply tasks and client funding run on worker threads. Each task
    captures its output with :meth:`capture` so that a node's lines print as
    one block. rich objects that hold on to a console (``Progress``,
    ``Live``) should be handed :attr:`active` rather than the proxy.
    """

    def __init__(self, real_console: Console) -> None:
        object.__setattr__(self, "_real", real_console)
        object.__setattr__(self, "_local", threading.local())

    @property
    def active(self) -> Console:
        """The console output goes to on the calling thread."""
        return getattr(self._local, "console", self._real)

    def __getattr__(self, name: str):
        return getattr(self.active, name)

    def __enter__(self) -> Console:
        return self.active.__enter__()

    def __exit__(self, exc_type, exc_value, traceback) -> None:
        self.active.__exit__(exc_type, exc_value, traceback)

    @contextmanager
    def capture(self) -> Iterator[io.StringIO]:
        """Send the calling thread's output to a StringIO until the block exits."""
        buf = io.StringIO()
        self._local.console = Console(
            file=buf, force_terminal=False, width=self._real.width, highlight=False)
        try:
            yield buf
        finally:
            del self._local.console


console = ThreadAwareConsole(Console(stderr=True))
logger = logging.getLogger("validator_lab")

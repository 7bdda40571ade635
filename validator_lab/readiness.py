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

"""Blocking waits for workloads to reach their desired replica count."""

from __future__ import annotations

import time
from collections.abc import Callable, Sequence

from tenacity import RetryError, Retrying, retry_if_result, stop_after_delay, stop_never, wait_fixed

from validator_lab import console, logger
from validator_lab.constants import DEFAULT_READINESS_TIMEOUT_SECONDS, READINESS_POLL_INTERVAL_SECONDS
from validator_lab.errors import ReadinessTimeoutError
from validator_lab.kubernetes import ClusterApi


class ReadinessGate:
    """Polls workload status at a fixed interval until a workload is ready.

    A workload is ready once ``available >= desired``. Errors from the
    cluster API while polling propagate immediately; running out of time
    raises :class:`ReadinessTimeoutError`.

    Attributes:
        poll_interval: Seconds between polls.
        timeout: Seconds before giving up, or None to wait indefinitely.
    """

    def __init__(
        self,
        api: ClusterApi,
        poll_interval: float = READINESS_POLL_INTERVAL_SECONDS,
        timeout: float | None = DEFAULT_READINESS_TIMEOUT_SECONDS,
        sleep: Callable[[float], None] = time.sleep,
    ) -> None:
        self._api = api
        self.poll_interval = poll_interval
        self.timeout = timeout
        self._sleep = sleep

    def wait_ready(self, name: str) -> None:
        """Block until the workload *name* is ready."""
        self.wait_any_ready([name])

    def wait_any_ready(self, names: Sequence[str]) -> str:
        """Block until at least one of *names* is ready.

        Args:
            names: Workload names, checked in order on every poll.

        Returns:
            The first name found ready.

        Raises:
            ValueError: If *names* is empty.
            ReadinessTimeoutError: If none is ready before the timeout.
        """
        if not names:
            raise ValueError("wait_any_ready needs at least one workload name")

        def _check() -> str | None:
            for name in names:
                status = self._api.get_workload_status(name)
                if status.ready:
                    return name
                logger.debug("%s: %d/%d replicas available", name, status.available, status.desired)
            return None

        label = names[0] if len(names) == 1 else f"any of {', '.join(names)}"
        console.print(f"[yellow]\u2139\ufe0f  Waiting for {label} to become ready...[/yellow]")
        retrying = Retrying(
            stop=stop_never if self.timeout is None else stop_after_delay(self.timeout),
            wait=wait_fixed(self.poll_interval),
            retry=retry_if_result(lambda ready: ready is None),
            sleep=self._sleep,
        )
        try:
            ready = retrying(_check)
        except RetryError as err:
            raise ReadinessTimeoutError(
                f"{label} not ready after {self.timeout:g}s") from err
        console.print(f"[green]\u2705 {ready} is ready[/green]")
        return ready

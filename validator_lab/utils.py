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

"""Utility functions for kubectl, command checks, and bounded fan-out."""

from __future__ import annotations

import subprocess
import threading
from collections.abc import Callable, Mapping
from concurrent.futures import FIRST_EXCEPTION, ThreadPoolExecutor, wait
from typing import TypeVar

import sh

from validator_lab import console
from validator_lab.errors import PreconditionError

T = TypeVar("T")


def require_command(cmd: str) -> None:
    """Check if a command exists on the system PATH.

    Args:
        cmd: Name of the CLI command to check.

    Raises:
        PreconditionError: If the command is not found.
    """
    try:
        sh.which(cmd)
    except sh.ErrorReturnCode as err:
        raise PreconditionError(
            f"Required command '{cmd}' not found. Please install it first.", cmd) from err


def run_kubectl(args: list[str], timeout: int = 30) -> tuple[bool, str, str]:
    """Run a kubectl command via subprocess and return (success, stdout, stderr).

    Args:
        args: kubectl arguments (e.g. ``["get", "pods", "-n", "default"]``).
        timeout: Maximum seconds to wait for the command to complete.

    Returns:
        Tuple of (success, stdout, stderr).
    """
    try:
        result = subprocess.run(
            ["kubectl", *args],
            capture_output=True,
            text=True,
            timeout=timeout,
        )
        return result.returncode == 0, result.stdout, result.stderr
    except (subprocess.SubprocessError, OSError) as exc:
        return False, "", str(exc)


def error_output(err: sh.ErrorReturnCode) -> str:
    """Decode the stderr (or stdout, if stderr is empty) of a failed sh call."""
    stream = err.stderr or err.stdout or b""
    return stream.decode("utf-8", errors="replace")


def run_bounded(tasks: Mapping[str, Callable[[], T]], max_workers: int) -> dict[str, T]:
    """Run tasks concurrently and fail fast.

    Each task's console output is captured and printed as one block when the
    task finishes, so output from different tasks does not interleave.

    Args:
        tasks: Mapping of task name to callable.
        max_workers: Maximum number of tasks running at once.

    Returns:
        Mapping of task name to the task's return value.

    Raises:
        Exception: Re-raises the first exception from any failed task. Tasks
            not yet started are cancelled.
    """
    if not tasks:
        return {}

    lock = threading.Lock()

    def _run_task(fn: Callable[[], T]) -> T:
        output = ""
        try:
            with console.capture() as buf:
                try:
                    return fn()
                finally:
                    output = buf.getvalue()
        finally:
            if output:
                with lock:
                    console.out(output, end="", highlight=False)

    results: dict[str, T] = {}
    executor = ThreadPoolExecutor(max_workers=max(1, min(max_workers, len(tasks))))
    try:
        futures = {executor.submit(_run_task, fn): name for name, fn in tasks.items()}
        done, _ = wait(futures, return_when=FIRST_EXCEPTION)
        for future in done:
            exc = future.exception()
            if exc is not None:
                raise exc
        for future, name in futures.items():
            results[name] = future.result()
    finally:
        executor.shutdown(wait=True, cancel_futures=True)
    return results

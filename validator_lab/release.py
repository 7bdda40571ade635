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

"""Acquire validator binaries from a local checkout or a release tarball."""

from __future__ import annotations

import tarfile
import time
from dataclasses import dataclass
from pathlib import Path

import requests
import sh
import yaml
from rich.panel import Panel

from validator_lab import console, logger
from validator_lab.config import BuildOptions, BuildType, DeployMethod
from validator_lab.constants import (
    CARGO_INSTALL_SCRIPT,
    LOCAL_INSTALL_DIR_NAME,
    RELEASE_DOWNLOAD_CHUNK_BYTES,
    RELEASE_DOWNLOAD_TIMEOUT_SECONDS,
    RELEASE_INSTALL_DIR_NAME,
    RELEASE_TARBALL_NAME,
    RELEASE_URL_TEMPLATE,
    VERSION_FILE_NAME,
)
from validator_lab.errors import BuildError, PreconditionError, ToolError
from validator_lab.utils import error_output


@dataclass(frozen=True)
class BuildArtifacts:
    """Result of preparing the validator binaries.

    Attributes:
        install_dir: Directory holding ``bin/`` and ``version.yml``.
        exec_dir: Directory holding the executables.
    """

    install_dir: Path

    @property
    def exec_dir(self) -> Path:
        return self.install_dir / "bin"


class BuildConfig:
    """Prepares validator binaries according to BuildOptions."""

    def __init__(self, options: BuildOptions, session: requests.Session | None = None) -> None:
        self.options = options
        self._session = session

    @property
    def solana_root(self) -> Path:
        return self.options.solana_root

    @property
    def install_dir_name(self) -> str:
        if self.options.deploy_method is DeployMethod.TAR:
            return RELEASE_INSTALL_DIR_NAME
        return LOCAL_INSTALL_DIR_NAME

    @property
    def install_dir(self) -> Path:
        return self.solana_root / self.install_dir_name

    def prepare(self) -> BuildArtifacts:
        """Build or download the binaries.

        Returns:
            Locations of the prepared binaries.

        Raises:
            PreconditionError: If a required script or the executables are missing.
            BuildError: If the build or download fails.
        """
        console.print(Panel.fit(
            f"Preparing validator binaries ({self.options.deploy_method.value})", style="bold blue"))
        if self.options.build_type is BuildType.SKIP:
            console.print("[yellow]\u2139\ufe0f  Build skipped due to --build-type skip[/yellow]")
        elif self.options.deploy_method is DeployMethod.LOCAL:
            self._build_local()
        else:
            self._download_release()

        artifacts = BuildArtifacts(self.install_dir)
        if not artifacts.exec_dir.is_dir():
            raise PreconditionError(
                f"Validator binaries not found in {artifacts.exec_dir}", artifacts.exec_dir)
        console.print("[green]\u2705 Validator binaries prepared[/green]")
        return artifacts

    # ------------------------------------------------------------------------
    # Local checkout
    # ------------------------------------------------------------------------

    def _build_local(self) -> None:
        script = self.solana_root / CARGO_INSTALL_SCRIPT
        if not script.is_file():
            raise PreconditionError(f"Install script not found: {script}", script)

        args = [str(self.install_dir)]
        if self.options.build_type is BuildType.DEBUG:
            args.append("--debug")
        args.append("--validator-only")

        console.print(f"[yellow]\u2139\ufe0f  Building validator ({self.options.build_type.value})...[/yellow]")
        start = time.monotonic()
        try:
            sh.Command(str(script))(*args, _cwd=str(self.solana_root))
        except sh.ErrorReturnCode as err:
            raise BuildError("Failed to build validator", detail=error_output(err)) from err
        logger.info("Build took %.1f seconds", time.monotonic() - start)

        self._write_version_file()

    def _git(self, *args: str) -> str:
        try:
            return str(sh.git(*args, _cwd=str(self.solana_root))).strip()
        except sh.ErrorReturnCode as err:
            raise ToolError(f"git {' '.join(args)} failed", detail=error_output(err)) from err

    def _write_version_file(self) -> Path:
        """Record the branch (or tag) and commit the binaries were built from."""
        commit = self._git("rev-parse", "HEAD")
        tags = self._git("tag", "--points-at", "HEAD").splitlines()
        if tags:
            logger.info("The current commit is associated with tag: %s", tags[0])
            note = tags[0]
        else:
            note = self._git("rev-parse", "--abbrev-ref", "HEAD")
        path = self.install_dir / VERSION_FILE_NAME
        path.parent.mkdir(parents=True, exist_ok=True)
        path.write_text(yaml.safe_dump(
            {"channel": f"devbuild {note}", "commit": commit}, default_flow_style=False))
        return path

    # ------------------------------------------------------------------------
    # Release tarball
    # ------------------------------------------------------------------------

    def _download_release(self) -> None:
        channel = self.options.release_channel
        if not channel:
            raise PreconditionError("A release channel is required for tar deploys", "--release-channel")
        url = RELEASE_URL_TEMPLATE.format(channel=channel)
        tarball = self.solana_root / RELEASE_TARBALL_NAME
        self.solana_root.mkdir(parents=True, exist_ok=True)

        console.print(f"[yellow]\u2139\ufe0f  Downloading {url}...[/yellow]")
        session = self._session or requests.Session()
        try:
            with session.get(url, stream=True, timeout=RELEASE_DOWNLOAD_TIMEOUT_SECONDS) as resp:
                resp.raise_for_status()
                with open(tarball, "wb") as f:
                    for chunk in resp.iter_content(chunk_size=RELEASE_DOWNLOAD_CHUNK_BYTES):
                        f.write(chunk)
        except requests.RequestException as err:
            raise BuildError(f"Failed to download release {channel}", detail=str(err)) from err

        try:
            with tarfile.open(tarball, "r:bz2") as archive:
                archive.extractall(self.solana_root, filter="data")
        except (tarfile.TarError, OSError) as err:
            raise BuildError(f"Failed to extract {tarball}", detail=str(err)) from err
        finally:
            tarball.unlink(missing_ok=True)
        logger.info("Extracted release %s into %s", channel, self.install_dir)

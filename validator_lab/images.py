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

"""Per-role container image build and push."""

from __future__ import annotations

import shutil
from concurrent.futures import ThreadPoolExecutor, as_completed
from pathlib import Path
from typing import Protocol

import docker
from rich.panel import Panel
from rich.progress import BarColumn, Progress, SpinnerColumn, TaskProgressColumn, TextColumn

from validator_lab import console, logger
from validator_lab.constants import (
    BENCH_TPS_FILE_TEMPLATE,
    BOOTSTRAP_DIR_NAME,
    COMMON_SCRIPT,
    CONFIG_DIR_NAME,
    CONTAINER_BIN_DIR,
    CONTAINER_CLIENT_ACCOUNTS_FILE,
    CONTAINER_HOME,
    CONTAINER_LEDGER_DIR,
    CONTAINER_SCRIPTS_DIR,
    DEFAULT_PUSH_MAX_WORKERS,
    DOCKER_BUILD_DIR_NAME,
    SCRIPTS_DIR,
    VERSION_FILE_NAME,
)
from validator_lab.errors import BuildError, PreconditionError, PushError
from validator_lab.node import ImageRef, NodeRole, RoleKind


class ContainerBuildService(Protocol):
    """Builds and pushes container images."""

    def build(self, image_ref: ImageRef, context_dir: Path, dockerfile: Path) -> None: ...

    def push(self, image_ref: ImageRef) -> None: ...


class DockerBuildService:
    """ContainerBuildService backed by the local Docker daemon."""

    def __init__(self, client: docker.DockerClient | None = None) -> None:
        self._client = client

    @property
    def client(self) -> docker.DockerClient:
        if self._client is None:
            try:
                self._client = docker.from_env()
            except docker.errors.DockerException as err:
                raise BuildError("Failed to connect to Docker", detail=str(err)) from err
        return self._client

    def build(self, image_ref: ImageRef, context_dir: Path, dockerfile: Path) -> None:
        """Build *image_ref* from *dockerfile* (relative to *context_dir*)."""
        try:
            self.client.images.build(
                path=str(context_dir),
                dockerfile=str(dockerfile),
                tag=str(image_ref),
                rm=True,
            )
        except docker.errors.BuildError as err:
            log = "".join(chunk.get("stream", "") or chunk.get("error", "")
                          for chunk in err.build_log if isinstance(chunk, dict))
            raise BuildError(f"Failed to build {image_ref}", detail=log or str(err)) from err
        except docker.errors.APIError as err:
            raise BuildError(f"Failed to build {image_ref}", detail=str(err)) from err

    def push(self, image_ref: ImageRef) -> None:
        try:
            for line in self.client.images.push(
                image_ref.repository, tag=image_ref.tag, stream=True, decode=True,
            ):
                if "error" in line:
                    raise PushError(f"Failed to push {image_ref}", detail=str(line["error"]))
        except docker.errors.APIError as err:
            raise PushError(f"Failed to push {image_ref}", detail=str(err)) from err

    def close(self) -> None:
        if self._client is not None:
            self._client.close()


# ============================================================================
# Image pipeline
# ============================================================================

class ImagePipeline:
    """Builds one image per node kind (one per client index) and pushes them.

    Each build writes its Dockerfile and startup scripts into a private
    scratch directory under ``docker-build/``; the build context is the
    solana root so the Dockerfile can copy binaries and config files.

    Attributes:
        build_root: Solana root, used as the Docker build context.
        install_dir_name: Directory under build_root holding ``bin/`` and ``version.yml``.
        base_image: Base image of every node image.
        scripts_dir: Directory the startup scripts are copied from.
        push_workers: Maximum concurrent pushes.
    """

    def __init__(
        self,
        service: ContainerBuildService,
        build_root: Path,
        install_dir_name: str,
        base_image: str,
        scripts_dir: Path = SCRIPTS_DIR,
        push_workers: int = DEFAULT_PUSH_MAX_WORKERS,
    ) -> None:
        self._service = service
        self.build_root = build_root
        self.install_dir_name = install_dir_name
        self.base_image = base_image
        self.scripts_dir = scripts_dir
        self.push_workers = push_workers

    @property
    def config_dir(self) -> Path:
        return self.build_root / CONFIG_DIR_NAME

    def scratch_dir_name(self, role: NodeRole) -> str:
        if role.kind is RoleKind.CLIENT:
            return f"{role.kind.value}-{role.index}"
        return role.kind.value

    def dockerfile(self, role: NodeRole) -> str:
        """Render the Dockerfile for *role*."""
        scratch = f"./{DOCKER_BUILD_DIR_NAME}/{self.scratch_dir_name(role)}"
        install = f"./{self.install_dir_name}"
        lines = [
            f"FROM {self.base_image}",
            "RUN apt-get update && apt-get install -y iputils-ping curl vim bzip2 \\",
            "    && rm -rf /var/lib/apt/lists/*",
            "",
            "RUN useradd -ms /bin/bash solana",
            "USER solana",
            "",
            f"RUN mkdir -p {CONTAINER_SCRIPTS_DIR}",
            f"COPY --chown=solana:solana {scratch}/scripts {CONTAINER_SCRIPTS_DIR}",
        ]
        if role.kind is RoleKind.BOOTSTRAP:
            lines += [
                "",
                f"RUN mkdir -p {CONTAINER_LEDGER_DIR}",
                f"COPY --chown=solana:solana ./{CONFIG_DIR_NAME}/{BOOTSTRAP_DIR_NAME} "
                f"{CONTAINER_LEDGER_DIR}",
            ]
        lines += [
            "",
            f"RUN mkdir -p {CONTAINER_BIN_DIR}",
            f"COPY {install}/bin/ {CONTAINER_BIN_DIR}/",
            f"COPY {install}/{VERSION_FILE_NAME} {CONTAINER_HOME}/",
        ]
        if role.kind is RoleKind.CLIENT:
            accounts = BENCH_TPS_FILE_TEMPLATE.format(index=role.index)
            lines.append(
                f"COPY --chown=solana:solana ./{CONFIG_DIR_NAME}/{accounts} "
                f"{CONTAINER_CLIENT_ACCOUNTS_FILE}")
        lines += [
            "",
            f"RUN mkdir -p {CONTAINER_HOME}/config",
            f'ENV PATH="{CONTAINER_BIN_DIR}:${{PATH}}"',
            "",
            f"WORKDIR {CONTAINER_HOME}",
            "",
        ]
        return "\n".join(lines)

    def _check_preconditions(self, role: NodeRole) -> None:
        required = [self.scripts_dir / role.startup_script, self.scripts_dir / COMMON_SCRIPT]
        if role.kind is RoleKind.CLIENT:
            required.append(self.config_dir / BENCH_TPS_FILE_TEMPLATE.format(index=role.index))
        if role.kind is RoleKind.BOOTSTRAP:
            required.append(self.config_dir / BOOTSTRAP_DIR_NAME)
        for path in required:
            if not path.exists():
                raise PreconditionError(
                    f"Cannot build {role.kind.value} image: {path} does not exist", path, node=role)

    def prepare_context(self, role: NodeRole) -> Path:
        """Write the Dockerfile and startup scripts for *role*.

        Returns:
            Path of the Dockerfile.
        """
        self._check_preconditions(role)
        scratch = self.build_root / DOCKER_BUILD_DIR_NAME / self.scratch_dir_name(role)
        if scratch.exists():
            shutil.rmtree(scratch)
        scripts = scratch / "scripts"
        scripts.mkdir(parents=True)
        for name in (COMMON_SCRIPT, role.startup_script):
            target = scripts / name
            shutil.copyfile(self.scripts_dir / name, target)
            target.chmod(0o755)
        dockerfile = scratch / "Dockerfile"
        dockerfile.write_text(self.dockerfile(role))
        logger.debug("Wrote %s", dockerfile)
        return dockerfile

    def build(self, role: NodeRole, image_ref: ImageRef) -> None:
        dockerfile = self.prepare_context(role)
        console.print(f"[yellow]\u2139\ufe0f  Building {image_ref}...[/yellow]")
        try:
            self._service.build(image_ref, self.build_root, dockerfile.relative_to(self.build_root))
        except BuildError as err:
            err.annotate(role)
            raise
        console.print(f"[green]\u2705 Built {image_ref}[/green]")

    def push(self, image_ref: ImageRef) -> None:
        self._service.push(image_ref)

    def build_all(self, images: list[tuple[NodeRole, ImageRef]]) -> None:
        """Build every image, one at a time."""
        console.print(Panel.fit(f"Building {len(images)} image(s)", style="bold blue"))
        for role, image_ref in images:
            self.build(role, image_ref)

    def push_all(self, refs: list[ImageRef]) -> None:
        """Push every image concurrently; the first failure fails the phase.

        Raises:
            PushError: The first push failure. Pushes not yet started are cancelled.
        """
        if not refs:
            return
        console.print(Panel.fit(f"Pushing {len(refs)} image(s)", style="bold blue"))
        with Progress(
            SpinnerColumn(), TextColumn("[progress.description]{task.description}"),
            BarColumn(), TaskProgressColumn(), console=console.active,
        ) as progress:
            task = progress.add_task("[cyan]Pushing images...", total=len(refs))
            executor = ThreadPoolExecutor(max_workers=max(1, min(self.push_workers, len(refs))))
            try:
                futures = {executor.submit(self.push, ref): ref for ref in refs}
                for future in as_completed(futures):
                    ref = futures[future]
                    try:
                        future.result()
                    except PushError:
                        console.print(f"[red]\u2717 {ref}[/red]")
                        raise
                    progress.advance(task)
                    console.print(f"[green]\u2713 {ref}[/green]")
            finally:
                executor.shutdown(wait=True, cancel_futures=True)
        console.print(f"[green]\u2705 Pushed all {len(refs)} image(s)[/green]")

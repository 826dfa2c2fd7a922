"""Builder configuration and the default Docker CLI container builder."""

import logging
import os
import subprocess
import threading
from concurrent.futures import Future, ThreadPoolExecutor
from typing import Any, Dict, List, Mapping

from rich.console import Console

from fastpg.constants import ENV_HOST_AUTH_METHOD, ENV_PASSWORD, IMAGE_PREFIX
from fastpg.errors import BuildError, ProvisionError
from fastpg.errors_catalog import actionable_error
from fastpg.models import BuilderConfig, ProvisionRequest, StagingPaths
from fastpg.services.command_runner import CommandRunner
from fastpg.services.events import (
    COMPLETE,
    DATA,
    DOWNLOAD,
    ERROR,
    STOPPED_AND_REMOVED,
    EventEmitter,
    Listener,
    Subscription,
)


def build_builder_config(
    request: ProvisionRequest,
    environment: Mapping[str, str],
    paths: StagingPaths,
) -> BuilderConfig:
    return BuilderConfig(
        name=request.name,
        port=request.port,
        environment=dict(environment),
        image=paths.image,
    )


class DockerCliBuilder:
    """Builds the staged image and runs it through the ``docker`` CLI.

    Work happens on a single background thread; progress is published as
    events (``download``, ``complete``, ``data``, ``error``,
    ``stopped-and-removed``) that listeners attach to with :meth:`subscribe`.
    """

    def __init__(
        self,
        config: BuilderConfig,
        logger=None,
        console=None,
        runner=None,
        subprocess_module=subprocess,
    ):
        self.config = config
        self.logger = logger or logging.getLogger("fastpg")
        self.console = console or Console()
        self.subprocess = subprocess_module
        self.runner = runner or CommandRunner(logger=self.logger, subprocess_module=subprocess_module)
        self.events = EventEmitter()
        self.pump = False

        self._executor = ThreadPoolExecutor(max_workers=1, thread_name_prefix="fastpg-builder")
        self._lock = threading.Lock()
        self._process = None
        self._stopping = False

    @property
    def tag(self) -> str:
        return f"{IMAGE_PREFIX}/{self.config.name.lower()}"

    def subscribe(self, event: str, listener: Listener) -> Subscription:
        return self.events.subscribe(event, listener)

    def emit(self, event: str, payload: Any = None) -> int:
        return self.events.emit(event, payload)

    def stream_output_to_console(self) -> "DockerCliBuilder":
        self.pump = True
        return self

    def build_command(self) -> List[str]:
        return ["docker", "build", "-t", self.tag, "-f", self.config.image, self.config.context_dir]

    def run_command(self) -> List[str]:
        cmd = [
            "docker",
            "run",
            "-d",
            "--name",
            self.config.name,
            "-p",
            f"{self.config.port}:{self.config.exposed}",
        ]
        # Values travel through the process environment so they never show up in logs.
        for key in sorted(self.container_environment()):
            cmd.extend(["-e", key])
        cmd.append(self.tag)
        return cmd

    def container_environment(self) -> Dict[str, str]:
        environment = dict(self.config.environment)
        # The postgres image refuses to initialize without a superuser password otherwise.
        if not environment.get(ENV_PASSWORD):
            environment[ENV_HOST_AUTH_METHOD] = "trust"
        return environment

    def run_environment(self) -> Dict[str, str]:
        env = dict(os.environ)
        env.update(self.container_environment())
        return env

    def build_and_start(self) -> Future:
        """Start the build/run job; the returned future completes when the log stream ends."""
        return self._executor.submit(self._build_and_start)

    def detach(self):
        """Stop following container output but leave the container running."""
        self._halt()
        self._executor.shutdown(wait=False)

    def stop(self):
        self._halt()
        self.runner.run(["docker", "rm", "-f", self.config.name], check=False, capture_output=True)
        self.emit(STOPPED_AND_REMOVED)
        self._executor.shutdown(wait=False)

    def _halt(self):
        with self._lock:
            self._stopping = True
            process = self._process

        if process is not None and process.poll() is None:
            process.terminate()

    def _build_and_start(self):
        try:
            self.emit(DOWNLOAD)
            self.runner.run(
                ["docker", "rm", "-f", self.config.name],
                check=False,
                capture_output=True,
            )

            returncode = self._stream(self.build_command())
            if returncode != 0:
                raise BuildError(
                    actionable_error(
                        "build_failed",
                        name=self.config.name,
                        reason=f"docker build exited with code {returncode}",
                    )
                )
            self.emit(COMPLETE)
            if self._stopping:
                return

            try:
                self.runner.run(
                    self.run_command(),
                    check=True,
                    capture_output=True,
                    env=self.run_environment(),
                )
            except ProvisionError as exc:
                raise BuildError(
                    actionable_error("build_failed", name=self.config.name, reason=str(exc))
                ) from exc

            if self._stopping:
                return
            returncode = self._stream(["docker", "logs", "-f", self.config.name])
            if not self._stopping:
                raise BuildError(
                    actionable_error(
                        "build_failed",
                        name=self.config.name,
                        reason=f"container exited (docker logs exit code {returncode})",
                    )
                )
        except ProvisionError as exc:
            self._report(exc)
        except Exception as exc:
            self.logger.exception("Unexpected builder failure")
            self._report(BuildError(str(exc)))

    def _report(self, error: ProvisionError):
        if self._stopping:
            self.logger.debug("Ignoring builder error after stop: %s", error)
            return
        self.emit(ERROR, error)

    def _stream(self, cmd: List[str]) -> int:
        self.logger.debug("Streaming: %s", " ".join(cmd))
        try:
            process = self.subprocess.Popen(
                cmd,
                stdout=self.subprocess.PIPE,
                stderr=self.subprocess.STDOUT,
                text=True,
                bufsize=1,
            )
        except OSError as exc:
            raise BuildError(
                actionable_error("build_failed", name=self.config.name, reason=str(exc))
            ) from exc

        with self._lock:
            self._process = process
            stopping = self._stopping
        if stopping:
            process.terminate()

        if not process.stdout:
            raise BuildError(f"Docker did not expose output for: {' '.join(cmd)}")

        for line in process.stdout:
            cleaned = line.rstrip()
            if not cleaned:
                continue
            self.logger.debug(cleaned)
            if self.pump:
                self.console.print(cleaned, style="dim", markup=False, highlight=False)
            self.emit(DATA, cleaned)

        process.wait()
        with self._lock:
            self._process = None
        return process.returncode

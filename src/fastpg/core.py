import contextlib
import logging
import threading
from concurrent.futures import Future
from typing import Callable, Dict, Mapping, Optional

from rich.console import Console

from .constants import ENV_DATABASE
from .errors import BuildError, DiskFullError, ProvisionError, ProvisionTimeoutError, StagingError
from .errors_catalog import actionable_error
from .models import LogClass, ProvisionRequest, ProvisionState, StagingPaths, build_environment
from .services.builder import DockerCliBuilder, build_builder_config
from .services.completion import CompletionSignal
from .services.download import DownloadService
from .services.events import DATA, ERROR
from .services.log_classifier import classify
from .services.staging import WorkspaceStager
from .services.status_reporter import StatusReporter

console = Console()
logger = logging.getLogger("fastpg")


class Provisioner:
    """Provisions one disposable PostgreSQL container.

    ``provision()`` stages the build files, starts the builder and returns a
    future that resolves once PostgreSQL reports it finished initializing, or
    fails with a :class:`ProvisionError` when staging, the build or the
    container startup fails.
    """

    def __init__(
        self,
        request: ProvisionRequest,
        stager: Optional[WorkspaceStager] = None,
        builder_factory: Optional[Callable] = None,
        environ: Optional[Mapping[str, str]] = None,
        allow_insecure_http: bool = False,
        console: Console = console,
        logger: logging.Logger = logger,
    ):
        self.request = request
        self.console = console
        self.logger = logger
        self.environment: Dict[str, str] = build_environment(request, environ)

        self.stager = stager or WorkspaceStager(
            logger=logger,
            download_service=DownloadService(
                logger=logger,
                console=console,
                allow_insecure_http=allow_insecure_http,
            ),
        )
        self.builder_factory = builder_factory or self._default_builder

        self.state = ProvisionState.CREATED
        self.paths: Optional[StagingPaths] = None
        self.builder = None
        self.reporter: Optional[StatusReporter] = None
        self.signal = CompletionSignal(logger=logger)

        self._pump = False
        self._subscriptions = contextlib.ExitStack()
        self._lock = threading.Lock()
        self._timer: Optional[threading.Timer] = None

    def _default_builder(self, config):
        return DockerCliBuilder(config, logger=self.logger, console=self.console)

    def stream_output_to_console(self) -> "Provisioner":
        self._pump = True
        if self.builder is not None:
            self.builder.stream_output_to_console()
        return self

    def report_status(self) -> "Provisioner":
        if self.reporter is None:
            self.reporter = StatusReporter(self.request.name, self.console, self.logger)
            if self.builder is not None:
                self.reporter.attach(self.builder)
        return self

    def provision(self, timeout: Optional[float] = None) -> Future:
        with self._lock:
            if self.state is not ProvisionState.CREATED:
                raise ProvisionError(f'Container "{self.request.name}" was already provisioned.')
            self.state = ProvisionState.STAGING

        self.signal.future.add_done_callback(self._on_settled)
        if timeout is not None:
            self._timer = threading.Timer(timeout, self._on_timeout, args=(timeout,))
            self._timer.daemon = True
            self._timer.start()

        self.logger.info('Provisioning container "%s" on port %s', self.request.name, self.request.port)
        try:
            self.paths = self.stager.stage(
                self.request,
                database=self.environment[ENV_DATABASE],
            )
        except StagingError as exc:
            self._fail(exc)
            return self.signal.future
        except Exception as exc:
            self.logger.exception("Unexpected staging failure")
            self._fail(
                StagingError(actionable_error("staging_failed", name=self.request.name, reason=str(exc)))
            )
            return self.signal.future

        if self.state.is_terminal:
            return self.signal.future

        if self.reporter is not None:
            self.reporter.start()
        self._start_builder()
        return self.signal.future

    def stop(self):
        if self.builder is None:
            return
        self.logger.info('Stopping container "%s"', self.request.name)
        self.builder.stop()

    def detach(self):
        if self.builder is None:
            return
        self.logger.info('Leaving container "%s" running', self.request.name)
        self.builder.detach()

    def cleanup(self):
        self.stager.cleanup(self.paths)

    def _start_builder(self):
        config = build_builder_config(self.request, self.environment, self.paths)
        self.builder = self.builder_factory(config)
        if self._pump:
            self.builder.stream_output_to_console()
        if self.reporter is not None:
            self.reporter.attach(self.builder)

        self._subscriptions.enter_context(self.builder.subscribe(DATA, self._on_data))
        self._subscriptions.enter_context(self.builder.subscribe(ERROR, self._on_error))

        self._transition(ProvisionState.BUILDING)
        try:
            self.builder.build_and_start()
        except ProvisionError as exc:
            self._fail(exc)
            return
        except Exception as exc:
            self._fail(
                BuildError(actionable_error("build_failed", name=self.request.name, reason=str(exc)))
            )
            return

        self._transition(ProvisionState.AWAITING_READY)

    def _on_data(self, line):
        verdict = classify(line)
        if verdict is LogClass.IGNORE:
            return

        if verdict is LogClass.FATAL_DISK_FULL:
            error = DiskFullError(actionable_error("disk_full", name=self.request.name))
            if self._fail(error):
                self.builder.emit(ERROR, error)
            return

        self._succeed()

    def _on_error(self, error=None):
        if isinstance(error, ProvisionError):
            self._fail(error)
            return
        self._fail(
            BuildError(actionable_error("build_failed", name=self.request.name, reason=str(error)))
        )

    def _on_timeout(self, timeout: float):
        self._fail(
            ProvisionTimeoutError(
                actionable_error("provision_timeout", name=self.request.name, timeout=str(timeout))
            )
        )

    def _succeed(self) -> bool:
        if not self._settle(ProvisionState.READY):
            return False
        self.logger.info('Container "%s" is ready', self.request.name)
        return True

    def _fail(self, error: ProvisionError) -> bool:
        if not self._settle(ProvisionState.FAILED, error):
            return False
        self.logger.debug('Provisioning "%s" failed: %s', self.request.name, error)
        return True

    def _settle(self, state: ProvisionState, error: Optional[ProvisionError] = None) -> bool:
        self._release()
        with self._lock:
            if self.state.is_terminal:
                return False
            self.logger.debug("State %s -> %s", self.state.value, state.value)
            self.state = state

        if self.reporter is not None:
            if error is None:
                self.reporter.ready(self.request.port)
            else:
                self.reporter.failed(error)

        if error is None:
            return self.signal.resolve()
        return self.signal.reject(error)

    def _release(self):
        with self._lock:
            subscriptions = self._subscriptions.pop_all()
        subscriptions.close()

    def _transition(self, state: ProvisionState):
        with self._lock:
            if self.state.is_terminal:
                return
            self.logger.debug("State %s -> %s", self.state.value, state.value)
            self.state = state

    def _on_settled(self, future: Future):
        if self._timer is not None:
            self._timer.cancel()
        if future.cancelled() and self.reporter is not None:
            self.reporter.stop()


def provision(request: ProvisionRequest, timeout: Optional[float] = None, **kwargs) -> Future:
    """Provision ``request`` with a fresh :class:`Provisioner`."""
    return Provisioner(request, **kwargs).provision(timeout=timeout)

"""Console status reporting for container lifecycle events."""

import threading

from rich.console import Console
from rich.markup import escape
from rich.text import Text

from fastpg.services.events import COMPLETE, DOWNLOAD, ERROR, STOPPED_AND_REMOVED


class StatusReporter:
    """Mirrors builder events to the console around a pausable spinner.

    The spinner only exists on interactive terminals; elsewhere messages are
    printed plainly. At most one final error message is printed per run.
    """

    def __init__(self, name: str, console: Console, logger):
        self.name = escape(name)
        self.console = console
        self.logger = logger
        self.interactive = console.is_terminal
        self.spinner = (
            console.status("[blue]>[/blue] Docking...", spinner="line", spinner_style="blue")
            if self.interactive
            else None
        )
        self.spinning = False
        self.error_reported = False
        self._lock = threading.RLock()
        self.subscriptions = []

    def attach(self, builder) -> "StatusReporter":
        self.subscriptions.extend(
            [
                builder.subscribe(DOWNLOAD, self.on_download),
                builder.subscribe(COMPLETE, self.on_complete),
                builder.subscribe(STOPPED_AND_REMOVED, self.on_stopped_and_removed),
                builder.subscribe(ERROR, self.on_error),
            ]
        )
        return self

    def detach(self):
        for subscription in self.subscriptions:
            subscription.close()
        self.subscriptions = []

    def start(self):
        with self._lock:
            if self.spinner is not None and not self.spinning:
                self.spinner.start()
                self.spinning = True

    def stop(self):
        with self._lock:
            if self.spinner is not None and self.spinning:
                self.spinner.stop()
                self.spinning = False

    def emit(self, message: str):
        with self._lock:
            was_spinning = self.spinning
            self.stop()
            self.console.print(message)
            self.logger.debug(Text.from_markup(message).plain)
            if was_spinning:
                self.start()

    def _claim_error(self) -> bool:
        with self._lock:
            if self.error_reported:
                return False
            self.error_reported = True
            return True

    def on_download(self):
        self.emit(f'[blue]>[/blue] Building image for container "{self.name}"')

    def on_complete(self):
        self.emit(f'[green]>[/green] Container "{self.name}" [green]built[/green]')

    def on_stopped_and_removed(self):
        self.emit(f'[red]>[/red] Container "{self.name}" [red]stopped and removed[/red]')

    def on_error(self, error):
        if not self._claim_error():
            return
        self.emit(f'[red]>[/red] Error with "{self.name}" - {escape(str(error))}')

    def ready(self, port: int):
        self.stop()
        self.console.print(
            f'[green]>[/green] Container "{self.name}" [green]started[/green] on port {port}'
        )

    def failed(self, error: BaseException):
        self.stop()
        if not self._claim_error():
            return
        self.console.print(f"[bold red]Error:[/bold red] {escape(str(error))}")

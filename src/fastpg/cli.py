import logging
import os
import threading

import click
from rich.logging import RichHandler
from rich.markup import escape

from .constants import DEFAULT_PORT
from .core import Provisioner, ProvisionError, console
from .errors_catalog import actionable_error
from .models import ProvisionRequest
from .services.command_runner import CommandRunner
from .services.config_loader import ConfigLoader
from .services.download import normalize_sha256


def _resolve_option(cli_value, config, key, default=None):
    if cli_value is not None:
        return cli_value
    if key in config:
        return config[key]
    return default


def _command_environment(provisioner: Provisioner):
    env = dict(os.environ)
    env.update(
        {
            "PGHOST": "localhost",
            "PGPORT": str(provisioner.request.port),
            "PGUSER": provisioner.environment["POSTGRES_USER"],
            "PGPASSWORD": provisioner.environment["POSTGRES_PASSWORD"],
            "PGDATABASE": provisioner.environment["POSTGRES_DB"],
        }
    )
    return env


def _connection_url(provisioner: Provisioner) -> str:
    environment = provisioner.environment
    user = environment["POSTGRES_USER"] or "postgres"
    database = environment["POSTGRES_DB"] or user
    return f"postgresql://{user}@localhost:{provisioner.request.port}/{database}"


def _wait_until_interrupted():
    console.print("[dim]Press Ctrl+C to stop and remove the container.[/dim]")
    try:
        threading.Event().wait()
    except KeyboardInterrupt:
        return


logging.basicConfig(
    level="INFO",
    format="%(message)s",
    datefmt="[%X]",
    handlers=[RichHandler(rich_tracebacks=True, show_level=False, show_path=False)],
)


@click.command()
@click.option("--name", required=False, help="Name of the database container")
@click.option("--port", required=False, type=int, default=None, help="Host port (default: 5432)")
@click.option("--database", "--db", required=False, help="Database name (POSTGRES_DB)")
@click.option("--user", required=False, help="Database user (POSTGRES_USER)")
@click.option("--password", required=False, help="Database password (POSTGRES_PASSWORD)")
@click.option(
    "--dump",
    required=False,
    help="Path or HTTPS URL of a SQL dump to load on startup. Omit for an empty database.",
)
@click.option(
    "--dump-sha256",
    required=False,
    help="Expected SHA-256 checksum for a remote SQL dump.",
)
@click.option(
    "--allow-insecure-http",
    is_flag=True,
    default=None,
    help="Allow HTTP dump URLs (insecure). By default only HTTPS URLs are accepted.",
)
@click.option(
    "--command",
    required=False,
    help="Shell command to run once the database is ready (PG* variables are set).",
)
@click.option(
    "--config",
    required=False,
    type=click.Path(),
    help="Path to a YAML configuration file. Defaults to .fastpg.yml if present.",
)
@click.option(
    "--timeout",
    required=False,
    type=float,
    default=None,
    help="Seconds to wait for the database to become ready (default: no limit).",
)
@click.option("--verbose", is_flag=True, default=None, help="Enable verbose logging")
@click.option("--log-file", type=click.Path(), help="Path to log file")
@click.option(
    "--detach",
    is_flag=True,
    default=None,
    help="Leave the container running and exit once it is ready.",
)
@click.option(
    "--quiet",
    is_flag=True,
    default=None,
    help="Do not stream Docker output to the console.",
)
def main(
    name,
    port,
    database,
    user,
    password,
    dump,
    dump_sha256,
    allow_insecure_http,
    command,
    config,
    timeout,
    verbose,
    log_file,
    detach,
    quiet,
):
    """Start a disposable PostgreSQL container, optionally seeded from a SQL dump."""
    logger = logging.getLogger("fastpg")

    try:
        config_loader = ConfigLoader()
        resolved_config = config
        if resolved_config is None:
            default_config_path = os.path.join(os.getcwd(), ".fastpg.yml")
            if os.path.exists(default_config_path):
                resolved_config = default_config_path

        config_values = config_loader.load(resolved_config)
    except ProvisionError as exc:
        raise click.ClickException(str(exc)) from exc

    name = _resolve_option(name, config_values, "name")
    port = int(_resolve_option(port, config_values, "port", default=DEFAULT_PORT))
    database = _resolve_option(database, config_values, "database")
    user = _resolve_option(user, config_values, "user")
    password = _resolve_option(password, config_values, "password")
    dump = _resolve_option(dump, config_values, "dump")
    dump_sha256 = _resolve_option(dump_sha256, config_values, "dump_sha256")
    allow_insecure_http = bool(
        _resolve_option(allow_insecure_http, config_values, "allow_insecure_http", default=False)
    )
    command = _resolve_option(command, config_values, "command")
    timeout = _resolve_option(timeout, config_values, "timeout")
    timeout = float(timeout) if timeout is not None else None
    verbose = bool(_resolve_option(verbose, config_values, "verbose", default=False))
    log_file = _resolve_option(log_file, config_values, "log_file")
    detach = bool(_resolve_option(detach, config_values, "detach", default=False))
    quiet = bool(_resolve_option(quiet, config_values, "quiet", default=False))

    if not name:
        raise click.ClickException("Missing required option '--name' (or provide it in config).")

    try:
        dump_sha256 = normalize_sha256(dump_sha256)
    except ProvisionError as exc:
        raise click.ClickException(str(exc)) from exc

    if verbose:
        logging.getLogger().setLevel(logging.DEBUG)
        logger.setLevel(logging.DEBUG)
    else:
        logger.setLevel(logging.INFO)

    if log_file:
        file_handler = logging.FileHandler(log_file)
        file_handler.setLevel(logging.DEBUG if verbose else logging.INFO)
        file_handler.setFormatter(logging.Formatter("%(asctime)s [%(levelname)s] %(message)s"))
        logger.addHandler(file_handler)

    request = ProvisionRequest(
        name=name,
        port=port,
        database=database,
        user=user,
        password=password,
        dump=dump,
        command=command,
        dump_sha256=dump_sha256,
    )
    provisioner = Provisioner(request, allow_insecure_http=allow_insecure_http)
    provisioner.report_status()
    if not quiet:
        provisioner.stream_output_to_console()

    raise SystemExit(run(provisioner, timeout=timeout, detach=detach))


def run(provisioner: Provisioner, timeout=None, detach: bool = False) -> int:
    logger = logging.getLogger("fastpg")
    request = provisioner.request
    keep_running = False

    try:
        future = provisioner.provision(timeout=timeout)
        try:
            future.result()
        except ProvisionError as exc:
            logger.debug("Provisioning failed: %s", exc)
            return 1

        console.print(f"[dim]{_connection_url(provisioner)}[/dim]")

        if request.command:
            logger.info("Running post-start command: %s", request.command)
            runner = CommandRunner(logger=logger)
            try:
                runner.run(request.command, env=_command_environment(provisioner))
            except ProvisionError as exc:
                raise ProvisionError(
                    f"{actionable_error('command_failed', command=request.command)}\n{exc}"
                ) from exc

        if detach:
            keep_running = True
            return 0

        _wait_until_interrupted()
        return 0

    except KeyboardInterrupt:
        console.print("[bold red]Operation cancelled by user.[/bold red]")
        logger.info("Operation cancelled by user")
        return 1
    except ProvisionError as exc:
        console.print(f"[bold red]Error:[/bold red] {escape(str(exc))}")
        logger.debug("Post-start command failed: %s", exc)
        return 1
    finally:
        if keep_running:
            provisioner.detach()
        else:
            provisioner.stop()
        provisioner.cleanup()


if __name__ == "__main__":
    main()

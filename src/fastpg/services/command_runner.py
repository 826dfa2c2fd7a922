"""Subprocess execution service for fastpg."""

import subprocess
from typing import List, Mapping, Optional, Union

from fastpg.errors import ProvisionError

Command = Union[List[str], str]


class CommandRunner:
    """Runs external commands with consistent error handling."""

    def __init__(self, logger, default_timeout: Optional[float] = None, subprocess_module=subprocess):
        self.logger = logger
        self.default_timeout = default_timeout
        self.subprocess = subprocess_module

    def run(
        self,
        cmd: Command,
        check: bool = True,
        capture_output: bool = False,
        timeout: Optional[float] = None,
        env: Optional[Mapping[str, str]] = None,
    ) -> subprocess.CompletedProcess:
        shell = isinstance(cmd, str)
        cmd_str = cmd if shell else " ".join(cmd)
        self.logger.debug("Executing: %s", cmd_str)

        effective_timeout = timeout if timeout is not None else self.default_timeout

        try:
            result = self.subprocess.run(
                cmd,
                shell=shell,
                text=True,
                capture_output=capture_output,
                timeout=effective_timeout,
                env=dict(env) if env is not None else None,
            )
        except FileNotFoundError as exc:
            program = cmd_str.split()[0] if cmd_str else cmd_str
            raise ProvisionError(
                f"Required command not found: {program}. Please install it and try again."
            ) from exc
        except subprocess.TimeoutExpired as exc:
            raise ProvisionError(
                f"Command timed out after {effective_timeout}s: {cmd_str}"
            ) from exc
        except Exception as exc:
            raise ProvisionError(f"Failed to execute command: {cmd_str}. {exc}") from exc

        if capture_output and result.stdout:
            self.logger.debug("Command output: %s", result.stdout.strip())

        if result.returncode == 0:
            return result

        stderr = (result.stderr or "").strip() if capture_output else ""
        message = f"Command failed ({result.returncode}): {cmd_str}"
        if stderr:
            message = f"{message}\n{stderr}"

        if check:
            raise ProvisionError(message)

        self.logger.warning(message)
        return result

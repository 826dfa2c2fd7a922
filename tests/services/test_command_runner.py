import sys

import pytest

from fastpg.errors import ProvisionError
from fastpg.services.command_runner import CommandRunner


class DummyLogger:
    def debug(self, *_args, **_kwargs):
        return None

    def warning(self, *_args, **_kwargs):
        return None


def test_command_runner_raises_with_stderr():
    runner = CommandRunner(logger=DummyLogger())

    with pytest.raises(ProvisionError, match="boom"):
        runner.run(
            [sys.executable, "-c", "import sys; sys.stderr.write('boom'); sys.exit(1)"],
            check=True,
            capture_output=True,
        )


def test_command_runner_returns_when_check_disabled():
    runner = CommandRunner(logger=DummyLogger())

    result = runner.run(
        [sys.executable, "-c", "import sys; sys.exit(1)"],
        check=False,
        capture_output=True,
    )

    assert result.returncode == 1


def test_command_runner_timeout_raises_error():
    runner = CommandRunner(logger=DummyLogger())

    with pytest.raises(ProvisionError, match="timed out"):
        runner.run(
            [sys.executable, "-c", "import time; time.sleep(2)"],
            check=True,
            capture_output=True,
            timeout=0.1,
        )


def test_command_runner_reports_missing_program():
    runner = CommandRunner(logger=DummyLogger())

    with pytest.raises(ProvisionError, match="Required command not found"):
        runner.run(["fastpg-definitely-missing-binary"], capture_output=True)


def test_command_runner_runs_shell_strings_with_environment():
    runner = CommandRunner(logger=DummyLogger())

    result = runner.run(
        f'"{sys.executable}" -c "import os; print(os.environ[\'PGPORT\'])"',
        capture_output=True,
        env={"PGPORT": "9999", "PATH": ""},
    )

    assert result.stdout.strip() == "9999"

"""Classification of container output lines."""

from typing import Union

from fastpg.constants import DISK_FULL_MARKER, READY_MARKER
from fastpg.models import LogClass


def classify(line: Union[str, bytes]) -> LogClass:
    """Classify one output line. Disk exhaustion wins over the ready marker."""
    if isinstance(line, bytes):
        line = line.decode("utf-8", errors="replace")

    if DISK_FULL_MARKER in line:
        return LogClass.FATAL_DISK_FULL
    if READY_MARKER in line:
        return LogClass.READY
    return LogClass.IGNORE

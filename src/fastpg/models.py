"""Shared domain models for fastpg."""

import enum
import os
from dataclasses import dataclass
from typing import Dict, Mapping, Optional

from .constants import DEFAULT_PORT, ENV_DATABASE, ENV_PASSWORD, ENV_USER, EXPOSED_PORT


@dataclass(frozen=True)
class ProvisionRequest:
    """Inputs for one disposable database."""

    name: str
    port: int = DEFAULT_PORT
    database: Optional[str] = None
    user: Optional[str] = None
    password: Optional[str] = None
    dump: Optional[str] = None
    command: Optional[str] = None
    dump_sha256: Optional[str] = None


@dataclass(frozen=True)
class StagingPaths:
    """Files staged for one image build, all inside ``root``."""

    root: str
    dump: str
    image: str
    script: str


@dataclass(frozen=True)
class BuilderConfig:
    """Values handed to the container builder."""

    name: str
    port: int
    environment: Dict[str, str]
    image: str
    exposed: int = EXPOSED_PORT

    @property
    def context_dir(self) -> str:
        return os.path.dirname(self.image)


class ProvisionState(enum.Enum):
    CREATED = "created"
    STAGING = "staging"
    BUILDING = "building"
    AWAITING_READY = "awaiting_ready"
    READY = "ready"
    FAILED = "failed"

    @property
    def is_terminal(self) -> bool:
        return self in (ProvisionState.READY, ProvisionState.FAILED)


class LogClass(enum.Enum):
    READY = "ready"
    FATAL_DISK_FULL = "fatal_disk_full"
    IGNORE = "ignore"


def build_environment(
    request: ProvisionRequest,
    environ: Optional[Mapping[str, str]] = None,
) -> Dict[str, str]:
    """Container environment for ``request``; process variables win when set."""
    if environ is None:
        environ = os.environ

    requested = {
        ENV_USER: request.user,
        ENV_PASSWORD: request.password,
        ENV_DATABASE: request.database,
    }
    return {key: environ.get(key) or value or "" for key, value in requested.items()}

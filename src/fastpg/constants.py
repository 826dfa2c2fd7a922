"""Shared constants for fastpg."""

from pathlib import Path

DEFAULT_PORT = 5432
EXPOSED_PORT = 5432

ENV_USER = "POSTGRES_USER"
ENV_PASSWORD = "POSTGRES_PASSWORD"
ENV_DATABASE = "POSTGRES_DB"
ENV_HOST_AUTH_METHOD = "POSTGRES_HOST_AUTH_METHOD"

READY_MARKER = "PostgreSQL init process complete; ready for start up"
DISK_FULL_MARKER = "No space left on device"

TEMPLATE_PATH = Path(__file__).parent / "images" / "Dockerfile"
STAGING_PREFIX = "fastpg-"
DUMP_FILE = "dump.sql"
IMAGE_FILE = "Dockerfile"
SCRIPT_FILE = "make.sh"
CONTAINER_DUMP_PATH = "/fastpg/dump.sql"
IMAGE_PREFIX = "fastpg"

SCRIPT_MODE = 0o755

"""Actionable error catalog for fastpg."""

from typing import Dict

_ERROR_MESSAGES: Dict[str, Dict[str, str]] = {
    "dump_not_found": {
        "what": "SQL dump not found: {path}",
        "next": "Check the `--dump` path or omit it to start with an empty database.",
    },
    "dump_copy_failed": {
        "what": "Could not stage SQL dump {path}: {reason}",
        "next": "Make sure the file is readable and the temp directory has free space.",
    },
    "staging_dir_failed": {
        "what": "Could not create a staging directory: {reason}",
        "next": "Check that the system temp directory exists and is writable.",
    },
    "staging_failed": {
        "what": "Could not stage build files for container \"{name}\": {reason}",
        "next": "Check the SQL dump source and the temp directory, then retry.",
    },
    "insecure_http": {
        "what": "{label} uses insecure HTTP.",
        "next": "Switch to HTTPS or use `--allow-insecure-http` only for trusted endpoints.",
    },
    "build_failed": {
        "what": "Container \"{name}\" failed to build or start: {reason}",
        "next": "Inspect the Docker output above and make sure the Docker daemon is running.",
    },
    "disk_full": {
        "what": "Container \"{name}\" ran out of disk space.",
        "next": "Reclaim dangling volumes with `docker volume rm $(docker volume ls -qf dangling=true)` and retry.",
    },
    "provision_timeout": {
        "what": "Container \"{name}\" was not ready after {timeout} seconds.",
        "next": "Increase `--timeout` or inspect the container logs with `docker logs {name}`.",
    },
    "command_failed": {
        "what": "Post-start command failed: {command}",
        "next": "Run the command manually against the database to inspect the failure.",
    },
}


def actionable_error(code: str, **kwargs: str) -> str:
    if code not in _ERROR_MESSAGES:
        raise KeyError(f"Unknown error catalog key: {code}")

    template = _ERROR_MESSAGES[code]
    what = template["what"].format(**kwargs)
    next_step = template["next"].format(**kwargs)
    return f"{what} Suggested action: {next_step}"

"""Remote dump download service with progress reporting and checksum validation."""

import hashlib
import os
from typing import Optional
from urllib.parse import urlparse

import requests
from rich.progress import (
    BarColumn,
    Progress,
    SpinnerColumn,
    TaskProgressColumn,
    TextColumn,
    TimeElapsedColumn,
)

from fastpg.errors import StagingError
from fastpg.errors_catalog import actionable_error


def is_url(location: Optional[str]) -> bool:
    if not location:
        return False
    return urlparse(location).scheme.lower() in {"http", "https"}


def normalize_sha256(value: Optional[str], option_name: str = "--dump-sha256") -> Optional[str]:
    if value is None:
        return None

    clean_value = value.strip().lower()
    if len(clean_value) != 64 or any(c not in "0123456789abcdef" for c in clean_value):
        raise StagingError(
            f"{option_name} must be a valid SHA-256 hash (64 hexadecimal characters)."
        )
    return clean_value


def _content_length(headers) -> int:
    try:
        return max(int(headers.get("Content-Length", 0)), 0)
    except (TypeError, ValueError):
        return 0


class DownloadService:
    """Streams a remote SQL dump to disk."""

    def __init__(
        self,
        logger,
        console,
        requests_module=requests,
        allow_insecure_http: bool = False,
        timeout: float = 60.0,
    ):
        self.logger = logger
        self.console = console
        self.requests = requests_module
        self.allow_insecure_http = allow_insecure_http
        self.timeout = timeout

    def enforce_https_policy(self, url: str, label: str):
        scheme = urlparse(url).scheme.lower()
        if scheme != "http":
            return

        if not self.allow_insecure_http:
            raise StagingError(actionable_error("insecure_http", label=label))

        self.logger.warning("Insecure HTTP enabled for %s: %s", label, url)
        self.console.print(
            f"[yellow]Warning:[/yellow] Using insecure HTTP for {label}. "
            "Prefer HTTPS whenever possible."
        )

    def download_file(
        self,
        url: str,
        dest_path: str,
        description: str = "Downloading SQL dump...",
        expected_sha256: Optional[str] = None,
    ):
        self.logger.info("Downloading %s to %s", url, dest_path)
        self.enforce_https_policy(url, "SQL dump URL")
        expected_sha256 = normalize_sha256(expected_sha256)

        hasher = hashlib.sha256() if expected_sha256 else None

        try:
            with self.requests.get(url, stream=True, timeout=self.timeout) as response:
                response.raise_for_status()
                total_size = _content_length(response.headers)

                with Progress(
                    SpinnerColumn(),
                    TextColumn("[progress.description]{task.description}"),
                    BarColumn(),
                    TaskProgressColumn(),
                    TimeElapsedColumn(),
                    console=self.console,
                    transient=True,
                ) as progress:
                    task = progress.add_task(f"[cyan]{description}", total=total_size or None)
                    with open(dest_path, "wb") as file_obj:
                        for chunk in response.iter_content(chunk_size=8192):
                            if not chunk:
                                continue
                            file_obj.write(chunk)
                            if hasher:
                                hasher.update(chunk)
                            progress.update(task, advance=len(chunk))
        except self.requests.RequestException as exc:
            raise StagingError(f"Download failed for {url}: {exc}") from exc
        except OSError as exc:
            raise StagingError(
                actionable_error("dump_copy_failed", path=url, reason=str(exc))
            ) from exc

        if hasher:
            downloaded_sha = hasher.hexdigest()
            if downloaded_sha != expected_sha256:
                try:
                    os.remove(dest_path)
                except OSError:
                    pass
                raise StagingError(
                    f"Checksum mismatch for {url}. Expected {expected_sha256}, "
                    f"but got {downloaded_sha}."
                )

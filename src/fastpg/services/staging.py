"""Workspace staging for the PostgreSQL image build."""

import os
import shutil
import tempfile
from typing import Callable, Optional

from fastpg.constants import (
    CONTAINER_DUMP_PATH,
    DUMP_FILE,
    IMAGE_FILE,
    SCRIPT_FILE,
    SCRIPT_MODE,
    STAGING_PREFIX,
    TEMPLATE_PATH,
)
from fastpg.errors import StagingError
from fastpg.errors_catalog import actionable_error
from fastpg.models import ProvisionRequest, StagingPaths
from fastpg.services.download import is_url


def _write_text(path: str, content: str):
    with open(path, "w", encoding="utf-8", newline="\n") as file_obj:
        file_obj.write(content)


def _make_temp_dir() -> str:
    return tempfile.mkdtemp(prefix=STAGING_PREFIX)


class WorkspaceStager:
    """Creates a fresh staging directory holding the dump, Dockerfile and init script.

    File operations are injected so tests can observe or replace them without
    touching module state.
    """

    def __init__(
        self,
        logger,
        download_service=None,
        template_path: str = str(TEMPLATE_PATH),
        make_temp_dir: Callable[[], str] = _make_temp_dir,
        copy_file: Callable[[str, str], object] = shutil.copyfile,
        write_text: Callable[[str, str], None] = _write_text,
        chmod: Callable[[str, int], None] = os.chmod,
        remove_tree: Callable[[str], None] = shutil.rmtree,
    ):
        self.logger = logger
        self.download_service = download_service
        self.template_path = template_path
        self.make_temp_dir = make_temp_dir
        self.copy_file = copy_file
        self.write_text = write_text
        self.chmod = chmod
        self.remove_tree = remove_tree

    def allocate(self) -> StagingPaths:
        try:
            root = self.make_temp_dir()
        except OSError as exc:
            raise StagingError(actionable_error("staging_dir_failed", reason=str(exc))) from exc

        return StagingPaths(
            root=root,
            dump=os.path.join(root, DUMP_FILE),
            image=os.path.join(root, IMAGE_FILE),
            script=os.path.join(root, SCRIPT_FILE),
        )

    def stage(self, request: ProvisionRequest, database: Optional[str] = None) -> StagingPaths:
        if request.dump and not is_url(request.dump) and not os.path.isfile(request.dump):
            raise StagingError(actionable_error("dump_not_found", path=request.dump))

        paths = self.allocate()
        self.logger.debug("Staging build files in %s", paths.root)

        try:
            self.copy_file(self.template_path, paths.image)
        except OSError as exc:
            raise StagingError(
                f"Could not copy image template {self.template_path}: {exc}"
            ) from exc

        self.stage_dump(request, paths)

        script = self.build_init_script(bool(request.dump), database or request.database)
        try:
            self.write_text(paths.script, script)
        except OSError as exc:
            raise StagingError(f"Could not write init script {paths.script}: {exc}") from exc

        try:
            self.chmod(paths.script, SCRIPT_MODE)
        except OSError as exc:
            self.logger.warning("Could not mark %s executable: %s", paths.script, exc)

        return paths

    def stage_dump(self, request: ProvisionRequest, paths: StagingPaths):
        if not request.dump:
            self.logger.debug("No SQL dump given; staging an empty one.")
            try:
                self.write_text(paths.dump, "")
            except OSError as exc:
                raise StagingError(
                    actionable_error("dump_copy_failed", path=paths.dump, reason=str(exc))
                ) from exc
            return

        if is_url(request.dump):
            if self.download_service is None:
                raise StagingError(f"Remote dumps are not supported here: {request.dump}")
            self.download_service.download_file(
                request.dump,
                paths.dump,
                expected_sha256=request.dump_sha256,
            )
            return

        try:
            self.copy_file(request.dump, paths.dump)
        except OSError as exc:
            raise StagingError(
                actionable_error("dump_copy_failed", path=request.dump, reason=str(exc))
            ) from exc

    @staticmethod
    def build_init_script(has_dump: bool, database: Optional[str]) -> str:
        if not has_dump:
            return ""

        dbname = database or "$POSTGRES_DB"
        return f"""#!/bin/bash
set -e

psql -v ON_ERROR_STOP=1 --username "$POSTGRES_USER" --dbname "{dbname}" -f {CONTAINER_DUMP_PATH}
"""

    def cleanup(self, paths: Optional[StagingPaths]):
        """Remove a staging directory; failures are logged, never raised."""
        if paths is None or not os.path.exists(paths.root):
            return
        try:
            self.remove_tree(paths.root)
            self.logger.debug("Removed staging directory %s", paths.root)
        except OSError as exc:
            self.logger.warning("Could not remove staging directory %s: %s", paths.root, exc)

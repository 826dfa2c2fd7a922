import os
import sys

import pytest

from fastpg.constants import CONTAINER_DUMP_PATH, TEMPLATE_PATH
from fastpg.errors import StagingError
from fastpg.models import ProvisionRequest
from fastpg.services.staging import WorkspaceStager


class DummyLogger:
    def debug(self, *_args, **_kwargs):
        return None

    def warning(self, *_args, **_kwargs):
        return None


class RecordingChmod:
    def __init__(self):
        self.permissions = []

    def __call__(self, path, mode):
        self.permissions.append((path, mode))
        os.chmod(path, mode)


class FakeDownloadService:
    def __init__(self, payload: str):
        self.payload = payload
        self.calls = []

    def download_file(self, url, dest_path, expected_sha256=None):
        self.calls.append((url, dest_path, expected_sha256))
        with open(dest_path, "w", encoding="utf-8") as file_obj:
            file_obj.write(self.payload)


@pytest.fixture
def temp_dirs(tmp_path):
    created = []

    def make_temp_dir():
        path = tmp_path / f"stage-{len(created)}"
        path.mkdir()
        created.append(path)
        return str(path)

    make_temp_dir.created = created
    return make_temp_dir


@pytest.fixture
def dump_file(tmp_path):
    dump = tmp_path / "test.sql"
    dump.write_text("CREATE TABLE users (id int);\n", encoding="utf-8")
    return dump


def test_stage_copies_dump_template_and_writes_restore_script(temp_dirs, dump_file):
    stager = WorkspaceStager(logger=DummyLogger(), make_temp_dir=temp_dirs)
    request = ProvisionRequest(name="test-psql", database="test-db", dump=str(dump_file))

    paths = stager.stage(request)

    assert os.path.dirname(paths.dump) == paths.root
    assert os.path.dirname(paths.image) == paths.root
    assert os.path.dirname(paths.script) == paths.root

    with open(paths.dump, encoding="utf-8") as file_obj:
        assert file_obj.read() == "CREATE TABLE users (id int);\n"
    with open(paths.image, encoding="utf-8") as file_obj, open(TEMPLATE_PATH, encoding="utf-8") as template:
        assert file_obj.read() == template.read()
    with open(paths.script, encoding="utf-8") as file_obj:
        script = file_obj.read()

    assert script
    assert '--dbname "test-db"' in script
    assert CONTAINER_DUMP_PATH in script


def test_stage_without_dump_writes_empty_dump_and_script(temp_dirs):
    stager = WorkspaceStager(logger=DummyLogger(), make_temp_dir=temp_dirs)

    paths = stager.stage(ProvisionRequest(name="test-psql", database="test-db"))

    assert os.path.getsize(paths.dump) == 0
    assert os.path.getsize(paths.script) == 0
    assert os.path.getsize(paths.image) > 0


def test_stage_prefers_explicit_database_name(temp_dirs, dump_file):
    stager = WorkspaceStager(logger=DummyLogger(), make_temp_dir=temp_dirs)
    request = ProvisionRequest(name="test-psql", database="test-db", dump=str(dump_file))

    paths = stager.stage(request, database="env-db")

    with open(paths.script, encoding="utf-8") as file_obj:
        assert '--dbname "env-db"' in file_obj.read()


def test_init_script_falls_back_to_container_database_variable():
    script = WorkspaceStager.build_init_script(True, None)

    assert '--dbname "$POSTGRES_DB"' in script
    assert WorkspaceStager.build_init_script(False, "test-db") == ""


def test_stage_fails_before_creating_directory_when_dump_is_missing(temp_dirs, tmp_path):
    stager = WorkspaceStager(logger=DummyLogger(), make_temp_dir=temp_dirs)
    request = ProvisionRequest(name="test-psql", dump=str(tmp_path / "missing.sql"))

    with pytest.raises(StagingError, match="SQL dump not found"):
        stager.stage(request)

    assert temp_dirs.created == []


def test_stage_wraps_temp_directory_failures():
    def failing_temp_dir():
        raise OSError("read-only file system")

    stager = WorkspaceStager(logger=DummyLogger(), make_temp_dir=failing_temp_dir)

    with pytest.raises(StagingError, match="read-only file system"):
        stager.stage(ProvisionRequest(name="test-psql"))


def test_stage_wraps_dump_copy_failures(temp_dirs, dump_file):
    def copy_file(src, dst):
        if src == str(dump_file):
            raise PermissionError("permission denied")
        with open(src, "rb") as source, open(dst, "wb") as target:
            target.write(source.read())

    stager = WorkspaceStager(logger=DummyLogger(), make_temp_dir=temp_dirs, copy_file=copy_file)

    with pytest.raises(StagingError, match="permission denied"):
        stager.stage(ProvisionRequest(name="test-psql", dump=str(dump_file)))


def test_stage_uses_injected_file_operations(temp_dirs, dump_file):
    copies = []
    writes = []

    stager = WorkspaceStager(
        logger=DummyLogger(),
        make_temp_dir=temp_dirs,
        copy_file=lambda src, dst: copies.append((src, dst)),
        write_text=lambda path, content: writes.append((path, content)),
    )

    paths = stager.stage(ProvisionRequest(name="test-psql", database="db", dump=str(dump_file)))

    assert copies == [(str(TEMPLATE_PATH), paths.image), (str(dump_file), paths.dump)]
    assert [path for path, _ in writes] == [paths.script]


def test_stage_allocates_unique_directories(temp_dirs):
    stager = WorkspaceStager(logger=DummyLogger(), make_temp_dir=temp_dirs)
    request = ProvisionRequest(name="test-psql")

    first = stager.stage(request)
    second = stager.stage(request)

    assert first.root != second.root


def test_stage_downloads_remote_dump(temp_dirs):
    download_service = FakeDownloadService("SELECT 1;\n")
    stager = WorkspaceStager(
        logger=DummyLogger(),
        make_temp_dir=temp_dirs,
        download_service=download_service,
    )
    request = ProvisionRequest(
        name="test-psql",
        database="db",
        dump="https://example.com/dump.sql",
        dump_sha256="a" * 64,
    )

    paths = stager.stage(request)

    assert download_service.calls == [("https://example.com/dump.sql", paths.dump, "a" * 64)]
    with open(paths.dump, encoding="utf-8") as file_obj:
        assert file_obj.read() == "SELECT 1;\n"
    with open(paths.script, encoding="utf-8") as file_obj:
        assert '--dbname "db"' in file_obj.read()


def test_stage_rejects_remote_dump_without_download_service(temp_dirs):
    stager = WorkspaceStager(logger=DummyLogger(), make_temp_dir=temp_dirs)

    with pytest.raises(StagingError, match="Remote dumps are not supported"):
        stager.stage(ProvisionRequest(name="test-psql", dump="https://example.com/dump.sql"))


@pytest.mark.skipif(sys.platform == "win32", reason="POSIX permissions only")
def test_stage_marks_script_executable(temp_dirs, dump_file):
    chmod = RecordingChmod()
    stager = WorkspaceStager(
        logger=DummyLogger(),
        chmod=chmod,
        make_temp_dir=temp_dirs,
    )

    paths = stager.stage(ProvisionRequest(name="test-psql", dump=str(dump_file)))

    assert chmod.permissions == [(paths.script, 0o755)]
    assert os.access(paths.script, os.X_OK)


def test_stage_tolerates_chmod_failure(temp_dirs, dump_file):
    def failing_chmod(_path, _mode):
        raise PermissionError("read-only filesystem")

    stager = WorkspaceStager(logger=DummyLogger(), make_temp_dir=temp_dirs, chmod=failing_chmod)

    paths = stager.stage(ProvisionRequest(name="test-psql", dump=str(dump_file)))

    assert os.path.exists(paths.script)


def test_cleanup_removes_staging_directory(temp_dirs, dump_file):
    stager = WorkspaceStager(logger=DummyLogger(), make_temp_dir=temp_dirs)
    paths = stager.stage(ProvisionRequest(name="test-psql", dump=str(dump_file)))

    stager.cleanup(paths)

    assert not os.path.exists(paths.root)


def test_cleanup_logs_and_swallows_removal_errors(temp_dirs):
    warnings = []

    class RecordingLogger(DummyLogger):
        def warning(self, msg, *args, **_kwargs):
            warnings.append(msg % args)

    def failing_remove(_path):
        raise OSError("busy")

    stager = WorkspaceStager(
        logger=RecordingLogger(),
        make_temp_dir=temp_dirs,
        remove_tree=failing_remove,
    )
    paths = stager.stage(ProvisionRequest(name="test-psql"))

    stager.cleanup(paths)

    assert os.path.exists(paths.root)
    assert "busy" in warnings[0]


def test_cleanup_ignores_missing_paths():
    stager = WorkspaceStager(logger=DummyLogger())

    stager.cleanup(None)

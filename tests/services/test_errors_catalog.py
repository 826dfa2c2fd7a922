import pytest

from fastpg.errors_catalog import actionable_error


def test_actionable_error_formats_message_with_suggested_action():
    message = actionable_error("disk_full", name="test-psql")

    assert 'Container "test-psql" ran out of disk space.' in message
    assert "Suggested action:" in message
    assert "dangling=true" in message


def test_actionable_error_rejects_unknown_code():
    with pytest.raises(KeyError, match="Unknown error catalog key"):
        actionable_error("missing")

import pytest

from storesmoke.errors_catalog import actionable_error


def test_actionable_error_formats_message_with_suggested_action():
    message = actionable_error("server_exited", variation="kestrel-coreclr-x64", returncode="3")

    assert "Server process for kestrel-coreclr-x64 exited with code 3" in message
    assert "Suggested action:" in message


def test_actionable_error_formats_placeholders_in_suggestion():
    message = actionable_error("unknown_launch_command", host="helios")

    assert message.endswith("Add `helios` under `launch_commands` in the config file.")


def test_actionable_error_rejects_unknown_code():
    with pytest.raises(KeyError, match="Unknown error catalog key"):
        actionable_error("does_not_exist")

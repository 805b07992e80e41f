"""Integration tests for variable resolution and skip predicates."""

import pytest

from shellflow.services.shell import (
    VariableResolutionError,
    resolve_variables,
    should_skip,
)


class TestResolveVariables:
    """Tests for resolve_variables."""

    def test_captures_trimmed_stdout(self, tmp_path):
        result = resolve_variables({"GREETING": "echo '  hello  '"}, str(tmp_path))
        assert result == {"GREETING": "hello"}

    def test_runs_in_given_directory(self, tmp_path):
        (tmp_path / "version").write_text("1.2.3\n")
        assert resolve_variables({"VERSION": "cat version"}, str(tmp_path)) == {
            "VERSION": "1.2.3"
        }

    def test_empty_definitions(self, tmp_path):
        assert resolve_variables({}, str(tmp_path)) == {}

    def test_failing_command_raises(self, tmp_path):
        with pytest.raises(VariableResolutionError) as exc_info:
            resolve_variables({"OK": "echo ok", "BROKEN": "exit 4"}, str(tmp_path))

        assert exc_info.value.name == "BROKEN"
        assert str(exc_info.value) == "failed to initialize variable BROKEN: exit status 4"

    def test_none_definitions_raises(self, tmp_path):
        with pytest.raises(ValueError, match="definitions is required"):
            resolve_variables(None, str(tmp_path))


class TestShouldSkip:
    """Tests for should_skip."""

    def test_empty_command_never_skips(self, tmp_path):
        assert should_skip("", {}, str(tmp_path)) is False

    def test_zero_exit_skips(self, tmp_path):
        assert should_skip("true", {}, str(tmp_path)) is True

    def test_non_zero_exit_does_not_skip(self, tmp_path):
        assert should_skip("exit 1", {}, str(tmp_path)) is False

    def test_sees_variables(self, tmp_path):
        variables = {"MODE": "upgrade"}
        assert should_skip('[ "$MODE" = "upgrade" ]', variables, str(tmp_path)) is True
        assert should_skip('[ "$MODE" = "install" ]', variables, str(tmp_path)) is False

    def test_runs_in_given_directory(self, tmp_path):
        (tmp_path / "installed").touch()
        assert should_skip("test -f installed", None, str(tmp_path)) is True

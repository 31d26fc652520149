"""Tests for the subprocess runner."""

from __future__ import annotations

import sys
from pathlib import Path
from unittest.mock import patch

import pytest

from dumpguard.core.exceptions import FailedShellCommandError, ShellAccessDeniedError
from dumpguard.core.shell import CommandResult, SubprocessRunner


class TestGuard:
    def test_enabled_on_normal_system(self) -> None:
        SubprocessRunner().guard_enabled()

    def test_missing_primitive(self) -> None:
        runner = SubprocessRunner()
        with patch.object(SubprocessRunner, "check_primitive", return_value=False):
            with pytest.raises(ShellAccessDeniedError, match="subprocess.Popen"):
                runner.guard_enabled()

    def test_run_is_refused(self) -> None:
        runner = SubprocessRunner()
        with patch.object(SubprocessRunner, "check_primitive", return_value=False):
            with pytest.raises(ShellAccessDeniedError):
                runner.run([sys.executable, "-c", "pass"])

    def test_capabilities_cached(self) -> None:
        runner = SubprocessRunner()
        with patch.object(SubprocessRunner, "check_primitive", return_value=True) as check:
            runner.guard_enabled()
            runner.guard_enabled()
        assert check.call_count == 2  # once per primitive


class TestRun:
    def test_missing_binary(self) -> None:
        with pytest.raises(FailedShellCommandError, match="not found"):
            SubprocessRunner().run(["dumpguard-no-such-binary"])

    def test_exit_code_and_stderr(self) -> None:
        result = SubprocessRunner().run(
            [sys.executable, "-c", "import sys; sys.stderr.write('bad'); sys.exit(3)"]
        )
        assert not result.ok
        assert result.exit_code == 3
        assert result.stderr == "bad"

    def test_env_is_merged(self) -> None:
        result = SubprocessRunner().run(
            [sys.executable, "-c", "import os; print(os.environ['DUMPGUARD_TEST_VALUE'])"],
            env={"DUMPGUARD_TEST_VALUE": "from-env"},
        )
        assert result.ok
        assert result.stdout.strip() == "from-env"

    def test_stdin_and_stdout_files(self, tmp_path: Path) -> None:
        source = tmp_path / "in.txt"
        source.write_text("payload")
        target = tmp_path / "out.txt"

        result = SubprocessRunner().run(
            [sys.executable, "-c", "import sys; sys.stdout.write(sys.stdin.read().upper())"],
            stdin_path=source,
            stdout_path=target,
        )
        assert result.ok
        assert result.stdout == ""
        assert target.read_text() == "PAYLOAD"

    def test_stdin_closed_when_stdout_cannot_open(self, tmp_path: Path) -> None:
        source = tmp_path / "in.txt"
        source.write_text("payload")
        opened = []

        def tracking_open(*args, **kwargs):
            handle = open(*args, **kwargs)
            opened.append(handle)
            return handle

        with (
            patch("dumpguard.core.shell.open", side_effect=tracking_open, create=True),
            pytest.raises(FileNotFoundError),
        ):
            SubprocessRunner().run(
                [sys.executable, "-c", "pass"],
                stdin_path=source,
                stdout_path=tmp_path / "missing" / "out.txt",
            )
        assert len(opened) == 1
        assert opened[0].closed

    def test_timeout(self) -> None:
        runner = SubprocessRunner(timeout=0.5)
        with pytest.raises(FailedShellCommandError, match="timed out"):
            runner.run([sys.executable, "-c", "import time; time.sleep(5)"])


class TestCommandResult:
    def test_describe_prefers_stderr(self) -> None:
        result = CommandResult(argv=("mysql",), exit_code=1, stderr="access denied\n")
        assert result.describe() == "mysql failed (exit 1): access denied"

    def test_describe_without_output(self) -> None:
        result = CommandResult(argv=("psql",), exit_code=2)
        assert result.describe() == "psql failed (exit 2): no output"

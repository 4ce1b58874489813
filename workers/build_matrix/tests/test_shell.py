"""
test_shell — real subprocesses through CommandRunner.

Uses the running interpreter as the child so no extra tooling is needed.
"""
import os
import sys
import time

from build_matrix.core.shell import CommandRunner, merge_environment

PY = sys.executable


class TestRun:

    def test_captures_stdout(self, tmp_path):
        result = CommandRunner(cwd=tmp_path).run([PY, "-c", "print('hello')"], capture=True)
        assert result.ok
        assert result.stdout.strip() == "hello"
        assert result.duration_ms >= 0

    def test_nonzero_exit_is_returned_not_raised(self, tmp_path):
        result = CommandRunner(cwd=tmp_path).run([PY, "-c", "import sys; sys.exit(3)"])
        assert result.returncode == 3
        assert not result.ok
        assert "exited with code 3" in result.describe_failure()

    def test_runs_in_working_directory(self, tmp_path):
        result = CommandRunner(cwd=tmp_path).run([PY, "-c", "import os; print(os.getcwd())"], capture=True)
        assert os.path.samefile(result.stdout.strip(), tmp_path)

    def test_missing_executable(self, tmp_path):
        result = CommandRunner(cwd=tmp_path).run([str(tmp_path / "no-such-tool")])
        assert result.returncode == 127
        assert not result.ok

    def test_timeout(self, tmp_path):
        t0 = time.monotonic()
        result = CommandRunner(cwd=tmp_path, timeout=0.5).run([PY, "-c", "import time; time.sleep(10)"])
        assert result.timed_out
        assert not result.ok
        assert "timed out" in result.describe_failure()
        assert time.monotonic() - t0 < 8


class TestOverlay:

    def test_overlay_visible_to_child(self, tmp_path):
        runner = CommandRunner(cwd=tmp_path, env_overlay={"BUILD_MATRIX_PROBE": "dmd"})
        result = runner.run([PY, "-c", "import os; print(os.environ['BUILD_MATRIX_PROBE'])"], capture=True)
        assert result.stdout.strip() == "dmd"
        assert "BUILD_MATRIX_PROBE" not in os.environ

    def test_with_overlay_layers_and_keeps_settings(self, tmp_path):
        base = CommandRunner(cwd=tmp_path, env_overlay={"A": "1", "B": "1"}, timeout=5)
        layered = base.with_overlay({"B": "2"})
        assert layered.env_overlay == {"A": "1", "B": "2"}
        assert layered.cwd == tmp_path
        assert layered.timeout == 5
        assert base.env_overlay == {"A": "1", "B": "1"}

    def test_merge_environment(self):
        assert merge_environment({"PATH": "/x"}, base={"PATH": "/y", "HOME": "/h"}) == {
            "PATH": "/x",
            "HOME": "/h",
        }

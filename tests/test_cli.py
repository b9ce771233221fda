"""Tests for the slurmtunnel management CLI."""

import json
import shutil
import stat
import sys
import time
from unittest.mock import patch

import pytest
import yaml
from typer.testing import CliRunner

from slurmtunnel.cli import app
from slurmtunnel.watcher import WatcherSettings, render_watcher_bootstrap

from conftest import PLAIN_DUMP, VSCODE_DUMP, RecordingExecutor

runner = CliRunner()

KEYRING_SOCK = "/run/user/1000/keyring/ssh"

RECORDING_PYTHON = """\
import json, os, sys
with open(os.environ["RECORDED_ARGV"], "w") as f:
    json.dump(sys.argv[1:], f)
"""


class TestInit:
    def test_writes_default_config(self, tmp_path):
        path = tmp_path / "sub" / "config.yaml"
        result = runner.invoke(app, ["init", "--path", str(path)])

        assert result.exit_code == 0
        data = yaml.safe_load(path.read_text())
        assert data["connect_timeout"] == 120
        assert data["watcher"]["strategy"] == "socket"

    def test_refuses_to_overwrite(self, tmp_path):
        path = tmp_path / "config.yaml"
        path.write_text("connect_timeout: 5\n")

        result = runner.invoke(app, ["init", "--path", str(path)])
        assert result.exit_code == 1
        assert path.read_text() == "connect_timeout: 5\n"

        runner.invoke(app, ["init", "--path", str(path), "--force"])
        assert yaml.safe_load(path.read_text())["connect_timeout"] == 120


class TestShow:
    def test_config_table(self, tmp_path):
        path = tmp_path / "config.yaml"
        path.write_text("watcher:\n  grace_period: 42\n")
        result = runner.invoke(app, ["config", "--path", str(path)])

        assert result.exit_code == 0
        assert "watcher.grace_period" in result.output
        assert "42" in result.output

    def test_invalid_config_exits_1(self, tmp_path):
        path = tmp_path / "config.yaml"
        path.write_text("watcher:\n  strategy: heartbeat\n")
        result = runner.invoke(app, ["config", "--path", str(path)])
        assert result.exit_code == 1

    def test_resolve(self, tmp_path):
        with patch("slurmtunnel.cli.show.build_executor", return_value=RecordingExecutor(dump=VSCODE_DUMP)):
            result = runner.invoke(app, ["resolve", "cluster-vscode", "--path", str(tmp_path / "none.yaml")])

        assert result.exit_code == 0
        assert "vscode" in result.output
        assert "login.cluster.example.org" in result.output

    def test_script(self, tmp_path):
        with patch("slurmtunnel.cli.show.build_executor", return_value=RecordingExecutor(dump=VSCODE_DUMP)):
            result = runner.invoke(
                app, ["script", "cluster-vscode", "--job-id", "777", "--nodes", "gpu[01-02]",
                      "--path", str(tmp_path / "none.yaml")]
            )

        assert result.exit_code == 0
        assert "FOUND_JOB" in result.output
        assert "gpu01" in result.output
        assert "gpu02" in result.output

    def test_script_for_plain_alias(self, tmp_path):
        executor = RecordingExecutor(dump=PLAIN_DUMP)
        with patch("slurmtunnel.cli.show.build_executor", return_value=executor):
            result = runner.invoke(app, ["script", "plain", "--path", str(tmp_path / "none.yaml")])

        assert result.exit_code == 0
        assert "FOUND_JOB" not in result.output


class TestWatch:
    def test_pid_strategy_needs_ssh_pid(self, monkeypatch):
        monkeypatch.delenv("SSH_AUTH_SOCK", raising=False)
        result = runner.invoke(app, ["watch", "--job-id", "12345", "--user", "alice", "--strategy", "pid"])
        assert result.exit_code == 2

    def test_runs_watcher(self, tmp_path):
        with patch("slurmtunnel.cli.watch.LivenessWatcher") as mock_watcher:
            result = runner.invoke(
                app,
                ["watch", "--job-id", "12345", "--user", "alice", "--strategy", "pid", "--ssh-pid", "4100",
                 "--grace-period", "5", "--marker-dir", str(tmp_path)],
            )

        assert result.exit_code == 0
        settings, probe = mock_watcher.call_args[0][:2]
        assert settings.job_id == 12345
        assert settings.grace_period == 5
        assert probe.pid == 4100
        mock_watcher.return_value.run.assert_called_once()

    def test_socket_watcher_ignores_foreign_auth_sock(self, tmp_path):
        with patch("slurmtunnel.cli.watch.LivenessWatcher") as mock_watcher:
            result = runner.invoke(
                app,
                ["watch", "--job-id", "12345", "--user", "alice", "--strategy", "socket", "--arm-delay", "0",
                 "--marker-dir", str(tmp_path)],
                env={"SSH_AUTH_SOCK": KEYRING_SOCK},
            )

        assert result.exit_code == 0
        settings = mock_watcher.call_args[0][0]
        assert settings.ssh_pid is None

    def test_bootstrap_starts_watcher_with_foreign_auth_sock(self, fake_slurm, tmp_path):
        true_bin = shutil.which("true")
        if true_bin is None:
            pytest.skip("true not available")
        recorder = tmp_path / "python"
        recorder.write_text(f"#!{sys.executable}\n" + RECORDING_PYTHON)
        recorder.chmod(recorder.stat().st_mode | stat.S_IXUSR)
        recorded = tmp_path / "argv.json"

        settings = WatcherSettings(job_id=12345, user="alice", arm_delay=0, marker_dir=str(tmp_path))
        script = render_watcher_bootstrap(settings, runtime="python", shell=true_bin, python=str(recorder))
        proc = fake_slurm.run_bash(script, SSH_AUTH_SOCK=KEYRING_SOCK, RECORDED_ARGV=str(recorded))
        assert proc.returncode == 0

        deadline = time.monotonic() + 15
        while time.monotonic() < deadline and not (recorded.exists() and recorded.read_text()):
            time.sleep(0.05)
        argv = json.loads(recorded.read_text())
        assert argv[:3] == ["-m", "slurmtunnel", "watch"]

        with patch("slurmtunnel.cli.watch.LivenessWatcher") as mock_watcher:
            result = runner.invoke(app, argv[2:], env={"SSH_AUTH_SOCK": KEYRING_SOCK})

        assert result.exit_code == 0
        mock_watcher.return_value.run.assert_called_once()

"""Tests for the startup sequence."""

import glob
import os
from unittest.mock import MagicMock

import pytest

from lspsupervisor.commands import DEGLOB_COMMAND
from lspsupervisor.diagnostics import DONE_MESSAGE
from lspsupervisor.errors import ToolchainResolutionFailed
from lspsupervisor.host import Range, TextEditor
from lspsupervisor.servers.process import spawn
from lspsupervisor.servers.session import SessionState
from lspsupervisor.servers.toolchain import ToolchainResolver
from lspsupervisor.supervisor import DEPRECATED_CONFIG_WARNING, Supervisor, activate, warn_on_deprecated_config
from lspsupervisor.tasks import DEFAULT_TASKS, add_build_tasks
from tests.conftest import FakeHost, wait_until


@pytest.fixture
def server_resolver(fake_server_command):
    resolver = MagicMock(spec=ToolchainResolver)
    resolver.resolve.side_effect = lambda: spawn(fake_server_command)
    return resolver


@pytest.fixture
def supervisors():
    started = []
    yield started
    for supervisor in started:
        supervisor.deactivate()


def start(host, supervisors, **kwargs):
    kwargs.setdefault("environ", {})
    supervisor = activate(host, **kwargs)
    supervisors.append(supervisor)
    return supervisor


class TestDeprecatedConfigCheck:
    def test_warns_when_present(self, host, tmp_path):
        (tmp_path / "rls.toml").write_text("")

        warn_on_deprecated_config(host)

        assert host.warnings == [DEPRECATED_CONFIG_WARNING]

    def test_silent_when_absent(self, host):
        warn_on_deprecated_config(host)

        assert host.warnings == []

    def test_silent_for_missing_workspace(self, tmp_path):
        host = FakeHost(str(tmp_path / "gone"))

        warn_on_deprecated_config(host)

        assert host.warnings == []


class TestBuildTasks:
    def test_adds_defaults_when_missing(self, host):
        assert add_build_tasks(host) is True

        assert host.settings["tasks"] == DEFAULT_TASKS
        assert [task["taskName"] for task in host.settings["tasks"]["tasks"]] == [
            "cargo build", "cargo run", "cargo test",
        ]

    def test_keeps_existing_tasks(self, tmp_path):
        host = FakeHost(str(tmp_path), settings={"tasks": {"version": "2.0.0", "tasks": []}})

        assert add_build_tasks(host) is False
        assert host.updates == []


class TestSupervisor:
    def test_reports_starting_up_first(self, host, supervisors):
        start(host, supervisors, environ={"SERVER_PATH": "/nonexistent/rls"})

        assert host.status_messages[0] == "RLS analysis: starting up"

    def test_missing_binary_leaves_host_usable(self, host, supervisors):
        supervisor = start(host, supervisors, environ={"SERVER_PATH": "/nonexistent/rls"})

        assert wait_until(lambda: supervisor.session.state is SessionState.FAILED)
        assert wait_until(lambda: "RLS could not be started" in host.status_messages)
        assert "Could not start RLS" in host.warnings
        assert DEGLOB_COMMAND in host.commands

    def test_warns_about_deprecated_config(self, host, tmp_path, supervisors):
        (tmp_path / "rls.toml").write_text("")

        supervisor = start(host, supervisors, environ={"SERVER_PATH": "/nonexistent/rls"})
        supervisor.config_check_thread.join(timeout=5)

        assert DEPRECATED_CONFIG_WARNING in host.warnings

    def test_writes_default_tasks(self, host, supervisors):
        start(host, supervisors, environ={"SERVER_PATH": "/nonexistent/rls"})

        assert host.settings["tasks"] == DEFAULT_TASKS

    def test_toolchain_failure_resolves_to_failed(self, host, supervisors):
        resolver = MagicMock(spec=ToolchainResolver)
        resolver.resolve.side_effect = ToolchainResolutionFailed("rustup not found on PATH")

        supervisor = start(host, supervisors, resolver=resolver)

        assert wait_until(lambda: supervisor.session.state is SessionState.FAILED)
        resolver.resolve.assert_called_once_with()
        assert wait_until(lambda: host.status_messages[-1] == "RLS could not be started")
        assert host.status_messages[0] == "RLS analysis: starting up"

    def test_toolchain_server_runs_and_reports_analysis(self, host, supervisors, server_resolver, monkeypatch):
        monkeypatch.setenv("FAKE_SERVER_MODE", "normal")

        supervisor = start(host, supervisors, resolver=server_resolver)

        assert wait_until(lambda: supervisor.session.is_running())
        server_resolver.resolve.assert_called_once_with()
        assert wait_until(lambda: DONE_MESSAGE in host.status_messages)
        assert not supervisor.aggregator.busy

    def test_deglob_timeout_warns_once(self, host, supervisors, server_resolver, monkeypatch, tmp_path):
        monkeypatch.setenv("FAKE_SERVER_MODE", "silent")
        supervisor = start(host, supervisors, resolver=server_resolver, request_timeout=0.2)
        assert wait_until(lambda: supervisor.session.is_running())
        source = tmp_path / "main.rs"
        source.write_text("use std::io::*;\n")

        host.commands[DEGLOB_COMMAND](TextEditor.for_path(str(source), Range.from_coordinates(0, 4, 0, 14)))

        assert host.warned.wait(5)
        assert wait_until(lambda: len(host.warnings) >= 1)
        assert len(host.warnings) == 1
        assert "timeout" in host.warnings[0]

    def test_two_activations_log_to_distinct_files(self, tmp_path, supervisors, server_resolver, monkeypatch):
        monkeypatch.setenv("FAKE_SERVER_MODE", "normal")
        settings = {"rust-client.logToFile": True}

        for run in range(2):
            host = FakeHost(str(tmp_path), settings=settings)
            supervisor = Supervisor(host, environ={}, resolver=server_resolver)
            supervisor.activate()
            assert wait_until(lambda: supervisor.session.is_running())
            assert wait_until(lambda: len(glob.glob(os.path.join(str(tmp_path), "rls*.log"))) == run + 1)
            supervisor.deactivate()

        log_files = glob.glob(os.path.join(str(tmp_path), "rls*.log"))
        assert len(log_files) == 2
        for path in log_files:
            with open(path, encoding="utf-8") as f:
                assert f.read().startswith("fake server starting")

    def test_deactivate_stops_session(self, host, supervisors, server_resolver, monkeypatch):
        monkeypatch.setenv("FAKE_SERVER_MODE", "normal")
        supervisor = start(host, supervisors, resolver=server_resolver)
        assert wait_until(lambda: supervisor.session.is_running())

        supervisor.deactivate()

        assert supervisor.session.state is SessionState.STOPPED
        assert host.subscriptions == []
        assert DEGLOB_COMMAND not in host.commands

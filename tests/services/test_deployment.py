import subprocess

import pytest

import storesmoke.services.deployment as deployment_module
from storesmoke.constants import RUNTIME_ARCHITECTURE_ENV, RUNTIME_FLAVOR_ENV
from storesmoke.errors import SmokeTestError
from storesmoke.models import Architecture, HostType, RuntimeFlavor, Variation
from storesmoke.services.deployment import DeploymentController


class DummyLogger:
    def debug(self, *_args, **_kwargs):
        return None

    def info(self, *_args, **_kwargs):
        return None

    def warning(self, *_args, **_kwargs):
        return None


class DummyConsole:
    def print(self, *_args, **_kwargs):
        return None


class FakePopen:
    def __init__(self, exit_immediately=None, ignores_terminate=False, ignores_kill=False):
        self.pid = 4242
        self.returncode = exit_immediately
        self.ignores_terminate = ignores_terminate
        self.ignores_kill = ignores_kill
        self.terminated = 0
        self.killed = 0

    def poll(self):
        return self.returncode

    def terminate(self):
        self.terminated += 1
        if not self.ignores_terminate:
            self.returncode = -15

    def kill(self):
        self.killed += 1
        if not self.ignores_kill:
            self.returncode = -9

    def wait(self, timeout=None):
        if self.returncode is None:
            raise subprocess.TimeoutExpired("server", timeout)
        return self.returncode


class FakeSubprocess:
    DEVNULL = subprocess.DEVNULL
    STDOUT = subprocess.STDOUT
    TimeoutExpired = subprocess.TimeoutExpired

    def __init__(self, popen=None, error=None):
        self.popen = popen or FakePopen()
        self.error = error
        self.calls = []

    def Popen(self, cmd, **kwargs):
        self.calls.append((cmd, kwargs))
        if self.error is not None:
            raise self.error
        return self.popen


def _variation(**kwargs) -> Variation:
    values = {
        "host": HostType.KESTREL,
        "runtime": RuntimeFlavor.CORE_CLR,
        "architecture": Architecture.X64,
        "base_url": "http://localhost:5004/",
    }
    values.update(kwargs)
    return Variation(**values)


def _controller(fake_subprocess, **kwargs) -> DeploymentController:
    return DeploymentController(
        logger=DummyLogger(),
        console=DummyConsole(),
        connection_string_factory=lambda name: f"postgresql://postgres@localhost:5432/{name}",
        app_path="/srv/musicstore",
        launch_grace_seconds=0,
        subprocess_module=fake_subprocess,
        **kwargs,
    )


@pytest.fixture(autouse=True)
def _no_sleep(monkeypatch):
    monkeypatch.setattr(deployment_module.time, "sleep", lambda _seconds: None)


def test_build_command_formats_default_template():
    controller = _controller(FakeSubprocess())

    assert controller.build_command(_variation(), "musicstore_abc") == [
        "dnx",
        "/srv/musicstore",
        "kestrel",
        "--server.urls",
        "http://localhost:5004/",
    ]


def test_build_command_uses_port_for_helios():
    controller = _controller(FakeSubprocess())

    command = controller.build_command(_variation(host=HostType.HELIOS, base_url="http://localhost:5001"), "db")

    assert command == ["iisexpress", "/port:5001", "/path:/srv/musicstore"]


def test_build_command_rejects_unknown_host():
    controller = _controller(FakeSubprocess())
    controller.launch_commands.pop("weblistener")

    with pytest.raises(SmokeTestError, match="No launch command configured for host type `weblistener`"):
        controller.build_command(_variation(host=HostType.WEB_LISTENER), "db")


def test_build_environment_carries_connection_string_and_runtime(monkeypatch):
    monkeypatch.setenv("PATH_MARKER", "kept")
    controller = _controller(
        FakeSubprocess(),
        connection_string_env="Data__DefaultConnection__ConnectionString",
        extra_env={"ASPNET_ENV": "SocialTesting"},
    )

    env = controller.build_environment(_variation(), "musicstore_abc")

    assert env["Data__DefaultConnection__ConnectionString"].endswith("/musicstore_abc")
    assert env[RUNTIME_FLAVOR_ENV] == "coreclr"
    assert env[RUNTIME_ARCHITECTURE_ENV] == "x64"
    assert env["ASPNET_ENV"] == "SocialTesting"
    assert env["PATH_MARKER"] == "kept"


def test_start_launches_process_with_child_environment():
    fake = FakeSubprocess()
    controller = _controller(fake)

    handle = controller.start(_variation(), "musicstore_abc")

    cmd, kwargs = fake.calls[0]
    assert cmd[0] == "dnx"
    assert kwargs["cwd"] == "/srv/musicstore"
    assert kwargs["stdout"] == subprocess.DEVNULL
    assert kwargs["env"]["SQLAZURECONNSTR_DefaultConnection"].endswith("/musicstore_abc")
    assert handle.pid == 4242
    assert handle.has_exited() is False


def test_start_writes_server_output_to_log_dir(tmp_path):
    fake = FakeSubprocess()
    controller = _controller(fake, server_log_dir=str(tmp_path / "logs"))

    handle = controller.start(_variation(), "musicstore_abc")

    assert (tmp_path / "logs" / "kestrel-coreclr-x64-musicstore_abc.log").exists()
    assert fake.calls[0][1]["stdout"] is handle.log_file
    controller.stop(handle)
    assert handle.log_file.closed


def test_start_raises_when_process_exits_immediately():
    controller = _controller(FakeSubprocess(popen=FakePopen(exit_immediately=3)))

    with pytest.raises(SmokeTestError, match="exited with code 3"):
        controller.start(_variation(), "musicstore_abc")


def test_start_reports_missing_launcher():
    controller = _controller(FakeSubprocess(error=FileNotFoundError("dnx")))

    with pytest.raises(SmokeTestError, match="Required command not found: dnx"):
        controller.start(_variation(), "musicstore_abc")


def test_stop_terminates_and_is_idempotent():
    popen = FakePopen()
    controller = _controller(FakeSubprocess(popen=popen))
    handle = controller.start(_variation(), "musicstore_abc")

    assert controller.stop(handle) is True
    assert controller.stop(handle) is True
    assert popen.terminated == 1
    assert handle.stopped is True


def test_stop_kills_process_that_ignores_terminate():
    popen = FakePopen(ignores_terminate=True)
    controller = _controller(FakeSubprocess(popen=popen), stop_timeout=0.01)
    handle = controller.start(_variation(), "musicstore_abc")

    assert controller.stop(handle) is True
    assert popen.killed == 1


def test_stop_reports_process_that_cannot_be_killed():
    popen = FakePopen(ignores_terminate=True, ignores_kill=True)
    controller = _controller(FakeSubprocess(popen=popen), stop_timeout=0.01)
    handle = controller.start(_variation(), "musicstore_abc")

    assert controller.stop(handle) is False
    assert handle.stopped is False


def test_stop_accepts_missing_handle():
    assert _controller(FakeSubprocess()).stop(None) is True

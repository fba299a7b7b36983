from __future__ import annotations

import io
from types import SimpleNamespace

import pytest

from pebble_host.app.controller import ActionResult
from pebble_host.cli.args import parse_args
from pebble_host.cli.commands import cmd_run, print_result
from pebble_host.cli.main import main
from pebble_host.cli.prompt import ConsolePrompter
from pebble_host.core.errors import UpgradeFailedError
from pebble_host.runtime.display import ReconnectState, ReconnectStatus


def _prompter(*inputs):
    feed = list(inputs)

    def fake_input(prompt):
        if not feed:
            raise EOFError
        return feed.pop(0)

    return ConsolePrompter(input_fn=fake_input, out=io.StringIO())


# ---------------- prompter ----------------

def test_choose_by_number_and_name():
    p = _prompter("2", "pebble time")
    assert p.choose("Pick", ["Pebble Classic", "Pebble Time"]) == "Pebble Time"
    assert p.choose("Pick", ["Pebble Classic", "Pebble Time"]) == "Pebble Time"


@pytest.mark.parametrize("raw", ["", "   ", "9", "nonsense"])
def test_choose_invalid_or_empty_is_none(raw):
    assert _prompter(raw).choose("Pick", ["No", "Yes"]) is None


def test_eof_is_cancel():
    p = _prompter()
    assert p.choose("Pick", ["No", "Yes"]) is None
    assert p.ask("IP?") is None


def test_ask_strips():
    assert _prompter("  10.0.0.2 ").ask("IP?") == "10.0.0.2"


# ---------------- args ----------------

def test_run_emulator_without_platform():
    args = parse_args(["run", "--emulator"])
    assert args.emulator == ""
    assert args.phone is None


def test_run_phone_with_ip_and_logs():
    args = parse_args(["run", "--phone", "10.0.0.2", "--logs"])
    assert args.phone == "10.0.0.2"
    assert args.logs


def test_run_emulator_and_phone_are_exclusive():
    with pytest.raises(SystemExit):
        parse_args(["run", "--emulator", "basalt", "--phone", "1.2.3.4"])


def test_battery_percent_validated():
    assert parse_args(["battery", "--percent", "80", "--charging", "yes"]).charging is True
    with pytest.raises(SystemExit):
        parse_args(["battery", "--percent", "101"])


def test_new_project_options():
    args = parse_args(["new-project", "--name", "face", "--dir", "/tmp", "--type", "C and JS"])
    assert (args.name, args.directory, args.project_type) == ("face", "/tmp", "C and JS")


# ---------------- output ----------------

def test_print_result_cancel_is_not_an_error(capsys):
    assert print_result(ActionResult.user_cancelled("Platform selection")) == 0
    assert "ERROR" not in capsys.readouterr().out


def test_print_result_failure_shows_hint(capsys):
    err = UpgradeFailedError("boom", hint="Command: uv tool upgrade pebble-tool")
    assert print_result(ActionResult.failed(err)) == 1
    out = capsys.readouterr().out
    assert "ERROR: boom" in out
    assert "Hint: Command: uv tool upgrade pebble-tool" in out


# ---------------- main ----------------

def test_main_status_with_missing_tool(tmp_path, capsys):
    cfg = tmp_path / "config.yml"
    cfg.write_text(
        f"tool: pebble-host-test-missing-tool\nsettings_path: {tmp_path / 'settings.yml'}\n",
        encoding="utf-8",
    )
    rc = main(["--config", str(cfg), "--log-file", str(tmp_path / "app.log"), "status"])
    assert rc == 0
    out = capsys.readouterr().out
    assert "not installed" in out
    assert "Upgrade:   required" in out


def test_main_bad_config_prints_error(tmp_path, capsys):
    cfg = tmp_path / "config.yml"
    cfg.write_text("bogus: 1\n", encoding="utf-8")
    rc = main(["--config", str(cfg), "--log-file", str(tmp_path / "app.log"), "status"])
    assert rc == 1
    assert "ERROR: Unknown config keys: bogus" in capsys.readouterr().out


def test_main_sdk_activate_reports_missing_tool(tmp_path, capsys):
    cfg = tmp_path / "config.yml"
    cfg.write_text(
        f"tool: pebble-host-test-missing-tool\nsettings_path: {tmp_path / 'settings.yml'}\n",
        encoding="utf-8",
    )
    rc = main(["--config", str(cfg), "--log-file", str(tmp_path / "app.log"), "sdk-activate", "4.5"])
    assert rc == 1
    assert "ERROR: 'pebble-host-test-missing-tool' was not found." in capsys.readouterr().out


def test_sdk_activate_requires_version():
    assert parse_args(["sdk-activate", "4.5"]).version == "4.5"
    with pytest.raises(SystemExit):
        parse_args(["sdk-activate"])


# ---------------- run --display ----------------

class FakeLoop:
    """Display loop stand-in: connected until `exhaust_after` or `interrupt_after` waits."""
    def __init__(self, *, exhaust_after=None, interrupt_after=None):
        self.exhaust_after = exhaust_after
        self.interrupt_after = interrupt_after
        self.waits = 0
        self.disposed = False
        self.status = ReconnectStatus.CONNECTED

    @property
    def is_running(self):
        return self.status is ReconnectStatus.CONNECTED

    @property
    def state(self):
        return ReconnectState(status=self.status)

    def wait(self, timeout=None):
        self.waits += 1
        if self.interrupt_after is not None and self.waits >= self.interrupt_after:
            raise KeyboardInterrupt
        if self.exhaust_after is not None and self.waits >= self.exhaust_after:
            self.status = ReconnectStatus.EXHAUSTED
        return self.state

    def dispose(self):
        self.disposed = True
        self.status = ReconnectStatus.CANCELLED


def _run_controller(loop, events):
    session = SimpleNamespace(wait_idle=lambda timeout=None: events.append("idle") or True)
    return SimpleNamespace(
        run_on_emulator=lambda *a, **kw: ActionResult(ok=True, message="sent", display=loop),
        channel=SimpleNamespace(acquire=lambda name: session),
        commands=SimpleNamespace(session_name="Pebble Run", interrupt=lambda name=None: 0),
        close_display=lambda: events.append("close_display"),
    )


def _run_args(**kw):
    base = dict(phone=None, emulator="basalt", logs=False, display=True)
    base.update(kw)
    return SimpleNamespace(**base)


def test_run_with_display_keeps_loop_after_install_finishes(capsys):
    events = []
    loop = FakeLoop(exhaust_after=4)
    rc = cmd_run(_run_controller(loop, events), _run_args())

    assert rc == 1
    assert loop.waits == 4
    assert events == ["idle", "close_display"]
    assert "Ctrl+C to close" in capsys.readouterr().out


def test_run_with_display_ctrl_c_closes_cleanly(capsys):
    events = []
    loop = FakeLoop(interrupt_after=3)
    rc = cmd_run(_run_controller(loop, events), _run_args())

    assert rc == 0
    assert loop.disposed
    assert events[-1] == "close_display"
    assert "Display closed." in capsys.readouterr().out


def test_run_without_display_returns_after_install():
    events = []
    ctl = _run_controller(None, events)
    rc = cmd_run(ctl, _run_args(display=False))
    assert rc == 0
    assert events == ["idle", "close_display"]

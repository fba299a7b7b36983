from __future__ import annotations

import os
import subprocess
import time

import pytest

from pebble_host.core.errors import SessionUnavailableError
from pebble_host.session.shell import ShellSession

posix_only = pytest.mark.skipif(os.name != "posix", reason="uses /bin/sh process groups")


class RecordingSink:
    def __init__(self):
        self.events = []

    def on_command(self, evt):
        self.events.append(evt)

    def close(self):
        pass


@pytest.fixture
def make_session():
    created = []

    def _make(**kw):
        kw.setdefault("stdout", subprocess.DEVNULL)
        kw.setdefault("stderr", subprocess.DEVNULL)
        kw.setdefault("interrupt_grace_s", 2.0)
        s = ShellSession("test", **kw)
        created.append(s)
        return s

    yield _make
    for s in created:
        s.close()


@posix_only
def test_exit_codes_are_reported(make_session):
    s = make_session()
    ok = s.submit("true")
    bad = s.submit("exit 3")
    assert ok.wait(5).status == "ok"
    out = bad.wait(5)
    assert out.status == "fail"
    assert out.exit_code == 3


@posix_only
def test_commands_run_in_submission_order(make_session, tmp_path):
    s = make_session(cwd=str(tmp_path))
    s.submit("echo one >> log.txt")
    s.submit("sleep 0.1; echo two >> log.txt")
    last = s.submit("echo three >> log.txt")
    assert last.wait(5).ok
    assert (tmp_path / "log.txt").read_text().split() == ["one", "two", "three"]


@posix_only
def test_interrupt_stops_foreground_and_drops_queue(make_session):
    s = make_session()
    running = s.submit("sleep 30")
    queued = s.submit("true")

    deadline = time.monotonic() + 5
    while not s.busy or s._current is None:
        assert time.monotonic() < deadline
        time.sleep(0.01)

    t0 = time.monotonic()
    affected = s.interrupt()
    assert affected == 2
    assert time.monotonic() - t0 < 5

    assert running.wait(0).status == "interrupted"
    assert queued.wait(0).status == "interrupted"
    assert s.is_live
    assert s.wait_idle(2)

    after = s.submit("exit 0")
    assert after.wait(5).ok


@posix_only
def test_interrupt_when_idle_is_noop(make_session):
    s = make_session()
    assert s.interrupt() == 0
    assert s.submit("true").wait(5).ok


@posix_only
def test_sink_sees_send_and_completion(make_session):
    sink = RecordingSink()
    s = make_session(cmd_sink=sink)
    p = s.submit("exit 0")
    p.wait(5)
    deadline = time.monotonic() + 5
    while not any(e.kind == "ok" for e in sink.events):
        assert time.monotonic() < deadline
        time.sleep(0.01)

    kinds = [e.kind for e in sink.events if e.token == p.token]
    assert kinds == ["send", "ok"]
    assert all(e.session == "test" for e in sink.events)
    done = [e for e in sink.events if e.kind == "ok"]
    assert done[0].exit_code == 0
    assert done[0].command_line == "exit 0"


def test_spawn_failure_resolves_127(make_session):
    def broken_popen(*a, **kw):
        raise OSError("no shell")

    s = make_session(popen=broken_popen)
    out = s.submit("anything").wait(5)
    assert out.status == "fail"
    assert out.exit_code == 127


def test_submit_after_close_raises(make_session):
    s = make_session()
    s.close()
    assert not s.is_live
    with pytest.raises(SessionUnavailableError):
        s.submit("true")


def test_close_is_idempotent(make_session):
    s = make_session()
    s.close()
    s.close()
    assert not s.is_live

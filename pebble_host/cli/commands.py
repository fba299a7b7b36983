# pebble_host/cli/commands.py
from __future__ import annotations

import threading
from typing import Optional

from pebble_host.app.controller import ActionResult, GateResult, PebbleController
from pebble_host.core.errors import ConnectionExhaustedError
from pebble_host.runtime.display import DisplayReconnectLoop, ReconnectState, ReconnectStatus


# ---------------- printing ----------------

def print_result(res: ActionResult) -> int:
    if res.cancelled:
        print(res.message or "Cancelled.")
        return 0
    if not res.ok:
        print(f"ERROR: {res.message}")
        if res.error is not None and res.error.hint:
            print(f"Hint: {res.error.hint}")
        return 1
    if res.message:
        print(res.message)
    return 0


def print_gate(gate: GateResult) -> None:
    for step in gate.steps:
        state = "ok" if step.ok else "FAILED"
        print(f"  {step.step}: {state}")
        if not step.ok and step.stderr.strip():
            print(step.stderr.rstrip())
    st = gate.status
    print(f"Tool: {st.tool_version or '-'}  SDK: {st.sdk_version or '-'}")


def _wait_foreground(controller: PebbleController, session_name: Optional[str] = None) -> int:
    """Block until the session is idle; Ctrl+C interrupts the command."""
    name = session_name or controller.commands.session_name
    session = controller.channel.acquire(name)
    try:
        while not session.wait_idle(0.5):
            pass
    except KeyboardInterrupt:
        print("\nInterrupting...")
        controller.commands.interrupt(name)
        return 130
    return 0


def _hold_display(loop: DisplayReconnectLoop) -> int:
    """Keep the display loop running until Ctrl+C or Exhausted."""
    try:
        while loop.is_running:
            loop.wait(0.5)
    except KeyboardInterrupt:
        loop.dispose()
        print("\nDisplay closed.")
        return 0
    return 1 if loop.state.status is ReconnectStatus.EXHAUSTED else 0


# ---------------- commands ----------------

def cmd_status(controller: PebbleController) -> int:
    st = controller.check_toolchain()
    pol = controller.policy
    print(f"Tool:      {st.tool_version or 'not installed'} (min {pol.min_tool_version})")
    print(f"SDK:       {st.sdk_version or 'none'} (min {pol.min_sdk_version})")
    print(f"Upgrade:   {'required' if pol.needs_tool_upgrade(st) else 'no'}")
    print(f"SDK setup: {'required' if pol.needs_sdk_install(st) else 'no'}")
    return 0


def cmd_sdks(controller: PebbleController) -> int:
    listing = controller.list_sdks()
    print("Installed SDKs:")
    for v in listing.installed:
        print(f"  {v}{' (active)' if v == listing.active else ''}")
    if not listing.installed:
        print("  (none)")
    if listing.available:
        print("Available SDKs:")
        for v in listing.available:
            print(f"  {v}")
    return 0


def cmd_upgrade(controller: PebbleController) -> int:
    gate = controller.ensure_toolchain()
    print_gate(gate)
    if not gate.ok:
        print(f"ERROR: {gate.message}")
        if gate.error is not None and gate.error.hint:
            print(f"Hint: {gate.error.hint}")
        return 1
    print("Toolchain ready.")
    return 0


def cmd_sdk_activate(controller: PebbleController, args) -> int:
    res = controller.activate_sdk(args.version)
    if not res.ok:
        print(f"ERROR: {res.message}")
        if res.error is not None and res.error.hint:
            print(f"Hint: {res.error.hint}")
        return 1
    st = controller.check_toolchain()
    print(f"Active SDK: {st.sdk_version or '-'}")
    return 0


def cmd_run(controller: PebbleController, args) -> int:
    if args.phone is not None:
        res = controller.run_on_phone(args.phone or None, logs=args.logs)
        rc = print_result(res)
        return rc if rc or res.cancelled else _wait_foreground(controller)

    res = controller.run_on_emulator(
        args.emulator or None,
        logs=args.logs,
        display=args.display,
        on_display_state=_print_display_state,
        on_display_exhausted=_print_exhausted,
    )
    rc = print_result(res)
    if rc or res.cancelled:
        return rc
    try:
        rc = _wait_foreground(controller)
        if rc == 0 and res.display is not None:
            print("Keeping the emulator display open; Ctrl+C to close.")
            rc = _hold_display(res.display)
        return rc
    finally:
        controller.close_display()


def cmd_display(controller: PebbleController, args) -> int:
    loop = controller.open_display(on_state=_print_display_state, on_exhausted=_print_exhausted)
    return _hold_display(loop)


def cmd_link_loss(controller: PebbleController, args) -> int:
    done = threading.Event()

    def _progress(fraction: float) -> None:
        print(f"\rLink loss debounce: {fraction * 100:5.1f}%", end="", flush=True)

    def _done(outcome: str) -> None:
        print(f"\nLink loss {outcome}.")
        done.set()

    timer, res = controller.simulate_link_loss(
        args.platform, ticks=args.ticks, on_progress=_progress, on_done=_done
    )
    rc = print_result(res)
    if timer is None or rc:
        return rc
    try:
        while not done.wait(0.5):
            pass
    except KeyboardInterrupt:
        timer.cancel()
        timer.wait(2.0)
    return _wait_foreground(controller, controller.commands.control_session_name)


def cmd_emulator_control(controller: PebbleController, args) -> int:
    platform: Optional[str] = getattr(args, "platform", None)
    cmds = controller.commands

    if args.cmd == "app-config":
        res = controller.open_app_config(platform)
    elif args.cmd == "battery":
        res = controller.set_battery(platform, percent=args.percent, charging=args.charging)
    elif args.cmd == "bt":
        res = controller.set_bluetooth(args.connected, platform)
    elif args.cmd in ("tap", "time-format", "quick-view"):
        resolved = controller.resolve_platform(platform)
        if not resolved:
            return print_result(ActionResult.user_cancelled("Platform selection"))
        if args.cmd == "tap":
            completion = cmds.tap(resolved, args.direction)
        elif args.cmd == "time-format":
            completion = cmds.set_time_format(resolved, args.format)
        else:
            completion = cmds.set_timeline_quick_view(resolved, args.state == "on")
        res = ActionResult(ok=True, completion=completion)
    elif args.cmd == "kill":
        res = ActionResult(ok=True, completion=cmds.kill())
    elif args.cmd == "wipe":
        res = ActionResult(ok=True, completion=cmds.wipe())
    else:
        return 2

    session_name = None if args.cmd in ("kill", "wipe") else cmds.control_session_name
    rc = print_result(res)
    return rc if rc or res.cancelled else _wait_foreground(controller, session_name)


def cmd_new_project(controller: PebbleController, args) -> int:
    cancel = threading.Event()
    try:
        res = controller.new_project(
            name=args.name,
            directory=args.directory,
            project_type=args.project_type,
            cancel=cancel,
        )
    except KeyboardInterrupt:
        cancel.set()
        controller.commands.interrupt()
        return 130
    return print_result(res)


# ---------------- display callbacks ----------------

def _print_display_state(st: ReconnectState) -> None:
    if st.status is ReconnectStatus.RETRYING:
        print(f"Display: waiting for emulator ({st.attempt}/{st.ceiling})")
    elif st.status is ReconnectStatus.CONNECTED:
        print("Display: connected")
    elif st.status is ReconnectStatus.CANCELLED:
        print("Display: closed")


def _print_exhausted(err: ConnectionExhaustedError) -> None:
    print(f"ERROR: {err.message}")
    if err.hint:
        print(f"Hint: {err.hint}")

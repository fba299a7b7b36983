# pebble_host/cli/args.py
from __future__ import annotations

import argparse
from typing import Optional

from pebble_host.runtime.command_runner import PLATFORMS, PROJECT_TYPES


def _yes_no(v: str) -> bool:
    s = str(v).strip().lower()
    if s in ("1", "true", "yes", "on"):
        return True
    if s in ("0", "false", "no", "off"):
        return False
    raise argparse.ArgumentTypeError(f"Invalid bool literal '{v}' (use yes/no)")


def _percent(v: str) -> int:
    try:
        n = int(v)
    except ValueError:
        raise argparse.ArgumentTypeError(f"Invalid percent '{v}'") from None
    if not 0 <= n <= 100:
        raise argparse.ArgumentTypeError("percent must be within 0..100")
    return n


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(prog="pebble-host")
    parser.add_argument("--config", default=None, help="YAML config file (optional).")
    parser.add_argument("--log-file", default=None, help="Application log file (default: state dir).")
    parser.add_argument("-v", "--verbose", action="store_true")
    sub = parser.add_subparsers(dest="cmd", required=True)

    platform_help = "Emulator platform id or name (" + ", ".join(PLATFORMS.values()) + ")."

    common = argparse.ArgumentParser(add_help=False)
    common.add_argument("--platform", default=None, help=platform_help)

    sub.add_parser("status", help="Show toolchain and SDK versions.")
    sub.add_parser("sdks", help="List installed and available SDKs.")
    sub.add_parser("upgrade", help="Upgrade toolchain / install SDK if required.")
    p_act = sub.add_parser("sdk-activate", help="Make an installed SDK the active one.")
    p_act.add_argument("version")

    p_run = sub.add_parser("run", help="Build and install on emulator or phone.")
    where = p_run.add_mutually_exclusive_group()
    where.add_argument("--emulator", nargs="?", const="", default=None, metavar="PLATFORM", help=platform_help)
    where.add_argument("--phone", nargs="?", const="", default=None, metavar="IP")
    p_run.add_argument("--logs", action="store_true", help="Stream app logs after install.")
    p_run.add_argument("--display", action="store_true", help="Keep the emulator display connected.")

    sub.add_parser("display", help="Connect to the emulator display until Ctrl+C.")
    sub.add_parser("app-config", parents=[common], help="Open the app configuration page.")

    p_batt = sub.add_parser("battery", parents=[common], help="Set emulated battery state.")
    p_batt.add_argument("--percent", type=_percent, default=None)
    p_batt.add_argument("--charging", type=_yes_no, default=None)

    p_bt = sub.add_parser("bt", parents=[common], help="Set emulated Bluetooth connection.")
    p_bt.add_argument("--connected", type=_yes_no, required=True)

    p_loss = sub.add_parser("link-loss", parents=[common], help="Drop Bluetooth with debounce countdown.")
    p_loss.add_argument("--ticks", type=int, default=None)

    p_tap = sub.add_parser("tap", parents=[common], help="Emit an accelerometer tap.")
    p_tap.add_argument("--direction", default="x+", choices=["x+", "x-", "y+", "y-", "z+", "z-"])

    p_tf = sub.add_parser("time-format", parents=[common])
    p_tf.add_argument("format", choices=["12h", "24h"])

    p_qv = sub.add_parser("quick-view", parents=[common])
    p_qv.add_argument("state", choices=["on", "off"])

    sub.add_parser("kill", help="Stop running emulators.")
    sub.add_parser("wipe", help="Wipe emulator and local storage.")

    p_new = sub.add_parser("new-project", help="Scaffold a new project.")
    p_new.add_argument("--name", default=None)
    p_new.add_argument("--dir", dest="directory", default=None)
    p_new.add_argument("--type", dest="project_type", choices=list(PROJECT_TYPES), default=None)

    return parser


def parse_args(argv: Optional[list[str]] = None) -> argparse.Namespace:
    return build_parser().parse_args(argv)

# pebble_host/cli/main.py
from __future__ import annotations

import logging
import sys
from pathlib import Path
from typing import Optional

from pebble_host.app.config import load_config
from pebble_host.app.controller import PebbleController
from pebble_host.common.logging_config import (
    DEFAULTS,
    configure_console_logging,
    configure_file_logging,
    logs_root,
)
from pebble_host.core.errors import PebbleHostError
from pebble_host.core.recording.command import CommandTraceLogger

from pebble_host.cli.args import parse_args
from pebble_host.cli.commands import (
    cmd_display,
    cmd_emulator_control,
    cmd_link_loss,
    cmd_new_project,
    cmd_run,
    cmd_sdk_activate,
    cmd_sdks,
    cmd_status,
    cmd_upgrade,
)
from pebble_host.cli.prompt import ConsolePrompter


def main(argv: Optional[list[str]] = None) -> int:
    args = parse_args(argv)
    configure_console_logging(args.verbose)

    try:
        cfg = load_config(args.config)

        log_path = Path(args.log_file) if args.log_file else logs_root() / DEFAULTS.app_log_name
        configure_file_logging(log_path)

        cmd_sink = CommandTraceLogger(
            logger=logging.getLogger("commands"),
            file_path=log_path.parent / DEFAULTS.commands_log_name,
        )
        controller = PebbleController(cfg, prompter=ConsolePrompter(), cmd_sink=cmd_sink)

        try:
            if args.cmd == "status":
                return cmd_status(controller)
            if args.cmd == "sdks":
                return cmd_sdks(controller)
            if args.cmd == "upgrade":
                return cmd_upgrade(controller)
            if args.cmd == "sdk-activate":
                return cmd_sdk_activate(controller, args)
            if args.cmd == "run":
                return cmd_run(controller, args)
            if args.cmd == "display":
                return cmd_display(controller, args)
            if args.cmd == "link-loss":
                return cmd_link_loss(controller, args)
            if args.cmd == "new-project":
                return cmd_new_project(controller, args)
            return cmd_emulator_control(controller, args)
        except KeyboardInterrupt:
            print()
            return 130
        finally:
            controller.shutdown()
            cmd_sink.close()
    except PebbleHostError as e:
        print(f"ERROR: {e.message}")
        if e.hint:
            print(f"Hint: {e.hint}")
        return 1


if __name__ == "__main__":
    sys.exit(main())

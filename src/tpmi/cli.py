"""CLI entrypoint for tpmi."""

from __future__ import annotations

import argparse
import json
import logging
import sys
from pathlib import Path
from typing import Any

from tpmi.models import ThirdPartyModInfo
from tpmi.runtime_config import DEFAULT_CONFIG_PATH
from tpmi.service import TPMIService
from tpmi.settings import Settings
from tpmi.telemetry import LoggingTelemetry


class CLIError(RuntimeError):
    """User-facing CLI error."""


def _load_settings(args: argparse.Namespace) -> Settings:
    config_path = Path(args.config) if args.config else None
    if config_path is not None and not config_path.exists():
        raise CLIError(f"runtime config file not found: {config_path}")
    if config_path is not None or DEFAULT_CONFIG_PATH.exists():
        settings = Settings.from_runtime(config_path)
    else:
        settings = Settings()
    if args.cache_dir:
        settings = settings.model_copy(update={"cache_dir": args.cache_dir})
    return settings


def _entries_payload(entries: list[ThirdPartyModInfo]) -> list[dict[str, Any]]:
    return [entry.model_dump() for entry in entries]


def _print_json(payload: Any) -> None:
    print(json.dumps(payload, sort_keys=True, indent=2))


def _open_service(args: argparse.Namespace) -> TPMIService:
    settings = _load_settings(args)
    logging.basicConfig(
        level=getattr(logging, settings.log_level.upper(), logging.INFO),
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
        stream=sys.stderr,
    )
    service = TPMIService.create(settings, telemetry=LoggingTelemetry())
    service.refresh(force_immediate=bool(getattr(args, "force", False)))
    return service


def _cmd_refresh(args: argparse.Namespace) -> int:
    with _open_service(args) as service:
        _print_json(service.status())
    return 0


def _cmd_lookup(args: argparse.Namespace) -> int:
    with _open_service(args) as service:
        found, info = service.try_get_mod_info(args.game, args.dlc)
    if not found or info is None:
        print(f"no entry for {args.game}/{args.dlc}", file=sys.stderr)
        return 1
    _print_json(info.model_dump())
    return 0


def _cmd_module(args: argparse.Namespace) -> int:
    with _open_service(args) as service:
        entries = service.find_by_module_number(args.game, args.number)
    _print_json(_entries_payload(entries))
    return 0 if entries else 1


def _cmd_priority(args: argparse.Namespace) -> int:
    with _open_service(args) as service:
        entries = service.find_by_mount_priority(args.game, args.priority)
    _print_json(_entries_payload(entries))
    return 0 if entries else 1


def _build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(prog="tpmi")
    parser.add_argument("--config", default="", help="Path to runtime.toml")
    parser.add_argument("--cache-dir", default="", help="Override catalog cache directory")
    subparsers = parser.add_subparsers(dest="command")

    refresh = subparsers.add_parser("refresh", help="Refresh the catalog and print status")
    refresh.add_argument("--force", action="store_true", help="Ignore the fetch throttle")
    refresh.set_defaults(func=_cmd_refresh)

    lookup = subparsers.add_parser("lookup", help="Look up one DLC folder")
    lookup.add_argument("game")
    lookup.add_argument("dlc")
    lookup.set_defaults(func=_cmd_lookup)

    module = subparsers.add_parser("module", help="Find entries by module number")
    module.add_argument("game")
    module.add_argument("number", type=int)
    module.set_defaults(func=_cmd_module)

    priority = subparsers.add_parser("priority", help="Find entries by mount priority")
    priority.add_argument("game")
    priority.add_argument("priority", type=int)
    priority.set_defaults(func=_cmd_priority)
    return parser


def main(argv: list[str] | None = None) -> int:
    """Run the CLI."""
    parser = _build_parser()
    args = parser.parse_args(argv)
    func = getattr(args, "func", None)
    if func is None:
        parser.print_help()
        return 0
    try:
        return int(func(args))
    except (RuntimeError, ValueError) as exc:
        print(str(exc), file=sys.stderr)
        return 2


if __name__ == "__main__":
    raise SystemExit(main())

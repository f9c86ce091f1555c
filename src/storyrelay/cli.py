"""storyrelay CLI.

Subcommands:
  serve   -> run the Tracker web hook / import feed HTTP server
  relay   -> relay a saved activity payload to GitHub (summary JSON)
  plan    -> offline: show the issue update each story change would produce
  export  -> print the backlog import XML for the configured repository
  schema  -> print JSON Schemas for activity events and relay summaries
"""

from __future__ import annotations

import argparse
import json
import os
import sys
from pathlib import Path
from typing import Any

from .config import RelayConfig
from .errors import ConfigError, EventParseError
from .logging import get_logger
from .models import CHANGE_DELETE, STORY_KIND
from .observability import configure_telemetry
from .orchestrator import relay_event
from .parser import parse_event
from .processor import plan_mutation
from .runtime import (
    build_app,
    build_github_client,
    build_processor,
    execute_command,
    prepare_auth,
    prepare_config,
)
from .schemas import get_schemas
from .tracker_import import build_import_feed
from .webhook import create_server

CONFIG_DEFAULT = "storyrelay.config.yaml"
REPO_HELP = "Override target repository (owner/repo)"

_MAX_HELP_WIDTH = 100
EXIT_CONFIG_ERROR = 2


class _HelpFormatter(argparse.HelpFormatter):
    def __init__(self, prog: str) -> None:
        super().__init__(prog, max_help_position=30, width=_MAX_HELP_WIDTH)


class _FormatterArgumentParser(argparse.ArgumentParser):
    def __init__(self, *args: Any, **kwargs: Any) -> None:
        kwargs.setdefault("formatter_class", _HelpFormatter)
        super().__init__(*args, **kwargs)


def _build_parser() -> argparse.ArgumentParser:
    """Construct top-level CLI parser with subcommands."""
    common = argparse.ArgumentParser(add_help=False)
    common.add_argument("--config", default=CONFIG_DEFAULT)
    common.add_argument("--json-logs", action="store_true", help="Emit logs as JSON lines")
    common.add_argument("--log-level", help="Override logging.level from the config file")

    p = _FormatterArgumentParser(
        prog="storyrelay",
        description="Relay Pivotal Tracker story changes onto linked GitHub issues",
    )
    sub = p.add_subparsers(
        dest="cmd",
        required=True,
        parser_class=_FormatterArgumentParser,
        metavar="<command>",
    )

    ps = sub.add_parser("serve", parents=[common], help="Run the web hook server")
    ps.add_argument("--repo", help=REPO_HELP)
    ps.add_argument("--host", help="Bind address (default from config)")
    ps.add_argument("--port", type=int, help="Port (default from config)")

    pr = sub.add_parser("relay", parents=[common], help="Relay a saved activity payload")
    pr.add_argument("event", help="Path to an activity web hook JSON payload")
    pr.add_argument("--repo", help=REPO_HELP)
    pr.add_argument("--dry-run", action="store_true", help="Read from GitHub but do not update")

    pp = sub.add_parser("plan", parents=[common], help="Show planned issue updates (offline)")
    pp.add_argument("event", help="Path to an activity web hook JSON payload")
    pp.add_argument(
        "--labels",
        default="",
        help="Comma separated labels the linked issue currently has",
    )

    pe = sub.add_parser("export", parents=[common], help="Print the backlog import XML")
    pe.add_argument("--repo", help=REPO_HELP)
    pe.add_argument("--output", help="Write to this file instead of stdout")

    sub.add_parser("schema", help="Print JSON Schemas")

    return p


def _read_event_file(path: str) -> bytes:
    try:
        return Path(path).read_bytes()
    except OSError as exc:
        raise EventParseError(f"could not read event file {path}: {exc}") from exc


def _cmd_serve(cfg: RelayConfig, args: argparse.Namespace) -> int:
    auth = prepare_auth(cfg)
    app = build_app(cfg, auth)
    host = args.host or cfg.webhook_host
    port = args.port if args.port is not None else cfg.webhook_port
    server = create_server(app, host, port)
    logger = get_logger()
    logger.info(f"Starting server at {host}:{server.server_address[1]}", repo=cfg.github_repo_slug)
    try:
        server.serve_forever()
    except KeyboardInterrupt:
        logger.info("Shutting down")
    finally:
        server.server_close()
    return 0


def _cmd_relay(cfg: RelayConfig, args: argparse.Namespace) -> int:
    event = parse_event(_read_event_file(args.event))
    auth = prepare_auth(cfg)
    processor = build_processor(cfg, auth, dry_run=args.dry_run)
    summary = relay_event(event, processor)
    print(json.dumps(summary.to_dict(), indent=2))
    return 0 if summary.ok else 1


def _cmd_plan(cfg: RelayConfig, args: argparse.Namespace) -> int:
    event = parse_event(_read_event_file(args.event))
    current = [label.strip() for label in args.labels.split(",") if label.strip()]
    plans: list[dict[str, Any]] = []
    for change in event.changes:
        if change.entity_kind != STORY_KIND or change.change_type == CHANGE_DELETE:
            continue
        mutation, labels = plan_mutation(change, current, cfg.user_id_mapping)
        plans.append(
            {
                "story_id": change.entity_id,
                "labels_changed": labels.changed,
                "mutation": mutation.to_payload(),
            }
        )
    print(json.dumps({"project_id": event.project_id, "plan": plans}, indent=2))
    return 0


def _cmd_export(cfg: RelayConfig, args: argparse.Namespace) -> int:
    auth = prepare_auth(cfg)
    feed = build_import_feed(build_github_client(cfg, auth))
    if args.output:
        Path(args.output).write_text(feed + "\n")
        print(f"[export] backlog feed -> {args.output}")
    else:
        print(feed)
    return 0


def _cmd_schema() -> int:
    print(json.dumps(get_schemas(), indent=2))
    return 0


def _require_cfg(cfg: RelayConfig | None) -> RelayConfig:
    if cfg is None:  # pragma: no cover - defensive guard
        raise RuntimeError("Configuration not loaded")
    return cfg


def _build_handlers(args: argparse.Namespace, cfg: RelayConfig | None) -> dict[str, Any]:
    return {
        "serve": lambda: _cmd_serve(_require_cfg(cfg), args),
        "relay": lambda: _cmd_relay(_require_cfg(cfg), args),
        "plan": lambda: _cmd_plan(_require_cfg(cfg), args),
        "export": lambda: _cmd_export(_require_cfg(cfg), args),
        "schema": _cmd_schema,
    }


def main(argv: list[str] | None = None) -> int:
    parser = _build_parser()
    args = parser.parse_args(argv)
    exporter = os.environ.get("STORYRELAY_OTEL_EXPORTER")
    if exporter:
        configure_telemetry(
            service_name=os.environ.get("STORYRELAY_SERVICE_NAME", "storyrelay"),
            exporter="otlp" if exporter.lower() == "otlp" else "console",
            endpoint=os.environ.get("STORYRELAY_OTEL_ENDPOINT"),
        )
    try:
        cfg = prepare_config(args)
        handler = _build_handlers(args, cfg).get(args.cmd)
        if handler is None:  # pragma: no cover - argparse enforces valid choices
            parser.print_help()
            return 1
        return execute_command(handler, args.cmd)
    except ConfigError as exc:
        print(f"[{args.cmd}] configuration error: {exc}", file=sys.stderr)
        return EXIT_CONFIG_ERROR
    except EventParseError as exc:
        print(f"[{args.cmd}] {exc}", file=sys.stderr)
        return 1


if __name__ == "__main__":  # pragma: no cover
    raise SystemExit(main())

"""Command line entry point: ``service-matcher reconcile`` and ``service-matcher serve``."""

import argparse
import sys
from pathlib import Path
from typing import List, Optional, Sequence, Tuple

import requests

from . import adapters
from .config import (
    bitbucket_config,
    health_config,
    jenkins_build_config,
    load_environment,
    load_settings,
)
from .errors import ServiceMatcherError
from .exporter import DEFAULT_EXPORT_NAME, write_export
from .ingest import parse_deployment_links
from .logging_utils import logger
from .pipeline import process_inputs

ENRICHMENTS = ("builds", "health", "versions", "committers")


def _read(path: str) -> Tuple[str, str]:
    p = Path(path)
    return p.name, p.read_text(encoding="utf-8-sig")


def _progress(completed: int, total: int, message: str) -> None:
    logger.debug("enrichment_progress", completed=completed, total=total, message=message)


def _run_enrichment(name: str, state, settings, session: requests.Session) -> None:
    if name == "builds":
        result = adapters.fetch_build_info(
            state.records, state.headers, jenkins_build_config(settings), on_progress=_progress, session=session
        )
    elif name == "health":
        # health lookups fan out over threads and open a session per worker
        result = adapters.fetch_health_status(
            state.records, state.headers, health_config(settings), on_progress=_progress
        )
    elif name == "versions":
        result = adapters.fetch_build_versions(
            state.records, state.headers, health_config(settings), on_progress=_progress
        )
    else:
        result = adapters.fetch_last_committer(
            state.records, state.headers, bitbucket_config(settings), on_progress=_progress, session=session
        )
    state.apply_adapter_result(result)


def cmd_reconcile(args: argparse.Namespace) -> int:
    settings = load_settings(args.settings)
    if args.links:
        links: List[str] = parse_deployment_links(Path(args.links).read_text(encoding="utf-8"))
    else:
        links = settings.deployment_links

    state = process_inputs(
        links,
        [_read(p) for p in args.services],
        _read(args.tracker) if args.tracker else None,
        [_read(p) for p in args.versions],
        env_filter=settings.env_filter_regex,
    )
    if args.all_rows:
        state.filters.only_changes = False
    if args.add_missing:
        state.add_missing_services(links)

    session = requests.Session()
    for name in args.enrich:
        _run_enrichment(name, state, settings, session)

    if args.sort:
        state.set_sort(args.sort, args.direction)
    path = write_export(state, args.output, expand_links=args.expand_links)
    print(f"Wrote {len(state.view())} rows to {path}")
    return 0


def cmd_serve(args: argparse.Namespace) -> int:
    import uvicorn

    print(f"Starting service matcher API on http://{args.host}:{args.port}")
    uvicorn.run("service_matcher.app:app", host=args.host, port=args.port, reload=args.reload)
    return 0


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(prog="service-matcher", description="Service inventory reconciliation")
    parser.add_argument("--env-file", help="Path to a .env file with API credentials")
    sub = parser.add_subparsers(dest="command", required=True)

    rec = sub.add_parser("reconcile", help="Merge inputs and write a CSV")
    rec.add_argument("--settings", help="Settings file (YAML or JSON)")
    rec.add_argument("--links", help="File with deployment links, one per line (default: from settings)")
    rec.add_argument("--services", nargs="*", default=[], help="Services CSV exports")
    rec.add_argument("--tracker", help="Issue tracker CSV export")
    rec.add_argument("--versions", nargs="*", default=[], help="Version manifest JSON files")
    rec.add_argument("--enrich", nargs="*", default=[], choices=ENRICHMENTS,
                     help="Adapters to run after reconciliation, in order")
    rec.add_argument("--add-missing", action="store_true",
                     help="Append deployment-link services absent from the table")
    rec.add_argument("--all-rows", action="store_true",
                     help="Keep rows without a tracker summary")
    rec.add_argument("--sort", help="Column to sort by")
    rec.add_argument("--direction", choices=["asc", "desc"], default="asc")
    rec.add_argument("--expand-links", action="store_true",
                     help="Split link markup into separate *_Link columns")
    rec.add_argument("-o", "--output", default=DEFAULT_EXPORT_NAME, help="Output CSV path")
    rec.set_defaults(func=cmd_reconcile)

    srv = sub.add_parser("serve", help="Run the HTTP API")
    srv.add_argument("--host", default="127.0.0.1", help="Host to bind to (default: 127.0.0.1)")
    srv.add_argument("--port", type=int, default=8000, help="Port to listen on (default: 8000)")
    srv.add_argument("--reload", action="store_true")
    srv.set_defaults(func=cmd_serve)
    return parser


def main(argv: Optional[Sequence[str]] = None) -> int:
    parser = build_parser()
    args = parser.parse_args(argv)
    load_environment(args.env_file)
    try:
        return args.func(args)
    except ServiceMatcherError as e:
        logger.error("command_failed", command=args.command, error=str(e))
        print(f"[ERROR] {e}", file=sys.stderr)
        return 1


if __name__ == "__main__":
    sys.exit(main())

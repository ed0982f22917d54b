from __future__ import annotations

import argparse
import json
import logging
import sys

from dotenv import load_dotenv

from server.bibcheck.analysis.pipeline.capabilities import CascadePolicy, build_capabilities
from server.bibcheck.analysis.pipeline.cascade import verify_entry
from server.bibcheck.analysis.report import format_verdict, verdict_to_dict
from server.bibcheck.cli import add_runtime_args, apply_runtime_overrides
from server.bibcheck.config import Settings
from server.bibcheck.sources.doi import DoiClient
from server.bibcheck.sources.http import HttpClient, SourceError

logger = logging.getLogger("server.check_entries")


def _parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(description="Check whether bibliography entries refer to real works.")
    add_runtime_args(parser)
    parser.add_argument("entries", nargs="*", help="Citation text; one argument per entry.")
    parser.add_argument("--file", help="Read entries from a file, one per line ('-' for stdin).")
    parser.add_argument("--json", action="store_true", help="Print one JSON object per entry.")
    parser.add_argument(
        "--doi",
        action="append",
        default=[],
        help="Only check that this DOI is registered (repeatable). Citation entries are ignored.",
    )
    return parser


def check_doi(doi: str, client) -> str:  # type: ignore[no-untyped-def]
    try:
        exists = client.resolve(doi)
    except (SourceError, ValueError) as e:
        logger.warning("DOI %s could not be checked: %s", doi, e)
        return f"{doi}: error: {e}"
    return f"{doi}: {'exists' if exists else 'does not exist'}"


def _read_entries(args: argparse.Namespace) -> list[str]:
    if args.entries:
        return list(args.entries)
    if args.file and args.file != "-":
        with open(args.file, encoding="utf-8") as fh:
            return fh.read().splitlines()
    return sys.stdin.read().splitlines()


def main() -> int:
    load_dotenv()
    args = _parser().parse_args()
    apply_runtime_overrides(args)
    settings = Settings.from_env()

    logging.basicConfig(level=getattr(logging, settings.log_level.upper(), logging.INFO))

    if args.doi:
        client = DoiClient(HttpClient(user_agent=settings.user_agent, timeout_seconds=settings.api_timeout_seconds))
        for doi in args.doi:
            print(check_doi(doi, client))
        return 0

    capabilities = build_capabilities(settings)
    policy = CascadePolicy.from_settings(settings)

    for idx, entry in enumerate(_read_entries(args), start=1):
        if not entry.strip():
            if args.entries:
                logger.warning("Entry %d is empty; skipping", idx)
            continue
        try:
            verdict = verify_entry(entry, capabilities, policy=policy)
        except Exception:
            logger.exception("Entry %d could not be checked", idx)
            continue
        if args.json:
            print(json.dumps(verdict_to_dict(verdict), ensure_ascii=False))
        else:
            print(format_verdict(verdict))
            print()
    return 0


if __name__ == "__main__":
    raise SystemExit(main())

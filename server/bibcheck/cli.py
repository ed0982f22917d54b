from __future__ import annotations

import argparse
import os


def add_runtime_args(parser: argparse.ArgumentParser) -> None:
    parser.add_argument(
        "--identifier-backend",
        choices=["auto", "llm", "rules"],
        help="Extract DOI/arXiv/OSTI/URL identifiers with the LLM or with regex rules.",
    )
    parser.add_argument(
        "--no-elsevier",
        action="store_true",
        help="Skip the ScienceDirect publisher search even when ELSEVIER_API_KEY is set.",
    )
    parser.add_argument(
        "--log-level",
        choices=["DEBUG", "INFO", "WARNING", "ERROR"],
        help="Logging level (overrides BIBCHECK_LOG_LEVEL).",
    )


def apply_runtime_overrides(args: argparse.Namespace) -> None:
    if getattr(args, "identifier_backend", None):
        os.environ["BIBCHECK_IDENTIFIER_BACKEND"] = args.identifier_backend
    if getattr(args, "no_elsevier", False):
        os.environ["BIBCHECK_ELSEVIER_ENABLED"] = "false"
    if getattr(args, "log_level", None):
        os.environ["BIBCHECK_LOG_LEVEL"] = args.log_level

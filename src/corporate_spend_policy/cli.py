"""Command-line interface for evaluating spend requests."""

from __future__ import annotations

import argparse
import json
import sys
from pathlib import Path
from typing import Any

from .engine import SpendPolicyEngine
from .exceptions import InvalidRequestError
from .log import configure_logging
from .policy_api import evaluate_request


def _build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="spend-policy",
        description="Evaluate corporate spend requests against an organization policy.",
    )
    subparsers = parser.add_subparsers(dest="command", required=True)

    evaluate = subparsers.add_parser(
        "evaluate", help="Evaluate a JSON evaluation request and print the response."
    )
    evaluate.add_argument("request_json", type=Path, help="Path to the request JSON.")
    evaluate.add_argument(
        "--policy",
        type=Path,
        default=None,
        help="Policy YAML file (default: config/spend_policy.yaml).",
    )
    evaluate.add_argument(
        "--verify-alternatives",
        action="store_true",
        help="Re-evaluate each alternative to confirm its expected outcome.",
    )
    evaluate.add_argument(
        "--log-level",
        default="WARNING",
        type=str.upper,
        choices=["DEBUG", "INFO", "WARNING", "ERROR"],
        help="Logging level (default: WARNING).",
    )
    return parser


def _load_request(path: Path) -> dict[str, Any]:
    try:
        raw_data = path.read_text(encoding="utf-8")
    except FileNotFoundError as exc:
        msg = f"Input file not found: {path}"
        raise FileNotFoundError(msg) from exc
    except OSError as exc:
        msg = f"Unable to read input file: {path}"
        raise OSError(msg) from exc

    try:
        payload = json.loads(raw_data)
    except json.JSONDecodeError as exc:
        msg = f"Invalid JSON in input file: {path}"
        raise ValueError(msg) from exc

    if not isinstance(payload, dict):
        raise ValueError(f"Request must be a JSON object: {path}")
    return payload


def main(argv: list[str] | None = None) -> int:
    parser = _build_parser()
    args = parser.parse_args(argv)
    configure_logging(args.log_level)

    try:
        payload = _load_request(args.request_json)
        engine = SpendPolicyEngine.from_file(args.policy)
        response = evaluate_request(
            payload, engine, verify_alternatives=args.verify_alternatives
        )
    except InvalidRequestError as exc:
        print(f"Error: {exc}", file=sys.stderr)
        print(json.dumps(exc.errors, indent=2), file=sys.stderr)
        return 1
    except (ValueError, OSError) as exc:
        print(f"Error: {exc}", file=sys.stderr)
        return 1

    print(json.dumps(response, indent=2))
    return 0


if __name__ == "__main__":
    raise SystemExit(main())

"""Command line entry point.

Usage examples:

    # Log in and keep the session in a file (password is prompted for)
    python -m zwift_race_data login --username rider@example.com \
        --session-file session.json

    # Roster and analysis for a race, optionally authenticated
    python -m zwift_race_data roster 4321567 --session-file session.json
    python -m zwift_race_data analysis 4321567 --session-file session.json \
        --output race.json

    # Serve the HTTP adapter
    python -m zwift_race_data serve --port 3001
"""

from __future__ import annotations

import argparse
import getpass
import json
import logging
import os
import sys
from pathlib import Path
from typing import Any, List, Optional, Sequence

from .config import SERVER_DEBUG, SERVER_HOST, SERVER_PORT
from .errors import AuthFailure, FetchFailure
from .zwiftpower_api import get_default_client, set_rate_limiter

PASSWORD_ENV = "ZWIFTPOWER_PASSWORD"


def _setup_logging(verbose: bool = False) -> None:
    if not logging.getLogger().hasHandlers():
        logging.basicConfig(
            level=logging.DEBUG if verbose else logging.INFO,
            format="[%(asctime)s] %(levelname)s %(name)s: %(message)s",
        )


def _load_session(path: Optional[str]) -> Optional[List[Any]]:
    if not path:
        return None
    data = json.loads(Path(path).read_text(encoding="utf-8"))
    if not isinstance(data, list):
        raise ValueError(f"Session file {path} must hold a JSON list")
    return data


def _write_json(data: Any, output: Optional[str]) -> None:
    text = json.dumps(data, indent=2)
    if output:
        Path(output).write_text(text + "\n", encoding="utf-8")
        logging.info("Wrote %s", output)
    else:
        print(text)


def _build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="zwift_race_data",
        description="Fetch ZwiftPower race rosters and rider analysis data.",
    )
    parser.add_argument("-v", "--verbose", action="store_true", help="Debug logging")
    sub = parser.add_subparsers(dest="command", required=True)

    login = sub.add_parser("login", help="Log in and print/save the session")
    login.add_argument("--username", required=True)
    login.add_argument("--session-file", help="Write the session to this file")

    for name, help_text in (
        ("roster", "Print the merged rider roster for a race"),
        ("analysis", "Print per-rider analysis for every rider in a race"),
    ):
        cmd = sub.add_parser(name, help=help_text)
        cmd.add_argument("race_id")
        cmd.add_argument("--session-file", help="Session saved by 'login'")
        cmd.add_argument("--output", help="Write JSON here instead of stdout")
        cmd.add_argument("--max-concurrent", type=int, help="Cap in-flight requests")

    serve = sub.add_parser("serve", help="Run the HTTP adapter")
    serve.add_argument("--host", default=SERVER_HOST)
    serve.add_argument("--port", type=int, default=SERVER_PORT)
    return parser


def _cmd_login(args: argparse.Namespace) -> int:
    try:
        session = get_default_client().login(
            args.username, os.environ.get(PASSWORD_ENV) or getpass.getpass("Password: ")
        )
    except AuthFailure as exc:
        logging.error("%s", exc)
        return 1
    _write_json(session, args.session_file)
    return 0


def _cmd_fetch(args: argparse.Namespace) -> int:
    set_rate_limiter(args.max_concurrent)
    client = get_default_client()
    try:
        cookies = _load_session(args.session_file)
        if args.command == "roster":
            data = [rider.to_dict() for rider in client.get_roster(args.race_id, cookies)]
        else:
            data = [record.to_dict() for record in client.get_analysis(args.race_id, cookies)]
    except (FetchFailure, OSError, ValueError) as exc:
        logging.error("Failed to fetch %s for race %s: %s", args.command, args.race_id, exc)
        return 1
    logging.info("Race %s: %d %s record(s)", args.race_id, len(data), args.command)
    _write_json(data, args.output)
    return 0


def _cmd_serve(args: argparse.Namespace) -> int:
    from .server import create_app  # local import keeps flask off the CLI path

    create_app().run(host=args.host, port=args.port, debug=SERVER_DEBUG)
    return 0


def main(argv: Sequence[str] | None = None) -> int:
    args = _build_parser().parse_args(argv)
    _setup_logging(args.verbose)
    if args.command == "login":
        return _cmd_login(args)
    if args.command == "serve":
        return _cmd_serve(args)
    return _cmd_fetch(args)


if __name__ == "__main__":  # pragma: no cover
    sys.exit(main())

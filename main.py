"""CLI entrypoint for the article extraction worker."""

from __future__ import annotations

import argparse
import json
import logging
import os
import sys
from pathlib import Path

from dotenv import load_dotenv

from diagnostics import load_snapshot
from errors import WorkerError
from kv_store import KeyValueStore, StoreError, store_from_env
from session_store import save_credential
from worker import handle_diagnostic_request, run_scheduled


def parse_args(argv: list[str] | None = None) -> argparse.Namespace:
    """Parse command-line flags."""
    parser = argparse.ArgumentParser(description="Fetch the target page with the stored session and extract articles")
    parser.add_argument(
        "--mode",
        choices=["scheduled", "diagnose", "set-session", "show-debug"],
        default="scheduled",
        help=(
            "'scheduled' (default): one worker tick, storing the article list. "
            "'diagnose': re-run fetch+extract and print the diagnostic JSON. "
            "'set-session': store a freshly exported session cookie. "
            "'show-debug': print the snapshot stored by the last run."
        ),
    )
    parser.add_argument("--cookie", default=None, help="Cookie header value (set-session mode)")
    parser.add_argument("--cookie-file", default=None, help="File holding the cookie header value (set-session mode)")
    parser.add_argument(
        "--dry-run",
        action="store_true",
        help="Run fetch+extract without writing snapshots or the article list",
    )
    return parser.parse_args(argv)


def run_set_session(store: KeyValueStore, cookie: str | None, cookie_file: str | None) -> int:
    if cookie_file:
        try:
            cookie = Path(cookie_file).read_text(encoding="utf-8")
        except OSError as exc:
            logging.error("Could not read cookie file %s: %s", cookie_file, exc)
            return 2
    if not cookie or not cookie.strip():
        logging.error("set-session needs --cookie or --cookie-file")
        return 2
    save_credential(store, cookie)
    return 0


def run(args: argparse.Namespace, store: KeyValueStore) -> int:
    """Dispatch one invocation and return the process exit code."""
    if args.mode in ("set-session", "show-debug"):
        try:
            if args.mode == "set-session":
                return run_set_session(store, args.cookie, args.cookie_file)
            print(json.dumps(load_snapshot(store), indent=2, ensure_ascii=False))
            return 0
        except StoreError as exc:
            logging.error("Store access failed in mode=%s: %s", args.mode, exc)
            return 1

    if args.mode == "diagnose":
        status_code, body = handle_diagnostic_request(store, record=not args.dry_run)
        print(json.dumps(body, indent=2, ensure_ascii=False))
        return 0 if status_code == 200 else 1

    try:
        records = run_scheduled(store, dry_run=args.dry_run)
    except (WorkerError, StoreError):
        # Already logged at the run boundary; the scheduler owns retries.
        return 1

    for record in records:
        logging.info("Article: %s <%s>", record.title, record.url)
    return 0


def main(argv: list[str] | None = None) -> None:
    """Initialize config and execute one worker invocation."""
    load_dotenv()
    logging.basicConfig(
        level=os.getenv("LOG_LEVEL", "INFO").upper(),
        format="%(asctime)s %(levelname)s %(message)s",
    )
    args = parse_args(argv)
    sys.exit(run(args, store_from_env()))


if __name__ == "__main__":
    main()

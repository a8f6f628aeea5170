#!/usr/bin/env python3
"""
Operator commands for the daybook ledger.

Run:
  python ledger_cli.py --mode
  python ledger_cli.py --set-endpoint https://script.example.com/exec --test-connection
  python ledger_cli.py --summary 2024-03-01 --backup 2024-03-01
"""
import argparse
import json
import logging
import sys

import ledger_store
import ledger_settings as settings
from ledger_errors import ConfigError, StorageFailure
from mode_controller import ModeController
from sync_gateway import SyncGateway


def _print(obj) -> None:
    print(json.dumps(obj, indent=2, default=str))


def build_parser() -> argparse.ArgumentParser:
    ap = argparse.ArgumentParser(description="Daybook ledger operator commands")
    ap.add_argument("--db", default=settings.LEDGER_DB_PATH, help="Path to SQLite ledger")
    ap.add_argument("--set-endpoint", metavar="URL", help="Configure the remote ledger endpoint")
    ap.add_argument("--clear-endpoint", action="store_true", help="Switch to local-only mode")
    ap.add_argument("--mode", action="store_true", help="Show the current mode and endpoint")
    ap.add_argument("--test-connection", action="store_true", help="Probe the remote endpoint")
    ap.add_argument("--latest-cash", action="store_true", help="Show the most recent cash entry")
    ap.add_argument("--summary", nargs="?", const="", metavar="DAY", help="Totals for DAY (default today)")
    ap.add_argument("--backup", nargs="?", const="", metavar="DAY", help="Write NDJSON backups for DAY (default today)")
    ap.add_argument("--backup-dir", default=settings.LEDGER_BACKUP_DIR, help="Backup folder")
    return ap


def main(argv=None) -> int:
    settings.configure_logging('[ledger] ')
    args = build_parser().parse_args(argv)
    try:
        store = ledger_store.init(args.db)
        modes = ModeController(store, default_endpoint=settings.LEDGER_API_URL)

        if args.clear_endpoint:
            modes.set_endpoint(None)
        if args.set_endpoint:
            modes.set_endpoint(args.set_endpoint)

        if args.mode or args.set_endpoint or args.clear_endpoint:
            _print({"mode": modes.current_mode().value, "endpoint": modes.endpoint})

        if args.test_connection:
            gateway = SyncGateway(store, modes)
            try:
                result = gateway.test_connection()
            finally:
                gateway.close()
            _print(result)
            if not result.get("success"):
                return 1

        if args.latest_cash:
            _print({
                "latest": store.most_recent_cash(),
                "current_amount": store.current_cash_amount,
                "last_date": store.last_cash_date,
            })

        if args.summary is not None:
            _print(store.summary(args.summary or None))

        if args.backup is not None:
            paths = store.backup_ndjson(args.backup_dir, args.backup or None)
            _print([str(p) for p in paths])
    except ConfigError as exc:
        logging.error("%s", exc)
        return 2
    except StorageFailure as exc:
        logging.error("%s", exc)
        return 1
    return 0


if __name__ == "__main__":
    sys.exit(main())

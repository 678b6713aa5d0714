import argparse
import logging
import sys

from .database import init_db, session_scope
from .services.ledger_import import LedgerImportError, LedgerImportService, parse_ledger_csv

logger = logging.getLogger(__name__)


def import_ledger(path: str, location_id: str, replace: bool) -> int:
    with open(path, encoding="utf-8") as fh:
        content = fh.read()

    try:
        rows = parse_ledger_csv(content, default_location=location_id)
    except LedgerImportError as e:
        print(f"ERROR: {e}")
        return 1

    init_db()
    with session_scope() as db:
        result = LedgerImportService.import_rows(db, rows, replace=replace)

    print(f"Imported {result['rows']} rows for {', '.join(result['locations'])} ({result['months'][0]}..{result['months'][-1]})")
    return 0


def main(argv=None) -> int:
    parser = argparse.ArgumentParser(prog="practice-analytics")
    sub = parser.add_subparsers(dest="command", required=True)

    imp = sub.add_parser("import-ledger", help="Import a monthly P&L CSV export")
    imp.add_argument("path")
    imp.add_argument("--location", default="all")
    imp.add_argument("--append", action="store_true", help="Keep existing rows for the same months")

    args = parser.parse_args(argv)
    logging.basicConfig(level=logging.INFO)

    if args.command == "import-ledger":
        return import_ledger(args.path, args.location, replace=not args.append)
    return 1


if __name__ == "__main__":
    sys.exit(main())

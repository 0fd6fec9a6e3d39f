"""Export or import the coupon and subscription collections as JSON files.

Usage:
    python scripts/manage_collections.py export [--path DIR]
    python scripts/manage_collections.py import [--path DIR]

``DIR`` defaults to ``APP_DATA_PATH``. Import replaces each collection whose
file is present.
"""

import argparse
import json
import logging

from promoplan.core.config import settings
from promoplan.core.database import SessionLocal, init_db
from promoplan.core.store import CollectionStore

logger = logging.getLogger(__name__)


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(description=__doc__.splitlines()[0])
    parser.add_argument("command", choices=["export", "import"])
    parser.add_argument("--path", default=settings.APP_DATA_PATH)
    return parser


def run(command: str, path: str) -> dict[str, int]:
    init_db()
    db = SessionLocal()
    try:
        store = CollectionStore(db)
        if command == "export":
            return store.export_to_dir(path)
        return store.import_from_dir(path)
    finally:
        db.close()


def main(argv: list[str] | None = None) -> None:
    logging.basicConfig(level=settings.LOG_LEVEL)
    args = build_parser().parse_args(argv)
    counts = run(args.command, args.path)
    print(json.dumps(counts))


if __name__ == "__main__":
    main()

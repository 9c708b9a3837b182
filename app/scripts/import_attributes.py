# Import TPOS attribute values (JSON export or .xlsx) into the local catalog.
# Usage: python -m app.scripts.import_attributes <file>
# Requires: DATABASE_URL in .env (defaults to ./data/tpos_sync.db)

import asyncio
import sys

from app.db import init_db
from app.product_store import SqlProductStore
from app.tpos.tpos_attribute_loader import import_attribute_values, read_tpos_attribute_file


async def run(path: str) -> dict:
    await init_db()
    records = read_tpos_attribute_file(path)
    print(f"Read {len(records)} attribute value(s) from {path}")
    return await import_attribute_values(records, store=SqlProductStore())


def main(argv=None):
    argv = sys.argv[1:] if argv is None else argv
    if len(argv) != 1:
        print("Usage: python -m app.scripts.import_attributes <file.json|file.xlsx>")
        return 2
    stats = asyncio.run(run(argv[0]))
    print(
        f"Imported {stats['imported']} value(s), created {stats['created_attributes']} attribute(s), "
        f"skipped {stats['skipped']} existing, {stats['invalid']} invalid row(s)."
    )
    return 0


if __name__ == "__main__":
    sys.exit(main())

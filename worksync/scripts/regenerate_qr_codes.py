"""
Rebuild every QR code PNG from the database.

Usage:
    python -m worksync.scripts.regenerate_qr_codes            # all rows
    python -m worksync.scripts.regenerate_qr_codes --clean    # wipe PNGs first

Useful after restoring a database, moving QRCODES_DIR, or changing the
payload format.  New rows get their code from the change feed; this
script only covers what already exists.
"""

import argparse
import asyncio
import logging
from pathlib import Path

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine

from worksync.core.config import settings
from worksync.models import Base
from worksync.services.qr_service import REGENERATORS

logger = logging.getLogger(__name__)


def clear_qr_dir(base_dir: Path) -> int:
    """Delete existing PNGs so codes of removed rows do not linger."""
    removed = 0
    for png in base_dir.rglob("*.png"):
        png.unlink()
        removed += 1
    return removed


async def regenerate_all(
    session_factory: async_sessionmaker[AsyncSession],
    base_dir: str | Path,
    clean: bool = False,
) -> dict[str, int]:
    """Regenerate the code of every row; returns codes written per table."""
    base_dir = Path(base_dir)
    if clean and base_dir.exists():
        logger.info("Removed %d stale QR code(s)", clear_qr_dir(base_dir))

    written: dict[str, int] = {}
    for table_name, regenerate in REGENERATORS.items():
        table = Base.metadata.tables[table_name]
        async with session_factory() as session:
            ids = (await session.execute(select(table.c.id).order_by(table.c.id))).scalars().all()

        written[table_name] = 0
        for row_id in ids:
            if await regenerate(row_id, session_factory=session_factory, base_dir=base_dir):
                written[table_name] += 1
    return written


async def main(clean: bool) -> None:
    engine = create_async_engine(settings.DATABASE_URL, echo=False)
    session_factory = async_sessionmaker(engine, expire_on_commit=False)

    try:
        print(f"\nWorkSync — regenerating QR codes into {settings.QRCODES_DIR}\n")
        written = await regenerate_all(session_factory, settings.QRCODES_DIR, clean=clean)
        for table_name, count in written.items():
            print(f"  {table_name:<20} {count}")
        print()
    finally:
        await engine.dispose()


if __name__ == "__main__":
    parser = argparse.ArgumentParser(description="Regenerate QR code images")
    parser.add_argument("--clean", action="store_true", help="delete existing PNGs first")
    args = parser.parse_args()

    logging.basicConfig(level=logging.INFO, format="%(asctime)s | %(levelname)-8s | %(name)s | %(message)s")
    asyncio.run(main(args.clean))

"""Re-link properties to their State/City/Locality/SubLocality documents.

    python maintenance.py            # re-attach every property to its locations
    python maintenance.py --prune    # also drop references to deleted properties
"""

import argparse
import asyncio
import logging

from database import connect, ensure_indexes
from locations import LocationResolver
from settings import load_settings

logger = logging.getLogger(__name__)


async def relink(prune: bool) -> dict:
    settings = load_settings()
    client, db = connect(settings)
    try:
        await ensure_indexes(db)
        return await LocationResolver(db).reconcile(prune=prune)
    finally:
        client.close()


def main() -> None:
    parser = argparse.ArgumentParser(description=__doc__.splitlines()[0])
    parser.add_argument("--prune", action="store_true", help="remove ids of properties that no longer exist")
    args = parser.parse_args()
    logging.basicConfig(level=logging.INFO)
    result = asyncio.run(relink(args.prune))
    logger.info("Property references updated: %s", result)


if __name__ == "__main__":
    main()

"""
ChainScope主入口
按所有者地址跨链搜索资产

Usage:
    python main.py <owner_address> [chain ...]
"""

import asyncio
import sys

from loguru import logger

from chainscope.client import ChainScope
from chainscope.datastore.engine import close_db, init_db
from chainscope.datastore.store import SqlMetadataStore
from chainscope.search.types import SearchCriteria
from chainscope.services.errors import ChainServiceError


async def main(owner: str, chains: list[str]) -> None:
    """主函数"""
    logger.info("Starting ChainScope...")

    try:
        logger.info("Initializing database...")
        session_factory = await init_db()

        async with ChainScope.from_settings(
            store=SqlMetadataStore(session_factory)
        ) as scope:
            result = await scope.find_assets_by_owner(
                owner, SearchCriteria(chains=tuple(chains))
            )

            logger.info(
                f"Found {result.total_count} asset(s) in "
                f"{result.statistics.search_duration_ms:.0f}ms: "
                f"{result.statistics.chain_distribution}"
            )
            for asset in result.assets:
                logger.info(f"  {asset.id}  {asset.metadata.name}")
            for chain, record in result.failures.items():
                logger.warning(f"  {chain}: {record.user_message()}")

    except ChainServiceError as e:
        logger.error(f"Search failed: {e.record.user_message()}")
    finally:
        logger.info("Closing database connections...")
        await close_db()
        logger.info("ChainScope stopped")


if __name__ == "__main__":
    if len(sys.argv) < 2:
        print(__doc__)
        sys.exit(1)
    asyncio.run(main(sys.argv[1], sys.argv[2:]))

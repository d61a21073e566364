"""
Seed script to populate the default access rules.

Run this script after database initialization to:
- Seed the full default matrix into an empty store
- Backfill missing critical features into a populated one
- Optionally (--reset) replace every rule with the defaults

Usage:
    uv run python -m scripts.seed_access_rules
    uv run python -m scripts.seed_access_rules --reset
"""
import asyncio
import sys

from app.core.database.engine import get_db, init_db
from app.features.access.defaults import DEFAULT_RULES, ensure_default_rules
from app.features.access.service import SqlRuleStore
from app.utils import get_logger


log = get_logger(__name__)


async def main(reset: bool = False):
    """Main function to seed access rules."""
    log.info("Starting access rule seeding...")

    # Initialize database tables first
    log.info("Initializing database tables...")
    await init_db()

    async for db in get_db():
        store = SqlRuleStore(db)
        if reset:
            rules = await store.replace_all(DEFAULT_RULES, actor="System")
            log.info(f"Access rules reset to {len(rules)} defaults")
        else:
            created = await ensure_default_rules(store)
            log.info(f"Access rule seeding completed, {len(created)} rule(s) created")

        for rule in await store.list():
            log.info(f"  - {rule.module} / {rule.feature}: {', '.join(a.value for a in rule.available_actions)}")

        break  # Only use first session


if __name__ == "__main__":
    asyncio.run(main(reset="--reset" in sys.argv[1:]))

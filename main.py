#!/usr/bin/env python3
"""
Vocabulary progress engine
Main application entry point: loads a user's progress and reports stats and due words
"""

import argparse
import asyncio
import logging

from progress_engine.config import get_database_path, get_settings
from progress_engine.core.database.database_manager import get_db_manager
from progress_engine.core.store import SQLiteRemoteStore
from progress_engine.core.sync.connectivity import ConnectivityMonitor
from progress_engine.progress_coordinator import ProgressCoordinator
from progress_engine.utils import format_progress_stats


def parse_args() -> argparse.Namespace:
    parser = argparse.ArgumentParser(description="Show learning progress for a user")
    parser.add_argument("user_id", help="User identifier")
    parser.add_argument(
        "--words",
        default="",
        help="Comma-separated candidate word IDs to check for due reviews",
    )
    parser.add_argument("--limit", type=int, default=None, help="Maximum due words to show")
    return parser.parse_args()


async def main():
    """Main application entry point"""
    args = parse_args()

    # Load configuration
    settings = get_settings()

    # Configure logging
    logging.basicConfig(
        level=getattr(logging, settings.log_level.upper()),
        format='%(asctime)s - %(name)s - %(levelname)s - %(message)s'
    )

    logger = logging.getLogger(__name__)
    logger.info("Starting progress engine...")

    db_manager = get_db_manager(get_database_path(settings.database_url))
    db_manager.init_database()

    coordinator = ProgressCoordinator(
        user_id=args.user_id,
        store=SQLiteRemoteStore(db_manager),
        connectivity=ConnectivityMonitor(initially_online=True),
        settings=settings,
    )

    await coordinator.start()
    try:
        if not await coordinator.load_progress():
            logger.warning(f"Continuing without stored progress: {coordinator.error}")

        print(format_progress_stats(coordinator.get_stats().as_dict()))

        candidate_ids = [int(word_id) for word_id in args.words.split(",") if word_id.strip()]
        if candidate_ids:
            due = coordinator.get_due_words(candidate_ids, limit=args.limit)
            print(f"\n⏰ Due words: {', '.join(map(str, due)) or 'none'}")
    finally:
        await coordinator.stop()
        logger.info("Progress engine stopped")


if __name__ == "__main__":
    asyncio.run(main())

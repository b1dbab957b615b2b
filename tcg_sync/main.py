#!/usr/bin/env python3
"""Pokemon TCG Catalog Sync - Main Entry Point"""

import argparse
import asyncio
import json
import sys
from typing import List, Optional

from .api.pokemon_tcg import PokemonTCGClient
from .config import Config
from .database.service import DatabaseService
from .sync.orchestrator import CatalogOrchestrator
from .sync.service import PokemonTCGSyncService
from .utils.logger import logger
from .utils.metrics import print_summary

# Sets imported by `tcg-sync import` when none are named
DEFAULT_IMPORT_SETS = ["sv4", "sv3pt5", "sv3"]


class TCGSync:
    def __init__(self, config: Config):
        """Open the store and the API client described by ``config``"""
        self.config = config
        self.store = DatabaseService(config.get_database_url())
        self.client = PokemonTCGClient(
            api_key=config.pokemon_tcg_api_key,
            config=config.sync,
            base_url=config.base_url,
            timeout=config.get_http_timeout(),
        )
        self.service = PokemonTCGSyncService(self.client, self.store, config.sync)

    async def run(self, args: argparse.Namespace) -> bool:
        """Dispatch one CLI command. Returns True on success."""
        if args.command == "sets":
            result = await self.service.sync_sets()
        elif args.command == "new-sets":
            result = await self.service.sync_new_sets()
        elif args.command == "set-cards":
            result = await self.service.sync_set_cards(args.set_id)
        elif args.command == "prices":
            result = await self.service.update_card_prices(args.card_ids or None)
        elif args.command == "urls":
            result = await self.service.update_tcgplayer_urls(args.card_ids or None)
        elif args.command in ("all", "import"):
            orchestrator = CatalogOrchestrator(self.service, show_progress=not args.no_progress)
            if args.command == "all":
                result = await orchestrator.sync_all(skip_recent_hours=args.skip_recent_hours)
            else:
                result = await orchestrator.sync_selected_sets(args.set_ids or DEFAULT_IMPORT_SETS)
            print_summary(result)
            return result.success
        else:
            raise ValueError(f"Unknown command: {args.command}")

        logger.info(json.dumps(result.to_dict(), indent=2))
        return result.success

    async def cleanup(self):
        """Cleanup resources"""
        await self.client.close()
        self.store.close()
        logger.debug(f"✅ Cleanup completed ({self.client.request_count} API requests)")


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="tcg-sync", description="Synchronize the Pokemon TCG catalog into a local database"
    )
    parser.add_argument("--config", default="config/config.json", help="Path to config.json")
    parser.add_argument("--env", default=None, help="Path to .env file")
    parser.add_argument("--log-level", default=None, help="Logging level (DEBUG, INFO, ...)")
    parser.add_argument("--log-file", default=None, help="Append log output to this file")
    parser.add_argument("--no-progress", action="store_true", help="Disable progress bars")

    subparsers = parser.add_subparsers(dest="command", required=True)
    subparsers.add_parser("sets", help="Refresh metadata of all sets")
    subparsers.add_parser("new-sets", help="Import sets that are not stored yet, cards included")

    set_cards = subparsers.add_parser("set-cards", help="Sync every card of one set")
    set_cards.add_argument("set_id", help="Set ID, e.g. sv4")

    prices = subparsers.add_parser("prices", help="Refresh market prices")
    prices.add_argument("card_ids", nargs="*", help="Card IDs (default: every collected card)")

    urls = subparsers.add_parser("urls", help="Backfill direct TCGplayer product URLs")
    urls.add_argument("card_ids", nargs="*", help="Card IDs (default: every stored card)")

    sync_all = subparsers.add_parser("all", help="Sync all sets and all of their cards")
    sync_all.add_argument(
        "--skip-recent-hours",
        type=float,
        default=None,
        help="Skip sets whose cards were all refreshed within this many hours",
    )

    batch = subparsers.add_parser("import", help="Sync the cards of selected sets")
    batch.add_argument("set_ids", nargs="*", help=f"Set IDs (default: {' '.join(DEFAULT_IMPORT_SETS)})")

    return parser


async def async_main(argv: Optional[List[str]] = None) -> int:
    args = build_parser().parse_args(argv)

    if args.log_level:
        logger.set_level(args.log_level)
    if args.log_file:
        logger.add_file_handler(args.log_file)

    app = None
    try:
        app = TCGSync(Config(args.config, args.env))
        success = await app.run(args)
        return 0 if success else 1
    except KeyboardInterrupt:
        logger.info("\n🛑 Sync interrupted by user")
        return 130
    except Exception as e:
        logger.error(f"❌ Sync failed: {e}")
        return 1
    finally:
        if app:
            await app.cleanup()


def main():
    """Console script entry point"""
    sys.exit(asyncio.run(async_main()))


if __name__ == "__main__":
    main()

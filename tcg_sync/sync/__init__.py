"""Catalog synchronization: sets, cards, prices, TCGplayer URLs and multi-set runs"""

from .cards import CardSynchronizer
from .fallback_sets import FALLBACK_SETS
from .orchestrator import CatalogOrchestrator
from .prices import PriceRefresher
from .service import PokemonTCGSyncService
from .sets import SetSynchronizer
from .urls import TcgplayerUrlUpdater

__all__ = [
    "CardSynchronizer",
    "CatalogOrchestrator",
    "FALLBACK_SETS",
    "PokemonTCGSyncService",
    "PriceRefresher",
    "SetSynchronizer",
    "TcgplayerUrlUpdater",
]

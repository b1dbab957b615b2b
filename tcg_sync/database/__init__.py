"""Database module for the synchronized catalog and price history"""

from .models import Base, DatabaseConfig, PokemonCard, PokemonSet, PriceHistory, UserCard, init_database
from .service import DatabaseService

__all__ = [
    # Models
    "Base",
    "PokemonSet",
    "PokemonCard",
    "PriceHistory",
    "UserCard",
    "DatabaseConfig",
    "init_database",
    # Service
    "DatabaseService",
]

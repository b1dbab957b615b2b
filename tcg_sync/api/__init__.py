"""API clients for the Pokemon TCG catalog"""

from .pokemon_tcg import PokemonTCGClient, extract_market_prices

__all__ = [
    "PokemonTCGClient",
    "extract_market_prices",
]

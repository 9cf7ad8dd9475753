"""Off-chain market data providers."""
from .coingecko import CoinGeckoClient
from .defillama import DefiLlamaClient
from .openrouter import OpenRouterClient

__all__ = ["CoinGeckoClient", "DefiLlamaClient", "OpenRouterClient"]

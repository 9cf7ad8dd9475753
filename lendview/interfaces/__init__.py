"""Protocol interfaces for external collaborators."""
from .ledger import LedgerGateway
from .market import CompletionProvider, MarketDataProvider, TvlProvider
from .multisig import MultisigBackend

__all__ = [
    "CompletionProvider",
    "LedgerGateway",
    "MarketDataProvider",
    "MultisigBackend",
    "TvlProvider",
]

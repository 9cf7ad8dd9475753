"""Static catalog of supported assets, loaded once at startup."""
from __future__ import annotations

import logging
from typing import Iterable, Iterator

from .config import AppConfig
from .errors import UnknownAssetError
from .models import AssetDescriptor

logger = logging.getLogger(__name__)


class AssetRegistry:
    """Assets by id (address, case-insensitive) and by symbol."""

    def __init__(self, assets: Iterable[AssetDescriptor]) -> None:
        self._by_id: dict[str, AssetDescriptor] = {}
        self._by_symbol: dict[str, AssetDescriptor] = {}
        for asset in assets:
            key = asset.id.lower()
            if key in self._by_id:
                raise ValueError(f"Duplicate asset id '{asset.id}'")
            self._by_id[key] = asset
            self._by_symbol.setdefault(asset.symbol.upper(), asset)

    @classmethod
    def from_config(cls, config: AppConfig) -> AssetRegistry:
        registry = cls(
            AssetDescriptor(
                id=a.id,
                symbol=a.symbol,
                display_name=a.name,
                decimals=a.decimals,
                is_native=a.is_native,
                min_amount=a.min_amount,
                max_amount=a.max_amount,
            )
            for a in config.assets
        )
        logger.debug("Asset registry loaded with %d assets", len(registry))
        return registry

    def get(self, asset_id: str) -> AssetDescriptor:
        """Look up by id. A missing id is a configuration bug and raises."""
        try:
            return self._by_id[asset_id.lower()]
        except KeyError:
            raise UnknownAssetError(asset_id) from None

    def by_symbol(self, symbol: str) -> AssetDescriptor:
        try:
            return self._by_symbol[symbol.upper()]
        except KeyError:
            raise UnknownAssetError(symbol) from None

    def find(self, id_or_symbol: str) -> AssetDescriptor:
        """Resolve either an id or a symbol."""
        asset = self._by_id.get(id_or_symbol.lower())
        if asset is not None:
            return asset
        return self.by_symbol(id_or_symbol)

    def __contains__(self, asset_id: object) -> bool:
        return isinstance(asset_id, str) and asset_id.lower() in self._by_id

    def __iter__(self) -> Iterator[AssetDescriptor]:
        return iter(self._by_id.values())

    def __len__(self) -> int:
        return len(self._by_id)

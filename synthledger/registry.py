"""
registry.py - Supported collateral assets and their price sources

The AssetRegistry is fixed at construction from two parallel ordered lists
and never changes afterwards. Its ordered asset list drives deterministic
iteration when a position's collateral is valued.
"""

from __future__ import annotations
from typing import Dict, Iterator, List, Sequence, Tuple

from .core import AssetConfig, AssetNotSupported, ConfigurationMismatch


class AssetRegistry:
    """
    Immutable mapping from collateral asset id to price source id.

    Duplicate asset ids are tolerated: the later price source wins in the
    lookup and the asset keeps its first position in the ordered list, so
    it is never valued twice.

    Example:
        registry = AssetRegistry(["WETH", "WBTC"], ["ETH/USD", "BTC/USD"])
        registry.price_source_of("WETH")   # "ETH/USD"
        registry.list_assets()             # ("WETH", "WBTC")
    """

    __slots__ = ("_price_sources", "_assets")

    def __init__(self, asset_ids: Sequence[str], price_source_ids: Sequence[str]):
        """
        Build the registry.

        Args:
            asset_ids: Ordered collateral asset identifiers
            price_source_ids: Price source for each asset, same order and length

        Raises:
            ConfigurationMismatch: If the two lists differ in length
        """
        asset_ids = list(asset_ids)
        price_source_ids = list(price_source_ids)
        if len(asset_ids) != len(price_source_ids):
            raise ConfigurationMismatch(
                f"{len(asset_ids)} assets but {len(price_source_ids)} price sources"
            )

        price_sources: Dict[str, str] = {}
        assets: List[str] = []
        for asset_id, source_id in zip(asset_ids, price_source_ids):
            config = AssetConfig(asset_id, source_id)
            if config.asset_id not in price_sources:
                assets.append(config.asset_id)
            price_sources[config.asset_id] = config.price_source_id

        self._price_sources = price_sources
        self._assets: Tuple[str, ...] = tuple(assets)

    def is_supported(self, asset_id: str) -> bool:
        return asset_id in self._price_sources

    def require_supported(self, asset_id: str) -> str:
        """Guard check: return asset_id or raise AssetNotSupported."""
        if asset_id not in self._price_sources:
            raise AssetNotSupported(asset_id)
        return asset_id

    def price_source_of(self, asset_id: str) -> str:
        """
        Return the price source configured for an asset.

        Raises:
            AssetNotSupported: If the asset is not registered
        """
        try:
            return self._price_sources[asset_id]
        except KeyError:
            raise AssetNotSupported(asset_id) from None

    def list_assets(self) -> Tuple[str, ...]:
        """Registered assets in registration order."""
        return self._assets

    def configs(self) -> Tuple[AssetConfig, ...]:
        return tuple(AssetConfig(a, self._price_sources[a]) for a in self._assets)

    def __contains__(self, asset_id: object) -> bool:
        return asset_id in self._price_sources

    def __iter__(self) -> Iterator[str]:
        return iter(self._assets)

    def __len__(self) -> int:
        return len(self._assets)

    def __repr__(self) -> str:
        return f"AssetRegistry({', '.join(self._assets)})"

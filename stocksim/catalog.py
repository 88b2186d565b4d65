from __future__ import annotations

from typing import Mapping, Sequence

from stocksim.config import MarketConfig, StockDefinition, TierConfig
from stocksim.schemas import Tier


class TierCatalog:
    """
    Read-only tier lookups: per-tier parameters and the named stock pool.
    """

    def __init__(
        self,
        tiers: Mapping[Tier, TierConfig],
        pools: Mapping[Tier, Sequence[StockDefinition]],
    ) -> None:
        self._tiers = dict(tiers)
        self._pools = {t: tuple(p) for t, p in pools.items()}

    @classmethod
    def from_config(cls, cfg: MarketConfig) -> "TierCatalog":
        return cls(tiers=cfg.tiers, pools=cfg.pools)

    def tier_config(self, tier: Tier) -> TierConfig:
        try:
            return self._tiers[tier]
        except KeyError:
            raise ValueError(f"Unknown tier: {tier}") from None

    def pool(self, tier: Tier) -> tuple[StockDefinition, ...]:
        if tier not in self._tiers:
            raise ValueError(f"Unknown tier: {tier}")
        # a configured tier with no pool simply has nothing to offer
        return self._pools.get(tier, ())

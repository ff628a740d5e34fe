"""
Raw provider records -> canonical Reserve entities.

Resolution order:
    symbol:   catalog -> provider-reported -> drop the record
    decimals: catalog -> provider-reported -> 18
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from decimal import Decimal, localcontext
from typing import Iterable, List, Optional, Tuple

from .catalog import TokenMetadataCatalog
from .models import RawReserveRecord, Reserve

logger = logging.getLogger(__name__)

DEFAULT_DECIMALS = 18

# uint256 has at most 78 decimal digits; wider products get a wider context
_PRECISION = 80


def to_units(raw: int, decimals: int) -> Decimal:
    """Scale a smallest-unit integer to human units without rounding."""
    raw = int(raw)
    with localcontext() as ctx:
        ctx.prec = max(_PRECISION, len(str(abs(raw))) + 1)
        return Decimal(raw).scaleb(-decimals)


@dataclass
class NormalizationResult:
    reserves: List[Reserve] = field(default_factory=list)
    dropped: List[str] = field(default_factory=list)

    @property
    def dropped_count(self) -> int:
        return len(self.dropped)


class ReserveNormalizer:

    def __init__(self, catalog: Optional[TokenMetadataCatalog] = None):
        self.catalog = catalog or TokenMetadataCatalog.empty()

    def resolve(self, raw: RawReserveRecord) -> Tuple[Optional[str], int]:
        meta = self.catalog.resolve(raw.underlying_asset)

        symbol = meta.symbol if meta and meta.symbol else None
        if symbol is None and raw.symbol and raw.symbol.strip():
            symbol = raw.symbol.strip()

        if meta and meta.decimals is not None:
            decimals = meta.decimals
        elif raw.decimals is not None:
            decimals = int(raw.decimals)
        else:
            decimals = DEFAULT_DECIMALS
        return symbol, decimals

    def normalize(self, protocol: str, raw: RawReserveRecord) -> Optional[Reserve]:
        """Return the canonical Reserve, or None when the token cannot be identified."""
        symbol, decimals = self.resolve(raw)
        if symbol is None:
            return None

        def _opt(value):
            return None if value is None else to_units(value, decimals)

        return Reserve(
            protocol=protocol,
            symbol=symbol,
            address=raw.underlying_asset,
            decimals=decimals,
            available_liquidity=to_units(raw.available_liquidity, decimals),
            flash_loan_enabled=bool(raw.flash_loan_enabled) if raw.flash_loan_enabled is not None else False,
            borrow_cap=None if raw.borrow_cap is None else str(raw.borrow_cap),
            debt_ceiling=None if raw.debt_ceiling is None else str(raw.debt_ceiling),
            total_variable_debt=_opt(raw.total_variable_debt),
            total_stable_debt=_opt(raw.total_stable_debt),
        )

    def normalize_all(self, protocol: str, records: Iterable[RawReserveRecord]) -> NormalizationResult:
        result = NormalizationResult()
        for raw in records:
            reserve = self.normalize(protocol, raw)
            if reserve is None:
                result.dropped.append(raw.underlying_asset)
                continue
            result.reserves.append(reserve)

        if result.dropped:
            logger.warning(
                "%s: dropped %d reserve(s) with no resolvable symbol: %s",
                protocol, result.dropped_count, ", ".join(result.dropped),
            )
        return result

"""Record types shared by adapters, the normalizer and the snapshot writer."""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from decimal import Decimal
from typing import Any, Dict, List, Optional, Tuple


@dataclass(frozen=True)
class RawReserveRecord:
    """
    One reserve as reported by a provider, integers in smallest units.

    Superset of what the supported providers return; an adapter leaves the
    fields its provider does not report as None.
    """
    underlying_asset: str
    available_liquidity: int
    symbol: Optional[str] = None
    decimals: Optional[int] = None
    flash_loan_enabled: Optional[bool] = None
    borrow_cap: Optional[int] = None
    debt_ceiling: Optional[int] = None
    total_variable_debt: Optional[int] = None
    total_stable_debt: Optional[int] = None


@dataclass(frozen=True)
class MarketMetadata:
    """Base-currency info returned next to the reserves by getReservesData."""
    reference_currency_unit: int
    reference_currency_price_usd: int
    network_base_token_price_usd: int
    network_base_token_price_decimals: int

    @property
    def network_base_token_price(self) -> Decimal:
        return Decimal(self.network_base_token_price_usd).scaleb(-self.network_base_token_price_decimals)


@dataclass(frozen=True)
class Reserve:
    protocol: str
    symbol: str
    address: str
    decimals: int
    available_liquidity: Decimal
    flash_loan_enabled: bool = False
    borrow_cap: Optional[str] = None
    debt_ceiling: Optional[str] = None
    total_variable_debt: Optional[Decimal] = None
    total_stable_debt: Optional[Decimal] = None

    def to_dict(self) -> Dict[str, Any]:
        """Serializable form; decimals are written as exact strings, absent fields omitted."""
        out: Dict[str, Any] = {
            "protocol": self.protocol,
            "symbol": self.symbol,
            "address": self.address,
            "decimals": self.decimals,
            "availableLiquidity": _dec_str(self.available_liquidity),
            "flashLoanEnabled": self.flash_loan_enabled,
        }
        if self.borrow_cap is not None:
            out["borrowCap"] = self.borrow_cap
        if self.debt_ceiling is not None:
            out["debtCeiling"] = self.debt_ceiling
        if self.total_variable_debt is not None:
            out["totalVariableDebt"] = _dec_str(self.total_variable_debt)
        if self.total_stable_debt is not None:
            out["totalStableDebt"] = _dec_str(self.total_stable_debt)
        return out

    @classmethod
    def from_dict(cls, d: Dict[str, Any]) -> "Reserve":
        def _opt_dec(key):
            v = d.get(key)
            return None if v is None else Decimal(str(v))

        return cls(
            protocol=d["protocol"],
            symbol=d["symbol"],
            address=d["address"],
            decimals=int(d["decimals"]),
            available_liquidity=Decimal(str(d["availableLiquidity"])),
            flash_loan_enabled=bool(d.get("flashLoanEnabled", False)),
            borrow_cap=d.get("borrowCap"),
            debt_ceiling=d.get("debtCeiling"),
            total_variable_debt=_opt_dec("totalVariableDebt"),
            total_stable_debt=_opt_dec("totalStableDebt"),
        )


def _dec_str(value: Decimal) -> str:
    return format(value, "f")


@dataclass(frozen=True)
class Snapshot:
    protocol: str
    retrieved_at: datetime
    reserves: Tuple[Reserve, ...]
    label: str = ""
    network: str = ""
    market: Optional[MarketMetadata] = field(default=None, compare=False)

    kind = "reserves"

    def payload(self) -> List[Dict[str, Any]]:
        return [r.to_dict() for r in self.reserves]

    def labels(self) -> List[str]:
        return [r.symbol for r in self.reserves]


@dataclass(frozen=True)
class ReserveListSnapshot:
    """Addresses only, as returned by getReservesList."""
    protocol: str
    retrieved_at: datetime
    addresses: Tuple[str, ...]
    label: str = ""
    network: str = ""

    kind = "list"

    def payload(self) -> List[str]:
        return list(self.addresses)

    def labels(self) -> List[str]:
        return list(self.addresses)

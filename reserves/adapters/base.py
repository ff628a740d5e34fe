# adapters/base.py
from abc import ABC, abstractmethod
from typing import Any, Dict, List, Tuple

from ..chain_reader import ChainReaderClient
from ..config import ProtocolConfig
from ..errors import DecodeError
from ..models import MarketMetadata, RawReserveRecord

RAY = 10 ** 27
HALF_RAY = RAY // 2


def ray_mul(a: int, b: int) -> int:
    """Aave WadRayMath.rayMul (round half up)."""
    return (a * b + HALF_RAY) // RAY


def uint(row: Dict[str, Any], key: str) -> int:
    value = row.get(key)
    # bool is an int subclass but never a valid amount
    if isinstance(value, bool) or not isinstance(value, int) or value < 0:
        raise DecodeError(f"field {key!r}: expected unsigned int, got {value!r}")
    return value


class ReserveAdapter(ABC):
    """
    Base interface for reserve data providers.
    Implementations know one provider's struct layout; addresses and network
    come from config so the same adapter serves forks and other chains.
    """
    kind: str = ""
    description: str = ""
    RESERVES_DATA_ABI: List[Dict[str, Any]] = []

    def __init__(self, reader: ChainReaderClient, config: ProtocolConfig):
        self.reader = reader
        self.config = config

    @property
    def protocol(self) -> str:
        return self.config.name

    @property
    def label(self) -> str:
        return self.config.label or self.description or self.config.name

    def fetch_reserves_list(self) -> List[str]:
        return self.reader.call_reserves_list(self.config.data_provider, self.config.registry)

    def fetch_raw_reserves(self) -> Tuple[List[RawReserveRecord], MarketMetadata]:
        rows, base = self.reader.call_reserves_data(
            self.config.data_provider, self.config.registry, self.RESERVES_DATA_ABI
        )
        return [self.to_raw_record(r) for r in rows], self.to_market_metadata(base)

    @abstractmethod
    def to_raw_record(self, row: Dict[str, Any]) -> RawReserveRecord:
        """Map one decoded reserve struct into the shared raw schema."""
        ...

    def to_market_metadata(self, base: Dict[str, Any]) -> MarketMetadata:
        try:
            return MarketMetadata(
                reference_currency_unit=int(base["marketReferenceCurrencyUnit"]),
                reference_currency_price_usd=int(base["marketReferenceCurrencyPriceInUsd"]),
                network_base_token_price_usd=int(base["networkBaseTokenPriceInUsd"]),
                network_base_token_price_decimals=int(base["networkBaseTokenPriceDecimals"]),
            )
        except (KeyError, TypeError, ValueError) as e:
            raise DecodeError(f"{self.protocol}: bad base currency info: {e}") from e

"""Shared fixtures: provider rows, a fake chain reader and ready-made fetchers.

Nothing here touches the network.
"""

from datetime import datetime, timezone
from pathlib import Path

import pytest

from reserves.adapters import build_adapter
from reserves.adapters.aave_v3 import AGGREGATED_RESERVE_COMPONENTS as AAVE_COMPONENTS
from reserves.adapters.base import RAY
from reserves.catalog import TokenMetadataCatalog
from reserves.config import ProtocolConfig, ProtocolKind
from reserves.fetcher import ProtocolFetcher
from reserves.normalizer import ReserveNormalizer
from reserves.snapshot import SnapshotLayout, SnapshotWriter

USDC = "0xaf88d065e77c8cc2239327c5edb3a432268e5831"
WETH = "0x82af49447d8a07e3bd95bd0d56f35241523fbab1"
UNKNOWN = "0x000000000000000000000000000000000000bbbb"

AAVE_DATA_PROVIDER = "0x5c5228ac8bc1528482514af3e27e692495148717"
AAVE_REGISTRY = "0xa97684ead0e402dc232d5a977953df7ecbab3cdb"
RADIANT_DATA_PROVIDER = "0x56d4b07292343b149e0c60c7c41b7b1eeefdd733"
RADIANT_REGISTRY = "0x454a8daf74b24037ee2fa073ce1be9277ed6160a"

FIXED_TIME = datetime(2024, 1, 2, 3, 4, 5, tzinfo=timezone.utc)

BASE_CURRENCY = {
    "marketReferenceCurrencyUnit": 100000000,
    "marketReferenceCurrencyPriceInUsd": 100000000,
    "networkBaseTokenPriceInUsd": 250000000000,
    "networkBaseTokenPriceDecimals": 8,
}


def _default(kind: str):
    if kind == "address":
        return "0x" + "0" * 40
    if kind == "string":
        return ""
    if kind == "bool":
        return False
    return 0


def make_row(**overrides):
    """A full Aave V3 AggregatedReserveData row (also a superset of Radiant's)."""
    row = {c["name"]: _default(c["type"]) for c in AAVE_COMPONENTS}
    row["variableBorrowIndex"] = RAY
    row.update(overrides)
    return row


class FakeReader:
    """Stands in for ChainReaderClient; raises queued errors before answering."""

    def __init__(self, rows=None, base=None, addresses=None, errors=None, on_call=None):
        self.rows = rows if rows is not None else []
        self.base = base if base is not None else dict(BASE_CURRENCY)
        self.addresses = addresses or []
        self.errors = list(errors or [])
        self.on_call = on_call
        self.calls = 0

    def _answer(self, value):
        self.calls += 1
        if self.on_call:
            self.on_call()
        if self.errors:
            raise self.errors.pop(0)
        return value

    def call_reserves_data(self, data_provider, registry, abi):
        return self._answer((self.rows, self.base))

    def call_reserves_list(self, data_provider, registry):
        return self._answer(list(self.addresses))


@pytest.fixture
def aave_config() -> ProtocolConfig:
    return ProtocolConfig(
        name="aave",
        kind=ProtocolKind.AAVE_V3,
        data_provider=AAVE_DATA_PROVIDER,
        registry=AAVE_REGISTRY,
        label="Aave V3",
    )


@pytest.fixture
def radiant_config() -> ProtocolConfig:
    return ProtocolConfig(
        name="radiant",
        kind=ProtocolKind.RADIANT_V2,
        data_provider=RADIANT_DATA_PROVIDER,
        registry=RADIANT_REGISTRY,
        label="Radiant V2",
    )


@pytest.fixture
def sample_rows():
    return [
        make_row(underlyingAsset=USDC, symbol="USDC", decimals=6,
                 availableLiquidity=1_000_000_000, flashLoanEnabled=True, borrowCap=5000),
        make_row(underlyingAsset=WETH, symbol="WETH", decimals=18,
                 availableLiquidity=2 * 10 ** 18, totalScaledVariableDebt=10 ** 18),
        make_row(underlyingAsset=UNKNOWN, symbol="", decimals=18,
                 availableLiquidity=5 * 10 ** 18),
    ]


@pytest.fixture
def catalog() -> TokenMetadataCatalog:
    return TokenMetadataCatalog.from_mapping({
        USDC: {"symbol": "USDC", "decimals": 6},
        WETH: {"symbol": "WETH", "decimals": 18},
    })


@pytest.fixture
def layout(tmp_path: Path) -> SnapshotLayout:
    return SnapshotLayout(out_root=tmp_path / "logs", annotated_root=tmp_path / "data")


@pytest.fixture
def make_fetcher(catalog, layout):
    """Factory: ProtocolFetcher around a FakeReader."""

    def _make(config, reader, mode="reserves", retries=0, max_backoff=0.0):
        return ProtocolFetcher(
            adapter=build_adapter(reader, config),
            normalizer=ReserveNormalizer(catalog),
            writer=SnapshotWriter(),
            layout=layout,
            mode=mode,
            retries=retries,
            max_backoff=max_backoff,
            clock=lambda: FIXED_TIME,
        )

    return _make

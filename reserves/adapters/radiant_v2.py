"""
Radiant V2 reserve adapter

Radiant's UiPoolDataProvider keeps the Aave V2 struct: no flash-loan flag,
no borrow cap or debt ceiling. Symbol and decimals come straight from the
provider; the catalog can override both.
"""

from typing import Any, Dict

from ..errors import DecodeError
from ..models import RawReserveRecord
from .base import ReserveAdapter, ray_mul, uint

AGGREGATED_RESERVE_COMPONENTS = [
    {"name": "underlyingAsset", "type": "address"},
    {"name": "name", "type": "string"},
    {"name": "symbol", "type": "string"},
    {"name": "decimals", "type": "uint8"},
    {"name": "baseLTVasCollateral", "type": "uint256"},
    {"name": "reserveLiquidationThreshold", "type": "uint256"},
    {"name": "reserveLiquidationBonus", "type": "uint256"},
    {"name": "reserveFactor", "type": "uint256"},
    {"name": "usageAsCollateralEnabled", "type": "bool"},
    {"name": "borrowingEnabled", "type": "bool"},
    {"name": "stableBorrowRateEnabled", "type": "bool"},
    {"name": "isActive", "type": "bool"},
    {"name": "isFrozen", "type": "bool"},
    {"name": "liquidityIndex", "type": "uint256"},
    {"name": "variableBorrowIndex", "type": "uint256"},
    {"name": "liquidityRate", "type": "uint256"},
    {"name": "variableBorrowRate", "type": "uint256"},
    {"name": "stableBorrowRate", "type": "uint256"},
    {"name": "lastUpdateTimestamp", "type": "uint40"},
    {"name": "aTokenAddress", "type": "address"},
    {"name": "stableDebtTokenAddress", "type": "address"},
    {"name": "variableDebtTokenAddress", "type": "address"},
    {"name": "interestRateStrategyAddress", "type": "address"},
    {"name": "availableLiquidity", "type": "uint256"},
    {"name": "totalPrincipalStableDebt", "type": "uint256"},
    {"name": "averageStableRate", "type": "uint256"},
    {"name": "stableDebtLastUpdateTimestamp", "type": "uint40"},
    {"name": "totalScaledVariableDebt", "type": "uint256"},
    {"name": "priceInMarketReferenceCurrency", "type": "uint256"},
    {"name": "priceOracle", "type": "address"},
    {"name": "variableRateSlope1", "type": "uint256"},
    {"name": "variableRateSlope2", "type": "uint256"},
    {"name": "stableRateSlope1", "type": "uint256"},
    {"name": "stableRateSlope2", "type": "uint256"},
]

# Radiant BaseCurrencyInfo, unsigned prices
BASE_CURRENCY_COMPONENTS = [
    {"name": "marketReferenceCurrencyUnit", "type": "uint256"},
    {"name": "marketReferenceCurrencyPriceInUsd", "type": "uint256"},
    {"name": "networkBaseTokenPriceInUsd", "type": "uint256"},
    {"name": "networkBaseTokenPriceDecimals", "type": "uint8"},
]

RESERVES_DATA_ABI = [
    {
        "name": "getReservesData",
        "type": "function",
        "stateMutability": "view",
        "inputs": [{"name": "provider", "type": "address"}],
        "outputs": [
            {"name": "", "type": "tuple[]", "components": AGGREGATED_RESERVE_COMPONENTS},
            {"name": "", "type": "tuple", "components": BASE_CURRENCY_COMPONENTS},
        ],
    },
]


class RadiantV2Adapter(ReserveAdapter):
    kind = "radiant_v2"
    description = "Radiant V2"
    RESERVES_DATA_ABI = RESERVES_DATA_ABI

    def to_raw_record(self, row: Dict[str, Any]) -> RawReserveRecord:
        asset = row.get("underlyingAsset")
        if not isinstance(asset, str):
            raise DecodeError(f"{self.protocol}: reserve without underlyingAsset: {row!r}")

        return RawReserveRecord(
            underlying_asset=asset,
            symbol=row.get("symbol") or None,
            decimals=uint(row, "decimals"),
            available_liquidity=uint(row, "availableLiquidity"),
            total_variable_debt=ray_mul(uint(row, "totalScaledVariableDebt"), uint(row, "variableBorrowIndex")),
            total_stable_debt=uint(row, "totalPrincipalStableDebt"),
        )

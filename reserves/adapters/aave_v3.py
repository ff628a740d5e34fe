"""
Aave V3 reserve adapter

Architecture:
- Registry: PoolAddressesProvider (0xa976... on Arbitrum)
- UiPoolDataProviderV3: aggregates every reserve of the pool in one call

Extraction:
1. getReservesData(registry) -> (AggregatedReserveData[], BaseCurrencyInfo)
2. Map each struct onto RawReserveRecord (raw integer amounts)

Variable debt is reported scaled; it is multiplied by variableBorrowIndex
(ray) to get the outstanding amount.
"""

from typing import Any, Dict

from ..errors import DecodeError
from ..models import RawReserveRecord
from .base import ReserveAdapter, ray_mul, uint

# UiPoolDataProviderV3 AggregatedReserveData (periphery v3.0.x layout)
AGGREGATED_RESERVE_COMPONENTS = [
    {"name": "underlyingAsset", "type": "address"},
    {"name": "name", "type": "string"},
    {"name": "symbol", "type": "string"},
    {"name": "decimals", "type": "uint256"},
    {"name": "baseLTVasCollateral", "type": "uint256"},
    {"name": "reserveLiquidationThreshold", "type": "uint256"},
    {"name": "reserveLiquidationBonus", "type": "uint256"},
    {"name": "reserveFactor", "type": "uint256"},
    {"name": "usageAsCollateralEnabled", "type": "bool"},
    {"name": "borrowingEnabled", "type": "bool"},
    {"name": "stableBorrowRateEnabled", "type": "bool"},
    {"name": "isActive", "type": "bool"},
    {"name": "isFrozen", "type": "bool"},
    {"name": "liquidityIndex", "type": "uint128"},
    {"name": "variableBorrowIndex", "type": "uint128"},
    {"name": "liquidityRate", "type": "uint128"},
    {"name": "variableBorrowRate", "type": "uint128"},
    {"name": "stableBorrowRate", "type": "uint128"},
    {"name": "lastUpdateTimestamp", "type": "uint40"},
    {"name": "aTokenAddress", "type": "address"},
    {"name": "stableDebtTokenAddress", "type": "address"},
    {"name": "variableDebtTokenAddress", "type": "address"},
    {"name": "interestRateStrategyAddress", "type": "address"},
    {"name": "availableLiquidity", "type": "uint256"},
    {"name": "totalPrincipalStableDebt", "type": "uint256"},
    {"name": "averageStableRate", "type": "uint256"},
    {"name": "stableDebtLastUpdateTimestamp", "type": "uint256"},
    {"name": "totalScaledVariableDebt", "type": "uint256"},
    {"name": "priceInMarketReferenceCurrency", "type": "uint256"},
    {"name": "priceOracle", "type": "address"},
    {"name": "variableRateSlope1", "type": "uint256"},
    {"name": "variableRateSlope2", "type": "uint256"},
    {"name": "stableRateSlope1", "type": "uint256"},
    {"name": "stableRateSlope2", "type": "uint256"},
    {"name": "baseStableBorrowRate", "type": "uint256"},
    {"name": "baseVariableBorrowRate", "type": "uint256"},
    {"name": "optimalUsageRatio", "type": "uint256"},
    {"name": "isPaused", "type": "bool"},
    {"name": "isSiloedBorrowing", "type": "bool"},
    {"name": "accruedToTreasury", "type": "uint128"},
    {"name": "unbacked", "type": "uint128"},
    {"name": "isolationModeTotalDebt", "type": "uint128"},
    {"name": "flashLoanEnabled", "type": "bool"},
    {"name": "debtCeiling", "type": "uint256"},
    {"name": "debtCeilingDecimals", "type": "uint256"},
    {"name": "eModeCategoryId", "type": "uint8"},
    {"name": "borrowCap", "type": "uint256"},
    {"name": "supplyCap", "type": "uint256"},
    {"name": "eModeLtv", "type": "uint16"},
    {"name": "eModeLiquidationThreshold", "type": "uint16"},
    {"name": "eModeLiquidationBonus", "type": "uint16"},
    {"name": "eModePriceSource", "type": "address"},
    {"name": "eModeLabel", "type": "string"},
    {"name": "borrowableInIsolation", "type": "bool"},
]

# UiPoolDataProviderV3 BaseCurrencyInfo, signed prices
BASE_CURRENCY_COMPONENTS = [
    {"name": "marketReferenceCurrencyUnit", "type": "uint256"},
    {"name": "marketReferenceCurrencyPriceInUsd", "type": "int256"},
    {"name": "networkBaseTokenPriceInUsd", "type": "int256"},
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


class AaveV3Adapter(ReserveAdapter):
    kind = "aave_v3"
    description = "Aave V3"
    RESERVES_DATA_ABI = RESERVES_DATA_ABI

    def to_raw_record(self, row: Dict[str, Any]) -> RawReserveRecord:
        asset = row.get("underlyingAsset")
        if not isinstance(asset, str):
            raise DecodeError(f"{self.protocol}: reserve without underlyingAsset: {row!r}")

        decimals = uint(row, "decimals")
        if decimals > 255:
            raise DecodeError(f"{self.protocol}: {asset} reports {decimals} decimals")

        return RawReserveRecord(
            underlying_asset=asset,
            symbol=row.get("symbol") or None,
            decimals=decimals,
            available_liquidity=uint(row, "availableLiquidity"),
            flash_loan_enabled=bool(row.get("flashLoanEnabled", False)),
            borrow_cap=uint(row, "borrowCap"),
            debt_ceiling=uint(row, "debtCeiling"),
            total_variable_debt=ray_mul(uint(row, "totalScaledVariableDebt"), uint(row, "variableBorrowIndex")),
            total_stable_debt=uint(row, "totalPrincipalStableDebt"),
        )

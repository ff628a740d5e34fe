"""
Read-only access to the provider contracts over JSON-RPC.

No retries happen here; the HTTP provider's own retry loop is switched off
and retry policy is left to the fetcher.
"""

from __future__ import annotations

import logging
from collections.abc import Mapping
from typing import Any, Dict, List, Optional, Sequence, Tuple

import requests
from eth_abi.exceptions import DecodingError
from web3 import Web3
from web3.exceptions import (
    BadFunctionCallOutput,
    ContractLogicError,
    MismatchedABI,
    ProviderConnectionError,
    TimeExhausted,
    TooManyRequests,
    Web3RPCError,
    Web3ValidationError,
)

from .errors import DecodeError, TransportError

logger = logging.getLogger(__name__)

TRANSPORT_ERRORS = (
    requests.exceptions.RequestException,
    ProviderConnectionError,
    TooManyRequests,
    TimeExhausted,
    Web3RPCError,
    ConnectionError,
    TimeoutError,
)

DECODE_ERRORS = (
    BadFunctionCallOutput,
    ContractLogicError,
    DecodingError,
    MismatchedABI,
    Web3ValidationError,
)

RESERVES_LIST_ABI = [
    {
        "name": "getReservesList",
        "type": "function",
        "stateMutability": "view",
        "inputs": [{"name": "provider", "type": "address"}],
        "outputs": [{"name": "", "type": "address[]"}],
    },
]


def output_components(abi: Sequence[Dict[str, Any]], fn_name: str) -> List[List[str]]:
    """Field names of each tuple output of `fn_name`, in ABI order."""
    for entry in abi:
        if entry.get("type") == "function" and entry.get("name") == fn_name:
            return [[c["name"] for c in out.get("components", [])] for out in entry.get("outputs", [])]
    raise ValueError(f"{fn_name} not present in ABI")


def as_row(values: Any, names: Sequence[str]) -> Dict[str, Any]:
    """Map one decoded tuple onto its component names."""
    if isinstance(values, Mapping):
        row = dict(values)
        missing = [n for n in names if n not in row]
        if missing:
            raise DecodeError(f"response tuple is missing fields {missing}")
        return row
    if hasattr(values, "_asdict"):
        return dict(values._asdict())
    if not isinstance(values, (tuple, list)) or len(values) != len(names):
        got = len(values) if isinstance(values, (tuple, list)) else type(values).__name__
        raise DecodeError(f"expected a {len(names)}-field tuple, got {got}")
    return dict(zip(names, values))


class ChainReaderClient:

    def __init__(self, rpc_url: str, timeout: float = 30.0, w3: Optional[Web3] = None):
        self.rpc_url = rpc_url
        self.timeout = timeout
        if w3 is None:
            w3 = Web3(Web3.HTTPProvider(
                rpc_url,
                request_kwargs={"timeout": timeout},
                exception_retry_configuration=None,
            ))
        self.w3 = w3

    def _call(self, what: str, fn):
        try:
            return fn.call()
        except DECODE_ERRORS as e:
            raise DecodeError(f"{what}: {e}") from e
        except TRANSPORT_ERRORS as e:
            raise TransportError(f"{what}: {type(e).__name__}: {e}") from e

    def _contract(self, address: str, abi):
        return self.w3.eth.contract(address=Web3.to_checksum_address(address), abi=abi)

    def call_reserves_list(self, data_provider: str, registry: str) -> List[str]:
        """Underlying asset addresses listed by the pool behind `registry`."""
        contract = self._contract(data_provider, RESERVES_LIST_ABI)
        result = self._call(
            f"getReservesList({registry})",
            contract.functions.getReservesList(Web3.to_checksum_address(registry)),
        )
        if not isinstance(result, (list, tuple)):
            raise DecodeError(f"getReservesList: expected an address list, got {type(result).__name__}")
        out = []
        for addr in result:
            if not isinstance(addr, str) or not Web3.is_address(addr):
                raise DecodeError(f"getReservesList: not an address: {addr!r}")
            out.append(Web3.to_checksum_address(addr))
        logger.debug("getReservesList(%s) -> %d assets", registry, len(out))
        return out

    def call_reserves_data(
        self, data_provider: str, registry: str, abi: Sequence[Dict[str, Any]]
    ) -> Tuple[List[Dict[str, Any]], Dict[str, Any]]:
        """
        Call getReservesData(registry) and decode it against `abi`.

        Returns (reserve rows, base currency row), each row a dict keyed by
        the struct component names from the ABI.
        """
        reserve_fields, base_fields = output_components(abi, "getReservesData")
        contract = self._contract(data_provider, abi)
        result = self._call(
            f"getReservesData({registry})",
            contract.functions.getReservesData(Web3.to_checksum_address(registry)),
        )

        try:
            reserves, base = result
        except (TypeError, ValueError):
            raise DecodeError("getReservesData: expected (reserves, baseCurrency) pair") from None
        if not isinstance(reserves, (list, tuple)):
            raise DecodeError(f"getReservesData: reserves is {type(reserves).__name__}, expected a list")

        rows = [as_row(r, reserve_fields) for r in reserves]
        logger.debug("getReservesData(%s) -> %d reserves", registry, len(rows))
        return rows, as_row(base, base_fields)

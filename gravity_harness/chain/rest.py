"""
HTTP Chain Readers

Read-only clients for the two sides of the bridge:

  - CosmosRestClient:   Cosmos SDK REST gateway (gravity, bank, gov, staking)
  - EthereumRpcClient:  Ethereum JSON-RPC

Both share one httpx.AsyncClient supplied by the caller so connection pools
and timeouts are owned by the scenario runner. Every failure (unreachable
endpoint, HTTP error status, malformed payload) surfaces as TransportError.
"""

import itertools
import time
from typing import Any, Dict, List, Optional

import httpx

from ..constants import LOG_INCLUDE_RESPONSE_CONTENT, LOG_MAX_PATH_LENGTH, OPERATION_TIMEOUT
from ..exceptions import TransportError
from ..logger import get_logger
from .interfaces import ChainQueryClient, EthereumClient

logger = get_logger(__name__)

PROPOSAL_STATUS_VOTING_PERIOD = "PROPOSAL_STATUS_VOTING_PERIOD"


async def request_json(client: httpx.AsyncClient, url: str, method: str = "GET", **kwargs) -> Any:
    """
    Perform an HTTP request and decode the JSON body.

    Raises:
        TransportError: on network errors, non-2xx status or invalid JSON
    """
    start_time = time.time()
    log_url = url if len(url) <= LOG_MAX_PATH_LENGTH else url[:LOG_MAX_PATH_LENGTH] + "...[TRUNCATED]"
    logger.debug(f"--> \"{method} {log_url}\"")

    try:
        response = await client.request(method, url, **kwargs)
        response.raise_for_status()
        payload = response.json()
    except httpx.RequestError as e:
        logger.warning(f"<-- \"{method} {log_url}\" NETWORK_ERROR ({time.time() - start_time:.3f}s)")
        raise TransportError(f"{method} {url} failed: {e}") from e
    except httpx.HTTPStatusError as e:
        status = e.response.status_code
        logger.warning(f"<-- \"{method} {log_url}\" {status} ERROR ({time.time() - start_time:.3f}s)")
        raise TransportError(f"{method} {url} returned HTTP {status}") from e
    except ValueError as e:
        raise TransportError(f"{method} {url} returned invalid JSON: {e}") from e

    if LOG_INCLUDE_RESPONSE_CONTENT:
        logger.debug(f"<-- \"{method} {log_url}\" {response.status_code} ({time.time() - start_time:.3f}s) {payload}")
    else:
        logger.debug(f"<-- \"{method} {log_url}\" {response.status_code} ({time.time() - start_time:.3f}s)")
    return payload


def _field(payload: Any, *path: str) -> Any:
    """Walk nested keys of a decoded payload, raising TransportError on shape mismatch."""
    value = payload
    for key in path:
        if not isinstance(value, dict) or key not in value:
            raise TransportError(f"Malformed response: missing {'.'.join(path)}")
        value = value[key]
    return value


def _as_int(value: Any, what: str) -> int:
    try:
        return int(value)
    except (TypeError, ValueError) as e:
        raise TransportError(f"Malformed response: {what} is not an integer ({value!r})") from e


class CosmosRestClient(ChainQueryClient):
    """Queries over the Cosmos SDK REST gateway."""

    def __init__(self, base_url: str, client: httpx.AsyncClient):
        self.base_url = base_url.rstrip("/")
        self.client = client

    async def get_last_event_nonce(self, orchestrator_address: str) -> int:
        payload = await request_json(
            self.client, f"{self.base_url}/gravity/v1beta/oracle/eventnonce/{orchestrator_address}"
        )
        return _as_int(_field(payload, "event_nonce"), "event_nonce")

    async def get_balance(self, address: str, denom: str) -> int:
        payload = await request_json(
            self.client,
            f"{self.base_url}/cosmos/bank/v1beta1/balances/{address}/by_denom",
            params={"denom": denom},
        )
        balance = _field(payload, "balance")
        if balance is None:
            return 0
        return _as_int(_field(balance, "amount"), "balance.amount")

    async def list_proposals_in_voting_period(self) -> List[int]:
        payload = await request_json(
            self.client,
            f"{self.base_url}/cosmos/gov/v1beta1/proposals",
            params={"proposal_status": PROPOSAL_STATUS_VOTING_PERIOD},
        )
        proposals = _field(payload, "proposals")
        return [_as_int(_field(p, "proposal_id"), "proposal_id") for p in proposals]

    async def get_validator_powers(self) -> Dict[str, int]:
        payload = await request_json(self.client, f"{self.base_url}/cosmos/staking/v1beta1/validators")
        return {
            _field(v, "operator_address"): _as_int(_field(v, "tokens"), "tokens")
            for v in _field(payload, "validators")
        }


class EthereumRpcClient(EthereumClient):
    """Minimal Ethereum JSON-RPC reader."""

    def __init__(self, url: str, client: httpx.AsyncClient, timeout: Optional[float] = OPERATION_TIMEOUT):
        self.url = url
        self.client = client
        self.timeout = timeout
        self._ids = itertools.count(1)

    async def call(self, method: str, params: Optional[list] = None) -> Any:
        body = {"jsonrpc": "2.0", "id": next(self._ids), "method": method, "params": params or []}
        payload = await request_json(self.client, self.url, method="POST", json=body, timeout=self.timeout)
        if isinstance(payload, dict) and payload.get("error"):
            error = payload["error"]
            raise TransportError(f"JSON-RPC {method} error: {error.get('message', error)}")
        return _field(payload, "result")

    async def get_latest_block_number(self) -> int:
        result = await self.call("eth_blockNumber")
        return _hex_to_int(result, "eth_blockNumber")

    async def get_balance(self, address: str, block: str = "latest") -> int:
        result = await self.call("eth_getBalance", [address, block])
        return _hex_to_int(result, "eth_getBalance")


def _hex_to_int(value: Any, what: str) -> int:
    try:
        return int(value, 16)
    except (TypeError, ValueError) as e:
        raise TransportError(f"Malformed {what} result: {value!r}") from e

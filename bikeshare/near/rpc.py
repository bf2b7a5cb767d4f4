import asyncio
import base64
import json
import random
import time
from typing import Any, Dict, Optional

import httpx

from bikeshare.core.errors import RpcError
from bikeshare.observability.logging import log
from bikeshare.settings import settings


def encode_args(args: Optional[Dict[str, Any]]) -> str:
    return base64.b64encode(json.dumps(args or {}, separators=(",", ":")).encode("utf-8")).decode("ascii")


def decode_result(raw) -> Any:
    """View results arrive as a list of byte values holding JSON. Empty means null."""
    data = bytes(raw or [])
    if not data:
        return None
    return json.loads(data.decode("utf-8"))


class NearRpc:
    """
    Read-only JSON-RPC client for contract view methods.

    POST {nodeUrl}  method=query, request_type=call_function, finality=final

    Transport failures are retried within RPC_CLIENT_BUDGET_SEC; protocol
    errors (unknown method, contract panic) are raised on first sight.
    """

    def __init__(
        self,
        node_url: str,
        *,
        client: Optional[httpx.AsyncClient] = None,
        max_retries: Optional[int] = None,
        budget_sec: Optional[float] = None,
    ):
        self.node_url = node_url
        self._client = client or httpx.AsyncClient(timeout=settings.RPC_REQUEST_TIMEOUT_SEC)
        self.max_retries = max(1, int(max_retries if max_retries is not None else settings.RPC_MAX_RETRIES))
        self.budget_sec = float(budget_sec if budget_sec is not None else settings.RPC_CLIENT_BUDGET_SEC)

    async def aclose(self) -> None:
        await self._client.aclose()

    async def view(self, contract_id: str, method: str, args: Optional[Dict[str, Any]] = None) -> Any:
        payload = {
            "jsonrpc": "2.0",
            "id": "dontcare",
            "method": "query",
            "params": {
                "request_type": "call_function",
                "finality": "final",
                "account_id": contract_id,
                "method_name": method,
                "args_base64": encode_args(args),
            },
        }
        start = time.time()
        attempt = 0
        last_err = None
        while (time.time() - start) < self.budget_sec and attempt < self.max_retries:
            attempt += 1
            try:
                resp = await self._client.post(self.node_url, json=payload)
                resp.raise_for_status()
                return self._unwrap(contract_id, method, resp.json())
            except httpx.HTTPError as e:
                last_err = e
                remaining = self.budget_sec - (time.time() - start)
                if remaining <= 0 or attempt >= self.max_retries:
                    break
                await asyncio.sleep(min(0.2 + random.uniform(0.0, 0.1), max(0.0, remaining)))
        elapsed = round(time.time() - start, 3)
        log(event="rpc_view_failed", contract=contract_id, method=method, attempts=attempt, error=str(last_err)[:300])
        raise RpcError(f"{contract_id}.{method} failed (attempts={attempt}, elapsed={elapsed}s): {last_err}")

    @staticmethod
    def _unwrap(contract_id: str, method: str, data: Dict[str, Any]) -> Any:
        err = data.get("error")
        if err:
            cause = (err.get("cause") or {}).get("name") if isinstance(err, dict) else None
            message = cause or (err.get("message") if isinstance(err, dict) else str(err))
            raise RpcError(f"{contract_id}.{method}: {message}")
        result = data.get("result") or {}
        # Contract panics come back as a successful RPC call carrying an error string
        if result.get("error"):
            raise RpcError(f"{contract_id}.{method}: {result['error']}")
        try:
            return decode_result(result.get("result"))
        except ValueError as e:
            raise RpcError(f"{contract_id}.{method}: undecodable result ({e})") from e

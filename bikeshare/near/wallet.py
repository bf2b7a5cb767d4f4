"""
Wallet Connection
-----------------
Adapter for the external identity provider / transaction signer.

Identity: the signed-in account id is kept in a small credentials file that
the wallet callback writes and sign-out removes. Nothing else is stored.

Signing: every change call is handed to the wallet signer endpoint as one
function-call transaction. The signer may wait for a human to approve, so by
default no local timeout is applied (WALLET_SIGN_TIMEOUT_SEC=0).
"""

from __future__ import annotations

import base64
import json
import os
from typing import Any, Dict, Optional
from urllib.parse import urlencode

import httpx

from bikeshare.core.errors import TransactionRejected
from bikeshare.core.models import Receipt
from bikeshare.observability.logging import log
from bikeshare.settings import settings


def _decode_success_value(value: Optional[str]) -> Any:
    if not value:
        return None
    raw = base64.b64decode(value)
    if not raw:
        return None
    try:
        return json.loads(raw.decode("utf-8"))
    except ValueError:
        return raw.decode("utf-8", errors="replace")


def parse_outcome(method: str, receiver_id: str, outcome: Dict[str, Any]) -> Receipt:
    """Turn a final execution outcome into a Receipt, raising on Failure status."""
    status = outcome.get("status") or {}
    if isinstance(status, dict) and "Failure" in status:
        raise TransactionRejected(method, json.dumps(status["Failure"])[:300])
    tx_hash = str(
        (outcome.get("transaction") or {}).get("hash")
        or (outcome.get("transaction_outcome") or {}).get("id")
        or ""
    )
    value = _decode_success_value(status.get("SuccessValue")) if isinstance(status, dict) else None
    return Receipt(method=method, receiverId=receiver_id, txHash=tx_hash, value=value)


class WalletConnection:
    def __init__(
        self,
        wallet_url: str,
        *,
        signer_url: Optional[str] = None,
        credentials_path: Optional[str] = None,
        client: Optional[httpx.AsyncClient] = None,
    ):
        self.wallet_url = (wallet_url or "").rstrip("/")
        self.signer_url = signer_url or settings.WALLET_SIGNER_URL or f"{self.wallet_url}/sign"
        self.credentials_path = credentials_path or settings.CREDENTIALS_PATH
        timeout = settings.WALLET_SIGN_TIMEOUT_SEC or None
        self._client = client or httpx.AsyncClient(timeout=timeout)
        self._account_id = self._load_account_id()

    def _load_account_id(self) -> str:
        if not os.path.exists(self.credentials_path):
            return ""
        try:
            with open(self.credentials_path, "r", encoding="utf-8") as f:
                data = json.load(f)
        except (OSError, ValueError) as e:
            # Unreadable credentials count as signed out; the next sign-in rewrites them
            log(event="wallet_credentials_unreadable", path=self.credentials_path, error=str(e)[:200])
            return ""
        if not isinstance(data, dict):
            log(event="wallet_credentials_unreadable", path=self.credentials_path, error="not a JSON object")
            return ""
        return str(data.get("account_id") or "")

    def is_signed_in(self) -> bool:
        return bool(self._account_id)

    def get_account_id(self) -> str:
        return self._account_id

    def request_sign_in(self, contract_id: str, success_url: Optional[str] = None) -> str:
        """Login URL allowing this client to call contract_id on the user's behalf."""
        query = urlencode({
            "contract_id": contract_id,
            "success_url": success_url or settings.SIGN_IN_SUCCESS_URL,
        })
        return f"{self.wallet_url}/login/?{query}"

    def complete_sign_in(self, account_id: str) -> None:
        directory = os.path.dirname(self.credentials_path)
        if directory:
            os.makedirs(directory, exist_ok=True)
        with open(self.credentials_path, "w", encoding="utf-8") as f:
            json.dump({"account_id": account_id}, f)
        self._account_id = account_id
        log(event="wallet_signed_in", accountId=account_id)

    def sign_out(self) -> None:
        if os.path.exists(self.credentials_path):
            os.remove(self.credentials_path)
        log(event="wallet_signed_out", accountId=self._account_id)
        self._account_id = ""

    async def function_call(
        self,
        contract_id: str,
        method: str,
        args: Optional[Dict[str, Any]] = None,
        *,
        gas: Optional[int] = None,
        deposit: int = 0,
    ) -> Receipt:
        if not self._account_id:
            raise TransactionRejected(method, "not signed in")
        tx = {
            "signerId": self._account_id,
            "receiverId": contract_id,
            "actions": [{
                "type": "FunctionCall",
                "params": {
                    "methodName": method,
                    "args": args or {},
                    # u64/u128 values travel as strings
                    "gas": str(gas or settings.DEFAULT_FUNCTION_CALL_GAS),
                    "deposit": str(deposit),
                },
            }],
        }
        log(event="wallet_function_call", signerId=self._account_id, receiverId=contract_id, method=method)
        try:
            resp = await self._client.post(self.signer_url, json=tx)
            resp.raise_for_status()
            outcome = resp.json()
        except httpx.HTTPError as e:
            raise TransactionRejected(method, f"{type(e).__name__}: {str(e)[:200]}") from e
        except ValueError as e:
            raise TransactionRejected(method, f"invalid signer response: {e}") from e
        return parse_outcome(method, contract_id, outcome)

    async def aclose(self) -> None:
        await self._client.aclose()

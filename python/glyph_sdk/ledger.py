"""
ledger.py — Ledger Client Boundary

The core never builds ledger transactions. It hands payload bytes to a
`signer` (which wraps them in a signed, serialized transaction) and reads
payload bytes back by transaction reference.

Two implementations:
  - MemoryLedger        — in-process, for tests and local tooling
  - JsonRpcLedgerClient — Solana-style JSON-RPC over httpx, memo program
"""
from __future__ import annotations

import inspect
import itertools
import logging
from typing import Any, Awaitable, Callable, Dict, Optional, Protocol, Union

import httpx

from .compression import from_base58, to_base58
from .config import CodecConfig
from .errors import NetworkFailure
from .hashing import hash_bytes

logger = logging.getLogger(__name__)

MEMO_PROGRAM_ID = "MemoSq4gqABAXKb96qnH8TysNcWxMyWCqXgDLGmfcHr"

# payload bytes → serialized signed transaction (base64), sync or async
Signer = Callable[[bytes], Union[str, Awaitable[str]]]

RETRYABLE_STATUS = {408, 425, 429, 500, 502, 503, 504}


class LedgerClient(Protocol):
    async def fetch_transaction_payload(self, ref: str) -> Optional[bytes]: ...

    async def submit_payload(self, payload: bytes, signer: Optional[Signer] = None) -> str: ...

    def payload_size_ceiling(self) -> int: ...


class MemoryLedger:
    """
    Dict-backed ledger. `fail_next[ref] = n` makes the next n fetches of
    `ref` raise NetworkFailure; refs in `fail_always` never succeed.
    """

    def __init__(self, ceiling: Optional[int] = None):
        self.ceiling = ceiling if ceiling is not None else CodecConfig().payload_ceiling
        self.transactions: Dict[str, bytes] = {}
        self.fail_next: Dict[str, int] = {}
        self.fail_always: set = set()
        self.fetch_count = 0
        self._nonce = itertools.count()

    async def fetch_transaction_payload(self, ref: str) -> Optional[bytes]:
        self.fetch_count += 1
        if ref in self.fail_always:
            raise NetworkFailure(f"Simulated outage for {ref}")
        remaining = self.fail_next.get(ref, 0)
        if remaining > 0:
            self.fail_next[ref] = remaining - 1
            raise NetworkFailure(f"Simulated transient failure for {ref}")
        return self.transactions.get(ref)

    async def submit_payload(self, payload: bytes, signer: Optional[Signer] = None) -> str:
        if len(payload) > self.ceiling:
            raise NetworkFailure(
                f"Payload of {len(payload)} bytes exceeds ledger ceiling {self.ceiling}",
                retryable=False,
            )
        if signer is not None:
            await _sign(signer, payload)
        ref = to_base58(hash_bytes(payload + str(next(self._nonce)).encode("ascii")))
        self.transactions[ref] = bytes(payload)
        return ref

    def payload_size_ceiling(self) -> int:
        return self.ceiling


async def _sign(signer: Signer, payload: bytes) -> str:
    result = signer(payload)
    if inspect.isawaitable(result):
        result = await result
    return result


class JsonRpcLedgerClient:
    """
    Solana-style JSON-RPC client. Payloads are read from the memo program
    instruction of a transaction.
    """

    def __init__(
        self,
        url: str,
        ceiling: Optional[int] = None,
        memo_program_id: str = MEMO_PROGRAM_ID,
        client: Optional[httpx.AsyncClient] = None,
        timeout: float = 30.0,
    ):
        self.url = url
        self.ceiling = ceiling if ceiling is not None else CodecConfig().payload_ceiling
        self.memo_program_id = memo_program_id
        self.http_client = client or httpx.AsyncClient(timeout=timeout)
        self._ids = itertools.count(1)

    async def close(self):
        await self.http_client.aclose()

    async def _call(self, method: str, params: list) -> Any:
        body = {"jsonrpc": "2.0", "id": next(self._ids), "method": method, "params": params}
        try:
            response = await self.http_client.post(self.url, json=body)
            response.raise_for_status()
        except httpx.HTTPStatusError as e:
            status = e.response.status_code
            raise NetworkFailure(
                f"{method} failed with HTTP {status}",
                retryable=status in RETRYABLE_STATUS,
                status_code=status,
            ) from e
        except httpx.TransportError as e:
            raise NetworkFailure(f"{method} transport error: {e}") from e
        except httpx.HTTPError as e:
            raise NetworkFailure(f"{method} HTTP error: {e}", retryable=False) from e

        try:
            data = response.json()
        except ValueError as e:
            raise NetworkFailure(f"{method} returned a non-JSON body") from e
        if not isinstance(data, dict):
            raise NetworkFailure(f"{method} returned {type(data).__name__}, expected an object")

        error = data.get("error")
        if error:
            code = error.get("code") if isinstance(error, dict) else None
            message = error.get("message") if isinstance(error, dict) else error
            raise NetworkFailure(f"{method} RPC error {code}: {message}", status_code=code)
        return data.get("result")

    async def fetch_transaction_payload(self, ref: str) -> Optional[bytes]:
        result = await self._call("getTransaction", [
            ref,
            {"encoding": "jsonParsed", "maxSupportedTransactionVersion": 0, "commitment": "confirmed"},
        ])
        if result is None:
            return None
        if not isinstance(result, dict):
            raise NetworkFailure(f"getTransaction returned {type(result).__name__} for {ref}")
        return self.extract_memo(result)

    def extract_memo(self, result: Dict[str, Any]) -> Optional[bytes]:
        """Memo instruction data from a getTransaction result, or None."""
        transaction = result.get("transaction")
        message = transaction.get("message") if isinstance(transaction, dict) else None
        instructions = message.get("instructions") if isinstance(message, dict) else None
        for instruction in instructions or []:
            if not isinstance(instruction, dict) or instruction.get("programId") != self.memo_program_id:
                continue
            parsed = instruction.get("parsed")
            if isinstance(parsed, str):
                return parsed.encode("utf-8")
            data = instruction.get("data")
            if isinstance(data, str):
                return from_base58(data)
        logger.debug("Transaction has no memo instruction")
        return None

    async def submit_payload(self, payload: bytes, signer: Optional[Signer] = None) -> str:
        if signer is None:
            raise ValueError("JsonRpcLedgerClient.submit_payload requires a signer")
        if len(payload) > self.ceiling:
            raise NetworkFailure(
                f"Payload of {len(payload)} bytes exceeds ledger ceiling {self.ceiling}",
                retryable=False,
            )
        transaction = await _sign(signer, payload)
        signature = await self._call("sendTransaction", [
            transaction,
            {"encoding": "base64", "preflightCommitment": "confirmed"},
        ])
        logger.info(f"Submitted {len(payload)}B payload: {signature}")
        return signature

    def payload_size_ceiling(self) -> int:
        return self.ceiling

"""
test_ledger.py — Ledger Client Boundary Tests

JsonRpcLedgerClient is exercised against httpx.MockTransport.
"""

import json

import base58
import httpx
import pytest
from glyph_sdk.errors import NetworkFailure
from glyph_sdk.ledger import MEMO_PROGRAM_ID, JsonRpcLedgerClient, MemoryLedger

URL = "https://rpc.example"


def _client(handler):
    http = httpx.AsyncClient(transport=httpx.MockTransport(handler))
    return JsonRpcLedgerClient(URL, ceiling=566, client=http)


def _tx(*instructions):
    return {"jsonrpc": "2.0", "id": 1, "result": {
        "slot": 1,
        "transaction": {"message": {"instructions": list(instructions)}},
    }}


class TestMemoryLedger:
    @pytest.mark.asyncio
    async def test_submit_and_fetch(self):
        ledger = MemoryLedger()
        ref = await ledger.submit_payload(b"memo")
        assert await ledger.fetch_transaction_payload(ref) == b"memo"
        assert await ledger.fetch_transaction_payload("unknown") is None

    @pytest.mark.asyncio
    async def test_refs_unique(self):
        ledger = MemoryLedger()
        assert await ledger.submit_payload(b"x") != await ledger.submit_payload(b"x")

    @pytest.mark.asyncio
    async def test_ceiling_enforced(self):
        ledger = MemoryLedger(ceiling=10)
        with pytest.raises(NetworkFailure) as exc:
            await ledger.submit_payload(b"x" * 11)
        assert not exc.value.retryable

    @pytest.mark.asyncio
    async def test_async_signer(self):
        seen = []

        async def signer(payload):
            seen.append(payload)
            return "tx"

        await MemoryLedger().submit_payload(b"memo", signer)
        assert seen == [b"memo"]


class TestJsonRpcFetch:
    """getTransaction → memo bytes."""

    @pytest.mark.asyncio
    async def test_parsed_memo(self):
        requests = []

        def handler(request):
            requests.append(json.loads(request.content))
            return httpx.Response(200, json=_tx(
                {"programId": "11111111111111111111111111111111", "parsed": {"type": "transfer"}},
                {"programId": MEMO_PROGRAM_ID, "parsed": "AQIDBA=="},
            ))

        client = _client(handler)
        assert await client.fetch_transaction_payload("sig1") == b"AQIDBA=="
        assert requests[0]["method"] == "getTransaction"
        assert requests[0]["params"][0] == "sig1"
        await client.close()

    @pytest.mark.asyncio
    async def test_raw_instruction_data(self):
        data = base58.b58encode(b"memo text").decode()

        def handler(request):
            return httpx.Response(200, json=_tx({"programId": MEMO_PROGRAM_ID, "data": data}))

        assert await _client(handler).fetch_transaction_payload("sig1") == b"memo text"

    @pytest.mark.asyncio
    async def test_not_found(self):
        def handler(request):
            return httpx.Response(200, json={"jsonrpc": "2.0", "id": 1, "result": None})

        assert await _client(handler).fetch_transaction_payload("sig1") is None

    @pytest.mark.asyncio
    async def test_no_memo(self):
        def handler(request):
            return httpx.Response(200, json=_tx({"programId": "other", "parsed": "x"}))

        assert await _client(handler).fetch_transaction_payload("sig1") is None


class TestJsonRpcErrors:
    """Every failure surfaces as NetworkFailure, classified."""

    @pytest.mark.asyncio
    async def test_rate_limited(self):
        client = _client(lambda request: httpx.Response(429, text="slow down"))
        with pytest.raises(NetworkFailure) as exc:
            await client.fetch_transaction_payload("sig1")
        assert exc.value.retryable
        assert exc.value.status_code == 429

    @pytest.mark.asyncio
    async def test_server_error(self):
        client = _client(lambda request: httpx.Response(503))
        with pytest.raises(NetworkFailure) as exc:
            await client.fetch_transaction_payload("sig1")
        assert exc.value.retryable

    @pytest.mark.asyncio
    async def test_bad_request(self):
        client = _client(lambda request: httpx.Response(400))
        with pytest.raises(NetworkFailure) as exc:
            await client.fetch_transaction_payload("sig1")
        assert not exc.value.retryable

    @pytest.mark.asyncio
    async def test_connection_error(self):
        def handler(request):
            raise httpx.ConnectError("refused", request=request)

        with pytest.raises(NetworkFailure) as exc:
            await _client(handler).fetch_transaction_payload("sig1")
        assert exc.value.retryable

    @pytest.mark.asyncio
    async def test_rpc_error(self):
        def handler(request):
            return httpx.Response(200, json={
                "jsonrpc": "2.0", "id": 1, "error": {"code": -32005, "message": "Node is behind"},
            })

        with pytest.raises(NetworkFailure, match="Node is behind"):
            await _client(handler).fetch_transaction_payload("sig1")

    @pytest.mark.asyncio
    async def test_non_json_body(self):
        client = _client(lambda request: httpx.Response(200, text="<html>gateway hiccup</html>"))
        with pytest.raises(NetworkFailure, match="non-JSON") as exc:
            await client.fetch_transaction_payload("sig1")
        assert exc.value.retryable

    @pytest.mark.asyncio
    @pytest.mark.parametrize("body", [[1, 2], "ok", 7])
    async def test_non_object_body(self, body):
        client = _client(lambda request: httpx.Response(200, json=body))
        with pytest.raises(NetworkFailure, match="expected an object"):
            await client.fetch_transaction_payload("sig1")

    @pytest.mark.asyncio
    async def test_non_object_result(self):
        client = _client(lambda request: httpx.Response(200, json={"jsonrpc": "2.0", "id": 1, "result": "odd"}))
        with pytest.raises(NetworkFailure, match="getTransaction returned str"):
            await client.fetch_transaction_payload("sig1")

    @pytest.mark.asyncio
    async def test_malformed_transaction_shape(self):
        client = _client(lambda request: httpx.Response(200, json={
            "jsonrpc": "2.0", "id": 1, "result": {"transaction": {"message": "nope"}},
        }))
        assert await client.fetch_transaction_payload("sig1") is None

    @pytest.mark.asyncio
    async def test_redirect_loop(self):
        def handler(request):
            raise httpx.TooManyRedirects("loop", request=request)

        with pytest.raises(NetworkFailure) as exc:
            await _client(handler).fetch_transaction_payload("sig1")
        assert not exc.value.retryable


class TestJsonRpcSubmit:
    """Signer builds the transaction; client only sends it."""

    @pytest.mark.asyncio
    async def test_send(self):
        sent = []

        def handler(request):
            body = json.loads(request.content)
            sent.append(body)
            return httpx.Response(200, json={"jsonrpc": "2.0", "id": body["id"], "result": "sig-abc"})

        client = _client(handler)
        ref = await client.submit_payload(b"memo", signer=lambda payload: "c2lnbmVkLXR4")

        assert ref == "sig-abc"
        assert sent[0]["method"] == "sendTransaction"
        assert sent[0]["params"][0] == "c2lnbmVkLXR4"

    @pytest.mark.asyncio
    async def test_signer_required(self):
        client = _client(lambda request: httpx.Response(200, json={}))
        with pytest.raises(ValueError):
            await client.submit_payload(b"memo")

    @pytest.mark.asyncio
    async def test_ceiling(self):
        client = _client(lambda request: httpx.Response(200, json={}))
        assert client.payload_size_ceiling() == 566
        with pytest.raises(NetworkFailure):
            await client.submit_payload(b"x" * 600, signer=lambda payload: "tx")


if __name__ == "__main__":
    pytest.main([__file__, "-v"])

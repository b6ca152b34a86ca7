"""Minimal async JSON-RPC transport for the ledger node."""

from __future__ import annotations

import asyncio
import base64
import itertools
from typing import Any

import httpx
import structlog

from predsettle.errors import LedgerRejected, LedgerUnavailable, program_error_name

log = structlog.get_logger(__name__)

# JSON-RPC error code for a failed preflight simulation
PREFLIGHT_FAILURE = -32002


def _account_bytes(account: dict[str, Any]) -> bytes:
    """Raw bytes of an account whose data came back as [base64, "base64"]."""
    encoded = account["data"][0]
    return base64.b64decode(encoded, validate=True)


def _program_error_from(err: Any) -> str | None:
    """Pull a program error name out of {'InstructionError': [idx, {'Custom': n}]}."""
    if not isinstance(err, dict):
        return None
    detail = err.get("InstructionError")
    if isinstance(detail, list) and len(detail) == 2:
        inner = detail[1]
        if isinstance(inner, dict) and "Custom" in inner:
            return program_error_name(int(inner["Custom"])) or f"Custom({inner['Custom']})"
        return str(inner)
    return None


class RpcClient:
    """JSON-RPC 2.0 over HTTP. Every call is bounded by `timeout`."""

    def __init__(
        self,
        url: str,
        timeout: float = 20.0,
        commitment: str = "confirmed",
        client: httpx.AsyncClient | None = None,
    ) -> None:
        self.url = url
        self.timeout = timeout
        self.commitment = commitment
        self._client = client
        self._owns_client = client is None
        self._ids = itertools.count(1)

    def _get_client(self) -> httpx.AsyncClient:
        if self._client is None:
            self._client = httpx.AsyncClient(timeout=self.timeout)
        return self._client

    async def call(self, method: str, params: list[Any] | None = None) -> Any:
        body = {"jsonrpc": "2.0", "id": next(self._ids), "method": method, "params": params or []}
        try:
            resp = await self._get_client().post(self.url, json=body, timeout=self.timeout)
            resp.raise_for_status()
            payload = resp.json()
        except httpx.HTTPError as e:
            raise LedgerUnavailable(f"{method} failed: {e!r}") from e
        except ValueError as e:
            raise LedgerUnavailable(f"{method} returned malformed JSON: {e}") from e
        if not isinstance(payload, dict):
            raise LedgerUnavailable(f"{method} returned a non-object JSON-RPC reply")
        error = payload.get("error")
        if error:
            if not isinstance(error, dict):
                raise LedgerUnavailable(f"{method} error: {error!r}")
            data = error.get("data") if isinstance(error.get("data"), dict) else {}
            if error.get("code") == PREFLIGHT_FAILURE:
                raise LedgerRejected(
                    error.get("message", "transaction rejected"),
                    program_error=_program_error_from(data.get("err")),
                    logs=list(data.get("logs") or []),
                )
            raise LedgerUnavailable(f"{method} error {error.get('code')}: {error.get('message')}")
        return payload.get("result")

    async def get_version(self) -> dict[str, Any]:
        return await self.call("getVersion")

    async def get_program_accounts(
        self, program_id: str, filters: list[dict[str, Any]] | None = None
    ) -> list[tuple[str, bytes]]:
        """All accounts owned by program_id as (address, raw data)."""
        config: dict[str, Any] = {"encoding": "base64", "commitment": self.commitment}
        if filters:
            config["filters"] = filters
        result = await self.call("getProgramAccounts", [program_id, config]) or []
        if not isinstance(result, list):
            raise LedgerUnavailable("getProgramAccounts result is not a list")
        accounts = []
        for item in result:
            try:
                accounts.append((str(item["pubkey"]), _account_bytes(item["account"])))
            except (KeyError, IndexError, TypeError, ValueError) as e:
                log.warning("skip_account", kind="raw", item=repr(item)[:120], error=repr(e))
        return accounts

    async def get_account_data(self, address: str) -> bytes | None:
        result = await self.call(
            "getAccountInfo", [address, {"encoding": "base64", "commitment": self.commitment}]
        )
        if not isinstance(result, dict):
            raise LedgerUnavailable("getAccountInfo result is not an object")
        value = result.get("value")
        if value is None:
            return None
        try:
            return _account_bytes(value)
        except (KeyError, IndexError, TypeError, ValueError) as e:
            raise LedgerUnavailable(f"getAccountInfo returned malformed account data: {e!r}") from e

    async def get_latest_blockhash(self) -> str:
        result = await self.call("getLatestBlockhash", [{"commitment": self.commitment}])
        try:
            return str(result["value"]["blockhash"])
        except (KeyError, TypeError) as e:
            raise LedgerUnavailable(f"getLatestBlockhash returned no blockhash: {e!r}") from e

    async def send_transaction(self, raw_tx: bytes) -> str:
        encoded = base64.b64encode(raw_tx).decode("ascii")
        return await self.call(
            "sendTransaction",
            [encoded, {"encoding": "base64", "preflightCommitment": self.commitment}],
        )

    async def confirm_transaction(
        self, signature: str, timeout: float = 30.0, poll_interval: float = 0.5
    ) -> None:
        """Wait until the signature reaches our commitment. Raises on on-chain failure or timeout."""
        loop = asyncio.get_running_loop()
        deadline = loop.time() + timeout
        wanted = ("confirmed", "finalized") if self.commitment != "finalized" else ("finalized",)
        while True:
            result = await self.call("getSignatureStatuses", [[signature]])
            try:
                status = (result.get("value") or [None])[0]
            except (AttributeError, IndexError, TypeError) as e:
                raise LedgerUnavailable(f"getSignatureStatuses returned malformed result: {e!r}") from e
            if isinstance(status, dict):
                if status.get("err") is not None:
                    raise LedgerRejected(
                        f"transaction {signature} failed on-chain",
                        program_error=_program_error_from(status["err"]),
                    )
                if status.get("confirmationStatus") in wanted:
                    return
            if loop.time() >= deadline:
                raise LedgerUnavailable(f"transaction {signature} not confirmed within {timeout}s")
            await asyncio.sleep(poll_interval)

    async def aclose(self) -> None:
        if self._client is not None and self._owns_client:
            await self._client.aclose()
        self._client = None

"""Pyth Hermes REST client - latest price quotes and attestation blobs."""

from __future__ import annotations

from typing import Any

import httpx
import structlog

from predsettle.errors import NoQuoteForFeed, OracleUnavailable
from predsettle.feeds import normalize_feed_id
from predsettle.models.price import PriceQuote, PriceUpdate

log = structlog.get_logger(__name__)

HERMES_URL = "https://hermes.pyth.network"
LATEST_UPDATES_PATH = "/v2/updates/price/latest"


def parse_quote(entry: dict[str, Any]) -> PriceQuote:
    """Convert one Hermes 'parsed' entry to a PriceQuote. Integers arrive as strings."""
    price = entry["price"]
    publish_time = price.get("publish_time")
    return PriceQuote(
        feed_id=normalize_feed_id(str(entry["id"])),
        price=int(price["price"]),
        confidence=int(price.get("conf") or 0),
        exponent=int(price["expo"]),
        publish_time=int(publish_time) if publish_time is not None else None,
    )


def _is_feed(entry_id: Any, wanted: str) -> bool:
    try:
        return normalize_feed_id(str(entry_id)) == wanted
    except ValueError:
        return False


class HermesClient:
    """Async client for the oracle's latest-price endpoint.

    No caching: every call hits the service. Pass an httpx.AsyncClient to share
    a connection pool (or inject a mock transport in tests).
    """

    def __init__(
        self,
        base_url: str = HERMES_URL,
        timeout: float = 15.0,
        client: httpx.AsyncClient | None = None,
    ) -> None:
        self.base_url = base_url.rstrip("/")
        self.timeout = timeout
        self._client = client
        self._owns_client = client is None

    def _get_client(self) -> httpx.AsyncClient:
        if self._client is None:
            self._client = httpx.AsyncClient(timeout=self.timeout)
        return self._client

    async def get_latest_price_updates(self, feed_ids: list[str]) -> dict[str, Any]:
        """Raw Hermes payload: {'binary': {...}, 'parsed': [...]}."""
        params = [("ids[]", normalize_feed_id(f)) for f in feed_ids]
        params += [("encoding", "base64"), ("parsed", "true")]
        url = self.base_url + LATEST_UPDATES_PATH
        try:
            resp = await self._get_client().get(url, params=params, timeout=self.timeout)
            resp.raise_for_status()
            data = resp.json()
        except httpx.HTTPStatusError as e:
            if e.response.status_code == 404:
                # Hermes answers 404 for feed ids it does not publish
                raise NoQuoteForFeed(",".join(feed_ids)) from e
            raise OracleUnavailable(f"Hermes returned HTTP {e.response.status_code}") from e
        except httpx.HTTPError as e:
            raise OracleUnavailable(f"Hermes request failed: {e!r}") from e
        except ValueError as e:
            raise OracleUnavailable(f"Hermes returned malformed JSON: {e}") from e
        if not isinstance(data, dict):
            raise OracleUnavailable("Hermes payload is not an object")
        return data

    async def fetch_update(self, feed_id: str) -> PriceUpdate:
        """Latest quote for one feed together with its attestation blob(s)."""
        wanted = normalize_feed_id(feed_id)
        data = await self.get_latest_price_updates([wanted])
        parsed = data.get("parsed") or []
        quote = None
        for entry in parsed if isinstance(parsed, list) else []:
            if not isinstance(entry, dict) or not _is_feed(entry.get("id"), wanted):
                continue
            try:
                quote = parse_quote(entry)
            except (KeyError, TypeError, ValueError) as e:
                raise OracleUnavailable(f"Hermes entry for {wanted} could not be parsed: {e!r}") from e
            break
        if quote is None:
            raise NoQuoteForFeed(wanted)
        binary = data.get("binary")
        if not isinstance(binary, dict):
            binary = {}
        blobs = binary.get("data") or []
        log.debug("oracle_quote", feed_id=wanted, price=quote.price, expo=quote.exponent)
        return PriceUpdate(
            quote=quote,
            encoding=binary.get("encoding", "base64"),
            binary=[str(b) for b in blobs],
        )

    async def fetch_quote(self, feed_id: str) -> PriceQuote:
        update = await self.fetch_update(feed_id)
        return update.quote

    async def aclose(self) -> None:
        if self._client is not None and self._owns_client:
            await self._client.aclose()
        self._client = None

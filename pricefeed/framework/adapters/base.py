from __future__ import annotations

from typing import Iterable, Protocol

from pricefeed.framework.models import EncodedMessage, PriceResponse, Ticker


class PriceWebSocketAdapter(Protocol):
    exchange_name: str

    def classify_and_decode(
        self, frame: str | bytes
    ) -> tuple[PriceResponse | None, list[EncodedMessage]]:
        """Decode one inbound frame into a price response and/or frames to send back."""

    def build_subscriptions(self, tickers: Iterable[Ticker]) -> list[EncodedMessage]:
        """Build the subscription frames for the configured subset of tickers."""

    def heartbeat_messages(self) -> list[EncodedMessage]:
        """Return the keep-alive frames the venue expects from the client."""

    def clone(self) -> PriceWebSocketAdapter:
        """Return an independent instance sharing only the read-only configuration."""

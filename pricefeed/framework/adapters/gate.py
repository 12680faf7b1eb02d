"""Gate.io spot websocket (v4) adapter for the ``spot.tickers`` channel.

Gate.io sends two kinds of frames on this channel:

1. Subscribe responses, telling whether a subscription request succeeded.
2. Ticker updates, one currency pair per frame.

Anything else is reported as an unknown message type. The venue keeps the
connection alive with protocol-level pings, so no heartbeat frames are needed.
"""

from __future__ import annotations

import json
import logging
import time
from dataclasses import dataclass
from datetime import UTC, datetime, timedelta
from decimal import Decimal, InvalidOperation
from enum import Enum
from typing import Any, Iterable

from pricefeed.framework.config import ProviderMarketMap, TickerConfig, WebSocketConfig
from pricefeed.framework.errors import (
    BodyDecodeError,
    ConfigError,
    EncodeError,
    EnvelopeDecodeError,
    SubscriptionError,
    UnknownEventError,
)
from pricefeed.framework.models import (
    EncodedMessage,
    PriceResponse,
    ResolvedPrice,
    Ticker,
    UnresolvedPrice,
)

NAME = "gate"
URL = "wss://api.gateio.ws/ws/v4/"
TICKERS_CHANNEL = "spot.tickers"
STATUS_SUCCESS = "success"

DEFAULT_WEBSOCKET_CONFIG = WebSocketConfig(
    name=NAME,
    wss=URL,
    enabled=True,
    max_buffer_size=1024,
    reconnection_timeout=10.0,
    handshake_timeout=45.0,
    read_timeout=45.0,
    write_timeout=45.0,
    ping_interval=15.0,
    max_read_error_count=100,
    max_subscriptions_per_batch=25,
)

DEFAULT_MARKET_MAP = ProviderMarketMap.from_symbols(
    NAME,
    {
        "BTC/USDT": "BTC_USDT",
        "ETH/USDT": "ETH_USDT",
        "SOL/USDT": "SOL_USDT",
        "ATOM/USDT": "ATOM_USDT",
    },
)

_EPOCH = datetime(1970, 1, 1, tzinfo=UTC)


class Event(str, Enum):
    SUBSCRIBE = "subscribe"
    UPDATE = "update"


class ErrorCode(int, Enum):
    INVALID_REQUEST_BODY = 1
    INVALID_ARGUMENT = 2
    SERVER_SIDE = 3
    AUTHENTICATION_FAILED = 4


@dataclass(frozen=True)
class SubscribeResponse:
    time: int
    channel: str
    id: int | None = None
    error_code: int | None = None
    error_message: str | None = None
    status: str | None = None

    def succeeded(self) -> bool:
        return self.error_code is None and self.status == STATUS_SUCCESS


@dataclass(frozen=True)
class TickerStream:
    timestamp: datetime
    channel: str
    currency_pair: str
    last: Any
    base_volume: Any = None


class GateWebSocketAdapter:
    exchange_name = NAME

    def __init__(
        self,
        market: ProviderMarketMap,
        ws: WebSocketConfig,
        logger: logging.Logger | None = None,
    ) -> None:
        try:
            market.validate_basic()
        except ConfigError as exc:
            raise ConfigError(f"invalid market config: {exc.message}", NAME) from exc
        if market.name != NAME:
            raise ConfigError(f"expected market config name {NAME}, got {market.name}", NAME)
        if ws.name != NAME:
            raise ConfigError(f"expected websocket config name {NAME}, got {ws.name}", NAME)
        if not ws.enabled:
            raise ConfigError(f"websocket config for {NAME} is not enabled", NAME)
        try:
            ws.validate_basic()
        except ConfigError as exc:
            raise ConfigError(f"invalid websocket config: {exc.message}", NAME) from exc

        self.market = market
        self.ws = ws
        self.logger = logger or logging.getLogger(__name__)
        self._off_chain = market.off_chain_map()

    def classify_and_decode(
        self, frame: str | bytes
    ) -> tuple[PriceResponse | None, list[EncodedMessage]]:
        try:
            message = json.loads(frame, parse_float=Decimal)
        except ValueError as exc:
            raise EnvelopeDecodeError(f"malformed frame: {exc}", NAME) from exc
        if not isinstance(message, dict):
            raise EnvelopeDecodeError(
                f"expected a JSON object, got {type(message).__name__}", NAME
            )
        event = message.get("event")
        if not isinstance(event, str):
            raise EnvelopeDecodeError("frame has no string 'event' field", NAME)

        if event == Event.SUBSCRIBE:
            return None, self.handle_subscribe_response(decode_subscribe_response(message))
        if event == Event.UPDATE:
            return self.handle_ticker_stream(decode_ticker_stream(message)), []
        raise UnknownEventError(event, NAME)

    def handle_subscribe_response(self, response: SubscribeResponse) -> list[EncodedMessage]:
        if response.succeeded():
            return []
        # Resubscribing is left to the connection manager: the ack does not
        # echo which symbols were requested.
        if response.error_code is not None:
            detail = f"code={response.error_code} message={response.error_message!r}"
            known = {code.value: code.name.lower() for code in ErrorCode}
            if response.error_code in known:
                detail += f" ({known[response.error_code]})"
        else:
            detail = f"status={response.status!r}"
        self.logger.error(
            "gate subscription to %s failed: %s id=%s", response.channel, detail, response.id
        )
        raise SubscriptionError(
            f"subscription to {response.channel} failed: {detail}",
            NAME,
            code=response.error_code,
        )

    def handle_ticker_stream(self, stream: TickerStream) -> PriceResponse:
        config = self._off_chain.get(stream.currency_pair)
        if config is None:
            raise BodyDecodeError(f"no market for currency pair {stream.currency_pair}", NAME)
        return ticker_price_response(config, stream)

    def build_subscriptions(self, tickers: Iterable[Ticker]) -> list[EncodedMessage]:
        instruments: list[str] = []
        for ticker in tickers:
            config = self.market.ticker_configs.get(ticker)
            if config is None:
                self.logger.debug("market not found for ticker %s", ticker)
                continue
            instruments.append(config.off_chain_ticker)

        batch = self.ws.max_subscriptions_per_batch
        return [
            subscribe_request(instruments[i : i + batch])
            for i in range(0, len(instruments), batch)
        ]

    def heartbeat_messages(self) -> list[EncodedMessage]:
        return []

    def clone(self) -> GateWebSocketAdapter:
        return GateWebSocketAdapter(self.market, self.ws, logger=self.logger)


def subscribe_request(symbols: list[str], now_s: int | None = None) -> EncodedMessage:
    payload = {
        "time": int(time.time()) if now_s is None else now_s,
        "channel": TICKERS_CHANNEL,
        "event": Event.SUBSCRIBE.value,
        "payload": symbols,
    }
    try:
        return json.dumps(payload)
    except (TypeError, ValueError) as exc:
        raise EncodeError(f"failed encoding subscribe request: {exc}", NAME) from exc


def decode_subscribe_response(message: dict[str, Any]) -> SubscribeResponse:
    channel = _require_channel(message)
    error = message.get("error")
    result = message.get("result")
    error_code: int | None = None
    error_message: str | None = None
    if error is not None:
        if not isinstance(error, dict):
            raise BodyDecodeError("subscribe response 'error' must be an object", NAME)
        code = error.get("code")
        if not _is_int(code):
            raise BodyDecodeError("subscribe response error has no integer 'code'", NAME)
        error_code = code
        error_message = str(error.get("message", ""))
    status: str | None = None
    if result is not None:
        if not isinstance(result, dict):
            raise BodyDecodeError("subscribe response 'result' must be an object", NAME)
        status = result.get("status")
        if status is not None and not isinstance(status, str):
            raise BodyDecodeError("subscribe response status must be a string", NAME)
    request_id = message.get("id")
    return SubscribeResponse(
        time=_require_int(message, "time"),
        channel=channel,
        id=request_id if _is_int(request_id) else None,
        error_code=error_code,
        error_message=error_message,
        status=status,
    )


def decode_ticker_stream(message: dict[str, Any]) -> TickerStream:
    channel = _require_channel(message)
    result = message.get("result")
    if not isinstance(result, dict):
        raise BodyDecodeError("ticker update has no 'result' object", NAME)
    currency_pair = result.get("currency_pair")
    if not isinstance(currency_pair, str) or not currency_pair:
        raise BodyDecodeError("ticker update has no 'currency_pair'", NAME)
    if _is_int(message.get("time_ms")):
        time_ms = message["time_ms"]
    else:
        time_ms = _require_int(message, "time") * 1000
    try:
        timestamp = _EPOCH + timedelta(milliseconds=time_ms)
    except OverflowError as exc:
        raise BodyDecodeError(f"ticker update time {time_ms} is out of range", NAME) from exc
    return TickerStream(
        timestamp=timestamp,
        channel=channel,
        currency_pair=currency_pair,
        last=result.get("last"),
        base_volume=result.get("base_volume"),
    )


def ticker_price_response(config: TickerConfig, stream: TickerStream) -> PriceResponse:
    """Single-entry response; bad numbers only fail this ticker, not the frame."""
    try:
        price = parse_decimal(stream.last, "last")
        volume = None
        if stream.base_volume is not None:
            volume = parse_decimal(stream.base_volume, "base_volume")
    except ValueError as exc:
        return PriceResponse(unresolved={config.ticker: UnresolvedPrice(error=str(exc))})

    resolved = ResolvedPrice(
        value=price,
        timestamp=stream.timestamp,
        base_volume=volume,
    )
    return PriceResponse(resolved={config.ticker: resolved})


def parse_decimal(value: Any, field_name: str) -> Decimal:
    if value is None:
        raise ValueError(f"missing {field_name}")
    if isinstance(value, bool) or not isinstance(value, (str, int, Decimal)):
        raise ValueError(f"{field_name} has unsupported type {type(value).__name__}")
    try:
        parsed = Decimal(value)
    except InvalidOperation as exc:
        raise ValueError(f"malformed {field_name} {value!r}") from exc
    if not parsed.is_finite():
        raise ValueError(f"{field_name} is not finite: {value!r}")
    if parsed < 0:
        raise ValueError(f"{field_name} cannot be negative: {value!r}")
    return parsed


def _require_channel(message: dict[str, Any]) -> str:
    channel = message.get("channel")
    if channel != TICKERS_CHANNEL:
        raise BodyDecodeError(f"unexpected channel {channel!r}", NAME)
    return channel


def _require_int(message: dict[str, Any], key: str) -> int:
    value = message.get(key)
    if not _is_int(value):
        raise BodyDecodeError(f"missing integer '{key}'", NAME)
    return value


def _is_int(value: Any) -> bool:
    return isinstance(value, int) and not isinstance(value, bool)

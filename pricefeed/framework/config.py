from __future__ import annotations

import json
import math
from dataclasses import dataclass, field
from pathlib import Path
from types import MappingProxyType
from typing import Any, Mapping

from pricefeed.framework.errors import ConfigError
from pricefeed.framework.models import Ticker


@dataclass(frozen=True)
class TickerConfig:
    ticker: Ticker
    off_chain_ticker: str

    def validate_basic(self) -> None:
        self.ticker.validate_basic()
        if not self.off_chain_ticker.strip():
            raise ConfigError(f"off-chain ticker for {self.ticker} cannot be empty")


@dataclass(frozen=True)
class ProviderMarketMap:
    """Canonical ticker -> venue symbol mapping owned by one provider."""

    name: str
    ticker_configs: Mapping[Ticker, TickerConfig] = field(default_factory=dict)

    def __post_init__(self) -> None:
        # Copy into a read-only view so clones never observe outside mutation.
        object.__setattr__(self, "ticker_configs", MappingProxyType(dict(self.ticker_configs)))

    @classmethod
    def from_symbols(cls, name: str, symbols: Mapping[str, str]) -> ProviderMarketMap:
        configs: dict[Ticker, TickerConfig] = {}
        for raw_ticker, off_chain in symbols.items():
            ticker = Ticker.from_string(raw_ticker)
            configs[ticker] = TickerConfig(ticker=ticker, off_chain_ticker=off_chain)
        return cls(name=name, ticker_configs=configs)

    def validate_basic(self) -> None:
        if not self.name:
            raise ConfigError("market map name cannot be empty")
        seen: dict[str, Ticker] = {}
        for ticker, config in self.ticker_configs.items():
            if ticker != config.ticker:
                raise ConfigError(
                    f"ticker key {ticker} does not match ticker config {config.ticker}"
                )
            config.validate_basic()
            if config.off_chain_ticker in seen:
                raise ConfigError(
                    f"off-chain ticker {config.off_chain_ticker} is mapped by both "
                    f"{seen[config.off_chain_ticker]} and {ticker}"
                )
            seen[config.off_chain_ticker] = ticker

    def off_chain_map(self) -> dict[str, TickerConfig]:
        return {config.off_chain_ticker: config for config in self.ticker_configs.values()}


@dataclass(frozen=True)
class WebSocketConfig:
    """Connection parameters for one provider's websocket. Durations are seconds."""

    name: str
    wss: str
    enabled: bool = True
    max_buffer_size: int = 1024
    reconnection_timeout: float = 10.0
    handshake_timeout: float = 45.0
    read_timeout: float = 45.0
    write_timeout: float = 45.0
    ping_interval: float = 0.0
    max_read_error_count: int = 100
    max_subscriptions_per_batch: int = 1

    def check_types(self) -> None:
        for key in ("name", "wss"):
            if not isinstance(getattr(self, key), str):
                raise ConfigError(f"{key} must be a string")
        if not isinstance(self.enabled, bool):
            raise ConfigError(f"enabled must be a boolean, got {self.enabled!r}")
        for key in _INT_FIELDS:
            value = getattr(self, key)
            if isinstance(value, bool) or not isinstance(value, int):
                raise ConfigError(f"{key} must be an integer, got {value!r}")
        for key in _FLOAT_FIELDS:
            value = getattr(self, key)
            if isinstance(value, bool) or not isinstance(value, (int, float)):
                raise ConfigError(f"{key} must be a number, got {value!r}")
            if not math.isfinite(value):
                raise ConfigError(f"{key} must be finite, got {value!r}")

    def validate_basic(self) -> None:
        self.check_types()
        if not self.name:
            raise ConfigError("websocket config name cannot be empty")
        if not self.wss.startswith(("ws://", "wss://")):
            raise ConfigError(f"websocket url {self.wss!r} must start with ws:// or wss://")
        positive = (
            "max_buffer_size",
            "reconnection_timeout",
            "handshake_timeout",
            "read_timeout",
            "write_timeout",
            "max_subscriptions_per_batch",
        )
        for key in positive:
            value = getattr(self, key)
            if value <= 0:
                raise ConfigError(f"{key} must be greater than 0, got {value}")
        for key in ("ping_interval", "max_read_error_count"):
            value = getattr(self, key)
            if value < 0:
                raise ConfigError(f"{key} cannot be negative, got {value}")


_INT_FIELDS = ("max_buffer_size", "max_read_error_count", "max_subscriptions_per_batch")
_FLOAT_FIELDS = (
    "reconnection_timeout",
    "handshake_timeout",
    "read_timeout",
    "write_timeout",
    "ping_interval",
)


def market_map_from_dict(data: Mapping[str, Any]) -> ProviderMarketMap:
    """Build a market map from ``{"name": ..., "tickers": {"BTC/USDT": "BTC_USDT"}}``."""
    name = data.get("name")
    tickers = data.get("tickers")
    if not isinstance(name, str):
        raise ConfigError("market map requires a string 'name'")
    if not isinstance(tickers, dict):
        raise ConfigError("market map requires a 'tickers' object")
    for raw_ticker, off_chain in tickers.items():
        if not isinstance(off_chain, str):
            raise ConfigError(f"off-chain ticker for {raw_ticker} must be a string")
    return ProviderMarketMap.from_symbols(name, tickers)


def websocket_config_from_dict(data: Mapping[str, Any]) -> WebSocketConfig:
    known = set(WebSocketConfig.__dataclass_fields__)
    unknown = sorted(set(data) - known)
    if unknown:
        raise ConfigError(f"unknown websocket config keys: {', '.join(unknown)}")
    try:
        config = WebSocketConfig(**data)
    except TypeError as exc:
        raise ConfigError(f"invalid websocket config: {exc}") from exc
    config.check_types()
    return config


def load_provider_config(path: Path) -> tuple[ProviderMarketMap, WebSocketConfig]:
    try:
        with path.open("r", encoding="utf-8") as f:
            raw = json.load(f)
    except (OSError, json.JSONDecodeError) as exc:
        raise ConfigError(f"failed reading provider config {path}: {exc}") from exc
    if not isinstance(raw, dict):
        raise ConfigError(f"provider config {path} must be a JSON object")
    market = raw.get("market_map")
    ws = raw.get("websocket")
    if not isinstance(market, dict) or not isinstance(ws, dict):
        raise ConfigError(f"provider config {path} needs 'market_map' and 'websocket' objects")
    return market_map_from_dict(market), websocket_config_from_dict(ws)

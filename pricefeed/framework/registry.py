from __future__ import annotations

import logging
from typing import Callable

from pricefeed.framework.adapters import gate
from pricefeed.framework.adapters.base import PriceWebSocketAdapter
from pricefeed.framework.config import ProviderMarketMap, WebSocketConfig
from pricefeed.framework.errors import ConfigError

AdapterFactory = Callable[
    [ProviderMarketMap, WebSocketConfig, logging.Logger | None], PriceWebSocketAdapter
]

ADAPTERS: dict[str, AdapterFactory] = {
    gate.NAME: gate.GateWebSocketAdapter,
}

DEFAULT_CONFIGS: dict[str, tuple[ProviderMarketMap, WebSocketConfig]] = {
    gate.NAME: (gate.DEFAULT_MARKET_MAP, gate.DEFAULT_WEBSOCKET_CONFIG),
}


def available_providers() -> list[str]:
    return sorted(ADAPTERS)


def create_adapter(
    market: ProviderMarketMap,
    ws: WebSocketConfig,
    logger: logging.Logger | None = None,
) -> PriceWebSocketAdapter:
    """Build the adapter registered under the market map's provider name."""
    factory = ADAPTERS.get(market.name)
    if factory is None:
        raise ConfigError(
            f"no websocket adapter registered for {market.name!r}; "
            f"available: {', '.join(available_providers())}"
        )
    return factory(market, ws, logger)


def default_config(name: str) -> tuple[ProviderMarketMap, WebSocketConfig]:
    try:
        return DEFAULT_CONFIGS[name]
    except KeyError:
        raise ConfigError(f"no default config for provider {name!r}") from None

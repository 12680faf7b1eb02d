from __future__ import annotations

import json
from pathlib import Path
import tempfile
import unittest

from pricefeed.framework.config import (
    ProviderMarketMap,
    TickerConfig,
    WebSocketConfig,
    load_provider_config,
    market_map_from_dict,
    websocket_config_from_dict,
)
from pricefeed.framework.errors import ConfigError
from pricefeed.framework.models import Ticker


class TickerTests(unittest.TestCase):
    def test_from_string(self) -> None:
        ticker = Ticker.from_string(" BTC/USDT ")
        self.assertEqual(ticker, Ticker("BTC", "USDT"))
        self.assertEqual(str(ticker), "BTC/USDT")

    def test_from_string_rejects_malformed(self) -> None:
        for raw in ("BTCUSDT", "BTC/USDT/X", "/USDT", "btc/usdt"):
            with self.subTest(raw=raw):
                with self.assertRaises(ConfigError):
                    Ticker.from_string(raw)


class MarketMapTests(unittest.TestCase):
    def test_off_chain_map_reverses_symbols(self) -> None:
        market = ProviderMarketMap.from_symbols("gate", {"BTC/USDT": "BTC_USDT"})
        market.validate_basic()
        reverse = market.off_chain_map()
        self.assertEqual(reverse["BTC_USDT"].ticker, Ticker("BTC", "USDT"))

    def test_ticker_configs_are_read_only(self) -> None:
        source = {Ticker("BTC", "USDT"): TickerConfig(Ticker("BTC", "USDT"), "BTC_USDT")}
        market = ProviderMarketMap(name="gate", ticker_configs=source)
        source.clear()
        self.assertEqual(len(market.ticker_configs), 1)
        with self.assertRaises(TypeError):
            market.ticker_configs[Ticker("ETH", "USDT")] = None  # type: ignore[index]

    def test_rejects_key_mismatch(self) -> None:
        btc_config = TickerConfig(Ticker("BTC", "USDT"), "BTC_USDT")
        market = ProviderMarketMap(name="gate", ticker_configs={Ticker("ETH", "USDT"): btc_config})
        with self.assertRaises(ConfigError):
            market.validate_basic()

    def test_rejects_empty_name(self) -> None:
        with self.assertRaises(ConfigError):
            ProviderMarketMap(name="").validate_basic()

    def test_from_dict(self) -> None:
        market = market_map_from_dict({"name": "gate", "tickers": {"ETH/USDT": "ETH_USDT"}})
        self.assertEqual(market.name, "gate")
        self.assertIn(Ticker("ETH", "USDT"), market.ticker_configs)

    def test_from_dict_rejects_bad_shapes(self) -> None:
        for data in (
            {"tickers": {}},
            {"name": "gate", "tickers": []},
            {"name": "gate", "tickers": {"BTC/USDT": 1}},
        ):
            with self.subTest(data=data):
                with self.assertRaises(ConfigError):
                    market_map_from_dict(data)


class WebSocketConfigTests(unittest.TestCase):
    def test_defaults_are_valid(self) -> None:
        WebSocketConfig(name="gate", wss="wss://example.invalid/ws").validate_basic()

    def test_rejects_non_positive_batch(self) -> None:
        ws = WebSocketConfig(name="gate", wss="wss://x", max_subscriptions_per_batch=0)
        with self.assertRaises(ConfigError) as ctx:
            ws.validate_basic()
        self.assertIn("max_subscriptions_per_batch", str(ctx.exception))

    def test_rejects_negative_ping_interval(self) -> None:
        ws = WebSocketConfig(name="gate", wss="wss://x", ping_interval=-1.0)
        with self.assertRaises(ConfigError):
            ws.validate_basic()

    def test_from_dict_rejects_unknown_keys(self) -> None:
        with self.assertRaises(ConfigError) as ctx:
            websocket_config_from_dict({"name": "gate", "wss": "wss://x", "retries": 3})
        self.assertIn("retries", str(ctx.exception))

    def test_from_dict_requires_url(self) -> None:
        with self.assertRaises(ConfigError):
            websocket_config_from_dict({"name": "gate"})

    def test_from_dict_rejects_wrong_types(self) -> None:
        for key, value in (
            ("enabled", "false"),
            ("max_subscriptions_per_batch", "25"),
            ("max_subscriptions_per_batch", 2.5),
            ("max_subscriptions_per_batch", True),
            ("read_timeout", "45"),
            ("ping_interval", float("nan")),
            ("wss", 443),
        ):
            with self.subTest(key=key, value=value):
                with self.assertRaises(ConfigError) as ctx:
                    websocket_config_from_dict({"name": "gate", "wss": "wss://x", key: value})
                self.assertIn(key, str(ctx.exception))

    def test_from_dict_accepts_integer_durations(self) -> None:
        ws = websocket_config_from_dict({"name": "gate", "wss": "wss://x", "read_timeout": 30})
        ws.validate_basic()
        self.assertEqual(ws.read_timeout, 30)

    def test_validate_reports_wrong_types_as_config_error(self) -> None:
        ws = WebSocketConfig(name="gate", wss="wss://x", max_subscriptions_per_batch="25")
        with self.assertRaises(ConfigError):
            ws.validate_basic()


class LoadProviderConfigTests(unittest.TestCase):
    def test_loads_json_file(self) -> None:
        payload = {
            "market_map": {"name": "gate", "tickers": {"BTC/USDT": "BTC_USDT"}},
            "websocket": {"name": "gate", "wss": "wss://api.gateio.ws/ws/v4/", "enabled": True},
        }
        with tempfile.TemporaryDirectory() as tmp:
            path = Path(tmp) / "gate.json"
            path.write_text(json.dumps(payload), encoding="utf-8")
            market, ws = load_provider_config(path)
        self.assertEqual(market.name, "gate")
        self.assertEqual(ws.wss, "wss://api.gateio.ws/ws/v4/")
        self.assertTrue(ws.enabled)

    def test_missing_file_is_config_error(self) -> None:
        with tempfile.TemporaryDirectory() as tmp:
            with self.assertRaises(ConfigError):
                load_provider_config(Path(tmp) / "missing.json")

    def test_missing_sections_is_config_error(self) -> None:
        with tempfile.TemporaryDirectory() as tmp:
            path = Path(tmp) / "gate.json"
            path.write_text(json.dumps({"market_map": {}}), encoding="utf-8")
            with self.assertRaises(ConfigError):
                load_provider_config(path)


if __name__ == "__main__":
    unittest.main()

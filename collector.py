#!/usr/bin/env python3
"""Stream Gate.io spot ticker prices through the websocket adapter into a CSV."""

from __future__ import annotations

import argparse
import asyncio
import csv
import logging
import signal
import statistics
import sys
import time
from collections import deque
from dataclasses import dataclass, replace
from datetime import UTC, datetime
from pathlib import Path
from typing import Any

import websockets

from pricefeed.framework.adapters.base import PriceWebSocketAdapter
from pricefeed.framework.config import ProviderMarketMap, WebSocketConfig, load_provider_config
from pricefeed.framework.errors import AdapterError, DecodeError
from pricefeed.framework.models import PriceResponse, Ticker
from pricefeed.framework.registry import create_adapter, default_config

CSV_HEADER = [
    "capture_time_utc",
    "recv_ts_ms",
    "ticker",
    "price",
    "base_volume",
    "exchange_ts_ms",
    "age_ms",
]


@dataclass
class PriceSample:
    exchange_ts_ms: float
    recv_ts_ms: float
    age_ms: float


def utc_iso_now() -> str:
    return datetime.now(tz=UTC).isoformat()


def epoch_ms() -> float:
    return time.time_ns() / 1_000_000.0


def pct(values: list[float], p: float) -> float:
    if not values:
        return 0.0
    ordered = sorted(values)
    if len(ordered) == 1:
        return ordered[0]
    idx = (len(ordered) - 1) * p
    lo = int(idx)
    hi = min(lo + 1, len(ordered) - 1)
    if lo == hi:
        return ordered[lo]
    frac = idx - lo
    return ordered[lo] * (1.0 - frac) + ordered[hi] * frac


class RollingStats:
    def __init__(self, maxlen: int = 50_000) -> None:
        self.samples: deque[PriceSample] = deque(maxlen=maxlen)
        self.msg_count_total = 0
        self.unresolved_total = 0
        self.window_start_ms = epoch_ms()

    def add(self, sample: PriceSample) -> None:
        self.samples.append(sample)
        self.msg_count_total += 1

    def summary(self) -> dict[str, float]:
        ages = [s.age_ms for s in self.samples]
        elapsed_s = max((epoch_ms() - self.window_start_ms) / 1000.0, 1e-6)
        return {
            "count_window": float(len(ages)),
            "msg_rate_per_s": self.msg_count_total / elapsed_s,
            "unresolved_total": float(self.unresolved_total),
            "age_ms_min": min(ages) if ages else 0.0,
            "age_ms_mean": statistics.fmean(ages) if ages else 0.0,
            "age_ms_p50": pct(ages, 0.50),
            "age_ms_p95": pct(ages, 0.95),
            "age_ms_p99": pct(ages, 0.99),
            "age_ms_max": max(ages) if ages else 0.0,
        }


def default_output_path() -> Path:
    stamp = datetime.now(tz=UTC).strftime("%Y%m%d_%H%M%S")
    return Path(f"out/gate_prices_{stamp}.csv")


def ensure_csv(path: Path) -> None:
    path.parent.mkdir(parents=True, exist_ok=True)
    if path.exists():
        with path.open("r", newline="", encoding="utf-8") as f:
            first_line = f.readline().strip()
        expected = ",".join(CSV_HEADER)
        if first_line != expected:
            raise RuntimeError(
                f"CSV header mismatch for {path}. Use a new --out path or migrate file schema."
            )
        return
    with path.open("w", newline="", encoding="utf-8") as f:
        writer = csv.writer(f)
        writer.writerow(CSV_HEADER)


def price_rows(response: PriceResponse, recv_ts_ms: float) -> list[tuple[list[str], PriceSample]]:
    rows = []
    for ticker, price in sorted(response.resolved.items()):
        exchange_ts_ms = price.timestamp.timestamp() * 1000.0
        sample = PriceSample(
            exchange_ts_ms=exchange_ts_ms,
            recv_ts_ms=recv_ts_ms,
            age_ms=recv_ts_ms - exchange_ts_ms,
        )
        row = [
            utc_iso_now(),
            f"{recv_ts_ms:.3f}",
            str(ticker),
            str(price.value),
            "" if price.base_volume is None else str(price.base_volume),
            f"{exchange_ts_ms:.3f}",
            f"{sample.age_ms:.3f}",
        ]
        rows.append((row, sample))
    return rows


def backoff_delay_s(attempt: int, cap_s: float = 30.0) -> float:
    return min(cap_s, 2.0 ** min(attempt, 5))


def connect_kwargs(ws_config: WebSocketConfig) -> dict[str, Any]:
    ping_interval = ws_config.ping_interval or None
    return {
        "open_timeout": ws_config.handshake_timeout,
        "ping_interval": ping_interval,
        "ping_timeout": ws_config.read_timeout if ping_interval else None,
        "close_timeout": ws_config.write_timeout,
        "max_queue": ws_config.max_buffer_size,
    }


def load_settings(args: argparse.Namespace) -> tuple[ProviderMarketMap, WebSocketConfig]:
    if args.config:
        market, ws_config = load_provider_config(Path(args.config))
    else:
        market, ws_config = default_config(args.provider)
    if args.ws_url:
        ws_config = replace(ws_config, wss=args.ws_url)
    return market, ws_config


async def run_collector(
    adapter: PriceWebSocketAdapter,
    tickers: list[Ticker],
    out_csv: Path,
    summary_every_s: float,
    ws_config: WebSocketConfig,
    max_seconds: float | None,
) -> None:
    ensure_csv(out_csv)
    stats = RollingStats()
    stop_event = asyncio.Event()
    session_start_ms = epoch_ms()
    reconnect_attempt = 0

    def _stop_handler(*_: Any) -> None:
        stop_event.set()

    signal.signal(signal.SIGINT, _stop_handler)
    if hasattr(signal, "SIGTERM"):
        signal.signal(signal.SIGTERM, _stop_handler)

    print(f"[{utc_iso_now()}] starting collector out={out_csv}")
    next_summary_ts = time.monotonic() + summary_every_s
    with out_csv.open("a", newline="", encoding="utf-8") as f:
        writer = csv.writer(f)
        while not stop_event.is_set():
            if max_seconds is not None and (epoch_ms() - session_start_ms) / 1000.0 >= max_seconds:
                stop_event.set()
                break

            # One adapter instance per connection.
            conn_adapter = adapter.clone()
            read_errors = 0
            try:
                print(f"[{utc_iso_now()}] connecting ws={ws_config.wss} tickers={len(tickers)}")
                async with websockets.connect(ws_config.wss, **connect_kwargs(ws_config)) as ws:
                    outbound = conn_adapter.build_subscriptions(tickers)
                    outbound += conn_adapter.heartbeat_messages()
                    for frame in outbound:
                        await ws.send(frame)
                    print(f"[{utc_iso_now()}] sent {len(outbound)} subscription frame(s)")
                    reconnect_attempt = 0

                    while not stop_event.is_set():
                        if (
                            max_seconds is not None
                            and (epoch_ms() - session_start_ms) / 1000.0 >= max_seconds
                        ):
                            stop_event.set()
                            break

                        raw = await asyncio.wait_for(ws.recv(), timeout=ws_config.read_timeout)
                        recv_ts_ms = epoch_ms()
                        try:
                            response, replies = conn_adapter.classify_and_decode(raw)
                        except DecodeError as exc:
                            read_errors += 1
                            print(f"[{utc_iso_now()}] warning: dropped frame: {exc}")
                            if read_errors > ws_config.max_read_error_count:
                                raise ConnectionError(
                                    f"too many undecodable frames ({read_errors})"
                                ) from exc
                            continue

                        for frame in replies:
                            await ws.send(frame)
                        if response is None:
                            continue

                        for ticker, unresolved in response.unresolved.items():
                            stats.unresolved_total += 1
                            print(
                                f"[{utc_iso_now()}] warning: {ticker} unresolved: "
                                f"{unresolved.error}"
                            )

                        for row, sample in price_rows(response, recv_ts_ms):
                            stats.add(sample)
                            writer.writerow(row)

                        if time.monotonic() >= next_summary_ts:
                            s = stats.summary()
                            print(
                                (
                                    f"[{utc_iso_now()}] n={int(s['count_window'])} "
                                    f"rate={s['msg_rate_per_s']:.2f}/s "
                                    f"unresolved={int(s['unresolved_total'])} "
                                    f"age_ms p50={s['age_ms_p50']:.2f} "
                                    f"p95={s['age_ms_p95']:.2f} p99={s['age_ms_p99']:.2f} "
                                    f"mean={s['age_ms_mean']:.2f} max={s['age_ms_max']:.2f}"
                                )
                            )
                            next_summary_ts = time.monotonic() + summary_every_s
            except AdapterError:
                raise
            except (
                TimeoutError,
                OSError,
                websockets.exceptions.ConnectionClosed,
                websockets.exceptions.WebSocketException,
            ) as exc:
                if stop_event.is_set():
                    break
                reconnect_attempt += 1
                delay_s = backoff_delay_s(reconnect_attempt, ws_config.reconnection_timeout)
                print(
                    f"[{utc_iso_now()}] warning: ws loop error={exc!r}; "
                    f"reconnect_attempt={reconnect_attempt} sleep={delay_s:.1f}s"
                )
                try:
                    await asyncio.wait_for(stop_event.wait(), timeout=delay_s)
                except TimeoutError:
                    pass
                continue

    print(f"[{utc_iso_now()}] stopped cleanly")


def parse_args(argv: list[str]) -> argparse.Namespace:
    parser = argparse.ArgumentParser(description=__doc__)
    parser.add_argument(
        "--ticker",
        action="append",
        dest="tickers",
        default=None,
        help="Canonical ticker BASE/QUOTE, repeatable (default: every ticker in the market map).",
    )
    parser.add_argument(
        "--provider",
        default="gate",
        help="Provider whose built-in config is used when --config is omitted (default: gate).",
    )
    parser.add_argument(
        "--config",
        default=None,
        help="JSON file with 'market_map' and 'websocket' objects.",
    )
    parser.add_argument(
        "--out",
        default=None,
        help=(
            "Output CSV path for decoded prices. If omitted, a timestamped file is created "
            "under out/."
        ),
    )
    parser.add_argument(
        "--summary-every",
        type=float,
        default=5.0,
        help="Seconds between rolling price age summaries (default: 5).",
    )
    parser.add_argument(
        "--ws-url",
        default=None,
        help="Override the websocket URL from the provider config.",
    )
    parser.add_argument(
        "--max-seconds",
        type=float,
        default=None,
        help="Optional max runtime in seconds (useful for smoke tests).",
    )
    parser.add_argument(
        "--log-level",
        default="WARNING",
        help="Log level for adapter diagnostics (default: WARNING).",
    )
    return parser.parse_args(argv)


def main(argv: list[str]) -> int:
    args = parse_args(argv)
    logging.basicConfig(
        level=args.log_level.upper(),
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )
    out_csv = Path(args.out) if args.out else default_output_path()
    try:
        market, ws_config = load_settings(args)
        adapter = create_adapter(market, ws_config, logging.getLogger("pricefeed.collector"))
        if args.tickers:
            tickers = [Ticker.from_string(t) for t in args.tickers]
        else:
            tickers = sorted(market.ticker_configs)
        asyncio.run(
            run_collector(
                adapter=adapter,
                tickers=tickers,
                out_csv=out_csv,
                summary_every_s=args.summary_every,
                ws_config=ws_config,
                max_seconds=args.max_seconds,
            )
        )
    except KeyboardInterrupt:
        pass
    except Exception as exc:
        print(f"fatal: {exc}", file=sys.stderr)
        return 1
    return 0


if __name__ == "__main__":
    raise SystemExit(main(sys.argv[1:]))

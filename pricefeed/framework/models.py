from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from decimal import Decimal

from pricefeed.framework.errors import ConfigError

# A JSON text frame ready to be written to the socket.
EncodedMessage = str


@dataclass(frozen=True, order=True)
class Ticker:
    base: str
    quote: str

    def __str__(self) -> str:
        return f"{self.base}/{self.quote}"

    @classmethod
    def from_string(cls, value: str) -> Ticker:
        parts = value.strip().split("/")
        if len(parts) != 2:
            raise ConfigError(f"malformed ticker {value!r}, expected BASE/QUOTE")
        ticker = cls(base=parts[0], quote=parts[1])
        ticker.validate_basic()
        return ticker

    def validate_basic(self) -> None:
        for label, part in (("base", self.base), ("quote", self.quote)):
            if not part:
                raise ConfigError(f"ticker {label} cannot be empty")
            if part.upper() != part:
                raise ConfigError(f"ticker {label} {part!r} must be upper-case")


@dataclass(frozen=True)
class ResolvedPrice:
    value: Decimal
    timestamp: datetime
    base_volume: Decimal | None = None


@dataclass(frozen=True)
class UnresolvedPrice:
    error: str


@dataclass
class PriceResponse:
    resolved: dict[Ticker, ResolvedPrice] = field(default_factory=dict)
    unresolved: dict[Ticker, UnresolvedPrice] = field(default_factory=dict)

    def __len__(self) -> int:
        return len(self.resolved) + len(self.unresolved)

    def is_empty(self) -> bool:
        return len(self) == 0

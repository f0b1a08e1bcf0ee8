"""
Market quotes and FX delta/ATM quoting conventions.

FX smiles are not quoted by strike. Each vol is tagged with the delta of
the option it prices (10-delta put, 25-delta call, ...) and the way that
delta is measured, while the ATM vol is tagged with the rule that picks
the ATM strike:

    delta type : spot or forward delta, each optionally premium-adjusted
    ATM type   : spot, forward, delta-neutral straddle, vega max, ...

Quotes are mutable. Every ``set_value`` bumps a version counter so that
anything derived from a quote can tell, on the next read, that it is
stale and must be rebuilt.
"""

from enum import Enum
from typing import Optional, Union


class DeltaType(Enum):
    """How the delta of a quoted option is measured."""
    SPOT = "Spot"
    FWD = "Fwd"
    PA_SPOT = "PaSpot"      # premium-adjusted spot delta
    PA_FWD = "PaFwd"        # premium-adjusted forward delta

    @property
    def premium_adjusted(self) -> bool:
        return self in (DeltaType.PA_SPOT, DeltaType.PA_FWD)

    @classmethod
    def from_string(cls, s: str) -> "DeltaType":
        key = s.strip().upper().replace("_", "").replace("-", "")
        for member in cls:
            if member.value.upper() == key or member.name.replace("_", "") == key:
                return member
        raise ValueError(f"Unknown delta type: {s}")


class AtmType(Enum):
    """Rule defining the at-the-money strike."""
    NULL = "Null"                   # not an ATM quote
    SPOT = "AtmSpot"
    FWD = "AtmFwd"
    DELTA_NEUTRAL = "AtmDeltaNeutral"
    VEGA_MAX = "AtmVegaMax"
    GAMMA_MAX = "AtmGammaMax"
    PUT_CALL_50 = "AtmPutCall50"

    @classmethod
    def from_string(cls, s: Optional[str]) -> "AtmType":
        if s is None or s == "":
            return cls.NULL
        key = s.strip().upper().replace("_", "").replace("-", "")
        for member in cls:
            if member.value.upper() in (key, "ATM" + key) or member.name.replace("_", "") == key:
                return member
        raise ValueError(f"Unknown ATM type: {s}")


class SimpleQuote:
    """
    A mutable market value with a version stamp.

    The version only ever increases, so a consumer that remembers the
    stamp it last read knows the value moved when the stamps differ.
    """

    def __init__(self, value: float = None):
        self._value = None if value is None else float(value)
        self.version = 0

    @property
    def value(self) -> float:
        if self._value is None:
            raise ValueError("quote has no value")
        return self._value

    def set_value(self, value: float) -> float:
        """Set a new value and return the change from the previous one."""
        value = float(value)
        diff = value - (self._value if self._value is not None else 0.0)
        if diff != 0.0 or self._value is None:
            self._value = value
            self.version += 1
        return diff

    def is_valid(self) -> bool:
        return self._value is not None

    def __float__(self) -> float:
        return self.value

    def __repr__(self) -> str:
        return f"SimpleQuote({self._value!r})"


def as_quote(value: Union[float, SimpleQuote]) -> SimpleQuote:
    """Wrap plain numbers, pass quotes through untouched."""
    if isinstance(value, SimpleQuote):
        return value
    return SimpleQuote(value)


class DeltaVolQuote:
    """
    A volatility tagged with the delta (or ATM rule) it was quoted for.

    ATM quotes carry ``delta=None`` and an ``atm_type`` other than NULL.
    The vol itself lives in a SimpleQuote so it can be bumped in place.
    """

    def __init__(
        self,
        vol: Union[float, SimpleQuote],
        delta: Optional[float] = None,
        delta_type: DeltaType = DeltaType.SPOT,
        atm_type: AtmType = AtmType.NULL,
        maturity: Optional[float] = None,
    ):
        if atm_type == AtmType.NULL and delta is None:
            raise ValueError("a non-ATM quote needs a delta")
        if atm_type != AtmType.NULL and delta is not None:
            raise ValueError("an ATM quote must not carry a delta")
        self.vol_quote = as_quote(vol)
        self.delta = None if delta is None else float(delta)
        self.delta_type = delta_type
        self.atm_type = atm_type
        self.maturity = maturity

    @classmethod
    def delta_quote(cls, delta: float, vol, delta_type: DeltaType = DeltaType.SPOT,
                    maturity: Optional[float] = None) -> "DeltaVolQuote":
        return cls(vol, delta=delta, delta_type=delta_type, maturity=maturity)

    @classmethod
    def atm_quote(cls, vol, delta_type: DeltaType = DeltaType.SPOT,
                  atm_type: AtmType = AtmType.DELTA_NEUTRAL,
                  maturity: Optional[float] = None) -> "DeltaVolQuote":
        return cls(vol, delta=None, delta_type=delta_type, atm_type=atm_type, maturity=maturity)

    @property
    def value(self) -> float:
        return self.vol_quote.value

    @property
    def version(self) -> int:
        return self.vol_quote.version

    @property
    def is_atm(self) -> bool:
        return self.atm_type != AtmType.NULL

    def label(self) -> str:
        """Short market label: '25P', 'ATM', '10C'."""
        if self.is_atm:
            return "ATM"
        side = "C" if self.delta > 0 else "P"
        return f"{abs(self.delta) * 100:.0f}{side}"

    def __repr__(self) -> str:
        if self.is_atm:
            return (f"DeltaVolQuote(ATM {self.atm_type.value}, {self.delta_type.value}, "
                    f"vol={self.vol_quote._value})")
        return (f"DeltaVolQuote(delta={self.delta}, {self.delta_type.value}, "
                f"vol={self.vol_quote._value})")

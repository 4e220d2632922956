from __future__ import annotations

import logging
import math
from dataclasses import dataclass
from enum import Enum
from typing import Any, Mapping

from coloraide import Color

from .palette import base_color_hex

log = logging.getLogger(__name__)

RawFormula = Mapping[str, Any]

GLASS_THICKNESSES: tuple[int, ...] = (3, 4, 5, 6, 8, 10)

# coloraide spaces a preview swatch may be averaged in
PREVIEW_SPACES = {"srgb": "srgb", "linear": "srgb-linear", "oklab": "oklab"}


class Unit(Enum):
    GRAM = "g"
    MILLILITRE = "ml"

    @property
    def kind(self) -> str:
        return "mass" if self is Unit.GRAM else "volume"

    @classmethod
    def parse(cls, val: str | Unit | None) -> Unit:
        if isinstance(val, Unit):
            return val
        v = (val or "").strip().lower()
        for u in cls:
            if v in (u.value, u.kind):
                return u
        raise ValueError(f"unknown unit '{val}' (use g/mass or ml/volume)")


@dataclass(frozen=True)
class MixConstraints:
    compensate_for_glass: bool = True
    glass_thickness: int = 5

    def __post_init__(self) -> None:
        if self.glass_thickness not in GLASS_THICKNESSES:
            raise ValueError(
                f"glass thickness must be one of {GLASS_THICKNESSES} mm, "
                f"got {self.glass_thickness!r}"
            )


def validate_quantity(val: Any) -> float:
    """Orchestration-side check; normalize_formula itself trusts its caller."""
    try:
        q = float(val)
    except (TypeError, ValueError):
        raise ValueError("quantity must be a number") from None
    if not math.isfinite(q) or q <= 0.0:
        raise ValueError("quantity must be a positive number")
    return q


def coerce_percentage(val: Any) -> float:
    """Best-effort numeric value; anything unusable counts as 0."""
    if isinstance(val, bool):
        return 0.0
    try:
        x = float(val)
    except (TypeError, ValueError):
        return 0.0
    return x if math.isfinite(x) else 0.0


@dataclass(frozen=True)
class FormulaEntry:
    name: str
    percentage: float  # normalized, > 0
    amount: float  # full precision; round only for display

    @property
    def display_percentage(self) -> str:
        return f"{self.percentage:.1f}"

    @property
    def display_amount(self) -> str:
        return f"{self.amount:.2f}"

    @property
    def swatch(self) -> str:
        return base_color_hex(self.name)


@dataclass(frozen=True)
class NormalizedFormula:
    entries: tuple[FormulaEntry, ...]
    total_quantity: float
    unit: Unit

    @property
    def is_empty(self) -> bool:
        return not self.entries

    def __iter__(self):
        return iter(self.entries)

    def __len__(self) -> int:
        return len(self.entries)

    def as_tuples(self) -> list[tuple[str, float, float]]:
        return [(e.name, e.percentage, e.amount) for e in self.entries]

    def to_dict(self) -> dict[str, Any]:
        return {
            "total_quantity": self.total_quantity,
            "unit": self.unit.value,
            "empty": self.is_empty,
            "entries": [
                {
                    "name": e.name,
                    "percentage": e.percentage,
                    "amount": e.amount,
                    "display_percentage": e.display_percentage,
                    "display_amount": f"{e.display_amount} {self.unit.value}",
                    "swatch": e.swatch,
                }
                for e in self.entries
            ],
        }


def normalize_formula(
    raw: RawFormula | None, total_quantity: float, unit: Unit | str
) -> NormalizedFormula:
    """
    Turn an untrusted ingredient→percentage mapping into a mix that sums to 100%.

    Non-numeric values count as 0, non-positive entries are dropped, survivors
    keep their input order and relative proportions. No positive entry at all
    gives an empty formula, which is a valid result and not an error.
    """
    u = Unit.parse(unit)
    items = [(str(name), coerce_percentage(v)) for name, v in (raw or {}).items()]
    kept = [(name, p) for name, p in items if p > 0.0]
    total_pct = sum(p for _, p in kept)

    entries: list[FormulaEntry] = []
    for name, p in kept:
        pct = (p / total_pct) * 100.0 if total_pct > 0.0 else 0.0
        entries.append(FormulaEntry(name, pct, total_quantity * pct / 100.0))

    if len(kept) < len(items):
        log.debug("Dropped %d non-positive ingredient(s)", len(items) - len(kept))
    return NormalizedFormula(tuple(entries), float(total_quantity), u)


def preview_color(formula: NormalizedFormula, space: str = "oklab") -> str | None:
    """Approximate swatch of the mix: percentage-weighted average of base colours."""
    if formula.is_empty:
        return None
    cs = PREVIEW_SPACES.get(space)
    if cs is None:
        raise ValueError(f"unknown preview space '{space}'")
    first, *rest = formula.entries
    mixed = Color(first.swatch)
    acc = first.percentage
    # running weighted mean: each step pulls in the next colour by its share
    for e in rest:
        acc += e.percentage
        mixed = mixed.mix(Color(e.swatch), e.percentage / acc, space=cs, out_space="srgb")
    return mixed.convert("srgb").to_string(hex=True, fit={"method": "raytrace"}).upper()


__all__ = [
    "FormulaEntry",
    "GLASS_THICKNESSES",
    "MixConstraints",
    "NormalizedFormula",
    "RawFormula",
    "Unit",
    "coerce_percentage",
    "normalize_formula",
    "preview_color",
    "validate_quantity",
]

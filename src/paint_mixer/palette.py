"""Fixed colour data: base ingredients and the target palette."""

from __future__ import annotations

import string
from dataclasses import dataclass
from typing import Mapping

Hex = str

UNKNOWN_SWATCH: Hex = "#808080"


def canon_hex(s: str) -> Hex:
    """Normalize to '#RRGGBB'; accept 3- or 6-digit hex only."""
    raw = (s or "").strip().lstrip("#")
    if len(raw) == 3 and all(c in string.hexdigits for c in raw):
        raw = "".join(ch * 2 for ch in raw)
    if len(raw) != 6 or not all(c in string.hexdigits for c in raw):
        raise ValueError("hex must be 3 or 6 hex digits")
    return "#" + raw.upper()


@dataclass(frozen=True)
class TargetColor:
    name: str
    hex: Hex

    def to_dict(self) -> dict[str, str]:
        return {"name": self.name, "hex": self.hex}


BASE_COLORS: tuple[TargetColor, ...] = (
    TargetColor("Red", "#FF0000"),
    TargetColor("Yellow", "#FFFF00"),
    TargetColor("Blue", "#0000FF"),
    TargetColor("White", "#FFFFFF"),
    TargetColor("Black", "#000000"),
    TargetColor("Magenta", "#FF00FF"),
    TargetColor("Cyan", "#00FFFF"),
    TargetColor("Green", "#008000"),
    TargetColor("Orange", "#FFA500"),
    TargetColor("Purple", "#800080"),
)

TARGET_COLORS: tuple[TargetColor, ...] = (
    TargetColor("Royal Blue", "#4169E1"),
    TargetColor("Forest Green", "#228B22"),
    TargetColor("Crimson Red", "#DC143C"),
    TargetColor("Sunny Yellow", "#FFD700"),
    TargetColor("Deep Purple", "#800080"),
    TargetColor("Tangerine Orange", "#FFA500"),
    TargetColor("Sky Blue", "#87CEEB"),
    TargetColor("Mint Green", "#98FF98"),
    TargetColor("Lavender", "#E6E6FA"),
    TargetColor("Chocolate Brown", "#D2691E"),
    TargetColor("Charcoal Gray", "#36454F"),
    TargetColor("Beige", "#F5F5DC"),
    TargetColor("Teal", "#008080"),
    TargetColor("Maroon", "#800000"),
    TargetColor("Olive Green", "#808000"),
    TargetColor("Salmon Pink", "#FA8072"),
)

DEFAULT_TARGET = TARGET_COLORS[5]

_BASE_HEX: Mapping[str, Hex] = {c.name: c.hex for c in BASE_COLORS}


def base_color_names() -> tuple[str, ...]:
    return tuple(c.name for c in BASE_COLORS)


def base_color_hex(name: str) -> Hex:
    # providers occasionally invent ingredient names; show those as neutral grey
    return _BASE_HEX.get(name, UNKNOWN_SWATCH)


def custom_color(hex_code: str) -> TargetColor:
    """Target built from a colour sampled out of an uploaded image."""
    h = canon_hex(hex_code)
    return TargetColor(f"Custom ({h})", h)


__all__ = [
    "BASE_COLORS",
    "DEFAULT_TARGET",
    "TARGET_COLORS",
    "TargetColor",
    "base_color_hex",
    "base_color_names",
    "canon_hex",
    "custom_color",
]

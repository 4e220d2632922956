"""Paint formula mixer: pick a target colour, get a normalized mixing formula."""

from __future__ import annotations

__version__ = "0.1.0"

from .formula import MixConstraints, NormalizedFormula, Unit, normalize_formula
from .sampler import DecodeError, ImageSampler, RasterImage, SampledColor, ViewportFit, fit

__all__ = [
    "DecodeError",
    "ImageSampler",
    "MixConstraints",
    "NormalizedFormula",
    "RasterImage",
    "SampledColor",
    "Unit",
    "ViewportFit",
    "fit",
    "normalize_formula",
    "__version__",
]

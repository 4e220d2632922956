# sampler.py – pick exact source pixels off a scaled rendering of an upload
#   - decode once (Pillow), upright per EXIF, keep an immutable (H, W, 3) uint8 surface
#   - aspect-preserving fit into the viewport container, no cropping
#   - pointer → surface transform + single point read per event
#   - one load session at a time; a new load supersedes the old one

from __future__ import annotations

import io
import logging
import threading
from concurrent.futures import Future, ThreadPoolExecutor
from dataclasses import dataclass
from enum import Enum
from typing import Callable, Optional

import numpy as np
from coloraide import Color
from PIL import Image, ImageOps

log = logging.getLogger(__name__)


class DecodeError(ValueError):
    """Image bytes could not be turned into a pixel surface."""


class SamplerClosedError(RuntimeError):
    pass


# --- data ------------------------------------------------------------------


@dataclass(frozen=True)
class RasterImage:
    pixels: np.ndarray  # (H, W, 3) uint8, read-only

    @classmethod
    def from_array(cls, arr: np.ndarray) -> "RasterImage":
        a = np.array(arr, dtype=np.uint8, copy=True)
        if a.ndim != 3 or a.shape[2] != 3:
            raise DecodeError(f"expected an (H, W, 3) surface, got shape {a.shape}")
        if a.shape[0] == 0 or a.shape[1] == 0:
            raise DecodeError("image has no pixels")
        a.flags.writeable = False
        return cls(a)

    @property
    def width(self) -> int:
        return int(self.pixels.shape[1])

    @property
    def height(self) -> int:
        return int(self.pixels.shape[0])


@dataclass(frozen=True)
class ViewportFit:
    draw_width: float
    draw_height: float

    @property
    def is_empty(self) -> bool:
        return self.draw_width <= 0.0 or self.draw_height <= 0.0

    def to_dict(self) -> dict[str, float]:
        return {"width": self.draw_width, "height": self.draw_height}


EMPTY_FIT = ViewportFit(0.0, 0.0)


@dataclass(frozen=True)
class SampledColor:
    r: int
    g: int
    b: int

    @property
    def rgb(self) -> tuple[int, int, int]:
        return (self.r, self.g, self.b)

    @property
    def hex(self) -> str:
        c = Color("srgb", [self.r / 255.0, self.g / 255.0, self.b / 255.0])
        return c.to_string(hex=True).upper()

    def to_dict(self) -> dict[str, object]:
        return {"hex": self.hex, "rgb": list(self.rgb)}


class SamplerState(Enum):
    EMPTY = "empty"
    LOADING = "loading"
    READY = "ready"
    HOVERING = "hovering"
    COMMITTED = "committed"


# --- pure helpers ----------------------------------------------------------


# 16-bit and 32-bit integer greyscale; browsers show the high byte
_WIDE_MODES = {"I", "I;16", "I;16L", "I;16B", "I;16N"}


def _to_rgb(im: Image.Image) -> np.ndarray:
    # match what the browser draws: EXIF orientation applied
    im = ImageOps.exif_transpose(im)
    if im.mode in _WIDE_MODES:
        wide = np.asarray(im).astype(np.int64)
        grey = np.clip(wide >> 8, 0, 255).astype(np.uint8)
        im = Image.fromarray(grey)
    return np.asarray(im.convert("RGB"), dtype=np.uint8)


def decode_image(data: bytes) -> RasterImage:
    """Decode PNG/JPEG (anything Pillow reads) into an upright RGB surface."""
    if not data:
        raise DecodeError("empty image data")
    try:
        with Image.open(io.BytesIO(data)) as im:
            im.load()
            rgb = _to_rgb(im)
    except (OSError, ValueError, Image.DecompressionBombError) as exc:
        raise DecodeError(f"cannot decode image: {exc}") from exc
    return RasterImage.from_array(rgb)


def fit(image: RasterImage, container_width: float, container_height: float) -> ViewportFit:
    """
    Largest undistorted rendering of `image` inside the container.
    The limiting axis is filled exactly; a zero-sized container gives EMPTY_FIT.
    """
    cw, ch = float(container_width), float(container_height)
    if cw <= 0.0 or ch <= 0.0:
        return EMPTY_FIT
    img_ar = image.width / image.height
    box_ar = cw / ch
    if img_ar > box_ar:
        return ViewportFit(cw, cw / img_ar)
    # equal ratios land here and fill both axes
    return ViewportFit(ch * img_ar, ch)


def read_pixel(
    image: RasterImage, viewport: ViewportFit, x: float, y: float
) -> Optional[SampledColor]:
    if viewport.is_empty:
        return None
    # NaN fails both comparisons and falls out here too
    if not (0.0 <= x < viewport.draw_width and 0.0 <= y < viewport.draw_height):
        return None
    sx = int(x * (image.width / viewport.draw_width))
    sy = int(y * (image.height / viewport.draw_height))
    sx = min(max(sx, 0), image.width - 1)
    sy = min(max(sy, 0), image.height - 1)
    r, g, b = image.pixels[sy, sx]
    return SampledColor(int(r), int(g), int(b))


# --- stateful sampler ------------------------------------------------------

HoverFn = Callable[[SampledColor], None]
CommitFn = Callable[[str], None]
CancelFn = Callable[[], None]


class ImageSampler:
    """
    One upload session at a time: Empty -> Loading -> Ready -> Hovering* -> Committed.

    `load` returns a Future that resolves to the decoded RasterImage or fails
    with DecodeError. Every load bumps `session`; pointer events tagged with an
    older session, and decodes that finish after being superseded, are ignored.
    """

    def __init__(
        self,
        *,
        on_hover: HoverFn | None = None,
        on_commit: CommitFn | None = None,
        on_cancel: CancelFn | None = None,
        executor: ThreadPoolExecutor | None = None,
    ) -> None:
        self._on_hover = on_hover
        self._on_commit = on_commit
        self._on_cancel = on_cancel
        self._owns_executor = executor is None
        self._executor = executor or ThreadPoolExecutor(
            max_workers=1, thread_name_prefix="image-decode"
        )
        self._lock = threading.RLock()
        self._image: RasterImage | None = None
        self._viewport = EMPTY_FIT
        self._container = (0.0, 0.0)
        self._state = SamplerState.EMPTY
        self._session = 0
        self._closed = False
        self._open = False  # a picker session is showing and not yet committed
        self.hover_color: SampledColor | None = None
        self.committed: SampledColor | None = None

    # -- observers --
    @property
    def state(self) -> SamplerState:
        return self._state

    @property
    def session(self) -> int:
        return self._session

    @property
    def image(self) -> RasterImage | None:
        return self._image

    @property
    def viewport(self) -> ViewportFit:
        return self._viewport

    # -- lifecycle --
    def load(self, data: bytes) -> "Future[RasterImage]":
        with self._lock:
            if self._closed:
                raise SamplerClosedError("sampler is closed")
            self._session += 1
            token = self._session
            self._image = None
            self._viewport = EMPTY_FIT
            self._state = SamplerState.LOADING
            self._open = True
            self.hover_color = None
            self.committed = None
        return self._executor.submit(self._decode, token, bytes(data))

    def _decode(self, token: int, data: bytes) -> RasterImage:
        try:
            image = decode_image(data)
        except DecodeError as exc:
            with self._lock:
                if token == self._session:
                    self._state = SamplerState.EMPTY
            log.warning("Decode failed for load session %d: %s", token, exc)
            raise
        with self._lock:
            if token != self._session:
                log.debug("Load session %d superseded by %d", token, self._session)
                return image
            self._image = image
            self._viewport = fit(image, *self._container)
            self._state = SamplerState.READY
        log.info("Loaded %dx%d image (session %d)", image.width, image.height, token)
        return image

    def resize(self, container_width: float, container_height: float) -> ViewportFit:
        with self._lock:
            self._container = (float(container_width), float(container_height))
            if self._image is not None:
                self._viewport = fit(self._image, *self._container)
            return self._viewport

    def dismiss(self) -> bool:
        """End the session without a commit; fires on_cancel unless already committed."""
        with self._lock:
            cancelled = self._open
            self._open = False
            self._session += 1
            self._image = None
            self._viewport = EMPTY_FIT
            self._state = SamplerState.EMPTY
            self.hover_color = None
        if cancelled and self._on_cancel is not None:
            self._on_cancel()
        return cancelled

    def close(self) -> None:
        if self._closed:
            return
        self.dismiss()
        self._closed = True
        if self._owns_executor:
            self._executor.shutdown(wait=False)

    # -- sampling --
    def sample_at(self, x: float, y: float) -> Optional[SampledColor]:
        with self._lock:
            image, viewport = self._image, self._viewport
        if image is None:
            return None
        return read_pixel(image, viewport, x, y)

    def _live(self, session: int | None) -> bool:
        if session is not None and session != self._session:
            return False
        return self._state in (SamplerState.READY, SamplerState.HOVERING)

    def pointer_move(
        self, x: float, y: float, session: int | None = None
    ) -> Optional[SampledColor]:
        with self._lock:
            if not self._live(session):
                return None
            color = self.sample_at(x, y)
            if color is None:
                return None
            self.hover_color = color
            self._state = SamplerState.HOVERING
        if self._on_hover is not None:
            self._on_hover(color)
        return color

    def click(self, x: float, y: float, session: int | None = None) -> Optional[SampledColor]:
        with self._lock:
            if not self._live(session):
                return None
            color = self.sample_at(x, y)
            if color is None:
                return None
            self.hover_color = color
            self.committed = color
            self._state = SamplerState.COMMITTED
            self._open = False
        if self._on_commit is not None:
            self._on_commit(color.hex)
        return color


__all__ = [
    "DecodeError",
    "EMPTY_FIT",
    "ImageSampler",
    "RasterImage",
    "SampledColor",
    "SamplerClosedError",
    "SamplerState",
    "ViewportFit",
    "decode_image",
    "fit",
    "read_pixel",
]

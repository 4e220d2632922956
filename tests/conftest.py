import io

import numpy as np
import pytest
from PIL import Image


def png_bytes(arr) -> bytes:
    buf = io.BytesIO()
    Image.fromarray(np.asarray(arr, dtype=np.uint8)).save(buf, format="PNG")
    return buf.getvalue()


def solid(rgb, height=2, width=2):
    return np.full((height, width, 3), rgb, dtype=np.uint8)


@pytest.fixture
def red_png():
    return png_bytes(solid([255, 0, 0]))


@pytest.fixture
def quadrant_png():
    # 4x2: left half red, right half blue; bottom-right pixel green
    arr = np.zeros((2, 4, 3), np.uint8)
    arr[:, :2] = [255, 0, 0]
    arr[:, 2:] = [0, 0, 255]
    arr[1, 3] = [0, 255, 0]
    return png_bytes(arr)


def jpeg_bytes(arr, orientation=None) -> bytes:
    buf = io.BytesIO()
    extra = {}
    if orientation is not None:
        exif = Image.Exif()
        exif[0x0112] = orientation
        extra["exif"] = exif
    Image.fromarray(np.asarray(arr, dtype=np.uint8)).save(
        buf, format="JPEG", quality=95, subsampling=0, **extra
    )
    return buf.getvalue()


def grey16_png_bytes(value, height=2, width=2) -> bytes:
    buf = io.BytesIO()
    Image.fromarray(np.full((height, width), value, dtype=np.uint16)).save(buf, format="PNG")
    return buf.getvalue()

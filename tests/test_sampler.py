import threading

import numpy as np
import pytest

from conftest import grey16_png_bytes, jpeg_bytes, png_bytes, solid
from paint_mixer.sampler import (
    EMPTY_FIT,
    DecodeError,
    ImageSampler,
    RasterImage,
    SampledColor,
    SamplerClosedError,
    SamplerState,
    decode_image,
    fit,
    read_pixel,
)


def _image(w, h):
    return RasterImage.from_array(np.zeros((h, w, 3), np.uint8))


def test_fit_wide_image_fills_width():
    vf = fit(_image(400, 100), 800, 600)
    assert vf.draw_width == 800
    assert vf.draw_height == pytest.approx(200)


def test_fit_tall_image_fills_height():
    vf = fit(_image(100, 400), 800, 600)
    assert vf.draw_height == 600
    assert vf.draw_width == pytest.approx(150)


def test_fit_equal_aspect_fills_container():
    vf = fit(_image(300, 200), 600, 400)
    assert vf.draw_width == pytest.approx(600)
    assert vf.draw_height == pytest.approx(400)


@pytest.mark.parametrize(
    "iw, ih, cw, ch",
    [(1, 1, 10, 3), (1920, 1080, 333, 777), (7, 13, 640, 480), (5000, 3, 50, 50)],
)
def test_fit_preserves_aspect_and_stays_inside(iw, ih, cw, ch):
    vf = fit(_image(iw, ih), cw, ch)
    assert vf.draw_width / vf.draw_height == pytest.approx(iw / ih, rel=1e-3)
    assert vf.draw_width <= cw + 1e-9 and vf.draw_height <= ch + 1e-9
    assert vf.draw_width == cw or vf.draw_height == ch


@pytest.mark.parametrize("cw, ch", [(0, 100), (100, 0), (0, 0), (-5, 10)])
def test_fit_degenerate_container(cw, ch):
    vf = fit(_image(10, 10), cw, ch)
    assert vf == EMPTY_FIT
    assert vf.is_empty


def test_decode_red_png(red_png):
    img = decode_image(red_png)
    assert (img.width, img.height) == (2, 2)
    assert np.array_equal(img.pixels[0, 0], [255, 0, 0])
    assert not img.pixels.flags.writeable


def _split_red_blue(height, width):
    arr = np.zeros((height, width, 3), np.uint8)
    arr[:, : width // 2] = [255, 0, 0]
    arr[:, width // 2 :] = [0, 0, 255]
    return arr


def test_decode_applies_exif_rotation():
    # stored 16x8 landscape, tagged "rotate 90 CW": shown 8x16 with red on top
    img = decode_image(jpeg_bytes(_split_red_blue(8, 16), orientation=6))
    assert (img.width, img.height) == (8, 16)
    top, bottom = img.pixels[3, 4].astype(int), img.pixels[12, 4].astype(int)
    assert top[0] > 200 and top[2] < 60
    assert bottom[2] > 200 and bottom[0] < 60


def test_decode_untagged_jpeg_keeps_layout():
    img = decode_image(jpeg_bytes(_split_red_blue(8, 16)))
    assert (img.width, img.height) == (16, 8)


def test_sixteen_bit_grey_uses_high_byte():
    s = ImageSampler()
    s.resize(10, 10)
    s.load(grey16_png_bytes(0x2020)).result(timeout=5)
    assert s.sample_at(5, 5).hex == "#202020"
    assert decode_image(grey16_png_bytes(0xFFFF)).pixels[0, 0].tolist() == [255, 255, 255]
    s.close()


@pytest.mark.parametrize("data", [b"", b"not an image", b"\x89PNG\r\n\x1a\n\x00\x00"])
def test_decode_rejects_garbage(data):
    with pytest.raises(DecodeError):
        decode_image(data)


def test_sampled_color_hex_is_uppercase():
    assert SampledColor(255, 0, 0).hex == "#FF0000"
    assert SampledColor(171, 205, 239).hex == "#ABCDEF"
    assert SampledColor(0, 0, 0).hex == "#000000"


def test_read_pixel_maps_viewport_to_source():
    arr = np.zeros((2, 4, 3), np.uint8)
    arr[:, 2:] = [0, 0, 255]
    img = RasterImage.from_array(arr)
    vf = fit(img, 400, 400)  # 400 x 200, scale 100
    assert read_pixel(img, vf, 10, 10).hex == "#000000"
    assert read_pixel(img, vf, 250, 150).hex == "#0000FF"
    assert read_pixel(img, vf, 399.9, 199.9).hex == "#0000FF"


def test_read_pixel_outside_region():
    img = _image(4, 2)
    vf = fit(img, 400, 400)
    for x, y in [(-1, 10), (10, -0.5), (400, 10), (10, 200), (10, 300), (float("nan"), 1)]:
        assert read_pixel(img, vf, x, y) is None
    assert read_pixel(img, EMPTY_FIT, 0, 0) is None


def _ready(data, w=100, h=100, **kw):
    s = ImageSampler(**kw)
    s.resize(w, h)
    s.load(data).result(timeout=5)
    return s


def test_red_image_samples_red_everywhere(red_png):
    s = _ready(red_png, 50, 50)
    assert s.state is SamplerState.READY
    for x, y in [(0, 0), (49, 49), (25, 3), (0.5, 49.9)]:
        assert s.sample_at(x, y).hex == "#FF0000"
    s.close()


def test_sample_is_deterministic(quadrant_png):
    s = _ready(quadrant_png, 400, 400)
    first = s.sample_at(350, 150)
    assert first == s.sample_at(350, 150)
    assert first.hex == "#00FF00"
    s.close()


def test_no_image_no_sample():
    s = ImageSampler()
    s.resize(100, 100)
    assert s.sample_at(10, 10) is None
    assert s.pointer_move(10, 10) is None
    assert s.click(10, 10) is None
    s.close()


def test_zero_container_disables_until_layout(red_png):
    s = _ready(red_png, 0, 0)
    assert s.viewport.is_empty
    assert s.sample_at(0, 0) is None
    s.resize(20, 20)
    assert s.sample_at(0, 0).hex == "#FF0000"
    s.close()


def test_hover_then_commit(quadrant_png):
    hovers, commits = [], []
    s = _ready(quadrant_png, 400, 400, on_hover=hovers.append, on_commit=commits.append)
    assert s.pointer_move(10, 10).hex == "#FF0000"
    assert s.state is SamplerState.HOVERING
    assert s.pointer_move(10, 300) is None  # below the rendered 400x200 area
    assert s.hover_color.hex == "#FF0000"
    s.pointer_move(250, 10)
    assert [c.hex for c in hovers] == ["#FF0000", "#0000FF"]

    assert s.click(250, 10).hex == "#0000FF"
    assert commits == ["#0000FF"]
    assert s.state is SamplerState.COMMITTED
    # terminal for this session
    assert s.pointer_move(10, 10) is None
    assert s.click(10, 10) is None
    assert commits == ["#0000FF"]
    s.close()


def test_decode_failure_returns_to_empty():
    s = ImageSampler()
    fut = s.load(b"garbage")
    with pytest.raises(DecodeError):
        fut.result(timeout=5)
    assert s.state is SamplerState.EMPTY
    assert s.image is None
    s.close()


def test_new_load_supersedes_old_session(red_png):
    blue = png_bytes(solid([0, 0, 255]))
    s = _ready(red_png, 10, 10)
    old = s.session
    s.load(blue).result(timeout=5)
    assert s.session == old + 1
    assert s.pointer_move(1, 1, session=old) is None
    assert s.pointer_move(1, 1, session=s.session).hex == "#0000FF"
    s.close()


def test_superseded_decode_is_not_installed(red_png):
    gate = threading.Event()
    blue = png_bytes(solid([0, 0, 255]))

    class GatedExecutor:
        # runs the first submission only after the gate opens
        def __init__(self):
            from concurrent.futures import ThreadPoolExecutor

            self.pool = ThreadPoolExecutor(max_workers=2)
            self.calls = 0

        def submit(self, fn, *args):
            self.calls += 1
            if self.calls == 1:
                return self.pool.submit(lambda: (gate.wait(5), fn(*args))[1])
            return self.pool.submit(fn, *args)

    ex = GatedExecutor()
    s = ImageSampler(executor=ex)
    s.resize(10, 10)
    slow = s.load(red_png)
    s.load(blue).result(timeout=5)
    gate.set()
    slow.result(timeout=5)
    assert s.sample_at(1, 1).hex == "#0000FF"
    ex.pool.shutdown()


def test_dismiss_fires_cancel_only_without_commit(red_png):
    cancels = []
    s = _ready(red_png, 10, 10, on_cancel=lambda: cancels.append(1))
    assert s.dismiss() is True
    assert cancels == [1]
    assert s.sample_at(1, 1) is None
    assert s.dismiss() is False

    s.load(red_png).result(timeout=5)
    s.click(1, 1)
    assert s.dismiss() is False
    assert cancels == [1]
    s.close()


def test_closed_sampler_rejects_load(red_png):
    s = ImageSampler()
    s.close()
    with pytest.raises(SamplerClosedError):
        s.load(red_png)

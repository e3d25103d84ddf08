from io import BytesIO

import numpy as np
import pytest
from PIL import Image as PILImage

from bgremover.models.errors import DecodeFailure
from bgremover.services.image_service import ImageService
from conftest import png_bytes, solid


@pytest.fixture
def image_service():
    return ImageService()


def test_png_decode_keeps_alpha(image_service, backdrop):
    backdrop.pixels[0, 0, 3] = 7
    img = image_service.decode(png_bytes(backdrop))

    assert img.pixels.dtype == np.uint8
    assert img.pixels.shape == (30, 40, 4)
    assert np.array_equal(img.pixels, backdrop.pixels)


def test_jpeg_decodes_to_opaque_rgba(image_service):
    buffer = BytesIO()
    PILImage.new("RGB", (12, 8), (10, 200, 30)).save(buffer, format="JPEG")

    img = image_service.decode(buffer.getvalue())

    assert (img.width, img.height) == (12, 8)
    assert (img.pixels[..., 3] == 255).all()


@pytest.mark.parametrize("payload", [b"", b"definitely not an image"])
def test_garbage_raises_decode_failure(image_service, payload):
    with pytest.raises(DecodeFailure):
        image_service.decode(payload)


def test_encode_png_round_trips(image_service, backdrop):
    backdrop.pixels[5:7, 5:7, 3] = 0
    decoded = image_service.decode(image_service.encode_png(backdrop))
    assert np.array_equal(decoded.pixels, backdrop.pixels)


def test_data_url_prefix(image_service, red_blue):
    assert image_service.to_data_url(red_blue).startswith("data:image/png;base64,")


def test_downsample_longest_edge_landscape(image_service):
    out = image_service.downsample(solid(800, 200, (1, 2, 3, 255)), 200)
    assert (out.width, out.height) == (200, 50)


def test_downsample_longest_edge_portrait(image_service):
    out = image_service.downsample(solid(300, 900, (1, 2, 3, 255)), 200)
    assert (out.width, out.height) == (67, 200)


def test_downsample_never_upscales(image_service, red_blue):
    out = image_service.downsample(red_blue, 200)

    assert out.pixels is not red_blue.pixels
    assert np.array_equal(out.pixels, red_blue.pixels)


def test_downsample_keeps_thin_edge(image_service):
    out = image_service.downsample(solid(5000, 2, (0, 0, 0, 255)), 200)
    assert (out.width, out.height) == (200, 1)


def test_freeze_makes_pixels_read_only(image_service, red_blue):
    frozen = image_service.freeze(image_service.copy(red_blue))

    assert not frozen.pixels.flags.writeable
    assert red_blue.pixels.flags.writeable
    with pytest.raises(ValueError):
        frozen.pixels[0, 0, 3] = 0


def test_jpeg_honours_exif_orientation(image_service):
    # Stored 40x20, left half red; orientation 6 displays it rotated 90° clockwise.
    stored = PILImage.new("RGB", (40, 20), (0, 0, 255))
    stored.paste((255, 0, 0), (0, 0, 20, 20))
    exif = PILImage.Exif()
    exif[0x0112] = 6
    buffer = BytesIO()
    stored.save(buffer, format="JPEG", exif=exif.tobytes())

    img = image_service.decode(buffer.getvalue())

    assert (img.width, img.height) == (20, 40)
    top, bottom = img.pixels[5, 10], img.pixels[35, 10]
    assert top[0] > 200 and top[2] < 60
    assert bottom[2] > 200 and bottom[0] < 60

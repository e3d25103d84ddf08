from io import BytesIO

import numpy as np
import pytest
from PIL import Image as PILImage

from bgremover.models.image import Image


def rgba(pixels) -> Image:
    """Build an Image from a nested list of (r, g, b, a) rows."""
    return Image(pixels=np.array(pixels, dtype=np.uint8))


def solid(width: int, height: int, color) -> Image:
    arr = np.empty((height, width, 4), dtype=np.uint8)
    arr[...] = color
    return Image(pixels=arr)


def png_bytes(image: Image) -> bytes:
    buffer = BytesIO()
    PILImage.fromarray(image.pixels).save(buffer, format="PNG")
    return buffer.getvalue()


@pytest.fixture
def red_blue():
    """The 2x1 image: one pure red, one pure blue pixel."""
    return rgba([[(255, 0, 0, 255), (0, 0, 255, 255)]])


@pytest.fixture
def backdrop():
    """
    40x30 white canvas with a 10x10 dark green square in the middle
    and a light-gray 2 px border.
    """
    arr = np.empty((30, 40, 4), dtype=np.uint8)
    arr[...] = (250, 250, 250, 255)
    arr[:2, :] = (200, 200, 200, 255)
    arr[-2:, :] = (200, 200, 200, 255)
    arr[10:20, 15:25] = (20, 120, 30, 255)
    return Image(pixels=arr)


@pytest.fixture
def noisy():
    rng = np.random.default_rng(1234)
    arr = rng.integers(0, 256, size=(37, 23, 4), dtype=np.uint8)
    arr[..., 3] = 255
    return Image(pixels=arr)

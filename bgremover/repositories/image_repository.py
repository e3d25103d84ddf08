from io import BytesIO

import numpy as np
import cv2
from PIL import Image as PILImage, ImageOps, UnidentifiedImageError

from ..models.image import Image
from ..models.errors import DecodeFailure, EncodeFailure


class ImageRepository:
    """
    Handles decoding, encoding and resampling of Image entities.
    The only place that talks to Pillow / OpenCV.
    """

    @staticmethod
    def create_image(pixels: np.ndarray) -> Image:
        return Image(pixels=pixels)

    @staticmethod
    def decode(data: bytes) -> Image:
        """
        Decode PNG/JPEG bytes into an RGBA Image, upright per EXIF orientation.

        Raises:
            DecodeFailure: Pillow could not parse the bytes.
        """
        if not data:
            raise DecodeFailure("Empty image payload")
        try:
            with PILImage.open(BytesIO(data)) as pil_img:
                pil_img.load()
                upright = ImageOps.exif_transpose(pil_img)
                rgba = upright.convert("RGBA")
        except (UnidentifiedImageError, PILImage.DecompressionBombError, OSError, ValueError) as err:
            raise DecodeFailure(f"Cannot decode image: {err}") from err

        arr = np.ascontiguousarray(np.asarray(rgba, dtype=np.uint8))
        if arr.ndim != 3 or arr.shape[0] == 0 or arr.shape[1] == 0:
            raise DecodeFailure(f"Decoded image has unusable shape {arr.shape}")
        return ImageRepository.create_image(arr)

    @staticmethod
    def encode_png(image: Image) -> bytes:
        """Encode the RGBA pixels as PNG bytes."""
        pixels = image.pixels
        if not pixels.flags['C_CONTIGUOUS']:
            pixels = np.ascontiguousarray(pixels)
        buffer = BytesIO()
        try:
            PILImage.fromarray(pixels).save(buffer, format="PNG")
        except (OSError, ValueError) as err:
            raise EncodeFailure(f"Cannot encode PNG: {err}") from err
        return buffer.getvalue()

    @staticmethod
    def resize(image: Image, width: int, height: int) -> Image:
        """
        Area-averaged resize (OpenCV INTER_AREA), channel order untouched.
        Returns a new Image; the input array is only read.
        """
        out = cv2.resize(image.pixels, (width, height), interpolation=cv2.INTER_AREA)
        return ImageRepository.create_image(np.ascontiguousarray(out))

    @staticmethod
    def copy_pixels(image: Image) -> Image:
        return ImageRepository.create_image(image.pixels.copy())

    @staticmethod
    def freeze(image: Image) -> None:
        """Mark the pixel array read-only so nobody mutates the source of truth."""
        image.pixels.setflags(write=False)

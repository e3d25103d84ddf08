import numpy as np

from bgremover.models.palette import RGBColor
from bgremover.services.palette_service import PaletteService
from conftest import rgba, solid


def test_red_blue_ties_break_by_ascending_bucket(red_blue):
    palette = PaletteService().extract(red_blue, 2)

    # (0,0,15) has flat key 15, (15,0,0) has 3840
    assert palette == (RGBColor(0, 0, 240), RGBColor(240, 0, 0))
    assert [c.to_hex() for c in palette] == ["#0000F0", "#F00000"]


def test_ranked_by_frequency():
    img = rgba([[
        (10, 10, 10, 255), (200, 0, 0, 255), (200, 0, 0, 255),
        (0, 200, 0, 255), (0, 200, 0, 255), (0, 200, 0, 255),
    ]])
    palette = PaletteService().extract(img, 15)

    assert palette == (RGBColor(0, 192, 0), RGBColor(192, 0, 0), RGBColor(0, 0, 0))


def test_same_bucket_colors_are_merged():
    img = rgba([[(16, 16, 16, 255), (31, 31, 31, 255), (100, 0, 0, 255)]])
    palette = PaletteService().extract(img, 15)

    assert palette[0] == RGBColor(16, 16, 16)
    assert len(palette) == 2


def test_extraction_is_deterministic(noisy):
    service = PaletteService()
    assert service.extract(noisy, 15) == service.extract(noisy, 15)


def test_cap_and_bucket_floors(noisy):
    palette = PaletteService().extract(noisy, 15)

    assert len(palette) == 15
    for color in palette:
        for channel in color.as_tuple():
            assert channel % 16 == 0
            assert 0 <= channel <= 240


def test_fewer_colors_than_cap_are_not_padded(backdrop):
    palette = PaletteService().extract(backdrop, 15)

    assert palette == (RGBColor(240, 240, 240), RGBColor(192, 192, 192), RGBColor(16, 112, 16))


def test_translucent_pixels_never_counted():
    pixels = [(0, 0, 255, 100)] * 50 + [(0, 0, 255, 128)] * 50 + [(255, 255, 255, 129)]
    palette = PaletteService().extract(rgba([pixels]), 15)

    assert palette == (RGBColor(240, 240, 240),)


def test_fully_transparent_image_yields_empty_palette():
    img = solid(8, 8, (255, 0, 0, 0))
    assert PaletteService().extract(img, 15) == ()


def test_non_positive_cap_yields_empty_palette(red_blue):
    assert PaletteService().extract(red_blue, 0) == ()


def test_default_cap_is_fifteen(noisy):
    assert len(PaletteService().extract(noisy)) == 15


def test_extract_from_original_downsamples_without_mutating():
    img = solid(800, 400, (16, 32, 48, 255))
    before = img.pixels.copy()

    palette = PaletteService().extract_from_original(img)

    assert palette == (RGBColor(16, 32, 48),)
    assert np.array_equal(img.pixels, before)

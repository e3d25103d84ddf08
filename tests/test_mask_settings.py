import pytest

from bgremover.models.errors import InvalidSelection, InvalidTolerance
from bgremover.models.mask_settings import MaskSettings, tolerance_to_threshold, validate_tolerance
from bgremover.models.palette import RGBColor, parse_hex_color


@pytest.mark.parametrize("value", ["#F0A010", "f0a010", "  #f0A010 "])
def test_parse_hex_accepts_common_spellings(value):
    assert parse_hex_color(value) == RGBColor(240, 160, 16)


@pytest.mark.parametrize("value", ["", "#FFF", "#GGGGGG", "#1234567", None, 0xFF0000, ["#FF0000"]])
def test_parse_hex_rejects_malformed(value):
    with pytest.raises(InvalidSelection):
        parse_hex_color(value)


def test_hex_round_trip_is_upper_case():
    assert RGBColor(10, 171, 255).to_hex() == "#0AABFF"


def test_bucket_key_and_floor():
    color = RGBColor(255, 17, 128)
    assert color.bucket_key() == (15 << 8) | (1 << 4) | 8
    assert RGBColor.from_bucket_key(color.bucket_key()) == RGBColor(240, 16, 128)


@pytest.mark.parametrize("value,expected", [(0, 0), (100, 100), ("35", 35), (20.0, 20)])
def test_validate_tolerance_accepts(value, expected):
    assert validate_tolerance(value) == expected


@pytest.mark.parametrize("value", [-1, 101, 12.5, "abc", None, True, [10]])
def test_validate_tolerance_rejects(value):
    with pytest.raises(InvalidTolerance):
        validate_tolerance(value)


def test_invalid_tolerance_is_a_value_error():
    with pytest.raises(ValueError):
        validate_tolerance(500)


def test_default_settings():
    settings = MaskSettings()
    assert settings.targets == ()
    assert settings.tolerance == 20


def test_create_drops_duplicates_keeping_order():
    settings = MaskSettings.create(["#00FF00", "#ff0000", "#00ff00"], 5)
    assert settings.hex_targets() == ["#00FF00", "#FF0000"]


def test_toggle_adds_then_removes():
    settings = MaskSettings()
    on = settings.toggled("#F00000")
    off = on.toggled("#f00000")

    assert on.hex_targets() == ["#F00000"]
    assert off.targets == ()
    assert settings.targets == ()


def test_with_tolerance_validates():
    with pytest.raises(InvalidTolerance):
        MaskSettings().with_tolerance(150)


def test_threshold_scales_linearly():
    assert MaskSettings.create(tolerance=0).threshold_squared == 0
    assert MaskSettings.create(tolerance=100).threshold_squared == 195075
    assert MaskSettings.create(tolerance=20).threshold_squared == pytest.approx(39015)


@pytest.mark.parametrize("tolerance", [0, 1, 20, 55, 100])
def test_settings_threshold_uses_shared_formula(tolerance):
    assert MaskSettings.create(tolerance=tolerance).threshold_squared == tolerance_to_threshold(tolerance)

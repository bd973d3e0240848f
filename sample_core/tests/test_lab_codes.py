import pytest

from sample_core.services import lab_codes


@pytest.mark.parametrize(
    "raw,expected",
    [
        ("BML-004", ("BML", 4)),
        ("bml 4", ("BML", 4)),
        ("BML004", ("BML", 4)),
        ("wgs_0012", ("WGS", 12)),
    ],
)
def test_parse_code(raw, expected):
    assert lab_codes.parse_code(raw) == expected


@pytest.mark.parametrize("raw", ["", "BML", "004", "BML-000", "BML-4a"])
def test_parse_code_rejects_garbage(raw):
    with pytest.raises(ValueError):
        lab_codes.parse_code(raw)


def test_format_code_pads_and_widens():
    assert lab_codes.format_code("bml", 7) == "BML-007"
    assert lab_codes.format_code("BML", 1000) == "BML-1000"
    with pytest.raises(ValueError):
        lab_codes.format_code("BML", 0)


def test_prefix_for_group(settings):
    settings.LAB_CODE_DEFAULT_PREFIX = "BML"
    settings.LAB_CODE_PREFIXES = {"wgs": "WGS"}
    assert lab_codes.prefix_for_group("WGS") == "WGS"
    assert lab_codes.prefix_for_group("unknown") == "BML"
    assert lab_codes.prefix_for_group("") == "BML"
    assert lab_codes.sequence_name("wgs") == "lab_sample_code:WGS"

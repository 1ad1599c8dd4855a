from __future__ import annotations

from datetime import date

import pytest
from pydantic import ValidationError

from rate_compare.config.property_file import PropertyFile, load_property_config, parse_check_in
from rate_compare.config.settings import Settings
from rate_compare.rates import validate_property_config

PROPERTY_TOML = """
[property]
id = " 12345678 "
name = "Lakeside Cabin"

[channels]
airbnb = "https://www.airbnb.com/rooms/12345678"
vrbo = "4455667"
expedia = ""

[settings]
theme = "dark"

[runtime]
channel_timeout_s = 3
log_level = "DEBUG"

[stay]
check_in = "2025-09-15"
nights = 7
"""


def test_load_property_config_builds_valid_config(tmp_path) -> None:
    path = tmp_path / "property.toml"
    path.write_text(PROPERTY_TOML)

    config = load_property_config(path)

    assert validate_property_config(config)
    assert config.id == "12345678"
    assert config.enabled_channels == ("airbnb", "vrbo")
    assert config.settings.theme == "dark"
    assert config.settings.display_mode == "inline"


def test_property_file_applies_runtime_overrides(tmp_path) -> None:
    path = tmp_path / "property.toml"
    path.write_text(PROPERTY_TOML)
    settings = Settings(channel_timeout_s=8.0, log_level="INFO")

    property_file = PropertyFile.load(path)
    property_file.apply_to(settings)

    assert settings.channel_timeout_s == 3.0
    assert settings.log_level == "DEBUG"
    assert property_file.stay.resolve() == (date(2025, 9, 15), date(2025, 9, 22))


def test_unknown_channel_in_file_is_rejected(tmp_path) -> None:
    path = tmp_path / "property.toml"
    path.write_text('[property]\nid = "1"\nname = "Cabin"\n\n[channels]\ntripadvisor = "1"\n')

    with pytest.raises(ValueError):
        load_property_config(path)


def test_missing_property_section_is_rejected(tmp_path) -> None:
    path = tmp_path / "property.toml"
    path.write_text('[channels]\nairbnb = "1"\n')

    with pytest.raises(ValidationError):
        PropertyFile.load(path)


@pytest.mark.parametrize(
    ("value", "expected"),
    [
        ("today", date(2025, 9, 1)),
        ("+14d", date(2025, 9, 15)),
        ("today+2w", date(2025, 9, 15)),
        ("+1m", date(2025, 10, 1)),
        ("2025-12-24", date(2025, 12, 24)),
    ],
)
def test_parse_check_in_supports_relative_offsets(value: str, expected: date) -> None:
    assert parse_check_in(value, today=date(2025, 9, 1)) == expected


@pytest.mark.parametrize("value", ["+3y", "tomorrow", "2025/09/15"])
def test_parse_check_in_rejects_unknown_formats(value: str) -> None:
    with pytest.raises(ValueError):
        parse_check_in(value, today=date(2025, 9, 1))

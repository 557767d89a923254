"""
Unit tests for the regex extractor
"""
import pytest

from core.engine.errors import ConfigurationError
from core.engine.regex_extractor import compile_pattern, extract, to_text


def test_capture_group_extracted():
    assert extract("router=42", r"(\d+)") == "42"
    assert extract("openflow:router=16909060", r"router=(\d+)") == "16909060"


def test_no_match_yields_none():
    assert extract("nomatch", r"(\d+)") is None


def test_none_input_yields_none():
    assert extract(None, r"(\d+)") is None


def test_first_group_wins():
    assert extract("a=1,b=2", r"(\w)=(\d)") == "a"


def test_whole_match_without_groups():
    assert extract("speed 1000 Mbps", r"\d+") == "1000"


def test_non_participating_group_yields_none():
    assert extract("abc", r"(x)?abc") is None


def test_unanchored_search():
    assert extract("xx router=5 yy", r"router=(\d)") == "5"


def test_non_string_input_coerced():
    assert extract(16909060, r"(\d{3})") == "169"
    assert extract(True, r"(t\w+)") == "true"


def test_compiled_pattern_accepted():
    assert extract("id-9", compile_pattern(r"id-(\d)")) == "9"


def test_invalid_pattern_is_configuration_error():
    with pytest.raises(ConfigurationError):
        compile_pattern(r"router=(\d+")


def test_to_text():
    assert to_text(None) is None
    assert to_text(False) == "false"
    assert to_text(12) == "12"
    assert to_text(1.5) == "1.5"
    assert to_text({"a": [1, 2]}) == '{"a":[1,2]}'


def test_objects_keep_non_ascii_text():
    assert to_text({"n": "é"}) == '{"n":"é"}'
    assert extract({"site": "Zürich-1"}, r"Zürich-(\d)") == "1"

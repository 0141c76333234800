"""Unit tests for merchant name normalization"""

import pytest
from pattern_engine.domain.normalizer import normalize_merchant


@pytest.mark.parametrize(
    "raw,expected",
    [
        ("NETFLIX.COM", "netflixcom"),
        ("Netflix.com  Monthly Plan #1234", "netflixcom monthly plan"),
        ("  Blue   Bottle\tCoffee  ", "blue bottle coffee"),
        ("SQ *JOE'S PIZZA #12 BROOKLYN NY", "sq joes pizza"),
        ("Chick-fil-A", "chickfila"),
    ],
)
def test_normalize_merchant(raw, expected):
    assert normalize_merchant(raw) == expected


def test_blank_input_yields_empty_key():
    """Blank or punctuation-only names are ungroupable"""
    assert normalize_merchant(None) == ""
    assert normalize_merchant("") == ""
    assert normalize_merchant("   ") == ""
    assert normalize_merchant("***") == ""


def test_variants_share_a_key():
    """Case and punctuation variants of one merchant group together"""
    assert normalize_merchant("SPOTIFY USA") == normalize_merchant("Spotify, USA")


def test_custom_token_limit():
    assert normalize_merchant("one two three four", max_tokens=2) == "one two"

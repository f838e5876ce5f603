"""
Unit tests for rating helpers.
"""

import pytest

from app.storerate.modules.ratings.service import average_rating, parse_rating, validate_rating_payload


class TestAverageRating:
    def test_empty_is_none(self):
        assert average_rating([]) is None

    def test_arithmetic_mean(self):
        assert average_rating([4, 5]) == pytest.approx(4.5)
        assert average_rating([1, 2, 4]) == pytest.approx(7 / 3)

    def test_accepts_generators(self):
        assert average_rating(v for v in (3, 3, 3)) == 3


class TestParseRating:
    @pytest.mark.parametrize("raw,expected", [(1, 1), (5, 5), ("3", 3), (" 4 ", 4)])
    def test_valid(self, raw, expected):
        assert parse_rating(raw) == expected

    @pytest.mark.parametrize("raw", [0, 6, 2.0, 3.5, "3.5", "x", None, True, False, [], "-1", "\u00b2", "\u0663", "9" * 5000])
    def test_invalid(self, raw):
        assert parse_rating(raw) is None


def test_validate_rating_payload():
    assert validate_rating_payload({"rating": 3}) == []
    assert validate_rating_payload({"rating": 3, "comment": "ok"}) == []
    assert validate_rating_payload({"rating": 9}) == ["Rating must be between 1 and 5"]
    assert validate_rating_payload({"rating": 3, "comment": 12}) == ["Comment must be text."]

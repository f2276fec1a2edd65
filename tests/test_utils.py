"""Helpers: legacy credential hash, email shape, tags."""
import pytest

from database.utils import is_valid_email, join_tags, legacy_hash, split_tags


@pytest.mark.parametrize("password, expected", [
    ("", "0"),
    ("abc", "96354"),
    # U+1F600 = paire D83D DE00, comme charCodeAt
    ("\U0001F600", str(0xD83D * 31 + 0xDE00)),
])
def test_legacy_hash_values(password, expected):
    assert legacy_hash(password) == expected


def test_legacy_hash_wraps_to_signed_32_bit():
    h = int(legacy_hash("a much longer password that overflows"))
    assert -2**31 <= h < 2**31


def test_email_and_tags():
    assert is_valid_email("a@x.com") and not is_valid_email("a@x")
    assert split_tags(" python, sql,, web ") == ["python", "sql", "web"]
    assert join_tags(["a ", "", " b"]) == "a,b"

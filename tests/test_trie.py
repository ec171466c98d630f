import pytest

from tunnelkit.trie import Trie

WORDS = ["12", "12345", "1234567", "2222", "1"]


@pytest.mark.parametrize(
    "text, expected",
    [
        ("1", "1"),
        ("123", "12"),
        ("1233", "12"),
        ("12345", "12345"),
        ("123456", "12345"),
        ("1234567", "1234567"),
        ("123456789", "1234567"),
        ("222", ""),
        ("2222", "2222"),
        ("22222", "2222"),
        ("122", "12"),
    ],
)
def test_match(text, expected):
    assert Trie(WORDS).match(text) == expected


def test_empty_trie_matches_nothing():
    assert Trie([]).match("anything") == ""


def test_empty_text_matches_nothing():
    assert Trie(WORDS).match("") == ""


def test_match_is_prefix_of_text():
    trie = Trie(["example", "exam", "ex"])
    for text in ["examples", "exa", "exam", "example.org", "x"]:
        result = trie.match(text)
        assert text.startswith(result)
        assert result in {"", "example", "exam", "ex"}
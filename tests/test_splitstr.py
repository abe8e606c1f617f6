import pytest

from wattmon.splitstr import split_fields


def test_documented_example():
    fields = split_fields("first element,  abc  , third element    ")
    assert fields == ["first element", "abc", "third element"]
    assert [len(f) for f in fields] == [13, 3, 13]


def test_end_character_limits_line():
    fields = split_fields("a, b\nc, d", ",", "\n")
    assert fields == ["a", "b"]


def test_missing_end_character_gives_no_fields():
    assert split_fields("a,b,c", ",", "\n") == []


def test_custom_separator():
    assert split_fields(" x ; y ;z", ";") == ["x", "y", "z"]


@pytest.mark.parametrize("line", ["a,b,c", "one", ",,", " p , q "])
def test_field_count_matches_separators(line):
    fields = split_fields(line)
    assert len(fields) == line.count(",") + 1
    assert all(f == f.strip(" ") for f in fields)


def test_empty_fields_preserved():
    assert split_fields("a,,b") == ["a", "", "b"]
from __future__ import annotations

from mobile_dev_core.common.mappings import CaseInsensitiveStringMap, filter_map, filter_set


def test_from_string_skips_lines_without_separator() -> None:
    m = CaseInsensitiveStringMap.from_string("Foo: bar\nBAZ=qux\nmalformed-line")
    assert len(m) == 2
    assert m.get("foo") == "bar"
    assert m.get("baz") == "qux"
    assert m.get("FOO") == "bar"


def test_first_separator_wins() -> None:
    m = CaseInsensitiveStringMap.from_string("Path: C:\\Users\\dev\\.android\nimage.sysdir.1=system-images/android-34/")
    assert m.get("path") == "C:\\Users\\dev\\.android"
    assert m.get("Image.SysDir.1") == "system-images/android-34/"


def test_set_has_delete_are_case_insensitive() -> None:
    m = CaseInsensitiveStringMap()
    m.set("Tag.Id", "google_apis")
    assert m.has("tag.id")
    assert "TAG.ID" in m
    assert m.delete("tag.ID") is True
    assert m.delete("tag.id") is False
    assert m.get("tag.id", "default") == "default"


def test_filter_helpers_return_new_collections() -> None:
    source = {"a": 1, "b": 2, "c": 3}
    odd = filter_map(source, lambda _k, v: v % 2 == 1)
    assert odd == {"a": 1, "c": 3}
    assert source == {"a": 1, "b": 2, "c": 3}

    values = {1, 2, 3, 4}
    assert filter_set(values, lambda v: v > 2) == {3, 4}
    assert values == {1, 2, 3, 4}


def test_filter_helpers_accept_none() -> None:
    assert filter_map(None, lambda _k, _v: True) == {}
    assert filter_set(None, lambda _v: True) == set()

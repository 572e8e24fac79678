from pathlib import Path

import pytest

from packt.utils import ordinal_name, safe_path, sanitize, slugify, strip_ordinal

TITLES = [
    'Intro: "What is <Python>?"',
    "  spaced\tout\n title  ",
    "a/b\\c|d*e",
    "ends with dots...",
    "???",
    "",
    "x" * 300,
    "Chapter 1 . . .",
]


@pytest.mark.parametrize("title", TITLES)
def test_sanitize_is_idempotent(title):
    once = sanitize(title)
    assert sanitize(once) == once


@pytest.mark.parametrize("title", TITLES)
def test_sanitize_output_is_path_safe(title):
    result = sanitize(title)
    assert result
    assert not any(char in result for char in '<>:"/\\|?*\n\t')
    assert len(result) <= 100
    assert result == result.strip()


def test_sanitize_examples():
    assert sanitize('Intro: "What is <Python>?"') == "Intro What is Python"
    assert sanitize("???") == "untitled"


def test_strip_ordinal():
    assert strip_ordinal("3. Intro") == "Intro"
    assert strip_ordinal("1.2 Setup") == "Setup"
    assert strip_ordinal("01 - Welcome") == "Welcome"
    assert strip_ordinal("3D Modeling") == "3D Modeling"
    assert strip_ordinal("42") == "42"


def test_ordinal_names_are_positional():
    names = [ordinal_name(position, title) for position, title in enumerate(["3. Intro", "1. Intro"], 1)]
    assert names == ["01 Intro", "02 Intro"]


def test_ordinals_are_unique_for_many_videos():
    names = [ordinal_name(position, "7. Same") for position in range(1, 13)]
    assert len(set(names)) == 12
    assert names[0] == "01 Same" and names[-1] == "12 Same"


def test_slugify():
    assert slugify("Café! Frío?") == "cafe-frio"
    assert slugify("12345") == "12345"


def test_safe_path_keeps_extension(tmp_path):
    long = tmp_path / ("a" * 300 + ".mp4")
    result = safe_path(long)
    assert result.suffix == ".mp4"
    assert len(str(result.resolve())) <= 240

    short = tmp_path / "ok.mp4"
    assert safe_path(short) == short
    assert isinstance(result, Path)

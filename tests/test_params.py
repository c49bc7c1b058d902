#!/usr/bin/env python3
"""Tests for lenient query parameter parsing."""
from heatscope.params import (
    HeatmapParams, MAX_AREA, MAX_CELLS, MAX_PIXELS,
    parse_flag, parse_int, parse_params, parse_selection
)


def test_defaults():
    assert parse_params({}) == HeatmapParams()


def test_parse_int_takes_leading_integer():
    assert parse_int("12") == 12
    assert parse_int(" 12px") == 12
    assert parse_int("-5") == -5
    assert parse_int("abc") is None
    assert parse_int("") is None
    assert parse_int(None) is None


def test_unparseable_numbers_keep_defaults():
    params = parse_params({"height": "tall", "nsamples": "30s", "base": "-7"})

    assert params.height == 300
    assert params.nsamples == 30
    assert params.base == -7


def test_sizes_are_bounded():
    params = parse_params({"width": "99999", "nbuckets": "0", "nsamples": "-3"})

    assert params.width == MAX_PIXELS
    assert params.nbuckets == 100
    assert params.nsamples == 60


def test_grid_and_image_sizes_are_bounded():
    """Huge requests shrink to a bounded grid and image."""
    params = parse_params({
        "nsamples": "999999", "nbuckets": "999999",
        "width": "999999", "height": "999999",
    })

    assert params.nsamples * params.nbuckets <= MAX_CELLS
    assert params.width * params.height <= MAX_AREA
    assert params.width == MAX_PIXELS
    assert params.nbuckets >= 1
    assert params.height >= 1


def test_nsamples_clamped_to_window():
    params = parse_params({"nsamples": "5000", "nbuckets": "10"}, max_samples=3600)

    assert params.nsamples == 3600
    assert params.nbuckets == 10
    assert parse_params({"nsamples": "30"}, max_samples=3600).nsamples == 30


def test_booleans():
    assert parse_params({"linear": "1"}).linear is True
    assert parse_params({"linear": "0"}).linear is False
    assert parse_params({"weighbyrange": "yes"}).weighbyrange is False
    assert parse_params({"weighbyrange": "2"}).weighbyrange is True


def test_defaults_from_configuration():
    defaults = HeatmapParams(min=5, max=50)

    assert parse_params({}, defaults).min == 5
    assert parse_params({"max": "80"}, defaults).max == 80
    # Defaults are not modified
    assert defaults.max == 50


def test_flags():
    assert parse_flag("1") is True
    assert parse_flag("yes") is True
    assert parse_flag("") is False
    assert parse_flag("0") is False
    assert parse_flag("False") is False
    assert parse_flag(None) is False


def test_selection():
    selection = parse_selection({"selected": "read,write,read", "isolate": "1"})

    assert selection.selected == ["read", "write", "read"]
    assert selection.isolate is True
    assert selection.exclude is False
    assert selection.vomit is False


def test_empty_selection():
    selection = parse_selection({"selected": "", "vomit": "true"})

    assert selection.selected == []
    assert selection.vomit is True

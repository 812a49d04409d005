import re

import pytest

from src.nova.core.slugs import SlugCollisionError, allocate_slug, slugify, time_suffix


def test_slugify():
    assert slugify("My Cool App!!") == "my-cool-app"
    assert slugify("  --Hello__World--  ") == "hello-world"
    assert slugify("!!!") == ""


def test_free_slug_is_used_as_is():
    assert allocate_slug("My Cool App!!", lambda s: False) == "my-cool-app"


def test_collision_gets_time_suffix():
    taken = {"my-cool-app"}
    slug = allocate_slug("My Cool App!!", taken.__contains__)
    assert re.fullmatch(r"my-cool-app-\d{6}", slug)


def test_suffix_is_last_six_millisecond_digits():
    clock = lambda: 1700000123.5  # noqa: E731
    assert time_suffix(clock) == "123500"
    assert allocate_slug("app", {"app"}.__contains__, now=clock) == "app-123500"


def test_short_clock_is_zero_padded():
    assert time_suffix(lambda: 1.5) == "001500"


def test_empty_candidate_gets_generated_name():
    assert allocate_slug("!!!", lambda s: False, now=lambda: 1.5) == "deployment-001500"


def test_second_collision_raises():
    with pytest.raises(SlugCollisionError) as exc:
        allocate_slug("app", lambda s: True, now=lambda: 1700000123.5)
    assert exc.value.slug == "app-123500"

import logging

import pytest

from flamewatch.errors import InvalidPattern
from flamewatch.logbuffer import LogBuffer, LogChannel


def filled(n, capacity=1000, visible=3):
    buffer = LogBuffer(capacity=capacity, visible_lines=visible)
    for i in range(n):
        buffer.push(f"line {i}")
    return buffer


def test_auto_scroll_shows_newest_lines():
    buffer = filled(5)

    assert buffer.auto_scroll
    assert buffer.scroll_offset == 0
    assert buffer.visible() == ["line 2", "line 3", "line 4"]


def test_push_while_scrolled_keeps_viewport():
    buffer = filled(5)
    buffer.scroll_up(1)
    before = buffer.visible()

    buffer.push("line 5")
    assert buffer.scroll_offset == 2
    assert buffer.visible() == before


def test_eviction_drops_oldest_line():
    buffer = filled(4, capacity=3)

    assert list(buffer.lines) == ["line 1", "line 2", "line 3"]


def test_eviction_keeps_scrolled_window_content():
    buffer = filled(10, capacity=10, visible=3)
    buffer.scroll_up(2)
    before = buffer.visible()
    assert before == ["line 5", "line 6", "line 7"]

    buffer.push("line 10")
    assert len(buffer) == 10
    assert buffer.lines[0] == "line 1"
    assert buffer.visible() == before


def test_eviction_at_top_clamps_offset():
    buffer = filled(5, capacity=5, visible=3)
    buffer.scroll_up(10)
    assert buffer.scroll_offset == 2

    buffer.push("line 5")
    assert buffer.scroll_offset == 2
    assert buffer.visible() == ["line 1", "line 2", "line 3"]


def test_scroll_is_clamped_and_reenables_auto_scroll():
    buffer = filled(10)
    buffer.scroll_up(100)
    assert buffer.scroll_offset == 7
    assert not buffer.auto_scroll

    buffer.scroll_down(3)
    assert buffer.scroll_offset == 4
    assert not buffer.auto_scroll

    buffer.scroll_down(100)
    assert buffer.scroll_offset == 0
    assert buffer.auto_scroll


def test_scroll_to_bottom():
    buffer = filled(10)
    buffer.scroll_up(4)

    buffer.scroll_to_bottom()
    assert buffer.scroll_offset == 0
    assert buffer.auto_scroll


def test_search_selects_latest_then_navigates():
    buffer = LogBuffer()
    for line in ["x", "y match", "z", "w match"]:
        buffer.push(line)

    assert buffer.search("match") == 3
    assert buffer.prev_match() == 1
    assert buffer.next_match() == 3


def test_match_navigation_does_not_wrap():
    buffer = LogBuffer()
    for line in ["a hit", "b", "c hit"]:
        buffer.push(line)
    buffer.search("hit")

    assert buffer.next_match() == 2
    assert buffer.prev_match() == 0
    assert buffer.prev_match() == 0
    assert buffer.current_match == 0


def test_search_without_match():
    buffer = filled(3)

    assert buffer.search("nothing") is None
    assert buffer.next_match() is None
    assert buffer.prev_match() is None


def test_invalid_search_keeps_previous_pattern():
    buffer = filled(5)
    buffer.search("line 1")

    with pytest.raises(InvalidPattern):
        buffer.search("(")
    assert buffer.search_text == "line 1"
    assert buffer.current_match == 1


def test_clear_search():
    buffer = filled(5)
    buffer.search("line")
    buffer.clear_search()

    assert buffer.search_pattern is None
    assert buffer.current_match is None
    assert buffer.next_match() is None


def test_search_centers_match_outside_viewport():
    buffer = filled(20, visible=5)
    buffer.search("line 3$")

    assert buffer.current_match == 3
    # line 3 sits in the middle of the five visible rows
    assert buffer.visible() == ["line 1", "line 2", "line 3", "line 4", "line 5"]
    assert not buffer.auto_scroll


def test_center_on_visible_line_is_noop():
    buffer = filled(20, visible=5)
    buffer.scroll_up(3)

    buffer.center_on(14)
    assert buffer.scroll_offset == 3


def test_center_on_near_bottom_reenables_auto_scroll():
    buffer = filled(20, visible=5)
    buffer.scroll_up(10)

    buffer.center_on(19)
    assert buffer.scroll_offset == 0
    assert buffer.auto_scroll


def test_center_on_near_top_is_clamped():
    buffer = filled(20, visible=5)

    buffer.center_on(0)
    assert buffer.scroll_offset == 15
    assert buffer.visible_window() == (0, 5)


def test_current_match_follows_eviction():
    buffer = filled(5, capacity=5)
    buffer.search("line 1$")
    assert buffer.current_match == 1

    buffer.push("line 5")
    assert buffer.current_match == 0
    buffer.push("line 6")
    assert buffer.current_match is None


def test_shrinking_capacity_evicts():
    buffer = filled(10)

    buffer.set_capacity(4)
    assert list(buffer.lines) == ["line 6", "line 7", "line 8", "line 9"]


def test_invalid_capacity():
    with pytest.raises(ValueError):
        LogBuffer(capacity=0)


def test_log_channel_drains_records_into_buffer():
    channel = LogChannel()
    channel.setFormatter(logging.Formatter("%(levelname)s %(message)s"))
    log = logging.getLogger("flamewatch.tests.channel")
    log.addHandler(channel)
    log.setLevel(logging.INFO)
    log.propagate = False
    try:
        log.info("first")
        log.warning("two\nlines")
        buffer = LogBuffer()

        assert channel.drain_into(buffer) == 3
        assert list(buffer.lines) == ["INFO first", "WARNING two", "lines"]
        assert channel.drain_into(buffer) == 0
    finally:
        log.removeHandler(channel)

"""Tests for searchdivert.hooks -- filter and action dispatch."""

from __future__ import annotations

from searchdivert.hooks import Hooks


class TestFilters:
    def test_no_filters_returns_value(self) -> None:
        assert Hooks().apply_filters("x", 5) == 5

    def test_chained_in_priority_order(self) -> None:
        hooks = Hooks()
        hooks.add_filter("x", lambda v: v + "b", priority=20)
        hooks.add_filter("x", lambda v: v + "a", priority=5)
        hooks.add_filter("x", lambda v: v + "c", priority=20)
        assert hooks.apply_filters("x", "") == "abc"

    def test_extra_arguments(self) -> None:
        hooks = Hooks()
        hooks.add_filter("x", lambda v, query: query["n"])
        assert hooks.apply_filters("x", 0, {"n": 3}) == 3

    def test_remove(self) -> None:
        hooks = Hooks()

        def double(v: int) -> int:
            return v * 2

        hooks.add_filter("x", double)
        assert hooks.remove_filter("x", double) is True
        assert hooks.remove_filter("x", double) is False
        assert hooks.apply_filters("x", 2) == 2
        assert hooks.has("x") is False


class TestActions:
    def test_listeners_called_with_arguments(self) -> None:
        hooks = Hooks()
        seen: list[tuple] = []
        hooks.add_action("done", lambda *args: seen.append(args))
        hooks.do_action("done", 1, 2)
        assert seen == [(1, 2)]

    def test_remove_action(self) -> None:
        hooks = Hooks()
        seen: list[int] = []
        listener = seen.append
        hooks.add_action("done", listener)
        assert hooks.has("done") is True
        hooks.remove_action("done", listener)
        hooks.do_action("done", 1)
        assert seen == []

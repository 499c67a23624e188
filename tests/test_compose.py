"""Tests for derived states: map, reduce, filter, from_, builder."""

from types import SimpleNamespace

import pytest

from stately import (
    InvalidSourceError,
    StateFamily,
    StateList,
    builder,
    from_,
    state,
    validate_states,
)


class TestMap:
    def test_map_function(self):
        count = state(3)
        doubled = count.map(lambda n: n * 2)
        assert doubled.get() == 6
        count.set(5)
        assert doubled.get() == 10

    def test_map_key_and_attribute(self):
        user = state({"name": "Ada", "role": SimpleNamespace(title="admin")})
        assert user.map("name").get() == "Ada"
        role = user.map("role").map("title")
        assert role.get() == "admin"

    def test_map_propagates_none(self):
        user = state(None)
        assert user.map("name").map("first").get() is None

    def test_map_missing_attribute_is_none(self):
        assert state(SimpleNamespace()).map("nope").get() is None


class TestReduce:
    def test_accumulates_on_next(self):
        amount = state(1)
        total = amount.reduce(lambda acc, value: acc + value, 0)
        assert total.get() == 0
        total.next()
        total.next()
        assert total.get() == 2
        amount.set(10)
        total.next()
        assert total.get() == 12

    def test_extra_args_reach_reducer(self):
        source = state("x")
        log = source.reduce(lambda acc, value, suffix: acc + [value + suffix], [])
        log.next("!")
        log.next("?")
        assert log.get() == ["x!", "x?"]

    def test_reset_restarts_from_seed(self):
        source = state(2)
        product = source.reduce(lambda acc, value: acc * value, 1)
        product.next()
        product.next()
        assert product.get() == 4
        product.reset()
        assert product.get() == 1


class TestFilter:
    def test_keeps_last_accepted(self):
        number = state(1)
        evens = number.filter(lambda n: n % 2 == 0, default=0)
        assert evens.get() == 0
        number.set(2)
        assert evens.get() == 2
        number.set(3)
        assert evens.get() == 2
        number.set(4)
        assert evens.get() == 4


class TestFrom:
    def test_from_list(self):
        a, b = state(1), state(2)
        both = from_([a, b])
        assert both.get() == [1, 2]
        a.set(10)
        assert both.get() == [10, 2]

    def test_from_list_is_array_compared(self):
        a = state(1)
        both = from_([a])
        log = []
        both.subscribe(lambda: log.append(1))
        assert both.set([1]) is False
        assert log == []

    def test_from_mapping(self):
        first, last = state("Ada"), state("Lovelace")
        name = from_({"first": first, "last": last})
        assert name.get() == {"first": "Ada", "last": "Lovelace"}
        last.set("Byron")
        assert name.get() == {"first": "Ada", "last": "Byron"}

    def test_from_mapping_with_selector(self):
        first, last = state("Ada"), state("Lovelace")
        full = from_({"first": first, "last": last}, lambda first, last: f"{first} {last}")
        assert full.get() == "Ada Lovelace"

    def test_from_list_with_selector(self):
        a, b = state(2), state(3)
        product = from_([a, b], lambda x, y: x * y)
        assert product.get() == 6
        b.set(4)
        assert product.get() == 8

    def test_from_single_state(self):
        a = state(5)
        assert from_(a).get() == 5
        assert from_(a, lambda v: v + 1).get() == 6

    def test_from_accepts_nodes(self):
        s = state(lambda key: key.upper())
        assert from_([s.family("a"), s.family("b")]).get() == ["A", "B"]

    def test_invalid_list(self):
        with pytest.raises(InvalidSourceError, match="Invalid input state"):
            from_([state(1), 2])

    def test_invalid_mapping(self):
        with pytest.raises(InvalidSourceError, match="'b'"):
            from_({"a": state(1), "b": "nope"})

    def test_invalid_with_selector(self):
        with pytest.raises(InvalidSourceError):
            from_(42, lambda v: v)


class TestValidateStates:
    def test_single(self):
        s = state(1)
        assert validate_states(s) == StateList(True, False, [s.family()])

    def test_list(self):
        a, b = state(1), state(2)
        result = validate_states([a, b.family()])
        assert result.valid and result.multiple
        assert result.states == [a.family(), b.family()]

    def test_list_with_invalid_member(self):
        result = validate_states([state(1), "x"])
        assert not result.valid
        assert result.multiple

    def test_neither(self):
        assert validate_states(42) == StateList(False, False, [])


class TestBuilder:
    def test_builder_presets_options(self):
        doubled = builder(map=lambda v: v * 2)
        s = doubled(4)
        assert isinstance(s, StateFamily)
        assert s.get() == 8

    def test_call_options_override(self):
        doubled = builder(map=lambda v: v * 2)
        assert doubled(4, map=lambda v: v + 1).get() == 5

    def test_nested_builder_merges(self):
        base = state.builder(default="idle")
        objects = base.builder(type="object")
        s = objects(lambda: (lambda: {"a": 1}))
        assert s.get() == "idle"
        s.next()
        assert s.next() is True
        assert s.get() == {"a": 1}

    def test_builder_from(self):
        shouting = builder(map=str.upper)
        a, b = state("a"), state("b")
        joined = shouting.from_([a, b], lambda x, y: x + y)
        assert joined.get() == "AB"

    def test_builder_rejects_unknown_option(self):
        with pytest.raises(TypeError):
            builder(colour="red")

import warnings

import numpy as np
import pytest

from environment import TYPE_NATIVE, TYPE_NUM, Value
from errors import (
    LambExtensionError,
    LambRuntimeError,
    NativeArityError,
    NativeError,
    NativeTypeError,
    UnknownNativeProcedureError,
)
from natives import NativeProcedureSpec, NativeTable


def num(x):
    return Value(TYPE_NUM, float(x))


def test_multiply_two_numbers():
    table = NativeTable()
    result = table.invoke("*", [num(3), num(2)])
    assert result.type == TYPE_NUM
    assert result.value == 6


def test_default_table_contains_only_multiply():
    assert NativeTable().names() == ["*"]


@pytest.mark.parametrize("count", [0, 1, 3])
def test_multiply_arity_is_fixed_at_two(count):
    table = NativeTable()
    with pytest.raises(NativeArityError) as info:
        table.invoke("*", [num(1)] * count)
    assert info.value.rewrite_rule == "*"
    assert isinstance(info.value, NativeError)
    assert isinstance(info.value, LambRuntimeError)


def test_multiply_rejects_non_numbers():
    table = NativeTable()
    with pytest.raises(NativeTypeError):
        table.invoke("*", [num(1), Value(TYPE_NATIVE, "*")])


def test_unknown_native():
    with pytest.raises(UnknownNativeProcedureError) as info:
        NativeTable().invoke("sqrt", [num(4)])
    assert info.value.name == "sqrt"


def test_extension_operators_cannot_override():
    table = NativeTable()
    clash = NativeProcedureSpec(name="*", min_args=2, max_args=2, impl=lambda args, loc: args[0], origin="clash")
    with pytest.raises(LambExtensionError) as info:
        table.register_extension_operator(clash)
    assert "clash" in str(info.value)
    assert "core" in str(info.value)


def test_extension_operator_bounds_are_enforced():
    table = NativeTable()
    table.register_extension_operator(
        NativeProcedureSpec(name="first", min_args=1, max_args=None, impl=lambda args, loc: args[0], origin="lists")
    )
    assert "first" in table
    assert table.invoke("first", [num(4), num(5), num(6)]).value == 4
    with pytest.raises(NativeArityError):
        table.invoke("first", [])


def test_multiply_follows_ieee_without_warnings():
    table = NativeTable()
    with warnings.catch_warnings():
        warnings.simplefilter("error")
        assert table.invoke("*", [num(1e308), num(10)]).value == np.inf
        assert np.isnan(table.invoke("*", [num(np.inf), num(0)]).value)
        assert table.invoke("*", [num(1e-320), num(1e-10)]).value == 0.0

"""Lamb extension: arithmetic and comparison natives.

Comparisons return the numbers 1 and 0; Lamb has no boolean type, and ``if``
treats 0 as false.
"""

from __future__ import annotations

from typing import Any, Callable, List

import numpy as np

from environment import TYPE_NUM, Value
from errors import NativeError
from extensions import ExtensionAPI
from natives import expect_number

LAMB_EXTENSION_NAME = "arith"
LAMB_EXTENSION_API_VERSION = 1


def _binary(rule: str, op: Callable[[np.float64, np.float64], Any]):
    def impl(args: List[Value], location: Any) -> Value:
        a = expect_number(args[0], rule, location)
        b = expect_number(args[1], rule, location)
        return Value(TYPE_NUM, np.float64(op(a, b)))

    return impl


def _divide(args: List[Value], location: Any) -> Value:
    a = expect_number(args[0], "/", location)
    b = expect_number(args[1], "/", location)
    if b == 0.0:
        raise NativeError("Division by zero", location=location, rewrite_rule="/")
    return Value(TYPE_NUM, np.divide(a, b))


def lamb_register(ext: ExtensionAPI) -> None:
    ext.register_operator("+", 2, 2, _binary("+", np.add), doc="(+ a b) -> sum")
    ext.register_operator("-", 2, 2, _binary("-", np.subtract), doc="(- a b) -> difference")
    ext.register_operator("/", 2, 2, _divide, doc="(/ a b) -> quotient")
    ext.register_operator("<", 2, 2, _binary("<", np.less), doc="(< a b) -> 1 or 0")
    ext.register_operator("<=", 2, 2, _binary("<=", np.less_equal), doc="(<= a b) -> 1 or 0")
    ext.register_operator(">", 2, 2, _binary(">", np.greater), doc="(> a b) -> 1 or 0")
    ext.register_operator(">=", 2, 2, _binary(">=", np.greater_equal), doc="(>= a b) -> 1 or 0")
    ext.register_operator("=", 2, 2, _binary("=", np.equal), doc="(= a b) -> 1 or 0")

    ext.register_constant("e", np.e)

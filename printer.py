# Printer for Lamb values and syntax trees.

from __future__ import annotations
from typing import Optional

import numpy as np

from environment import TYPE_NATIVE, TYPE_NUM, TYPE_PROC, Value
from parser import Body, Leaf, Node, Number


def format_number(number: float) -> str:
    x = np.float64(number)
    if np.isfinite(x) and x != 0.0 and not (1e-6 <= abs(x) < 1e16):
        return np.format_float_scientific(x, trim="-")
    return np.format_float_positional(x, trim="-")


def format_value(value: Optional[Value]) -> str:
    if value is None:
        return ""
    if value.type == TYPE_NUM:
        return format_number(value.value)
    if value.type == TYPE_NATIVE:
        return f"<native {value.value}>"
    if value.type == TYPE_PROC:
        return "<procedure (" + " ".join(value.value.params) + ")>"
    return str(value.value)


def format_node(node: Node) -> str:
    if isinstance(node, Leaf):
        if isinstance(node.atom, Number):
            return format_number(node.atom.value)
        return node.atom.name
    if isinstance(node, Body):
        return "(" + " ".join(format_node(item) for item in node.items) + ")"
    return str(node)

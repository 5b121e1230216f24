from __future__ import annotations
from dataclasses import dataclass
from typing import Callable, Dict, List, Optional

import numpy as np

from environment import TYPE_NUM, Value
from errors import LambExtensionError, NativeArityError, NativeTypeError, UnknownNativeProcedureError
from parser import SourceLocation


NativeImpl = Callable[[List[Value], Optional[SourceLocation]], Value]


@dataclass
class NativeProcedureSpec:
    name: str
    min_args: int
    max_args: Optional[int]
    impl: NativeImpl
    doc: str = ""
    origin: str = "core"

    def validate(self, supplied: int, location: Optional[SourceLocation] = None) -> None:
        if self.min_args == self.max_args and supplied != self.min_args:
            raise NativeArityError(
                f"{self.name} expects exactly {self.min_args} arguments but received {supplied}",
                location=location,
                rewrite_rule=self.name,
            )
        if supplied < self.min_args:
            raise NativeArityError(f"{self.name} expects at least {self.min_args} arguments", location=location, rewrite_rule=self.name)
        if self.max_args is not None and supplied > self.max_args:
            raise NativeArityError(f"{self.name} expects at most {self.max_args} arguments", location=location, rewrite_rule=self.name)


def expect_number(value: Value, rule: str, location: Optional[SourceLocation]) -> np.float64:
    if value.type != TYPE_NUM:
        raise NativeTypeError(f"{rule} expects number arguments but got {value.type}", location=location, rewrite_rule=rule)
    return np.float64(value.value)


class NativeTable:
    def __init__(self) -> None:
        self.table: Dict[str, NativeProcedureSpec] = {}
        self._register("*", 2, 2, self._mul, doc="(* a b) -> product of two numbers")

    def _register(self, name: str, min_args: int, max_args: Optional[int], impl: NativeImpl, *, doc: str = "") -> None:
        self.table[name] = NativeProcedureSpec(name=name, min_args=min_args, max_args=max_args, impl=impl, doc=doc)

    def register_extension_operator(self, spec: NativeProcedureSpec) -> None:
        existing = self.table.get(spec.name)
        if existing is not None:
            raise LambExtensionError(
                f"Extension '{spec.origin}' cannot override native procedure '{spec.name}' from {existing.origin}"
            )
        self.table[spec.name] = spec

    def invoke(self, name: str, args: List[Value], location: Optional[SourceLocation] = None) -> Value:
        native = self.table.get(name)
        if native is None:
            raise UnknownNativeProcedureError(name, location=location)
        native.validate(len(args), location)
        # Overflow to inf and invalid results (nan) are ordinary float64 values.
        with np.errstate(over="ignore", under="ignore", invalid="ignore", divide="ignore"):
            return native.impl(args, location)

    def names(self) -> List[str]:
        return list(self.table.keys())

    def __contains__(self, name: object) -> bool:
        return name in self.table

    def _mul(self, args: List[Value], location: Optional[SourceLocation]) -> Value:
        a = expect_number(args[0], "*", location)
        b = expect_number(args[1], "*", location)
        return Value(TYPE_NUM, np.multiply(a, b))

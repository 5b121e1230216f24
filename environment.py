"""Scope store and runtime values.

Scopes live in an arena owned by :class:`ScopeStore` and refer to their
parent by :class:`ScopeId` rather than by object reference, so a closure can
keep its defining scope alive after the call that created it has returned.
"""

from __future__ import annotations
from dataclasses import dataclass, field
from typing import Any, Dict, Iterator, Optional, Tuple

from errors import InvalidScopeIdError
from parser import Node


TYPE_NUM = "NUM"
TYPE_NATIVE = "NATIVE"
TYPE_PROC = "PROC"


@dataclass(frozen=True)
class ScopeId:
    index: int

    def __str__(self) -> str:
        return f"scope#{self.index}"


@dataclass
class Value:
    type: str
    value: Any


@dataclass(frozen=True)
class Procedure:
    params: Tuple[str, ...]
    body: Node
    captured: ScopeId


@dataclass
class Scope:
    scope_id: ScopeId
    parent: Optional[ScopeId] = None
    variables: Dict[str, Value] = field(default_factory=dict)

    def get(self, name: str) -> Optional[Value]:
        return self.variables.get(name)

    def set(self, name: str, value: Value) -> None:
        self.variables[name] = value

    def has(self, name: str) -> bool:
        return name in self.variables

    def snapshot(self) -> Dict[str, str]:
        def _render(val: Value) -> str:
            if val.type == TYPE_PROC:
                rendered = "(" + " ".join(val.value.params) + ")"
            else:
                rendered = str(val.value)
            if len(rendered) > 80:
                rendered = rendered[:77] + "..."
            return f"{val.type}:{rendered}"

        return {k: _render(v) for k, v in self.variables.items()}


class ScopeStore:
    def __init__(self) -> None:
        self._scopes: Dict[int, Scope] = {}
        self._counter = 0

    def create_scope(self, parent: Optional[ScopeId] = None) -> ScopeId:
        if parent is not None:
            self.resolve_scope(parent)
        scope_id = ScopeId(self._counter)
        self._counter += 1
        self._scopes[scope_id.index] = Scope(scope_id=scope_id, parent=parent)
        return scope_id

    def resolve_scope(self, scope_id: ScopeId) -> Scope:
        try:
            return self._scopes[scope_id.index]
        except KeyError:
            raise InvalidScopeIdError(scope_id)

    def parent(self, scope_id: ScopeId) -> Optional[ScopeId]:
        return self.resolve_scope(scope_id).parent

    def lookup_owner(self, scope_id: ScopeId, name: str) -> Optional[ScopeId]:
        for current in self.ancestors(scope_id):
            if self._scopes[current.index].has(name):
                return current
        return None

    def get(self, scope_id: ScopeId, name: str) -> Optional[Value]:
        return self.resolve_scope(scope_id).get(name)

    def set(self, scope_id: ScopeId, name: str, value: Value) -> None:
        self.resolve_scope(scope_id).set(name, value)

    def ancestors(self, scope_id: ScopeId) -> Iterator[ScopeId]:
        current: Optional[ScopeId] = scope_id
        while current is not None:
            yield current
            current = self.resolve_scope(current).parent

    def __contains__(self, scope_id: object) -> bool:
        return isinstance(scope_id, ScopeId) and scope_id.index in self._scopes

    def __len__(self) -> int:
        return len(self._scopes)

from __future__ import annotations
import json
import os
from dataclasses import dataclass
from typing import Any, Dict, List, Optional

import numpy as np

from environment import TYPE_NATIVE, TYPE_NUM, TYPE_PROC, Procedure, ScopeId, ScopeStore, Value
from errors import (
    LambExtensionError,
    LambRuntimeError,
    MalformedSpecialFormError,
    NoValueError,
    NotCallableError,
    UnboundSymbolError,
)
from extensions import HookRegistry, RuntimeServices, StepContext
from natives import NativeTable
from parser import Body, Leaf, Node, Number, SourceLocation, Symbol, parse
from printer import format_node, format_value


ROOT_CONSTANTS: Dict[str, float] = {
    "pi": np.pi,
}


@dataclass
class Frame:
    name: str
    scope_id: ScopeId
    frame_id: str
    call_location: Optional[SourceLocation]


@dataclass
class StateEntry:
    step_index: int
    state_id: str
    frame_id: Optional[str]
    source_location: Optional[SourceLocation]
    statement: Optional[str]
    env_snapshot: Optional[Dict[str, str]]
    rewrite_record: Optional[Dict[str, Any]]


class StateLogger:
    """Append-only log of evaluation steps; the seed entry is step 0."""

    def __init__(self) -> None:
        self.entries: List[StateEntry] = []
        self._latest_by_frame: Dict[str, StateEntry] = {}

    def record(
        self,
        rule: str,
        *,
        frame: Optional[Frame],
        location: Optional[SourceLocation],
        extra: Optional[Dict[str, Any]] = None,
        env_snapshot: Optional[Dict[str, str]] = None,
    ) -> StateEntry:
        previous = self.latest()
        step_index = len(self.entries)
        rewrite_record: Dict[str, Any] = dict(extra or {})
        rewrite_record.update(rule=rule, from_state_id=previous.state_id if previous else None)
        entry = StateEntry(
            step_index=step_index,
            state_id=f"s_{step_index:06d}",
            frame_id=frame.frame_id if frame else None,
            source_location=location,
            statement=location.statement if location else None,
            env_snapshot=env_snapshot,
            rewrite_record=rewrite_record,
        )
        self.entries.append(entry)
        if frame is not None:
            self._latest_by_frame[frame.frame_id] = entry
        return entry

    def latest(self) -> Optional[StateEntry]:
        return self.entries[-1] if self.entries else None

    def last_entry_for_frame(self, frame_id: str) -> Optional[StateEntry]:
        return self._latest_by_frame.get(frame_id)


class Interpreter:
    def __init__(
        self,
        *,
        source: str = "",
        filename: str = "<string>",
        verbose: bool = False,
        services: Optional[RuntimeServices] = None,
        natives: Optional[NativeTable] = None,
    ) -> None:
        self.source = source
        self.filename = filename if filename.startswith("<") else os.path.abspath(filename)
        self.verbose = verbose
        self.services = services or RuntimeServices()
        self.hook_registry: HookRegistry = self.services.hook_registry
        self.natives = natives or NativeTable()

        # Extension operators join the native table but cannot override
        # existing names.
        for operator in self.services.operators:
            self.natives.register_extension_operator(operator)

        self.store = ScopeStore()
        self.root_scope = self._create_root_scope()
        self.logger = StateLogger()
        self.logger.record("SEED", frame=None, location=None)
        self.frame_counter = 0
        self.top_frame = self._new_frame("<top-level>", self.root_scope, None)
        self.call_stack: List[Frame] = [self.top_frame]

    def _create_root_scope(self) -> ScopeId:
        root = self.store.create_scope(None)
        for name in self.natives.names():
            self.store.set(root, name, Value(TYPE_NATIVE, name))
        for name, number in ROOT_CONSTANTS.items():
            self.store.set(root, name, Value(TYPE_NUM, np.float64(number)))
        for name, number in self.services.constants.items():
            if self.store.get(root, name) is not None:
                raise LambExtensionError(f"Constant '{name}' conflicts with an existing root binding")
            self.store.set(root, name, Value(TYPE_NUM, np.float64(number)))
        return root

    def parse(self) -> List[Node]:
        return parse(self.source, self.filename)

    def run(self) -> List[Optional[Value]]:
        forms = self.parse()
        self._emit_event("program_start", self, forms)
        results = [self.eval_form(form) for form in forms]
        self._emit_event("program_end", self, results)
        return results

    def eval_form(self, form: Node) -> Optional[Value]:
        """Evaluate one top-level form against the root scope.

        Returns None for forms that produce no value (``define``). On failure
        the call stack is left as it was so a TracebackFormatter can render
        it; the next call to eval_form starts from the top-level frame again.
        """
        self.call_stack = [self.top_frame]
        try:
            self._emit_event("before_form", self, form)
            self._log_step(rule="FORM", location=form.location, extra={"form": format_node(form)})
            result = self.evaluate(form, self.root_scope)
        except LambRuntimeError as error:
            latest = self.logger.latest()
            if error.step_index is None and latest is not None:
                error.step_index = latest.step_index
            self._emit_event("on_error", self, error)
            raise
        except Exception as exc:
            # Convert Python-level failures (e.g. RecursionError from deep
            # user recursion) so drivers can format them as Lamb tracebacks.
            latest = self.logger.latest()
            loc = latest.source_location if latest else None
            wrapped = LambRuntimeError(f"Internal interpreter error: {exc}", location=loc, rewrite_rule="internal")
            if latest is not None:
                wrapped.step_index = latest.step_index
            self._emit_event("on_error", self, wrapped)
            raise wrapped from exc
        self._emit_event("after_form", self, form, result)
        return result

    def evaluate(self, node: Node, scope_id: ScopeId) -> Optional[Value]:
        if isinstance(node, Leaf):
            atom = node.atom
            if isinstance(atom, Number):
                return Value(TYPE_NUM, atom.value)
            return self._resolve_symbol(atom.name, scope_id, node.location)
        if not isinstance(node, Body):
            raise LambRuntimeError("Unsupported syntax node", location=node.location)
        if not node.items:
            raise LambRuntimeError("Cannot evaluate an empty form", location=node.location, rewrite_rule="APPLY")

        head = node.items[0]
        if isinstance(head, Leaf) and isinstance(head.atom, Symbol):
            keyword = head.atom.name
            if keyword == "define":
                return self._eval_define(node, scope_id)
            if keyword == "lambda":
                return self._eval_lambda(node, scope_id)
            if keyword == "if":
                return self._eval_if(node, scope_id)
        return self._apply(node, scope_id)

    def _resolve_symbol(self, name: str, scope_id: ScopeId, location: Optional[SourceLocation]) -> Value:
        owner = self.store.lookup_owner(scope_id, name)
        if owner is None:
            raise UnboundSymbolError(name, location=location)
        value = self.store.get(owner, name)
        assert value is not None
        return value

    def _expect_value(self, result: Optional[Value], rule: str, location: Optional[SourceLocation]) -> Value:
        if result is None:
            raise NoValueError("Form produces no value where one is required", location=location, rewrite_rule=rule)
        return result

    def _eval_define(self, node: Body, scope_id: ScopeId) -> None:
        items = node.items
        if len(items) != 3:
            raise MalformedSpecialFormError(
                "define",
                f"define expects a name and an expression but got {len(items) - 1} arguments",
                location=node.location,
            )
        target = items[1]
        if not (isinstance(target, Leaf) and isinstance(target.atom, Symbol)):
            raise MalformedSpecialFormError("define", "define expects a symbol as its name", location=target.location)
        name = target.atom.name
        self._log_step(rule="define", location=node.location, extra={"name": name})
        # Bind only after the expression evaluates successfully.
        value = self._expect_value(self.evaluate(items[2], scope_id), "define", items[2].location)
        self.store.set(scope_id, name, value)
        return None

    def _eval_lambda(self, node: Body, scope_id: ScopeId) -> Value:
        items = node.items
        if len(items) != 3:
            raise MalformedSpecialFormError(
                "lambda",
                f"lambda expects a parameter list and a body but got {len(items) - 1} arguments",
                location=node.location,
            )
        params_node = items[1]
        if not isinstance(params_node, Body):
            raise MalformedSpecialFormError("lambda", "lambda parameters must be a list", location=params_node.location)
        params: List[str] = []
        for param in params_node.items:
            if not (isinstance(param, Leaf) and isinstance(param.atom, Symbol)):
                raise MalformedSpecialFormError("lambda", "lambda parameters must be symbols", location=param.location)
            params.append(param.atom.name)
        self._log_step(rule="lambda", location=node.location, extra={"params": params, "captured": str(scope_id)})
        return Value(TYPE_PROC, Procedure(params=tuple(params), body=items[2], captured=scope_id))

    def _eval_if(self, node: Body, scope_id: ScopeId) -> Optional[Value]:
        items = node.items
        if len(items) != 4:
            raise MalformedSpecialFormError(
                "if",
                f"if expects a test, a consequent and an alternative but got {len(items) - 1} arguments",
                location=node.location,
            )
        test = self._expect_value(self.evaluate(items[1], scope_id), "if", items[1].location)
        self._log_step(rule="if", location=node.location, extra={"test": format_value(test)})
        branch = items[2] if self._truthy(test) else items[3]
        return self.evaluate(branch, scope_id)

    def _truthy(self, value: Value) -> bool:
        if value.type == TYPE_NUM:
            return bool(value.value != 0.0)
        return True

    def _apply(self, node: Body, scope_id: ScopeId) -> Optional[Value]:
        head = node.items[0]
        operator = self._expect_value(self.evaluate(head, scope_id), "APPLY", head.location)
        args: List[Value] = []
        for arg in node.items[1:]:
            args.append(self._expect_value(self.evaluate(arg, scope_id), "APPLY", arg.location))

        if operator.type == TYPE_NATIVE:
            return self._call_native(operator.value, args, node.location)
        if operator.type == TYPE_PROC:
            name = head.atom.name if isinstance(head, Leaf) and isinstance(head.atom, Symbol) else "<lambda>"
            return self._call_procedure(name, operator.value, args, node.location)
        raise NotCallableError(operator, location=node.location)

    def _call_native(self, name: str, args: List[Value], location: Optional[SourceLocation]) -> Value:
        rendered_args = [format_value(arg) for arg in args]
        self._emit_event("before_call", self, name, args, location)
        try:
            result = self.natives.invoke(name, args, location)
        except LambRuntimeError:
            self._log_step(rule=name, location=location, extra={"args": rendered_args, "status": "error"})
            raise
        self._emit_event("after_call", self, name, result, location)
        self._log_step(rule=name, location=location, extra={"args": rendered_args, "result": format_value(result)})
        return result

    def _call_procedure(
        self,
        name: str,
        procedure: Procedure,
        args: List[Value],
        call_location: Optional[SourceLocation],
    ) -> Optional[Value]:
        # The call scope hangs off the captured scope, not the caller's.
        call_scope = self.store.create_scope(procedure.captured)
        # zip() stops at the shorter sequence: extra arguments are dropped and
        # missing ones leave their parameter unbound.
        for param, arg in zip(procedure.params, args):
            self.store.set(call_scope, param, arg)

        frame = self._new_frame(name, call_scope, call_location)
        self.call_stack.append(frame)
        self._emit_event("before_call", self, name, args, call_location)
        self._log_step(
            rule="APPLY",
            location=call_location,
            extra={"procedure": name, "args": [format_value(arg) for arg in args], "scope": str(call_scope)},
        )
        result = self.evaluate(procedure.body, call_scope)
        self.call_stack.pop()
        self._emit_event("after_call", self, name, result, call_location)
        return result

    def _new_frame(self, name: str, scope_id: ScopeId, call_location: Optional[SourceLocation]) -> Frame:
        frame_id = f"f_{self.frame_counter:04d}"
        self.frame_counter += 1
        return Frame(name=name, scope_id=scope_id, frame_id=frame_id, call_location=call_location)

    def _emit_event(self, event: str, *args: Any) -> None:
        try:
            self.hook_registry.emit(event, *args)
        except (LambRuntimeError, RecursionError):
            raise
        except Exception as exc:
            latest = self.logger.latest()
            loc = latest.source_location if latest else None
            raise LambRuntimeError(
                f"Extension hook '{event}' failed: {exc}",
                location=loc,
                rewrite_rule="EXT",
            )

    def _log_step(
        self,
        *,
        rule: str,
        location: Optional[SourceLocation],
        extra: Optional[Dict[str, Any]] = None,
    ) -> None:
        frame = self.call_stack[-1] if self.call_stack else None
        env_snapshot = self.store.resolve_scope(frame.scope_id).snapshot() if (self.verbose and frame) else None
        entry = self.logger.record(rule, frame=frame, location=location, extra=extra, env_snapshot=env_snapshot)

        # Run extension step rules (every N steps) after recording.
        try:
            self.hook_registry.after_step(
                self,
                StepContext(step_index=entry.step_index, rule=rule, location=location, extra=extra),
            )
        except (LambRuntimeError, RecursionError):
            raise
        except Exception as exc:
            raise LambRuntimeError(
                f"Extension step rule failed: {exc}",
                location=location,
                rewrite_rule="EXT",
            )


@dataclass
class TracebackFrame:
    name: str
    location: Optional[SourceLocation]
    statement: Optional[str]
    state_entry: Optional[StateEntry]


class TracebackFormatter:
    def __init__(self, interpreter: Interpreter) -> None:
        self.interpreter = interpreter

    def build_frames(self) -> List[TracebackFrame]:
        frames: List[TracebackFrame] = []
        for frame in self.interpreter.call_stack:
            entry = self.interpreter.logger.last_entry_for_frame(frame.frame_id)
            location = entry.source_location if entry else frame.call_location
            frames.append(
                TracebackFrame(
                    name=frame.name,
                    location=location,
                    statement=entry.statement if entry else None,
                    state_entry=entry,
                )
            )
        return frames

    def format_text(self, error: LambRuntimeError, verbose: bool) -> str:
        lines = ["Traceback (most recent call last):"]
        for frame in self.build_frames():
            if frame.location:
                lines.append(f"  File \"{frame.location.file}\", line {frame.location.line}, in {frame.name}")
                if frame.statement:
                    lines.append(f"    {frame.statement}")
            else:
                lines.append(f"  <unknown location> in {frame.name}")
            if frame.state_entry:
                lines.append(
                    f"    State log index: {frame.state_entry.step_index}  State id: {frame.state_entry.state_id}"
                )
                if verbose and frame.state_entry.env_snapshot is not None:
                    snapshot = ", ".join(f"{k}={v}" for k, v in frame.state_entry.env_snapshot.items())
                    lines.append(f"    Env snapshot: {snapshot}")
        rule = error.rewrite_rule or "runtime"
        lines.append(f"{error.__class__.__name__}: {error.message} (rule: {rule})")
        return "\n".join(lines)

    def to_json(self, error: LambRuntimeError) -> str:
        frames_json: List[Dict[str, Any]] = []
        for index, frame in enumerate(self.build_frames()):
            entry: Dict[str, Any] = {"frame_index": index, "name": frame.name}
            if frame.location:
                entry["source_location"] = {
                    "file": frame.location.file,
                    "line": frame.location.line,
                    "column": frame.location.column,
                    "statement": frame.location.statement,
                }
            if frame.state_entry:
                entry["state_id"] = frame.state_entry.state_id
                entry["step_index"] = frame.state_entry.step_index
                if frame.state_entry.env_snapshot is not None:
                    entry["env_snapshot"] = frame.state_entry.env_snapshot
                if frame.state_entry.rewrite_record is not None:
                    entry["rewrite_record"] = frame.state_entry.rewrite_record
            frames_json.append(entry)
        data = {
            "error": {
                "type": error.__class__.__name__,
                "message": error.message,
                "failing_step_index": error.step_index,
            },
            "traceback": frames_json,
        }
        return json.dumps(data, indent=2)

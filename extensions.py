"""Extension loading for Lamb.

An extension is a Python file that defines ``lamb_register(ext)``. Through the
ExtensionAPI it may add native procedures, numeric constants bound in the root
scope, observers for interpreter events, and rules that run every N logged
steps. A ``.lambx`` file lists extension paths, one per line, resolved
relative to the pointer file itself.
"""

from __future__ import annotations

import importlib.util
import itertools
import os
from dataclasses import dataclass, field
from typing import Any, Callable, Dict, Iterator, List, Optional, Sequence

from errors import LambExtensionError
from natives import NativeImpl, NativeProcedureSpec
from parser import Symbol, classify_atom


EXTENSION_API_VERSION = 1

# Events the interpreter emits, with the arguments observers receive:
#   program_start(interp, forms)        program_end(interp, results)
#   before_form(interp, form)           after_form(interp, form, result)
#   before_call(interp, name, args, loc) after_call(interp, name, result, loc)
#   on_error(interp, error)
EVENTS = frozenset(
    {"program_start", "program_end", "before_form", "after_form", "before_call", "after_call", "on_error"}
)

Observer = Callable[..., None]


@dataclass(frozen=True)
class StepContext:
    step_index: int
    rule: str
    location: Any  # SourceLocation | None
    extra: Optional[Dict[str, Any]]


@dataclass(frozen=True)
class StepRule:
    every_n: int
    handler: Callable[[Any, StepContext], None]


@dataclass
class HookRegistry:
    observers: Dict[str, List[Observer]] = field(default_factory=dict)
    step_rules: List[StepRule] = field(default_factory=list)

    def on_event(self, event: str, handler: Observer) -> None:
        if event not in EVENTS:
            raise LambExtensionError(f"Unknown interpreter event '{event}'")
        self.observers.setdefault(event, []).append(handler)

    def emit(self, event: str, *args: Any) -> None:
        for handler in self.observers.get(event, ()):
            handler(*args)

    def add_step_rule(self, every_n: int, handler: Callable[[Any, StepContext], None]) -> None:
        if every_n < 1:
            raise LambExtensionError(f"Step rules need a positive interval, got {every_n}")
        self.step_rules.append(StepRule(every_n=every_n, handler=handler))

    def after_step(self, interpreter: Any, ctx: StepContext) -> None:
        for rule in self.step_rules:
            if ctx.step_index % rule.every_n == 0:
                rule.handler(interpreter, ctx)


@dataclass
class RuntimeServices:
    """What the loaded extensions contributed, ready to attach to an Interpreter."""

    extensions: List[str] = field(default_factory=list)
    hook_registry: HookRegistry = field(default_factory=HookRegistry)
    operators: List[NativeProcedureSpec] = field(default_factory=list)
    constants: Dict[str, float] = field(default_factory=dict)


def _check_symbol(name: str, kind: str, ext_name: str) -> None:
    if not name or any(ch.isspace() or ch in "()" for ch in name) or not isinstance(classify_atom(name), Symbol):
        raise LambExtensionError(f"Extension '{ext_name}' cannot register {kind} {name!r}: not a Lamb symbol")


class ExtensionAPI:
    """Handle passed to ``lamb_register``.

    Every contribution is recorded under the extension's name, so a clash
    with the core natives or another extension can say who asked for it.
    """

    def __init__(self, *, services: RuntimeServices, ext_name: str) -> None:
        self.services = services
        self.name = ext_name

    def register_operator(
        self,
        name: str,
        min_args: int,
        max_args: Optional[int],
        impl: NativeImpl,
        *,
        doc: str = "",
    ) -> None:
        _check_symbol(name, "operator", self.name)
        self.services.operators.append(
            NativeProcedureSpec(name=name, min_args=min_args, max_args=max_args, impl=impl, doc=doc, origin=self.name)
        )

    def operator(self, name: str, min_args: int, max_args: Optional[int] = None, *, doc: str = ""):
        def deco(fn: NativeImpl) -> NativeImpl:
            self.register_operator(name, min_args, max_args, fn, doc=doc)
            return fn

        return deco

    def register_constant(self, name: str, value: float) -> None:
        _check_symbol(name, "constant", self.name)
        if name in self.services.constants:
            raise LambExtensionError(f"Constant '{name}' is already defined")
        self.services.constants[name] = float(value)

    def on_event(self, event: str, handler: Optional[Observer] = None):
        if handler is None:
            return lambda fn: self.on_event(event, fn)
        self.services.hook_registry.on_event(event, handler)
        return handler

    def every_n_steps(self, every_n: int, handler: Optional[Callable[[Any, StepContext], None]] = None):
        if handler is None:
            return lambda fn: self.every_n_steps(every_n, fn)
        self.services.hook_registry.add_step_rule(every_n, handler)
        return handler


_module_ids = itertools.count()


def load_extension_module(path: str) -> Any:
    if not os.path.isfile(path):
        raise LambExtensionError(f"Extension not found: {path}")
    stem = os.path.splitext(os.path.basename(path))[0]
    module_spec = importlib.util.spec_from_file_location(f"lamb_ext_{next(_module_ids)}_{stem}", path)
    if module_spec is None or module_spec.loader is None:
        raise LambExtensionError(f"Not a Python module: {path}")
    module = importlib.util.module_from_spec(module_spec)
    try:
        module_spec.loader.exec_module(module)
    except Exception as exc:
        raise LambExtensionError(f"Extension {path} failed to import: {exc}") from exc
    return module


def _pointer_entries(pointer_file: str) -> Iterator[str]:
    with open(pointer_file, "r", encoding="utf-8") as handle:
        for raw in handle:
            entry = raw.partition("#")[0].strip()
            if entry:
                yield entry


def read_lambx(pointer_file: str) -> List[str]:
    if not os.path.isfile(pointer_file):
        raise LambExtensionError(f".lambx file not found: {pointer_file}")
    base_dir = os.path.dirname(os.path.abspath(pointer_file))
    return [os.path.normpath(os.path.join(base_dir, entry)) for entry in _pointer_entries(pointer_file)]


def gather_extension_paths(paths: Sequence[str]) -> List[str]:
    """Expand ``.lambx`` pointer files; each extension path appears once, in first-seen order."""
    expanded: List[str] = []
    for path in paths:
        if path.lower().endswith(".lambx"):
            expanded.extend(read_lambx(path))
        else:
            expanded.append(os.path.abspath(path))
    return list(dict.fromkeys(expanded))


def _register_extension(services: RuntimeServices, path: str, module: Any) -> None:
    version = getattr(module, "LAMB_EXTENSION_API_VERSION", EXTENSION_API_VERSION)
    if version != EXTENSION_API_VERSION:
        raise LambExtensionError(f"Extension {path} targets API {version}, this interpreter provides {EXTENSION_API_VERSION}")
    register = getattr(module, "lamb_register", None)
    if not callable(register):
        raise LambExtensionError(f"Extension {path} must define callable lamb_register(ext)")
    name = str(getattr(module, "LAMB_EXTENSION_NAME", os.path.splitext(os.path.basename(path))[0]))
    if name in services.extensions:
        raise LambExtensionError(f"Two extensions are named '{name}'")
    register(ExtensionAPI(services=services, ext_name=name))
    services.extensions.append(name)


def load_runtime_services(paths: Sequence[str]) -> RuntimeServices:
    services = RuntimeServices()
    for path in gather_extension_paths(paths):
        _register_extension(services, path, load_extension_module(path))
    return services

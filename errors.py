"""Error taxonomy shared by the Lamb lexer, parser, scope store and evaluator."""

from __future__ import annotations
from typing import Any, Optional


class LambError(Exception):
    """Base class for interpreter errors."""


class LambParseError(LambError):
    """Raised when parsing fails."""


class UnbalancedParenthesesError(LambParseError):
    def __init__(self, message: str, *, location: Any = None) -> None:
        super().__init__(message)
        self.message = message
        self.location = location


class LambRuntimeError(LambError):
    """Raised for runtime faults."""

    def __init__(
        self,
        message: str,
        *,
        location: Any = None,
        rewrite_rule: Optional[str] = None,
    ) -> None:
        super().__init__(message)
        self.message = message
        self.location = location
        self.rewrite_rule = rewrite_rule
        self.step_index: Optional[int] = None


class UnboundSymbolError(LambRuntimeError):
    def __init__(self, name: str, *, location: Any = None) -> None:
        super().__init__(f"Unbound symbol '{name}'", location=location, rewrite_rule="SYMBOL")
        self.name = name


class NotCallableError(LambRuntimeError):
    def __init__(self, value: Any, *, location: Any = None) -> None:
        kind = getattr(value, "type", type(value).__name__)
        super().__init__(f"Cannot call a {kind} value", location=location, rewrite_rule="APPLY")
        self.value = value


class MalformedSpecialFormError(LambRuntimeError):
    def __init__(self, form: str, message: str, *, location: Any = None) -> None:
        super().__init__(message, location=location, rewrite_rule=form)
        self.form = form


class NoValueError(LambRuntimeError):
    """A form that produces no value was used where a value is required."""


class InvalidScopeIdError(LambRuntimeError):
    def __init__(self, scope_id: Any) -> None:
        super().__init__(f"Unknown scope {scope_id}", rewrite_rule="SCOPE")
        self.scope_id = scope_id


class NativeError(LambRuntimeError):
    """Raised by native procedures."""


class NativeArityError(NativeError):
    pass


class NativeTypeError(NativeError):
    pass


class UnknownNativeProcedureError(NativeError):
    def __init__(self, name: str, *, location: Any = None) -> None:
        super().__init__(f"Unknown native procedure '{name}'", location=location, rewrite_rule=name)
        self.name = name


class LambExtensionError(LambError):
    """Raised when an extension cannot be loaded or registered."""

"""Result types used instead of exceptions for expected failures.

Two layers use them:

- `DomainResult[E]` is returned by entity operations. It carries a
  strongly typed error code from a per-entity enumeration and renders it
  as an UPPER_SNAKE_CASE string only when a caller asks for it.
- `Result[T]` is returned by the services. It carries either a value or an
  `Error(code, message, details)` that the HTTP layer serialises as is.
"""

from __future__ import annotations

import re
from dataclasses import dataclass, field
from enum import Enum
from functools import lru_cache
from typing import Any, Dict, Generic, Iterable, Optional, Tuple, TypeVar, Union

E = TypeVar("E", bound=Enum)
T = TypeVar("T")

_WORD_BOUNDARY = re.compile(r"([a-z0-9])([A-Z])")


def to_upper_snake(symbol: str) -> str:
    """`InvalidTransition` -> `INVALID_TRANSITION`."""
    return _WORD_BOUNDARY.sub(r"\1_\2", symbol).upper()


@lru_cache(maxsize=None)
def code_table(enum_cls: type) -> Dict[Enum, str]:
    """Return the member -> wire string table for an error-code enumeration.

    The table is computed once per enumeration class. String member values
    hold the symbolic PascalCase name; other values fall back to the member
    name.
    """
    table = {}
    for member in enum_cls:
        symbol = member.value if isinstance(member.value, str) else member.name
        table[member] = to_upper_snake(symbol)
    return table


def code_string(member: Enum) -> str:
    return code_table(type(member))[member]


@dataclass(frozen=True)
class DomainResult(Generic[E]):
    """Outcome of a domain operation.

    Build instances with `success()` or `failure()`. Domain events raised by
    a successful operation travel in `events` so the caller can publish them
    after persisting; they take no part in equality.
    """
    is_success: bool
    error_code: Optional[E] = None
    error_message: Optional[str] = None
    events: Tuple[Any, ...] = field(default=(), compare=False, repr=False)

    def __post_init__(self):
        if self.is_success:
            if self.error_code is not None or self.error_message is not None:
                raise ValueError("a successful result cannot carry an error")
            return
        if self.error_code is None:
            raise ValueError("a failed result requires an error code")
        if not self.error_message or not self.error_message.strip():
            raise ValueError("a failed result requires a non-empty message")
        if self.events:
            raise ValueError("a failed result cannot carry events")

    @classmethod
    def success(cls, *events: Any) -> "DomainResult[E]":
        return cls(True, events=tuple(events))

    @classmethod
    def failure(cls, code: E, message: str) -> "DomainResult[E]":
        return cls(False, code, message)

    @property
    def is_failure(self) -> bool:
        return not self.is_success

    @property
    def error_code_string(self) -> Optional[str]:
        if self.error_code is None:
            return None
        return code_string(self.error_code)


@dataclass(frozen=True)
class ValidationIssue:
    field: str
    message: str


@dataclass(frozen=True)
class Error:
    code: str
    message: str
    details: Tuple[ValidationIssue, ...] = ()

    def to_dict(self) -> dict:
        return {
            'code': self.code,
            'message': self.message,
            'details': [{'field': d.field, 'message': d.message} for d in self.details],
        }


class Result(Generic[T]):
    """Service outcome: a value on success, an `Error` on failure."""

    def __init__(self, is_success: bool, value: Optional[T] = None, error: Optional[Error] = None):
        if is_success and error is not None:
            raise ValueError("a successful result cannot carry an error")
        if not is_success and error is None:
            raise ValueError("a failed result must carry an error")
        self.is_success = is_success
        self._value = value
        self.error = error

    @property
    def is_failure(self) -> bool:
        return not self.is_success

    @property
    def value(self) -> T:
        if not self.is_success:
            raise RuntimeError("cannot access the value of a failed result")
        return self._value

    @classmethod
    def ok(cls, value: Optional[T] = None) -> "Result[T]":
        return cls(True, value=value)

    @classmethod
    def fail(cls, code: Union[str, Enum], message: str, details: Optional[Iterable[ValidationIssue]] = None) -> "Result[T]":
        if isinstance(code, Enum):
            code = code_string(code)
        return cls(False, error=Error(code, message, tuple(details or ())))

    @classmethod
    def from_domain(cls, domain_result: DomainResult) -> "Result[T]":
        """Translate a failed `DomainResult` into a service failure."""
        if domain_result.is_success:
            raise ValueError("only failed domain results can be translated")
        return cls.fail(domain_result.error_code_string, domain_result.error_message)

    def __repr__(self) -> str:
        if self.is_success:
            return f"Result.ok({self._value!r})"
        return f"Result.fail({self.error.code!r}, {self.error.message!r})"

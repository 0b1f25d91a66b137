# SPDX-License-Identifier: Apache-2.0
# Copyright 2024-2026 CAB Ingénierie / Christophe ABOULICAM
"""Result values returned by every core operation.

Usage:
    result = await service.get_issue("PRJ-1")
    match result:
        case Ok(value=issue):
            ...
        case Err(error=error):
            ...
"""

from collections.abc import Callable
from dataclasses import dataclass
from typing import Any, Generic, NoReturn, TypeVar, Union

from .errors import ClassifiedError, JiraError

T = TypeVar("T")
U = TypeVar("U")


@dataclass(frozen=True)
class Ok(Generic[T]):
    """Successful outcome."""

    value: T

    @property
    def ok(self) -> bool:
        return True

    def unwrap(self) -> T:
        return self.value

    def unwrap_or(self, default: Any) -> T:
        return self.value

    def map(self, fn: Callable[[T], U]) -> "Ok[U]":
        return Ok(fn(self.value))


@dataclass(frozen=True)
class Err:
    """Failed outcome carrying a classified error."""

    error: ClassifiedError

    @property
    def ok(self) -> bool:
        return False

    def unwrap(self) -> NoReturn:
        raise JiraError(self.error)

    def unwrap_or(self, default: U) -> U:
        return default

    def map(self, fn: Callable[[Any], Any]) -> "Err":
        return self


Result = Union[Ok[T], Err]

"""
Tagged success/failure values returned by service methods.
"""
from dataclasses import dataclass
from typing import Generic, TypeVar, Union

from app.core.errors import UmbrellaError

T = TypeVar("T")


@dataclass(frozen=True)
class Ok(Generic[T]):
    value: T

    @property
    def is_ok(self) -> bool:
        return True


@dataclass(frozen=True)
class Err:
    error: UmbrellaError

    @property
    def is_ok(self) -> bool:
        return False


Result = Union[Ok[T], Err]


def unwrap(result: "Result[T]") -> T:
    """Return the success value or raise the carried error.

    Used at the HTTP boundary, where the exception handlers render errors.
    """
    if isinstance(result, Err):
        raise result.error
    return result.value

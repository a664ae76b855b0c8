"""Tagged result variants returned by gateways."""

from dataclasses import dataclass
from typing import Generic, Optional, TypeVar, Union

T = TypeVar("T")


@dataclass(frozen=True)
class Ok(Generic[T]):
    """A successful gateway call."""

    value: T

    @property
    def ok(self) -> bool:
        return True


@dataclass(frozen=True)
class Err:
    """A failed gateway call.

    ``code`` uses the same values as the API error envelope
    (``GATEWAY_UNAVAILABLE``, ``NO_PAGES_FOUND``, ...).
    """

    message: str
    code: str = "GATEWAY_UNAVAILABLE"
    external_url: Optional[str] = None

    @property
    def ok(self) -> bool:
        return False


Result = Union[Ok[T], Err]

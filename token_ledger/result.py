"""
Tagged operation results

Every ledger operation returns either Ok(value) or Err(code). Validation
failures are ordinary outcomes, so they travel as values instead of
exceptions. to_dict() gives the wire shape used by the HTTP API.
"""

from dataclasses import dataclass
from typing import Any, Dict, Generic, TypeVar, Union

from .errors import LedgerError, LedgerOperationError

T = TypeVar("T")


@dataclass(frozen=True)
class Ok(Generic[T]):
    """Successful result carrying the operation's return value"""
    value: T

    @property
    def ok(self) -> bool:
        return True

    def unwrap(self) -> T:
        return self.value

    def to_dict(self) -> Dict[str, Any]:
        return {"ok": True, "value": self.value}


@dataclass(frozen=True)
class Err:
    """Failed result carrying a LedgerError code"""
    code: LedgerError

    @property
    def ok(self) -> bool:
        return False

    def unwrap(self):
        raise LedgerOperationError(self.code)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "ok": False,
            "error": int(self.code),
            "name": self.code.name,
            "detail": self.code.description
        }


Result = Union[Ok[T], Err]

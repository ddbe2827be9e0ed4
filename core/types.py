"""
Shared value types for the resilience layer.

ApiResponse is what the remote call primitive returns; ActionResult is what
every action (and the executor) hands back to feature code.
"""

from dataclasses import dataclass
from typing import Any, Dict, Generic, Optional, TypeVar

D = TypeVar('D')


class BackendError(Exception):
    """Expected failure of a backend call, carrying the server's message and status"""

    def __init__(self, message: str, status: Optional[int] = None):
        self.message = message
        self.status = status
        super().__init__(message)

    @property
    def is_network(self) -> bool:
        """True when the server was never reached"""
        return self.status == 0


@dataclass(frozen=True)
class ApiResponse(Generic[D]):
    """Normalized response of the remote call primitive"""
    ok: bool
    status: int
    data: Optional[D] = None
    error: Optional[str] = None

    @property
    def is_network_failure(self) -> bool:
        return not self.ok and self.status == 0

    def error_message(self, fallback: str) -> str:
        """Error text that still carries the status code for classification"""
        detail = self.error or fallback
        if self.status:
            return f"{self.status}: {detail}"
        return detail

    def raise_for_error(self, fallback: str) -> None:
        if not self.ok:
            raise BackendError(self.error_message(fallback), self.status)


@dataclass(frozen=True)
class ActionResult(Generic[D]):
    """
    Outcome of an action.

    A failed result always carries a non-empty, user-presentable message.
    """
    success: bool
    action_id: str = ""
    message: str = ""
    data: Optional[D] = None

    def __post_init__(self):
        if not self.success and not self.message:
            raise ValueError("A failed ActionResult needs a message")

    @classmethod
    def failure(cls, message: str, action_id: str = "") -> 'ActionResult':
        return cls(success=False, action_id=action_id, message=message)

    @classmethod
    def from_dict(cls, payload: Dict[str, Any]) -> 'ActionResult':
        """Build from the backend's JSON ActionResult body"""
        success = bool(payload.get('success', False))
        message = payload.get('message') or ("" if success else "Action failed")
        return cls(
            success=success,
            action_id=payload.get('action_id', "") or "",
            message=message,
            data=payload.get('data'),
        )

    @classmethod
    def from_response(cls, response: ApiResponse, fallback: str) -> 'ActionResult':
        """
        Convert a raw API response into an ActionResult.

        Failures keep the status code in the message so the classifier can
        tell a 403 apart from a dropped connection. A 2xx reply without a
        result body is a failure: the backend did not confirm the action.
        """
        if response.ok and isinstance(response.data, dict):
            return cls.from_dict(response.data)
        if response.ok:
            return cls.failure(fallback)
        return cls.failure(response.error_message(fallback))

    def to_dict(self) -> Dict[str, Any]:
        return {
            'success': self.success,
            'action_id': self.action_id,
            'message': self.message,
            'data': self.data,
        }

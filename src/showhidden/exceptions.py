"""Error types for showhidden.

None of these are allowed to escape into host code once a hook is installed:
``TargetNotFound`` is raised at installation time only, and ``HandlerFault`` is
built and reported by the dispatcher rather than raised.
"""

from __future__ import annotations

from typing import TYPE_CHECKING, Any

if TYPE_CHECKING:
    from showhidden.patcher.hook import HookEntry


class ShowHiddenError(Exception):
    """Base class for all showhidden errors."""


class TargetNotFound(ShowHiddenError):
    """A hook target object or member could not be located.

    Attributes:
        target: Object the hook was requested on (may be None)
        member: Member name that was requested
        reason: Human-readable explanation
    """

    def __init__(self, target: Any, member: str, reason: str = "not found") -> None:
        self.target = target
        self.member = member
        self.reason = reason
        super().__init__(f"Cannot hook {_describe(target)}.{member}: {reason}")


class HandlerFault(ShowHiddenError):
    """A hook handler raised while being dispatched.

    Attributes:
        entry: The hook entry whose handler failed
        error: The exception the handler raised
    """

    def __init__(self, entry: HookEntry, error: BaseException) -> None:
        self.entry = entry
        self.error = error
        super().__init__(
            f"{entry.kind.value} hook on {_describe(entry.target)}.{entry.member} "
            f"(owner {entry.owner!r}) failed: {type(error).__name__}: {error}"
        )


def _describe(target: Any) -> str:
    if target is None:
        return "None"
    name = getattr(target, "__qualname__", None) or getattr(target, "__name__", None)
    if isinstance(name, str):
        return name
    return type(target).__name__

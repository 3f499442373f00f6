"""Hook entry records.

Defines the HookKind enum and the HookEntry record kept per installed hook.
"""

from __future__ import annotations

from collections.abc import Callable, Hashable
from dataclasses import dataclass, field
from enum import Enum
from itertools import count
from typing import TYPE_CHECKING, Any

if TYPE_CHECKING:
    from showhidden.patcher.context import CallContext


# Type aliases
BeforeFn = Callable[["CallContext"], Any]
AfterFn = Callable[["CallContext", Any], Any]
NextFn = Callable[..., Any]
InsteadFn = Callable[["CallContext", NextFn], Any]

_sequence = count()


class HookKind(Enum):
    """Where a handler sits relative to the original call."""

    BEFORE = "before"  # Runs first, result ignored
    AFTER = "after"  # Sees and may replace the result
    INSTEAD = "instead"  # Decides whether the original runs at all


@dataclass(eq=False)
class HookEntry:
    """A single installed hook.

    Entries compare by identity: the same handler installed twice yields two
    entries that are dispatched (and removed) independently.

    Attributes:
        owner: Tag scoping the entry for bulk removal
        target: Object whose member is intercepted
        member: Attribute name on the target
        kind: Hook kind
        handler: Callable invoked during dispatch
        seq: Global installation sequence number
    """

    owner: Hashable
    target: Any = field(repr=False)
    member: str
    kind: HookKind
    handler: Callable[..., Any] = field(repr=False)
    seq: int = field(default_factory=lambda: next(_sequence))

    @property
    def handler_name(self) -> str:
        """Readable name of the handler for log output."""
        return getattr(self.handler, "__qualname__", None) or repr(self.handler)

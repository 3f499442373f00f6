"""Per-call context handed to hook handlers."""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any


@dataclass
class CallContext:
    """Typed view of one intercepted call.

    Before-hooks may mutate ``args`` and ``kwargs`` in place; the original is
    called with whatever they hold once all before-hooks have run.

    Attributes:
        this: Object the member was resolved on (instance, class or module)
        member: Name of the intercepted member
        args: Positional arguments, excluding ``this``
        kwargs: Keyword arguments
    """

    this: Any
    member: str
    args: list[Any] = field(default_factory=list)
    kwargs: dict[str, Any] = field(default_factory=dict)

    def arg(self, index: int, name: str | None = None, default: Any = None) -> Any:
        """Get an argument by position, falling back to a keyword name.

        Args:
            index: Positional index
            name: Keyword to check when the positional is absent
            default: Value returned when neither is present

        Returns:
            The argument value or default
        """
        if index < len(self.args):
            return self.args[index]
        if name is not None and name in self.kwargs:
            return self.kwargs[name]
        return default

"""Reversible call interception for host-owned objects.

This package implements an owner-scoped hook registry with:
- before / after / instead hook kinds
- Copy-on-write chains per (target, member)
- Fault isolation at the dispatch boundary

Formal Model:
    For a member m with entries E = B ∪ I ∪ A:
        call(m, x) = A(I(x after B))

    where B runs for effect, I nests newest-outermost around the original,
    and A folds the result left to right.
"""

from showhidden.patcher.context import CallContext
from showhidden.patcher.hook import HookEntry, HookKind
from showhidden.patcher.registry import HookRegistry, get_registry

__all__ = [
    "CallContext",
    "HookEntry",
    "HookKind",
    "HookRegistry",
    "get_registry",
]

"""Owner-scoped, reversible call interception.

The registry keeps an indirection table keyed by ``(id(target), member)``.
Each key maps to a chain record holding the untouched original attribute and
an immutable tuple of hook entries. The member slot on the target is swapped
once, to a dispatcher, when the first entry arrives and restored when the
last entry leaves; installing or removing further hooks only replaces the
tuple.

Dispatch order for one call:

    before hooks (installation order)
    -> newest instead hook -> ... -> oldest instead hook -> original
    -> after hooks (installation order, each sees the previous result)
"""

from __future__ import annotations

import functools
import inspect
import logging
import threading
from collections.abc import Callable, Hashable
from typing import Any

from showhidden.exceptions import HandlerFault, TargetNotFound
from showhidden.patcher.context import CallContext
from showhidden.patcher.hook import AfterFn, BeforeFn, HookEntry, HookKind, InsteadFn

logger = logging.getLogger(__name__)

FaultListener = Callable[[HandlerFault], None]


def _owns(target: Any, member: str) -> bool:
    try:
        return member in vars(target)
    except TypeError:
        return False


def _chain_of(attribute: Any) -> _MemberChain | None:
    """Chain behind a dispatcher from any registry, or None for host attributes."""
    chain = getattr(attribute, "_hook_chain", None)
    return chain if isinstance(chain, _MemberChain) else None


class _MemberChain:
    """Hook chain for a single (target, member) pair."""

    def __init__(self, registry: HookRegistry, target: Any, member: str) -> None:
        try:
            raw = inspect.getattr_static(target, member)
        except AttributeError:
            raise TargetNotFound(target, member, "no such member") from None

        if not (callable(raw) or isinstance(raw, (classmethod, staticmethod, _HookDescriptor))):
            raise TargetNotFound(target, member, f"member is not callable ({type(raw).__name__})")

        self.registry = registry
        self.target = target
        self.member = member
        self.raw = raw
        self.own = _owns(target, member)
        self.is_class = isinstance(target, type)
        self.entries: tuple[HookEntry, ...] = ()

        if self.is_class:
            self.dispatcher: Any = _HookDescriptor(self)
        else:
            self.dispatcher = self._make_wrapper()

    def original_for(self, instance: Any, owner: type | None = None) -> Callable[..., Any]:
        """Resolve the untouched original as Python attribute lookup would."""
        raw = self.raw
        if self.is_class:
            if hasattr(raw, "__get__"):
                return raw.__get__(instance, owner if owner is not None else self.target)
            return raw
        if self.own or not hasattr(raw, "__get__"):
            return raw
        return raw.__get__(self.target, type(self.target))

    def bare_for(self, instance: Any, owner: type | None = None) -> Callable[..., Any]:
        """Like original_for, but also skips dispatchers this chain was stacked on."""
        inner = _chain_of(self.raw)
        if inner is None:
            return self.original_for(instance, owner)
        if inner.is_class and not self.is_class:
            # Instance hook over a class-level dispatcher
            return inner.bare_for(self.target, type(self.target))
        if self.is_class and owner is None:
            owner = self.target
        return inner.bare_for(instance, owner)

    def innermost_raw(self) -> Any:
        """The attribute found before any dispatcher was installed."""
        inner = _chain_of(self.raw)
        return self.raw if inner is None else inner.innermost_raw()

    def _make_wrapper(self) -> Callable[..., Any]:
        original = self.original_for(self.target)
        target = self.target

        @functools.wraps(original)
        def dispatch_member(*args: Any, **kwargs: Any) -> Any:
            return self.dispatch(target, original, args, kwargs)

        dispatch_member._hook_chain = self  # type: ignore[attr-defined]
        return dispatch_member

    def attach(self) -> None:
        try:
            setattr(self.target, self.member, self.dispatcher)
        except (AttributeError, TypeError) as e:
            raise TargetNotFound(self.target, self.member, f"cannot patch: {e}") from e

    def detach(self) -> None:
        try:
            current = vars(self.target).get(self.member)
        except TypeError:
            current = None

        if current is not self.dispatcher:
            # Someone re-patched the slot after us; leave theirs in place; our
            # dispatcher now has no entries and passes straight through
            logger.warning(
                "%s.%s was re-patched externally, leaving it in place",
                getattr(self.target, "__name__", type(self.target).__name__),
                self.member,
            )
            return

        if self.own:
            setattr(self.target, self.member, self.raw)
        else:
            delattr(self.target, self.member)

    def dispatch(
        self,
        this: Any,
        original: Callable[..., Any],
        args: tuple[Any, ...],
        kwargs: dict[str, Any],
    ) -> Any:
        entries = self.entries  # Snapshot; install/remove swap the tuple
        if not entries:
            return original(*args, **kwargs)

        ctx = CallContext(this=this, member=self.member, args=list(args), kwargs=dict(kwargs))

        for entry in entries:
            if entry.kind is HookKind.BEFORE:
                try:
                    entry.handler(ctx)
                except Exception as e:
                    self.registry._report_fault(entry, e)

        call: Callable[..., Any] = original
        for entry in entries:
            if entry.kind is HookKind.INSTEAD:
                call = self._link(entry, ctx, call, original)
        result = call(*ctx.args, **ctx.kwargs)

        for entry in entries:
            if entry.kind is HookKind.AFTER:
                try:
                    replacement = entry.handler(ctx, result)
                except Exception as e:
                    self.registry._report_fault(entry, e)
                    continue
                if replacement is not None:
                    result = replacement

        return result

    def _link(
        self,
        entry: HookEntry,
        ctx: CallContext,
        inner: Callable[..., Any],
        original: Callable[..., Any],
    ) -> Callable[..., Any]:
        """Wrap ``inner`` with one instead handler."""

        def link(*args: Any, **kwargs: Any) -> Any:
            downstream: list[BaseException] = []

            def call_next(*a: Any, **kw: Any) -> Any:
                try:
                    return inner(*a, **kw)
                except Exception as e:
                    downstream.append(e)
                    raise

            link_ctx = CallContext(this=ctx.this, member=ctx.member, args=list(args), kwargs=dict(kwargs))
            try:
                return entry.handler(link_ctx, call_next)
            except Exception as e:
                if any(e is err for err in downstream):
                    # Host's own error, surface it as if unhooked
                    raise
                self.registry._report_fault(entry, e)
                return original(*args, **kwargs)

        return link


class _HookDescriptor:
    """Dispatcher installed on class targets so binding still happens."""

    def __init__(self, chain: _MemberChain) -> None:
        self._hook_chain = chain
        self.__doc__ = getattr(chain.raw, "__doc__", None)
        self.__wrapped__ = chain.raw

    def __get__(self, instance: Any, owner: type | None = None) -> Callable[..., Any]:
        if owner is None:
            owner = type(instance)
        chain = self._hook_chain
        this = instance if instance is not None else owner
        original = chain.original_for(instance, owner)

        @functools.wraps(original)
        def dispatch_member(*args: Any, **kwargs: Any) -> Any:
            return chain.dispatch(this, original, args, kwargs)

        return dispatch_member


class HookRegistry:
    """Registry of installed hooks, scoped by owner tag.

    Attributes:
        on_fault: Optional listener told about every handler fault
    """

    def __init__(self, on_fault: FaultListener | None = None) -> None:
        self._chains: dict[tuple[int, str], _MemberChain] = {}
        self._lock = threading.RLock()
        self.on_fault = on_fault

    def install_before(self, owner: Hashable, target: Any, member: str, handler: BeforeFn) -> HookEntry:
        """Run ``handler(ctx)`` before the original; its return value is ignored."""
        return self._install(owner, target, member, HookKind.BEFORE, handler)

    def install_after(self, owner: Hashable, target: Any, member: str, handler: AfterFn) -> HookEntry:
        """Run ``handler(ctx, result)`` after the original.

        A non-None return value replaces the result for later hooks and the
        caller.
        """
        return self._install(owner, target, member, HookKind.AFTER, handler)

    def install_instead(self, owner: Hashable, target: Any, member: str, handler: InsteadFn) -> HookEntry:
        """Replace the call with ``handler(ctx, call_next)``.

        ``call_next(*args, **kwargs)`` runs the next older instead hook, or
        the original at the innermost link.
        """
        return self._install(owner, target, member, HookKind.INSTEAD, handler)

    def _install(
        self,
        owner: Hashable,
        target: Any,
        member: str,
        kind: HookKind,
        handler: Callable[..., Any],
    ) -> HookEntry:
        if target is None:
            raise TargetNotFound(target, member, "target is None")
        if not callable(handler):
            raise TypeError(f"Hook handler must be callable, got {type(handler).__name__}")

        with self._lock:
            key = (id(target), member)
            chain = self._chains.get(key)
            if chain is None:
                chain = _MemberChain(self, target, member)
                chain.attach()
                self._chains[key] = chain

            entry = HookEntry(owner=owner, target=target, member=member, kind=kind, handler=handler)
            chain.entries = (*chain.entries, entry)

        logger.debug("Installed %s hook %s on %s (owner %r)", kind.value, entry.handler_name, member, owner)
        return entry

    def remove(self, entry: HookEntry) -> bool:
        """Remove a single entry.

        Returns:
            True if the entry was installed
        """
        with self._lock:
            key = (id(entry.target), entry.member)
            chain = self._chains.get(key)
            if chain is None or not any(e is entry for e in chain.entries):
                return False
            self._replace_entries(key, chain, tuple(e for e in chain.entries if e is not entry))
        return True

    def remove_all(self, owner: Hashable) -> int:
        """Remove every hook installed under ``owner``.

        Members left without hooks get their original attribute back.
        Calling this with nothing installed is a no-op.

        Returns:
            Number of entries removed
        """
        removed = 0
        with self._lock:
            for key, chain in list(self._chains.items()):
                kept = tuple(e for e in chain.entries if e.owner != owner)
                if len(kept) == len(chain.entries):
                    continue
                removed += len(chain.entries) - len(kept)
                self._replace_entries(key, chain, kept)

        if removed:
            logger.debug("Removed %d hook(s) for owner %r", removed, owner)
        return removed

    def _replace_entries(self, key: tuple[int, str], chain: _MemberChain, kept: tuple[HookEntry, ...]) -> None:
        chain.entries = kept
        if not kept:
            del self._chains[key]
            chain.detach()

    def unhooked(self, target: Any, member: str) -> Callable[..., Any]:
        """Get the original callable for ``target.member``, bypassing all hooks.

        Hooks on the target itself, on its class and those installed by other
        registries are all skipped.

        Raises:
            TargetNotFound: If the member does not exist
        """
        if target is None:
            raise TargetNotFound(target, member, "target is None")

        with self._lock:
            chain = self._chains.get((id(target), member)) or _chain_of(self._static(target, member))
            if chain is not None:
                if isinstance(target, type):
                    return chain.bare_for(None, target)
                return chain.bare_for(target, type(target))

        return getattr(target, member)

    def needs_instance(self, target: Any, member: str) -> bool:
        """Check whether ``target.member`` only works bound to an instance.

        True for a class target whose member is a plain (instance) method;
        calling it through the class would pass the first argument as self.
        """
        if not isinstance(target, type):
            return False
        try:
            raw = self._static(target, member)
        except TargetNotFound:
            return False
        chain = _chain_of(raw)
        if chain is not None:
            raw = chain.innermost_raw()
        if isinstance(raw, (staticmethod, classmethod)):
            return False
        return inspect.isfunction(raw) or inspect.ismethoddescriptor(raw)

    @staticmethod
    def _static(target: Any, member: str) -> Any:
        try:
            return inspect.getattr_static(target, member)
        except AttributeError:
            raise TargetNotFound(target, member, "no such member") from None

    def entries(self, target: Any = None, member: str | None = None) -> list[HookEntry]:
        """List installed entries, optionally filtered, in installation order."""
        with self._lock:
            found = [
                entry
                for chain in self._chains.values()
                if (target is None or chain.target is target) and (member is None or chain.member == member)
                for entry in chain.entries
            ]
        return sorted(found, key=lambda e: e.seq)

    def is_hooked(self, target: Any, member: str) -> bool:
        """Check whether ``target.member`` currently has any hook."""
        return (id(target), member) in self._chains

    def clear(self) -> None:
        """Remove every hook from every owner (for testing)."""
        with self._lock:
            for key, chain in list(self._chains.items()):
                self._replace_entries(key, chain, ())

    def _report_fault(self, entry: HookEntry, error: Exception) -> None:
        fault = HandlerFault(entry, error)
        logger.error("Hook '%s' failed: %s: %s", entry.handler_name, type(error).__name__, error)
        if self.on_fault is not None:
            try:
                self.on_fault(fault)
            except Exception:
                logger.exception("Fault listener raised while reporting %s", fault)


# Global registry
_registry = HookRegistry()


def get_registry() -> HookRegistry:
    """Get the process-wide hook registry."""
    return _registry

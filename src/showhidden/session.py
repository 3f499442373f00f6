"""Override session lifecycle.

An OverrideSession installs every hook under its own owner tag on start()
and removes all of them, plus the injected stylesheet, on stop(). Missing
host entry points reduce functionality; they never abort activation.
"""

from __future__ import annotations

import contextlib
import logging
from collections.abc import Callable, Iterator
from contextlib import ExitStack
from enum import Enum
from typing import Any

from showhidden.config import ShowHiddenConfig, get_config
from showhidden.exceptions import TargetNotFound
from showhidden.locator import HostHandle, ImportLocator, Locator, StyleService
from showhidden.patcher import CallContext, HookRegistry, get_registry
from showhidden.policy import CapabilityOverridePolicy, CapabilityQuery
from showhidden.presentation import LOCKED_CLASS, annotate_hidden, locked_view, stylesheet, target_from_call
from showhidden.visibility import Visibility, classify

logger = logging.getLogger(__name__)


class SessionState(Enum):
    """Lifecycle state of an OverrideSession."""

    INACTIVE = "inactive"
    ACTIVE = "active"


class OverrideSession:
    """Process-wide override lifecycle.

    Attributes:
        name: Label used in logs and notifications
        config: Active configuration
        registry: Registry the hooks are installed into
        policy: Capability policy (set on start)
        degraded: Features unavailable after the last start
    """

    def __init__(
        self,
        config: ShowHiddenConfig | None = None,
        registry: HookRegistry | None = None,
        name: str = "ShowHidden",
    ) -> None:
        self.name = name
        self.config = config or get_config()
        self.registry = registry or get_registry()
        self.policy: CapabilityOverridePolicy | None = None
        self.degraded: list[str] = []
        self._state = SessionState.INACTIVE
        self._read_raw: Callable[[Any], Any] | None = None
        self._resources = ExitStack()

    def __repr__(self) -> str:
        return f"<OverrideSession {self.name!r} {self._state.value}>"

    @property
    def state(self) -> SessionState:
        return self._state

    @property
    def is_active(self) -> bool:
        return self._state is SessionState.ACTIVE

    @property
    def can_classify(self) -> bool:
        """True when raw bitmasks can be read for visibility marking."""
        return self._read_raw is not None

    def start(self, locator: Locator | None = None) -> SessionState:
        """Install all hooks and inject the stylesheet.

        Args:
            locator: Host entry point locator; defaults to the configured
                import paths

        Returns:
            The session state (ACTIVE)
        """
        if self.is_active:
            logger.debug("%s: start() while active, ignoring", self.name)
            return self._state

        if locator is None:
            locator = ImportLocator(self.config.host)

        self.config.apply_logging()
        self.policy = CapabilityOverridePolicy(self.config.rule_set())
        self.degraded = []

        self._install_access_override(locator)
        self._install_bitmask_hooks(locator)
        self._install_presentation(locator)
        if self.policy.rule_set.is_broad:
            self._install_setting_overrides(locator)
        self._inject_styles(locator)

        self._state = SessionState.ACTIVE

        if self.degraded:
            logger.warning("%s: Started with reduced functionality, unavailable: %s", self.name, ", ".join(self.degraded))
            self._notify_degraded(locator)
        else:
            logger.info("%s: Started (%s mode)", self.name, self.config.mode)
        return self._state

    def stop(self) -> None:
        """Remove every hook and release injected resources.

        Safe to call repeatedly and after a partial start.
        """
        removed = self.registry.remove_all(self)

        resources, self._resources = self._resources, ExitStack()
        resources.close()

        was_active = self.is_active
        self._state = SessionState.INACTIVE
        self._read_raw = None
        if was_active or removed:
            logger.info("%s: Stopped (%d hook(s) removed)", self.name, removed)

    @contextlib.contextmanager
    def activated(self, locator: Locator | None = None) -> Iterator[OverrideSession]:
        """Run a block with the session active, stopping it afterwards."""
        self.start(locator)
        try:
            yield self
        finally:
            self.stop()

    def visibility_of(self, target: Any) -> Visibility | None:
        """Classify a target from its raw, unoverridden bitmask.

        Returns:
            The verdict, or None when raw bitmasks are unavailable
        """
        if self._read_raw is None:
            return None
        return classify(self._read_raw(target), self.config.capability_bit)

    # Installation steps

    def _locate(self, feature: str, find: Callable[[], Any]) -> Any:
        try:
            return find()
        except Exception as e:
            logger.warning("%s: Locating %s failed: %s: %s", self.name, feature, type(e).__name__, e)
            return None

    def _missing(self, feature: str, reason: str) -> None:
        logger.warning("%s: TargetNotFound for %s: %s", self.name, feature, reason)
        self.degraded.append(feature)

    def _install(self, feature: str, handle: HostHandle | None, kind: str, handler: Callable[..., Any]) -> bool:
        if handle is None:
            self._missing(feature, "entry point not located")
            return False
        install = getattr(self.registry, f"install_{kind}")
        try:
            install(self, handle.target, handle.member, handler)
        except TargetNotFound as e:
            self._missing(feature, str(e))
            return False
        logger.debug("%s: Hooked %s (%s) for %s", self.name, handle, kind, feature)
        return True

    def _install_access_override(self, locator: Locator) -> None:
        handle = self._locate("capability override", locator.find_access_query)
        self._install("capability override", handle, "instead", self._evaluate_access)

    def _install_bitmask_hooks(self, locator: Locator) -> None:
        handle = self._locate("raw bitmask lookup", locator.find_bitmask_lookup)
        if handle is None:
            self._missing("raw bitmask lookup", "entry point not located")
            return
        try:
            reader = self.registry.unhooked(handle.target, handle.member)
        except TargetNotFound as e:
            self._missing("raw bitmask lookup", str(e))
            return
        if self.registry.needs_instance(handle.target, handle.member):
            # Hooking still works, but items cannot be read without the host's instance
            self._missing("raw bitmask lookup", f"{handle} is an instance method, configure a path to an instance")
        else:
            self._read_raw = reader
        self._install("bitmask augmentation", handle, "after", self._augment_bitmask)

    def _install_presentation(self, locator: Locator) -> None:
        if self._read_raw is None:
            self._missing("hidden item marking", "raw bitmasks unavailable")
            return

        handle = self._locate("hidden item marking", locator.find_item_renderer)
        self._install("hidden item marking", handle, "after", self._mark_item)

        handle = self._locate("locked content view", locator.find_content_renderer)
        if handle is None:
            logger.debug("%s: No content renderer located, skipping locked view", self.name)
            return
        self._install("locked content view", handle, "after", self._lock_content)

    def _install_setting_overrides(self, locator: Locator) -> None:
        handle = self._locate("setting overrides", locator.find_setting_getter)
        self._install("setting overrides", handle, "instead", self._force_setting)

    def _inject_styles(self, locator: Locator) -> None:
        service: StyleService | None = self._locate("hidden item styling", locator.find_style_service)
        if service is None:
            self._missing("hidden item styling", "style service not located")
            return

        namespace = self.config.style_namespace
        try:
            service.add_style(namespace, stylesheet(self.config.hidden_class, LOCKED_CLASS))
        except Exception as e:
            self._missing("hidden item styling", f"add_style failed: {type(e).__name__}: {e}")
            return
        self._resources.callback(self._remove_style, service, namespace)

    def _remove_style(self, service: StyleService, namespace: str) -> None:
        try:
            service.remove_style(namespace)
        except Exception as e:
            logger.warning("%s: Failed to remove style %s: %s", self.name, namespace, e)

    def _notify_degraded(self, locator: Locator) -> None:
        if not self.config.notify:
            return
        toast = self._locate("toast service", locator.find_toast_service)
        if toast is None:
            return
        message = f"{self.name}: running with reduced functionality ({', '.join(self.degraded)} unavailable)"
        try:
            toast.show_toast(message, {"type": "warning"})
        except Exception as e:
            logger.warning("%s: Failed to show toast: %s", self.name, e)

    # Hook handlers

    def _evaluate_access(self, ctx: CallContext, call_next: Callable[..., Any]) -> Any:
        assert self.policy is not None
        query = CapabilityQuery(
            capability=ctx.arg(0, self.config.capability_arg),
            subject=ctx.arg(1, self.config.subject_arg),
        )
        return self.policy.evaluate(query, lambda q: call_next(*ctx.args, **ctx.kwargs))

    def _augment_bitmask(self, ctx: CallContext, result: Any) -> Any:
        assert self.policy is not None
        return self.policy.augment_raw_bitmask(result)

    def _hidden_target(self, ctx: CallContext) -> Any:
        target = target_from_call(ctx, self.config.target_prop)
        if target is None:
            return None
        if self.visibility_of(target) is Visibility.HIDDEN:
            return target
        return None

    def _mark_item(self, ctx: CallContext, result: Any) -> Any:
        if self._hidden_target(ctx) is None:
            return None
        return annotate_hidden(result, self.config.hidden_class)

    def _lock_content(self, ctx: CallContext, result: Any) -> Any:
        target = self._hidden_target(ctx)
        if target is None:
            return None
        return locked_view(target, self.config.locked_title)

    def _force_setting(self, ctx: CallContext, call_next: Callable[..., Any]) -> Any:
        assert self.policy is not None
        name = ctx.arg(0, "name")
        return self.policy.setting_value(name, lambda: call_next(*ctx.args, **ctx.kwargs))

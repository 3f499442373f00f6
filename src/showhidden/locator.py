"""Locating host entry points.

A Locator answers "where is the access-control query", "where is the bitmask
lookup" and so on. Every answer is optional: a missing entry point degrades
the session instead of failing it.
"""

from __future__ import annotations

import importlib
import logging
from dataclasses import dataclass
from typing import TYPE_CHECKING, Any, NamedTuple, Protocol, runtime_checkable

if TYPE_CHECKING:
    from showhidden.config import HostPaths

logger = logging.getLogger(__name__)


class HostHandle(NamedTuple):
    """A host object and the name of the member to hook on it."""

    target: Any
    member: str

    def exists(self) -> bool:
        """Check the member is present on the target."""
        return self.target is not None and hasattr(self.target, self.member)

    def __str__(self) -> str:
        name = getattr(self.target, "__qualname__", None) or getattr(self.target, "__name__", None)
        return f"{name or type(self.target).__name__}.{self.member}"


@runtime_checkable
class StyleService(Protocol):
    """Host service for injecting named stylesheets."""

    def add_style(self, name: str, css: str) -> Any: ...

    def remove_style(self, name: str) -> Any: ...


@runtime_checkable
class ToastService(Protocol):
    """Host service for transient notifications."""

    def show_toast(self, message: str, options: dict[str, Any] | None = None) -> Any: ...


class Locator(Protocol):
    """Finds host entry points for an OverrideSession."""

    def find_access_query(self) -> HostHandle | None: ...

    def find_bitmask_lookup(self) -> HostHandle | None: ...

    def find_item_renderer(self) -> HostHandle | None: ...

    def find_content_renderer(self) -> HostHandle | None: ...

    def find_setting_getter(self) -> HostHandle | None: ...

    def find_style_service(self) -> StyleService | None: ...

    def find_toast_service(self) -> ToastService | None: ...


@dataclass
class StaticLocator:
    """Locator over entry points resolved up front."""

    access_query: HostHandle | None = None
    bitmask_lookup: HostHandle | None = None
    item_renderer: HostHandle | None = None
    content_renderer: HostHandle | None = None
    setting_getter: HostHandle | None = None
    style_service: StyleService | None = None
    toast_service: ToastService | None = None

    def find_access_query(self) -> HostHandle | None:
        return self.access_query

    def find_bitmask_lookup(self) -> HostHandle | None:
        return self.bitmask_lookup

    def find_item_renderer(self) -> HostHandle | None:
        return self.item_renderer

    def find_content_renderer(self) -> HostHandle | None:
        return self.content_renderer

    def find_setting_getter(self) -> HostHandle | None:
        return self.setting_getter

    def find_style_service(self) -> StyleService | None:
        return self.style_service

    def find_toast_service(self) -> ToastService | None:
        return self.toast_service


def resolve_object(path: str) -> Any:
    """Import ``package.module:attr.subattr`` and return the object.

    The ``:`` separator is optional; without it the longest importable
    module prefix is used.

    Raises:
        ImportError: If no module part can be imported
        AttributeError: If an attribute along the path is missing
    """
    if ":" in path:
        module_path, _, attr_path = path.partition(":")
        obj: Any = importlib.import_module(module_path)
        attrs = [a for a in attr_path.split(".") if a]
    else:
        parts = path.split(".")
        for i in range(len(parts), 0, -1):
            try:
                obj = importlib.import_module(".".join(parts[:i]))
            except ImportError:
                continue
            attrs = parts[i:]
            break
        else:
            raise ImportError(f"No importable module in '{path}'")

    for attr in attrs:
        obj = getattr(obj, attr)
    return obj


def resolve_handle(path: str) -> HostHandle:
    """Resolve ``package.module:Owner.member`` into a HostHandle.

    Raises:
        ValueError: If the path has no member part
        ImportError: If the owner cannot be imported
        AttributeError: If the owner or member is missing
    """
    if ":" in path:
        # "pkg.mod:func" hooks a module-level function, "pkg.mod:Cls.meth" a method
        module_path, _, attr_path = path.partition(":")
        owner_attrs, _, member = attr_path.rpartition(".")
        owner_path = f"{module_path}:{owner_attrs}" if owner_attrs else module_path
        target: Any = importlib.import_module(module_path)
        for attr in filter(None, owner_attrs.split(".")):
            target = getattr(target, attr)
    else:
        owner_path, _, member = path.rpartition(".")
        if not owner_path:
            raise ValueError(f"Host path '{path}' has no member part")
        target = resolve_object(owner_path)

    if not member:
        raise ValueError(f"Host path '{path}' has no member part")

    handle = HostHandle(target, member)
    if not handle.exists():
        raise AttributeError(f"{owner_path} has no member '{member}'")
    return handle


class ImportLocator:
    """Locator resolving configured import paths.

    Attributes:
        paths: Configured host paths
    """

    def __init__(self, paths: HostPaths) -> None:
        self.paths = paths

    def _handle(self, kind: str) -> HostHandle | None:
        path = getattr(self.paths, kind)
        if not path:
            logger.debug(f"No host path configured for {kind}")
            return None
        try:
            return resolve_handle(path)
        except (ImportError, AttributeError, ValueError) as e:
            logger.warning(f"Failed to locate {kind} at {path}: {e}")
            return None

    def _service(self, kind: str, protocol: type) -> Any:
        path = getattr(self.paths, kind)
        if not path:
            logger.debug(f"No host path configured for {kind}")
            return None
        try:
            service = resolve_object(path)
        except (ImportError, AttributeError) as e:
            logger.warning(f"Failed to locate {kind} at {path}: {e}")
            return None
        if not isinstance(service, protocol):
            logger.warning(f"{path} does not provide the {protocol.__name__} interface")
            return None
        return service

    def find_access_query(self) -> HostHandle | None:
        return self._handle("access_query")

    def find_bitmask_lookup(self) -> HostHandle | None:
        return self._handle("bitmask_lookup")

    def find_item_renderer(self) -> HostHandle | None:
        return self._handle("item_renderer")

    def find_content_renderer(self) -> HostHandle | None:
        return self._handle("content_renderer")

    def find_setting_getter(self) -> HostHandle | None:
        return self._handle("setting_getter")

    def find_style_service(self) -> StyleService | None:
        return self._service("style_service", StyleService)

    def find_toast_service(self) -> ToastService | None:
        return self._service("toast_service", ToastService)

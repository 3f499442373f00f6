"""Presentation decisions for hidden items.

Renderables are opaque; the only shapes touched are a ``props`` mapping (or
object) carrying a class attribute, optionally one level down through
``children``.
"""

from __future__ import annotations

import logging
from collections.abc import Mapping, MutableMapping
from dataclasses import dataclass
from typing import TYPE_CHECKING, Any

if TYPE_CHECKING:
    from showhidden.patcher.context import CallContext

logger = logging.getLogger(__name__)

HIDDEN_CLASS = "shc-hidden-channel"
LOCKED_CLASS = "shc-locked-view"

# Class attribute names, in lookup order
_CLASS_KEYS = ("class_name", "className")


def stylesheet(hidden_class: str = HIDDEN_CLASS, locked_class: str = LOCKED_CLASS) -> str:
    """CSS for hidden items (dimmed, greyscale, lock glyph) and locked views."""
    return f"""
.{hidden_class} {{
    opacity: 0.6;
    filter: grayscale(1);
}}
.{hidden_class}::after {{
    content: " \\1F512";
    font-size: 10px;
    vertical-align: middle;
}}
.{locked_class} {{
    padding: 16px;
    text-align: center;
    opacity: 0.8;
}}
""".strip()


STYLESHEET = stylesheet()


@dataclass(frozen=True)
class LockedView:
    """Substitute content view for an item the viewer cannot really see.

    Attributes:
        title: Heading shown in place of the content
        target_id: Stable identifier of the hidden item
        description: Optional free text (e.g. the item's topic)
        class_name: Class hook for the injected stylesheet
    """

    title: str
    target_id: Any
    description: str | None = None
    class_name: str = LOCKED_CLASS


def _get(obj: Any, name: str, default: Any = None) -> Any:
    if isinstance(obj, Mapping):
        return obj.get(name, default)
    return getattr(obj, name, default)


def target_from_call(ctx: CallContext, prop: str = "target") -> Any:
    """Read the render target from a render call.

    Looks at the first positional argument (a props mapping or object),
    then at a keyword argument of the same name.
    """
    props = ctx.arg(0)
    if props is not None:
        target = _get(props, prop)
        if target is not None:
            return target
    return ctx.kwargs.get(prop)


def target_id(target: Any) -> Any:
    """Stable identifier of a target (``id`` attribute or key)."""
    return _get(target, "id")


def target_description(target: Any) -> str | None:
    """Free-text description of a target, if it carries one."""
    for name in ("topic", "description"):
        value = _get(target, name)
        if value:
            return str(value)
    return None


def _props_of(renderable: Any) -> Any:
    props = _get(renderable, "props")
    if props is None:
        return None
    children = _get(props, "children")
    if children is not None and not isinstance(children, (str, list, tuple)):
        child_props = _get(children, "props")
        if child_props is not None:
            return child_props
    return props


def _append_class(props: Any, class_name: str) -> None:
    for key in _CLASS_KEYS:
        current = _get(props, key)
        if current is None:
            continue
        classes = str(current).split()
        if class_name not in classes:
            classes.append(class_name)
        _set(props, key, " ".join(classes))
        return
    _set(props, _CLASS_KEYS[0], class_name)


def _set(obj: Any, name: str, value: Any) -> None:
    if isinstance(obj, MutableMapping):
        obj[name] = value
    else:
        setattr(obj, name, value)


def annotate_hidden(renderable: Any, class_name: str = HIDDEN_CLASS) -> Any:
    """Mark a rendered item as hidden under the real rules.

    Appends ``class_name`` to the class attribute of the renderable's props
    (or its single child's props). Unknown shapes are returned untouched.

    Returns:
        The same renderable
    """
    props = _props_of(renderable)
    if props is None or (isinstance(props, Mapping) and not isinstance(props, MutableMapping)):
        logger.debug("Renderable %s has no writable props, not annotating", type(renderable).__name__)
        return renderable
    try:
        _append_class(props, class_name)
    except (AttributeError, TypeError) as e:
        logger.debug("Could not annotate %s: %s", type(renderable).__name__, e)
    return renderable


def locked_view(target: Any, title: str, class_name: str = LOCKED_CLASS) -> LockedView:
    """Build the substitute view for a hidden target."""
    return LockedView(
        title=title,
        target_id=target_id(target),
        description=target_description(target),
        class_name=class_name,
    )

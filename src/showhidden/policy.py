"""Capability override policy.

Forces specific access-control bits to evaluate as granted while passing
every other capability query through to the host untouched.

- Rule match on bit → Granted, fallback never called
- Rule match on legacy alias → Granted
- Anything else → fallback(query), unchanged
"""

from __future__ import annotations

import logging
import operator
from collections.abc import Callable, Hashable, Iterable
from dataclasses import dataclass, field
from typing import Any, NamedTuple, TypeVar

logger = logging.getLogger(__name__)

B = TypeVar("B")


class CapabilityQuery(NamedTuple):
    """One access-control question asked by the host."""

    capability: Any
    subject: Any = None


@dataclass(frozen=True)
class OverrideRule:
    """A capability bit forced to evaluate as granted.

    Attributes:
        bit: Capability bit (a single set bit, e.g. ``1 << 10``)
        granted: Forced result; overrides are additive so this is always True
        legacy_alias: Older identifier the host may use for the same capability
    """

    bit: int
    granted: bool = True
    legacy_alias: Hashable | None = None

    def __post_init__(self) -> None:
        if not self.granted:
            raise ValueError("Override rules are additive only, a forced denial is not allowed")
        if self.bit <= 0:
            raise ValueError(f"Capability bit must be positive, got {self.bit}")


@dataclass(frozen=True)
class SettingOverride:
    """A host setting forced to a fixed value (broad mode only)."""

    name: str
    value: Any


@dataclass(frozen=True)
class OverrideRuleSet:
    """Capability rules plus optional setting overrides.

    Attributes:
        rules: Capability rules, at most one per bit
        settings: Setting overrides; empty for the narrow rule set
    """

    rules: tuple[OverrideRule, ...]
    settings: tuple[SettingOverride, ...] = field(default_factory=tuple)

    def __post_init__(self) -> None:
        seen: set[int] = set()
        for rule in self.rules:
            if rule.bit in seen:
                raise ValueError(f"Duplicate override rule for capability bit {rule.bit:#x}")
            seen.add(rule.bit)

    @property
    def is_broad(self) -> bool:
        """True when host settings are forced as well."""
        return bool(self.settings)

    @classmethod
    def narrow(cls, bit: int, legacy_alias: Hashable | None = None) -> OverrideRuleSet:
        """Visibility marking only."""
        return cls(rules=(OverrideRule(bit=bit, legacy_alias=legacy_alias),))

    @classmethod
    def broad(
        cls,
        bit: int,
        legacy_alias: Hashable | None = None,
        settings: dict[str, Any] | Iterable[SettingOverride] = (),
    ) -> OverrideRuleSet:
        """Visibility marking plus forced host settings."""
        if isinstance(settings, dict):
            overrides = tuple(SettingOverride(name, value) for name, value in settings.items())
        else:
            overrides = tuple(settings)
        return cls(rules=(OverrideRule(bit=bit, legacy_alias=legacy_alias),), settings=overrides)


def as_bitmask(value: Any) -> int | None:
    """Coerce an integer-like value to int.

    Accepts ints, IntFlag members, objects implementing ``__index__`` and
    decimal strings (some host APIs serialise permissions as strings).
    Booleans are rejected.

    Returns:
        The integer, or None when the value is not integer-like
    """
    if isinstance(value, bool):
        return None
    if isinstance(value, str):
        text = value.strip()
        return int(text) if text.isdecimal() else None
    try:
        return operator.index(value)
    except TypeError:
        return None


class CapabilityOverridePolicy:
    """Decides whether an access-control query is short-circuited.

    Attributes:
        rule_set: Active rules
    """

    def __init__(self, rule_set: OverrideRuleSet) -> None:
        self.rule_set = rule_set
        self._by_bit = {rule.bit: rule for rule in rule_set.rules}
        self._by_alias: dict[Any, OverrideRule] = {}
        for rule in rule_set.rules:
            if rule.legacy_alias is None:
                continue
            try:
                self._by_alias[rule.legacy_alias] = rule
            except TypeError:
                logger.warning("Ignoring unhashable legacy alias %r", rule.legacy_alias)
        self._forced_bits = 0
        for rule in rule_set.rules:
            self._forced_bits |= rule.bit
        self._settings = {s.name: s.value for s in rule_set.settings}

    @property
    def forced_bits(self) -> int:
        """OR of every forced capability bit."""
        return self._forced_bits

    def matches(self, capability: Any) -> OverrideRule | None:
        """Find the rule covering a capability identifier.

        Args:
            capability: Identifier as passed by the host

        Returns:
            The matching rule or None
        """
        value = as_bitmask(capability)
        if value is not None and value in self._by_bit:
            return self._by_bit[value]
        try:
            return self._by_alias.get(capability)
        except TypeError:
            return None

    def evaluate(self, query: CapabilityQuery, fallback: Callable[[CapabilityQuery], bool]) -> bool:
        """Evaluate an access-control query.

        Args:
            query: Capability and subject being checked
            fallback: Host evaluation, called only when no rule matches

        Returns:
            True for an overridden capability, else whatever fallback returns
        """
        rule = self.matches(query.capability)
        if rule is not None:
            return rule.granted
        return fallback(query)

    def augment_raw_bitmask(self, bitmask: B) -> B:
        """OR the forced bits into a raw bitmask.

        Never clears bits and is idempotent. String input gives string output;
        values that are not integer-like are returned unchanged.
        """
        value = as_bitmask(bitmask)
        if value is None:
            logger.debug("Not augmenting non-integer bitmask %r", bitmask)
            return bitmask
        augmented = value | self._forced_bits
        if isinstance(bitmask, str):
            return str(augmented)  # type: ignore[return-value]
        if isinstance(bitmask, int) and type(bitmask) is not int:
            # Keep IntFlag and other int subclasses in their own type
            try:
                return type(bitmask)(augmented)  # type: ignore[return-value]
            except (TypeError, ValueError):
                return augmented  # type: ignore[return-value]
        return augmented  # type: ignore[return-value]

    def forces_setting(self, name: str) -> bool:
        """Check whether a host setting is overridden."""
        return isinstance(name, str) and name in self._settings

    def setting_value(self, name: str, fallback: Callable[[], Any]) -> Any:
        """Forced value for a host setting, else ``fallback()``."""
        if self.forces_setting(name):
            return self._settings[name]
        return fallback()

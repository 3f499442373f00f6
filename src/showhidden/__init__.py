"""showhidden - reveal hidden items in a host application without granting access.

Forces the host's "may view" capability check to pass so hidden items are
listed, and marks those items so they are distinguishable from items the
viewer can really see. Content stays withheld by the host.
"""

from showhidden.exceptions import HandlerFault, ShowHiddenError, TargetNotFound
from showhidden.locator import HostHandle, ImportLocator, Locator, StaticLocator
from showhidden.patcher import CallContext, HookEntry, HookKind, HookRegistry, get_registry
from showhidden.policy import (
    CapabilityOverridePolicy,
    CapabilityQuery,
    OverrideRule,
    OverrideRuleSet,
    SettingOverride,
)
from showhidden.session import OverrideSession, SessionState
from showhidden.visibility import Visibility, classify, is_hidden

__version__ = "0.1.0"

__all__ = [
    "CallContext",
    "CapabilityOverridePolicy",
    "CapabilityQuery",
    "HandlerFault",
    "HookEntry",
    "HookKind",
    "HookRegistry",
    "HostHandle",
    "ImportLocator",
    "Locator",
    "OverrideRule",
    "OverrideRuleSet",
    "OverrideSession",
    "SessionState",
    "SettingOverride",
    "ShowHiddenError",
    "StaticLocator",
    "TargetNotFound",
    "Visibility",
    "classify",
    "get_registry",
    "is_hidden",
]

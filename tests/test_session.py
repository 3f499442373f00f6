"""Tests for the override session lifecycle against a fake host."""

import logging
import types

import pytest

from showhidden.config import ShowHiddenConfig
from showhidden.locator import HostHandle, StaticLocator
from showhidden.patcher import HookRegistry
from showhidden.presentation import HIDDEN_CLASS, LockedView
from showhidden.session import OverrideSession, SessionState
from showhidden.visibility import Visibility

VIEW = 1 << 10
SEND = 1 << 11

HIDDEN = {"id": "hidden", "name": "staff", "topic": "staff only"}
VISIBLE = {"id": "visible", "name": "general"}


class FakePermissions:
    """Host permission store: channel id -> raw bitmask."""

    def __init__(self):
        self.grants = {"visible": VIEW | SEND, "hidden": SEND}

    def can(self, permission, subject):
        if not isinstance(permission, int):
            return False
        return bool(self.grants.get(subject["id"], 0) & permission)

    def get_channel_permissions(self, channel):
        return self.grants[channel["id"]]


class ChannelStore:
    grants = {"visible": VIEW, "hidden": SEND}

    @staticmethod
    def lookup(channel):
        return ChannelStore.grants[channel["id"]]


class FakeStyles:
    def __init__(self, fail=False):
        self.styles = {}
        self.removed = []
        self.fail = fail

    def add_style(self, name, css):
        if self.fail:
            raise RuntimeError("no document")
        self.styles[name] = css

    def remove_style(self, name):
        self.removed.append(name)
        self.styles.pop(name, None)


class FakeToasts:
    def __init__(self):
        self.shown = []

    def show_toast(self, message, options=None):
        self.shown.append((message, options))


def make_sidebar():
    module = types.ModuleType("fake_sidebar")

    def render_item(props):
        return {"props": {"className": "channel", "children": props["target"]["name"]}}

    def render_content(props):
        return {"messages": ["hello"], "channel": props["target"]["id"]}

    def get_setting(name):
        return {"show_all_channels": False, "opted_in": False, "theme": "dark"}[name]

    module.render_item = render_item
    module.render_content = render_content
    module.get_setting = get_setting
    return module


@pytest.fixture
def perms():
    return FakePermissions()


@pytest.fixture
def sidebar():
    return make_sidebar()


@pytest.fixture
def styles():
    return FakeStyles()


@pytest.fixture
def toasts():
    return FakeToasts()


@pytest.fixture
def registry():
    reg = HookRegistry()
    yield reg
    reg.clear()


@pytest.fixture
def locator(perms, sidebar, styles, toasts):
    return StaticLocator(
        access_query=HostHandle(perms, "can"),
        bitmask_lookup=HostHandle(perms, "get_channel_permissions"),
        item_renderer=HostHandle(sidebar, "render_item"),
        content_renderer=HostHandle(sidebar, "render_content"),
        setting_getter=HostHandle(sidebar, "get_setting"),
        style_service=styles,
        toast_service=toasts,
    )


@pytest.fixture
def session(registry):
    sess = OverrideSession(config=ShowHiddenConfig(), registry=registry)
    yield sess
    sess.stop()


class TestStart:
    """Test a full start against a complete host."""

    def test_starts_active_without_degradation(self, session, locator, toasts):
        assert session.start(locator) is SessionState.ACTIVE
        assert session.is_active
        assert session.degraded == []
        assert toasts.shown == []

    def test_view_capability_forced(self, session, locator, perms):
        session.start(locator)

        assert perms.can(VIEW, HIDDEN) is True
        assert perms.can(VIEW, VISIBLE) is True

    def test_legacy_alias_forced(self, session, locator, perms):
        session.start(locator)

        assert perms.can("VIEW_CHANNEL", HIDDEN) is True

    def test_keyword_arguments_forced(self, session, locator, perms):
        session.start(locator)

        assert perms.can(permission=VIEW, subject=HIDDEN) is True

    def test_other_capabilities_untouched(self, session, locator, perms):
        session.start(locator)

        assert perms.can(SEND, HIDDEN) is True
        assert perms.can(1, HIDDEN) is False
        assert perms.can("SEND_MESSAGES", HIDDEN) is False

    def test_bitmask_augmented_but_classified_raw(self, session, locator, perms):
        session.start(locator)

        assert perms.get_channel_permissions(HIDDEN) == SEND | VIEW
        assert session.can_classify
        assert session.visibility_of(HIDDEN) is Visibility.HIDDEN
        assert session.visibility_of(VISIBLE) is Visibility.VISIBLE

    def test_hidden_items_marked(self, session, locator, sidebar):
        session.start(locator)

        hidden = sidebar.render_item({"target": HIDDEN})
        visible = sidebar.render_item({"target": VISIBLE})

        assert hidden["props"]["className"] == f"channel {HIDDEN_CLASS}"
        assert visible["props"]["className"] == "channel"

    def test_hidden_content_locked(self, session, locator, sidebar):
        session.start(locator)

        view = sidebar.render_content({"target": HIDDEN})

        assert isinstance(view, LockedView)
        assert view.target_id == "hidden"
        assert view.title == session.config.locked_title
        assert view.description == "staff only"
        assert sidebar.render_content({"target": VISIBLE})["messages"] == ["hello"]

    def test_styles_injected(self, session, locator, styles):
        session.start(locator)

        css = styles.styles[session.config.style_namespace]
        assert HIDDEN_CLASS in css

    def test_narrow_mode_leaves_settings(self, session, locator, sidebar):
        session.start(locator)

        assert sidebar.get_setting("show_all_channels") is False

    def test_broad_mode_forces_settings(self, registry, locator, sidebar):
        session = OverrideSession(config=ShowHiddenConfig(mode="broad"), registry=registry)
        session.start(locator)

        assert sidebar.get_setting("show_all_channels") is True
        assert sidebar.get_setting("opted_in") is True
        assert sidebar.get_setting("theme") == "dark"
        session.stop()

    def test_double_start_is_noop(self, session, locator, registry, styles):
        session.start(locator)
        installed = len(registry.entries())

        assert session.start(locator) is SessionState.ACTIVE
        assert len(registry.entries()) == installed
        assert len(styles.styles) == 1

    def test_handler_fault_keeps_host_result(self, session, locator, sidebar, caplog):
        """An unknown channel makes the raw lookup raise inside the hook."""
        session.start(locator)
        unknown = {"id": "unknown", "name": "ghost"}

        with caplog.at_level(logging.ERROR):
            result = sidebar.render_item({"target": unknown})

        assert result["props"]["className"] == "channel"
        assert "failed: KeyError" in caplog.text


class TestStop:
    """Test teardown."""

    def test_restores_host(self, session, locator, perms, sidebar, registry):
        original_render = sidebar.render_item
        session.start(locator)

        session.stop()

        assert session.state is SessionState.INACTIVE
        assert perms.can(VIEW, HIDDEN) is False
        assert perms.get_channel_permissions(HIDDEN) == SEND
        assert "can" not in vars(perms)
        assert sidebar.render_item is original_render
        assert registry.entries() == []
        assert not session.can_classify
        assert session.visibility_of(HIDDEN) is None

    def test_removes_style_exactly_once(self, session, locator, styles):
        session.start(locator)

        session.stop()
        session.stop()

        assert styles.removed == [session.config.style_namespace]
        assert styles.styles == {}

    def test_stop_without_start(self, session, styles):
        session.stop()

        assert session.state is SessionState.INACTIVE
        assert styles.removed == []

    def test_restart(self, session, locator, perms, styles):
        session.start(locator)
        session.stop()
        session.start(locator)

        assert perms.can(VIEW, HIDDEN) is True
        assert session.config.style_namespace in styles.styles

    def test_other_owners_survive(self, session, locator, perms, registry):
        registry.install_after("other-plugin", perms, "get_channel_permissions", lambda ctx, result: result | 1)
        session.start(locator)

        session.stop()

        assert perms.get_channel_permissions(HIDDEN) == SEND | 1
        assert registry.is_hooked(perms, "get_channel_permissions")

    def test_classifies_past_other_class_level_augmenters(self, session, locator, perms, registry):
        registry.install_after("other-plugin", FakePermissions, "get_channel_permissions", lambda ctx, r: r | VIEW)

        session.start(locator)

        assert perms.get_channel_permissions(HIDDEN) == SEND | VIEW
        assert session.visibility_of(HIDDEN) is Visibility.HIDDEN

    def test_activated_context(self, session, locator, perms):
        with session.activated(locator) as active:
            assert active is session
            assert perms.can(VIEW, HIDDEN) is True

        assert not session.is_active
        assert perms.can(VIEW, HIDDEN) is False


class TestDegradation:
    """Test partial starts when host entry points are missing."""

    def test_only_access_query(self, session, perms, toasts, caplog):
        locator = StaticLocator(access_query=HostHandle(perms, "can"), toast_service=toasts)

        with caplog.at_level(logging.WARNING):
            assert session.start(locator) is SessionState.ACTIVE

        assert perms.can(VIEW, HIDDEN) is True
        assert session.degraded == ["raw bitmask lookup", "hidden item marking", "hidden item styling"]
        assert "TargetNotFound for raw bitmask lookup" in caplog.text
        assert len(toasts.shown) == 1
        message, options = toasts.shown[0]
        assert "reduced functionality" in message
        assert options == {"type": "warning"}

    def test_missing_member(self, session, perms, sidebar, styles):
        locator = StaticLocator(
            access_query=HostHandle(perms, "no_such_check"),
            bitmask_lookup=HostHandle(perms, "get_channel_permissions"),
            item_renderer=HostHandle(sidebar, "render_item"),
            style_service=styles,
        )

        session.start(locator)

        assert session.degraded == ["capability override"]
        assert perms.can(VIEW, HIDDEN) is False
        hidden = sidebar.render_item({"target": HIDDEN})
        assert HIDDEN_CLASS in hidden["props"]["className"]

    def test_content_renderer_is_optional(self, session, locator):
        locator.content_renderer = None

        session.start(locator)

        assert session.degraded == []

    def test_locator_failure_degrades(self, session, locator):
        def broken():
            raise RuntimeError("host changed")

        locator.find_item_renderer = broken

        session.start(locator)

        assert session.degraded == ["hidden item marking"]

    def test_style_failure(self, session, locator):
        locator.style_service = FakeStyles(fail=True)

        session.start(locator)
        session.stop()

        assert session.degraded == ["hidden item styling"]
        assert locator.style_service.removed == []

    def test_notify_disabled(self, registry, perms, toasts):
        session = OverrideSession(config=ShowHiddenConfig(notify=False), registry=registry)

        session.start(StaticLocator(access_query=HostHandle(perms, "can"), toast_service=toasts))

        assert session.degraded
        assert toasts.shown == []
        session.stop()

    def test_lookup_located_on_class(self, session, perms, sidebar, styles, caplog):
        """An instance method found on the class cannot read raw bitmasks."""
        locator = StaticLocator(
            access_query=HostHandle(FakePermissions, "can"),
            bitmask_lookup=HostHandle(FakePermissions, "get_channel_permissions"),
            item_renderer=HostHandle(sidebar, "render_item"),
            style_service=styles,
        )

        with caplog.at_level(logging.WARNING):
            session.start(locator)
            rendered = sidebar.render_item({"target": HIDDEN})

        assert session.degraded == ["raw bitmask lookup", "hidden item marking"]
        assert not session.can_classify
        assert session.visibility_of(HIDDEN) is None
        assert rendered["props"]["className"] == "channel"
        assert perms.can(VIEW, HIDDEN) is True
        assert perms.get_channel_permissions(HIDDEN) == SEND | VIEW
        assert "instance method" in caplog.text
        assert "failed" not in caplog.text

    def test_static_lookup_on_class(self, session, sidebar, styles):
        locator = StaticLocator(
            bitmask_lookup=HostHandle(ChannelStore, "lookup"),
            item_renderer=HostHandle(sidebar, "render_item"),
            style_service=styles,
        )

        session.start(locator)

        assert session.degraded == ["capability override"]
        assert ChannelStore.lookup(HIDDEN) == SEND | VIEW
        assert session.visibility_of(HIDDEN) is Visibility.HIDDEN
        assert HIDDEN_CLASS in sidebar.render_item({"target": HIDDEN})["props"]["className"]

    def test_nothing_found(self, session):
        assert session.start(StaticLocator()) is SessionState.ACTIVE
        assert "capability override" in session.degraded
        session.stop()
        assert session.state is SessionState.INACTIVE

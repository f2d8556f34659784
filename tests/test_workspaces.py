"""
Tests for the workspace registry: startup, switching, adjacency,
add/rename/remove and reconfiguration.
"""

from unittest.mock import patch

import pytest

from sartwc_control.errors import ErrorCode, WorkspaceError
from sartwc_control.workspaces import WorkspaceRegistry, parse_workspace_index


class TestStartup:
    def test_starts_with_single_workspace(self, registry, compositor):
        assert registry.names() == ["1"]
        assert len(registry) == 1
        assert registry.current is registry.by_index(1)
        assert registry.last is None
        assert registry.current.tree.enabled
        assert len(registry.current.handles) == 2
        assert all(handle.active for handle in registry.current.handles)
        assert [h.name for h in compositor.cosmic.handles] == ["1"]
        assert [h.name for h in compositor.ext.handles] == ["1"]

    def test_startup_overwrites_persisted_state(self, compositor, indicator, store, events):
        store.save(["mail", "web", "chat"])

        registry = WorkspaceRegistry(
            compositor.scene, compositor.views, compositor.groups, indicator, store, events
        )

        assert registry.names() == ["1"]
        assert store.load() == ["1"]


class TestAdd:
    def test_add_synthesizes_next_ordinal(self, registry, subscriber):
        workspace = registry.add()

        assert workspace.name == "2"
        assert registry.names() == ["1", "2"]
        assert registry.store.load() == ["1", "2"]
        assert subscriber.lines == ["EVENT workspace-list-changed current=1 count=2\n"]

    def test_added_workspace_is_hidden_and_inactive(self, registry):
        workspace = registry.add("web")

        assert registry.current is not workspace
        assert not workspace.tree.enabled
        assert not any(handle.active for handle in workspace.handles)

    def test_synthesized_names_are_not_deduplicated(self, registry):
        registry.add()
        registry.add()
        registry.remove(1)

        registry.add()

        assert registry.names() == ["2", "3", "3"]

    def test_add_rejects_line_breaks(self, registry, subscriber):
        with pytest.raises(WorkspaceError) as exc_info:
            registry.add("a\nb")

        assert exc_info.value.code == ErrorCode.INVALID_NAME
        assert registry.names() == ["1"]
        assert subscriber.lines == []


class TestRename:
    def test_rename_updates_handles_and_persists(self, registry, compositor, subscriber):
        assert registry.rename(1, "mail") is True

        assert registry.names() == ["mail"]
        assert compositor.cosmic.handles[0].name == "mail"
        assert compositor.ext.handles[0].name == "mail"
        assert registry.store.load() == ["mail"]
        assert subscriber.events("workspace-list-changed") == [
            "EVENT workspace-list-changed current=1 count=1\n"
        ]

    def test_rename_to_same_name_is_silent(self, registry, subscriber):
        with patch.object(registry.store, "save", wraps=registry.store.save) as save:
            assert registry.rename(1, "1") is False
            save.assert_not_called()

        assert subscriber.lines == []

    def test_rename_rejects_out_of_range_index(self, registry):
        with pytest.raises(WorkspaceError) as exc_info:
            registry.rename(2, "web")
        assert exc_info.value.code == ErrorCode.INVALID_INDEX

    def test_rename_rejects_empty_name(self, registry):
        with pytest.raises(WorkspaceError) as exc_info:
            registry.rename(1, "")
        assert exc_info.value.code == ErrorCode.INVALID_NAME
        assert registry.names() == ["1"]


class TestRemove:
    def test_cannot_remove_only_workspace(self, registry, subscriber):
        with pytest.raises(WorkspaceError) as exc_info:
            registry.remove(1)

        assert exc_info.value.code == ErrorCode.LAST_WORKSPACE
        assert registry.names() == ["1"]
        assert subscriber.lines == []

    def test_remove_rejects_invalid_index(self, registry, make_workspaces):
        make_workspaces("a", "b")

        with pytest.raises(WorkspaceError) as exc_info:
            registry.remove(3)

        assert exc_info.value.code == ErrorCode.INVALID_INDEX
        assert registry.names() == ["a", "b"]

    def test_remove_current_switches_to_successor(self, registry, compositor, make_workspaces, subscriber):
        make_workspaces("a", "b", "c")
        b, c = registry.by_index(2), registry.by_index(3)
        registry.switch_to(b)
        view = compositor.views.create_view("term", workspace=b)
        subscriber.lines.clear()

        registry.remove(2)

        assert registry.names() == ["a", "c"]
        assert registry.current is c
        assert registry.last is c
        assert view.workspace is c
        assert c.tree.enabled
        assert subscriber.events("workspace-changed") == ["EVENT workspace-changed current=3\n"]
        assert subscriber.events("workspace-list-changed") == [
            "EVENT workspace-list-changed current=2 count=2\n"
        ]
        assert registry.store.load() == ["a", "c"]

    def test_remove_tail_falls_back_to_head(self, registry, compositor, make_workspaces):
        make_workspaces("a", "b", "c")
        a, c = registry.by_index(1), registry.by_index(3)
        view = compositor.views.create_view("term", workspace=c)

        registry.remove(3)

        assert registry.names() == ["a", "b"]
        assert view.workspace is a
        assert registry.current is a

    def test_remove_repoints_last(self, registry, make_workspaces):
        make_workspaces("a", "b", "c")
        b, c = registry.by_index(2), registry.by_index(3)
        registry.switch_to(c)
        assert registry.last is registry.by_index(1)

        registry.remove(1)

        assert registry.current is c
        assert registry.last is b

    def test_remove_releases_tree_and_handles(self, registry, compositor, make_workspaces):
        make_workspaces("a", "b")
        workspace = registry.by_index(2)
        tree = workspace.tree
        handles = list(workspace.handles)

        registry.remove(2)

        assert tree.destroyed
        assert handles and all(handle.destroyed for handle in handles)
        assert len(compositor.cosmic.live_handles()) == 1
        assert len(compositor.ext.live_handles()) == 1

    @pytest.mark.parametrize(
        "steps",
        [
            ["remove 1", "add", "remove 1", "remove 1"],
            ["add", "add", "remove 3", "remove 2", "remove 1", "remove 1"],
            ["add", "rename 2 web", "remove 1", "add", "remove 2", "remove 1"],
            ["add", "add", "switch 3", "remove 3", "remove 2", "remove 1", "add", "remove 1"],
        ],
    )
    def test_never_drops_below_one_workspace(self, registry, steps):
        for step in steps:
            op, *args = step.split()
            try:
                if op == "add":
                    registry.add()
                elif op == "rename":
                    registry.rename(int(args[0]), args[1])
                elif op == "switch":
                    registry.switch_to(registry.by_index(int(args[0])))
                else:
                    registry.remove(int(args[0]))
            except WorkspaceError:
                pass

            assert len(registry) >= 1
            assert registry.current in list(registry)
            assert len(registry.store.load()) == len(registry)


class TestSwitch:
    def test_switch_updates_pointers_and_emits_once(self, registry, compositor, make_workspaces, subscriber):
        make_workspaces("A", "B", "C")
        b, c = registry.by_index(2), registry.by_index(3)
        registry.switch_to(b)
        subscriber.lines.clear()

        registry.switch_to(c)

        assert registry.current is c
        assert registry.last is b
        assert subscriber.events("workspace-changed") == ["EVENT workspace-changed current=3\n"]
        assert compositor.scene.enabled_trees() == [c.tree]
        assert all(handle.active for handle in c.handles)
        assert not any(handle.active for handle in b.handles)

    def test_switch_to_current_is_noop(self, registry, compositor, subscriber):
        cursor_updates = compositor.views.cursor_updates

        registry.switch_to(registry.current)

        assert subscriber.lines == []
        assert compositor.renderer.draws == []
        assert compositor.views.cursor_updates == cursor_updates
        assert registry.last is None

    def test_switch_moves_omnipresent_and_grabbed_views(self, registry, compositor, make_workspaces):
        make_workspaces("a", "b")
        a, b = registry.by_index(1), registry.by_index(2)
        views = compositor.views
        sticky = views.create_view("panel", visible_on_all_workspaces=True)
        dragged = views.create_view("editor")
        plain = views.create_view("term")
        views.grab(dragged)

        registry.switch_to(b)

        assert sticky.workspace is b
        assert dragged.workspace is b
        assert plain.workspace is a

    def test_switch_focuses_topmost_view_on_target(self, registry, compositor, make_workspaces):
        make_workspaces("a", "b")
        b = registry.by_index(2)
        views = compositor.views
        browser = views.create_view("browser", workspace=b)
        term = views.create_view("term")
        views.focus(term)

        registry.switch_to(b)

        assert views.active_view is browser

    def test_switch_keeps_focus_on_omnipresent_view(self, registry, compositor, make_workspaces):
        make_workspaces("a", "b")
        b = registry.by_index(2)
        views = compositor.views
        views.create_view("browser", workspace=b)
        sticky = views.create_view("panel", visible_on_all_workspaces=True)
        views.focus(sticky)

        registry.switch_to(b)

        assert views.active_view is sticky

    def test_switch_without_focus_update(self, registry, compositor, make_workspaces):
        make_workspaces("a", "b")
        b = registry.by_index(2)
        views = compositor.views
        views.create_view("browser", workspace=b)
        term = views.create_view("term")
        views.focus(term)

        registry.switch_to(b, update_focus=False)

        assert views.active_view is term

    def test_switch_refreshes_cursor_and_top_layer(self, registry, compositor, make_workspaces):
        make_workspaces("a", "b")
        before = (compositor.views.cursor_updates, compositor.views.top_layer_updates)

        registry.switch_to(registry.by_index(2))

        assert compositor.views.cursor_updates == before[0] + 1
        assert compositor.views.top_layer_updates == before[1] + 1

    def test_switch_shows_indicator(self, registry, compositor, make_workspaces):
        make_workspaces("a", "b")

        registry.switch_to(registry.by_index(2))

        assert compositor.renderer.draws == [(["a", "b"], "b")]
        assert registry.indicator.visible

    def test_indicator_suppressed_when_popup_time_zero(self, registry, compositor, make_workspaces):
        make_workspaces("a", "b")
        registry.indicator.popup_time_ms = 0

        registry.switch_to(registry.by_index(2))

        assert compositor.renderer.draws == []
        assert registry.current is registry.by_index(2)


class TestFind:
    @pytest.mark.parametrize(
        "value,expected",
        [("2nd desktop", 0), ("-50", 0), ("0", 0), ("124", 124), ("1.24", 0), ("+2", 0), (" 2", 0), ("", 0)],
    )
    def test_parse_workspace_index(self, value, expected):
        assert parse_workspace_index(value) == expected

    def test_symbolic_targets(self, registry, make_workspaces):
        make_workspaces("a", "b", "c", "d")
        a, b = registry.by_index(1), registry.by_index(2)

        assert registry.find(a, "current") is a
        assert registry.find(a, "last") is None

        registry.switch_to(b)
        assert registry.find(b, "LAST") is a
        assert registry.find(b, "Current") is b

    def test_left_right_at_boundaries(self, registry, make_workspaces):
        make_workspaces("a", "b", "c", "d")
        a, b, d = registry.by_index(1), registry.by_index(2), registry.by_index(4)

        assert registry.find(a, "right") is b
        assert registry.find(a, "left") is None
        assert registry.find(a, "left", wrap=True) is d
        assert registry.find(d, "right") is None
        assert registry.find(d, "right", wrap=True) is a

    def test_index_and_name_lookup(self, registry, make_workspaces):
        make_workspaces("a", "b", "c")
        a, c = registry.by_index(1), registry.by_index(3)

        assert registry.find(a, "3") is c
        assert registry.find(a, "c") is c
        assert registry.find(a, "0") is None
        assert registry.find(a, "nope") is None
        assert registry.find(a, None) is None

    def test_index_takes_precedence_over_numeric_name(self, registry, make_workspaces):
        make_workspaces("10", "20")
        first, second = registry.by_index(1), registry.by_index(2)

        assert registry.find(first, "2") is second
        # Out of range as an index, so it falls back to name matching
        assert registry.find(first, "10") is first

    def test_name_lookup_returns_first_match(self, registry, make_workspaces):
        make_workspaces("web", "web")

        assert registry.find(registry.current, "web") is registry.by_index(1)

    def test_occupied_search(self, registry, compositor, make_workspaces):
        make_workspaces("a", "b", "c", "d")
        a, b, c, d = (registry.by_index(i) for i in range(1, 5))
        compositor.views.create_view("term", workspace=c)
        compositor.views.create_view("panel", workspace=b, visible_on_all_workspaces=True)

        assert registry.find(a, "right-occupied") is c
        assert registry.find(d, "right-occupied") is None
        assert registry.find(d, "right-occupied", wrap=True) is c
        assert registry.find(a, "left-occupied") is None
        assert registry.find(a, "Left-Occupied", wrap=True) is c

    @pytest.mark.parametrize("wrap", [False, True])
    @pytest.mark.parametrize("direction", ["left-occupied", "right-occupied"])
    def test_occupied_search_with_only_anchor_occupied(self, registry, compositor, make_workspaces, wrap, direction):
        make_workspaces("a", "b", "c")
        b = registry.by_index(2)
        compositor.views.create_view("term", workspace=b)

        assert registry.find(b, direction, wrap=wrap) is None

    def test_occupied_search_with_single_workspace(self, registry, compositor):
        compositor.views.create_view("term")

        assert registry.find(registry.current, "right-occupied", wrap=True) is None
        assert registry.find(registry.current, "left-occupied", wrap=True) is None


class TestActivateRequest:
    def test_activate_request_switches(self, registry, compositor, make_workspaces, subscriber):
        make_workspaces("a", "b", "c")
        c = registry.by_index(3)

        compositor.cosmic.activate(c.id)

        assert registry.current is c
        assert subscriber.events("workspace-changed") == ["EVENT workspace-changed current=3\n"]

    def test_activate_request_for_unknown_id_is_ignored(self, registry, compositor, make_workspaces, subscriber):
        make_workspaces("a", "b")
        current = registry.current
        subscriber.lines.clear()

        compositor.ext.activate(9999)

        assert registry.current is current
        assert subscriber.lines == []


class TestReconfigure:
    def test_persisted_state_wins_over_declared(self, registry, subscriber):
        assert registry.reconfigure(["a", "b"]) is False

        assert registry.names() == ["1"]
        assert subscriber.lines == []

    def test_declared_used_without_persisted_state(self, registry, compositor, subscriber):
        registry.store.path.unlink()

        assert registry.reconfigure(["a", "b", "c"]) is True

        assert registry.names() == ["a", "b", "c"]
        assert [h.name for h in compositor.cosmic.live_handles()] == ["a", "b", "c"]
        assert registry.store.load() == ["a", "b", "c"]
        assert subscriber.lines == ["EVENT workspace-list-changed current=1 count=3\n"]

    def test_shrink_moves_everything_to_first(self, registry, compositor, make_workspaces, subscriber):
        make_workspaces("a", "b", "c")
        first, b, c = registry.by_index(1), registry.by_index(2), registry.by_index(3)
        registry.switch_to(c)
        on_b = compositor.views.create_view("term", workspace=b)
        on_c = compositor.views.create_view("editor", workspace=c)
        registry.store.save(["x"])
        subscriber.lines.clear()

        assert registry.reconfigure(["ignored"]) is True

        assert registry.names() == ["x"]
        assert registry.current is first
        assert registry.last is first
        assert on_b.workspace is first
        assert on_c.workspace is first
        assert subscriber.events("workspace-list-changed") == [
            "EVENT workspace-list-changed current=1 count=1\n"
        ]
        assert len(subscriber.events("workspace-changed")) == 1

    def test_empty_source_is_ignored(self, registry):
        registry.store.path.unlink()

        assert registry.reconfigure([]) is False
        assert registry.names() == ["1"]


def test_close_destroys_all_workspaces(registry, compositor, make_workspaces):
    make_workspaces("a", "b")

    registry.close()

    assert len(registry) == 0
    assert all(tree.destroyed for tree in compositor.scene.trees)
    assert compositor.cosmic.live_handles() == []

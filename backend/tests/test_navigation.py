"""Tests for the navigation state machine."""

import asyncio
from unittest.mock import AsyncMock

import pytest

from conftest import FakeEditor, FakeProbe
from gestures import Gesture
from id_utils import MalformedIdError
from metadata_store import LabelMeta, MetadataStore
from navigation import GridKind, NavigationEngine, ViewState
from tools import LabelCommitError


FAMILY = {
    "100000", "100000.1",
    "110000", "130000", "140000", "140000.1",
    "141000", "145000",
}


@pytest.fixture
def probe():
    return FakeProbe(existing=FAMILY)


@pytest.fixture
def engine(probe, store, config):
    return NavigationEngine("140000", probe, store, config=config)


# ============================================================================
# Construction and anchor
# ============================================================================

class TestAnchor:
    """setAnchor, start and URL reflection."""

    @pytest.mark.asyncio
    async def test_start(self, engine):
        snapshot = await engine.start()
        assert snapshot["state"] == "viewing"
        assert snapshot["anchor"]["id"] == "140000"
        assert snapshot["anchor"]["placeholder"] is False
        assert snapshot["fragment"] == "#id=140000"
        assert snapshot["history"] == []

    def test_malformed_start(self, probe, store):
        with pytest.raises(MalformedIdError):
            NavigationEngine("14x000", probe, store)

    def test_wrong_width_start(self, probe, store):
        with pytest.raises(MalformedIdError):
            NavigationEngine("14000", probe, store)

    @pytest.mark.asyncio
    async def test_set_anchor_pushes_previous(self, engine):
        await engine.set_anchor("141000")
        assert engine.anchor_id == "141000"
        assert engine.history == ["140000"]

    @pytest.mark.asyncio
    async def test_set_anchor_without_history(self, engine):
        await engine.set_anchor("141000", push_history=False)
        assert engine.history == []

    @pytest.mark.asyncio
    async def test_missing_photo_still_navigates(self, engine):
        snapshot = await engine.set_anchor("142000")
        assert engine.anchor_id == "142000"
        assert snapshot["anchor"]["placeholder"] is True
        assert snapshot["anchor"]["artifact_ref"] == ""

    @pytest.mark.asyncio
    async def test_location_callback(self, probe, store):
        fragments = []
        engine = NavigationEngine("140000", probe, store, on_anchor_change=fragments.append)
        await engine.start()
        await engine.set_anchor("145000")
        assert fragments == ["#id=140000", "#id=145000"]

    @pytest.mark.asyncio
    async def test_anchor_label(self, engine, store):
        store.put("141000", LabelMeta(name="Ada"))
        snapshot = await engine.set_anchor("141000")
        assert snapshot["anchor"]["display_name"] == "Ada"


# ============================================================================
# Grids
# ============================================================================

class TestGrids:
    """Swipes that open relationship grids."""

    @pytest.mark.asyncio
    async def test_swipe_down_opens_children(self, engine):
        snapshot = await engine.handle_gesture(Gesture.DOWN)
        assert snapshot["state"] == "grid-open"
        assert snapshot["grid"]["kind"] == "children"
        assert [c["id"] for c in snapshot["grid"]["cards"]] == ["141000", "145000"]

    @pytest.mark.asyncio
    async def test_swipe_left_opens_siblings(self, engine):
        snapshot = await engine.handle_gesture("left")
        assert engine.grid.kind is GridKind.SIBLINGS
        assert [c["id"] for c in snapshot["grid"]["cards"]] == ["110000", "130000"]

    @pytest.mark.asyncio
    async def test_swipe_up_opens_parents(self, engine):
        await engine.handle_gesture(Gesture.UP)
        cards = engine.grid.cards
        assert [c.id for c in cards] == ["100000", "100000.1"]
        assert [c.placeholder for c in cards] == [False, False]

    @pytest.mark.asyncio
    async def test_second_parent_placeholder(self, probe, store):
        probe.existing.discard("100000.1")
        engine = NavigationEngine("140000", probe, store)
        await engine.handle_gesture(Gesture.UP)
        assert [(c.id, c.placeholder) for c in engine.grid.cards] == [("100000", False), ("100000.1", True)]

    @pytest.mark.asyncio
    async def test_top_level_parents_grid_is_empty(self, probe, store):
        engine = NavigationEngine("000000", probe, store)
        snapshot = await engine.handle_gesture(Gesture.UP)
        assert snapshot["state"] == "grid-open"
        assert snapshot["grid"]["cards"] == []

    @pytest.mark.asyncio
    async def test_root_siblings_grid_is_empty(self, probe, store):
        engine = NavigationEngine("000000", probe, store)
        snapshot = await engine.handle_gesture(Gesture.LEFT)
        assert snapshot["grid"]["kind"] == "siblings"
        assert snapshot["grid"]["cards"] == []
        assert probe.calls == []

    @pytest.mark.asyncio
    async def test_empty_children_grid(self, probe, store):
        engine = NavigationEngine("145000", probe, store)
        snapshot = await engine.handle_gesture(Gesture.DOWN)
        assert snapshot["grid"]["kind"] == "children"
        assert snapshot["grid"]["cards"] == []

    @pytest.mark.asyncio
    async def test_tap_tile_navigates(self, engine):
        await engine.handle_gesture(Gesture.DOWN)
        snapshot = await engine.tap_tile("145000")
        assert snapshot["state"] == "viewing"
        assert engine.grid is None
        assert engine.anchor_id == "145000"
        assert engine.history == ["140000"]

    @pytest.mark.asyncio
    async def test_tap_unknown_tile(self, engine):
        await engine.handle_gesture(Gesture.DOWN)
        with pytest.raises(ValueError):
            await engine.tap_tile("149000")

    @pytest.mark.asyncio
    async def test_tap_without_grid_ignored(self, engine):
        await engine.tap_tile("145000")
        assert engine.anchor_id == "140000"

    @pytest.mark.asyncio
    async def test_back_closes_grid_without_pop(self, engine):
        await engine.set_anchor("141000")
        await engine.handle_gesture(Gesture.LEFT)
        snapshot = await engine.handle_gesture(Gesture.BACK)
        assert snapshot["state"] == "viewing"
        assert engine.anchor_id == "141000"
        assert engine.history == ["140000"]

    @pytest.mark.asyncio
    async def test_swipes_ignored_while_grid_open(self, engine):
        await engine.handle_gesture(Gesture.DOWN)
        await engine.handle_gesture(Gesture.LEFT)
        assert engine.grid.kind is GridKind.CHILDREN

    @pytest.mark.asyncio
    async def test_set_anchor_closes_grid(self, engine):
        await engine.handle_gesture(Gesture.DOWN)
        await engine.set_anchor("130000")
        assert engine.state is ViewState.VIEWING


# ============================================================================
# Spouse toggle and history
# ============================================================================

class TestSpouseAndHistory:
    """Swipe-right and back navigation."""

    @pytest.mark.asyncio
    async def test_swipe_right_to_spouse(self, engine):
        await engine.handle_gesture(Gesture.RIGHT)
        assert engine.anchor_id == "140000.1"
        assert engine.history == ["140000"]

    @pytest.mark.asyncio
    async def test_swipe_right_back_from_spouse(self, probe, store):
        engine = NavigationEngine("140000.1", probe, store)
        await engine.handle_gesture(Gesture.RIGHT)
        assert engine.anchor_id == "140000"

    @pytest.mark.asyncio
    async def test_swipe_right_without_spouse_is_noop(self, probe, store):
        engine = NavigationEngine("141000", probe, store)
        snapshot = await engine.handle_gesture(Gesture.RIGHT)
        assert engine.anchor_id == "141000"
        assert engine.history == []
        assert snapshot["state"] == "viewing"
        assert snapshot["grid"] is None

    @pytest.mark.asyncio
    async def test_back_pops_history(self, engine):
        await engine.set_anchor("141000")
        await engine.set_anchor("145000")
        await engine.handle_gesture(Gesture.BACK)
        assert engine.anchor_id == "141000"
        assert engine.history == ["140000"]
        await engine.handle_gesture(Gesture.BACK)
        assert engine.anchor_id == "140000"
        assert engine.history == []

    @pytest.mark.asyncio
    async def test_back_with_empty_history(self, engine):
        snapshot = await engine.back()
        assert snapshot["anchor"]["id"] == "140000"

    @pytest.mark.asyncio
    async def test_small_swipe_does_nothing(self, engine, probe):
        snapshot = await engine.handle_swipe(10, 5)
        assert snapshot["state"] == "viewing"
        assert snapshot["grid"] is None
        assert probe.calls == []

    @pytest.mark.asyncio
    async def test_raw_swipe_dispatch(self, engine):
        await engine.handle_swipe(0, 120)
        assert engine.grid.kind is GridKind.CHILDREN


# ============================================================================
# Soft-edit
# ============================================================================

class TestLongPress:
    """Long-press soft-edit command."""

    @pytest.mark.asyncio
    async def test_long_press_saves_label(self, probe, store):
        editor = FakeEditor(LabelMeta(name="Rose", dob="1931"))
        engine = NavigationEngine("140000", probe, store, editor=editor)

        snapshot = await engine.handle_gesture(Gesture.LONG_PRESS)

        assert editor.requests == ["140000"]
        assert store.get("140000").name == "Rose"
        assert snapshot["anchor"]["display_name"] == "Rose"

    @pytest.mark.asyncio
    async def test_long_press_accepts_plain_dict(self, probe, store):
        engine = NavigationEngine("140000", probe, store)
        await engine.long_press(FakeEditor({"name": "Walter", "dob": None}))
        assert store.display_name("140000") == "Walter"

    @pytest.mark.asyncio
    async def test_cancelled_edit(self, probe, store):
        engine = NavigationEngine("140000", probe, store, editor=FakeEditor(None))
        await engine.handle_gesture(Gesture.LONG_PRESS)
        assert store.get("140000") is None

    @pytest.mark.asyncio
    async def test_long_press_without_editor(self, engine, store):
        await engine.handle_gesture(Gesture.LONG_PRESS)
        assert store.get("140000") is None

    @pytest.mark.asyncio
    async def test_long_press_ignored_with_grid_open(self, probe, store):
        editor = FakeEditor(LabelMeta(name="Rose"))
        engine = NavigationEngine("140000", probe, store, editor=editor)
        await engine.handle_gesture(Gesture.DOWN)
        await engine.handle_gesture(Gesture.LONG_PRESS)
        assert editor.requests == []

    @pytest.mark.asyncio
    async def test_label_shown_when_remote_commit_fails(self, probe):
        remote = AsyncMock()
        remote.commit.side_effect = LabelCommitError("GitHub write failed", status_code=500)
        store = MetadataStore({}, namespace="test", remote=remote)
        engine = NavigationEngine("140000", probe, store, editor=FakeEditor(LabelMeta(name="Rose")))
        await engine.start()

        with pytest.raises(LabelCommitError):
            await engine.handle_gesture(Gesture.LONG_PRESS)

        assert store.display_name("140000") == "Rose"
        assert engine.anchor_view.display_name == "Rose"
        assert engine.snapshot()["anchor"]["display_name"] == "Rose"
        remote.commit.assert_awaited_once_with("140000", {"name": "Rose", "dob": None})


# ============================================================================
# Stale probe results
# ============================================================================

class TestStaleResults:
    """Late probe answers must not overwrite newer state."""

    @pytest.mark.asyncio
    async def test_late_anchor_probe_discarded(self, store):
        gate = asyncio.Event()
        probe = FakeProbe(existing={"141000", "140000"}, gates={"141000": gate})
        engine = NavigationEngine("140000", probe, store)

        slow = asyncio.create_task(engine.set_anchor("141000"))
        await asyncio.sleep(0)
        await engine.set_anchor("142000")
        gate.set()
        await slow

        assert engine.anchor_id == "142000"
        assert engine.anchor_view.id == "142000"
        assert engine.anchor_view.placeholder is True

    @pytest.mark.asyncio
    async def test_late_grid_discarded_after_navigation(self, store):
        gate = asyncio.Event()
        probe = FakeProbe(existing={"141000"}, gates={"141000": gate})
        engine = NavigationEngine("140000", probe, store)

        slow = asyncio.create_task(engine.show_children())
        await asyncio.sleep(0)
        await engine.set_anchor("130000")
        gate.set()
        await slow

        assert engine.grid is None
        assert engine.anchor_id == "130000"

    @pytest.mark.asyncio
    async def test_newer_grid_wins(self, store):
        gate = asyncio.Event()
        probe = FakeProbe(existing={"141000", "110000"}, gates={"141000": gate})
        engine = NavigationEngine("140000", probe, store)

        slow = asyncio.create_task(engine.show_children())
        await asyncio.sleep(0)
        await engine.show_siblings()
        gate.set()
        await slow

        assert engine.grid.kind is GridKind.SIBLINGS

"""Anchor, history and grid state machine for swipe navigation."""

import logging
from dataclasses import asdict, dataclass, field
from enum import Enum
from typing import Any, Callable

from cards import Card, CardResolver
from config import NavigationConfig
from gestures import Gesture, classify_swipe
from id_utils import (
    anchor_fragment,
    children_ids,
    parent_id,
    parse_id,
    sibling_ids,
    spouse_toggle,
    spouses_of,
)
from metadata_store import LabelMeta, MetadataStore

logger = logging.getLogger("swipetree.navigation")


class ViewState(str, Enum):
    VIEWING = "viewing"
    GRID_OPEN = "grid-open"


class GridKind(str, Enum):
    CHILDREN = "children"
    SIBLINGS = "siblings"
    PARENTS = "parents"
    SPOUSE = "spouse-noop"


@dataclass
class GridState:
    kind: GridKind
    cards: list[Card] = field(default_factory=list)
    open: bool = True

    def to_dict(self) -> dict[str, Any]:
        return {
            "open": self.open,
            "kind": self.kind.value,
            "cards": [card.to_dict() for card in self.cards],
        }


@dataclass
class AnchorView:
    """What is currently on screen for the anchor."""
    id: str
    artifact_ref: str
    display_name: str = ""
    placeholder: bool = False

    def to_dict(self) -> dict[str, Any]:
        return asdict(self)


class NavigationEngine:
    """Drives navigation for one viewer.

    Args:
        start_id: initial anchor (already trimmed by the caller)
        probe: existence probe with ``probe(id)`` and ``artifact_ref(id)``
        store: metadata store for labels
        config: tree-wide constants
        editor: soft-edit collaborator with ``async request_edit(id) -> LabelMeta | None``
        on_anchor_change: called with the new location fragment on every anchor change

    Probe batches are tagged with a generation number. Results whose
    generation is no longer current are dropped, so a slow probe for an
    old anchor or grid never overwrites a newer one.
    """

    def __init__(
        self,
        start_id: str,
        probe,
        store: MetadataStore,
        config: NavigationConfig | None = None,
        editor=None,
        on_anchor_change: Callable[[str], None] | None = None,
    ):
        self.config = config or NavigationConfig()
        start_id = start_id.strip()
        parse_id(start_id, self.config.digit_width)

        self.probe = probe
        self.store = store
        self.editor = editor
        self.on_anchor_change = on_anchor_change
        self.resolver = CardResolver(probe, store)

        self.anchor_id = start_id
        self.anchor_view = self._pending_view(start_id)
        self.history: list[str] = []
        self.grid: GridState | None = None
        self.fragment = anchor_fragment(start_id)

        self._anchor_generation = 0
        self._grid_generation = 0

    # ------------------------------------------------------------------
    # State
    # ------------------------------------------------------------------

    @property
    def state(self) -> ViewState:
        return ViewState.GRID_OPEN if self.grid is not None else ViewState.VIEWING

    def snapshot(self) -> dict[str, Any]:
        return {
            "state": self.state.value,
            "anchor": self.anchor_view.to_dict(),
            "history": list(self.history),
            "grid": self.grid.to_dict() if self.grid else None,
            "fragment": self.fragment,
        }

    def _pending_view(self, person_id: str) -> AnchorView:
        return AnchorView(
            id=person_id,
            artifact_ref=self.probe.artifact_ref(person_id),
            display_name=self.store.display_name(person_id),
        )

    # ------------------------------------------------------------------
    # Anchor
    # ------------------------------------------------------------------

    async def start(self) -> dict[str, Any]:
        """Resolve the photograph for the start anchor."""
        self._reflect_location()
        await self._refresh_anchor(self._anchor_generation)
        return self.snapshot()

    async def set_anchor(self, person_id: str, push_history: bool = True) -> dict[str, Any]:
        """
        Make ``person_id`` the anchor.

        Any open grid is closed first. With ``push_history`` the previous
        anchor is pushed onto the history stack. The anchor always changes,
        even when no photograph exists for it.
        """
        person_id = person_id.strip()
        parse_id(person_id, self.config.digit_width)

        self.close_grid()
        if push_history and self.anchor_id:
            self.history.append(self.anchor_id)

        logger.info(f"Anchor {self.anchor_id} -> {person_id} (history depth {len(self.history)})")
        self.anchor_id = person_id
        self.anchor_view = self._pending_view(person_id)
        self._anchor_generation += 1
        self._reflect_location()

        await self._refresh_anchor(self._anchor_generation)
        return self.snapshot()

    async def _refresh_anchor(self, generation: int) -> None:
        person_id = self.anchor_id
        exists = await self.probe.probe(person_id)
        if generation != self._anchor_generation:
            logger.debug(f"Discarding stale anchor probe for {person_id}")
            return
        self.anchor_view = AnchorView(
            id=person_id,
            artifact_ref=self.probe.artifact_ref(person_id) if exists else "",
            display_name=self.store.display_name(person_id),
            placeholder=not exists,
        )
        if not exists:
            logger.info(f"No photograph for {person_id}, showing placeholder")

    def _reflect_location(self) -> None:
        self.fragment = anchor_fragment(self.anchor_id)
        if self.on_anchor_change is not None:
            self.on_anchor_change(self.fragment)

    # ------------------------------------------------------------------
    # Grids
    # ------------------------------------------------------------------

    def close_grid(self) -> dict[str, Any]:
        if self.grid is not None:
            logger.debug(f"Closing {self.grid.kind.value} grid")
        self.grid = None
        self._grid_generation += 1
        return self.snapshot()

    async def _open_grid(self, kind: GridKind, loader) -> dict[str, Any]:
        self._grid_generation += 1
        generation = self._grid_generation
        anchor_generation = self._anchor_generation

        cards = await loader()

        if generation != self._grid_generation or anchor_generation != self._anchor_generation:
            logger.debug(f"Discarding stale {kind.value} grid")
            return self.snapshot()
        self.grid = GridState(kind=kind, cards=cards)
        logger.info(f"Opened {kind.value} grid for {self.anchor_id} with {len(cards)} cards")
        return self.snapshot()

    async def show_children(self) -> dict[str, Any]:
        candidates = children_ids(self.anchor_id, self.config.digit_width, self.config.max_candidates)
        return await self._open_grid(GridKind.CHILDREN, lambda: self.resolver.resolve(candidates))

    async def show_siblings(self) -> dict[str, Any]:
        candidates = sibling_ids(self.anchor_id, self.config.digit_width, self.config.max_candidates)
        return await self._open_grid(GridKind.SIBLINGS, lambda: self.resolver.resolve(candidates))

    async def show_parents(self) -> dict[str, Any]:
        parent = parent_id(self.anchor_id, self.config.digit_width)

        async def load() -> list[Card]:
            if parent is None:
                return []
            # The parent's spouse stands in as the second parent
            second = spouses_of(parent)[0]
            found = await self.resolver.probe_all([parent, second])
            return [
                self.resolver.make_card(parent, placeholder=not found[0]),
                self.resolver.make_card(second, placeholder=not found[1]),
            ]

        if parent is None:
            logger.info(f"{self.anchor_id} is top-level, no parents")
        return await self._open_grid(GridKind.PARENTS, load)

    async def toggle_spouse(self) -> dict[str, Any]:
        """Jump between a person and their spouse, only if the photo exists."""
        candidate = spouse_toggle(self.anchor_id, self.config.digit_width)
        generation = self._anchor_generation
        exists = await self.probe.probe(candidate)
        if generation != self._anchor_generation:
            logger.debug(f"Discarding stale spouse probe for {candidate}")
            return self.snapshot()
        if not exists:
            logger.info(f"No photograph for spouse {candidate}, staying on {self.anchor_id}")
            return self.snapshot()
        return await self.set_anchor(candidate, push_history=True)

    async def tap_tile(self, person_id: str) -> dict[str, Any]:
        """Navigate to a tile of the open grid."""
        if self.grid is None:
            logger.debug(f"Tap on {person_id} with no grid open, ignoring")
            return self.snapshot()
        if person_id not in [card.id for card in self.grid.cards]:
            raise ValueError(f"'{person_id}' is not a tile in the open {self.grid.kind.value} grid")
        return await self.set_anchor(person_id, push_history=True)

    # ------------------------------------------------------------------
    # Back and soft-edit
    # ------------------------------------------------------------------

    async def back(self) -> dict[str, Any]:
        if self.grid is not None:
            return self.close_grid()
        if not self.history:
            logger.debug("History empty, back ignored")
            return self.snapshot()
        previous = self.history.pop()
        return await self.set_anchor(previous, push_history=False)

    async def long_press(self, editor=None) -> dict[str, Any]:
        """Ask the soft-edit collaborator for a new label and persist it."""
        if self.grid is not None:
            return self.snapshot()
        editor = editor or self.editor
        if editor is None:
            logger.debug("Long-press with no editor configured")
            return self.snapshot()

        person_id = self.anchor_id
        result = await editor.request_edit(person_id)
        if result is None:
            logger.info(f"Edit for {person_id} cancelled")
            return self.snapshot()

        # Local record and visible label update before the remote push
        saved = self.store.put(person_id, LabelMeta.model_validate(result))
        if self.anchor_id == person_id:
            self.anchor_view.display_name = saved.name or ""
        await self.store.push(person_id, saved)
        return self.snapshot()

    # ------------------------------------------------------------------
    # Dispatch
    # ------------------------------------------------------------------

    async def handle_gesture(self, gesture: Gesture | str, editor=None) -> dict[str, Any]:
        gesture = Gesture(gesture)
        logger.debug(f"Gesture {gesture.value} in state {self.state.value}")

        if gesture is Gesture.BACK:
            return await self.back()
        if gesture is Gesture.LONG_PRESS:
            return await self.long_press(editor)
        if self.grid is not None:
            logger.debug(f"Swipe {gesture.value} ignored while grid is open")
            return self.snapshot()

        if gesture is Gesture.DOWN:
            return await self.show_children()
        if gesture is Gesture.LEFT:
            return await self.show_siblings()
        if gesture is Gesture.UP:
            return await self.show_parents()
        return await self.toggle_spouse()

    async def handle_swipe(self, dx: float, dy: float) -> dict[str, Any]:
        gesture = classify_swipe(dx, dy, self.config.swipe_threshold)
        if gesture is None:
            return self.snapshot()
        return await self.handle_gesture(gesture)

"""Turns candidate IDs into displayable cards."""

import asyncio
import logging
from dataclasses import asdict, dataclass

from metadata_store import MetadataStore

logger = logging.getLogger("swipetree.cards")


@dataclass
class Card:
    """A person tile shown in a relationship grid."""
    id: str
    artifact_ref: str
    display_name: str = ""
    placeholder: bool = False

    def to_dict(self) -> dict:
        return asdict(self)


class CardResolver:
    """Probes candidates concurrently and keeps the ones that exist.

    ``probe`` is any object with ``async probe(id) -> bool`` and
    ``artifact_ref(id) -> str`` (see tools.image_probe.ImageProbe).
    """

    def __init__(self, probe, store: MetadataStore):
        self.probe = probe
        self.store = store

    def make_card(self, person_id: str, placeholder: bool = False) -> Card:
        return Card(
            id=person_id,
            artifact_ref=self.probe.artifact_ref(person_id),
            display_name=self.store.display_name(person_id),
            placeholder=placeholder,
        )

    async def probe_all(self, candidate_ids: list[str]) -> list[bool]:
        """Existence results in candidate order, once every probe has settled."""
        return list(await asyncio.gather(*(self.probe.probe(cid) for cid in candidate_ids)))

    async def resolve(self, candidate_ids: list[str]) -> list[Card]:
        """Cards for the candidates that exist, in the order they were given."""
        if not candidate_ids:
            return []
        results = await self.probe_all(candidate_ids)
        cards = [self.make_card(cid) for cid, exists in zip(candidate_ids, results) if exists]
        logger.debug(f"Resolved {len(cards)} of {len(candidate_ids)} candidates")
        return cards

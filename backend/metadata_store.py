"""Per-person display labels (name, date of birth), local-first."""

import json
import logging
import os
from collections.abc import MutableMapping
from typing import Iterator

from pydantic import BaseModel, ValidationError

logger = logging.getLogger("swipetree.metadata")


class LabelMeta(BaseModel):
    """Display metadata for one person."""
    name: str | None = None
    dob: str | None = None


def clean_display_name(name: str | None) -> str:
    """Strip non-breaking spaces and surrounding whitespace from a name."""
    if not name:
        return ""
    return name.replace("\u00a0", "").strip()


class JsonFileStorage(MutableMapping):
    """String key-value storage persisted to a single JSON file.

    Every write rewrites the file; reads are served from memory.
    """

    def __init__(self, path: str):
        self.path = path
        self._data: dict[str, str] = {}
        if os.path.exists(path):
            try:
                with open(path, encoding="utf-8") as f:
                    loaded = json.load(f)
                if isinstance(loaded, dict):
                    self._data = {str(k): str(v) for k, v in loaded.items()}
            except (OSError, ValueError) as e:
                logger.warning(f"Could not read metadata file {path}, starting empty: {e}")

    def _flush(self) -> None:
        tmp_path = f"{self.path}.tmp"
        with open(tmp_path, "w", encoding="utf-8") as f:
            json.dump(self._data, f, indent=2)
        os.replace(tmp_path, self.path)

    def __getitem__(self, key: str) -> str:
        return self._data[key]

    def __setitem__(self, key: str, value: str) -> None:
        self._data[key] = value
        self._flush()

    def __delitem__(self, key: str) -> None:
        del self._data[key]
        self._flush()

    def __iter__(self) -> Iterator[str]:
        return iter(self._data)

    def __len__(self) -> int:
        return len(self._data)


class MetadataStore:
    """Label lookup keyed by identifier.

    Records live under ``<namespace>.meta.<id>`` as JSON strings. A corrupt
    record reads as "no metadata". An optional remote (LabelCommitClient)
    receives saved labels and can seed missing local ones.
    """

    def __init__(self, storage: MutableMapping | None = None, namespace: str = "swipetree", remote=None):
        self.storage = storage if storage is not None else {}
        self.namespace = namespace
        self.remote = remote

    def key(self, person_id: str) -> str:
        return f"{self.namespace}.meta.{person_id}"

    def get(self, person_id: str) -> LabelMeta | None:
        raw = self.storage.get(self.key(person_id))
        if raw is None:
            return None
        try:
            return LabelMeta.model_validate_json(raw)
        except ValidationError:
            logger.warning(f"Ignoring malformed metadata for {person_id}")
            return None

    def display_name(self, person_id: str) -> str:
        meta = self.get(person_id)
        if meta is None:
            return ""
        return clean_display_name(meta.name)

    def put(self, person_id: str, meta: LabelMeta) -> LabelMeta:
        """Overwrite the local record for ``person_id``."""
        cleaned = LabelMeta(name=clean_display_name(meta.name) or None, dob=(meta.dob or "").strip() or None)
        self.storage[self.key(person_id)] = cleaned.model_dump_json()
        logger.info(f"Saved label for {person_id}")
        return cleaned

    async def push(self, person_id: str, meta: LabelMeta) -> None:
        """Send an already stored record to the remote, if one is configured."""
        if self.remote is not None:
            await self.remote.commit(person_id, meta.model_dump())

    async def save(self, person_id: str, meta: LabelMeta) -> LabelMeta:
        """Write locally, then push to the remote if one is configured.

        Remote failures propagate after the local write has been kept.
        """
        cleaned = self.put(person_id, meta)
        await self.push(person_id, cleaned)
        return cleaned

    async def refresh_from_remote(self) -> int:
        """Copy remote labels that have no local record. Returns how many were added."""
        if self.remote is None:
            return 0
        labels, _ = await self.remote.read_labels()
        added = 0
        for person_id, raw_meta in labels.items():
            if self.get(person_id) is not None:
                continue
            if not isinstance(raw_meta, dict):
                continue
            try:
                meta = LabelMeta.model_validate(raw_meta)
            except ValidationError:
                logger.warning(f"Skipping malformed remote label for {person_id}")
                continue
            self.put(person_id, meta)
            added += 1
        logger.info(f"Pulled {added} labels from remote")
        return added

"""
services/draft_cache.py

Local resilience mirror of in-progress answers and flags.

The draft is never authoritative: on reload it only fills questions the
server has no answer for. It is written synchronously on every mutation
and removed once the attempt has been finalized.
"""

import json
import logging
import os
import re
import tempfile
from typing import Dict, Iterable, Optional, Set

from pydantic import ValidationError

from practice_cbt.models.attempt_model import LocalDraft

logger = logging.getLogger(__name__)

_UNSAFE_CHARS = re.compile(r"[^A-Za-z0-9_.-]")


def draft_key(set_id: str, attempt_id: str) -> str:
    return f"practiceDraft:{set_id}:{attempt_id}"


# ── Storage backends ─────────────────────────────────────────────────────────

class MemoryDraftStorage:
    """Process-local key/value storage."""

    def __init__(self) -> None:
        self._items: Dict[str, str] = {}

    def get_item(self, key: str) -> Optional[str]:
        return self._items.get(key)

    def set_item(self, key: str, value: str) -> None:
        self._items[key] = value

    def remove_item(self, key: str) -> None:
        self._items.pop(key, None)


class FileDraftStorage:
    """One JSON file per key under ``directory``. Writes replace the file atomically."""

    def __init__(self, directory: str) -> None:
        self.directory = directory

    def _path(self, key: str) -> str:
        return os.path.join(self.directory, _UNSAFE_CHARS.sub("_", key) + ".json")

    def get_item(self, key: str) -> Optional[str]:
        path = self._path(key)
        if not os.path.exists(path):
            return None
        with open(path, "r", encoding="utf-8") as f:
            return f.read()

    def set_item(self, key: str, value: str) -> None:
        os.makedirs(self.directory, exist_ok=True)
        fd, tmp_path = tempfile.mkstemp(dir=self.directory, suffix=".tmp")
        try:
            with os.fdopen(fd, "w", encoding="utf-8") as f:
                f.write(value)
            os.replace(tmp_path, self._path(key))
        except OSError:
            if os.path.exists(tmp_path):
                os.remove(tmp_path)
            raise

    def remove_item(self, key: str) -> None:
        try:
            os.remove(self._path(key))
        except FileNotFoundError:
            pass


# ── Draft cache ──────────────────────────────────────────────────────────────

class DraftCache:
    """Snapshot/restore of one attempt's draft in a storage backend."""

    def __init__(self, storage, set_id: str, attempt_id: str) -> None:
        self.storage = storage
        self.key = draft_key(set_id, attempt_id)

    def load(self) -> Optional[LocalDraft]:
        """Return the stored draft, or None if missing or unreadable."""
        try:
            raw = self.storage.get_item(self.key)
        except OSError as e:
            logger.warning(f"draft read failed ({self.key}): {e}")
            return None
        if not raw:
            return None
        try:
            return LocalDraft.model_validate(json.loads(raw))
        except (json.JSONDecodeError, ValidationError) as e:
            logger.warning(f"ignoring malformed draft {self.key}: {e}")
            return None

    def snapshot(self, answers: Dict[str, str], flagged: Iterable[str]) -> None:
        """Persist the current answers and flags. Storage errors are logged, never raised."""
        draft = LocalDraft(answers=dict(answers), flagged={qid: True for qid in flagged})
        try:
            self.storage.set_item(self.key, draft.to_json())
        except OSError as e:
            logger.warning(f"draft write failed ({self.key}): {e}")

    def clear(self) -> None:
        try:
            self.storage.remove_item(self.key)
        except OSError as e:
            logger.warning(f"draft purge failed ({self.key}): {e}")


def merge_gaps(
    server_answers: Dict[str, str],
    draft: Optional[LocalDraft],
    valid_options: Dict[str, Set[str]],
) -> Dict[str, str]:
    """
    Server answers win; the draft only fills questions without a server answer.

    Args:
        server_answers: {question_id: option_id} restored from the store.
        draft:          Local draft (may be None).
        valid_options:  {question_id: {option_id, ...}} for the loaded set.
                        Draft entries outside it are dropped.

    Returns:
        Merged {question_id: option_id}. Only gap-filling entries are added.
    """
    merged = dict(server_answers)
    if draft is None:
        return merged
    for qid, oid in draft.answers.items():
        if qid in merged:
            continue
        if oid not in valid_options.get(qid, ()):
            logger.debug(f"draft answer dropped: {qid} -> {oid}")
            continue
        merged[qid] = oid
    return merged


def draft_flags(draft: Optional[LocalDraft], question_ids: Iterable[str]) -> Set[str]:
    if draft is None:
        return set()
    known = set(question_ids)
    return {qid for qid, on in draft.flagged.items() if on and qid in known}

import json
import tempfile
import unittest

from practice_cbt.models.attempt_model import LocalDraft
from practice_cbt.services.draft_cache import (
    DraftCache, FileDraftStorage, MemoryDraftStorage, draft_flags, draft_key, merge_gaps,
)


class DraftStorageTests(unittest.TestCase):
    def setUp(self) -> None:
        self.tmpdir = tempfile.TemporaryDirectory()
        self.storage = FileDraftStorage(self.tmpdir.name)

    def tearDown(self) -> None:
        self.tmpdir.cleanup()

    def test_file_storage_round_trip(self) -> None:
        key = draft_key("set/1", "att:9")
        self.assertIsNone(self.storage.get_item(key))
        self.storage.set_item(key, '{"a": 1}')
        self.assertEqual(self.storage.get_item(key), '{"a": 1}')
        self.storage.remove_item(key)
        self.assertIsNone(self.storage.get_item(key))
        self.storage.remove_item(key)

    def test_snapshot_uses_the_local_draft_format(self) -> None:
        cache = DraftCache(self.storage, "set-1", "att-1")
        cache.snapshot({"q1": "q1-o2"}, {"q3"})

        raw = json.loads(self.storage.get_item("practiceDraft:set-1:att-1"))
        self.assertEqual(raw["answers"], {"q1": "q1-o2"})
        self.assertEqual(raw["flagged"], {"q3": True})
        self.assertIsInstance(raw["updatedAt"], int)

        draft = cache.load()
        self.assertEqual(draft.answers, {"q1": "q1-o2"})
        cache.clear()
        self.assertIsNone(cache.load())

    def test_malformed_draft_is_ignored(self) -> None:
        storage = MemoryDraftStorage()
        storage.set_item(draft_key("s", "a"), "{not json")
        with self.assertLogs("practice_cbt.services.draft_cache", level="WARNING"):
            self.assertIsNone(DraftCache(storage, "s", "a").load())


class MergeGapsTests(unittest.TestCase):
    def setUp(self) -> None:
        self.valid = {"q1": {"q1-o1", "q1-o2"}, "q2": {"q2-o1", "q2-o2"}, "q3": {"q3-o1"}}

    def test_server_answers_win(self) -> None:
        draft = LocalDraft(answers={"q1": "q1-o2", "q2": "q2-o2"})
        merged = merge_gaps({"q1": "q1-o1"}, draft, self.valid)
        self.assertEqual(merged, {"q1": "q1-o1", "q2": "q2-o2"})

    def test_invalid_draft_entries_are_dropped(self) -> None:
        draft = LocalDraft(answers={"q3": "q1-o1", "q9": "q9-o1"})
        self.assertEqual(merge_gaps({}, draft, self.valid), {})

    def test_no_draft(self) -> None:
        self.assertEqual(merge_gaps({"q1": "q1-o1"}, None, self.valid), {"q1": "q1-o1"})

    def test_draft_flags_keep_known_true_entries(self) -> None:
        draft = LocalDraft(flagged={"q1": True, "q2": False, "q9": True})
        self.assertEqual(draft_flags(draft, ["q1", "q2", "q3"]), {"q1"})
        self.assertEqual(draft_flags(None, ["q1"]), set())


if __name__ == "__main__":
    unittest.main()

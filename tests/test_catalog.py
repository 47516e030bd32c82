from pathlib import Path
import os
import sys
import tempfile
import unittest
from unittest import mock

sys.path.append(str(Path(__file__).resolve().parents[1]))
sys.path.append(str(Path(__file__).resolve().parent))

from pymongo.errors import DuplicateKeyError, PyMongoError

from catalog import (
    CatalogEntry,
    CatalogReconciler,
    CatalogStore,
    canonical_key,
    title_from_filename,
)
from errors import CatalogValidationError
from media_scanner import MediaFile
from memory_db import MemoryDB


def _media(path):
    return MediaFile(name=os.path.basename(path), path=path, parent=os.path.dirname(path))


class TestCatalogEntry(unittest.TestCase):
    def test_validate_accepts_stub(self):
        CatalogEntry(path="/m/a.mp4", title="a", needs_resync=True).validate()

    def test_validate_rejects_bad_fields(self):
        cases = [
            dict(title=""),
            dict(title="x" * 101),
            dict(description="d" * 1001),
            dict(external_id=0),
            dict(external_id="12"),
            dict(poster="not a url"),
            dict(backdrop="ftp://example.com/a.jpg"),
        ]
        for overrides in cases:
            kwargs = dict(path="/m/a.mp4", title="ok")
            kwargs.update(overrides)
            with self.assertRaises(CatalogValidationError, msg=str(overrides)):
                CatalogEntry(**kwargs).validate()

    def test_from_document_ignores_unknown_keys(self):
        entry = CatalogEntry.from_document({'_id': 'x', 'path': '/a', 'title': 't', 'id': 3, 'extra': 1})
        self.assertEqual(entry.id, 3)
        self.assertEqual(entry.title, 't')


class TestHelpers(unittest.TestCase):
    def test_title_from_filename(self):
        self.assertEqual(title_from_filename("Movie.One.1080p.BrRip.mp4"), "Movie.One.1080p.BrRip")
        self.assertEqual(len(title_from_filename("x" * 150 + ".mkv")), 100)

    def test_canonical_key_normalises(self):
        base = tempfile.gettempdir()
        messy = os.path.join(base, "a", "..", "b", ".", "movie.mp4")
        self.assertEqual(canonical_key(messy), canonical_key(os.path.join(base, "b", "movie.mp4")))
        self.assertTrue(os.path.isabs(canonical_key("relative.mp4")))


class TestCatalogStore(unittest.TestCase):
    def setUp(self):
        self.db = MemoryDB()
        self.store = CatalogStore(self.db.media, self.db.seq)

    def test_find_or_create_then_find(self):
        entry, created = self.store.find_or_create("/m/a.mp4", {'title': 'a', 'needs_resync': True})
        self.assertTrue(created)
        self.assertEqual(entry.id, 1)
        self.assertTrue(entry.needs_resync)

        again, created_again = self.store.find_or_create("/m/a.mp4", {'title': 'other', 'needs_resync': True})
        self.assertFalse(created_again)
        self.assertEqual(again.id, 1)
        self.assertEqual(again.title, 'a')
        self.assertEqual(self.store.find_by_key("/m/a.mp4").id, 1)
        self.assertEqual(self.store.find_by_id(1).path, "/m/a.mp4")
        self.assertIsNone(self.store.find_by_key("/m/missing.mp4"))

    def test_ids_increase(self):
        first, _ = self.store.find_or_create("/m/a.mp4", {'title': 'a'})
        second, _ = self.store.find_or_create("/m/b.mp4", {'title': 'b'})
        self.assertEqual((first.id, second.id), (1, 2))

    def test_lost_race_counts_as_existing(self):
        winner = {'path': '/m/a.mp4', 'title': 'winner', 'id': 99, 'needs_resync': True}
        original = self.db.media.find_one_and_update

        def racing(*args, **kwargs):
            self.db.media.insert_one(winner)
            return original(*args, **kwargs)

        with mock.patch.object(self.db.media, 'find_one_and_update', side_effect=racing):
            entry, created = self.store.find_or_create('/m/a.mp4', {'title': 'loser', 'needs_resync': True})

        self.assertFalse(created)
        self.assertEqual(entry.id, 99)
        self.assertEqual(entry.title, 'winner')
        self.assertEqual(len(self.db.media._docs), 1)

    def test_duplicate_key_error_is_resolved_by_reread(self):
        self.db.media.insert_one({'path': '/m/a.mp4', 'title': 'winner', 'id': 7})
        with mock.patch.object(self.db.media, 'find_one', side_effect=[None, {'path': '/m/a.mp4', 'title': 'winner', 'id': 7}]):
            with mock.patch.object(self.db.media, 'find_one_and_update', side_effect=DuplicateKeyError('dup')):
                entry, created = self.store.find_or_create('/m/a.mp4', {'title': 'loser'})
        self.assertFalse(created)
        self.assertEqual(entry.id, 7)

    def test_save_validates_before_writing(self):
        entry, _ = self.store.find_or_create("/m/a.mp4", {'title': 'a', 'needs_resync': True})
        entry.title = ""
        with self.assertRaises(CatalogValidationError):
            self.store.save(entry)
        self.assertEqual(self.store.find_by_id(entry.id).title, 'a')

    def test_find_pending_excludes_resolved_and_unresolvable(self):
        self.store.find_or_create("/m/a.mp4", {'title': 'a', 'needs_resync': True})
        done, _ = self.store.find_or_create("/m/b.mp4", {'title': 'b', 'needs_resync': True})
        stuck, _ = self.store.find_or_create("/m/c.mp4", {'title': 'c', 'needs_resync': True})
        done.needs_resync = False
        done.external_id = 5
        stuck.unresolvable = True
        self.store.save(done)
        self.store.save(stuck)

        self.assertEqual([entry.path for entry in self.store.find_pending()], ["/m/a.mp4"])
        self.assertEqual(self.store.count_pending(), 1)
        self.assertEqual(len(self.store.find_all()), 3)

    def test_rejected_create_does_not_consume_an_id(self):
        with self.assertRaises(CatalogValidationError):
            self.store.find_or_create("/m/bad.mp4", {'title': ''})
        self.assertIsNone(self.db.seq.find_one({'name': 'media'}))

        entry, created = self.store.find_or_create("/m/good.mp4", {'title': 'good'})
        self.assertTrue(created)
        self.assertEqual(entry.id, 1)

    def test_count_pending_counts_server_side(self):
        self.store.find_or_create("/m/a.mp4", {'title': 'a', 'needs_resync': True})
        self.store.find_or_create("/m/b.mp4", {'title': 'b', 'needs_resync': True})
        self.store.find_or_create("/m/c.mp4", {'title': 'c'})

        with mock.patch.object(self.db.media, 'find', side_effect=AssertionError('find called')):
            self.assertEqual(self.store.count_pending(), 2)


class TestCatalogReconciler(unittest.TestCase):
    def setUp(self):
        self.db = MemoryDB()
        self.store = CatalogStore(self.db.media, self.db.seq)
        self.reconciler = CatalogReconciler(self.store)

    def test_creates_stub_entries(self):
        path = os.path.join(tempfile.gettempdir(), "Movie.One.1080p.BrRip.mp4")
        summary = self.reconciler.reconcile([_media(path)])

        self.assertEqual(summary, {'found': 1, 'created': 1, 'existing': 0, 'errors': 0})
        entry = self.store.find_by_key(canonical_key(path))
        self.assertEqual(entry.title, "Movie.One.1080p.BrRip")
        self.assertTrue(entry.needs_resync)
        self.assertIsNone(entry.external_id)

    def test_reconciling_twice_keeps_one_entry_and_user_edits(self):
        path = os.path.join(tempfile.gettempdir(), "Alien.mkv")
        self.reconciler.reconcile([_media(path)])
        entry = self.store.find_by_key(canonical_key(path))
        entry.title = "Alien (Director's Cut)"
        entry.favorite = True
        self.store.save(entry)

        summary = self.reconciler.reconcile([_media(path), _media(path)])

        self.assertEqual(summary['created'], 0)
        self.assertEqual(summary['existing'], 2)
        self.assertEqual(len(self.db.media._docs), 1)
        stored = self.store.find_by_key(canonical_key(path))
        self.assertEqual(stored.title, "Alien (Director's Cut)")
        self.assertTrue(stored.favorite)

    def test_store_failure_is_isolated(self):
        first = os.path.join(tempfile.gettempdir(), "a.mp4")
        second = os.path.join(tempfile.gettempdir(), "b.mp4")
        original = self.store.find_or_create
        calls = {'count': 0}

        def flaky(key, defaults):
            calls['count'] += 1
            if calls['count'] == 1:
                raise PyMongoError("connection reset")
            return original(key, defaults)

        with mock.patch.object(self.store, 'find_or_create', side_effect=flaky):
            with self.assertLogs('catalog', level='ERROR'):
                summary = self.reconciler.reconcile([_media(first), _media(second)])

        self.assertEqual(summary['errors'], 1)
        self.assertEqual(summary['created'], 1)
        self.assertIsNotNone(self.store.find_by_key(canonical_key(second)))


if __name__ == "__main__":
    unittest.main()

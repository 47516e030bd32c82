"""In-memory stand-ins for the pymongo collections used by the catalog."""
import threading

from pymongo.errors import DuplicateKeyError


class MemoryCollection:
    def __init__(self):
        self._docs = []
        self._lock = threading.RLock()
        self._unique_fields = set()

    def create_index(self, key, unique=False, **kwargs):
        if unique and isinstance(key, str):
            self._unique_fields.add(key)
        return key

    def _matches(self, doc, filter_):
        for key, expected in (filter_ or {}).items():
            value = doc.get(key)
            if isinstance(expected, dict):
                if '$ne' in expected and value == expected['$ne']:
                    return False
                if '$in' in expected and value not in expected['$in']:
                    return False
            elif value != expected:
                return False
        return True

    def _check_unique(self, candidate, ignore=None):
        for field in self._unique_fields:
            if field not in candidate:
                continue
            for doc in self._docs:
                if doc is ignore:
                    continue
                if doc.get(field) == candidate[field]:
                    raise DuplicateKeyError('E11000 duplicate key error: %s' % field)

    def _apply_update(self, doc, update):
        updated = dict(doc)
        for key, value in update.get('$set', {}).items():
            updated[key] = value
        for key, value in update.get('$inc', {}).items():
            updated[key] = updated.get(key, 0) + value
        self._check_unique(updated, ignore=doc)
        doc.clear()
        doc.update(updated)

    def find_one(self, filter_=None, projection=None, **kwargs):
        with self._lock:
            for doc in self._docs:
                if self._matches(doc, filter_):
                    return dict(doc)
        return None

    def find(self, filter_=None, projection=None):
        with self._lock:
            snapshot = [dict(doc) for doc in self._docs]
        for doc in snapshot:
            if self._matches(doc, filter_):
                yield doc

    def count_documents(self, filter_):
        with self._lock:
            return sum(1 for doc in self._docs if self._matches(doc, filter_))

    def insert_one(self, document):
        with self._lock:
            doc = dict(document)
            doc.setdefault('_id', len(self._docs) + 1)
            self._check_unique(doc)
            self._docs.append(doc)

    def find_one_and_update(self, filter_, update, upsert=False, return_document=None, **kwargs):
        with self._lock:
            for doc in self._docs:
                if self._matches(doc, filter_):
                    self._apply_update(doc, update)
                    return dict(doc)
            if not upsert:
                return None
            base = {key: value for key, value in (filter_ or {}).items() if not isinstance(value, dict)}
            base.update(update.get('$setOnInsert', {}))
            self._apply_update(base, {key: value for key, value in update.items() if key != '$setOnInsert'})
            base.setdefault('_id', len(self._docs) + 1)
            self._check_unique(base)
            self._docs.append(base)
            return dict(base)

    def update_one(self, filter_, update, upsert=False):
        with self._lock:
            for doc in self._docs:
                if self._matches(doc, filter_):
                    self._apply_update(doc, update)
                    return


class MemoryDB:
    def __init__(self):
        self.media = MemoryCollection()
        self.seq = MemoryCollection()

"""Persistent catalog of media entries keyed by filesystem path."""
from __future__ import annotations

import logging
import os
from dataclasses import asdict, dataclass, fields
from pathlib import Path
from typing import Dict, Iterable, List, Optional, Tuple
from urllib.parse import urlparse

from pymongo import ReturnDocument
from pymongo.collection import Collection
from pymongo.errors import DuplicateKeyError, PyMongoError

from errors import CatalogValidationError
from media_scanner import MediaFile


LOGGER = logging.getLogger(__name__)


TITLE_MAX_LENGTH = 100
DESCRIPTION_MAX_LENGTH = 1000

SEQ_NAME = 'media'

PENDING_FILTER = {'needs_resync': True, 'unresolvable': {'$ne': True}}


def canonical_key(path: str) -> str:
    """Normalised absolute path used as the catalog's unique key."""
    return os.path.normcase(os.path.abspath(os.path.expanduser(path)))


def title_from_filename(name: str) -> str:
    stem = Path(name).stem or name
    return stem[:TITLE_MAX_LENGTH]


def _is_http_url(value: str) -> bool:
    parsed = urlparse(value)
    return parsed.scheme in ('http', 'https') and bool(parsed.netloc)


@dataclass
class CatalogEntry:
    path: str
    title: str
    id: Optional[int] = None
    external_id: Optional[int] = None
    search_title: Optional[str] = None
    preferred: bool = False
    description: Optional[str] = None
    favorite: bool = False
    needs_resync: bool = False
    poster: Optional[str] = None
    backdrop: Optional[str] = None
    resolve_attempts: int = 0
    unresolvable: bool = False

    def validate(self) -> None:
        if not self.path:
            raise CatalogValidationError('path', 'Path cannot be empty')
        if not self.title:
            raise CatalogValidationError('title', 'Title cannot be empty')
        if len(self.title) > TITLE_MAX_LENGTH:
            raise CatalogValidationError('title', 'Title must be between 1 and %d characters' % TITLE_MAX_LENGTH)
        if self.description is not None and len(self.description) > DESCRIPTION_MAX_LENGTH:
            raise CatalogValidationError(
                'description', 'Description must be at most %d characters' % DESCRIPTION_MAX_LENGTH
            )
        if self.external_id is not None:
            if isinstance(self.external_id, bool) or not isinstance(self.external_id, int):
                raise CatalogValidationError('external_id', 'External id must be an integer')
            if self.external_id < 1:
                raise CatalogValidationError('external_id', 'External id must be a positive integer')
        for name in ('poster', 'backdrop'):
            value = getattr(self, name)
            if value is not None and not _is_http_url(value):
                raise CatalogValidationError(name, '%s must be a valid URL' % name.capitalize())

    def to_document(self) -> Dict[str, object]:
        return asdict(self)

    @classmethod
    def from_document(cls, document: Dict[str, object]) -> 'CatalogEntry':
        known = {f.name for f in fields(cls)}
        return cls(**{key: value for key, value in document.items() if key in known})


class CatalogStore:
    def __init__(self, collection: Collection, seq_collection: Collection) -> None:
        self.collection = collection
        self.seq_collection = seq_collection
        try:
            self.collection.create_index('path', unique=True)
            self.collection.create_index('id', unique=True)
            self.collection.create_index('title')
            self.collection.create_index('external_id')
        except PyMongoError:
            LOGGER.debug('Failed to ensure indexes for media collection')

    def _next_id(self) -> int:
        seq = self.seq_collection.find_one_and_update(
            {'name': SEQ_NAME},
            {'$inc': {'value': 1}},
            upsert=True,
            return_document=ReturnDocument.AFTER,
        )
        return int(seq['value'])

    def find_or_create(self, key: str, defaults: Dict[str, object]) -> Tuple[CatalogEntry, bool]:
        """Return the entry stored under ``key``, creating it from ``defaults``.

        Losing an insert race to another writer is not an error: the
        winner's document is returned with ``created`` set to False.
        """
        existing = self.collection.find_one({'path': key})
        if existing is not None:
            return CatalogEntry.from_document(existing), False

        entry = CatalogEntry(path=key, **defaults)
        entry.validate()
        entry.id = self._next_id()
        insert_document = entry.to_document()
        insert_document.pop('path')

        try:
            result = self.collection.find_one_and_update(
                {'path': key},
                {'$setOnInsert': insert_document},
                upsert=True,
                return_document=ReturnDocument.AFTER,
            )
        except DuplicateKeyError:
            LOGGER.debug('Concurrent insert for %s; reading existing entry', key)
            result = self.collection.find_one({'path': key})
            if result is None:
                raise
        created = result.get('id') == entry.id
        return CatalogEntry.from_document(result), created

    def find_by_key(self, key: str) -> Optional[CatalogEntry]:
        document = self.collection.find_one({'path': key})
        return CatalogEntry.from_document(document) if document else None

    def find_by_id(self, entry_id: int) -> Optional[CatalogEntry]:
        document = self.collection.find_one({'id': entry_id})
        return CatalogEntry.from_document(document) if document else None

    def find_all(self, filter_: Optional[Dict[str, object]] = None) -> List[CatalogEntry]:
        entries = [CatalogEntry.from_document(doc) for doc in self.collection.find(filter_ or {})]
        entries.sort(key=lambda entry: entry.id or 0)
        return entries

    def find_pending(self) -> List[CatalogEntry]:
        return self.find_all(PENDING_FILTER)

    def count_pending(self) -> int:
        return self.collection.count_documents(PENDING_FILTER)

    def save(self, entry: CatalogEntry) -> CatalogEntry:
        entry.validate()
        document = entry.to_document()
        document.pop('id')
        self.collection.update_one({'id': entry.id}, {'$set': document})
        return entry


class CatalogReconciler:
    def __init__(self, store: CatalogStore) -> None:
        self.store = store

    def reconcile_file(self, media: MediaFile) -> Tuple[CatalogEntry, bool]:
        key = canonical_key(media.path)
        defaults = {
            'title': title_from_filename(media.name),
            'needs_resync': True,
        }
        return self.store.find_or_create(key, defaults)

    def reconcile(self, files: Iterable[MediaFile]) -> Dict[str, int]:
        """Make sure every scanned file has a catalog entry.

        Existing entries are never modified, so metadata and user edits
        survive repeated runs.
        """
        summary = {
            'found': 0,
            'created': 0,
            'existing': 0,
            'errors': 0,
        }
        for media in files:
            summary['found'] += 1
            try:
                entry, created = self.reconcile_file(media)
            except CatalogValidationError as exc:
                LOGGER.warning("Rejected catalog entry for %s: %s", media.path, exc)
                summary['errors'] += 1
                continue
            except PyMongoError:
                LOGGER.exception("Failed to reconcile %s", media.path)
                summary['errors'] += 1
                continue
            if created:
                LOGGER.debug("Created catalog entry %s for %s", entry.id, entry.path)
                summary['created'] += 1
            else:
                summary['existing'] += 1
        return summary

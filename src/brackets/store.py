"""
Bracket persistence.

Brackets are stored as plain documents in a keyed repository that supports
two conditional writes: insert-if-absent (idempotent creation) and
replace-if-version (optimistic concurrency). Two repositories are provided:
YAML files on disk guarded by a per-collection file lock, and an in-memory
dict for tests and single-process use.
"""
import copy
import logging
import os
import re
import tempfile
import threading
from typing import Callable, Optional, Tuple

import yaml
from filelock import FileLock, Timeout

from .errors import ConflictError, NotFoundError, ValidationError
from .formats import generate_bracket
from .models import Bracket, Coordinate

logger = logging.getLogger(__name__)

BRACKETS = 'brackets'

_KEY_RE = re.compile(r'^[A-Za-z0-9_.-]+$')


def validate_key(key) -> str:
    """Keys become file names, so only a conservative character set is allowed."""
    if not isinstance(key, str) or not _KEY_RE.match(key) or key.startswith('.'):
        raise ValidationError(f'Invalid identifier: {key!r}')
    return key


class MemoryDocumentRepository:
    """Process-local repository. Documents are copied in and out."""

    def __init__(self):
        self._docs = {}
        self._lock = threading.Lock()

    def get(self, collection: str, key: str) -> Optional[dict]:
        validate_key(key)
        with self._lock:
            doc = self._docs.get((collection, key))
            return copy.deepcopy(doc) if doc is not None else None

    def insert_if_absent(self, collection: str, key: str, doc: dict) -> Tuple[dict, bool]:
        validate_key(key)
        with self._lock:
            existing = self._docs.get((collection, key))
            if existing is not None:
                return copy.deepcopy(existing), False
            self._docs[(collection, key)] = copy.deepcopy(doc)
            return copy.deepcopy(doc), True

    def replace_if_version(self, collection: str, key: str, doc: dict, expected_version: int) -> bool:
        validate_key(key)
        with self._lock:
            existing = self._docs.get((collection, key))
            if existing is None or existing.get('version') != expected_version:
                return False
            self._docs[(collection, key)] = copy.deepcopy(doc)
            return True


class YamlDocumentRepository:
    """
    One YAML file per document: ``<data_dir>/<collection>/<key>.yaml``.

    Conditional writes hold a cross-process file lock on the collection for the
    read-compare-write, and files are replaced atomically so readers never see
    a partial document.
    """

    def __init__(self, data_dir: str, timeout: float = 10):
        self.data_dir = data_dir
        self.timeout = timeout

    def _collection_dir(self, collection: str) -> str:
        path = os.path.join(self.data_dir, validate_key(collection))
        os.makedirs(path, exist_ok=True)
        return path

    def _path(self, collection: str, key: str) -> str:
        return os.path.join(self._collection_dir(collection), f'{validate_key(key)}.yaml')

    def _lock(self, collection: str) -> FileLock:
        return FileLock(os.path.join(self._collection_dir(collection), '.lock'), timeout=self.timeout)

    def _read(self, path: str) -> Optional[dict]:
        if not os.path.exists(path):
            return None
        with open(path, 'r', encoding='utf-8') as f:
            return yaml.safe_load(f)

    def _write(self, path: str, doc: dict):
        fd, tmp_path = tempfile.mkstemp(dir=os.path.dirname(path), suffix='.tmp')
        try:
            with os.fdopen(fd, 'w', encoding='utf-8') as f:
                yaml.dump(doc, f, default_flow_style=False)
            os.replace(tmp_path, path)
        except BaseException:
            if os.path.exists(tmp_path):
                os.remove(tmp_path)
            raise

    def get(self, collection: str, key: str) -> Optional[dict]:
        return self._read(self._path(collection, key))

    def insert_if_absent(self, collection: str, key: str, doc: dict) -> Tuple[dict, bool]:
        path = self._path(collection, key)
        try:
            with self._lock(collection):
                existing = self._read(path)
                if existing is not None:
                    return existing, False
                self._write(path, doc)
                return copy.deepcopy(doc), True
        except Timeout:
            raise ConflictError(f'Timed out waiting for the {collection} store lock')

    def replace_if_version(self, collection: str, key: str, doc: dict, expected_version: int) -> bool:
        path = self._path(collection, key)
        try:
            with self._lock(collection):
                existing = self._read(path)
                if existing is None or existing.get('version') != expected_version:
                    return False
                self._write(path, doc)
                return True
        except Timeout:
            raise ConflictError(f'Timed out waiting for the {collection} store lock')


class BracketStore:
    """One bracket per tournament: idempotent creation, versioned updates."""

    def __init__(self, repository, broadcaster=None):
        self.repository = repository
        self.broadcaster = broadcaster

    def _publish(self, bracket: Bracket):
        if self.broadcaster is not None:
            self.broadcaster.publish(bracket.tournament_id, bracket.to_dict())

    def find(self, tournament_id: str) -> Optional[Bracket]:
        doc = self.repository.get(BRACKETS, tournament_id)
        return Bracket.from_dict(doc) if doc is not None else None

    def get(self, tournament_id: str) -> Bracket:
        bracket = self.find(tournament_id)
        if bracket is None:
            raise NotFoundError(f'No bracket for tournament {tournament_id}')
        return bracket

    def create(self, tournament_id: str, seeds, format_name) -> Bracket:
        """
        Return the tournament's bracket, generating it on the first call.

        Later calls return the stored bracket and ignore their arguments. When
        two first calls race, the repository lets exactly one insert win and
        the other caller gets the winner's bracket.
        """
        validate_key(tournament_id)
        existing = self.find(tournament_id)
        if existing is not None:
            logger.info("Bracket for %s exists, returning existing", tournament_id)
            return existing

        bracket = generate_bracket(tournament_id, seeds, format_name)
        doc, created = self.repository.insert_if_absent(BRACKETS, tournament_id, bracket.to_dict())
        if not created:
            logger.info("Lost create race for %s, returning stored bracket", tournament_id)
            return Bracket.from_dict(doc)

        logger.info("Created %s elimination bracket for %s", bracket.kind, tournament_id)
        self._publish(bracket)
        return bracket

    def apply_mutation(self, tournament_id: str, coordinate: Coordinate, expected_version: int,
                       mutation: Callable[[Bracket, Coordinate], object]):
        """
        Apply ``mutation`` to a private copy and persist it if nobody else wrote first.

        Returns ``(bracket, result)`` where result is whatever the mutation
        returned. Raises ConflictError on a stale ``expected_version``; any
        error from the mutation leaves the stored bracket untouched.
        """
        current = self.get(tournament_id)
        if current.version != expected_version:
            raise ConflictError(
                f'Bracket {tournament_id} is at version {current.version}, expected {expected_version}')

        bracket = current.copy()
        result = mutation(bracket, coordinate)
        bracket.version = expected_version + 1
        bracket.touch()

        if not self.repository.replace_if_version(BRACKETS, tournament_id, bracket.to_dict(), expected_version):
            raise ConflictError(f'Bracket {tournament_id} changed during update')

        self._publish(bracket)
        return bracket, result

'''
    The three metadata documents, kept as flat JSON files under FILE_ARCHIVE['DATA_DIR']:
        files.json   -> public gallery (FileItem list, inGallery=True)
        archive.json -> private per-user archive (FileItem list, inGallery=False)
        users.json   -> accounts with their comments and favorites (User list)

    Every mutation is read whole document -> change list -> write whole document back.
    There is no database transaction here, so callers wrap each read/modify/write
    sequence in `locked()`, a process-wide re-entrant lock. Across processes the
    last write wins.
    Writes land in a temp file first and are renamed over the target, so a reader
    never sees half a document.
'''

import json
import logging
import os
import tempfile
import threading
from contextlib import contextmanager
from pathlib import Path

from django.conf import settings

from .exceptions import DocumentCorrupt
from .models import FileItem, User
from .utils import archive_setting

logger = logging.getLogger(__name__)

GALLERY_DOCUMENT = 'files.json'
ARCHIVE_DOCUMENT = 'archive.json'
USERS_DOCUMENT = 'users.json'

_lock = threading.RLock()


@contextmanager
def locked():
    with _lock:
        yield


def data_dir():
    return Path(archive_setting('DATA_DIR') or Path(settings.BASE_DIR) / 'data')


def _document_path(document):
    return data_dir() / document


def _read(document):
    path = _document_path(document)
    try:
        content = path.read_text(encoding='utf-8')
    except FileNotFoundError:
        return []
    except OSError:
        logger.exception("Error reading %s", path)
        raise
    try:
        data = json.loads(content) if content.strip() else []
    except json.JSONDecodeError as exc:
        raise DocumentCorrupt(f"{path} is not valid JSON: {exc}") from exc
    if not isinstance(data, list):
        raise DocumentCorrupt(f"{path} does not hold a JSON list")
    return data


def _write(document, rows):
    path = _document_path(document)
    path.parent.mkdir(parents=True, exist_ok=True)
    fd, tmp_name = tempfile.mkstemp(dir=path.parent, prefix=f".{document}.", suffix='.tmp')
    try:
        with os.fdopen(fd, 'w', encoding='utf-8') as fh:
            json.dump(rows, fh, indent=2, ensure_ascii=False)
        os.replace(tmp_name, path)
    except BaseException:
        # leave the previous document untouched
        try:
            os.unlink(tmp_name)
        except FileNotFoundError:
            pass
        raise


def read_gallery():
    return [FileItem.from_dict(row) for row in _read(GALLERY_DOCUMENT)]


def write_gallery(items):
    _write(GALLERY_DOCUMENT, [item.to_dict() for item in items])


def read_archive():
    return [FileItem.from_dict(row) for row in _read(ARCHIVE_DOCUMENT)]


def write_archive(items):
    _write(ARCHIVE_DOCUMENT, [item.to_dict() for item in items])


def read_users():
    return [User.from_dict(row) for row in _read(USERS_DOCUMENT)]


def write_users(users):
    _write(USERS_DOCUMENT, [user.to_dict() for user in users])


def find_index(items, predicate):
    """Index of the first item matching predicate, or -1."""
    for i, item in enumerate(items):
        if predicate(item):
            return i
    return -1

'''
    Binary content on disk, through Django's default storage (FileSystemStorage rooted at MEDIA_ROOT).
    Uploaded files are stored as uploads/<uniqueName>-<name> and previews as
    uploads/<uuid>-preview-<name>; the uuid prefix keeps names collision free while
    the user-visible name stays readable on disk.

    Records carry a public URL (MEDIA_URL + storage name), and every helper here
    takes that URL and maps it back to a storage name.
'''

import logging
import os
import posixpath
import uuid

from django.conf import settings
from django.core.files.storage import default_storage

logger = logging.getLogger(__name__)

UPLOADS_DIR = 'uploads'


def clean_filename(filename):
    # Browsers may send "C:\fakepath\x.jpg" or "dir/x.jpg"; keep only the last component
    return posixpath.basename(str(filename).replace('\\', '/'))


def public_url(name):
    return f"{settings.MEDIA_URL}{name}"


def storage_name(url):
    """
    '/media/uploads/abc-x.jpg' -> 'uploads/abc-x.jpg'.
    Records written before MEDIA_URL existed look like '/uploads/abc-x.jpg'; those map the same way.
    """
    media_url = settings.MEDIA_URL
    if url.startswith(media_url):
        return url[len(media_url):]
    return url.lstrip('/')


def blob_path(url):
    # safe_join inside path() raises SuspiciousFileOperation if the name escapes MEDIA_ROOT
    return default_storage.path(storage_name(url))


def save_upload(unique_name, upload):
    """Store an uploaded file; returns its public URL."""
    name = default_storage.save(posixpath.join(UPLOADS_DIR, f"{unique_name}-{clean_filename(upload.name)}"), upload)
    logger.info("Stored upload at %s", name)
    return public_url(name)


def save_preview(upload):
    name = default_storage.save(
        posixpath.join(UPLOADS_DIR, f"{uuid.uuid4()}-preview-{clean_filename(upload.name)}"), upload
    )
    logger.info("Stored preview image at %s", name)
    return public_url(name)


def blob_exists(url):
    return default_storage.exists(storage_name(url))


def delete_blob(url):
    """
    Remove a blob. A blob that is already gone counts as deleted (returns False);
    any other OSError propagates to the caller.
    """
    name = storage_name(url)
    if not default_storage.exists(name):
        logger.warning("File not found on storage, assuming already deleted: %s", name)
        return False
    default_storage.delete(name)
    logger.info("Deleted %s from storage", name)
    return True


def rename_blob(url, new_filename):
    """Rename a blob inside its directory; returns the new public URL."""
    old_name = storage_name(url)
    new_name = posixpath.join(posixpath.dirname(old_name), clean_filename(new_filename))
    os.rename(default_storage.path(old_name), default_storage.path(new_name))
    logger.info("Renamed %s to %s on storage", old_name, new_name)
    return public_url(new_name)

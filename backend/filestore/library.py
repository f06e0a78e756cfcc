'''
    File operations over the gallery/archive documents and the blobs on disk.

    Identity is whatever the caller passes as requester_id: None, '', 'anonymous'
    and 'anonymous-user' all mean an anonymous visitor. Anonymous uploads always
    land in the gallery and expire after ANONYMOUS_RETENTION_DAYS; registered users
    choose between the public gallery and their private archive.

    Each operation runs its whole read/modify/write inside store.locked() and raises
    the APIExceptions from exceptions.py on failure, leaving HTTP to the views.
'''

import logging
import uuid
from datetime import datetime, timedelta, timezone

from django.contrib.auth.hashers import check_password, make_password

from . import blobs, store
from .exceptions import (
    FileNotFound, InvalidOperation, NotAllowed, ShareExpired, StorageError, UserNotFound,
)
from .models import ANONYMOUS, FileItem, new_id, now_iso, parse_iso
from .utils import archive_setting, guess_mime_type, is_registered, split_extension

logger = logging.getLogger(__name__)

FOLDER_ROOT = 'root'
FOLDER_ARCHIVE = 'archive'
FOLDER_FAVORITES = 'favorites'
TYPE_FOLDERS = {
    'images': 'image/',
    'videos': 'video/',
    'audio': 'audio/',
}


def _get_user(users, user_id):
    for user in users:
        if user.id == user_id:
            return user
    raise UserNotFound()


def _find_owned(items, unique_name, owner_id):
    return store.find_index(items, lambda f: f.unique_name == unique_name and f.uploader_id == owner_id)


def _find(items, unique_name):
    return store.find_index(items, lambda f: f.unique_name == unique_name)


# ---------- Upload ----------
def upload(requester_id, uploaded_file, preview_image=None, add_to_gallery=False, uploader_ip=None):
    """
    Store an uploaded file and record it in the gallery or the archive.
    Returns the new FileItem.
    """
    logger.info("Upload of %s from %s (uploader IP %s)", uploaded_file.name, requester_id or ANONYMOUS, uploader_ip or 'unknown')

    unique_name = str(uuid.uuid4())
    mime_type = guess_mime_type(uploaded_file.name, getattr(uploaded_file, 'content_type', '') or '')
    url = blobs.save_upload(unique_name, uploaded_file)

    preview_url = None
    if mime_type.startswith('image/'):
        # an image is its own preview
        preview_url = url
    elif mime_type.startswith(('audio/', 'video/')) and preview_image is not None:
        try:
            preview_url = blobs.save_preview(preview_image)
        except OSError:
            logger.exception("Error writing preview image for %s", uploaded_file.name)

    item = FileItem(
        id=new_id(),
        name=blobs.clean_filename(uploaded_file.name),
        unique_name=unique_name,
        type=mime_type,
        size=uploaded_file.size,
        url=url,
        file_path=url,
        modified_at=now_iso(),
        preview_image_url=preview_url,
        is_favorite=False,
    )

    try:
        _record_upload(requester_id, item, add_to_gallery)
    except Exception:
        # no document references these blobs
        logger.error("Recording upload %s failed, removing its stored bytes", item.unique_name)
        blobs.delete_blob(url)
        if preview_url and preview_url != url:
            blobs.delete_blob(preview_url)
        raise
    return item


def _record_upload(requester_id, item, add_to_gallery):
    with store.locked():
        if is_registered(requester_id):
            item.uploader_id = requester_id
            if add_to_gallery:
                item.in_gallery = True
                gallery = store.read_gallery()
                gallery.append(item)
                store.write_gallery(gallery)
                logger.info("Added new gallery file %s by user %s", item.name, requester_id)
            else:
                item.in_gallery = False
                archive = store.read_archive()
                archive.append(item)
                store.write_archive(archive)
                logger.info("Added new archive file %s by user %s", item.name, requester_id)
        else:
            retention = int(archive_setting('ANONYMOUS_RETENTION_DAYS', 30))
            item.uploader_id = ANONYMOUS
            item.in_gallery = True
            item.deletion_date = (datetime.now(timezone.utc) + timedelta(days=retention)).isoformat(
                timespec='milliseconds').replace('+00:00', 'Z')
            gallery = store.read_gallery()
            gallery.append(item)
            store.write_gallery(gallery)
            logger.info("Added new anonymous gallery file %s, expires %s", item.name, item.deletion_date)


# The list endpoint narrows the documents step by step, like a chain of WHERE clauses:
# first which document (gallery, the user's archive, or their favorites), then expiry,
# then the type folder, then the name search.
# Example Call:
# GET /api/files/?currentFolder=images&search=beach  -H "UserId: u1"
# ---------- Listing ----------
def list_files(requester_id, current_folder=FOLDER_ROOT, search=''):
    current_folder = current_folder or FOLDER_ROOT
    # expiry is judged once, so every row in one listing is compared against the same instant
    now = datetime.now(timezone.utc)

    # Registered users must exist in users.json; an unknown id is a 404, not a silent anonymous view
    if is_registered(requester_id):
        user = _get_user(store.read_users(), requester_id)
        if current_folder == FOLDER_ARCHIVE:
            items = [f for f in store.read_archive() if f.uploader_id == requester_id]
        elif current_folder == FOLDER_FAVORITES:
            favorites = set(user.favorite_file_unique_names)
            items = [f for f in store.read_gallery() if f.unique_name in favorites and not f.is_expired(now)]
        else:
            items = [f for f in store.read_gallery() if not f.is_expired(now)]
    else:
        # anonymous visitors only ever see the public gallery
        items = [f for f in store.read_gallery() if not f.is_expired(now)]

    # images/videos/audio are virtual folders over the MIME type, e.g. image/png falls under images
    prefix = TYPE_FOLDERS.get(current_folder)
    if prefix:
        items = [f for f in items if (f.type or '').startswith(prefix)]

    # case-insensitive substring match on the visible name, so search=doc matches Document.pdf and myDOC.txt
    if search:
        needle = search.lower()
        items = [f for f in items if needle in f.name.lower()]

    logger.info("Returning %d files for folder %s and requester %s", len(items), current_folder, requester_id or 'public')
    return items


def get_file(requester_id, unique_name):
    """Gallery entry, or the requester's own archive entry."""
    gallery = store.read_gallery()
    i = _find(gallery, unique_name)
    if i != -1:
        return gallery[i]
    if is_registered(requester_id):
        archive = store.read_archive()
        i = _find_owned(archive, unique_name, requester_id)
        if i != -1:
            return archive[i]
    raise FileNotFound()


# ---------- Moving between gallery and archive ----------
def set_in_gallery(requester_id, unique_name, in_gallery):
    """Move the requester's own file to the gallery (True) or to their archive (False)."""
    with store.locked():
        _get_user(store.read_users(), requester_id)
        gallery = store.read_gallery()
        archive = store.read_archive()
        if in_gallery:
            source, destination = archive, gallery
        else:
            source, destination = gallery, archive

        i = _find_owned(source, unique_name, requester_id)
        if i == -1:
            raise FileNotFound('File not found in source for this user')
        item = source.pop(i)
        item.in_gallery = bool(in_gallery)
        destination.append(item)

        store.write_gallery(gallery)
        store.write_archive(archive)
    logger.info("File %s moved to %s for user %s", unique_name, 'gallery' if in_gallery else 'archive', requester_id)
    return item


def archive_file(unique_name):
    """Move a gallery entry into the archive, whoever owns it."""
    with store.locked():
        gallery = store.read_gallery()
        archive = store.read_archive()
        i = _find(gallery, unique_name)
        if i == -1:
            raise FileNotFound('File not found in gallery')
        item = gallery.pop(i)
        if _find(archive, unique_name) == -1:
            item.in_gallery = False
            archive.append(item)
        store.write_gallery(gallery)
        store.write_archive(archive)
    logger.info("File %s moved to archive", unique_name)
    return item


def unarchive_file(unique_name):
    with store.locked():
        gallery = store.read_gallery()
        archive = store.read_archive()
        i = _find(archive, unique_name)
        if i == -1:
            raise FileNotFound('File not found in archive')
        item = archive.pop(i)
        if _find(gallery, unique_name) == -1:
            item.in_gallery = True
            gallery.append(item)
        store.write_gallery(gallery)
        store.write_archive(archive)
    logger.info("File %s moved back to gallery", unique_name)
    return item


# ---------- Favorites ----------
def set_favorite(requester_id, unique_name, is_favorite):
    """
    Flag a gallery file as favorite. For a registered requester the file is also
    added to (or removed from) their personal favorites list.
    """
    is_favorite = bool(is_favorite)
    with store.locked():
        users = store.read_users() if is_registered(requester_id) else []
        user = _get_user(users, requester_id) if is_registered(requester_id) else None

        gallery = store.read_gallery()
        i = _find(gallery, unique_name)
        if i == -1:
            raise FileNotFound('Public file not found')
        gallery[i].is_favorite = is_favorite
        store.write_gallery(gallery)

        if user is not None:
            favorites = user.favorite_file_unique_names
            if is_favorite and unique_name not in favorites:
                favorites.append(unique_name)
            elif not is_favorite:
                user.favorite_file_unique_names = [fav for fav in favorites if fav != unique_name]
            store.write_users(users)
    logger.info("Public file %s isFavorite set to %s by %s", unique_name, is_favorite, requester_id or 'public')
    return gallery[i]


def patch_file(requester_id, unique_name, in_gallery=None, is_favorite=None):
    """inGallery wins over isFavorite when both are given; anonymous visitors may only favorite."""
    if is_registered(requester_id):
        if in_gallery is not None:
            return set_in_gallery(requester_id, unique_name, in_gallery)
        if is_favorite is not None:
            return set_favorite(requester_id, unique_name, is_favorite)
        raise InvalidOperation('Invalid patch operation')
    if is_favorite is None:
        raise InvalidOperation('Missing isFavorite status for public file')
    return set_favorite(requester_id, unique_name, is_favorite)


# ---------- Delete ----------
def _remove_blobs(item):
    try:
        blobs.delete_blob(item.file_path)
    except OSError as exc:
        logger.exception("Error deleting %s from storage", item.file_path)
        raise StorageError(f"Failed to delete file from storage: {exc}") from exc

    if item.preview_image_url and item.preview_image_url != item.file_path:
        try:
            blobs.delete_blob(item.preview_image_url)
        except OSError:
            logger.exception("Error deleting preview image %s", item.preview_image_url)


def delete_file(requester_id, unique_name):
    with store.locked():
        gallery = store.read_gallery()
        documents = gallery
        write = store.write_gallery
        i = _find(gallery, unique_name)

        if i == -1 and is_registered(requester_id):
            archive = store.read_archive()
            i = _find_owned(archive, unique_name, requester_id)
            documents = archive
            write = store.write_archive
        if i == -1:
            raise FileNotFound()

        item = documents[i]
        if not item.is_anonymous and item.uploader_id != requester_id:
            raise NotAllowed('Permission denied: You can only delete your own files or anonymous public files.')

        # Order matters here:
        # 1. blobs first, so a storage failure (500) leaves the metadata row in place for a retry
        # 2. then favorites of every user, so nobody keeps a uniqueName that no longer resolves
        # 3. the metadata row last
        _remove_blobs(item)

        users = store.read_users()
        touched = False
        for user in users:
            if unique_name in user.favorite_file_unique_names:
                user.favorite_file_unique_names = [fav for fav in user.favorite_file_unique_names if fav != unique_name]
                touched = True
        if touched:
            store.write_users(users)

        documents.pop(i)
        write(documents)
    logger.info("File %s deleted by %s", unique_name, requester_id or 'public')
    return item


# ---------- Rename ----------
def _final_name(current_name, new_name):
    # keep the original extension when the new name has none
    _, new_ext = split_extension(new_name)
    if new_ext:
        return new_name
    _, old_ext = split_extension(current_name)
    return f"{new_name}{old_ext}"


def rename_file(requester_id, unique_name, new_name):
    new_name = (new_name or '').strip()
    if not new_name:
        raise InvalidOperation('Missing uniqueName or newName')
    if '/' in new_name or '\\' in new_name or new_name in ('.', '..'):
        raise InvalidOperation('newName must be a plain file name')

    with store.locked():
        gallery = store.read_gallery()
        if is_registered(requester_id):
            documents, write = gallery, store.write_gallery
            i = _find_owned(gallery, unique_name, requester_id)
            if i == -1:
                archive = store.read_archive()
                documents, write = archive, store.write_archive
                i = _find_owned(archive, unique_name, requester_id)
            if i == -1:
                raise FileNotFound('File not found for this user')
        else:
            documents, write = gallery, store.write_gallery
            i = _find(gallery, unique_name)
            if i == -1:
                raise FileNotFound('Public file not found')

        item = documents[i]
        final_name = _final_name(item.name, new_name)
        try:
            new_url = blobs.rename_blob(item.file_path, f"{item.unique_name}-{final_name}")
        except OSError as exc:
            logger.exception("Error renaming %s to %s on storage", item.file_path, final_name)
            raise StorageError('Error renaming file on filesystem') from exc

        old_name = item.name
        item.name = final_name
        item.file_path = new_url
        item.url = new_url
        item.modified_at = now_iso()

        # Images are their own preview, so the preview just follows the renamed file.
        # Audio/video previews are separate blobs named <previewUuid>-preview-<stem><previewExt>;
        # they get the new stem but keep their own uuid and image extension,
        # e.g. renaming song.mp3 to live.mp3 turns <uuid>-preview-cover.png into <uuid>-preview-live.png.
        # A failed preview rename is logged and the file rename still stands.
        if item.is_image:
            item.preview_image_url = new_url
        elif item.preview_image_url:
            preview_file = blobs.storage_name(item.preview_image_url).split('/')[-1]
            preview_uuid = preview_file.split('-preview-')[0]
            _, preview_ext = split_extension(preview_file)
            _, old_ext = split_extension(old_name)
            stem = new_name[:-len(old_ext)] if old_ext and new_name.endswith(old_ext) else new_name
            try:
                item.preview_image_url = blobs.rename_blob(
                    item.preview_image_url, f"{preview_uuid}-preview-{stem}{preview_ext}"
                )
            except OSError:
                logger.exception("Error renaming preview image %s", item.preview_image_url)

        write(documents)
    logger.info("File %s renamed to %s", unique_name, final_name)
    return item


# ---------- Sharing ----------
def share_file(requester_id, unique_name, expiry_date=None, password=None):
    """Attach a fresh share token to the file; returns the share link."""
    with store.locked():
        gallery = store.read_gallery()
        documents, write = gallery, store.write_gallery
        i = _find(gallery, unique_name)
        if i == -1 and is_registered(requester_id):
            archive = store.read_archive()
            documents, write = archive, store.write_archive
            i = _find_owned(archive, unique_name, requester_id)
        if i == -1:
            raise FileNotFound()

        token = str(uuid.uuid4())
        base = archive_setting('SHARE_BASE_URL', 'https://openpixelarchive.com/share').rstrip('/')
        item = documents[i]
        item.share_token = token
        item.share_link = f"{base}/{token}"
        item.share_expiry_date = expiry_date or None
        item.share_password = make_password(password) if password else None
        write(documents)
    logger.info("Share link issued for %s", unique_name)
    return item.share_link


def resolve_share(token, password=None):
    for item in store.read_gallery() + store.read_archive():
        if item.share_token and item.share_token == token:
            break
    else:
        raise FileNotFound('Share link not found')

    expiry = parse_iso(item.share_expiry_date)
    if expiry is not None and expiry <= datetime.now(timezone.utc):
        raise ShareExpired()
    if item.share_password and not (password and check_password(password, item.share_password)):
        raise NotAllowed('Invalid share password')
    return item


# ---------- Housekeeping ----------
def purge_expired(now=None):
    """Delete every expired anonymous gallery upload. Returns how many were removed."""
    now = now or datetime.now(timezone.utc)
    with store.locked():
        gallery = store.read_gallery()
        expired = [f for f in gallery if f.is_expired(now)]
        if not expired:
            return 0
        for item in expired:
            _remove_blobs(item)
        gone = {f.unique_name for f in expired}
        store.write_gallery([f for f in gallery if f.unique_name not in gone])

        users = store.read_users()
        for user in users:
            user.favorite_file_unique_names = [fav for fav in user.favorite_file_unique_names if fav not in gone]
        if users:
            store.write_users(users)
    logger.info("Purged %d expired anonymous uploads", len(expired))
    return len(expired)

import logging
import os
from datetime import datetime, timezone

from PIL import ExifTags, Image, UnidentifiedImageError

from . import blobs
from .exceptions import FileNotFound
from .utils import file_kind, format_bytes

logger = logging.getLogger(__name__)

EXIF_FIELDS = ('Make', 'Model', 'DateTimeOriginal')

# DateTimeOriginal lives in the Exif sub-IFD, not in IFD0
EXIF_IFD = 0x8769


def _image_details(path):
    details = {}
    try:
        with Image.open(path) as img:
            details['Dimensions'] = f"{img.width}x{img.height}"
            exif = img.getexif()
            tags = {}
            if exif:
                merged = dict(exif.items())
                merged.update(exif.get_ifd(EXIF_IFD))
                for key, value in merged.items():
                    name = ExifTags.TAGS.get(key, str(key))
                    if isinstance(value, bytes):
                        value = value.decode('utf-8', 'ignore')
                    tags[name] = value
            for name in EXIF_FIELDS:
                value = tags.get(name)
                if value not in (None, ''):
                    details[name] = str(value).strip('\x00 ')
    except (UnidentifiedImageError, OSError):
        logger.warning("Could not read image details from %s", path)
    return details


def describe(item):
    """
    Human-readable metadata for a FileItem's blob.
    Raises FileNotFound when the blob is not on disk.
    """
    if not blobs.blob_exists(item.file_path):
        raise FileNotFound()
    path = blobs.blob_path(item.file_path)
    stat = os.stat(path)

    metadata = {
        'FileSize': format_bytes(stat.st_size),
        'MimeType': item.type,
        'Kind': file_kind(item.name),
        'ModifiedAt': datetime.fromtimestamp(stat.st_mtime, tz=timezone.utc).isoformat(timespec='seconds'),
    }
    if item.is_image:
        metadata.update(_image_details(path))
    return metadata

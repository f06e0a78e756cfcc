import math
import mimetypes
from pathlib import Path

from django.conf import settings

from .models import ANONYMOUS

IMAGE_EXTENSIONS = {'jpg', 'jpeg', 'png', 'gif', 'webp', 'svg', 'bmp'}
VIDEO_EXTENSIONS = {'mp4', 'webm', 'mov', 'avi', 'mkv'}
AUDIO_EXTENSIONS = {'mp3', 'wav', 'ogg', 'flac', 'aac'}
DOCUMENT_EXTENSIONS = {'doc', 'docx', 'txt', 'rtf', 'odt', 'xls', 'xlsx', 'ppt', 'pptx'}
ARCHIVE_EXTENSIONS = {'zip', 'rar', '7z', 'tar', 'gz'}
CODE_EXTENSIONS = {'js', 'ts', 'jsx', 'tsx', 'html', 'css', 'json', 'py', 'java', 'cpp'}

SIZE_UNITS = ['Bytes', 'KB', 'MB', 'GB', 'TB', 'PB', 'EB', 'ZB', 'YB']

# no header, the literal 'anonymous', and the client's own 'anonymous-user' all mean a visitor without an account
ANONYMOUS_IDS = {None, '', ANONYMOUS, 'anonymous-user'}


def archive_setting(key, default=None):
    """
    Read one entry of the FILE_ARCHIVE settings dict.
    Looked up on every call so override_settings in tests takes effect.
    """
    return getattr(settings, 'FILE_ARCHIVE', {}).get(key, default)


def is_registered(requester_id):
    return requester_id not in ANONYMOUS_IDS


def format_bytes(num_bytes, decimals=2):
    if not num_bytes:
        return '0 Bytes'
    k = 1024
    places = max(decimals, 0)
    i = min(int(math.floor(math.log(num_bytes) / math.log(k))), len(SIZE_UNITS) - 1)
    value = round(num_bytes / (k ** i), places)
    # drop trailing zeros the way parseFloat(x.toFixed(n)) does: 1.50 -> 1.5, 2.00 -> 2
    text = f"{value:.{places}f}".rstrip('0').rstrip('.') if places else str(int(value))
    return f"{text} {SIZE_UNITS[i]}"


def file_kind(filename):
    """Coarse category of a file, judged by its extension only."""
    ext = filename.rsplit('.', 1)[-1].lower() if '.' in filename else ''
    if ext in IMAGE_EXTENSIONS:
        return 'image'
    if ext in VIDEO_EXTENSIONS:
        return 'video'
    if ext in AUDIO_EXTENSIONS:
        return 'audio'
    if ext == 'pdf':
        return 'pdf'
    if ext in DOCUMENT_EXTENSIONS:
        return 'document'
    if ext in ARCHIVE_EXTENSIONS:
        return 'archive'
    if ext in CODE_EXTENSIONS:
        return 'code'
    return 'document'


def guess_mime_type(filename, declared=''):
    # Trust what the client declared; fall back to the extension
    if declared:
        return declared
    guessed, _ = mimetypes.guess_type(filename)
    return guessed or 'application/octet-stream'


def split_extension(filename):
    """'photo.final.jpg' -> ('photo.final', '.jpg'); dotfiles have no extension."""
    suffix = Path(filename).suffix
    if not suffix:
        return filename, ''
    return filename[:-len(suffix)], suffix

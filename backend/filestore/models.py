'''
    Records kept in the JSON documents. There is no ORM table behind these:
    each class maps one camelCase JSON object to a Python object and back.
        FileItem: one uploaded file, living in either the gallery or the archive document.
        Comment: a note left on a file, stored inside its author's User record.
        User: an account, with its comments and favorite uniqueNames.
    Unknown keys found in a document are kept in `extra` so a rewrite never drops them.
'''

from dataclasses import dataclass, field, fields
from datetime import datetime, timezone
import uuid

ANONYMOUS = 'anonymous'


def new_id():
    return str(uuid.uuid4())


def now_iso():
    # Millisecond precision with a trailing Z, matching what browsers emit for toISOString()
    return datetime.now(timezone.utc).isoformat(timespec='milliseconds').replace('+00:00', 'Z')


def parse_iso(value):
    """
    Parse an ISO 8601 string into an aware datetime; naive values are read as UTC.
    Returns None for empty or unparseable input.
    """
    if not value:
        return None
    try:
        dt = datetime.fromisoformat(str(value).replace('Z', '+00:00'))
    except ValueError:
        return None
    if dt.tzinfo is None:
        dt = dt.replace(tzinfo=timezone.utc)
    return dt


class _Record:
    # python attribute -> JSON key, filled in by each subclass
    _json_keys = {}

    @classmethod
    def from_dict(cls, data):
        known = {}
        extra = {}
        reverse = {v: k for k, v in cls._json_keys.items()}
        for key, value in data.items():
            if key in reverse:
                known[reverse[key]] = value
            else:
                extra[key] = value
        obj = cls(**known)
        obj.extra = extra
        return obj

    def to_dict(self):
        # Optional fields that were never set stay out of the document
        out = dict(self.extra)
        for f in fields(self):
            if f.name == 'extra':
                continue
            value = getattr(self, f.name)
            if value is None:
                continue
            out[self._json_keys[f.name]] = value
        return out


@dataclass
class FileItem(_Record):
    id: str
    name: str
    unique_name: str
    type: str
    size: int
    url: str
    file_path: str
    modified_at: str
    folder: str = 'root'
    preview_image_url: str = None
    in_gallery: bool = None
    is_favorite: bool = False
    uploader_id: str = None
    deletion_date: str = None
    share_link: str = None
    share_token: str = None
    share_expiry_date: str = None
    share_password: str = None
    extra: dict = field(default_factory=dict, repr=False)

    _json_keys = {
        'id': 'id',
        'name': 'name',
        'unique_name': 'uniqueName',
        'type': 'type',
        'size': 'size',
        'url': 'url',
        'file_path': 'filePath',
        'modified_at': 'modifiedAt',
        'folder': 'folder',
        'preview_image_url': 'previewImageUrl',
        'in_gallery': 'inGallery',
        'is_favorite': 'isFavorite',
        'uploader_id': 'uploaderId',
        'deletion_date': 'deletionDate',
        'share_link': 'shareLink',
        'share_token': 'shareToken',
        'share_expiry_date': 'shareExpiryDate',
        'share_password': 'sharePassword',
    }

    @property
    def is_anonymous(self):
        """Anonymous uploads may be deleted or renamed by anybody."""
        return self.uploader_id in (None, '', ANONYMOUS)

    @property
    def is_image(self):
        return (self.type or '').startswith('image/')

    def is_expired(self, now=None):
        # Only anonymous uploads carry a deletionDate
        if not self.is_anonymous or not self.deletion_date:
            return False
        deadline = parse_iso(self.deletion_date)
        if deadline is None:
            return False
        return deadline <= (now or datetime.now(timezone.utc))

    def __str__(self):
        return f"{self.name} ({self.unique_name})"


@dataclass
class Comment(_Record):
    comment_id: str
    file_unique_name: str
    user_id: str
    content: str
    date: str
    extra: dict = field(default_factory=dict, repr=False)

    _json_keys = {
        'comment_id': 'commentId',
        'file_unique_name': 'fileUniqueName',
        'user_id': 'userId',
        'content': 'content',
        'date': 'date',
    }


@dataclass
class User(_Record):
    id: str
    username: str
    password_hash: str = ''
    session_id: str = None
    comments: list = field(default_factory=list)
    favorite_file_unique_names: list = field(default_factory=list)
    extra: dict = field(default_factory=dict, repr=False)

    _json_keys = {
        'id': 'id',
        'username': 'username',
        'password_hash': 'passwordHash',
        'session_id': 'sessionId',
        'comments': 'comments',
        'favorite_file_unique_names': 'favoriteFileUniqueNames',
    }

    @classmethod
    def from_dict(cls, data):
        user = super().from_dict(data)
        user.comments = [Comment.from_dict(c) for c in (user.comments or [])]
        user.favorite_file_unique_names = list(user.favorite_file_unique_names or [])
        return user

    def to_dict(self):
        out = super().to_dict()
        out['comments'] = [c.to_dict() for c in self.comments]
        return out

    def __str__(self):
        return f"{self.username} ({self.id})"

'''
    Comments live inside their author's User record (users.json), so listing the
    comments of a file means walking every user.
    Commenting with an id that has no account yet creates a stub user for it.
'''

import logging

from . import store
from .exceptions import CommentNotFound, InvalidOperation, NotAllowed
from .utils import is_registered
from .models import Comment, User, new_id, now_iso

logger = logging.getLogger(__name__)


def _find_or_create_user(users, user_id, username='anonymous'):
    for user in users:
        if user.id == user_id:
            return user
    user = User(id=user_id, username=username)
    users.append(user)
    logger.info("Created stub user %s for commenting", user_id)
    return user


def add_comment(user_id, file_unique_name, content):
    if not is_registered(user_id):
        raise NotAllowed('Only registered users can comment')
    content = (content or '').strip()
    if not content:
        raise InvalidOperation('Comment content is required')

    with store.locked():
        users = store.read_users()
        user = _find_or_create_user(users, user_id)
        comment = Comment(
            comment_id=new_id(),
            file_unique_name=file_unique_name,
            user_id=user_id,
            content=content,
            date=now_iso(),
        )
        user.comments.append(comment)
        store.write_users(users)
    logger.info("Comment %s added to %s by %s", comment.comment_id, file_unique_name, user_id)
    return comment


def list_comments(file_unique_name, user_id=None):
    """All comments on a file, oldest first; user_id narrows it to one author."""
    found = []
    for user in store.read_users():
        if user_id and user.id != user_id:
            continue
        found.extend(c for c in user.comments if c.file_unique_name == file_unique_name)
    found.sort(key=lambda c: c.date)
    return found


def delete_comment(user_id, file_unique_name, comment_id):
    if not is_registered(user_id):
        raise NotAllowed('Only registered users can delete comments')

    with store.locked():
        users = store.read_users()
        for user in users:
            if user.id == user_id:
                break
        else:
            raise CommentNotFound()

        remaining = [
            c for c in user.comments
            if c.comment_id != comment_id or c.file_unique_name != file_unique_name
        ]
        if len(remaining) == len(user.comments):
            raise CommentNotFound()
        user.comments = remaining
        store.write_users(users)
    logger.info("Comment %s deleted from %s by %s", comment_id, file_unique_name, user_id)

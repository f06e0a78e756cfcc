'''
    Sign-up / login against users.json.
    Passwords go through Django's configured password hashers; the session id handed
    out at login is only an identifier for the client to keep, it is not checked
    on later requests (requests identify themselves with the UserId header).
'''

import logging

from django.contrib.auth.hashers import check_password, make_password

from . import store
from .exceptions import InvalidCredentials, InvalidOperation, UsernameTaken, UserNotFound
from .models import User, new_id

logger = logging.getLogger(__name__)


def signup(username, password):
    if not username or not password:
        raise InvalidOperation('Username and password are required')

    with store.locked():
        users = store.read_users()
        if any(u.username == username for u in users):
            raise UsernameTaken()
        user = User(id=new_id(), username=username, password_hash=make_password(password))
        users.append(user)
        store.write_users(users)
    logger.info("Registered user %s", user)
    return user


def login(username, password):
    """Returns (user, session_id)."""
    if not username or not password:
        raise InvalidOperation('Username and password are required')

    with store.locked():
        users = store.read_users()
        user = next((u for u in users if u.username == username), None)
        # Stub users created by commenting have no password hash and can never log in
        if user is None or not user.password_hash or not check_password(password, user.password_hash):
            logger.info("Failed login for %s", username)
            raise InvalidCredentials()
        user.session_id = new_id()
        store.write_users(users)
    logger.info("User %s logged in", user)
    return user, user.session_id


def logout(user_id):
    with store.locked():
        users = store.read_users()
        user = next((u for u in users if u.id == user_id), None)
        if user is None:
            raise UserNotFound()
        user.session_id = None
        store.write_users(users)
    logger.info("User %s logged out", user)

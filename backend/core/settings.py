"""
Django settings for the Pixel Archive backend.

Environment overrides:
    PIXEL_ARCHIVE_SECRET_KEY   secret key (a development key is used when unset)
    PIXEL_ARCHIVE_DEBUG        "1"/"true" to enable DEBUG
    PIXEL_ARCHIVE_DATA_DIR     where files.json / archive.json / users.json live
    PIXEL_ARCHIVE_MEDIA_ROOT   where uploaded bytes are stored
    PIXEL_ARCHIVE_LOG_LEVEL    level of the `filestore` logger (default INFO)
"""

import os
from pathlib import Path

BASE_DIR = Path(__file__).resolve().parent.parent


def _env_flag(name, default=False):
    value = os.environ.get(name)
    if value is None:
        return default
    return value.strip().lower() in ('1', 'true', 'yes', 'on')


SECRET_KEY = os.environ.get('PIXEL_ARCHIVE_SECRET_KEY', 'django-insecure-pixel-archive-dev-key')

DEBUG = _env_flag('PIXEL_ARCHIVE_DEBUG', True)

ALLOWED_HOSTS = [h for h in os.environ.get('PIXEL_ARCHIVE_ALLOWED_HOSTS', '*').split(',') if h]

INSTALLED_APPS = [
    'django.contrib.contenttypes',
    'django.contrib.auth',
    'rest_framework',
    'filestore',
]

MIDDLEWARE = [
    'django.middleware.security.SecurityMiddleware',
    'django.middleware.common.CommonMiddleware',
]

ROOT_URLCONF = 'core.urls'

WSGI_APPLICATION = 'core.wsgi.application'

# Metadata lives in JSON documents; the database only backs Django internals and the test runner
DATABASES = {
    'default': {
        'ENGINE': 'django.db.backends.sqlite3',
        'NAME': BASE_DIR / 'db.sqlite3',
    }
}

LANGUAGE_CODE = 'en-us'
TIME_ZONE = 'UTC'
USE_I18N = True
USE_TZ = True

# Uploaded bytes: MEDIA_ROOT/uploads/<uniqueName>-<name>, served under MEDIA_URL in development
MEDIA_URL = '/media/'
MEDIA_ROOT = Path(os.environ.get('PIXEL_ARCHIVE_MEDIA_ROOT', BASE_DIR / 'media'))

# Uploads up to this size stay in memory, bigger ones spool to a temp file
FILE_UPLOAD_MAX_MEMORY_SIZE = 10 * 1024 * 1024
DATA_UPLOAD_MAX_MEMORY_SIZE = None

DEFAULT_AUTO_FIELD = 'django.db.models.BigAutoField'

FILE_ARCHIVE = {
    'DATA_DIR': os.environ.get('PIXEL_ARCHIVE_DATA_DIR', str(BASE_DIR / 'data')),
    'ANONYMOUS_RETENTION_DAYS': int(os.environ.get('PIXEL_ARCHIVE_ANONYMOUS_RETENTION_DAYS', 30)),
    'SHARE_BASE_URL': os.environ.get('PIXEL_ARCHIVE_SHARE_BASE_URL', 'https://openpixelarchive.com/share'),
    'REQUESTER_THROTTLE_RATE': os.environ.get('PIXEL_ARCHIVE_THROTTLE_RATE', '20/second'),
}

REST_FRAMEWORK = {
    # Requests identify themselves with the UserId header, no Django auth
    'DEFAULT_AUTHENTICATION_CLASSES': [],
    'DEFAULT_PERMISSION_CLASSES': ['rest_framework.permissions.AllowAny'],
    'DEFAULT_PARSER_CLASSES': [
        'rest_framework.parsers.JSONParser',
        'rest_framework.parsers.MultiPartParser',
        'rest_framework.parsers.FormParser',
    ],
    'DEFAULT_RENDERER_CLASSES': ['rest_framework.renderers.JSONRenderer'],
    'DEFAULT_THROTTLE_CLASSES': ['filestore.throttling.RequesterRateThrottle'],
    'DEFAULT_THROTTLE_RATES': {'requester': FILE_ARCHIVE['REQUESTER_THROTTLE_RATE']},
    'EXCEPTION_HANDLER': 'filestore.exceptions.archive_exception_handler',
    'UNAUTHENTICATED_USER': None,
}

LOGGING = {
    'version': 1,
    'disable_existing_loggers': False,
    'formatters': {
        'simple': {
            'format': '%(asctime)s [%(levelname)s] %(name)s: %(message)s',
        },
    },
    'handlers': {
        'console': {
            'class': 'logging.StreamHandler',
            'formatter': 'simple',
        },
    },
    'root': {
        'handlers': ['console'],
        'level': 'WARNING',
    },
    'loggers': {
        'filestore': {
            'handlers': ['console'],
            'level': os.environ.get('PIXEL_ARCHIVE_LOG_LEVEL', 'INFO'),
            'propagate': False,
        },
    },
}

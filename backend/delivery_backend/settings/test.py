"""Settings used by the test suite."""

from .settings import *

DEBUG = False

DATABASES = {
    'default': {
        'ENGINE': 'django.db.backends.sqlite3',
        'NAME': ':memory:',
    }
}

PASSWORD_HASHERS = ['django.contrib.auth.hashers.MD5PasswordHasher']

CHANNEL_LAYERS = {
    "default": {
        "BACKEND": "channels.layers.InMemoryChannelLayer",
    }
}

CELERY_TASK_ALWAYS_EAGER = True
CELERY_BROKER_URL = "memory://"
CELERY_RESULT_BACKEND = "cache+memory://"

VAPID_PUBLIC_KEY = "test-public-key"
VAPID_PRIVATE_KEY = "test-private-key"
VAPID_CLAIMS_SUBJECT = "mailto:tests@example.com"

NOTIFICATION_FANOUT_MAX_WORKERS = 4

LOG_LEVEL = "WARNING"
LOGGING["root"]["level"] = LOG_LEVEL

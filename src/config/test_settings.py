"""Settings used by the test suite.

Provides throwaway credentials before importing the real settings so the
fail-fast ``SECRET_KEY`` lookup and the gateway adapters have something
to work with.  Celery runs eagerly and mail stays in memory.
"""

import os

os.environ.setdefault("SECRET_KEY", "test-secret-key-not-for-production")
os.environ.setdefault("STRIPE_SECRET_KEY", "sk_test_fake_key_for_testing")
os.environ.setdefault("STRIPE_WEBHOOK_SECRET", "whsec_test_secret")
os.environ.setdefault("SCM_USERNAME", "scm-user")
os.environ.setdefault("SCM_PASSWORD", "scm-password")
os.environ.setdefault("SCM_PARTNER_KEY", "scm-partner")
os.environ.setdefault("SCM_CLIENT_CODE", "scm-client")
os.environ.setdefault("OWNER_EMAIL", "owner@example.com")
os.environ.setdefault("BASE_URL", "http://testserver")
os.environ.setdefault("REDIS_URL", "")

from config.settings import *  # noqa: E402,F401,F403

DATABASES = {
    "default": {
        "ENGINE": "django.db.backends.sqlite3",
        "NAME": ":memory:",
    }
}

CACHES = {
    "default": {
        "BACKEND": "django.core.cache.backends.locmem.LocMemCache",
        "LOCATION": "certified-mail-tests",
    }
}

EMAIL_BACKEND = "django.core.mail.backends.locmem.EmailBackend"

CELERY_TASK_ALWAYS_EAGER = True
CELERY_TASK_EAGER_PROPAGATES = True
CELERY_BROKER_URL = "memory://"
CELERY_RESULT_BACKEND = "cache+memory://"

PASSWORD_HASHERS = ["django.contrib.auth.hashers.MD5PasswordHasher"]

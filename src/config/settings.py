import re
from datetime import timedelta
from pathlib import Path

import structlog
from decouple import Csv, config
from dj_database_url import parse as db_url

# Build paths inside the project like this: BASE_DIR / 'subdir'.
BASE_DIR = Path(__file__).resolve().parent.parent

# Security - Fail Fast: no default forces explicit configuration
SECRET_KEY = config("SECRET_KEY")

DEBUG = config("DEBUG", default=False, cast=bool)

ALLOWED_HOSTS = config("ALLOWED_HOSTS", default="127.0.0.1,localhost", cast=Csv())

# Application definition
INSTALLED_APPS = [
    "django.contrib.admin",
    "django.contrib.auth",
    "django.contrib.contenttypes",
    "django.contrib.sessions",
    "django.contrib.messages",
    "django.contrib.staticfiles",
    # Third-party
    "rest_framework",
    "corsheaders",
    "drf_spectacular",
    # Local Apps (Modules)
    "modules.core",
    "modules.orders",
]

MIDDLEWARE = [
    "corsheaders.middleware.CorsMiddleware",
    "django.middleware.security.SecurityMiddleware",
    "modules.core.middleware.CorrelationIdMiddleware",
    "whitenoise.middleware.WhiteNoiseMiddleware",
    "django.contrib.sessions.middleware.SessionMiddleware",
    "django.middleware.common.CommonMiddleware",
    "django.middleware.csrf.CsrfViewMiddleware",
    "django.contrib.auth.middleware.AuthenticationMiddleware",
    "django.contrib.messages.middleware.MessageMiddleware",
    "django.middleware.clickjacking.XFrameOptionsMiddleware",
]

ROOT_URLCONF = "config.urls"

TEMPLATES = [
    {
        "BACKEND": "django.template.backends.django.DjangoTemplates",
        "DIRS": [],
        "APP_DIRS": True,
        "OPTIONS": {
            "context_processors": [
                "django.template.context_processors.debug",
                "django.template.context_processors.request",
                "django.contrib.auth.context_processors.auth",
                "django.contrib.messages.context_processors.messages",
            ],
        },
    },
]

WSGI_APPLICATION = "config.wsgi.application"

# Database - SQLite unless DATABASE_URL points elsewhere
DATABASES = {
    "default": config(
        "DATABASE_URL", default=f'sqlite:///{BASE_DIR / "db.sqlite3"}', cast=db_url
    )
}

# Cache - Redis when configured, process-local memory otherwise
REDIS_URL = config("REDIS_URL", default="")

if REDIS_URL:
    CACHES = {
        "default": {
            "BACKEND": "django_redis.cache.RedisCache",
            "LOCATION": REDIS_URL,
            "OPTIONS": {
                "CLIENT_CLASS": "django_redis.client.DefaultClient",
            },
        }
    }
else:
    CACHES = {
        "default": {
            "BACKEND": "django.core.cache.backends.locmem.LocMemCache",
            "LOCATION": "certified-mail",
        }
    }

# Password validation
AUTH_PASSWORD_VALIDATORS = [
    {
        "NAME": "django.contrib.auth.password_validation.UserAttributeSimilarityValidator"
    },
    {"NAME": "django.contrib.auth.password_validation.MinimumLengthValidator"},
    {"NAME": "django.contrib.auth.password_validation.CommonPasswordValidator"},
    {"NAME": "django.contrib.auth.password_validation.NumericPasswordValidator"},
]

# Internationalization
LANGUAGE_CODE = "en-us"
TIME_ZONE = "America/New_York"
USE_I18N = True
USE_TZ = True

# Uploads: letters are capped well below this, the rest is form overhead
DATA_UPLOAD_MAX_MEMORY_SIZE = 8 * 1024 * 1024
FILE_UPLOAD_MAX_MEMORY_SIZE = 8 * 1024 * 1024

# ---------------------------------------------------------------------------
# Celery (async tasks via Redis)
# ---------------------------------------------------------------------------
CELERY_BROKER_URL = config("CELERY_BROKER_URL", default="redis://localhost:6379/0")
CELERY_RESULT_BACKEND = config(
    "CELERY_RESULT_BACKEND", default="redis://localhost:6379/0"
)
CELERY_ACCEPT_CONTENT = ["json"]
CELERY_TASK_SERIALIZER = "json"
CELERY_RESULT_SERIALIZER = "json"
CELERY_TIMEZONE = TIME_ZONE

# Static files (CSS, JavaScript, Images)
STATIC_URL = "static/"
STATIC_ROOT = BASE_DIR / "staticfiles"

# Default primary key field type
DEFAULT_AUTO_FIELD = "django.db.models.BigAutoField"

# DRF Configuration: public endpoints opt out of auth explicitly
REST_FRAMEWORK = {
    "DEFAULT_AUTHENTICATION_CLASSES": [],
    "DEFAULT_PERMISSION_CLASSES": [
        "rest_framework.permissions.AllowAny",
    ],
    "DEFAULT_THROTTLE_CLASSES": [
        "rest_framework.throttling.ScopedRateThrottle",
    ],
    "DEFAULT_THROTTLE_RATES": {
        "checkout": config("THROTTLE_CHECKOUT", default="10/hour"),
        "order_status": config("THROTTLE_ORDER_STATUS", default="60/minute"),
        "proof_download": config("THROTTLE_PROOF_DOWNLOAD", default="20/minute"),
        "phone_update": config("THROTTLE_PHONE_UPDATE", default="10/minute"),
    },
    "DEFAULT_PARSER_CLASSES": [
        "rest_framework.parsers.JSONParser",
        "rest_framework.parsers.FormParser",
        "rest_framework.parsers.MultiPartParser",
    ],
    "DEFAULT_RENDERER_CLASSES": [
        "rest_framework.renderers.JSONRenderer",
    ],
    "DEFAULT_SCHEMA_CLASS": "drf_spectacular.openapi.AutoSchema",
}

if DEBUG:
    REST_FRAMEWORK["DEFAULT_RENDERER_CLASSES"].append(
        "rest_framework.renderers.BrowsableAPIRenderer"
    )

# CORS
CORS_ALLOWED_ORIGINS = config(
    "CORS_ALLOWED_ORIGINS", default="http://localhost:3000", cast=Csv()
)

# CSRF
CSRF_TRUSTED_ORIGINS = config(
    "CSRF_TRUSTED_ORIGINS", default="http://localhost:3000", cast=Csv()
)

# ---------------------------------------------------------------------------
# drf-spectacular (OpenAPI / Swagger)
# ---------------------------------------------------------------------------
SPECTACULAR_SETTINGS = {
    "TITLE": "Certified Mail Sender API",
    "DESCRIPTION": "Checkout, payment webhook and public order status endpoints.",
    "VERSION": "1.0.0",
    "SERVE_INCLUDE_SCHEMA": False,
}

# ---------------------------------------------------------------------------
# Public site
# ---------------------------------------------------------------------------
BASE_URL = config("BASE_URL", default="http://localhost:8000")

# ---------------------------------------------------------------------------
# Payments (Stripe Checkout)
# ---------------------------------------------------------------------------
STRIPE_SECRET_KEY = config("STRIPE_SECRET_KEY", default="")
STRIPE_WEBHOOK_SECRET = config("STRIPE_WEBHOOK_SECRET", default="")
PAYMENT_TIMEOUT_SECONDS = config("PAYMENT_TIMEOUT_SECONDS", default=20, cast=int)
PRICE_CERTIFIED_CENTS = config("PRICE_CERTIFIED_CENTS", default=1000, cast=int)
PRICE_CERTIFIED_RR_CENTS = config("PRICE_CERTIFIED_RR_CENTS", default=1300, cast=int)

# ---------------------------------------------------------------------------
# Mail fulfillment (SimpleCertifiedMail REST API)
# ---------------------------------------------------------------------------
SCM_BASE_URL = config(
    "SCM_BASE_URL", default="https://api.simplecertifiedmail.com/RESTv4.0"
)
SCM_USERNAME = config("SCM_USERNAME", default="")
SCM_PASSWORD = config("SCM_PASSWORD", default="")
SCM_PARTNER_KEY = config("SCM_PARTNER_KEY", default="")
SCM_CLIENT_CODE = config("SCM_CLIENT_CODE", default="")
SCM_GROUP_NAME = config("SCM_GROUP_NAME", default="default")
# Mode 0 is the provider's test mode: nothing gets printed or mailed
SCM_LIVE_MODE = config("SCM_LIVE_MODE", default=False, cast=bool)
SCM_TIMEOUT_SECONDS = config("SCM_TIMEOUT_SECONDS", default=30, cast=int)
# Provider tokens live ~24h; refresh an hour early
SCM_TOKEN_TTL_SECONDS = config("SCM_TOKEN_TTL_SECONDS", default=23 * 60 * 60, cast=int)

# ---------------------------------------------------------------------------
# Email
# ---------------------------------------------------------------------------
EMAIL_BACKEND = config(
    "EMAIL_BACKEND", default="django.core.mail.backends.smtp.EmailBackend"
)
EMAIL_HOST = config("EMAIL_HOST", default="localhost")
EMAIL_PORT = config("EMAIL_PORT", default=587, cast=int)
EMAIL_HOST_USER = config("EMAIL_HOST_USER", default="")
EMAIL_HOST_PASSWORD = config("EMAIL_HOST_PASSWORD", default="")
EMAIL_USE_TLS = config("EMAIL_USE_TLS", default=True, cast=bool)
EMAIL_TIMEOUT = config("EMAIL_TIMEOUT", default=15, cast=int)
DEFAULT_FROM_EMAIL = config(
    "DEFAULT_FROM_EMAIL", default="Certified Mail Sender <noreply@localhost>"
)
OWNER_EMAIL = config("OWNER_EMAIL", default="")

# ---------------------------------------------------------------------------
# Order lifecycle
# ---------------------------------------------------------------------------
STATUS_CACHE_SECONDS = config("STATUS_CACHE_SECONDS", default=5 * 60, cast=int)
RETRY_MAX_ATTEMPTS = config("RETRY_MAX_ATTEMPTS", default=3, cast=int)
RETRY_BATCH_SIZE = config("RETRY_BATCH_SIZE", default=5, cast=int)
RETRY_INTERVAL_SECONDS = config("RETRY_INTERVAL_SECONDS", default=10 * 60, cast=int)
STAGED_DOCUMENT_MAX_AGE_SECONDS = config(
    "STAGED_DOCUMENT_MAX_AGE_SECONDS", default=2 * 60 * 60, cast=int
)
STAGED_DOCUMENT_PURGE_INTERVAL_SECONDS = config(
    "STAGED_DOCUMENT_PURGE_INTERVAL_SECONDS", default=30 * 60, cast=int
)
MAX_UPLOAD_BYTES = config("MAX_UPLOAD_BYTES", default=5 * 1024 * 1024, cast=int)
MAX_LETTER_CHARACTERS = config("MAX_LETTER_CHARACTERS", default=50_000, cast=int)

CELERY_BEAT_SCHEDULE = {
    "orders-retry-failed-fulfillment": {
        "task": "orders.retry_failed_orders",
        "schedule": timedelta(seconds=RETRY_INTERVAL_SECONDS),
    },
    "orders-purge-staged-documents": {
        "task": "orders.purge_staged_documents",
        "schedule": timedelta(seconds=STAGED_DOCUMENT_PURGE_INTERVAL_SECONDS),
    },
}

# ---------------------------------------------------------------------------
# Structured Logging (structlog + Django LOGGING)
# ---------------------------------------------------------------------------
SENSITIVE_PATTERN = re.compile(
    r"(sk|rk|whsec)_(live|test)?_?[A-Za-z0-9]{8,}"  # Stripe keys
    r"""|bearer\s+[^\s,}"']+"""
    r"|(password|passwd|secret|token|authorization)"
    r"""([=:]\s*["']?)((?:bearer\s+)?[^\s,}"']+)""",
    re.IGNORECASE,
)


def mask_sensitive_data(_, __, event_dict):
    """Processor that masks API keys, passwords and tokens in log values."""
    for key, value in list(event_dict.items()):
        if isinstance(value, str):
            event_dict[key] = SENSITIVE_PATTERN.sub("***MASKED***", value)
    return event_dict


# Shared processors used by both structlog and stdlib logging
_shared_processors = [
    structlog.contextvars.merge_contextvars,
    structlog.stdlib.add_log_level,
    structlog.stdlib.add_logger_name,
    structlog.processors.TimeStamper(fmt="iso"),
    mask_sensitive_data,
    structlog.processors.StackInfoRenderer(),
    structlog.processors.UnicodeDecoder(),
]

structlog.configure(
    processors=[
        *_shared_processors,
        structlog.stdlib.ProcessorFormatter.wrap_for_formatter,
    ],
    logger_factory=structlog.stdlib.LoggerFactory(),
    wrapper_class=structlog.stdlib.BoundLogger,
    cache_logger_on_first_use=True,
)

LOGGING = {
    "version": 1,
    "disable_existing_loggers": False,
    "formatters": {
        "json": {
            "()": structlog.stdlib.ProcessorFormatter,
            "processors": [
                structlog.stdlib.ProcessorFormatter.remove_processors_meta,
                structlog.processors.JSONRenderer(),
            ],
            "foreign_pre_chain": _shared_processors,
        },
    },
    "filters": {
        "redact_order_tokens": {
            "()": "modules.core.middleware.OrderTokenFilter",
        },
    },
    "handlers": {
        "console": {
            "class": "logging.StreamHandler",
            "formatter": "json",
            "filters": ["redact_order_tokens"],
        },
    },
    "root": {
        "handlers": ["console"],
        "level": "INFO",
    },
    "loggers": {
        "django": {
            "handlers": ["console"],
            "level": "INFO",
            "propagate": False,
        },
        "django.server": {
            "handlers": ["console"],
            "level": "WARNING",
            "propagate": False,
        },
    },
}

from pathlib import Path
import os

import dj_database_url
import sentry_sdk
from dotenv import load_dotenv
from sentry_sdk.integrations.django import DjangoIntegration


BASE_DIR = Path(__file__).resolve().parent.parent
load_dotenv(BASE_DIR / ".env")  # explicit .env location

SECRET_KEY = os.getenv("DJANGO_SECRET_KEY") or os.getenv("SECRET_KEY") or "dev-key"


def _get_bool_env(name: str, default: bool) -> bool:
    raw_value = os.getenv(name)
    if raw_value is None:
        return default
    return raw_value.lower() in {"1", "true", "yes", "on"}


def _get_list_env(name: str) -> list[str]:
    raw_value = os.getenv(name, "")
    if not raw_value:
        return []
    parts = raw_value.replace(";", ",").split(",")
    return [p.strip() for p in parts if p.strip()]


def _get_int_env(name: str, default: int) -> int:
    raw_value = os.getenv(name)
    if not raw_value:
        return default
    return int(raw_value)


DEBUG = _get_bool_env("DJANGO_DEBUG", _get_bool_env("DEBUG", True))

base_allowed_hosts = ["localhost", "127.0.0.1"]
env_allowed_hosts = _get_list_env("DJANGO_ALLOWED_HOSTS")
ALLOWED_HOSTS = list(dict.fromkeys(base_allowed_hosts + env_allowed_hosts))


def _https_origin(host: str) -> str:
    if host.startswith("http://") or host.startswith("https://"):
        return host
    return f"https://{host}"


CSRF_TRUSTED_ORIGINS = _get_list_env("CSRF_TRUSTED_ORIGINS")

# Add HTTPS versions of allowed hosts (exclude localhost)
for host in ALLOWED_HOSTS:
    if host in {"localhost", "127.0.0.1"}:
        continue
    origin = _https_origin(host)
    if origin not in CSRF_TRUSTED_ORIGINS:
        CSRF_TRUSTED_ORIGINS.append(origin)

INSTALLED_APPS = [
    "django.contrib.admin",
    "django.contrib.auth",
    "django.contrib.contenttypes",
    "django.contrib.sessions",
    "django.contrib.messages",
    "django.contrib.staticfiles",

    # Third-party
    "rest_framework",

    # Project apps
    "core",
]

MIDDLEWARE = [
    "django.middleware.security.SecurityMiddleware",
    "whitenoise.middleware.WhiteNoiseMiddleware",
    "django.contrib.sessions.middleware.SessionMiddleware",
    "django.middleware.common.CommonMiddleware",
    "django.middleware.csrf.CsrfViewMiddleware",
    "django.contrib.auth.middleware.AuthenticationMiddleware",
    "django.contrib.messages.middleware.MessageMiddleware",
    "django.middleware.clickjacking.XFrameOptionsMiddleware",
]


ROOT_URLCONF = "kasboek_project.urls"

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
    }
]

WSGI_APPLICATION = "kasboek_project.wsgi.application"

default_db = "sqlite:///" + str((BASE_DIR / "db.sqlite3").resolve())
database_url = os.getenv("DATABASE_URL", default_db)
DATABASES = {"default": dj_database_url.parse(database_url)}

LANGUAGE_CODE = "en-us"
TIME_ZONE = "Europe/Amsterdam"
USE_I18N = True
USE_TZ = True

STATIC_URL = "/static/"
STATIC_ROOT = BASE_DIR / "staticfiles"

MEDIA_ROOT = BASE_DIR / "media"
MEDIA_URL = "/media/"

STORAGES = {
    "default": {
        "BACKEND": "django.core.files.storage.FileSystemStorage",
        "OPTIONS": {
            "location": MEDIA_ROOT,
            "base_url": MEDIA_URL,
        },
    },
    "staticfiles": {
        "BACKEND": "whitenoise.storage.CompressedManifestStaticFilesStorage",
    },
}

REST_FRAMEWORK = {
    "DEFAULT_AUTHENTICATION_CLASSES": [
        "rest_framework.authentication.SessionAuthentication",
        "rest_framework.authentication.BasicAuthentication",
    ],
    "DEFAULT_PERMISSION_CLASSES": [
        "rest_framework.permissions.IsAuthenticated",
    ],
}

DEFAULT_AUTO_FIELD = "django.db.models.BigAutoField"

ENABLE_DJANGO_ADMIN = _get_bool_env("ENABLE_DJANGO_ADMIN", DEBUG)

# --- Ledger ---

LEDGER_DEFAULT_MILEAGE_RATE = os.getenv("LEDGER_DEFAULT_MILEAGE_RATE", "0.23")
BANK_IMPORT_MAX_FILE_BYTES = _get_int_env("BANK_IMPORT_MAX_FILE_BYTES", 10 * 1024 * 1024)
INVOICE_DEFAULT_PAYMENT_DAYS = _get_int_env("INVOICE_DEFAULT_PAYMENT_DAYS", 30)

# Uploads above this go to a temp file; statements are read fully either way
DATA_UPLOAD_MAX_MEMORY_SIZE = BANK_IMPORT_MAX_FILE_BYTES + 1024 * 1024

# --- Sentry & production security hardening ---

SENTRY_DSN = os.getenv("SENTRY_DSN", "")

if not DEBUG:
    # Error monitoring (Sentry)
    if SENTRY_DSN:
        sentry_sdk.init(
            dsn=SENTRY_DSN,
            integrations=[DjangoIntegration()],
            traces_sample_rate=0.1,   # sample 10% of requests for performance traces
            send_default_pii=False,   # bank data stays out of events
            environment=os.getenv("SENTRY_ENVIRONMENT", "production"),
        )

    SECURE_PROXY_SSL_HEADER = ("HTTP_X_FORWARDED_PROTO", "https")
    SECURE_SSL_REDIRECT = _get_bool_env("SECURE_SSL_REDIRECT", True)

    # HSTS: tell browsers to always use HTTPS
    SECURE_HSTS_SECONDS = 31536000  # 1 year
    SECURE_HSTS_INCLUDE_SUBDOMAINS = True

    # Cookies
    SESSION_COOKIE_SECURE = True
    CSRF_COOKIE_SECURE = True
    CSRF_COOKIE_HTTPONLY = True
    CSRF_COOKIE_SAMESITE = "Lax"
    SESSION_COOKIE_SAMESITE = "Lax"

    SECURE_CONTENT_TYPE_NOSNIFF = True
    X_FRAME_OPTIONS = "DENY"
else:
    # In DEBUG/tests, avoid manifest lookups for static files
    STORAGES["staticfiles"]["BACKEND"] = "django.contrib.staticfiles.storage.StaticFilesStorage"


LOGGING = {
    "version": 1,
    "disable_existing_loggers": False,
    "formatters": {
        "simple": {
            "format": "%(asctime)s %(levelname)s %(name)s: %(message)s",
        },
    },
    "handlers": {
        "console": {
            "class": "logging.StreamHandler",
            "formatter": "simple",
        },
    },
    "loggers": {
        "core": {
            "handlers": ["console"],
            "level": os.getenv("LEDGER_LOG_LEVEL", "INFO"),
        },
    },
}

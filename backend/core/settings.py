"""
Django settings for the Procurement Plan Workflow Service.

Configuration comes from environment variables (see .env for docker compose).
PostgreSQL is used when POSTGRES_DB is set; otherwise a local SQLite file,
which is what the test suite runs against.
"""

import os
from pathlib import Path

BASE_DIR = Path(__file__).resolve().parent.parent


def _env_bool(name, default=False):
    return os.environ.get(name, str(default)).lower() in ("1", "true", "yes", "on")


SECRET_KEY = os.environ.get("SECRET_KEY", "insecure-dev-key-change-me")
DEBUG = _env_bool("DEBUG", False)
ALLOWED_HOSTS = [
    h.strip()
    for h in os.environ.get("ALLOWED_HOSTS", "localhost,127.0.0.1,testserver").split(",")
    if h.strip()
]

INSTALLED_APPS = [
    "django.contrib.admin",
    "django.contrib.auth",
    "django.contrib.contenttypes",
    "django.contrib.sessions",
    "django.contrib.messages",
    "django.contrib.staticfiles",
    "rest_framework",
    "rest_framework_simplejwt.token_blacklist",
    "apps.users.apps.UsersConfig",
    "apps.audit.apps.AuditConfig",
    "apps.plans.apps.PlansConfig",
]

MIDDLEWARE = [
    "core.middleware.RequestIDMiddleware",
    "django.middleware.security.SecurityMiddleware",
    "django.contrib.sessions.middleware.SessionMiddleware",
    "django.middleware.common.CommonMiddleware",
    "django.middleware.csrf.CsrfViewMiddleware",
    "django.contrib.auth.middleware.AuthenticationMiddleware",
    "django.contrib.messages.middleware.MessageMiddleware",
    "core.middleware.IdempotencyKeyMiddleware",
]

ROOT_URLCONF = "core.urls"
WSGI_APPLICATION = "core.wsgi.application"
APPEND_SLASH = False

TEMPLATES = [
    {
        "BACKEND": "django.template.backends.django.DjangoTemplates",
        "DIRS": [],
        "APP_DIRS": True,
        "OPTIONS": {
            "context_processors": [
                "django.template.context_processors.request",
                "django.contrib.auth.context_processors.auth",
                "django.contrib.messages.context_processors.messages",
            ],
        },
    },
]

# Statement and connect timeouts bound every store call; see core.retry
DB_STATEMENT_TIMEOUT_MS = int(os.environ.get("DB_STATEMENT_TIMEOUT_MS", "5000"))
DB_CONNECT_TIMEOUT = int(os.environ.get("DB_CONNECT_TIMEOUT", "5"))

if os.environ.get("POSTGRES_DB"):
    DATABASES = {
        "default": {
            "ENGINE": "django.db.backends.postgresql",
            "NAME": os.environ["POSTGRES_DB"],
            "USER": os.environ.get("POSTGRES_USER", "postgres"),
            "PASSWORD": os.environ.get("POSTGRES_PASSWORD", ""),
            "HOST": os.environ.get("POSTGRES_HOST", "localhost"),
            "PORT": os.environ.get("POSTGRES_PORT", "5432"),
            "CONN_MAX_AGE": int(os.environ.get("DB_CONN_MAX_AGE", "60")),
            "OPTIONS": {
                "connect_timeout": DB_CONNECT_TIMEOUT,
                "options": f"-c statement_timeout={DB_STATEMENT_TIMEOUT_MS}",
            },
        }
    }
else:
    DATABASES = {
        "default": {
            "ENGINE": "django.db.backends.sqlite3",
            "NAME": BASE_DIR / "db.sqlite3",
            "OPTIONS": {"timeout": DB_CONNECT_TIMEOUT},
        }
    }

STORAGE_RETRY_ATTEMPTS = int(os.environ.get("STORAGE_RETRY_ATTEMPTS", "3"))
STORAGE_RETRY_BACKOFF_SECONDS = float(
    os.environ.get("STORAGE_RETRY_BACKOFF_SECONDS", "0.1")
)

AUTH_USER_MODEL = "users.User"
DEFAULT_AUTO_FIELD = "django.db.models.BigAutoField"

CACHES = {
    "default": {
        "BACKEND": "django.core.cache.backends.locmem.LocMemCache",
    }
}

LANGUAGE_CODE = "en-us"
TIME_ZONE = "UTC"
USE_I18N = False
USE_TZ = True

STATIC_URL = "static/"
STATIC_ROOT = BASE_DIR / "staticfiles"

REST_FRAMEWORK = {
    "DEFAULT_AUTHENTICATION_CLASSES": [
        "rest_framework_simplejwt.authentication.JWTAuthentication",
    ],
    "DEFAULT_PERMISSION_CLASSES": [
        "rest_framework.permissions.IsAuthenticated",
    ],
    "DEFAULT_THROTTLE_CLASSES": [
        "core.throttling.MutationUserThrottle",
    ],
    "DEFAULT_THROTTLE_RATES": {
        "mutation_user": os.environ.get("THROTTLE_MUTATION_USER", "600/hour"),
        "plan_create": os.environ.get("THROTTLE_PLAN_CREATE", "20/hour"),
    },
    "EXCEPTION_HANDLER": "core.exceptions.domain_exception_handler",
}

SIMPLE_JWT = {
    "AUTH_HEADER_TYPES": ("Bearer",),
    "USER_ID_FIELD": "id",
    "USER_ID_CLAIM": "user_id",
}

# Utilization percent at which an active plan's budget raises a warning alert
BUDGET_ALERT_THRESHOLD_PERCENT = os.environ.get("BUDGET_ALERT_THRESHOLD_PERCENT", "80")

# Approval threshold bands. Thresholds must start at 0 and strictly increase;
# loaded once into apps.plans.routing.ApprovalPolicy at start-up. Approvers are
# user ids or usernames.
PLAN_APPROVAL_POLICY = {
    "version": int(os.environ.get("PLAN_APPROVAL_POLICY_VERSION", "1")),
    "default": [
        {
            "threshold": "0",
            "approvers": ["department_head"],
            "conditions": ["Department head sign-off"],
        },
        {
            "threshold": "50000",
            "approvers": ["finance_director"],
            "conditions": ["Finance review of funding source"],
        },
        {
            "threshold": "500000",
            "approvers": ["chief_executive"],
            "conditions": ["Executive approval for major expenditure"],
        },
    ],
    "departments": {
        "IT": [
            {"threshold": "0", "approvers": ["it_manager"], "conditions": []},
            {"threshold": "25000", "approvers": ["cio"], "conditions": []},
            {
                "threshold": "250000",
                "approvers": ["finance_director"],
                "conditions": [],
            },
        ],
    },
}

LOG_LEVEL = os.environ.get("LOG_LEVEL", "INFO")
LOG_FORMAT = os.environ.get("LOG_FORMAT", "json")
AUDIT_RECONCILIATION_LOG = os.environ.get(
    "AUDIT_RECONCILIATION_LOG", str(BASE_DIR / "audit_reconciliation.jsonl")
)

LOGGING = {
    "version": 1,
    "disable_existing_loggers": False,
    "filters": {
        "request_id": {"()": "core.middleware.RequestIDFilter"},
    },
    "formatters": {
        "json": {"()": "core.structured_logging.JSONFormatter"},
        "text": {
            "format": "%(asctime)s %(levelname)s %(name)s [%(request_id)s] %(message)s",
        },
    },
    "handlers": {
        "console": {
            "class": "logging.StreamHandler",
            "filters": ["request_id"],
            "formatter": LOG_FORMAT if LOG_FORMAT in ("json", "text") else "json",
        },
        "audit_reconciliation": {
            "class": "logging.FileHandler",
            "filename": AUDIT_RECONCILIATION_LOG,
            "filters": ["request_id"],
            "formatter": "json",
            "delay": True,
        },
    },
    "root": {"handlers": ["console"], "level": LOG_LEVEL},
    "loggers": {
        "django": {"handlers": ["console"], "level": LOG_LEVEL, "propagate": False},
        "gunicorn.error": {
            "handlers": ["console"],
            "level": LOG_LEVEL,
            "propagate": False,
        },
        "gunicorn.access": {
            "handlers": ["console"],
            "level": LOG_LEVEL,
            "propagate": False,
        },
        "audit.reconciliation": {
            "handlers": ["audit_reconciliation", "console"],
            "level": "ERROR",
            "propagate": False,
        },
    },
}

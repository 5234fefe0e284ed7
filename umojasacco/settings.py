# umojasacco/settings.py

"""
Django settings for the Umoja SACCO lifecycle engine.

Deployment configuration only. Business policy (interest rate, fees,
guarantor minimums, grace period...) lives in the SystemSetting table and is
read through core.policy.PolicyStore.
"""

import os
import sys
from pathlib import Path

BASE_DIR = Path(__file__).resolve().parent.parent

# Apps are importable as top-level packages (core, loans, savings, ...)
APPS_DIR = BASE_DIR / 'apps'
if str(APPS_DIR) not in sys.path:
    sys.path.insert(0, str(APPS_DIR))


def env_bool(name, default=False):
    value = os.environ.get(name)
    if value is None:
        return default
    return value.strip().lower() in ('1', 'true', 'yes', 'on')


SECRET_KEY = os.environ.get('SACCO_SECRET_KEY', 'insecure-development-key-change-me')

DEBUG = env_bool('SACCO_DEBUG', False)

ALLOWED_HOSTS = [h for h in os.environ.get('SACCO_ALLOWED_HOSTS', 'localhost').split(',') if h]


# =============================================================================
# APPLICATIONS
# =============================================================================

INSTALLED_APPS = [
    'django.contrib.contenttypes',
    'utils.apps.UtilsConfig',
    'core.apps.CoreConfig',
    'members.apps.MembersConfig',
    'notifications.apps.NotificationsConfig',
    'savings.apps.SavingsConfig',
    'loans.apps.LoansConfig',
    'fines.apps.FinesConfig',
]

DEFAULT_AUTO_FIELD = 'django.db.models.BigAutoField'


# =============================================================================
# DATABASE
# =============================================================================

DATABASES = {
    'default': {
        'ENGINE': os.environ.get('SACCO_DB_ENGINE', 'django.db.backends.sqlite3'),
        'NAME': os.environ.get('SACCO_DB_NAME', str(BASE_DIR / 'db.sqlite3')),
        'USER': os.environ.get('SACCO_DB_USER', ''),
        'PASSWORD': os.environ.get('SACCO_DB_PASSWORD', ''),
        'HOST': os.environ.get('SACCO_DB_HOST', ''),
        'PORT': os.environ.get('SACCO_DB_PORT', ''),
        'ATOMIC_REQUESTS': False,
    }
}


# =============================================================================
# INTERNATIONALIZATION
# =============================================================================

LANGUAGE_CODE = 'en-us'

TIME_ZONE = os.environ.get('SACCO_TIME_ZONE', 'Africa/Nairobi')

USE_I18N = True

USE_TZ = True


# =============================================================================
# LOGGING
# =============================================================================

SACCO_LOG_LEVEL = os.environ.get('SACCO_LOG_LEVEL', 'INFO').upper()

LOGGING = {
    'version': 1,
    'disable_existing_loggers': False,
    'formatters': {
        'verbose': {
            'format': '{asctime} [{levelname}] {name}: {message}',
            'style': '{',
        },
    },
    'handlers': {
        'console': {
            'class': 'logging.StreamHandler',
            'formatter': 'verbose',
        },
    },
    'root': {
        'handlers': ['console'],
        'level': 'WARNING',
    },
    'loggers': {
        app: {
            'handlers': ['console'],
            'level': SACCO_LOG_LEVEL,
            'propagate': False,
        }
        for app in ('utils', 'core', 'members', 'notifications', 'savings', 'loans', 'fines')
    },
}

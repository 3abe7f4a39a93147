"""
Django settings for the water district billing project.

Values come from the environment; a local ``.env`` file is read first.
"""
import os
from pathlib import Path

from dotenv import load_dotenv, find_dotenv

load_dotenv(find_dotenv(), override=False)  # picks up a local .env

BASE_DIR = Path(__file__).resolve().parent.parent


def env_bool(name, default=False):
    return os.getenv(name, str(default)).strip().lower() in ('1', 'true', 'yes', 'on')


SECRET_KEY = os.getenv('DJANGO_SECRET_KEY', 'dev-only-insecure-key')
DEBUG = env_bool('DJANGO_DEBUG', False)
ALLOWED_HOSTS = [h.strip() for h in os.getenv('DJANGO_ALLOWED_HOSTS', 'localhost,127.0.0.1').split(',')
                 if h.strip()]

INSTALLED_APPS = [
    'django.contrib.admin',
    'django.contrib.auth',
    'django.contrib.contenttypes',
    'django.contrib.sessions',
    'django.contrib.messages',
    'django.contrib.staticfiles',
    'billing',
]

MIDDLEWARE = [
    'django.middleware.security.SecurityMiddleware',
    'django.contrib.sessions.middleware.SessionMiddleware',
    'django.middleware.common.CommonMiddleware',
    'django.middleware.csrf.CsrfViewMiddleware',
    'django.contrib.auth.middleware.AuthenticationMiddleware',
    'django.contrib.messages.middleware.MessageMiddleware',
    'django.middleware.clickjacking.XFrameOptionsMiddleware',
]

ROOT_URLCONF = 'waterdistrict.urls'

TEMPLATES = [
    {
        'BACKEND': 'django.template.backends.django.DjangoTemplates',
        'DIRS': [],
        'APP_DIRS': True,
        'OPTIONS': {
            'context_processors': [
                'django.template.context_processors.request',
                'django.contrib.auth.context_processors.auth',
                'django.contrib.messages.context_processors.messages',
            ],
        },
    },
]

# ---- database -------------------------------------------------------------
DATABASES = {
    'default': {
        'ENGINE':   os.getenv('DATABASE_ENGINE', 'django.db.backends.sqlite3'),
        'NAME':     os.getenv('DATABASE_NAME', str(BASE_DIR / 'db.sqlite3')),
        'USER':     os.getenv('DATABASE_USER', ''),
        'PASSWORD': os.getenv('DATABASE_PASSWORD', ''),
        'HOST':     os.getenv('DATABASE_HOST', ''),
        'PORT':     os.getenv('DATABASE_PORT', ''),
    }
}

DEFAULT_AUTO_FIELD = 'django.db.models.BigAutoField'

LANGUAGE_CODE = 'en-us'
TIME_ZONE = os.getenv('TIME_ZONE', 'Asia/Manila')
USE_I18N = True
USE_TZ = True

STATIC_URL = 'static/'

# ---- billing engine -------------------------------------------------------
# Used when no active SurchargePolicy row exists
BILLING_SURCHARGE_DEFAULTS = {
    'due_day':                  int(os.getenv('BILLING_DUE_DAY', '10')),
    'first_surcharge_percent':  os.getenv('BILLING_FIRST_SURCHARGE_PERCENT', '10'),
    'second_surcharge_percent': os.getenv('BILLING_SECOND_SURCHARGE_PERCENT', '15'),
}
BILLING_BILL_NUMBER_ATTEMPTS = int(os.getenv('BILLING_BILL_NUMBER_ATTEMPTS', '10'))

# ---- logging --------------------------------------------------------------
LOGGING = {
    'version': 1,
    'disable_existing_loggers': False,
    'formatters': {
        'standard': {
            'format': '%(asctime)s [%(levelname)s] %(name)s: %(message)s',
        },
    },
    'handlers': {
        'console': {
            'class': 'logging.StreamHandler',
            'formatter': 'standard',
        },
    },
    'root': {
        'handlers': ['console'],
        'level': 'WARNING',
    },
    'loggers': {
        'billing': {
            'handlers': ['console'],
            'level': os.getenv('BILLING_LOG_LEVEL', 'INFO'),
            'propagate': False,
        },
    },
}

from pathlib import Path
import os
import environ
from datetime import timedelta

BASE_DIR = Path(__file__).resolve().parent.parent
env = environ.Env()
environ.Env.read_env(os.path.join(BASE_DIR.parent, '.env'))

SECRET_KEY = env('DJANGO_SECRET_KEY', default='dev-secret')
DEBUG = env.bool('DJANGO_DEBUG', default=True)
ALLOWED_HOSTS = env.list('ALLOWED_HOSTS', default=['*'])

INSTALLED_APPS = [
    'django.contrib.admin','django.contrib.auth','django.contrib.contenttypes',
    'django.contrib.sessions','django.contrib.messages','django.contrib.staticfiles',
    'rest_framework','corsheaders','django_filters',
    'accounts','availability','bookings','payments',
]

MIDDLEWARE = [
    'django.middleware.security.SecurityMiddleware',
    'django.contrib.sessions.middleware.SessionMiddleware',
    'corsheaders.middleware.CorsMiddleware',
    'django.middleware.common.CommonMiddleware',
    'django.middleware.csrf.CsrfViewMiddleware',
    'django.contrib.auth.middleware.AuthenticationMiddleware',
    'django.contrib.messages.middleware.MessageMiddleware',
    'django.middleware.clickjacking.XFrameOptionsMiddleware',
]

ROOT_URLCONF = 'config.urls'

TEMPLATES = [{
    'BACKEND': 'django.template.backends.django.DjangoTemplates',
    'DIRS': [],
    'APP_DIRS': True,
    'OPTIONS': {
        'context_processors': [
            'django.template.context_processors.debug',
            'django.template.context_processors.request',
            'django.contrib.auth.context_processors.auth',
            'django.contrib.messages.context_processors.messages',
        ],
    },
}]

WSGI_APPLICATION = 'config.wsgi.application'

DATABASES = {
    'default': {
        'ENGINE': 'django.db.backends.postgresql',
        'NAME': env('POSTGRES_DB', default='lessons'),
        'USER': env('POSTGRES_USER', default='lessons'),
        'PASSWORD': env('POSTGRES_PASSWORD', default='lessons'),
        'HOST': env('POSTGRES_HOST', default='localhost'),
        'PORT': env('POSTGRES_PORT', default='5432'),
    }
}

if env.bool('USE_SQLITE_DB', default=False):
    DATABASES['default'] = {
        'ENGINE': 'django.db.backends.sqlite3',
        'NAME': BASE_DIR / 'db.sqlite3',
    }

AUTH_USER_MODEL = 'accounts.User'

REST_FRAMEWORK = {
    'DEFAULT_AUTHENTICATION_CLASSES': (
        'rest_framework_simplejwt.authentication.JWTAuthentication',
    ),
    'DEFAULT_PERMISSION_CLASSES': (
        'rest_framework.permissions.IsAuthenticated',
    ),
    'DEFAULT_FILTER_BACKENDS': (
        'django_filters.rest_framework.DjangoFilterBackend',
        'rest_framework.filters.OrderingFilter',
    ),
}

SIMPLE_JWT = {
    'ACCESS_TOKEN_LIFETIME': timedelta(minutes=30),
    'REFRESH_TOKEN_LIFETIME': timedelta(days=7),
    'AUTH_HEADER_TYPES': ('Bearer',),
}

CORS_ALLOW_ALL_ORIGINS = True
CORS_ALLOWED_ORIGINS = env.list('CORS_ALLOWED_ORIGINS', default=[])

STATIC_URL = 'static/'
DEFAULT_AUTO_FIELD = 'django.db.models.BigAutoField'

# Lessons are sold in the UK; all slot arithmetic happens in local time.
LANGUAGE_CODE = 'en-gb'
TIME_ZONE = env('TIME_ZONE', default='Europe/London')
USE_TZ = True

# Weekly lesson template (Monday=0). Slots run from start to end inclusive.
LESSON_OPEN_WEEKDAYS = env.list('LESSON_OPEN_WEEKDAYS', cast=int, default=[0, 1, 2, 3, 4, 5])
LESSON_DAY_START = env('LESSON_DAY_START', default='08:00')
LESSON_DAY_END = env('LESSON_DAY_END', default='19:00')
LESSON_SLOT_MINUTES = env.int('LESSON_SLOT_MINUTES', default=60)

ADVANCE_BOOKING_NOTICE = timedelta(hours=env.int('ADVANCE_BOOKING_NOTICE_HOURS', default=24))
CANCELLATION_NOTICE = timedelta(hours=env.int('CANCELLATION_NOTICE_HOURS', default=24))
GROUP_SESSION_CAPACITY = env.int('GROUP_SESSION_CAPACITY', default=6)
RECURRING_MAX_OCCURRENCES = env.int('RECURRING_MAX_OCCURRENCES', default=12)
RECURRING_DEFAULT_OCCURRENCES = env.int('RECURRING_DEFAULT_OCCURRENCES', default=4)
DEFAULT_CURRENCY = env('DEFAULT_CURRENCY', default='gbp')

PAYMENT_LEAD_TIME = timedelta(hours=env.int('PAYMENT_LEAD_TIME_HOURS', default=24))
PAYMENT_CLAIM_TIMEOUT = timedelta(minutes=env.int('PAYMENT_CLAIM_TIMEOUT_MINUTES', default=15))

STRIPE_SECRET_KEY = env('STRIPE_SECRET_KEY', default='')
STRIPE_USE_STUB = env.bool('STRIPE_USE_STUB', default=True)
STRIPE_TIMEOUT_SECONDS = env.int('STRIPE_TIMEOUT_SECONDS', default=10)
FRONTEND_URL = env('FRONTEND_URL', default='http://localhost:5173')
EMAIL_BACKEND = env('EMAIL_BACKEND', default='django.core.mail.backends.console.EmailBackend')
DEFAULT_FROM_EMAIL = env('DEFAULT_FROM_EMAIL', default='Lesson Bookings <bookings@lessons.app>')

LOGGING = {
    'version': 1,
    'disable_existing_loggers': False,
    'formatters': {
        'simple': {'format': '%(asctime)s %(levelname)s %(name)s %(message)s'},
    },
    'handlers': {
        'console': {'class': 'logging.StreamHandler', 'formatter': 'simple'},
    },
    'root': {'handlers': ['console'], 'level': 'WARNING'},
    'loggers': {
        name: {
            'handlers': ['console'],
            'level': env('DJANGO_LOG_LEVEL', default='INFO'),
            'propagate': False,
        }
        for name in ('availability', 'bookings', 'payments')
    },
}

# Per-lesson prices in pence; Stripe rejects GBP charges under 30p.
LESSON_PRICES_CENTS = {
    'individual': env.int('PRICE_INDIVIDUAL_CENTS', default=3000),
    'group': env.int('PRICE_GROUP_CENTS', default=2000),
    'exam_prep': env.int('PRICE_EXAM_PREP_CENTS', default=3500),
}
MINIMUM_CHARGE_CENTS = 30

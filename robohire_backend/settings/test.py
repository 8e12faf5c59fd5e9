from .base import *  # noqa: F401,F403

SECRET_KEY = 'test-secret-key'
DEBUG = False
ALLOWED_HOSTS = ['testserver', 'localhost']

DATABASES = {
    'default': {
        'ENGINE': 'django.db.backends.sqlite3',
        'NAME': ':memory:',
    }
}

CACHES = {
    'default': {
        'BACKEND': 'django.core.cache.backends.locmem.LocMemCache',
    }
}

PASSWORD_HASHERS = ['django.contrib.auth.hashers.MD5PasswordHasher']

STRIPE_SECRET_KEY = 'sk_test_dummy'
STRIPE_WEBHOOK_SECRET = 'whsec_dummy'
STRIPE_PRICE_IDS = {
    'starter_monthly': 'price_starter_monthly',
    'starter_annual': 'price_starter_annual',
    'growth_monthly': 'price_growth_monthly',
    'growth_annual': None,
    'business_monthly': 'price_business_monthly',
    'business_annual': 'price_business_annual',
}
FRONTEND_URL = 'http://frontend.test'
CONTACT_EMAIL = 'sales@robohire.test'
EMAIL_BACKEND = 'django.core.mail.backends.locmem.EmailBackend'

CELERY_TASK_ALWAYS_EAGER = True
CELERY_BROKER_URL = 'memory://'
CELERY_RESULT_BACKEND = 'cache+memory://'

LOGGING['root']['level'] = 'CRITICAL'  # noqa: F405

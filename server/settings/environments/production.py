"""Overriding settings for the production environment.

Values here must come from the environment: no defaults for secrets.
"""

from server.settings.components import config

DEBUG = False

SECRET_KEY = config('DJANGO_SECRET_KEY')

ALLOWED_HOSTS = [
    config('DOMAIN_NAME'),
]

SESSION_COOKIE_SECURE = True
CSRF_COOKIE_SECURE = True

"""Overriding settings for the development environment."""

from server.settings.components import config

DEBUG = True

ALLOWED_HOSTS = [
    config('DOMAIN_NAME', default='localhost'),
    'localhost',
    '127.0.0.1',
]

import os
from pathlib import Path

from dotenv import load_dotenv

ROOT_DIR = Path(__file__).parent
load_dotenv(ROOT_DIR / '.env')


class Config:
    SECRET_KEY = os.environ.get('SECRET_KEY', 'dev-secret-change-me')

    # === Database ===
    SQLALCHEMY_DATABASE_URI = os.environ.get('DATABASE_URL', 'sqlite:///eatreal.db')
    SQLALCHEMY_TRACK_MODIFICATIONS = False

    # === Session cookie ===
    SESSION_COOKIE_NAME = 'eatreal_session'
    SESSION_COOKIE_HTTPONLY = True
    SESSION_COOKIE_SAMESITE = 'Lax'
    SESSION_COOKIE_SECURE = os.environ.get('SESSION_COOKIE_SECURE', 'false').lower() == 'true'

    # Uploaded photos are kept inline as data URLs
    MAX_CONTENT_LENGTH = int(os.environ.get('MAX_CONTENT_LENGTH', 16 * 1024 * 1024))

    # === Geocoding (Nominatim) ===
    NOMINATIM_USER_AGENT = os.environ.get('NOMINATIM_USER_AGENT', 'eatreal_app')
    NOMINATIM_TIMEOUT = int(os.environ.get('NOMINATIM_TIMEOUT', 10))
    NOMINATIM_RESULT_LIMIT = 10

    # === OAuth / OIDC provider ===
    OAUTH_CLIENT_ID = os.environ.get('OAUTH_CLIENT_ID', '')
    OAUTH_CLIENT_SECRET = os.environ.get('OAUTH_CLIENT_SECRET', '')
    OAUTH_AUTHORIZE_URL = os.environ.get(
        'OAUTH_AUTHORIZE_URL',
        'https://login.microsoftonline.com/common/oauth2/v2.0/authorize')
    OAUTH_TOKEN_URL = os.environ.get(
        'OAUTH_TOKEN_URL',
        'https://login.microsoftonline.com/common/oauth2/v2.0/token')
    OAUTH_REDIRECT_URI = os.environ.get('OAUTH_REDIRECT_URI', 'http://localhost:5000/api/callback')
    OAUTH_SCOPES = ['openid', 'profile', 'email']
    OAUTH_ADMIN_PATTERN = os.environ.get('OAUTH_ADMIN_PATTERN', r'^[a-zA-Z][a-zA-Z0-9]{2}@')

    CORS_ORIGINS = os.environ.get('CORS_ORIGINS', '*').split(',')
    LOG_LEVEL = os.environ.get('LOG_LEVEL', 'INFO')


class TestConfig(Config):
    TESTING = True
    SECRET_KEY = 'test-secret'
    SQLALCHEMY_DATABASE_URI = 'sqlite:///:memory:'
    OAUTH_CLIENT_ID = 'test-client'
    OAUTH_CLIENT_SECRET = 'test-secret'

"""
Environment configuration for the back-office service.

Values are read once at import time. A local .env file is honoured.
"""

import os

from dotenv import load_dotenv

load_dotenv()


def _env_flag(name, default=False):
    value = os.environ.get(name)
    if value is None:
        return default
    return value.strip().lower() in ('1', 'true', 'yes', 'on')


DB_CONFIG = {
    'host': os.environ.get('DB_HOST', 'localhost'),
    'port': int(os.environ.get('DB_PORT', 5432)),
    'database': os.environ.get('DB_NAME', 'travloger'),
    'user': os.environ.get('DB_USER', 'postgres'),
    'password': os.environ.get('DB_PASS', ''),
}

# A full DSN wins over the discrete DB_* settings when present
DATABASE_URL = os.environ.get('SUPABASE_DB_URL') or os.environ.get('DATABASE_URL')

SECRET_KEY = os.environ.get('SECRET_KEY', 'your-secret-key-change-in-production')

# Run the CREATE/ALTER statements in schema.py on the first connection
AUTO_MIGRATE = _env_flag('AUTO_MIGRATE', True)

LOG_LEVEL = os.environ.get('LOG_LEVEL', 'INFO').upper()

PORT = int(os.environ.get('PORT', 5000))
DEBUG = _env_flag('FLASK_DEBUG', False)

# Branding printed on exported itineraries
BRAND_NAME = os.environ.get('BRAND_NAME', 'travloger.in')
BRAND_TAGLINE = os.environ.get('BRAND_TAGLINE', 'You travel. We capture')

CREATED_BY_DEFAULT = os.environ.get('CREATED_BY_DEFAULT', 'Travloger.in')

MAX_COVER_PHOTO_BYTES = int(os.environ.get('MAX_COVER_PHOTO_BYTES', 5 * 1024 * 1024))

import os
import sys


def _env_int(name: str, default: int) -> int:
    value = os.environ.get(name)
    if value is None or value == '':
        return default
    return int(value)


def _env_float(name: str, default: float) -> float:
    value = os.environ.get(name)
    if value is None or value == '':
        return default
    return float(value)


class Config:
    SECRET_KEY = os.environ.get('SECRET_KEY') or 'dev-secret-key-change-in-prod'

    # Determine project root in both source and frozen (PyInstaller) modes.
    if getattr(sys, 'frozen', False):
        PROJECT_ROOT = os.path.dirname(sys.executable)
        BASE_DIR = PROJECT_ROOT
    else:
        # Regular source layout: frontdesk/config -> frontdesk -> project root
        BASE_DIR = os.path.abspath(os.path.dirname(__file__))
        PROJECT_ROOT = os.path.dirname(os.path.dirname(BASE_DIR))

    # Database file location
    DATABASE_PATH = os.environ.get('DATABASE_PATH') or os.path.join(PROJECT_ROOT, 'frontdesk.db')

    # Seconds a single store round trip may wait on a locked database
    STORE_TIMEOUT = _env_float('STORE_TIMEOUT', 5.0)

    # Atomic token path retries before falling back to offline numbering
    TOKEN_RETRY_ATTEMPTS = _env_int('TOKEN_RETRY_ATTEMPTS', 3)
    TOKEN_RETRY_BACKOFF = _env_float('TOKEN_RETRY_BACKOFF', 0.05)

    # Clinic wall clock relative to UTC; drives the "today" date key
    CLINIC_UTC_OFFSET_MINUTES = _env_int('CLINIC_UTC_OFFSET_MINUTES', 330)

    # Billing
    CURRENCY_MINOR_UNITS = 2
    DEFAULT_CONSULTATION_FEE = 500
    DEFAULT_MEDICATION_COST = 250
    DEFAULT_ADDITIONAL_CHARGES = 0

    LOG_LEVEL = os.environ.get('LOG_LEVEL', 'INFO')

    DEBUG = True
    TESTING = False


class TestConfig(Config):
    TESTING = True
    DEBUG = False
    SECRET_KEY = 'test-secret-key'
    TOKEN_RETRY_ATTEMPTS = 2
    TOKEN_RETRY_BACKOFF = 0
    STORE_TIMEOUT = 10.0

import os

BASE_DIR = os.path.abspath(os.path.dirname(__file__))

class Config:
    # Secrets
    SECRET_KEY = os.getenv("SECRET_KEY", "dev-only-change-me")
    JWT_SECRET = os.getenv("JWT_SECRET", SECRET_KEY)

    # SQLite database file stored next to the app as civicdesk.db
    SQLALCHEMY_DATABASE_URI = os.getenv(
        "DATABASE_URL",
        "sqlite:///" + os.path.join(BASE_DIR, "civicdesk.db")
    )
    SQLALCHEMY_TRACK_MODIFICATIONS = False

    # Bearer tokens: 7 days
    JWT_ALGORITHM = "HS256"
    JWT_EXPIRES_SECONDS = int(os.getenv("JWT_EXPIRES_SECONDS", str(7 * 24 * 60 * 60)))

    # Account lockout: 5 consecutive failures lock the account for 2 hours
    MAX_LOGIN_ATTEMPTS = 5
    LOCKOUT_SECONDS = 2 * 60 * 60
    LOCKOUT_SAVE_RETRIES = 3

    # When true, locked and wrong-password logins get the same 401 so lock
    # state is not revealed to the caller
    AUTH_GENERIC_FAILURES = os.getenv("AUTH_GENERIC_FAILURES", "false").lower() == "true"

    BCRYPT_ROUNDS = int(os.getenv("BCRYPT_ROUNDS", "12"))

    # Password policy
    PASSWORD_MIN_LEN = 8
    PASSWORD_MAX_LEN = 72
    PASSWORD_REQUIRE_UPPER = True
    PASSWORD_REQUIRE_LOWER = True
    PASSWORD_REQUIRE_DIGIT = True
    PASSWORD_REQUIRE_SYMBOL = False

    # Listing
    PAGE_SIZE_DEFAULT = 10
    PAGE_SIZE_MAX = 100

    # Basic app settings
    DEBUG = False


class TestingConfig(Config):
    TESTING = True
    SQLALCHEMY_DATABASE_URI = "sqlite://"
    JWT_SECRET = "test-secret-key-long-enough-for-hs256"
    BCRYPT_ROUNDS = 4
    AUTH_GENERIC_FAILURES = False

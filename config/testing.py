import os

SECRET_KEY = "test-secret"

DB_CONFIG = {
    "host": os.getenv("DB_HOST", "localhost"),
    "port": int(os.getenv("DB_PORT", "3306")),
    "user": os.getenv("DB_USER", "root"),
    "password": os.getenv("DB_PASSWORD", ""),
    "database": os.getenv("DB_NAME", "motac_irm_test"),
}

DEBUG = False
TESTING = True

LOG_LEVEL = "WARNING"
LOG_DIR = None

MIN_APPROVER_GRADE_LEVEL = 41
EMAIL_DOMAIN = "motac.gov.my"
MAX_PROVISION_ATTEMPTS = 3
PASSWORD_CONFIRM_SECONDS = 10800

IMPORT_ASYNC = False
IMPORT_WORKERS = 1
IMPORT_MAX_ROWS = 10000

AUTO_INIT_DB = bool(int(os.getenv("AUTO_INIT_DB", "0")))
AUTO_SEED_DB = bool(int(os.getenv("AUTO_SEED_DB", "0")))

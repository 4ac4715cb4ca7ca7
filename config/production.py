import os

SECRET_KEY = os.getenv("SECRET_KEY", "please-set-SECRET_KEY")

DB_CONFIG = {
    "host": os.getenv("DB_HOST", "localhost"),
    "port": int(os.getenv("DB_PORT", "3306")),
    "user": os.getenv("DB_USER", "root"),
    "password": os.getenv("DB_PASSWORD", ""),
    "database": os.getenv("DB_NAME", "motac_irm"),
}

DEBUG = False

LOG_LEVEL = os.getenv("LOG_LEVEL", "INFO")
LOG_DIR = os.getenv("LOG_DIR", "logs")

MIN_APPROVER_GRADE_LEVEL = int(os.getenv("MIN_APPROVER_GRADE_LEVEL", "41"))
EMAIL_DOMAIN = os.getenv("EMAIL_DOMAIN", "motac.gov.my")
MAX_PROVISION_ATTEMPTS = int(os.getenv("MAX_PROVISION_ATTEMPTS", "3"))
PASSWORD_CONFIRM_SECONDS = int(os.getenv("PASSWORD_CONFIRM_SECONDS", "10800"))

IMPORT_ASYNC = bool(int(os.getenv("IMPORT_ASYNC", "1")))
IMPORT_WORKERS = int(os.getenv("IMPORT_WORKERS", "2"))
IMPORT_MAX_ROWS = int(os.getenv("IMPORT_MAX_ROWS", "10000"))

AUTO_INIT_DB = bool(int(os.getenv("AUTO_INIT_DB", "0")))
AUTO_SEED_DB = bool(int(os.getenv("AUTO_SEED_DB", "0")))

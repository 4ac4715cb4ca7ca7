"""Constants and defaults.

Note: Keep constants here to avoid magic numbers spread across code.
Settings modules may override the ones marked as configurable.
"""

# configurable
DEFAULT_MIN_APPROVER_GRADE_LEVEL = 41
DEFAULT_EMAIL_DOMAIN = "motac.gov.my"
DEFAULT_MAX_PROVISION_ATTEMPTS = 3
DEFAULT_PASSWORD_CONFIRM_SECONDS = 3 * 60 * 60
DEFAULT_IMPORT_MAX_ROWS = 10000

TEMP_PASSWORD_LENGTH = 12
MIN_PASSWORD_LENGTH = 8
DEFAULT_LIST_LIMIT = 200

FINGERPRINT_COLUMNS = ("employee_id", "date", "check_in", "check_out")
FINGERPRINT_OPTIONAL_COLUMNS = ("log", "excuse")
IMPORT_EXTENSIONS = {
    "xlsx": "application/vnd.openxmlformats-officedocument.spreadsheetml.sheet",
    "xls": "application/vnd.ms-excel",
}

from enum import Enum


class LogLevelFilter(str, Enum):
    ALL = "all"
    DEBUG = "DEBUG"
    INFO = "INFO"
    WARN = "WARN"
    ERROR = "ERROR"


# ExtractionError.error_code -> HTTP status; unknown codes are 500.
ERROR_STATUS_CODES = {
    "ALREADY_IN_PROGRESS": 409,
    "PDF_NOT_FOUND": 404,
    "SOURCE_NOT_FOUND": 404,
    "JOB_NOT_FOUND": 404,
    "INVALID_DATE": 400,
    "ValidationError": 400,
    "INVALID_JOB_TRANSITION": 409,
}

MAX_LOG_PAGE_SIZE = 200
MAX_JOB_PAGE_SIZE = 100

"""
Error taxonomy shared by services, the persistence layer and the API.

Every class carries the HTTP status and the user-facing ``error`` string the
API renders; ``details`` is the diagnostic text. For external failures the
details shown to the user stay generic and the full cause is logged.
"""


class MealVisionError(Exception):
    status_code = 500
    error = "Internal server error"

    def __init__(self, details: str = ""):
        super().__init__(details or self.error)
        self.details = details


# --- Validation (user-correctable, raised before any external call) ---

class InputValidationError(MealVisionError):
    status_code = 400
    error = "Invalid request"


class MissingFieldError(InputValidationError):
    error = "Missing required field"


class InvalidImageError(InputValidationError):
    error = "Unsupported or corrupted image"


class InvalidDateRange(InputValidationError):
    error = "Invalid date range"


class PayloadTooLarge(InputValidationError):
    status_code = 413
    error = "Payload too large"


# --- External services (model, storage, database) ---

class ExternalServiceError(MealVisionError):
    status_code = 502
    error = "The service is temporarily unavailable. Please try again."


class ExternalServiceUnavailable(ExternalServiceError):
    status_code = 500


class ExternalServiceTimeout(ExternalServiceUnavailable):
    status_code = 504
    error = "The request timed out. Please try again."


class InvalidResponseFormat(ExternalServiceError):
    status_code = 500
    error = "The analysis could not be read. Please try again."


class StorageError(ExternalServiceError):
    error = "The image could not be stored. Please try again."


class PersistenceError(ExternalServiceError):
    error = "The result could not be saved. Please try again."


# --- Domain states ---

class AnalysisNotFound(MealVisionError):
    status_code = 404
    error = "Analysis not found"


class QuotaExceeded(MealVisionError):
    status_code = 429
    error = "chat_limit_reached"

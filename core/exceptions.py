class QuizTestError(Exception):
    """Base class for every error raised by the test engine."""
    pass


class ValidationError(QuizTestError):
    """User input rejected (name too short, unknown variant, option out of range)."""
    pass


class StaleEventError(QuizTestError):
    """Button press for a question that is no longer current, or an undecodable payload."""
    pass


class NotFoundError(QuizTestError):
    """A session or question position that should exist does not."""
    pass


class StorageError(QuizTestError):
    """A persistence operation failed and was rolled back."""
    pass


class NotificationError(QuizTestError):
    """Result delivery to admins failed."""
    pass


class BankError(QuizTestError):
    """A question bank could not be loaded or is malformed."""
    pass


class InsufficientBankError(BankError):
    def __init__(self, variant: str, available: int, required: int):
        self.variant = variant
        self.available = available
        self.required = required
        super().__init__(f"Variant '{variant}' needs {required} questions, bank has {available}")

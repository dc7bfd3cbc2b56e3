"""
Exception hierarchy for the ingredient demand pipeline.

Row-level problems (unknown references, bad quantities) are never raised:
they are counted in the stage diagnostics. Only problems that make the
whole run meaningless abort it.
"""


class IngredientForecastError(Exception):
    """Base exception for ingredient demand forecasting errors."""

    def __init__(self, message=None, code=None, details=None):
        """Initialize the exception.

        Args:
            message: Error message
            code: Error code
            details: Additional error details
        """
        self.message = message or "An error occurred in the ingredient forecast pipeline"
        self.code = code
        self.details = details
        super().__init__(self.message)

    def __str__(self):
        if self.code:
            return f"[{self.code}] {self.message}"
        return self.message

    def to_dict(self):
        """Convert the exception to a dictionary."""
        error_dict = {
            'error': self.__class__.__name__,
            'message': self.message,
        }

        if self.code:
            error_dict['code'] = self.code

        if self.details:
            error_dict['details'] = self.details

        return error_dict


class ConfigurationError(IngredientForecastError):
    """Raised before any stage runs when the run configuration is unusable."""

    def __init__(self, message=None, code=None, details=None):
        message = message or "Configuration error"
        super().__init__(message, code, details)


class SchemaError(IngredientForecastError):
    """Raised when a required input table or column is missing."""

    def __init__(self, message=None, code=None, details=None):
        message = message or "Schema error"
        super().__init__(message, code, details)


class ForecastError(IngredientForecastError):
    """Raised when no forecast can be produced for a store."""

    def __init__(self, message=None, code=None, details=None):
        message = message or "Forecasting error"
        super().__init__(message, code, details)

"""Error taxonomy shared by all explorer_ml models."""

from typing import Any, Dict, Optional, Sequence


class ExplorerMLError(Exception):
    """Base exception for model training and prediction errors."""

    default_message = "An error occurred in the model library"

    def __init__(self, message: Optional[str] = None, details: Optional[Dict[str, Any]] = None):
        self.message = message or self.default_message
        self.details = details or {}
        super().__init__(self.message)

    def __str__(self):
        return self.message

    def to_dict(self) -> Dict[str, Any]:
        """Convert the exception to a dictionary for display."""
        error_dict = {
            'error': self.__class__.__name__,
            'message': self.message,
        }
        if self.details:
            error_dict['details'] = self.details
        return error_dict


class ModelNotTrainedError(ExplorerMLError, RuntimeError):
    """Raised when predict/forecast is called before a successful train/fit."""

    default_message = "Model not trained yet"


class InsufficientDataError(ExplorerMLError, ValueError):
    """Raised when fewer observations than the algorithm minimum are supplied."""

    default_message = "Not enough data to train"

    def __init__(self, message: Optional[str] = None, required: Optional[int] = None,
                 received: Optional[int] = None):
        self.required = required
        self.received = received
        if message is None and required is not None:
            message = f"Need at least {required} data points to train, got {received}"
        super().__init__(message, {'required': required, 'received': received})


class InvalidColumnError(ExplorerMLError, ValueError):
    """Raised when a required column cannot be located by the column matcher."""

    default_message = "Required column not found"

    def __init__(self, message: Optional[str] = None, patterns: Sequence[str] = (),
                 columns: Sequence[str] = ()):
        self.patterns = list(patterns)
        self.columns = list(columns)
        super().__init__(message, {'patterns': self.patterns, 'columns': self.columns})


class UnknownSeriesError(ExplorerMLError, KeyError):
    """Raised when a forecast is requested for a series without a fitted model."""

    default_message = "No model for the requested series"

"""
Base model interface for explorer_ml.

Every model is constructed empty, populated by exactly one train/fit call
(re-training replaces all state) and then queried any number of times.
"""

from abc import ABC, abstractmethod
from typing import Any, Dict, List
import logging

import joblib
import pandas as pd

from ..exceptions import ModelNotTrainedError

logger = logging.getLogger(__name__)


class BaseModel(ABC):
    """Abstract base for all models ensuring consistent interface."""

    def __init__(self):
        self.feature_names: List[str] = []
        self.is_fitted: bool = False

    def _check_is_fitted(self) -> None:
        """Raise ModelNotTrainedError unless train/fit has completed."""
        if not self.is_fitted:
            raise ModelNotTrainedError(f"{self.__class__.__name__} not trained yet")

    @abstractmethod
    def get_stats(self) -> Dict[str, Any]:
        """
        Summary statistics of the last training run.

        Returns:
            Plain dict ready for display (metrics, sizes, feature importance)
        """
        pass

    def get_feature_importance(self) -> pd.DataFrame:
        """
        Return feature importance if available.

        Returns:
            DataFrame with columns ['feature', 'importance'], sorted descending
        """
        return pd.DataFrame(columns=['feature', 'importance'])

    def save(self, path: str) -> None:
        """
        Save model to disk.

        Args:
            path: File path to save model
        """
        joblib.dump({'class': self.__class__.__name__, 'state': self.__dict__}, path)
        logger.info(f"{self.__class__.__name__} saved to {path}")

    @classmethod
    def load(cls, path: str) -> 'BaseModel':
        """
        Load model from disk.

        Args:
            path: File path to load model from

        Returns:
            Loaded model instance

        Raises:
            TypeError: If the file holds a different model class
        """
        data = joblib.load(path)
        if data.get('class') != cls.__name__:
            raise TypeError(f"{path} holds a {data.get('class')}, not a {cls.__name__}")
        instance = cls.__new__(cls)
        instance.__dict__.update(data['state'])
        return instance

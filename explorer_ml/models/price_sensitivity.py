"""
Price sensitivity model for coffee survey data.

Predicts a respondent's willingness-to-pay tier (budget / moderate / premium)
from demographics and coffee habits with a random forest.
"""

from collections import Counter
from typing import Any, Dict, Mapping, Optional, Sequence, Union
import logging

import numpy as np
import pandas as pd

from .base import BaseModel
from .random_forest import RandomForestClassifier
from ..exceptions import InsufficientDataError
from ..features import (
    PRICE_TIERS,
    PRICE_TIER_LABELS,
    SURVEY_FEATURES,
    encode_customer,
    preprocess_survey_data,
    survey_feature_vector,
)
from ..metrics import accuracy

logger = logging.getLogger(__name__)

MIN_TRAINING_SAMPLES = 10


class PriceSensitivityModel(BaseModel):
    """
    Random-forest classifier of price tiers from survey answers.

    Training accuracy is measured on the training rows themselves (there is
    no holdout), so it is an optimistic figure.

    Example usage:
        model = PriceSensitivityModel(random_state=7)
        stats = model.train(survey_rows)
        model.predict({'age': 25, 'gender': 'Woman', 'is_student': True})
    """

    def __init__(
        self,
        n_trees: int = 15,
        max_depth: int = 6,
        min_samples_split: int = 3,
        max_features: Union[str, float] = 'sqrt',
        random_state: Optional[int] = None
    ):
        super().__init__()
        self.n_trees = n_trees
        self.max_depth = max_depth
        self.min_samples_split = min_samples_split
        self.max_features = max_features
        self.random_state = random_state
        self.feature_names = list(SURVEY_FEATURES)

        self.model: Optional[RandomForestClassifier] = None
        self.stats: Optional[Dict[str, Any]] = None

    def train(self, data: Sequence[Mapping[str, Any]]) -> Dict[str, Any]:
        """
        Fit the forest on survey rows with a parseable price answer.

        Returns:
            {'samples', 'accuracy', 'distribution', 'avg_prices', 'feature_importance'}

        Raises:
            InvalidColumnError: If no price/willingness column exists
            InsufficientDataError: If fewer than 10 valid rows exist
        """
        processed = preprocess_survey_data(list(data))
        if len(processed) < MIN_TRAINING_SAMPLES:
            raise InsufficientDataError(
                f"Need at least {MIN_TRAINING_SAMPLES} valid samples to train, got {len(processed)}",
                required=MIN_TRAINING_SAMPLES,
                received=len(processed),
            )

        X = np.array([survey_feature_vector(record) for record in processed], dtype=float)
        y = [record['price_category'] for record in processed]

        self.model = RandomForestClassifier(
            n_trees=self.n_trees,
            max_depth=self.max_depth,
            min_samples_split=self.min_samples_split,
            max_features=self.max_features,
            random_state=self.random_state,
        )
        self.model.fit(X, y, self.feature_names)

        train_accuracy = accuracy(y, self.model.predict(X))

        frame = pd.DataFrame({
            'tier': y,
            'price': [record['raw_price'] for record in processed],
        })
        mean_prices = frame.groupby('tier')['price'].mean()
        avg_prices = {tier: float(mean_prices.get(tier, 0.0)) for tier in PRICE_TIERS}

        self.stats = {
            'samples': len(processed),
            'accuracy': train_accuracy,
            'distribution': dict(Counter(y)),
            'avg_prices': avg_prices,
            'feature_importance': self.model.get_feature_importance().to_dict('records'),
        }
        self.is_fitted = True
        logger.info(
            f"PriceSensitivity: {len(processed)} samples, training accuracy={train_accuracy:.3f}, "
            f"distribution={self.stats['distribution']}"
        )
        return self.stats

    def predict(self, customer: Mapping[str, Any]) -> Dict[str, Any]:
        """
        Predict the tier for one customer profile (see features.encode_customer).

        Returns:
            {'category', 'category_label', 'probabilities', 'suggested_price'}
        """
        self._check_is_fitted()
        features = encode_customer(customer)
        category = self.model.predict([features])[0]
        probabilities = self.model.predict_proba([features])[0]
        return {
            'category': category,
            'category_label': PRICE_TIER_LABELS[category],
            'probabilities': probabilities,
            'suggested_price': self.stats['avg_prices'][category],
        }

    def get_feature_importance(self) -> pd.DataFrame:
        if self.model is None:
            return super().get_feature_importance()
        return self.model.get_feature_importance()

    def get_stats(self) -> Optional[Dict[str, Any]]:
        return self.stats

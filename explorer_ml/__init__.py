"""
explorer_ml: in-process models for a tabular data explorer.

Four components train on row-oriented tables supplied by the caller:
- DecisionTreeClassifier: predicts the coffee item from day/time/weather
- PriceSensitivityModel: predicts a survey respondent's price tier
- DemandForecaster: predicts sales counts from weather and calendar
- TradeForecaster: forecasts monthly trade statistics with Holt smoothing
"""

__version__ = "0.1.0"

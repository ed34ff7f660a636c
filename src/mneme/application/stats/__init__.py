# Application Stats Package
from .metrics_calculator import CardSummary, MetricsCalculator, format_review_date
from .service import StatsService

__all__ = ["MetricsCalculator", "CardSummary", "StatsService", "format_review_date"]

from appointment_bot.extraction.context import ExtractionContext, customer_statements
from appointment_bot.extraction.summary_extractor import SummaryExtractor

__all__ = [
    "ExtractionContext",
    "customer_statements",
    "SummaryExtractor",
]

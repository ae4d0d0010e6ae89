"""pmi-prep: PMI exam-preparation core (quiz engine, progress, enrollment)."""

__version__ = "1.0.0"

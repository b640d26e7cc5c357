"""AED installation viewer: ingestion, filtering, ranking and refresh."""

__version__ = "0.1.0"

"""Concurrency stress suite for transactional/analytic stores."""

__version__ = "0.1.0"

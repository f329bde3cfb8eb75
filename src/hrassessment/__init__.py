"""Candidate assessment lifecycle, code judging and scoring engine."""

__version__ = "0.1.0"

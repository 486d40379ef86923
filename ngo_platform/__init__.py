"""Multi-tenant NGO administration platform with a course and certificate engine."""

__version__ = "1.0.0"

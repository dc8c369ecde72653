"""examdesk - proctored candidate assessments with AI scoring."""

__version__ = "1.0.0"

"""WearSync — wearable OAuth integrations and health data sync."""

__version__ = "0.1.0"

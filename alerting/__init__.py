"""Configuration model, TOML loading, defaults and validation for a rule-based alerting service."""

__version__ = "0.1.0"

__all__ = ["clock", "model", "defaults", "notify_checks", "validation", "loader"]
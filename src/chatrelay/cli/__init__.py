"""Command-line control surface for chatrelay."""

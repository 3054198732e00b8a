"""Core task, budgeting and synchronization logic for chatrelay."""

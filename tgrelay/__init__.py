"""tgrelay - Telegram relay bot with an HTTP control API."""
__version__ = "0.1.0"

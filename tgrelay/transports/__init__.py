"""tgrelay transports."""

from tgrelay.transports.base import Transport, TransportError
from tgrelay.transports.telegram_transport import TelegramTransport

__all__ = [
    "Transport",
    "TransportError",
    "TelegramTransport",
]

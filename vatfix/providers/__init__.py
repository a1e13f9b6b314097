from .base import BaseProvider
from .vies import VIESProvider

__all__ = ["BaseProvider", "VIESProvider"]

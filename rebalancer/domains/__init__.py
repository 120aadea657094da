"""The three authority domains."""

from .base import Domain
from .destination import DestinationHandler
from .manager import ReactiveManager
from .origin import OriginPositionRegistry

__all__ = ["Domain", "DestinationHandler", "OriginPositionRegistry", "ReactiveManager"]

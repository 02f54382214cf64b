from .handler import FacebookHandler, ReactionType
from .validation import FacebookTokenValidator

__all__ = ["FacebookHandler", "ReactionType", "FacebookTokenValidator"]

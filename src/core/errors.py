"""
Exception types raised by the linking service.
"""


class VisionLinkError(Exception):
    """Base class for service errors."""


class InvalidRequestError(VisionLinkError, ValueError):
    """Input rejected before any side effect (missing description, missing URL, bad price)."""


class NotFoundError(VisionLinkError, LookupError):
    """Target document is missing or owned by someone else."""

    def __init__(self, collection: str, doc_id: str):
        self.collection = collection
        self.doc_id = doc_id
        super().__init__(f"{collection[:-1].capitalize()} {doc_id} not found or not owned by caller")


class IndexUnavailableError(VisionLinkError):
    """Embedding generation or nearest-neighbour search failed."""

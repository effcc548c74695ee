"""
Vector index records and search results.
The index is advisory; the document store stays the source of truth.
"""

from typing import Dict, Optional
import numpy as np
from dataclasses import dataclass, field


@dataclass
class VectorRecord:
    """Represents a vector record with metadata."""

    id: str
    """Unique identifier for the vector record (the document id)"""

    vector: Optional[np.ndarray]
    """The vector representation of the content"""

    metadata: Dict[str, object] = field(default_factory=dict)
    """Additional metadata associated with the vector"""


@dataclass
class QueryResult:
    """Represents a search result from vector store."""

    id: str
    """Identifier for the matching record"""

    distance: float
    """Squared Euclidean distance between unit-normalised vectors (0-4, lower is closer)"""

    metadata: Dict[str, object] = field(default_factory=dict)
    """Metadata associated with the matched record"""

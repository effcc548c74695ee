"""
Typed records for visions, products and the results of linking operations.
"""

from dataclasses import dataclass, field
from datetime import datetime
from typing import Dict, List, Optional, Any


def _parse_ts(value) -> Optional[datetime]:
    if value is None or isinstance(value, datetime):
        return value
    return datetime.fromisoformat(value)


@dataclass
class Vision:
    id: str
    user_id: str
    user_name: str
    user_email: str
    description: str
    file_path: str = "/no-file"
    price: Optional[int] = None  # cents
    on_sale: bool = False
    vector_id: Optional[str] = None
    linked_products: Dict[str, float] = field(default_factory=dict)  # product id -> similarity
    clicks: Dict[str, int] = field(default_factory=dict)  # product id -> click count
    supported_by: List[str] = field(default_factory=list)
    support_count: int = 0
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None

    @classmethod
    def from_document(cls, doc: Dict[str, Any]) -> "Vision":
        return cls(
            id=doc["id"],
            user_id=doc["user_id"],
            user_name=doc.get("user_name", "Unknown User"),
            user_email=doc.get("user_email", "unknown@example.com"),
            description=doc["description"],
            file_path=doc.get("file_path") or "/no-file",
            price=doc.get("price"),
            on_sale=bool(doc.get("on_sale", False)),
            vector_id=doc.get("vector_id"),
            linked_products=dict(doc.get("linked_products") or {}),
            clicks=dict(doc.get("clicks") or {}),
            supported_by=list(doc.get("supported_by") or []),
            support_count=int(doc.get("support_count") or 0),
            created_at=_parse_ts(doc.get("created_at")),
            updated_at=_parse_ts(doc.get("updated_at")),
        )


@dataclass
class Product:
    id: str
    user_id: str
    user_name: str
    user_email: str
    description: str
    url: str
    file_path: str = "/no-file"
    price: Optional[int] = None  # cents
    on_sale: bool = False
    vector_id: Optional[str] = None
    linked_vision: Dict[str, float] = field(default_factory=dict)  # vision id -> similarity, uncapped
    clicks: Dict[str, int] = field(default_factory=dict)  # vision id -> click count
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None

    @classmethod
    def from_document(cls, doc: Dict[str, Any]) -> "Product":
        return cls(
            id=doc["id"],
            user_id=doc["user_id"],
            user_name=doc.get("user_name", "Unknown User"),
            user_email=doc.get("user_email", "unknown@example.com"),
            description=doc["description"],
            url=doc["url"],
            file_path=doc.get("file_path") or "/no-file",
            price=doc.get("price"),
            on_sale=bool(doc.get("on_sale", False)),
            vector_id=doc.get("vector_id"),
            linked_vision=dict(doc.get("linked_vision") or {}),
            clicks=dict(doc.get("clicks") or {}),
            created_at=_parse_ts(doc.get("created_at")),
            updated_at=_parse_ts(doc.get("updated_at")),
        )


@dataclass
class LinkedProductInfo:
    id: str
    description: str
    similarity_score: float


@dataclass
class LinkedVisionInfo:
    id: str
    description: str
    similarity_score: float


@dataclass
class DuplicateMatch:
    vision: Vision
    similarity_score: float
    reason: str  # "semantic" | "exact"


@dataclass
class CreateVisionResult:
    vision: Vision
    message: str
    is_duplicate: bool = False
    similarity_score: Optional[float] = None
    duplicate_reason: Optional[str] = None
    linked_products: List[LinkedProductInfo] = field(default_factory=list)


@dataclass
class CreateProductResult:
    product: Product
    message: str
    linked_vision: Optional[LinkedVisionInfo] = None  # first accepting vision, for display
    accepted_visions: List[LinkedVisionInfo] = field(default_factory=list)


@dataclass
class ClickResult:
    vision_click_count: int
    product_click_count: int


@dataclass
class SupportResult:
    action: str  # "added" | "removed"
    support_count: int
    is_supported: bool


@dataclass
class Page:
    items: List[Any]
    total: int
    skip: int
    limit: int

    @property
    def has_more(self) -> bool:
        return self.skip + self.limit < self.total

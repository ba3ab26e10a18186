import logging
from datetime import datetime, timezone
from typing import Iterable, List, Optional

from displaydata.core.exceptions import NotFoundException
from displaydata.schemas.content import ContentItem

logger = logging.getLogger(__name__)

SEED_ITEMS = [
    {"id": "C001", "title": "Welcome Banner", "type": "image", "status": "active", "createdAt": "2025-01-15"},
    {"id": "C002", "title": "Product Showcase", "type": "video", "status": "active", "createdAt": "2025-02-01"},
    {"id": "C003", "title": "Holiday Promo", "type": "html", "status": "draft", "createdAt": "2025-03-10"},
    {"id": "C004", "title": "Digital Menu Board", "type": "image", "status": "archived", "createdAt": "2024-11-20"},
]


class ContentService:
    """In-memory catalogue of display content."""

    def __init__(self, items: Optional[Iterable[dict]] = None):
        seed = SEED_ITEMS if items is None else items
        self._items: List[ContentItem] = [ContentItem.model_validate(item) for item in seed]
        self._last_number = max((self._number(i.id) for i in self._items), default=0)

    @staticmethod
    def _number(item_id: str) -> int:
        digits = item_id.lstrip("C")
        return int(digits) if digits.isdigit() else 0

    def list_items(self) -> List[ContentItem]:
        return list(self._items)

    def get_item(self, item_id: str) -> ContentItem:
        for item in self._items:
            if item.id == item_id:
                return item
        raise NotFoundException(message=f"Content item {item_id} not found", resource="content_item")

    def create_item(self, title: str, type: str) -> ContentItem:
        # Ids never repeat, even after a delete
        self._last_number += 1
        item = ContentItem(
            id=f"C{self._last_number:03d}",
            title=title,
            type=type,
            status="draft",
            created_at=datetime.now(timezone.utc).date().isoformat(),
        )
        self._items.append(item)
        logger.info("Content item created", extra={"itemId": item.id})
        return item

    def delete_item(self, item_id: str) -> ContentItem:
        item = self.get_item(item_id)
        self._items.remove(item)
        logger.info("Content item deleted", extra={"itemId": item.id})
        return item

from fastapi import APIRouter, BackgroundTasks, Depends, status

from displaydata.core.config import Settings
from displaydata.core.dependencies import get_content_service, get_publisher, get_settings
from displaydata.core.events import EventPublisher
from displaydata.schemas.content import ContentItemCreate
from displaydata.services import ContentService

router = APIRouter(prefix="/items", tags=["content"])

# Events are published from BackgroundTasks: the response is sent first and the
# PublishResult is discarded, so the broker never affects status code or body.


@router.get("")
async def list_items(
    settings: Settings = Depends(get_settings),
    content: ContentService = Depends(get_content_service),
):
    return {
        "service": settings.SERVICE_NAME,
        "items": [item.to_response() for item in content.list_items()],
    }


@router.get("/{item_id}")
async def get_item(
    item_id: str,
    background_tasks: BackgroundTasks,
    settings: Settings = Depends(get_settings),
    content: ContentService = Depends(get_content_service),
    publisher: EventPublisher = Depends(get_publisher),
):
    item = content.get_item(item_id)
    background_tasks.add_task(publisher.publish, "view", item.id)
    return {"service": settings.SERVICE_NAME, "item": item.to_response()}


@router.post("", status_code=status.HTTP_201_CREATED)
async def create_item(
    body: ContentItemCreate,
    background_tasks: BackgroundTasks,
    settings: Settings = Depends(get_settings),
    content: ContentService = Depends(get_content_service),
    publisher: EventPublisher = Depends(get_publisher),
):
    item = content.create_item(title=body.title, type=body.type)
    background_tasks.add_task(publisher.publish, "create", item.id)
    return {"service": settings.SERVICE_NAME, "item": item.to_response()}


@router.delete("/{item_id}")
async def delete_item(
    item_id: str,
    background_tasks: BackgroundTasks,
    settings: Settings = Depends(get_settings),
    content: ContentService = Depends(get_content_service),
    publisher: EventPublisher = Depends(get_publisher),
):
    item = content.delete_item(item_id)
    background_tasks.add_task(publisher.publish, "delete", item.id)
    return {"service": settings.SERVICE_NAME, "deleted": item.to_response()}

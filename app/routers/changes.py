import asyncio
import json
import logging

from fastapi import APIRouter, Depends, Query, Request, status
from fastapi.responses import StreamingResponse

from app.config import Settings, get_settings
from app.schemas import ChangeNotice, ChangeNoticeAccepted
from app.services.auth import require_user
from app.services.change_feed import WILDCARD, ChangeEvent, ChangeFeed, get_change_feed
from app.services.errors import ConfigurationError
from app.services.schema_registry import SchemaRegistry

from app.routers.dependencies import get_registry, raise_http_error

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/changes", tags=["Changes"], dependencies=[Depends(require_user)])


def _require_known_table(registry: SchemaRegistry, table_name: str) -> None:
    if table_name == WILDCARD:
        return
    try:
        registry.find_table(table_name)
    except ConfigurationError as exc:
        raise_http_error(exc)


def _format_event(event: ChangeEvent) -> str:
    return f"event: change\ndata: {json.dumps(event.as_payload())}\n\n"


def _offer(queue: asyncio.Queue, event: ChangeEvent) -> bool:
    try:
        queue.put_nowait(event)
    except asyncio.QueueFull:
        logger.warning("changes:stream-dropped table=%s action=%s", event.table_name, event.action)
        return False
    return True


@router.get("/stream")
async def stream_changes(
    request: Request,
    table: str = Query(default=WILDCARD),
    registry: SchemaRegistry = Depends(get_registry),
    feed: ChangeFeed = Depends(get_change_feed),
    settings: Settings = Depends(get_settings),
) -> StreamingResponse:
    _require_known_table(registry, table)

    loop = asyncio.get_running_loop()
    queue: asyncio.Queue[ChangeEvent] = asyncio.Queue(maxsize=settings.change_stream_queue_size)
    # Store writes run in the worker thread pool.
    subscription = feed.subscribe(table, lambda event: loop.call_soon_threadsafe(_offer, queue, event))
    logger.info("changes:stream-open table=%s", table)

    async def event_stream():
        try:
            yield ": connected\n\n"
            while not await request.is_disconnected():
                try:
                    event = await asyncio.wait_for(queue.get(), timeout=settings.change_stream_keepalive_seconds)
                except asyncio.TimeoutError:
                    yield ": keep-alive\n\n"
                    continue
                yield _format_event(event)
        finally:
            subscription.close()
            logger.info("changes:stream-closed table=%s", table)

    headers = {"Cache-Control": "no-store", "X-Accel-Buffering": "no"}
    return StreamingResponse(event_stream(), media_type="text/event-stream", headers=headers)


@router.post("", response_model=ChangeNoticeAccepted, status_code=status.HTTP_202_ACCEPTED)
def publish_change(
    notice: ChangeNotice,
    registry: SchemaRegistry = Depends(get_registry),
    feed: ChangeFeed = Depends(get_change_feed),
) -> ChangeNoticeAccepted:
    _require_known_table(registry, notice.table_name)
    delivered = feed.publish(
        ChangeEvent(table_name=notice.table_name, action=notice.action, record_ids=tuple(notice.record_ids))
    )
    logger.info("changes:published table=%s action=%s delivered=%d", notice.table_name, notice.action, delivered)
    return ChangeNoticeAccepted(table_name=notice.table_name, delivered=delivered)

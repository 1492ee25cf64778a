"""
Live notifications over Server-Sent Events.

Browsers open the stream with EventSource, which cannot send headers, so the
API key may also travel as ?key=. A reconnecting client sends Last-Event-ID
(or ?since=) and first receives whatever the replay buffer still holds after
that sequence number.

Event ids are `<epoch>-<seq>`. Sequence numbers restart with the process, so
an id minted by an earlier run (or one ahead of anything published here) is
not resumable: the stream starts fresh and sends a `resync` event telling the
client to refetch. The same happens when the client fell further behind than
the replay buffer reaches.
"""

import json
import logging
from typing import Any, Dict, Optional, Tuple

from fastapi import APIRouter, Depends, Query, Request
from starlette.responses import StreamingResponse

from ..auth import Caller
from ..auth.deps import get_caller, get_stream_caller
from ..config import EVENT_KEEPALIVE_SEC
from ..services.events import EventBus, event_bus

logger = logging.getLogger("shopfloor.events")

router = APIRouter(tags=["Events"])


def format_sse(event: Dict[str, Any], epoch: Optional[str] = None) -> str:
    event_id = f"{epoch}-{event['seq']}" if epoch else event["seq"]
    return f"id: {event_id}\nevent: {event['event']}\ndata: {json.dumps(event)}\n\n"


def format_resync(bus: EventBus) -> str:
    # No id: the browser keeps its previous Last-Event-ID until a real event arrives
    data = {"epoch": bus.epoch, "last_seq": bus.last_seq}
    return f"event: resync\ndata: {json.dumps(data)}\n\n"


def parse_event_id(value: str) -> Tuple[Optional[str], int]:
    """Split `<epoch>-<seq>` (or a bare seq). Raises ValueError on anything else."""
    epoch, _, seq = value.strip().rpartition("-")
    return (epoch or None), int(seq)


def resume_point(request: Request, since: Optional[int], bus: EventBus) -> Tuple[Optional[int], bool]:
    """Returns (seq to replay after, whether the client must resync)."""
    resume = since
    header = request.headers.get("last-event-id")
    if header:
        try:
            epoch, resume = parse_event_id(header)
        except ValueError:
            logger.warning("ignoring malformed Last-Event-ID", extra={"value": header})
            resume = since
        else:
            if epoch is not None and epoch != bus.epoch:
                return None, True

    if resume is None:
        return None, False
    if resume < 0 or resume > bus.last_seq:
        return None, True
    return resume, resume + 1 < bus.first_buffered_seq


@router.get("/events/stream")
async def stream_events(
    request: Request,
    since: Optional[int] = Query(None, ge=0),
    caller: Caller = Depends(get_stream_caller),
):
    bus = event_bus
    # Subscribe before reading the backlog so nothing falls in between
    sub = bus.subscribe()
    resume, resync = resume_point(request, since, bus)
    backlog = bus.events_since(resume) if resume is not None else []
    logger.info("event stream opened", extra={
        "user_id": caller.user_id, "resume_from": resume, "resync": resync, "backlog": len(backlog),
    })

    async def generate():
        last_sent = resume or 0
        try:
            yield "retry: 3000\n\n"
            if resync:
                yield format_resync(bus)
            for event in backlog:
                yield format_sse(event, bus.epoch)
                last_sent = event["seq"]
            while True:
                if await request.is_disconnected():
                    break
                event = await sub.get(timeout=EVENT_KEEPALIVE_SEC)
                if event is None:
                    yield ": keepalive\n\n"
                    continue
                # Already sent from the backlog
                if event["seq"] <= last_sent:
                    continue
                yield format_sse(event, bus.epoch)
                last_sent = event["seq"]
        finally:
            bus.unsubscribe(sub)
            logger.info("event stream closed", extra={
                "user_id": caller.user_id, "last_seq": last_sent, "dropped": sub.dropped,
            })

    return StreamingResponse(
        generate(),
        media_type="text/event-stream",
        headers={
            "Cache-Control": "no-cache",
            "Connection": "keep-alive",
            "X-Accel-Buffering": "no",
        },
    )


@router.get("/events/recent")
def recent_events(
    since: Optional[int] = Query(None, ge=0),
    limit: int = Query(100, ge=1, le=1000),
    caller: Caller = Depends(get_caller),
):
    """Polling fallback: buffered events after `since` (or the latest `limit`).

    `epoch` changes when the server restarts; a poller that sees a new epoch
    should refetch instead of trusting its old `since`.
    """
    events = event_bus.events_since(since)[:limit] if since is not None else event_bus.recent(limit)
    return {"epoch": event_bus.epoch, "last_seq": event_bus.last_seq, "events": events}

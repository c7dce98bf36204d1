"""Live query WebSocket router.

Clients subscribe to record queries and receive a fresh snapshot whenever
a matching record changes, starting with the current one.

Protocol:
1. Client connects and sends its access token as the first text message.
2. Server validates the token and loads the session; a session without a
   profile is refused.
3. On success the server sends ``auth_ok`` with the active connection.
4. Client sends ``{"type": "subscribe", "kind": ..., ...}`` and
   ``{"type": "unsubscribe", "key": ...}``; the server pushes
   ``{"type": "snapshot", "key": ..., "data": ...}``.
5. Client can send "ping" and the server replies "pong".
"""

import asyncio
import json
import logging
import uuid
from collections.abc import Callable
from datetime import datetime, timezone
from typing import Any

from fastapi import APIRouter, HTTPException, WebSocket, WebSocketDisconnect

from src.api.deps import authenticate_token
from src.api.middleware.error_handler import APIError, ValidationError
from src.api.routes.schedules import requested_range
from src.core.dates import parse_date
from src.core.session import SessionContext, SessionState
from src.core.store import Subscription
from src.services.handover_service import HandoverService
from src.services.meal_plan_service import MealPlanService
from src.services.medication_service import MedicationService
from src.services.profile_service import ProfileService
from src.services.record_scope import resolve_record_scope
from src.services.schedule_service import ScheduleService
from src.services.session_service import SessionService
from src.services.special_schedule_service import SpecialScheduleService

logger = logging.getLogger(__name__)

router = APIRouter(tags=["live"])


def socket_key(key: str, socket_id: str) -> str:
    """Session key of a socket's query; keeps the connection prefix of ``key``."""
    return f"{key}@{socket_id}"


def subscribe(
    session: SessionContext,
    message: dict[str, Any],
    push: Callable[[str, Any], None],
    socket_id: str,
) -> str:
    """Start the live query described by ``message`` and track it on the session.

    The query is tracked under the key qualified by ``socket_id``, so two
    sockets of one user can hold the same query side by side.

    Args:
        session: The subscriber's session.
        message: Subscribe request with ``kind`` and its parameters.
        push: Called with the subscription key and each snapshot.
        socket_id: Identifies the socket the query belongs to.

    Returns:
        str: The subscription key.

    Raises:
        APIError: If the kind is unknown or the connection is not the caller's.
    """
    kind = message.get("kind")

    if kind == "work_schedule":
        key = f"user:{session.user_id}:work_schedule"
        sub = ProfileService().watch_work_schedule(session.user_id, lambda rows: push(key, rows[0] if rows else {}))
        session.track(socket_key(key, socket_id), sub)
        return key

    scope = resolve_record_scope(session, message.get("connection_id"))
    start, end = message.get("start_date"), message.get("end_date")
    date_range = requested_range(parse_date(start) if start else None, parse_date(end) if end else None)
    sub: Subscription

    if kind == "schedules":
        child_id = str(message.get("child_id") or "")
        key = scope.subscription_key(kind, child_id, date_range.start_date, date_range.end_date)
        sub = ScheduleService().watch_date_range_schedules(scope, child_id, date_range, lambda data: push(key, data))
    elif kind == "meal_plans":
        key = scope.subscription_key(kind, date_range.start_date, date_range.end_date)
        sub = MealPlanService().watch_date_range_meal_plans(scope, date_range, lambda data: push(key, data))
    elif kind == "medications":
        key = scope.subscription_key(kind)
        sub = MedicationService().watch_medications(scope, lambda data: push(key, data))
    elif kind == "special_schedules":
        key = scope.subscription_key(kind)
        sub = SpecialScheduleService().watch_special_schedule_items(scope, lambda data: push(key, data))
    elif kind == "handover_notes":
        key = scope.subscription_key(kind)
        sub = HandoverService().watch(scope, lambda data: push(key, data))
    else:
        raise ValidationError(f"Unknown subscription kind: {kind}")

    session.track(socket_key(key, socket_id), sub)
    return key


@router.websocket("/live")
async def live_websocket(websocket: WebSocket) -> None:
    """WebSocket endpoint for live record queries.

    Store callbacks may fire on any thread, so snapshots are handed to the
    event loop through a queue and written by a single sender task.
    """
    await websocket.accept()
    loop = asyncio.get_running_loop()
    outbox: asyncio.Queue[dict[str, Any]] = asyncio.Queue()
    session: SessionContext | None = None
    socket_id = uuid.uuid4().hex
    keys: set[str] = set()

    def push(key: str, data: Any) -> None:
        loop.call_soon_threadsafe(outbox.put_nowait, {"type": "snapshot", "key": key, "data": data})

    async def sender() -> None:
        while True:
            await websocket.send_json(await outbox.get())

    sender_task: asyncio.Task | None = None

    try:
        token = await websocket.receive_text()
        try:
            identity = authenticate_token(f"Bearer {token}")
        except HTTPException as e:
            await websocket.send_json({"type": "auth_error", "detail": e.detail})
            await websocket.close(code=4001)
            return

        session = await SessionService().open(identity)
        if session.state is not SessionState.READY:
            await websocket.send_json({"type": "auth_error", "detail": "Complete your profile first"})
            await websocket.close(code=4003)
            return

        await websocket.send_json(
            {
                "type": "auth_ok",
                "user_id": session.user_id,
                "active_connection_id": session.active_connection_id,
            }
        )
        sender_task = asyncio.create_task(sender())

        while True:
            data = await websocket.receive_text()
            session.touch()
            if data == "ping":
                await outbox.put({"type": "pong", "server_time": datetime.now(timezone.utc).isoformat()})
                continue

            try:
                message = json.loads(data)
            except json.JSONDecodeError:
                message = None
            if not isinstance(message, dict):
                await outbox.put({"type": "error", "detail": "Messages must be JSON objects"})
                continue

            if message.get("type") == "subscribe":
                try:
                    if message.get("kind") != "work_schedule":
                        await SessionService().verify_connection(
                            session, message.get("connection_id") or session.active_connection_id
                        )
                    key = subscribe(session, message, push, socket_id)
                except APIError as e:
                    await outbox.put({"type": "error", "error_type": e.error_type, "detail": e.message})
                    continue
                keys.add(key)
                await outbox.put({"type": "subscribed", "key": key})
            elif message.get("type") == "unsubscribe":
                key = str(message.get("key") or "")
                keys.discard(key)
                session.release(socket_key(key, socket_id))
                await outbox.put({"type": "unsubscribed", "key": key})
            else:
                await outbox.put({"type": "error", "detail": "Unknown message type"})

    except WebSocketDisconnect:
        pass
    except Exception:
        logger.exception("Live socket failed")
        try:
            await websocket.close(code=1011)
        except RuntimeError:
            logger.debug("Live socket already closed")
    finally:
        if sender_task is not None:
            sender_task.cancel()
        if session is not None:
            for key in keys:
                session.release(socket_key(key, socket_id))
            logger.info("Live socket for %s closed, released %d subscriptions", session.user_id, len(keys))

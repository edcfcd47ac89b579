# multiwall/server/server.py
"""
Relay server.

A small FastAPI app that stands in for a hosted pub/sub relay: controllers
POST envelopes to `/trigger`, screens hold a websocket on `/ws` subscribed to
one channel and receive every frame triggered on it. It also serves the
flat-file store (config snapshots and controller state) that screens and
controllers read at startup.
"""

import uuid
from typing import Any

from fastapi import Depends, FastAPI, HTTPException, WebSocket, WebSocketDisconnect
from pydantic import BaseModel, ValidationError, field_validator

from multiwall.bases.models import (
    ConfigSnapshot,
    ControllerState,
    RelayFrame,
    WallInstance,
)
from multiwall.config import get_config
from multiwall.constants import WALL_RELAY_EVENT
from multiwall.db import JsonFileStore, StorageError
from multiwall.logger import get_logger
from multiwall.server.hub import relay_hub

log = get_logger(__name__)


class TriggerRequest(BaseModel):
    channel: str | None = None
    event: str = WALL_RELAY_EVENT
    type: str | None = None
    payload: dict[str, Any] = {}


class RelaySubscribe(BaseModel):
    channel: str
    event: str = WALL_RELAY_EVENT

    @field_validator("channel")
    @classmethod
    def _validate_channel(cls, value: str) -> str:
        if not value:
            raise ValueError("channel cannot be empty")
        return value


class InstanceCreate(BaseModel):
    id: str
    name: str


class InstanceUpdate(BaseModel):
    name: str


_store: JsonFileStore | None = None


def get_store() -> JsonFileStore:
    """Store dependency, built lazily from the configured data directory."""
    global _store
    if _store is None:
        _store = JsonFileStore(get_config().data.dir)
    return _store


relay_server = FastAPI(
    title="multiwall relay",
    version="0.1.0",
    description="Pub/sub relay and config store for multiwall screens and controllers.",
)
"""The FastAPI application instance for the relay."""


@relay_server.get("/health")
async def health() -> dict[str, Any]:
    return {"ok": True}


@relay_server.post("/trigger")
async def trigger(request: TriggerRequest) -> dict[str, Any]:
    """Fan one message out to every websocket subscribed to its channel."""
    if not request.type:
        raise HTTPException(status_code=400, detail="Missing message type")
    if not request.channel:
        raise HTTPException(status_code=400, detail="Missing channel")

    frame = RelayFrame(
        channel=request.channel,
        event=request.event,
        type=request.type,
        payload=request.payload,
    )
    delivered = await relay_hub.fan_out(frame)
    log.debug(f"Triggered {frame.type} on {frame.channel} ({delivered} subscriber(s))")
    return {"ok": True, "delivered": delivered}


@relay_server.websocket("/ws")
async def ws_endpoint(ws: WebSocket):
    """
    Relay subscription endpoint.

    1. Accepts the connection.
    2. The first frame must be `{"channel": ..., "event": ...}`; anything else
       closes the socket with code 4401.
    3. Keeps the subscription until the client disconnects. Frames sent by the
       client after the first one are ignored.
    """
    await ws.accept()
    subscriber_id = str(uuid.uuid4())
    subscribed = False

    try:
        init_data = await ws.receive_json()
        try:
            request = RelaySubscribe.model_validate(init_data)
        except ValidationError as e:
            log.warning(f"Invalid subscribe frame: {e}. Raw: {init_data}")
            await ws.close(code=4401)
            return

        await relay_hub.register(
            subscriber_id=subscriber_id,
            channel=request.channel,
            event=request.event,
            socket=ws,
        )
        subscribed = True
        log.info(f"Relay subscriber {subscriber_id[:8]} joined {request.channel}")

        while True:
            await ws.receive_text()
    except WebSocketDisconnect:
        log.info(f"Relay subscriber {subscriber_id[:8]} disconnected")
    except ValueError as e:
        # receive_json on a non-JSON first frame
        log.warning(f"Invalid subscribe frame: {e}")
        await ws.close(code=4401)
    except Exception as e:
        log.error(f"Relay websocket error for {subscriber_id[:8]}: {e}")
    finally:
        if subscribed:
            await relay_hub.unregister(subscriber_id=subscriber_id)


# --- Store API ---


@relay_server.get("/api/instances")
async def list_instances(store: JsonFileStore = Depends(get_store)) -> list[dict[str, Any]]:
    return [i.to_wire() for i in await store.list_instances()]


@relay_server.post("/api/instances", status_code=201)
async def create_instance(
    body: InstanceCreate, store: JsonFileStore = Depends(get_store)
) -> dict[str, Any]:
    try:
        instance: WallInstance = await store.create_instance(body.id, body.name)
    except StorageError as e:
        raise HTTPException(status_code=400, detail=str(e))
    return instance.to_wire()


@relay_server.patch("/api/instances/{instance_id}")
async def rename_instance(
    instance_id: str, body: InstanceUpdate, store: JsonFileStore = Depends(get_store)
) -> dict[str, Any]:
    try:
        instance = await store.update_instance(instance_id, name=body.name)
    except StorageError as e:
        raise HTTPException(status_code=404, detail=str(e))
    return instance.to_wire()


@relay_server.delete("/api/instances/{instance_id}")
async def delete_instance(
    instance_id: str, store: JsonFileStore = Depends(get_store)
) -> dict[str, Any]:
    try:
        await store.delete_instance(instance_id)
    except StorageError as e:
        raise HTTPException(status_code=404, detail=str(e))
    return {"ok": True}


@relay_server.get("/api/instances/{instance_id}/config")
async def get_instance_config(
    instance_id: str, store: JsonFileStore = Depends(get_store)
) -> dict[str, Any]:
    try:
        snapshot = await store.get_snapshot(instance_id)
    except StorageError as e:
        log.error(f"Error reading snapshot for {instance_id}: {e}")
        raise HTTPException(status_code=500, detail=str(e))
    if snapshot is None:
        raise HTTPException(status_code=404, detail="Config not found")
    return snapshot.to_wire()


@relay_server.put("/api/instances/{instance_id}/config")
async def put_instance_config(
    instance_id: str,
    snapshot: ConfigSnapshot,
    store: JsonFileStore = Depends(get_store),
) -> dict[str, Any]:
    try:
        await store.save_snapshot(instance_id, snapshot)
    except StorageError as e:
        raise HTTPException(status_code=400, detail=str(e))
    return {"ok": True}


@relay_server.get("/api/instances/{instance_id}/groups/{group_id}/state")
async def get_group_state(
    instance_id: str, group_id: str, store: JsonFileStore = Depends(get_store)
) -> dict[str, Any]:
    try:
        state = await store.get_state(instance_id, group_id)
    except StorageError as e:
        raise HTTPException(status_code=400, detail=str(e))
    if state is None:
        raise HTTPException(status_code=404, detail="State not found")
    return state.to_wire()


@relay_server.put("/api/instances/{instance_id}/groups/{group_id}/state")
async def put_group_state(
    instance_id: str,
    group_id: str,
    state: ControllerState,
    store: JsonFileStore = Depends(get_store),
) -> dict[str, Any]:
    try:
        await store.save_state(instance_id, group_id, state)
    except StorageError as e:
        raise HTTPException(status_code=400, detail=str(e))
    return {"ok": True}

"""FastAPI surface: administrative bridge routes and the real-time socket."""

from __future__ import annotations

import asyncio
from contextlib import asynccontextmanager
from typing import Annotated, Any, Optional

from fastapi import APIRouter, Depends, FastAPI, Request, WebSocket, WebSocketDisconnect
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer
from pydantic import BaseModel, Field, ValidationError
from starlette.websockets import WebSocketState

from chatbridge.app import RelayApp
from chatbridge.core.errors import RelayError
from chatbridge.log import get_logger
from chatbridge.relay import protocol
from chatbridge.relay.broadcaster import ClientTransport

logger = get_logger(__name__)

_bearer = HTTPBearer(auto_error=False)


class ConnectRequest(BaseModel):
    access_token: str = Field(alias="accessToken", min_length=1)


class WebSocketTransport(ClientTransport):
    """Sends JSON frames over a Starlette websocket.

    The socket is accepted lazily on the first emit, so a client whose token is
    rejected is closed during the handshake without ever being accepted.
    """

    def __init__(self, websocket: WebSocket):
        self._websocket = websocket
        self._send_lock = asyncio.Lock()

    async def accept(self) -> None:
        if self._websocket.application_state == WebSocketState.CONNECTING:
            await self._websocket.accept()

    async def emit(self, event: str, data: Any) -> None:
        frame = protocol.WsOutbound(event=event, data=data).model_dump(mode="json")
        async with self._send_lock:
            await self.accept()
            await self._websocket.send_json(frame)

    async def close(self) -> None:
        state = self._websocket.application_state
        if state == WebSocketState.DISCONNECTED:
            return
        code = 1008 if state == WebSocketState.CONNECTING else 1000
        try:
            await self._websocket.close(code=code)
        except RuntimeError as e:
            logger.debug("websocket_close_ignored", error=str(e))


def get_relay(request: Request) -> RelayApp:
    return request.app.state.relay


def current_user(
    request: Request,
    credentials: Annotated[Optional[HTTPAuthorizationCredentials], Depends(_bearer)],
) -> str:
    token = credentials.credentials if credentials else None
    return get_relay(request).verifier.verify(token)


UserId = Annotated[str, Depends(current_user)]
Relay = Annotated[RelayApp, Depends(get_relay)]

router = APIRouter(prefix="/telegram", tags=["telegram"])


@router.post("/connect")
async def connect_account(body: ConnectRequest, user_id: UserId, relay: Relay) -> dict:
    identity = await relay.bridge_manager.connect(user_id, body.access_token)
    return {"success": True, "botInfo": identity.as_dict()}


@router.post("/send-message")
async def send_message(body: protocol.SendMessagePayload, user_id: UserId, relay: Relay) -> dict:
    await relay.bridge_manager.send_outbound(user_id, body.chat_id, body.message)
    return {"success": True}


@router.get("/accounts")
async def list_accounts(user_id: UserId, relay: Relay) -> list[dict]:
    return await relay.bridge_manager.list_accounts(user_id)


@router.post("/disconnect/{channel_id}")
async def disconnect_account(channel_id: str, user_id: UserId, relay: Relay) -> dict:
    await relay.bridge_manager.disconnect(user_id, channel_id)
    return {"success": True}


@router.post("/delete/{channel_id}")
async def delete_channel(channel_id: str, user_id: UserId, relay: Relay) -> dict:
    await relay.bridge_manager.delete(user_id, channel_id)
    return {"success": True}


@router.post("/start/{channel_id}")
async def start_channel(channel_id: str, user_id: UserId, relay: Relay) -> dict:
    await relay.bridge_manager.start(user_id, channel_id)
    return {"success": True}


async def relay_socket(websocket: WebSocket) -> None:
    relay: RelayApp = websocket.app.state.relay
    broadcaster = relay.broadcaster
    transport = WebSocketTransport(websocket)

    try:
        session = await broadcaster.on_client_connect(
            transport, websocket.query_params.get("token")
        )
        if session is None:
            return
        await transport.accept()

        while True:
            raw = await websocket.receive_text()
            try:
                frame = protocol.WsInbound.model_validate_json(raw)
                if frame.event != protocol.SEND_MESSAGE:
                    await transport.emit(protocol.ERROR, {"message": f"Unknown event: {frame.event}"})
                    continue
                payload = protocol.SendMessagePayload.model_validate(frame.data)
            except ValidationError:
                await transport.emit(protocol.ERROR, {"message": "Malformed message"})
                continue
            await broadcaster.on_client_message(session, payload.chat_id, payload.message)
    except WebSocketDisconnect:
        pass
    finally:
        broadcaster.on_client_disconnect(transport)


def create_app(relay: RelayApp) -> FastAPI:
    @asynccontextmanager
    async def lifespan(app: FastAPI):
        await relay.start()
        try:
            yield
        finally:
            await relay.stop()

    app = FastAPI(title="chatbridge", lifespan=lifespan)
    app.state.relay = relay
    app.add_middleware(
        CORSMiddleware,
        allow_origins=relay.config.server.cors_origins,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    @app.exception_handler(RelayError)
    async def relay_error_handler(request: Request, exc: RelayError) -> JSONResponse:
        return JSONResponse(
            status_code=exc.status_code,
            content={"error": exc.code, "message": exc.message},
        )

    app.include_router(router)
    app.add_api_websocket_route("/ws", relay_socket)
    return app

"""
WebSocket router for the terminal channel endpoint.
"""

from fastapi import APIRouter, WebSocket, WebSocketDisconnect

from ..logging_utils import websocket_logger
from .manager import ConnectionRefusedError

router = APIRouter()


@router.websocket("/ws")
async def terminal_websocket(websocket: WebSocket) -> None:
    """
    Multiplexed terminal channel.

    Handles the full connection lifecycle:
    - Connection establishment
    - Message processing
    - Teardown of every owned session on disconnect
    """
    connection_manager = websocket.app.state.connection_manager
    services = websocket.app.state.services

    client_ip = websocket.client.host if websocket.client else "unknown"

    try:
        channel = await connection_manager.connect(websocket, client_ip, services)
    except ConnectionRefusedError as e:
        websocket_logger.warning(str(e), client_ip=client_ip)
        return

    reason = "cancelled"
    try:
        await channel.run()
    except WebSocketDisconnect:
        reason = "client_disconnect"
    except Exception as e:
        reason = f"error: {str(e)}"
        raise
    finally:
        await connection_manager.disconnect(channel.connection_id, reason)

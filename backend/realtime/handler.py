from fastapi import WebSocket
import logging
import uuid

from core.errors import QuizError, ValidationError
from core.messages import get_message
from services.dashboard import admin_status_payload, build_dashboard

logger = logging.getLogger(__name__)

class QuizSocketHandler:
    """
    Handle WebSocket events for participants and admin observers.
    Every accepted socket gets a random connection handle; identity comes
    from the session token sent with `user-connected`.
    """

    def __init__(self, context):
        self.context = context
        self.registry = context.registry
        self.broadcaster = context.broadcaster

    async def connect(self, websocket: WebSocket) -> str:
        """
        Accept WebSocket connection and join the participant audience.

        Args:
            websocket: WebSocket connection

        Returns:
            The connection handle assigned to this socket
        """
        await websocket.accept()
        connection_id = uuid.uuid4().hex
        self.broadcaster.add_participant(connection_id, websocket)
        logger.info(f"➕ New connection: {connection_id}")
        return connection_id

    async def disconnect(self, connection_id: str):
        """
        Forget a closed socket. The durable participant row is left alone.

        Args:
            connection_id: Connection handle
        """
        self.broadcaster.remove(connection_id)
        snapshot = self.registry.unregister_connection(connection_id)
        if snapshot:
            await self.broadcaster.roster_changed(self.registry.roster_entries())
        else:
            logger.info(f"➖ Connection closed: {connection_id}")

    async def handle_message(self, connection_id: str, message):
        """
        Dispatch one client message; failures go back to the sender only.

        Args:
            connection_id: Connection handle of the sender
            message: Decoded JSON message {type, payload}
        """
        try:
            if not isinstance(message, dict):
                raise ValidationError("payload_invalid")
            message_type = message.get("type")
            payload = message.get("payload") or {}
            if not isinstance(payload, dict):
                raise ValidationError("payload_invalid")

            if message_type == "user-connected":
                await self.handle_user_connected(connection_id, payload)
            elif message_type == "submit-words":
                await self.handle_submit_words(connection_id, payload)
            elif message_type == "admin-connected":
                await self.handle_admin_connected(connection_id, payload)
            elif message_type == "ping":
                await self.broadcaster.send_to(connection_id, "pong", {"status": "alive"})
            else:
                logger.warning(f"Unknown message type: {message_type}")
                raise ValidationError("payload_invalid", f"unknown message type {message_type!r}")

        except QuizError as e:
            await self.send_error(connection_id, e)
        except Exception as e:
            logger.error(f"WebSocket handler error ({connection_id}): {str(e)}", exc_info=True)
            await self.broadcaster.send_to(connection_id, "error", {
                "message": get_message("server_error", self.context.settings.LANGUAGE),
                "code": "error",
            })

    async def send_error(self, connection_id: str, error: QuizError):
        if error.code == "persistence":
            logger.error(f"Storage failure on socket {connection_id}: {error}")
        await self.broadcaster.send_to(connection_id, "error", {
            "message": get_message(error.message_key, self.context.settings.LANGUAGE),
            "code": error.code,
        })

    async def handle_user_connected(self, connection_id: str, payload: dict):
        snapshot = await self.registry.register_connection(
            payload.get("sessionId"),
            payload.get("username"),
            connection_id,
        )
        active = await self.context.lifecycle.get_active_test()

        await self.broadcaster.send_to(connection_id, "user-status", {
            "connected": True,
            "username": snapshot.username,
            "sessionId": snapshot.session_id,
            "hasSubmitted": snapshot.has_submitted,
            "testActive": active is not None,
            "testId": active.id if active else None,
            "testWord": active.word if active else None,
        })
        await self.broadcaster.roster_changed(self.registry.roster_entries())

    async def handle_submit_words(self, connection_id: str, payload: dict):
        snapshot, word_count = await self.registry.record_submission(connection_id, payload.get("words"))

        await self.broadcaster.send_to(connection_id, "submission-confirmed", {
            "success": True,
            "wordCount": word_count,
        })
        await self.broadcaster.user_submitted(snapshot.username, word_count)
        await self.broadcaster.roster_changed(self.registry.roster_entries())

    async def handle_admin_connected(self, connection_id: str, payload: dict):
        self.context.admin_sessions.validate(payload.get("token"))
        if not self.broadcaster.promote_to_admin(connection_id):
            return
        logger.info(f"🔑 Admin connected: {connection_id}")
        if self.registry.unregister_connection(connection_id):
            await self.broadcaster.roster_changed(self.registry.roster_entries())
        await self.send_admin_status(connection_id)

    async def send_admin_status(self, connection_id: str):
        dashboard = await build_dashboard(self.context)
        await self.broadcaster.admin_status(connection_id, admin_status_payload(dashboard))

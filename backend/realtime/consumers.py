"""WebSocket consumer that relays booking and safety events to a connected user."""

import logging
from typing import Any, Dict, Set

from channels.generic.websocket import AsyncJsonWebsocketConsumer

from .notifications import SAFETY_GROUP

logger = logging.getLogger(__name__)


class NotificationConsumer(AsyncJsonWebsocketConsumer):
    """
    One socket per signed-in user.

    Joins the personal group ``user_<id>``; moderators and administrators
    also join the safety team group so SOS alerts reach them live. The
    socket is receive-only apart from a ping.
    """

    async def connect(self):
        self.user = self.scope.get("user")
        if self.user is None or self.user.is_anonymous:
            await self.close()
            return

        self.user_id = self.user.id
        self.joined_groups: Set[str] = set()

        await self._join_group(f"user_{self.user_id}")
        if getattr(self.user, "is_moderator", False):
            await self._join_group(SAFETY_GROUP)

        await self.accept()
        await self.send_json({
            "type": "connection_established",
            "user_id": self.user_id,
            "role": getattr(self.user, "role", None),
            "safety_team": SAFETY_GROUP in self.joined_groups,
        })

    async def disconnect(self, close_code):
        for group in list(getattr(self, "joined_groups", ())):
            await self.channel_layer.group_discard(group, self.channel_name)
        self.joined_groups = set()

    async def receive_json(self, content: Dict[str, Any], **kwargs):
        if content.get("type") == "ping":
            await self.send_json({"type": "pong"})
            return
        await self.send_json({"type": "error", "message": f"Unknown message type: {content.get('type')}"})

    async def _join_group(self, group_name: str):
        await self.channel_layer.group_add(group_name, self.channel_name)
        self.joined_groups.add(group_name)

    # ---------------------- Server -> client events ----------------------

    async def booking_event(self, event):
        """Events sent by realtime.notifications.notify_user_event."""
        payload = {key: value for key, value in event.items() if key not in ("type", "event")}
        await self.send_json({"type": event.get("event"), **payload})

    async def safety_incident(self, event):
        logger.debug("Relaying incident %s to staff user %s", event.get("incident_id"), self.user_id)
        payload = {key: value for key, value in event.items() if key != "type"}
        await self.send_json({"type": "safety_incident", **payload})

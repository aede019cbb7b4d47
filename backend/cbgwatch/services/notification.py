"""
Webhook notifications (Bark, Feishu, DingTalk or a custom endpoint).

Delivery is best-effort: failures are logged and reported as False, never raised.
"""
import json
import logging
from datetime import datetime
from typing import Any, Dict, Optional
from urllib.parse import quote

import httpx
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from cbgwatch.config import get_settings
from cbgwatch.services.settings_service import SettingsService

logger = logging.getLogger(__name__)

NOTIFICATION_TYPES = ("bark", "feishu", "dingtalk", "custom")


class NotificationService:
    """Sends a single message through one configured channel"""

    def __init__(self, transport: Optional[httpx.AsyncBaseTransport] = None, timeout: Optional[float] = None):
        self.transport = transport
        self.timeout = timeout or get_settings().notification_timeout

    async def send(self, notification_type: str, config: Dict[str, Any], title: str, content: str) -> bool:
        """
        Send a message.

        Args:
            notification_type: One of NOTIFICATION_TYPES
            config: Channel config; "url" is required
            title: Message title
            content: Message body, a timestamp line is appended

        Returns:
            True if the provider accepted the request
        """
        url = (config or {}).get("url")
        if not url:
            logger.warning("Notification config missing URL")
            return False

        if notification_type not in NOTIFICATION_TYPES:
            logger.warning(f"Unsupported notification type: {notification_type}")
            return False

        timestamp = datetime.now().strftime("%Y-%m-%d %H:%M:%S")
        final_content = f"{content}\n\n[{timestamp}]"

        try:
            async with httpx.AsyncClient(timeout=self.timeout, transport=self.transport) as client:
                if notification_type == "bark":
                    # config url is https://api.day.app/<token>
                    base_url = url.rstrip("/")
                    response = await client.get(
                        f"{base_url}/{quote(title, safe='')}/{quote(final_content, safe='')}",
                        params={"isArchive": 1},
                    )
                elif notification_type == "feishu":
                    response = await client.post(url, json={
                        "msg_type": "text",
                        "content": {"text": f"{title}\n\n{final_content}"},
                    })
                elif notification_type == "dingtalk":
                    response = await client.post(url, json={
                        "msgtype": "text",
                        "text": {"content": f"{title}\n\n{final_content}"},
                    })
                else:
                    response = await client.post(url, json={
                        "title": title,
                        "content": final_content,
                        "timestamp": timestamp,
                    })
                response.raise_for_status()
            return True
        except httpx.HTTPError as e:
            logger.error(f"Failed to send {notification_type} notification: {e}")
            return False


class NotificationDispatcher:
    """
    Delivers alert notifications through the channel stored in settings
    (notification_type + notification_config JSON).
    """

    def __init__(
        self,
        session_factory: async_sessionmaker[AsyncSession],
        service: Optional[NotificationService] = None,
    ):
        self.session_factory = session_factory
        self.service = service or NotificationService()

    async def send(self, title: str, body: str, data: Optional[Dict[str, Any]] = None) -> bool:
        logger.info(f"[Notification] {title}: {body} {data or ''}")

        try:
            async with self.session_factory() as db:
                settings = SettingsService(db)
                notification_type = await settings.get_value("notification_type")
                raw_config = await settings.get_value("notification_config")
                enabled = await settings.get_value("notification_enabled")
        except Exception as e:
            logger.error(f"Error loading notification settings: {e}")
            return False

        if enabled == "false" or not notification_type or not raw_config:
            return False

        try:
            config = json.loads(raw_config)
        except ValueError as e:
            logger.error(f"Failed to parse notification config: {e}")
            return False

        return await self.service.send(notification_type, config, title, body)

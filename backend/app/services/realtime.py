"""Best-effort realtime fan-out of workflow events over Redis pub/sub.

Broadcasts run after the owning transaction commits. A failed publish is logged and
dropped; it never fails the request that triggered it.
"""

from __future__ import annotations

import json
import logging
from datetime import datetime
from typing import Any, Optional

import redis
from redis.exceptions import RedisError

from ..config import get_settings
from .status_rules import now_utc

logger = logging.getLogger(__name__)

EVENT_STATUS_CHANGED = "health_check:status_changed"
EVENT_CLOCKED_IN = "technician:clocked_in"
EVENT_CLOCKED_OUT = "technician:clocked_out"


class RealtimeNotifier:
    def __init__(self, client: Any = None, channel_prefix: Optional[str] = None) -> None:
        self._client = client
        self._channel_prefix = channel_prefix or get_settings().REALTIME_CHANNEL_PREFIX

    def _get_client(self):
        if self._client is None:
            self._client = redis.from_url(get_settings().REDIS_URL, decode_responses=True)
        return self._client

    def channel_for_site(self, site_id: Any) -> str:
        return f"{self._channel_prefix}:site:{site_id}"

    def publish(self, site_id: Any, event: str, payload: dict[str, Any]) -> bool:
        if site_id is None:
            return False
        message = json.dumps(
            {"event": event, "data": payload, "sent_at": now_utc().isoformat()},
            default=str,
        )
        try:
            self._get_client().publish(self.channel_for_site(site_id), message)
        except (RedisError, OSError):
            logger.exception("realtime.publish_failed event=%s site=%s", event, site_id)
            return False
        return True

    def notify_status_changed(
        self,
        health_check: Any,
        *,
        from_status: Optional[str],
        to_status: str,
        changed_by: Any,
    ) -> bool:
        return self.publish(
            health_check.site_id,
            EVENT_STATUS_CHANGED,
            {
                "health_check_id": health_check.id,
                "from_status": from_status,
                "status": to_status,
                "changed_by": changed_by,
            },
        )

    def notify_clocked_in(self, health_check: Any, *, technician_id: Any, at: datetime) -> bool:
        return self.publish(
            health_check.site_id,
            EVENT_CLOCKED_IN,
            {"health_check_id": health_check.id, "technician_id": technician_id, "clock_in_at": at},
        )

    def notify_clocked_out(
        self,
        health_check: Any,
        *,
        technician_id: Any,
        at: datetime,
        duration_minutes: int,
        completed: bool,
    ) -> bool:
        return self.publish(
            health_check.site_id,
            EVENT_CLOCKED_OUT,
            {
                "health_check_id": health_check.id,
                "technician_id": technician_id,
                "clock_out_at": at,
                "duration_minutes": duration_minutes,
                "completed": completed,
            },
        )


_notifier: Optional[RealtimeNotifier] = None


def get_realtime_notifier() -> RealtimeNotifier:
    global _notifier
    if _notifier is None:
        _notifier = RealtimeNotifier()
    return _notifier

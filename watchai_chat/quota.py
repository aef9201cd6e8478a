"""Pre-send quota gate."""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING

from .exceptions import WatchAIChatError
from .models import QuotaDecision

if TYPE_CHECKING:
    from .client import WatchAIClient

LOGGER = logging.getLogger(__name__)

DEFAULT_QUOTA_MESSAGE = "โควต้าหมดแล้ว กรุณาลองใหม่ภายหลัง"


class QuotaGate:
    """Ask the server whether the next message may be sent.

    A failed check does not block the user: the error is logged and the send
    proceeds. A refusal without a message gets ``default_message``.
    """

    def __init__(
        self, client: WatchAIClient, default_message: str = DEFAULT_QUOTA_MESSAGE
    ) -> None:
        self.client = client
        self.default_message = default_message

    async def check(self, model_id: str) -> QuotaDecision:
        try:
            decision = await self.client.check_quota(model_id)
        except WatchAIChatError as exc:
            LOGGER.warning(
                "quota.check.failed",
                extra={"event": "quota.check.failed", "model": model_id, "error": str(exc)},
            )
            return QuotaDecision(can_send=True)

        if decision.can_send:
            return decision
        message = (decision.message or "").strip() or self.default_message
        LOGGER.info(
            "quota.check.blocked",
            extra={"event": "quota.check.blocked", "model": model_id},
        )
        return QuotaDecision(can_send=False, message=message)

"""Request/response channel between page sessions and the background service."""
import asyncio
import logging
from typing import Any, Awaitable, Callable, Dict, Optional

from page_compressor.config import Config
from page_compressor.services.errors import MessagingTimeout

logger = logging.getLogger(__name__)


class MessageChannel:
    """
    Sends action messages to a handler and waits for the answer.

    Requests on one channel are answered in the order the handler finishes
    them; there is no request id. A handler that never answers (closed tab,
    restarted worker) surfaces as ``MessagingTimeout`` from ``call`` or as
    ``None`` from ``request``.
    """

    def __init__(
        self,
        handler: Callable[[Dict[str, Any]], Awaitable[Any]],
        timeout_seconds: Optional[float] = None,
    ):
        self._handler = handler
        self.timeout_seconds = (
            timeout_seconds if timeout_seconds is not None else Config.message_timeout_seconds()
        )

    async def call(self, action: str, **payload: Any) -> Any:
        message = {"action": action, **payload}
        try:
            return await asyncio.wait_for(self._handler(message), timeout=self.timeout_seconds)
        except asyncio.TimeoutError as e:
            raise MessagingTimeout(f"No answer to {action} within {self.timeout_seconds}s") from e

    async def request(self, action: str, **payload: Any) -> Any:
        """Like ``call``, but a timeout means "no data"."""
        try:
            return await self.call(action, **payload)
        except MessagingTimeout as e:
            logger.warning("%s", e)
            return None

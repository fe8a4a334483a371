"""Chat channel provisioning for accepted trades.

Accepting a trade opens a private channel between both participants. The
production provisioner uses the Stream Chat server SDK; the mock one is used
in development (USE_API_MOCKS=true) and whenever credentials are absent.
"""

import logging
from typing import Optional, Protocol, Sequence

from requests import RequestException
from stream_chat import StreamChat
from stream_chat.base.exceptions import StreamAPIException

from cardswap.config import settings

logger = logging.getLogger(__name__)


class ChatProvisioningError(RuntimeError):
    def __init__(self, message: str, status_code: Optional[int] = None) -> None:
        super().__init__(message)
        self.status_code = status_code


class ChatProvisioner(Protocol):
    def create_trade_channel(self, trade_id: str, member_ids: Sequence[str]) -> str:
        """Create the channel and return its id. Raises ChatProvisioningError."""
        ...


class MockChatProvisioner:
    def create_trade_channel(self, trade_id: str, member_ids: Sequence[str]) -> str:
        channel_id = f"mock-channel-{trade_id}"
        logger.debug("Mock chat channel %s created for %s", channel_id, list(member_ids))
        return channel_id


class StreamChatProvisioner:
    """Creates `messaging` channels through Stream's server-side SDK."""

    channel_type = "messaging"

    def __init__(
        self,
        api_key: str,
        api_secret: str,
        base_url: Optional[str] = None,
        timeout: float = 10.0,
        client: Optional[StreamChat] = None,
    ) -> None:
        if client is None:
            options = {"base_url": base_url} if base_url else {}
            client = StreamChat(api_key=api_key, api_secret=api_secret, timeout=timeout, **options)
        self.client = client

    def create_trade_channel(self, trade_id: str, member_ids: Sequence[str]) -> str:
        channel_id = f"trade-{trade_id}"
        channel = self.client.channel(
            self.channel_type,
            channel_id,
            {"name": f"Trade {trade_id}", "members": list(member_ids)},
        )
        try:
            channel.create(member_ids[0])
        except StreamAPIException as exc:
            logger.warning("Stream refused channel for trade %s: %s", trade_id, exc)
            raise ChatProvisioningError(
                f"chat provider returned {exc.status_code}",
                status_code=exc.status_code,
            ) from exc
        except RequestException as exc:
            logger.warning("Stream channel request for trade %s failed: %s", trade_id, exc)
            raise ChatProvisioningError(f"chat provider unreachable: {exc}") from exc
        return channel_id


def get_chat_provisioner() -> ChatProvisioner:
    """FastAPI dependency selecting the provisioner from settings."""
    if settings.USE_API_MOCKS or not (settings.STREAM_API_KEY and settings.STREAM_API_SECRET):
        return MockChatProvisioner()
    return StreamChatProvisioner(
        api_key=settings.STREAM_API_KEY,
        api_secret=settings.STREAM_API_SECRET,
        base_url=settings.STREAM_BASE_URL,
        timeout=settings.CHAT_REQUEST_TIMEOUT_SECONDS,
    )

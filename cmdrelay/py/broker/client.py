import asyncio
import logging

from typing import Optional

import redis.asyncio as redis

from redis.exceptions import RedisError

logger = logging.getLogger("uvicorn")

# Ceiling for both the startup probe and every publish.
DEFAULT_TIMEOUT = 5.0


class PublishError(Exception):
    """Exception for a message that couldn't be handed to the broker"""


class BrokerClient:
    """Publishes messages on a Redis pub/sub channel.

    One instance is shared by every request. The underlying client draws
    connections from a pool, so concurrent publishes need no locking."""

    def __init__(self, client: redis.Redis, address: str):
        self.redis = client
        self.address = address

    @classmethod
    async def connect(
        cls,
        host: str,
        port: int,
        timeout: float = DEFAULT_TIMEOUT
    ) -> Optional["BrokerClient"]:
        """Returns a client once Redis answers a PING, or None if it doesn't
        within `timeout` seconds. Never raises."""
        address = f"{host}:{port}"
        client = redis.Redis(
            host=host,
            port=port,
            socket_connect_timeout=timeout,
            socket_timeout=timeout
        )
        try:
            await asyncio.wait_for(client.ping(), timeout)
        except (RedisError, OSError, asyncio.TimeoutError) as exc:
            logger.warning(f"Could not connect to Redis at {address}: {exc!r}")
            logger.warning(
                "Redis publishing will be disabled. "
                "Service will continue to work without Redis."
            )
            await client.aclose()
            return None

        logger.info(f"Connected to Redis at {address}")
        return cls(client, address)

    async def publish(
        self,
        channel: str,
        message: str,
        timeout: float = DEFAULT_TIMEOUT
    ) -> int:
        """Publish `message` on `channel`, giving up after `timeout` seconds.

        Returns the number of subscribers that received it."""
        try:
            return await asyncio.wait_for(
                self.redis.publish(channel, message), timeout
            )
        except asyncio.TimeoutError as exc:
            raise PublishError(
                f"publish to {channel!r} timed out after {timeout}s"
            ) from exc
        except (RedisError, OSError) as exc:
            raise PublishError(f"publish to {channel!r} failed: {exc}") from exc

    async def cleanup(self):
        await self.redis.aclose()

import logging

from typing import Optional

from cmdrelay.py.broker.client import DEFAULT_TIMEOUT, BrokerClient, PublishError
from cmdrelay.py.slack.models import SlackCommand
from cmdrelay.py.slack.util import parse_form, verify_signature

logger = logging.getLogger("uvicorn")


class CommandRelay:
    """Everything a request handler needs, resolved once at startup.

    `broker` is None when Redis wasn't reachable at startup, in which case
    publishing is skipped."""

    def __init__(
        self,
        signing_secret: bytes,
        broker: Optional[BrokerClient],
        channel: str,
        log_level: int = logging.INFO,
        publish_timeout: float = DEFAULT_TIMEOUT
    ):
        self.signing_secret = signing_secret
        self.broker = broker
        self.channel = channel
        self.log_level = log_level
        self.publish_timeout = publish_timeout

    @property
    def verification_enabled(self) -> bool:
        return bool(self.signing_secret)

    def verify(self, body: bytes, timestamp: str, signature: str) -> bool:
        return verify_signature(body, timestamp, signature, self.signing_secret)

    def parse(self, body: bytes) -> SlackCommand:
        """Raises FormParseError if the body can't be decoded."""
        command = SlackCommand.from_form(parse_form(body))
        logger.info(
            f"Received Slack command: {command.command} "
            f"from user {command.user_name}"
        )

        # payloads carry tokens and user data, so they only show up at DEBUG
        if self.log_level <= logging.DEBUG:
            try:
                logger.debug(f"Slack command payload:\n{command.to_pretty()}")
            except ValueError as exc:
                logger.error(f"Error formatting JSON: {exc}")
                logger.debug(f"Raw payload: {body.decode('utf-8', 'replace')}")
        return command

    async def publish(self, command: SlackCommand) -> bool:
        """Best-effort publish. Failures are logged, never raised."""
        if self.broker is None:
            return False

        try:
            message = command.to_wire()
        except ValueError as exc:
            logger.error(f"Error marshaling command to JSON: {exc}")
            return False

        try:
            await self.broker.publish(
                self.channel, message, timeout=self.publish_timeout
            )
        except PublishError as exc:
            logger.error(
                f"Error publishing to Redis channel '{self.channel}': {exc}"
            )
            return False

        logger.info(f"Published command to Redis channel: {self.channel}")
        return True

    async def process(self, body: bytes) -> SlackCommand:
        command = self.parse(body)
        await self.publish(command)
        return command

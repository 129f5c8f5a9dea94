from functools import lru_cache

import logging

import uvicorn

from fastapi import Depends, FastAPI, Header, Request
from fastapi.responses import PlainTextResponse
from pydantic_settings import BaseSettings, SettingsConfigDict
from starlette.requests import ClientDisconnect

from cmdrelay.py.broker.client import BrokerClient
from cmdrelay.py.slack.util import FormParseError
from cmdrelay.py.util.relay import CommandRelay

logger = logging.getLogger("uvicorn")


class Settings(BaseSettings):
    model_config = SettingsConfigDict(env_file=".env", extra="ignore")

    slack_signing_secret: str = ""
    secret_file: str = ".secret"
    redis_host: str = "localhost"
    redis_port: int = 6379
    redis_channel: str = "slack-commands"
    log_level: str = "INFO"
    port: str = "8080"


@lru_cache
def get_settings() -> Settings:
    return Settings()


LOG_LEVELS = {
    "DEBUG": logging.DEBUG,
    "INFO": logging.INFO,
    "WARN": logging.WARNING,
    "WARNING": logging.WARNING,
    "ERROR": logging.ERROR,
}


def parse_log_level(level: str) -> int:
    return LOG_LEVELS.get(level.strip().upper(), logging.INFO)


def load_signing_secret(settings: Settings) -> bytes:
    """The secret comes from SLACK_SIGNING_SECRET if set, otherwise from the
    secret file. Having neither just switches verification off."""
    if settings.slack_signing_secret:
        source = "SLACK_SIGNING_SECRET"
        secret = settings.slack_signing_secret.strip()
    else:
        source = settings.secret_file
        try:
            with open(settings.secret_file, encoding="utf-8") as f:
                secret = f.read().strip()
        except FileNotFoundError:
            source = None
            secret = ""
        except OSError as exc:
            logger.warning(f"Could not read {settings.secret_file}: {exc}")
            secret = ""

    if not secret:
        if source is None:
            reason = f"{settings.secret_file} file not found."
        else:
            reason = f"No signing secret configured in {source}."
        logger.warning(
            f"{reason} Slack signature verification will be skipped."
        )
        logger.warning(
            "To enable verification, create a .secret file "
            "with your Slack signing secret."
        )
        return b""

    logger.info("Slack signing secret loaded. Signature verification enabled.")
    return secret.encode("utf-8")


app = FastAPI()


@app.on_event("startup")
async def startup():
    settings = get_settings()
    level = parse_log_level(settings.log_level)
    logger.setLevel(level)
    logger.info(f"Log level set to: {logging.getLevelName(level)}")
    logger.info(f"Redis channel set to: {settings.redis_channel}")

    secret = load_signing_secret(settings)
    broker = await BrokerClient.connect(settings.redis_host, settings.redis_port)
    app.state.relay = CommandRelay(
        secret, broker, settings.redis_channel, log_level=level
    )


@app.on_event("shutdown")
async def shutdown_app():
    relay = getattr(app.state, "relay", None)
    if relay is not None and relay.broker is not None:
        await relay.broker.cleanup()


def get_relay(request: Request) -> CommandRelay:
    return request.app.state.relay


@app.get("/")
async def index(relay: CommandRelay = Depends(get_relay)):
    """Returns info about this relay."""
    return {
        "name": "cmdrelay",
        "version": "1.0",
        "broker": "connected" if relay.broker is not None else "disabled",
        "verification": "enabled" if relay.verification_enabled else "disabled",
    }


@app.post("/command", response_class=PlainTextResponse)
async def slack_command(
    request: Request,
    x_slack_request_timestamp: str = Header(""),
    x_slack_signature: str = Header(""),
    relay: CommandRelay = Depends(get_relay)
) -> PlainTextResponse:
    """Accepts a Slack slash command and relays it to the Redis channel.

    The response never depends on whether the publish worked; only a bad
    body or a bad signature turns into an error for the caller."""
    try:
        body = await request.body()
    except ClientDisconnect:
        logger.error("Error reading request body")
        return PlainTextResponse("Error reading request body", status_code=400)

    # the timestamp is required even when verification is switched off
    if not x_slack_request_timestamp or not relay.verify(
        body, x_slack_request_timestamp, x_slack_signature
    ):
        logger.warning("Invalid Slack signature")
        return PlainTextResponse("Invalid signature", status_code=401)

    try:
        command = await relay.process(body)
    except FormParseError as exc:
        logger.error(f"Error parsing form data: {exc}")
        return PlainTextResponse("Error parsing form data", status_code=400)

    return PlainTextResponse(f"Slash command `{command.command}` received 🎉")


def run():
    settings = get_settings()
    port = int(settings.port.lstrip(":"))
    logger.info(f"Starting Slack command server on port :{port}")
    uvicorn.run(app, host="0.0.0.0", port=port)


if __name__ == "__main__":
    run()

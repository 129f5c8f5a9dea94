from typing import Mapping

from pydantic import BaseModel, ConfigDict

# Enterprise Grid fields are left out of the encoded record when empty.
OMIT_WHEN_EMPTY = ("enterprise_id", "enterprise_name")


class SlackCommand(BaseModel):
    """This payload is documented in Slack's command API.

    Every field is plain text. Keys missing from the inbound form come through
    as empty strings, and keys this model doesn't know about are dropped.

    See:
    https://api.slack.com/interactivity/slash-commands#app_command_handling"""
    model_config = ConfigDict(frozen=True, extra="ignore")

    token: str = ""
    team_id: str = ""
    team_domain: str = ""
    channel_id: str = ""
    channel_name: str = ""
    user_id: str = ""
    user_name: str = ""
    command: str = ""
    text: str = ""
    response_url: str = ""
    trigger_id: str = ""
    api_app_id: str = ""
    enterprise_id: str = ""
    enterprise_name: str = ""

    @classmethod
    def from_form(cls, form: Mapping[str, str]) -> "SlackCommand":
        return cls.model_validate(dict(form))

    def _omitted(self):
        return {name for name in OMIT_WHEN_EMPTY if not getattr(self, name)}

    def to_wire(self) -> str:
        """Compact JSON sent to subscribers."""
        return self.model_dump_json(exclude=self._omitted())

    def to_pretty(self) -> str:
        return self.model_dump_json(exclude=self._omitted(), indent=2)

"""Request bodies for the HTTP API."""

from typing import Any

from pydantic import AliasChoices, BaseModel, ConfigDict, Field


class _Body(BaseModel):
    model_config = ConfigDict(populate_by_name=True)


class TokenRequest(_Body):
    """The JSON body for issuing a credential."""

    user_id: str = Field(alias="userId", min_length=1)
    role: str = "team"
    ttl_hours: float | None = Field(default=None, alias="ttlHours", gt=0)


class ChatRequest(_Body):
    session_id: str = Field(alias="sessionId", min_length=1)
    message: str = Field(min_length=1, validation_alias=AliasChoices("message", "query"))
    context: dict[str, Any] | None = None


class ExecuteRequest(_Body):
    """The JSON body for a direct command request."""

    session_id: str = Field(alias="sessionId", min_length=1)
    command: str = Field(min_length=1)
    approval: bool = False


class TerminalChatRequest(_Body):
    message: str = Field(min_length=1, validation_alias=AliasChoices("message", "query"))
    context: dict[str, Any] | None = None


class ChatExecuteRequest(_Body):
    """The JSON body for a chat turn that may run the proposed command.

    ``approvedCommand`` echoes the command shown in a previous pending
    answer; approval then only applies if the agent proposes the same one.
    """

    message: str = Field(min_length=1, validation_alias=AliasChoices("message", "query"))
    context: dict[str, Any] | None = None
    approval: bool = False
    approved_command: str | None = Field(default=None, alias="approvedCommand")


class PersonalityRequest(_Body):
    """Personality controls. Freezing is permanent for the session."""

    evolution: bool | None = None
    freeze: bool = False

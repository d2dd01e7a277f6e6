"""
Wire protocol for the multiplexed terminal channel.

Every frame is a JSON object with a ``type`` field and camelCase keys. Inbound
frames are parsed leniently: unknown fields are ignored and every field except
``type`` is optional, so older servers keep working with newer clients.
"""

import json
from enum import Enum
from typing import Any

from pydantic import BaseModel, ConfigDict, ValidationError
from pydantic.alias_generators import to_camel

from .utils.logging import ProtocolError, TermplexException


class MessageType(str, Enum):
    """Message kinds understood on the channel."""

    # Client -> server
    CREATE = "create"
    INPUT = "input"
    RESIZE = "resize"
    CLOSE = "close"
    DETACH = "detach"
    LIST_TMUX_SESSIONS = "list_tmux_sessions"
    TMUX_CONFIG = "tmux_config"

    # Server -> client
    SESSION_CREATED = "session_created"
    OUTPUT = "output"
    ERROR = "error"
    EXIT = "exit"
    TMUX_STATUS = "tmux_status"
    TMUX_SESSIONS = "tmux_sessions"
    CWD_UPDATE = "cwd_update"


class WireModel(BaseModel):
    """Base model mapping snake_case attributes to camelCase keys."""

    model_config = ConfigDict(
        alias_generator=to_camel,
        populate_by_name=True,
        extra="ignore",
    )


class TmuxSessionRecord(WireModel):
    """One entry of ``tmux list-sessions``."""

    model_config = ConfigDict(frozen=True)

    name: str
    windows: int
    attached: int


class ClientMessage(WireModel):
    """A message sent by the browser."""

    type: str
    session_id: str | None = None
    data: str | None = None
    rows: int | None = None
    cols: int | None = None
    tmux_session_name: str | None = None
    tmux_window_index: int | None = None
    cwd: str | None = None
    interval: int | None = None

    @classmethod
    def parse(cls, raw: str) -> "ClientMessage":
        """Decode one inbound frame.

        Raises:
            ProtocolError: If the frame is not a JSON object matching the schema
        """
        try:
            payload = json.loads(raw)
        except json.JSONDecodeError as e:
            raise ProtocolError("Invalid JSON format", {"position": e.pos})

        if not isinstance(payload, dict):
            raise ProtocolError("Message must be a JSON object")

        try:
            return cls.model_validate(payload)
        except ValidationError as e:
            fields = [".".join(str(p) for p in err["loc"]) for err in e.errors()]
            raise ProtocolError(
                f"Invalid message fields: {', '.join(fields)}", {"fields": fields}
            )


class ServerMessage(WireModel):
    """A message sent to the browser."""

    type: str
    session_id: str | None = None
    data: str | None = None
    error: str | None = None
    kind: str | None = None
    code: int | None = None
    name: str | None = None
    shell_type: str | None = None
    tmux_session_name: str | None = None
    tmux_window_index: int | None = None
    cwd: str | None = None
    tmux_updates: dict[str, str] | None = None
    tmux_sessions: list[TmuxSessionRecord] | None = None

    def to_json(self) -> str:
        """Serialize with camelCase keys, omitting unset fields."""
        return self.model_dump_json(by_alias=True, exclude_none=True)

    def to_dict(self) -> dict[str, Any]:
        return self.model_dump(by_alias=True, exclude_none=True)

    @classmethod
    def session_created(
        cls,
        session_id: str,
        name: str,
        shell_type: str,
        cwd: str,
        tmux_session_name: str | None = None,
        tmux_window_index: int | None = None,
    ) -> "ServerMessage":
        return cls(
            type=MessageType.SESSION_CREATED.value,
            session_id=session_id,
            name=name,
            shell_type=shell_type,
            cwd=cwd,
            tmux_session_name=tmux_session_name,
            tmux_window_index=tmux_window_index,
        )

    @classmethod
    def output(cls, session_id: str, data: str) -> "ServerMessage":
        return cls(type=MessageType.OUTPUT.value, session_id=session_id, data=data)

    @classmethod
    def exit(cls, session_id: str, code: int) -> "ServerMessage":
        return cls(type=MessageType.EXIT.value, session_id=session_id, code=code)

    @classmethod
    def from_error(
        cls, error: TermplexException, session_id: str | None = None
    ) -> "ServerMessage":
        """Build an ``error`` message carrying the exception's stable kind."""
        return cls(
            type=MessageType.ERROR.value,
            session_id=session_id,
            error=error.message,
            kind=error.kind,
        )

    @classmethod
    def tmux_status(cls, updates: dict[str, str]) -> "ServerMessage":
        return cls(type=MessageType.TMUX_STATUS.value, tmux_updates=dict(updates))

    @classmethod
    def tmux_sessions_list(
        cls, sessions: list[TmuxSessionRecord]
    ) -> "ServerMessage":
        return cls(type=MessageType.TMUX_SESSIONS.value, tmux_sessions=list(sessions))

    @classmethod
    def cwd_update(cls, session_id: str, cwd: str) -> "ServerMessage":
        return cls(type=MessageType.CWD_UPDATE.value, session_id=session_id, cwd=cwd)

"""
Tests for the channel wire protocol.
"""

import json

import pytest

from termplex.protocol import (
    ClientMessage,
    MessageType,
    ServerMessage,
    TmuxSessionRecord,
)
from termplex.utils.logging import ProtocolError, TmuxSessionNotFoundError


class TestClientMessage:
    """Test inbound message parsing."""

    def test_parse_create_with_tmux_fields(self) -> None:
        message = ClientMessage.parse(
            json.dumps(
                {"type": "create", "tmuxSessionName": "main", "tmuxWindowIndex": 2}
            )
        )

        assert message.type == MessageType.CREATE.value
        assert message.tmux_session_name == "main"
        assert message.tmux_window_index == 2
        assert message.session_id is None

    def test_parse_resize(self) -> None:
        message = ClientMessage.parse('{"type":"resize","sessionId":"s1","rows":40,"cols":120}')

        assert message.session_id == "s1"
        assert (message.rows, message.cols) == (40, 120)

    def test_unknown_fields_are_ignored(self) -> None:
        message = ClientMessage.parse('{"type":"input","sessionId":"s1","data":"ls\\r","extra":1}')

        assert message.data == "ls\r"
        assert not hasattr(message, "extra")

    def test_snake_case_keys_are_accepted(self) -> None:
        message = ClientMessage.parse('{"type":"close","session_id":"s3"}')

        assert message.session_id == "s3"

    def test_invalid_json_raises_protocol_error(self) -> None:
        with pytest.raises(ProtocolError) as exc_info:
            ClientMessage.parse("{not json")

        assert exc_info.value.kind == "invalid_message"

    def test_non_object_raises_protocol_error(self) -> None:
        with pytest.raises(ProtocolError, match="JSON object"):
            ClientMessage.parse("[1, 2, 3]")

    def test_missing_type_raises_protocol_error(self) -> None:
        with pytest.raises(ProtocolError, match="type"):
            ClientMessage.parse('{"sessionId":"s1"}')

    def test_wrong_field_type_raises_protocol_error(self) -> None:
        with pytest.raises(ProtocolError, match="rows"):
            ClientMessage.parse('{"type":"resize","sessionId":"s1","rows":"tall","cols":80}')


class TestServerMessage:
    """Test outbound message serialization."""

    def test_session_created_uses_camel_case(self) -> None:
        message = ServerMessage.session_created(
            session_id="s1",
            name="tmux-1",
            shell_type="tmux",
            cwd="/home/user",
            tmux_session_name="main",
            tmux_window_index=0,
        )

        payload = json.loads(message.to_json())
        assert payload == {
            "type": "session_created",
            "sessionId": "s1",
            "name": "tmux-1",
            "shellType": "tmux",
            "cwd": "/home/user",
            "tmuxSessionName": "main",
            "tmuxWindowIndex": 0,
        }

    def test_unset_fields_are_omitted(self) -> None:
        payload = json.loads(ServerMessage.output("s2", "hello").to_json())

        assert payload == {"type": "output", "sessionId": "s2", "data": "hello"}

    def test_exit_code_zero_is_kept(self) -> None:
        payload = json.loads(ServerMessage.exit("s1", 0).to_json())

        assert payload["code"] == 0

    def test_error_carries_kind(self) -> None:
        error = TmuxSessionNotFoundError("tmux session not found: gone")
        payload = ServerMessage.from_error(error).to_dict()

        assert payload == {
            "type": "error",
            "error": "tmux session not found: gone",
            "kind": "tmux_session_not_found",
        }

    def test_tmux_status_keeps_empty_names(self) -> None:
        payload = json.loads(ServerMessage.tmux_status({"s1": "", "s2": "main"}).to_json())

        assert payload["tmuxUpdates"] == {"s1": "", "s2": "main"}

    def test_tmux_sessions_list(self) -> None:
        records = [TmuxSessionRecord(name="main", windows=3, attached=1)]
        payload = json.loads(ServerMessage.tmux_sessions_list(records).to_json())

        assert payload == {
            "type": "tmux_sessions",
            "tmuxSessions": [{"name": "main", "windows": 3, "attached": 1}],
        }

    def test_empty_tmux_sessions_list_is_sent(self) -> None:
        payload = json.loads(ServerMessage.tmux_sessions_list([]).to_json())

        assert payload["tmuxSessions"] == []


def test_tmux_session_records_compare_by_value() -> None:
    assert TmuxSessionRecord(name="a", windows=1, attached=0) == TmuxSessionRecord(
        name="a", windows=1, attached=0
    )

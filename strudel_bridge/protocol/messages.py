"""
Bridge message catalog.

Every frame on the wire is one JSON object with a "type" field:

    {"type": "execute_code", "code": "s(\"bd sd\")", "comment": "// drums"}
    {"type": "get_current_code", "requestId": "3f9a0c1d2e4b5a69"}
    {"type": "current_code", "code": "...", "requestId": "3f9a0c1d2e4b5a69"}
    {"type": "execution_result", "data": {"success": false, "error": "..."}}

Optional fields are omitted from the JSON when unset.
"""

from __future__ import annotations

import json
import time
from dataclasses import dataclass
from enum import Enum
from typing import Any, Dict, Optional, Union

from strudel_bridge.protocol.errors import ProtocolError

PROTOCOL_VERSION = "1.0"


class MessageType(str, Enum):
    """Message types carried between controller, hub and agent."""
    # Agent -> hub
    BROWSER_READY = "browser_ready"
    CURRENT_CODE = "current_code"
    EXECUTION_RESULT = "execution_result"
    ERROR = "error"

    # Controller -> hub -> agent
    EXECUTE_CODE = "execute_code"
    STOP_ALL = "stop_all"
    GET_CURRENT_CODE = "get_current_code"

    # Either direction
    HEALTH_CHECK = "health_check"
    HEALTH_RESPONSE = "health_response"

    # Hub -> agent welcome
    CONNECTED = "connected"


# Wire fields that must be strings when present
_STRING_FIELDS = ("code", "comment", "requestId", "status")


def _coerce_type(value: Any) -> Union[MessageType, str]:
    try:
        return MessageType(value)
    except ValueError:
        return str(value)


@dataclass(frozen=True)
class BridgeMessage:
    """An immutable bridge message."""

    type: Union[MessageType, str]
    code: Optional[str] = None
    comment: Optional[str] = None
    data: Optional[Dict[str, Any]] = None
    request_id: Optional[str] = None
    timestamp: Optional[float] = None
    status: Optional[str] = None

    @property
    def type_name(self) -> str:
        return self.type.value if isinstance(self.type, MessageType) else self.type

    def to_dict(self) -> Dict[str, Any]:
        result: Dict[str, Any] = {"type": self.type_name}
        if self.code is not None:
            result["code"] = self.code
        if self.comment is not None:
            result["comment"] = self.comment
        if self.data is not None:
            result["data"] = self.data
        if self.request_id is not None:
            result["requestId"] = self.request_id
        if self.timestamp is not None:
            result["timestamp"] = self.timestamp
        if self.status is not None:
            result["status"] = self.status
        return result

    def to_json(self) -> str:
        return json.dumps(self.to_dict())

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "BridgeMessage":
        if not isinstance(data, dict):
            raise ProtocolError(f"Message must be a JSON object, got {type(data).__name__}")
        if "type" not in data or not data["type"]:
            raise ProtocolError("Message has no type")
        if not isinstance(data["type"], str):
            raise ProtocolError(f"Message type must be a string, got {type(data['type']).__name__}")

        for key in _STRING_FIELDS:
            value = data.get(key)
            if value is not None and not isinstance(value, str):
                raise ProtocolError(f"Field {key!r} must be a string, got {type(value).__name__}")
        timestamp = data.get("timestamp")
        if timestamp is not None and (
            isinstance(timestamp, bool) or not isinstance(timestamp, (int, float))
        ):
            raise ProtocolError(f"Field 'timestamp' must be a number, got {type(timestamp).__name__}")

        payload = data.get("data")
        if payload is not None and not isinstance(payload, dict):
            payload = {"value": payload}

        return cls(
            type=_coerce_type(data["type"]),
            code=data.get("code"),
            comment=data.get("comment"),
            data=payload,
            request_id=data.get("requestId"),
            timestamp=timestamp,
            status=data.get("status"),
        )

    @classmethod
    def from_json(cls, raw: Union[str, bytes]) -> "BridgeMessage":
        try:
            data = json.loads(raw)
        except (TypeError, ValueError) as e:
            raise ProtocolError(f"Invalid message JSON: {e}") from e
        return cls.from_dict(data)


# =============================================================================
# Constructors
# =============================================================================

def execute_code(code: str, comment: Optional[str] = None) -> BridgeMessage:
    return BridgeMessage(MessageType.EXECUTE_CODE, code=code, comment=comment or None)


def stop_all() -> BridgeMessage:
    return BridgeMessage(MessageType.STOP_ALL)


def get_current_code(request_id: str) -> BridgeMessage:
    return BridgeMessage(MessageType.GET_CURRENT_CODE, request_id=request_id)


def current_code(code: str, request_id: Optional[str]) -> BridgeMessage:
    return BridgeMessage(MessageType.CURRENT_CODE, code=code, request_id=request_id)


def execution_result(
    success: bool,
    error: Optional[str] = None,
    **extra: Any,
) -> BridgeMessage:
    data: Dict[str, Any] = {"success": success, "timestamp": time.time()}
    if error is not None:
        data["error"] = error
    data.update(extra)
    return BridgeMessage(MessageType.EXECUTION_RESULT, data=data)


def browser_ready(**info: Any) -> BridgeMessage:
    info.setdefault("protocol_version", PROTOCOL_VERSION)
    info.setdefault("timestamp", time.time())
    return BridgeMessage(MessageType.BROWSER_READY, data=info)


def health_check() -> BridgeMessage:
    return BridgeMessage(MessageType.HEALTH_CHECK, timestamp=time.time())


def health_response(status: str = "ok", details: Optional[Dict[str, Any]] = None) -> BridgeMessage:
    return BridgeMessage(MessageType.HEALTH_RESPONSE, status=status, data=details)


def connected(message: str) -> BridgeMessage:
    return BridgeMessage(MessageType.CONNECTED, data={"message": message})


def agent_error(message: str) -> BridgeMessage:
    return BridgeMessage(MessageType.ERROR, data={"error": message})

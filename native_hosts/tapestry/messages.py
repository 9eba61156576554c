"""Wire messages exchanged with the extension.

Every frame is a flat JSON object: `id` (UUID), `type` (discriminator) and the
variant's fields in camelCase. Requests may also carry `path`, an override for
the fabric executable.
"""

from __future__ import annotations

import uuid
from dataclasses import dataclass, field
from typing import Any, ClassVar, Union


class MessageError(ValueError):
    """A JSON value does not describe a valid message."""


def _require_str(obj: dict[str, Any], key: str) -> str:
    value = obj.get(key)
    if not isinstance(value, str):
        raise MessageError(f"field `{key}` must be a string")
    return value


def _optional_str(obj: dict[str, Any], key: str) -> str | None:
    value = obj.get(key)
    if value is None:
        return None
    if not isinstance(value, str):
        raise MessageError(f"field `{key}` must be a string or null")
    return value


def _optional_int(obj: dict[str, Any], key: str) -> int | None:
    value = obj.get(key)
    if value is None:
        return None
    if isinstance(value, bool) or not isinstance(value, int):
        raise MessageError(f"field `{key}` must be an integer or null")
    return value


def _str_list(obj: dict[str, Any], key: str) -> list[str]:
    value = obj.get(key)
    if not isinstance(value, list) or not all(isinstance(v, str) for v in value):
        raise MessageError(f"field `{key}` must be a list of strings")
    return list(value)


def _parse_uuid(raw: Any, key: str) -> uuid.UUID:
    if not isinstance(raw, str):
        raise MessageError(f"field `{key}` must be a UUID string")
    try:
        return uuid.UUID(raw)
    except ValueError as exc:
        raise MessageError(f"field `{key}` is not a valid UUID: {raw!r}") from exc


# ─────────────────────────────────────────────────────────────────────────────
# Requests
# ─────────────────────────────────────────────────────────────────────────────


@dataclass(slots=True, frozen=True)
class Ping:
    TYPE: ClassVar[str] = "native.ping"

    def fields(self) -> dict[str, Any]:
        return {}

    @classmethod
    def from_fields(cls, obj: dict[str, Any]) -> Ping:
        return cls()


@dataclass(slots=True, frozen=True)
class ListPatterns:
    TYPE: ClassVar[str] = "native.listPatterns"

    def fields(self) -> dict[str, Any]:
        return {}

    @classmethod
    def from_fields(cls, obj: dict[str, Any]) -> ListPatterns:
        return cls()


@dataclass(slots=True, frozen=True)
class ListContexts:
    TYPE: ClassVar[str] = "native.listContexts"

    def fields(self) -> dict[str, Any]:
        return {}

    @classmethod
    def from_fields(cls, obj: dict[str, Any]) -> ListContexts:
        return cls()


@dataclass(slots=True, frozen=True)
class ProcessContent:
    TYPE: ClassVar[str] = "native.processContent"

    content: str
    model: str | None = None
    pattern: str | None = None
    context: str | None = None
    custom_prompt: str | None = None

    def fields(self) -> dict[str, Any]:
        out: dict[str, Any] = {"content": self.content}
        if self.model is not None:
            out["model"] = self.model
        if self.pattern is not None:
            out["pattern"] = self.pattern
        if self.context is not None:
            out["context"] = self.context
        if self.custom_prompt is not None:
            out["customPrompt"] = self.custom_prompt
        return out

    @classmethod
    def from_fields(cls, obj: dict[str, Any]) -> ProcessContent:
        return cls(
            content=_require_str(obj, "content"),
            model=_optional_str(obj, "model"),
            pattern=_optional_str(obj, "pattern"),
            context=_optional_str(obj, "context"),
            custom_prompt=_optional_str(obj, "customPrompt"),
        )


@dataclass(slots=True, frozen=True)
class CancelProcess:
    TYPE: ClassVar[str] = "native.cancelProcess"

    target_request_id: uuid.UUID

    def fields(self) -> dict[str, Any]:
        return {"requestId": str(self.target_request_id)}

    @classmethod
    def from_fields(cls, obj: dict[str, Any]) -> CancelProcess:
        key = "requestId" if "requestId" in obj else "targetRequestId"
        return cls(target_request_id=_parse_uuid(obj.get(key), key))


RequestPayload = Union[Ping, ListPatterns, ListContexts, ProcessContent, CancelProcess]

REQUEST_TYPES: dict[str, type] = {
    cls.TYPE: cls for cls in (Ping, ListPatterns, ListContexts, ProcessContent, CancelProcess)
}


@dataclass(slots=True, frozen=True)
class Request:
    id: uuid.UUID
    payload: RequestPayload
    path: str | None = None

    @property
    def type(self) -> str:
        return self.payload.TYPE

    def to_dict(self) -> dict[str, Any]:
        out: dict[str, Any] = {"id": str(self.id), "type": self.payload.TYPE}
        if self.path is not None:
            out["path"] = self.path
        out.update(self.payload.fields())
        return out

    @classmethod
    def from_dict(cls, obj: Any) -> Request:
        if not isinstance(obj, dict):
            raise MessageError("request must be a JSON object")
        mtype = obj.get("type")
        payload_cls = REQUEST_TYPES.get(mtype) if isinstance(mtype, str) else None
        if payload_cls is None:
            raise MessageError(f"unknown request type: {mtype!r}")
        return cls(
            id=_parse_uuid(obj.get("id"), "id"),
            payload=payload_cls.from_fields(obj),
            path=_optional_str(obj, "path"),
        )


# ─────────────────────────────────────────────────────────────────────────────
# Responses
# ─────────────────────────────────────────────────────────────────────────────


@dataclass(slots=True, frozen=True)
class Pong:
    TYPE: ClassVar[str] = "native.pong"
    TERMINAL: ClassVar[bool] = True

    resolved_path: str | None = None
    version: str | None = None
    valid: bool = False

    def fields(self) -> dict[str, Any]:
        return {"resolvedPath": self.resolved_path, "version": self.version, "valid": self.valid}

    @classmethod
    def from_fields(cls, obj: dict[str, Any]) -> Pong:
        valid = obj.get("valid")
        if not isinstance(valid, bool):
            raise MessageError("field `valid` must be a boolean")
        return cls(
            resolved_path=_optional_str(obj, "resolvedPath"),
            version=_optional_str(obj, "version"),
            valid=valid,
        )


@dataclass(slots=True, frozen=True)
class Content:
    TYPE: ClassVar[str] = "native.content"
    TERMINAL: ClassVar[bool] = False

    content: str

    def fields(self) -> dict[str, Any]:
        return {"content": self.content}

    @classmethod
    def from_fields(cls, obj: dict[str, Any]) -> Content:
        return cls(content=_require_str(obj, "content"))


@dataclass(slots=True, frozen=True)
class Done:
    TYPE: ClassVar[str] = "native.done"
    TERMINAL: ClassVar[bool] = True

    exit_code: int | None = None

    def fields(self) -> dict[str, Any]:
        return {"exitCode": self.exit_code}

    @classmethod
    def from_fields(cls, obj: dict[str, Any]) -> Done:
        return cls(exit_code=_optional_int(obj, "exitCode"))


@dataclass(slots=True, frozen=True)
class Error:
    TYPE: ClassVar[str] = "native.error"
    TERMINAL: ClassVar[bool] = True

    message: str

    def fields(self) -> dict[str, Any]:
        return {"message": self.message}

    @classmethod
    def from_fields(cls, obj: dict[str, Any]) -> Error:
        return cls(message=_require_str(obj, "message"))


@dataclass(slots=True, frozen=True)
class PatternsList:
    TYPE: ClassVar[str] = "native.patternsList"
    TERMINAL: ClassVar[bool] = True

    patterns: list[str] = field(default_factory=list)

    def fields(self) -> dict[str, Any]:
        return {"patterns": list(self.patterns)}

    @classmethod
    def from_fields(cls, obj: dict[str, Any]) -> PatternsList:
        return cls(patterns=_str_list(obj, "patterns"))


@dataclass(slots=True, frozen=True)
class ContextsList:
    TYPE: ClassVar[str] = "native.contextsList"
    TERMINAL: ClassVar[bool] = True

    contexts: list[str] = field(default_factory=list)

    def fields(self) -> dict[str, Any]:
        return {"contexts": list(self.contexts)}

    @classmethod
    def from_fields(cls, obj: dict[str, Any]) -> ContextsList:
        return cls(contexts=_str_list(obj, "contexts"))


@dataclass(slots=True, frozen=True)
class Cancelled:
    """Terminal message for a stream stopped by `native.cancelProcess`."""

    TYPE: ClassVar[str] = "native.cancelled"
    TERMINAL: ClassVar[bool] = True

    request_id: uuid.UUID

    def fields(self) -> dict[str, Any]:
        return {"requestId": str(self.request_id)}

    @classmethod
    def from_fields(cls, obj: dict[str, Any]) -> Cancelled:
        return cls(request_id=_parse_uuid(obj.get("requestId"), "requestId"))


ResponsePayload = Union[Pong, Content, Done, Error, PatternsList, ContextsList, Cancelled]

RESPONSE_TYPES: dict[str, type] = {
    cls.TYPE: cls for cls in (Pong, Content, Done, Error, PatternsList, ContextsList, Cancelled)
}


@dataclass(slots=True, frozen=True)
class Response:
    id: uuid.UUID
    payload: ResponsePayload

    @property
    def type(self) -> str:
        return self.payload.TYPE

    @property
    def terminal(self) -> bool:
        return bool(self.payload.TERMINAL)

    def to_dict(self) -> dict[str, Any]:
        out: dict[str, Any] = {"id": str(self.id), "type": self.payload.TYPE}
        out.update(self.payload.fields())
        return out

    @classmethod
    def from_dict(cls, obj: Any) -> Response:
        if not isinstance(obj, dict):
            raise MessageError("response must be a JSON object")
        mtype = obj.get("type")
        payload_cls = RESPONSE_TYPES.get(mtype) if isinstance(mtype, str) else None
        if payload_cls is None:
            raise MessageError(f"unknown response type: {mtype!r}")
        return cls(id=_parse_uuid(obj.get("id"), "id"), payload=payload_cls.from_fields(obj))


__all__ = [
    "REQUEST_TYPES",
    "RESPONSE_TYPES",
    "CancelProcess",
    "Cancelled",
    "Content",
    "ContextsList",
    "Done",
    "Error",
    "ListContexts",
    "ListPatterns",
    "MessageError",
    "PatternsList",
    "Ping",
    "Pong",
    "ProcessContent",
    "Request",
    "RequestPayload",
    "Response",
    "ResponsePayload",
]

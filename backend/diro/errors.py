from __future__ import annotations


class AppError(Exception):
    """Base for every error the API reports to callers.

    ``kind`` is the stable machine-checkable tag; ``messages`` holds one or
    more human-readable descriptions.
    """

    kind = "app_error"
    status_code = 400

    def __init__(self, *messages: str) -> None:
        self.messages = [m for m in messages if m] or [self.default_message()]
        super().__init__("; ".join(self.messages))

    @property
    def message(self) -> str:
        return self.messages[0]

    def default_message(self) -> str:
        return "Request failed"

    def to_dict(self) -> dict:
        return {"error": self.kind, "message": self.message, "messages": list(self.messages)}


class ValidationError(AppError):
    kind = "validation_error"
    status_code = 400

    def __init__(self, *messages: str, fields: list[str] | None = None) -> None:
        self.fields = list(fields or [])
        super().__init__(*messages)

    def default_message(self) -> str:
        return "Invalid request"

    def to_dict(self) -> dict:
        payload = super().to_dict()
        if self.fields:
            payload["fields"] = list(self.fields)
        return payload


class AuthenticationError(AppError):
    kind = "authentication_error"
    status_code = 401

    def default_message(self) -> str:
        return "Authentication required"


class ForbiddenError(AppError):
    kind = "forbidden"
    status_code = 403

    def default_message(self) -> str:
        return "Access denied"


class NotFoundError(AppError):
    kind = "not_found"
    status_code = 404

    def __init__(self, resource: str = "Resource") -> None:
        self.resource = resource
        super().__init__(f"{resource} not found")


class ConflictError(AppError):
    kind = "conflict"
    status_code = 409

    def default_message(self) -> str:
        return "Conflict"


def describe_validation_errors(errors: list[dict]) -> tuple[list[str], list[str]]:
    """Flatten pydantic error dicts into (messages, fields)."""
    messages: list[str] = []
    fields: list[str] = []
    for error in errors:
        location = [str(part) for part in error.get("loc", ()) if part not in ("body", "query", "path")]
        field = ".".join(location)
        message = str(error.get("msg", "Invalid value"))
        messages.append(f"{field}: {message}" if field else message)
        if field:
            fields.append(field)
    return messages, list(dict.fromkeys(fields))

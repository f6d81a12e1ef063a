from __future__ import annotations

from enum import Enum
from typing import Any, Dict

from pydantic import BaseModel, ConfigDict, Field, SecretStr, field_validator


class HttpMethod(str, Enum):
    GET = "GET"
    POST = "POST"


class Sorting(str, Enum):
    """Sort order accepted by the list endpoints."""

    ASCENDING = "Ascending"
    DESCENDING = "Descending"


class Credentials(BaseModel):
    """Username/API-key pair; the key is masked in ``repr``."""

    model_config = ConfigDict(frozen=True)

    username: str
    api_key: SecretStr

    @field_validator("username", "api_key", mode="before")
    def _not_blank(cls, v):  # noqa: N805
        if isinstance(v, SecretStr):
            v = v.get_secret_value()
        if not isinstance(v, str) or not v.strip():
            raise ValueError("must be a non-empty string")
        return v


class RequestSpec(BaseModel):
    """One outbound request, built and discarded per call."""

    path: str
    method: HttpMethod = HttpMethod.GET
    parameters: Dict[str, Any] = Field(default_factory=dict)
    expect_structured_response: bool = True

    # Lists travel as comma-separated ids, e.g. GroupID=1,2,3
    @field_validator("parameters", mode="before")
    def _join_lists(cls, v):  # noqa: N805
        if v is None:
            return {}
        return {
            str(k): ",".join(str(i) for i in val) if isinstance(val, (list, tuple)) else val
            for k, val in dict(v).items()
            if val is not None
        }


class ResponseEnvelope(BaseModel):
    """Decoded ``{"Code": ..., "Output": ...}`` wrapper of every JSON response."""

    model_config = ConfigDict(populate_by_name=True)

    code: int = Field(default=0, alias="Code")
    output: Any = Field(default=None, alias="Output")

    @field_validator("code", mode="before")
    def _missing_code(cls, v):  # noqa: N805
        return 0 if v is None else v

    @property
    def is_error(self) -> bool:
        return self.code != 0

    def error_message(self) -> str:
        return "" if self.output is None else str(self.output)

from typing import Any

from pydantic import BaseModel, ConfigDict, Field


class FunctionCallRequest(BaseModel):
    function_name: str
    parameters: dict[str, Any] = Field(default_factory=dict)


class FunctionCallResult(BaseModel):
    result: str


class WebhookFunctionCall(BaseModel):
    name: str
    parameters: dict[str, Any] = Field(default_factory=dict)


class WebhookEvent(BaseModel):
    """Voice platform webhook envelope. Other fields (call, customer, ...) are ignored."""

    model_config = ConfigDict(populate_by_name=True, extra="allow")

    type: str | None = None
    function_call: WebhookFunctionCall | None = Field(default=None, alias="functionCall")
    message: "WebhookEvent | None" = None

    def resolve(self) -> "WebhookEvent":
        """Some platform versions nest the event under `message`."""
        if self.type is None and self.message is not None:
            return self.message
        return self

"""Typed step content.

Step content is stored as JSON and parsed into one of a fixed set of variants,
discriminated by the ``kind`` field.
"""

from typing import Annotated, Literal, Union, assert_never

import structlog
from pydantic import BaseModel, Field, TypeAdapter
from pydantic import ValidationError as PydanticValidationError

logger = structlog.get_logger()


class TextContent(BaseModel):
    kind: Literal["text"] = "text"
    body: str
    reading_time_minutes: int | None = None


class HtmlContent(BaseModel):
    kind: Literal["html"] = "html"
    html: str


class InteractiveContent(BaseModel):
    kind: Literal["interactive"] = "interactive"
    component: str
    config: dict = Field(default_factory=dict)


class VideoContent(BaseModel):
    kind: Literal["video"] = "video"
    url: str
    duration_seconds: int | None = None
    transcript: str | None = None


StepContent = Annotated[
    Union[TextContent, HtmlContent, InteractiveContent, VideoContent],
    Field(discriminator="kind"),
]

_adapter: TypeAdapter[StepContent] = TypeAdapter(StepContent)


def parse_step_content(raw: dict | None) -> StepContent | None:
    """Parse stored content JSON. Malformed content is logged and dropped."""
    if not raw:
        return None
    try:
        return _adapter.validate_python(raw)
    except PydanticValidationError as exc:
        logger.warning("onboarding.content_invalid", kind=raw.get("kind"), error=str(exc))
        return None


def content_kind(content: StepContent | None) -> str | None:
    if content is None:
        return None
    return content.kind


def content_preview(content: StepContent, max_length: int = 140) -> str:
    """Short plain-text preview of a content payload."""
    if isinstance(content, TextContent):
        text = content.body
    elif isinstance(content, HtmlContent):
        text = content.html
    elif isinstance(content, InteractiveContent):
        text = f"Interactive: {content.component}"
    elif isinstance(content, VideoContent):
        text = content.transcript or f"Video: {content.url}"
    else:
        assert_never(content)
    return text if len(text) <= max_length else text[: max_length - 3] + "..."

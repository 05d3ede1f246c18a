"""Pydantic models for resolved message content.

A resolved message is either a plain string or an ordered list of typed
fragments. Fragment lists are only produced for "pure media" user messages;
everything else flattens to a string.
"""

from __future__ import annotations

from typing import Annotated
from typing import Any
from typing import Literal
from typing import Union

from pydantic import BaseModel
from pydantic import ConfigDict
from pydantic import Field


class TextFragment(BaseModel):
    """Plain text content."""

    model_config = ConfigDict(extra="forbid")

    type: Literal["text"] = "text"
    text: str

    def to_request_part(self) -> dict[str, Any]:
        return {"type": "text", "text": self.text}


class ImageFragment(BaseModel):
    """Inline image, carried as a data URL."""

    model_config = ConfigDict(extra="forbid")

    type: Literal["image"] = "image"
    url: str

    def to_request_part(self) -> dict[str, Any]:
        return {"type": "image_url", "image_url": {"url": self.url}}


class AudioFragment(BaseModel):
    """Inline audio: base64 payload without the data URL prefix."""

    model_config = ConfigDict(extra="forbid")

    type: Literal["audio"] = "audio"
    data: str
    format: Literal["wav", "mp3"]

    def to_request_part(self) -> dict[str, Any]:
        return {"type": "input_audio", "input_audio": {"data": self.data, "format": self.format}}


ResolvedFragment = Annotated[
    Union[TextFragment, ImageFragment, AudioFragment],
    Field(discriminator="type"),
]

ResolvedContent = Union[str, list[ResolvedFragment]]


class RequestMessage(BaseModel):
    """One message of the outbound chat request, after link resolution."""

    model_config = ConfigDict(extra="forbid")

    role: Literal["system", "developer", "user", "assistant", "tool"]
    content: Union[str, list[ResolvedFragment]]

    def to_request_dict(self) -> dict[str, Any]:
        """Serialize to the OpenAI-compatible chat message shape."""
        if isinstance(self.content, str):
            return {"role": self.role, "content": self.content}
        return {"role": self.role, "content": [fragment.to_request_part() for fragment in self.content]}


def is_media(fragment: TextFragment | ImageFragment | AudioFragment) -> bool:
    return fragment.type != "text"

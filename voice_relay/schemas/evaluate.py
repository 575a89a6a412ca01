from pydantic import BaseModel, Field
from typing import Optional

MAX_INPUT_CHARS = 100_000
# plain model ids only ("gemini-2.0-flash"); the value becomes a URL path segment
MODEL_NAME_PATTERN = r"^[A-Za-z0-9][A-Za-z0-9._-]*$"


class EvalRequest(BaseModel):
    input: str = Field(..., min_length=1, max_length=MAX_INPUT_CHARS)
    model: Optional[str] = Field(None, max_length=128, pattern=MODEL_NAME_PATTERN, examples=["gemini-2.0-flash"])

from pydantic import BaseModel
from typing import Any, Optional


class ErrorBody(BaseModel):
    error: str
    code: Optional[str] = None
    details: Any = None


class TranscriptionResponse(BaseModel):
    """Provider-defined; only `text` is guaranteed for json/verbose_json."""
    text: str
    language: Optional[str] = None
    duration: Optional[float] = None

from typing import Generic, Optional, TypeVar

from pydantic import BaseModel

DataT = TypeVar("DataT")


class Envelope(BaseModel, Generic[DataT]):
    """Success envelope wrapping every synchronous API response."""

    success: bool = True
    data: Optional[DataT] = None


class ErrorEnvelope(BaseModel):
    """Failure envelope; ``code`` is stable, ``error`` is human readable."""

    success: bool = False
    error: str
    code: str

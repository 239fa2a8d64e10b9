"""Typed thumbnail job record."""

import uuid
from typing import ClassVar

from pydantic import BaseModel, Field

THUMBNAIL_WIDTHS: tuple[int, ...] = (500, 250, 100)


def generate_job_id() -> str:
    """Generate a unique job ID."""
    return f"job_{uuid.uuid4().hex[:24]}"


class DerivativeJob(BaseModel):
    """Request to materialize the size variants of one image file.

    ``attempts`` counts deliveries and is owned by the queue.
    """

    widths: ClassVar[tuple[int, ...]] = THUMBNAIL_WIDTHS

    job_id: str = Field(default_factory=generate_job_id)
    file_id: str
    owner_id: str
    attempts: int = 0

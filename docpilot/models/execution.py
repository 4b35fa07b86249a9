"""Execution history record for dispatched jobs and scripts."""

from datetime import datetime
from typing import Optional

from pydantic import BaseModel, ConfigDict
from pydantic.alias_generators import to_camel

SCRIPT_PREFIX = "script:"


class JobExecution(BaseModel):
    """
    One finished job or script invocation.

    Ad-hoc admin scripts are recorded as ``script:<name>``; scheduled and
    manually triggered jobs use their bare name.
    """

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)

    id: str
    job_name: str
    started_at: datetime
    completed_at: datetime
    success: bool
    message: str
    duration: int  # milliseconds
    error: Optional[str] = None
    trigger: Optional[str] = None

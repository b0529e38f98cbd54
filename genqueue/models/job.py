import time
from enum import Enum
from typing import List, Optional

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel


def now_ms() -> int:
    return int(time.time() * 1000)


class JobStatus(str, Enum):
    QUEUED = "queued"
    RUNNING = "running"
    DONE = "done"
    ERROR = "error"


class FileResult(BaseModel):
    """Outcome of one input file. Exactly one of ``url``/``error`` is meaningful."""

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)

    input: str
    url: Optional[str] = None
    error: str = ""

    @property
    def succeeded(self) -> bool:
        return bool(self.url) and not self.error

    @classmethod
    def success(cls, input: str, url: str) -> "FileResult":
        return cls(input=input, url=url, error="")

    @classmethod
    def failure(cls, input: str, error: str) -> "FileResult":
        return cls(input=input, error=error or "unknown error")


class JobRecord(BaseModel):
    """Persisted job. Serialized with camelCase keys, one JSON file per job."""

    model_config = ConfigDict(
        alias_generator=to_camel,
        populate_by_name=True,
        use_enum_values=False,
        extra="allow",
    )

    job_id: str = Field(..., min_length=1)
    status: JobStatus = JobStatus.QUEUED

    prompt: str = ""
    negative_prompt: Optional[str] = None
    strength: Optional[float] = None
    prompt_strength: Optional[float] = None
    steps: Optional[int] = None
    model_id: Optional[str] = None
    image_size: Optional[str] = None

    files: List[str] = Field(..., min_length=1)

    username: Optional[str] = None
    user_token: Optional[str] = Field(default=None, repr=False)
    refresh_token: Optional[str] = Field(default=None, repr=False)
    token_type: Optional[str] = None

    created_at: int = Field(default_factory=now_ms)
    started_at: Optional[int] = None
    completed_at: Optional[int] = None

    outputs: Optional[List[FileResult]] = None
    error: Optional[str] = None

    def to_json(self) -> str:
        return self.model_dump_json(by_alias=True, exclude_none=True, indent=2)

    @classmethod
    def from_json(cls, raw: str) -> "JobRecord":
        return cls.model_validate_json(raw)

    def mark_running(self, now: Optional[int] = None) -> "JobRecord":
        return self.model_copy(update={
            "status": JobStatus.RUNNING,
            "started_at": now if now is not None else now_ms(),
        })

    def mark_completed(self, outputs: List[FileResult], now: Optional[int] = None) -> "JobRecord":
        succeeded = any(result.succeeded for result in outputs)
        return self.model_copy(update={
            "status": JobStatus.DONE if succeeded else JobStatus.ERROR,
            "completed_at": now if now is not None else now_ms(),
            "outputs": list(outputs),
        })

    def mark_failed(self, error: str, now: Optional[int] = None) -> "JobRecord":
        return self.model_copy(update={
            "status": JobStatus.ERROR,
            "completed_at": now if now is not None else now_ms(),
            "error": error or "unknown error",
        })

    def __str__(self):
        return f"Job {self.job_id} - {self.status.value}"

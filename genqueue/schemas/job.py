from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel
from typing import Optional, List
from genqueue.models.job import FileResult, JobRecord, JobStatus


class JobSubmitRequest(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True, protected_namespaces=())

    prompt: str = Field(..., min_length=1, description="Positive prompt for generation")
    negative_prompt: Optional[str] = Field(default=None, description="Negative prompt")
    strength: Optional[float] = Field(default=None, ge=0.0, le=1.0, description="Starting image strength")
    prompt_strength: Optional[float] = Field(default=None, gt=0.0, description="Guidance scale")
    steps: Optional[int] = Field(default=None, ge=1, le=150, description="Inference steps")
    model_id: Optional[str] = Field(default=None, description="Explicit model selection")
    image_size: Optional[str] = Field(default=None, description="Target size as <width>x<height>")
    username: str = Field(..., min_length=1, description="Provider account name")
    user_token: str = Field(..., min_length=1, repr=False, description="Provider access token")
    refresh_token: Optional[str] = Field(default=None, repr=False, description="Provider refresh token")
    token_type: Optional[str] = Field(default=None, description="Explicit provider family (spark or sogni)")


class JobStatusResponse(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)

    job_id: str
    status: JobStatus
    outputs: Optional[List[FileResult]]
    error: Optional[str]
    created_at: int
    started_at: Optional[int]
    completed_at: Optional[int]

    @classmethod
    def from_record(cls, record: JobRecord) -> "JobStatusResponse":
        return cls(
            job_id=record.job_id,
            status=record.status,
            outputs=record.outputs,
            error=record.error,
            created_at=record.created_at,
            started_at=record.started_at,
            completed_at=record.completed_at,
        )

from pydantic import BaseModel


class ErrorInfo(BaseModel):
    code: str
    message: str
    stage: str | None = None
    retryable: bool = False
    suggested_fix: str | None = None  # Human-readable fix suggestion

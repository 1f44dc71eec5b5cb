from typing import Any, Dict, List, Optional

from pydantic import BaseModel, Field, field_validator

from .encryption import Ciphertext


def _check_handle(value: str) -> str:
    Ciphertext.from_hex(value)
    return value


class AddressRequest(BaseModel):
    address: str = Field(min_length=1)


class CooldownRequest(BaseModel):
    seconds: int


class SubmissionRequest(BaseModel):
    salary: str
    company_size: str
    years_experience: str

    @field_validator("salary", "company_size", "years_experience")
    @classmethod
    def _handles(cls, v: str) -> str:
        return _check_handle(v)


class OracleCallback(BaseModel):
    request_id: int
    cleartexts_b64: str
    proof_b64: str


class BatchResponse(BaseModel):
    batch_id: int
    batch_open: bool


class DecryptionRequested(BaseModel):
    request_id: int
    batch_id: int


class DecryptionResult(BaseModel):
    request_id: int
    batch_id: int
    avg_salary: int
    avg_company_size: int
    avg_years_experience: int


class StateResponse(BaseModel):
    owner: str
    providers: List[str]
    paused: bool
    cooldown_seconds: int
    batch_id: int
    batch_open: bool
    pending_requests: List[int] = Field(default_factory=list)


class ErrorResponse(BaseModel):
    error: str
    message: str
    details: Dict[str, Any] = Field(default_factory=dict)


class LedgerResponse(BaseModel):
    batch_id: int
    salary: Optional[str] = None
    company_size: Optional[str] = None
    years_experience: Optional[str] = None
    count: Optional[str] = None

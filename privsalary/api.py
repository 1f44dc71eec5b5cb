"""
HTTP service surface for privsalary.

Callers identify themselves with the ``X-Caller-Address`` header. The
oracle posts results to ``/oracle/callback``. Rejections come back as
``{"error": code, "message": ..., "details": ...}`` with a status per code.
"""

import binascii
import logging
from typing import Optional

from fastapi import Depends, FastAPI, Header, HTTPException, Query, Request
from fastapi.responses import JSONResponse

from .aggregator import SalaryAggregator
from .config import Settings, get_settings, is_production, validate_settings
from .encryption import Ciphertext
from .errors import ErrorCode, ProtocolError
from .events import EventKind
from .logging_config import configure_logging, set_request_id
from .models import (
    AddressRequest,
    BatchResponse,
    CooldownRequest,
    DecryptionRequested,
    DecryptionResult,
    ErrorResponse,
    LedgerResponse,
    OracleCallback,
    StateResponse,
    SubmissionRequest,
)
from .oracle import LocalDecryptionOracle
from .util import b64d

logger = logging.getLogger(__name__)

STATUS_BY_CODE = {
    ErrorCode.NOT_OWNER: 403,
    ErrorCode.NOT_PROVIDER: 403,
    ErrorCode.PAUSED: 423,
    ErrorCode.COOLDOWN_ACTIVE: 429,
    ErrorCode.BATCH_NOT_OPEN: 409,
    ErrorCode.BATCH_ALREADY_OPEN: 409,
    ErrorCode.BATCH_NOT_CLOSED: 409,
    ErrorCode.INVALID_PARAMETER: 400,
    ErrorCode.REPLAY_DETECTED: 409,
    ErrorCode.STATE_MISMATCH: 409,
    ErrorCode.DECRYPTION_FAILED: 422,
    ErrorCode.DECRYPTION_PENDING: 409,
    ErrorCode.UNKNOWN_REQUEST: 404,
    ErrorCode.ALREADY_PUBLISHED: 409,
}


def create_app(
    aggregator: Optional[SalaryAggregator] = None,
    oracle: Optional[LocalDecryptionOracle] = None,
    settings: Optional[Settings] = None
) -> FastAPI:
    """
    Build the service.

    With no aggregator, one is built from settings together with a local
    oracle. The oracle delivery endpoint is only mounted outside production.
    """
    settings = settings or get_settings()
    if aggregator is None:
        problems = validate_settings(settings)
        if problems:
            raise RuntimeError("invalid settings: " + "; ".join(problems))
        configure_logging(settings.log_level, settings.log_json)
        aggregator, _, oracle = SalaryAggregator.from_settings(settings)

    app = FastAPI(title="privsalary aggregator")
    app.state.aggregator = aggregator

    def get_aggregator() -> SalaryAggregator:
        return app.state.aggregator

    def caller_address(x_caller_address: str = Header(...)) -> str:
        if not x_caller_address:
            raise HTTPException(400, "MISSING_CALLER")
        return x_caller_address

    @app.middleware("http")
    async def _request_id(request: Request, call_next):
        rid = set_request_id(request.headers.get("X-Request-ID"))
        response = await call_next(request)
        response.headers["X-Request-ID"] = rid
        return response

    @app.exception_handler(ProtocolError)
    async def _protocol_error(request: Request, exc: ProtocolError):
        body = ErrorResponse(**exc.to_dict()).model_dump()
        return JSONResponse(status_code=STATUS_BY_CODE.get(exc.code, 400), content=body)

    # ------------------------------------------------------------------
    # Admin
    # ------------------------------------------------------------------

    @app.post("/admin/transfer_ownership", response_model=StateResponse)
    def transfer_ownership(req: AddressRequest, caller: str = Depends(caller_address),
                           agg: SalaryAggregator = Depends(get_aggregator)):
        agg.transfer_ownership(caller, req.address)
        return agg.status()

    @app.post("/admin/providers", response_model=StateResponse)
    def add_provider(req: AddressRequest, caller: str = Depends(caller_address),
                     agg: SalaryAggregator = Depends(get_aggregator)):
        agg.add_provider(caller, req.address)
        return agg.status()

    @app.delete("/admin/providers/{address}", response_model=StateResponse)
    def remove_provider(address: str, caller: str = Depends(caller_address),
                        agg: SalaryAggregator = Depends(get_aggregator)):
        agg.remove_provider(caller, address)
        return agg.status()

    @app.post("/admin/pause", response_model=StateResponse)
    def pause(caller: str = Depends(caller_address), agg: SalaryAggregator = Depends(get_aggregator)):
        agg.pause(caller)
        return agg.status()

    @app.post("/admin/unpause", response_model=StateResponse)
    def unpause(caller: str = Depends(caller_address), agg: SalaryAggregator = Depends(get_aggregator)):
        agg.unpause(caller)
        return agg.status()

    @app.post("/admin/cooldown", response_model=StateResponse)
    def set_cooldown(req: CooldownRequest, caller: str = Depends(caller_address),
                     agg: SalaryAggregator = Depends(get_aggregator)):
        agg.set_cooldown_seconds(caller, req.seconds)
        return agg.status()

    # ------------------------------------------------------------------
    # Batches
    # ------------------------------------------------------------------

    @app.post("/batches/open", response_model=BatchResponse)
    def open_batch(caller: str = Depends(caller_address), agg: SalaryAggregator = Depends(get_aggregator)):
        batch_id = agg.open_batch(caller)
        return BatchResponse(batch_id=batch_id, batch_open=agg.batch_open)

    @app.post("/batches/close", response_model=BatchResponse)
    def close_batch(caller: str = Depends(caller_address), agg: SalaryAggregator = Depends(get_aggregator)):
        batch_id = agg.close_batch(caller)
        return BatchResponse(batch_id=batch_id, batch_open=agg.batch_open)

    @app.post("/submissions", response_model=BatchResponse)
    def submit(req: SubmissionRequest, caller: str = Depends(caller_address),
               agg: SalaryAggregator = Depends(get_aggregator)):
        agg.submit_salary_data(
            caller,
            Ciphertext.from_hex(req.salary),
            Ciphertext.from_hex(req.company_size),
            Ciphertext.from_hex(req.years_experience),
        )
        return BatchResponse(batch_id=agg.batch_id, batch_open=agg.batch_open)

    # ------------------------------------------------------------------
    # Decryption
    # ------------------------------------------------------------------

    @app.post("/decryptions", response_model=DecryptionRequested)
    def request_decryption(caller: str = Depends(caller_address),
                           agg: SalaryAggregator = Depends(get_aggregator)):
        request_id = agg.request_average_decryption(caller)
        return DecryptionRequested(request_id=request_id, batch_id=agg.batch_id)

    @app.post("/oracle/callback", response_model=DecryptionResult)
    def oracle_callback(req: OracleCallback, agg: SalaryAggregator = Depends(get_aggregator)):
        try:
            cleartexts = b64d(req.cleartexts_b64)
            proof = b64d(req.proof_b64)
        except (binascii.Error, ValueError):
            raise HTTPException(400, "INVALID_ENCODING")
        averages = agg.on_decryption_result(req.request_id, cleartexts, proof)
        context = agg.decryption_context(req.request_id)
        return DecryptionResult(
            request_id=req.request_id,
            batch_id=context.batch_id,
            avg_salary=averages[0],
            avg_company_size=averages[1],
            avg_years_experience=averages[2],
        )

    @app.get("/decryptions/{request_id}")
    def get_decryption(request_id: int, agg: SalaryAggregator = Depends(get_aggregator)):
        context = agg.decryption_context(request_id)
        if context is None:
            raise HTTPException(404, "NOT_FOUND")
        return context.to_dict()

    if oracle is not None and not is_production(settings):
        @app.post("/dev/oracle/fulfil")
        def fulfil_pending():
            return {"delivered": oracle.fulfil_all()}

    # ------------------------------------------------------------------
    # Read surface
    # ------------------------------------------------------------------

    @app.get("/state", response_model=StateResponse)
    def state(agg: SalaryAggregator = Depends(get_aggregator)):
        return agg.status()

    @app.get("/ledger", response_model=LedgerResponse)
    def ledger(agg: SalaryAggregator = Depends(get_aggregator)):
        return LedgerResponse(batch_id=agg.batch_id, **agg.ledger_snapshot().to_dict())

    @app.get("/events")
    def events(kind: Optional[EventKind] = Query(None), batch_id: Optional[int] = Query(None),
               since_seq: int = Query(0), agg: SalaryAggregator = Depends(get_aggregator)):
        return [e.to_dict() for e in agg.events.query(kind=kind, batch_id=batch_id, since_seq=since_seq)]

    @app.get("/health")
    def health(agg: SalaryAggregator = Depends(get_aggregator)):
        return {"available": agg.is_available(), "batch_id": agg.batch_id}

    return app

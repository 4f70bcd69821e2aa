"""
Energy Trade Settlement - FastAPI Application
HTTP gateway over the energy trading contract
"""

from fastapi import FastAPI, Request, status
from fastapi.encoders import jsonable_encoder
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse, Response
from pydantic import BaseModel, Field
from typing import Optional
import logging
from contextlib import asynccontextmanager

from prometheus_client import generate_latest, CONTENT_TYPE_LATEST

from ets_config import settings
from ets_enforcement_integration import (
    EnergyTradingContract,
    InMemoryKeyValueStore,
    EnergyAsset,
    TokenAccount,
    Reputation,
    ErrorKind,
    LedgerError,
    record_from_dict
)
from ets_metrics import metrics_registry, update_system_health

logger = logging.getLogger("ets.api")

VERSION = "1.0.0"

STATUS_BY_KIND = {
    ErrorKind.NOT_FOUND: status.HTTP_404_NOT_FOUND,
    ErrorKind.ALREADY_EXISTS: status.HTTP_409_CONFLICT,
    ErrorKind.REPUTATION_TOO_LOW: status.HTTP_403_FORBIDDEN,
    ErrorKind.DECODE_ERROR: status.HTTP_500_INTERNAL_SERVER_ERROR,
    ErrorKind.STORE_ERROR: status.HTTP_503_SERVICE_UNAVAILABLE,
    ErrorKind.INVALID_INVOCATION: status.HTTP_400_BAD_REQUEST,
    ErrorKind.INVARIANT_VIOLATION: status.HTTP_500_INTERNAL_SERVER_ERROR,
}

# ============================================
# PYDANTIC MODELS (API DTOs)
# ============================================

class EnergyAssetCreateRequest(BaseModel):
    token_id: str = Field(..., min_length=1)
    buyer_address: str = Field(..., min_length=1)
    seller_address: str = Field(..., min_length=1)
    energy_amount: float = Field(..., ge=0, allow_inf_nan=False)
    transaction_price: float = Field(..., ge=0, allow_inf_nan=False)
    timestamp: str
    buyer_deposit: float = Field(0.0, allow_inf_nan=False)
    seller_deposit: float = Field(0.0, allow_inf_nan=False)

    class Config:
        json_schema_extra = {
            "example": {
                "token_id": "energy2",
                "buyer_address": "buyer1",
                "seller_address": "seller1",
                "energy_amount": 50.0,
                "transaction_price": 0.3,
                "timestamp": "2025-05-04T09:00:00Z",
                "buyer_deposit": 5.0,
                "seller_deposit": 5.0
            }
        }

class EnergyAssetResponse(BaseModel):
    token_id: str
    buyer_address: str
    seller_address: str
    energy_amount: float
    transaction_price: float
    timestamp: str
    buyer_deposit: float
    seller_deposit: float
    transaction_state: str
    buyer_signature: Optional[str] = None
    seller_signature: Optional[str] = None

class AssetExistsResponse(BaseModel):
    token_id: str
    exists: bool

class ReputationAdjustRequest(BaseModel):
    delta: float = Field(..., allow_inf_nan=False)

class ReputationResponse(BaseModel):
    participant_address: str
    score: float
    penalized: bool

class AccountResponse(BaseModel):
    account_id: str
    balance: float

class InitLedgerResponse(BaseModel):
    accounts: int
    assets: int
    reputations: int

class HealthResponse(BaseModel):
    status: str
    version: str
    health_score: float
    total_decisions: int
    total_records: int
    key_namespace: str
    ledger_integrity: bool

# ============================================
# APPLICATION LIFECYCLE
# ============================================

class AppState:
    """Global application state."""
    def __init__(self):
        self.reset()

    def reset(self):
        self.store = InMemoryKeyValueStore()
        self.contract = EnergyTradingContract()

app_state = AppState()

@asynccontextmanager
async def lifespan(app: FastAPI):
    """Application startup and shutdown."""
    logger.info("Energy Trade Settlement gateway starting...")
    if settings.SEED_ON_STARTUP:
        app_state.contract.submit_transaction(app_state.store, "InitLedger")
        logger.info("Ledger seeded on startup")
    yield
    logger.info("Energy Trade Settlement gateway shutting down...")

# ============================================
# FASTAPI APPLICATION
# ============================================

app = FastAPI(
    title="Energy Trade Settlement",
    description="Reputation-gated bilateral energy trade ledger",
    version=VERSION,
    lifespan=lifespan,
    docs_url="/api/docs",
    redoc_url="/api/redoc",
    openapi_url="/api/openapi.json"
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.CORS_ORIGINS,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

# ============================================
# ERROR HANDLERS
# ============================================

@app.exception_handler(LedgerError)
async def ledger_error_handler(request: Request, exc: LedgerError):
    status_code = STATUS_BY_KIND.get(exc.kind, status.HTTP_500_INTERNAL_SERVER_ERROR)
    if status_code >= 500:
        logger.error(f"Ledger failure on {request.url.path}: {exc}")
    return JSONResponse(
        status_code=status_code,
        content={"detail": str(exc), "kind": exc.kind.value}
    )

@app.exception_handler(RequestValidationError)
async def validation_error_handler(request: Request, exc: RequestValidationError):
    # Rejected inputs may be NaN or infinite, which a JSON response cannot carry
    errors = [
        {key: value for key, value in error.items() if key not in ("input", "ctx")}
        for error in exc.errors()
    ]
    return JSONResponse(
        status_code=status.HTTP_422_UNPROCESSABLE_ENTITY,
        content={"detail": jsonable_encoder(errors)}
    )

def _asset_response(payload: dict) -> EnergyAssetResponse:
    asset = record_from_dict(EnergyAsset, payload)
    return EnergyAssetResponse(
        token_id=asset.token_id,
        buyer_address=asset.buyer_address,
        seller_address=asset.seller_address,
        energy_amount=asset.energy_amount,
        transaction_price=asset.transaction_price,
        timestamp=asset.timestamp,
        buyer_deposit=asset.buyer_deposit,
        seller_deposit=asset.seller_deposit,
        transaction_state=asset.transaction_state,
        buyer_signature=asset.buyer_signature or None,
        seller_signature=asset.seller_signature or None
    )

def _reputation_response(payload: dict, penalized: bool) -> ReputationResponse:
    rep = record_from_dict(Reputation, payload)
    return ReputationResponse(
        participant_address=rep.participant_address,
        score=rep.score,
        penalized=penalized
    )

# ============================================
# API ENDPOINTS
# ============================================

@app.get("/", tags=["Health"])
async def root():
    """Root endpoint."""
    return {
        "service": "Energy Trade Settlement",
        "version": VERSION,
        "environment": settings.ENV,
        "status": "operational"
    }

@app.get("/health", response_model=HealthResponse, tags=["Health"])
async def health_check():
    """System health check."""
    decisions = app_state.contract.decision_ledger
    health_score = decisions.passed_ratio()
    integrity = decisions.verify_chain_integrity()

    update_system_health(health_score, integrity)

    return HealthResponse(
        status="healthy" if integrity else "compromised",
        version=VERSION,
        health_score=health_score,
        total_decisions=len(decisions.entries),
        total_records=len(app_state.store),
        key_namespace=app_state.contract.key_scheme.name,
        ledger_integrity=integrity
    )

@app.post("/api/v1/ledger/init", response_model=InitLedgerResponse, tags=["Ledger"])
async def init_ledger():
    """Seed demo accounts, the sample asset and reputation scores."""
    counts = app_state.contract.submit_transaction(app_state.store, "InitLedger")
    return InitLedgerResponse(**counts)

@app.post("/api/v1/assets", response_model=EnergyAssetResponse, status_code=status.HTTP_201_CREATED, tags=["Assets"])
async def create_energy_asset(request: EnergyAssetCreateRequest):
    """
    Create an energy asset.

    Rejected with 403 when the buyer or seller reputation is below 40,
    and with 409 when the tokenID is already taken.
    """
    payload = app_state.contract.submit_transaction(
        app_state.store,
        "CreateEnergyAsset",
        request.token_id,
        request.buyer_address,
        request.seller_address,
        request.energy_amount,
        request.transaction_price,
        request.timestamp,
        request.buyer_deposit,
        request.seller_deposit
    )
    return _asset_response(payload)

@app.get("/api/v1/assets/{token_id}", response_model=EnergyAssetResponse, tags=["Assets"])
async def read_energy_asset(token_id: str):
    payload = app_state.contract.evaluate_transaction(app_state.store, "ReadEnergyAsset", token_id)
    return _asset_response(payload)

@app.get("/api/v1/assets/{token_id}/exists", response_model=AssetExistsResponse, tags=["Assets"])
async def energy_asset_exists(token_id: str):
    exists = app_state.contract.evaluate_transaction(app_state.store, "EnergyAssetExists", token_id)
    return AssetExistsResponse(token_id=token_id, exists=exists)

@app.get("/api/v1/reputations/{participant}", response_model=ReputationResponse, tags=["Reputation"])
async def read_reputation_score(participant: str):
    """Read a reputation score; unknown participants report the default of 50."""
    contract = app_state.contract
    payload = contract.evaluate_transaction(app_state.store, "ReadReputationScore", participant)
    penalized = contract.evaluate_transaction(app_state.store, "CheckReputationPenalty", participant)
    return _reputation_response(payload, penalized)

@app.post("/api/v1/reputations/{participant}/adjust", response_model=ReputationResponse, tags=["Reputation"])
async def update_reputation_score(participant: str, request: ReputationAdjustRequest):
    """Add delta to a participant's score, clamped to [0, 100]."""
    contract = app_state.contract
    payload = contract.submit_transaction(app_state.store, "UpdateReputationScore", participant, request.delta)
    penalized = contract.evaluate_transaction(app_state.store, "CheckReputationPenalty", participant)
    return _reputation_response(payload, penalized)

@app.get("/api/v1/accounts/{account_id}", response_model=AccountResponse, tags=["Accounts"])
async def read_token_account(account_id: str):
    payload = app_state.contract.evaluate_transaction(app_state.store, "ReadTokenAccount", account_id)
    account = record_from_dict(TokenAccount, payload)
    return AccountResponse(account_id=account.account_id, balance=account.balance)

@app.get("/metrics", tags=["Observability"])
async def metrics():
    """Prometheus metrics endpoint."""
    return Response(
        content=generate_latest(metrics_registry),
        media_type=CONTENT_TYPE_LATEST
    )

if __name__ == "__main__":
    import uvicorn
    uvicorn.run(
        "ets_main_api:app",
        host=settings.API_HOST,
        port=settings.API_PORT,
        log_level=settings.LOG_LEVEL.lower()
    )

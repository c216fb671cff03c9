"""
FastAPI REST API Module

HTTP host shell for the token ledger. The caller identity is taken from the
X-Caller header; every response mirrors the ledger's tagged result and
rejected calls carry their numeric error code.
"""

from typing import Any, Dict, List, Optional

from fastapi import Depends, FastAPI, Header, Request
from fastapi.responses import JSONResponse
from pydantic import BaseModel, Field
import uvicorn

from . import __version__
from .config import LedgerConfig, get_config
from .errors import LedgerError
from .ledger import MintRecord, TokenLedger
from .logging_config import setup_logging
from .result import Result
from .storage import create_storage


ERROR_STATUS = {
    LedgerError.UNAUTHORIZED: 403,
    LedgerError.INVALID_MINTER: 403,
    LedgerError.NOT_OWNER: 403,
    LedgerError.ALREADY_REGISTERED: 409,
    LedgerError.INSUFFICIENT_BALANCE: 409,
    LedgerError.PAUSED: 423,
    LedgerError.MINT_PAUSED: 423,
    LedgerError.TRANSFER_PAUSED: 423,
    LedgerError.BURN_PAUSED: 423,
}


# Pydantic models for API requests. Amounts stay untyped so the ledger,
# not lax coercion, decides what counts as a valid amount.
class SetAdminRequest(BaseModel):
    new_admin: str


class MinterRequest(BaseModel):
    account: str


class TokenUriRequest(BaseModel):
    token_uri: Optional[str] = None


class MintRequest(BaseModel):
    amount: Any = Field(..., description="Positive integer amount in the smallest indivisible unit")
    recipient: str
    metadata: str = ""


class TransferRequest(BaseModel):
    amount: Any = Field(..., description="Positive integer amount in the smallest indivisible unit")
    sender: str
    recipient: str
    memo: Optional[str] = None


class BurnRequest(BaseModel):
    amount: Any = Field(..., description="Positive integer amount in the smallest indivisible unit")


def mint_record_payload(record: Optional[MintRecord]) -> Optional[Dict[str, Any]]:
    return record.to_dict() if record is not None else None


def respond(result: Result) -> JSONResponse:
    """Translate a ledger result into an HTTP response"""
    if result.ok:
        return JSONResponse(result.to_dict())
    return JSONResponse(status_code=ERROR_STATUS.get(result.code, 400), content=result.to_dict())


def get_ledger(request: Request) -> TokenLedger:
    return request.app.state.ledger


def build_ledger(config: Optional[LedgerConfig] = None) -> TokenLedger:
    """Create a ledger on the storage backend selected by configuration"""
    config = config or get_config()
    return TokenLedger(config=config, storage=create_storage(config))


def create_app(ledger: Optional[TokenLedger] = None) -> FastAPI:
    """Create and configure the FastAPI application"""
    app = FastAPI(
        title="Token Ledger API",
        description="Single-asset fungible-token ledger",
        version=__version__,
        docs_url="/docs",
        redoc_url="/redoc"
    )
    app.state.ledger = ledger or build_ledger()

    @app.get("/health")
    async def health_check():
        """Health check endpoint"""
        return {"status": "healthy", "service": "token_ledger", "version": __version__}

    @app.get("/")
    async def root(ledger: TokenLedger = Depends(get_ledger)):
        """Root endpoint with system information"""
        return {
            "system": "Token Ledger",
            "version": __version__,
            "token": ledger.symbol().value,
            "endpoints": {
                "docs": "/docs",
                "health": "/health",
                "token": "/token",
                "balances": "/balances/{account}",
                "minters": "/minters/{account}",
                "mint_records": "/mint-records",
                "admin": "/admin",
                "audit": "/audit"
            }
        }

    # Queries

    @app.get("/token")
    async def get_token(ledger: TokenLedger = Depends(get_ledger)):
        """Token metadata and global state"""
        return {
            "name": ledger.name().value,
            "symbol": ledger.symbol().value,
            "decimals": ledger.decimals().value,
            "total_supply": ledger.total_supply().value,
            "token_uri": ledger.token_uri().value,
            "paused": ledger.is_paused().value,
            "admin": ledger.admin().value,
            "mint_counter": ledger.mint_counter().value
        }

    @app.get("/balances/{account}")
    async def get_balance(account: str, ledger: TokenLedger = Depends(get_ledger)):
        return {"account": account, "balance": ledger.balance_of(account).value}

    @app.get("/minters/{account}")
    async def get_minter(account: str, ledger: TokenLedger = Depends(get_ledger)):
        return {"account": account, "is_minter": ledger.is_minter(account).value}

    @app.get("/mint-records")
    async def list_mint_records(
        recipient: Optional[str] = None,
        ledger: TokenLedger = Depends(get_ledger)
    ):
        records: List[MintRecord] = ledger.mint_records(recipient).value
        return {"mint_records": [record.to_dict() for record in records]}

    @app.get("/mint-records/{sequence_id}")
    async def get_mint_record(sequence_id: int, ledger: TokenLedger = Depends(get_ledger)):
        return {"ok": True, "value": mint_record_payload(ledger.mint_record(sequence_id).value)}

    # Administration

    @app.post("/admin/admin")
    async def set_admin(
        request: SetAdminRequest,
        caller: str = Header(..., alias="X-Caller"),
        ledger: TokenLedger = Depends(get_ledger)
    ):
        return respond(ledger.set_admin(caller, request.new_admin))

    @app.post("/admin/pause")
    async def pause(caller: str = Header(..., alias="X-Caller"),
                    ledger: TokenLedger = Depends(get_ledger)):
        return respond(ledger.pause(caller))

    @app.post("/admin/unpause")
    async def unpause(caller: str = Header(..., alias="X-Caller"),
                      ledger: TokenLedger = Depends(get_ledger)):
        return respond(ledger.unpause(caller))

    @app.post("/admin/minters")
    async def add_minter(
        request: MinterRequest,
        caller: str = Header(..., alias="X-Caller"),
        ledger: TokenLedger = Depends(get_ledger)
    ):
        return respond(ledger.add_minter(caller, request.account))

    @app.delete("/admin/minters/{account}")
    async def remove_minter(
        account: str,
        caller: str = Header(..., alias="X-Caller"),
        ledger: TokenLedger = Depends(get_ledger)
    ):
        return respond(ledger.remove_minter(caller, account))

    @app.put("/admin/token-uri")
    async def set_token_uri(
        request: TokenUriRequest,
        caller: str = Header(..., alias="X-Caller"),
        ledger: TokenLedger = Depends(get_ledger)
    ):
        return respond(ledger.set_token_uri(caller, request.token_uri))

    # Token operations

    @app.post("/mint")
    async def mint(
        request: MintRequest,
        caller: str = Header(..., alias="X-Caller"),
        ledger: TokenLedger = Depends(get_ledger)
    ):
        return respond(ledger.mint(caller, request.amount, request.recipient, request.metadata))

    @app.post("/transfer")
    async def transfer(
        request: TransferRequest,
        caller: str = Header(..., alias="X-Caller"),
        ledger: TokenLedger = Depends(get_ledger)
    ):
        return respond(ledger.transfer(
            caller, request.amount, request.sender, request.recipient, request.memo
        ))

    @app.post("/burn")
    async def burn(
        request: BurnRequest,
        caller: str = Header(..., alias="X-Caller"),
        ledger: TokenLedger = Depends(get_ledger)
    ):
        return respond(ledger.burn(caller, request.amount))

    # Audit

    @app.get("/audit/events")
    async def get_audit_events(
        entity_type: Optional[str] = None,
        entity_id: Optional[str] = None,
        limit: Optional[int] = 100,
        ledger: TokenLedger = Depends(get_ledger)
    ):
        """Get audit events, optionally for one entity"""
        if ledger.audit is None:
            return {"events": []}
        if entity_type and entity_id:
            events = ledger.audit.get_events_for_entity(entity_type, entity_id, limit)
        else:
            events = ledger.audit.get_all_events(limit=limit)

        return {"events": [
            {
                "id": event.id,
                "sequence": event.sequence,
                "event_type": event.event_type.value,
                "entity_type": event.entity_type,
                "entity_id": event.entity_id,
                "caller": event.caller,
                "metadata": event.metadata,
                "created_at": event.created_at.isoformat()
            }
            for event in events
        ]}

    @app.get("/audit/integrity")
    async def verify_audit_integrity(ledger: TokenLedger = Depends(get_ledger)):
        """Verify the audit chain"""
        if ledger.audit is None:
            return {"valid": True, "total_events": 0, "enabled": False}
        return ledger.audit.verify_integrity()

    return app


def run_server(host: Optional[str] = None, port: Optional[int] = None, debug: bool = False):
    """Run the FastAPI server"""
    config = get_config()
    setup_logging(config.log_level, "token_ledger", config.log_format)
    uvicorn.run(
        "token_ledger.api:create_app",
        factory=True,
        host=host or config.api_host,
        port=port or config.api_port,
        reload=debug,
        log_level=config.log_level.lower()
    )

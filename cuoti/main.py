# ---------- IMPORTS ----------
import os
import logging
from datetime import date
from typing import List, Optional

from fastapi import Depends, FastAPI, HTTPException, Query, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from sqlalchemy.exc import SQLAlchemyError

from cuoti.ai import EntryParseError, LocalAI
from cuoti.context import build_context, financial_context
from cuoti.db import Database
from cuoti.finance_utils import effective_date
from cuoti.projection import display_key, project_month
from cuoti.quotes import CONVERSIONS, QuoteError, QuoteService, convert
from cuoti.reports import dashboard_stats, yearly_report
from cuoti.repository import Repository
from cuoti.schemas import (
    ChatIn, ChatOut, ContextOut, ConversionOut, CreatedOut, DashboardOut, DolarSummary, MaterializeIn,
    ParseIn, PricePoint, ReportOut, StatusIn, Tag, TagIn, Transaction, TransactionCreate, TransactionOut,
    WishlistItem, WishlistItemIn, WishlistItemUpdate, WishlistOptionIn,
)
from cuoti.writer import TransactionWriter

logger = logging.getLogger(__name__)

DEFAULT_CORS_ORIGINS = "http://localhost:1420,http://localhost:5173,http://127.0.0.1:5173"

# ---------- DEPENDENCIES ----------
def get_database(request: Request) -> Database:
    return request.app.state.database

def get_repository(db: Database = Depends(get_database)) -> Repository:
    return Repository(db)

def get_writer(db: Database = Depends(get_database)) -> TransactionWriter:
    return TransactionWriter(db)

def get_ai(request: Request) -> LocalAI:
    return request.app.state.ai

def get_quotes(request: Request) -> QuoteService:
    return request.app.state.quotes

# ---------- HELPERS ----------
def with_keys(transactions: List[Transaction], year: int, month: int) -> List[TransactionOut]:
    ordered = sorted(transactions, key=lambda t: (effective_date(t), t.shop_name))
    return [TransactionOut(**t.model_dump(), key=display_key(t, year, month)) for t in ordered]

# ---------- APP ----------
def create_app(database: Optional[Database] = None, ai: Optional[LocalAI] = None,
               quotes: Optional[QuoteService] = None) -> FastAPI:
    """
    Build the API around one gateway and one client per collaborator.
    Anything not injected is built from the environment.
    """
    logging.basicConfig(
        level=os.getenv("LOG_LEVEL", "INFO"),
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )

    if database is None:
        database = Database()
    database.create_all()

    app = FastAPI(title="Cuoti", version="1.0.0")
    app.state.database = database
    app.state.ai = ai or LocalAI.from_env()
    app.state.quotes = quotes or QuoteService()

    app.add_middleware(
        CORSMiddleware,
        allow_origins=[o.strip() for o in os.getenv("CORS_ORIGINS", DEFAULT_CORS_ORIGINS).split(",") if o.strip()],
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    @app.exception_handler(SQLAlchemyError)
    def storage_error(request: Request, exc: SQLAlchemyError):
        logger.exception("Storage error on %s %s", request.method, request.url.path)
        return JSONResponse(status_code=503, content={"detail": "Storage unavailable"})

    # ---------- ROUTES ----------
    @app.get("/", summary="Health Check")
    def root():
        return {"message": "Cuoti API", "status": "healthy"}

    # ---- transactions ----
    @app.get("/transactions", response_model=List[Transaction])
    def list_transactions(repo: Repository = Depends(get_repository)):
        return repo.get_transactions()

    @app.get("/transactions/month", response_model=List[TransactionOut])
    def month_transactions(year: int = Query(..., ge=1900, le=9999), month: int = Query(..., ge=1, le=12),
                           repo: Repository = Depends(get_repository)):
        return with_keys(project_month(repo.get_transactions(), year, month), year, month)

    @app.get("/transactions/group/{group_id}", response_model=List[Transaction])
    def group_transactions(group_id: str, repo: Repository = Depends(get_repository)):
        return repo.get_transactions_by_group(group_id)

    @app.post("/transactions", response_model=CreatedOut, status_code=201)
    def create_transaction(body: TransactionCreate, writer: TransactionWriter = Depends(get_writer),
                           repo: Repository = Depends(get_repository)):
        ids = writer.create(body)
        created = repo.get_transaction(ids[0])
        return CreatedOut(ids=ids, group_id=created.group_id)

    @app.put("/transactions/{tx_id}", response_model=Transaction)
    def update_transaction(tx_id: int, body: TransactionCreate, writer: TransactionWriter = Depends(get_writer),
                           repo: Repository = Depends(get_repository)):
        if not writer.update(tx_id, body):
            raise HTTPException(status_code=404, detail="Transaction not found")
        return repo.get_transaction(tx_id)

    @app.patch("/transactions/{tx_id}/status", response_model=Transaction)
    def set_status(tx_id: int, body: StatusIn, writer: TransactionWriter = Depends(get_writer),
                   repo: Repository = Depends(get_repository)):
        if not writer.update_status(tx_id, body.status):
            raise HTTPException(status_code=404, detail="Transaction not found")
        return repo.get_transaction(tx_id)

    @app.post("/transactions/materialize", response_model=Transaction, status_code=201)
    def materialize(body: MaterializeIn, writer: TransactionWriter = Depends(get_writer),
                    repo: Repository = Depends(get_repository)):
        projected = project_month(repo.get_transactions(), body.year, body.month)
        virtual = next((t for t in projected if t.is_virtual and t.source_id == body.source_id), None)
        if virtual is None:
            raise HTTPException(status_code=404, detail="No projected occurrence for that month")
        new_id = writer.materialize(virtual, body.status)
        return repo.get_transaction(new_id)

    @app.delete("/transactions/group/{group_id}")
    def delete_group(group_id: str, writer: TransactionWriter = Depends(get_writer)):
        deleted = writer.delete_group(group_id)
        if not deleted:
            raise HTTPException(status_code=404, detail="Group not found")
        return {"deleted": deleted}

    @app.delete("/transactions/{tx_id}")
    def delete_transaction(tx_id: int, writer: TransactionWriter = Depends(get_writer)):
        if not writer.delete(tx_id):
            raise HTTPException(status_code=404, detail="Transaction not found")
        return {"message": "Transaction deleted successfully"}

    # ---- tags ----
    @app.get("/tags", response_model=List[Tag])
    def list_tags(repo: Repository = Depends(get_repository)):
        return repo.get_tags()

    @app.post("/tags", response_model=Tag, status_code=201)
    def add_tag(body: TagIn, repo: Repository = Depends(get_repository)):
        return repo.add_tag(body)

    @app.delete("/tags/{tag_id}")
    def delete_tag(tag_id: int, repo: Repository = Depends(get_repository)):
        if not repo.delete_tag(tag_id):
            raise HTTPException(status_code=404, detail="Tag not found")
        return {"message": "Tag deleted successfully"}

    # ---- wishlist ----
    @app.get("/wishlist", response_model=List[WishlistItem])
    def list_wishlist(repo: Repository = Depends(get_repository)):
        return repo.get_wishlist()

    @app.post("/wishlist", response_model=WishlistItem, status_code=201)
    def add_wishlist_item(body: WishlistItemIn, repo: Repository = Depends(get_repository)):
        return repo.get_wishlist_item(repo.add_wishlist_item(body))

    @app.put("/wishlist/{item_id}", response_model=WishlistItem)
    def update_wishlist_item(item_id: int, body: WishlistItemUpdate, repo: Repository = Depends(get_repository)):
        if not repo.update_wishlist_item(item_id, body):
            raise HTTPException(status_code=404, detail="Wishlist item not found")
        return repo.get_wishlist_item(item_id)

    @app.delete("/wishlist/options/{option_id}")
    def delete_wishlist_option(option_id: int, repo: Repository = Depends(get_repository)):
        if not repo.delete_wishlist_option(option_id):
            raise HTTPException(status_code=404, detail="Option not found")
        return {"message": "Option deleted successfully"}

    @app.delete("/wishlist/{item_id}")
    def delete_wishlist_item(item_id: int, repo: Repository = Depends(get_repository)):
        if not repo.delete_wishlist_item(item_id):
            raise HTTPException(status_code=404, detail="Wishlist item not found")
        return {"message": "Wishlist item deleted successfully"}

    @app.post("/wishlist/{item_id}/options", response_model=WishlistItem, status_code=201)
    def add_wishlist_option(item_id: int, body: WishlistOptionIn, repo: Repository = Depends(get_repository)):
        if repo.add_wishlist_option(item_id, body) is None:
            raise HTTPException(status_code=404, detail="Wishlist item not found")
        return repo.get_wishlist_item(item_id)

    # ---- dashboards ----
    @app.get("/dashboard", response_model=DashboardOut)
    def dashboard(months: int = Query(3, ge=1, le=24), repo: Repository = Depends(get_repository)):
        try:
            transactions = repo.get_transactions()
        except SQLAlchemyError:
            logger.exception("Failed to load dashboard data")
            return DashboardOut()
        stats = dashboard_stats(transactions)
        stats.projection = financial_context(transactions, months)
        return stats

    @app.get("/reports", response_model=ReportOut)
    def reports(year: Optional[int] = Query(None, ge=1900, le=9999), month: Optional[int] = Query(None, ge=1, le=12),
                repo: Repository = Depends(get_repository)):
        year = year or date.today().year
        try:
            transactions = repo.get_transactions()
        except SQLAlchemyError:
            logger.exception("Failed to load report data")
            return ReportOut(year=year, month=month)
        return yearly_report(transactions, year, month)

    @app.get("/context", response_model=ContextOut)
    def context(months: int = Query(4, ge=1, le=24), repo: Repository = Depends(get_repository)):
        try:
            summaries, text = build_context(repo.get_transactions(), repo.get_tags(), months)
        except SQLAlchemyError:
            logger.exception("Failed to load financial context")
            return ContextOut(summaries=[], context="")
        return ContextOut(summaries=summaries, context=text)

    # ---- assistant ----
    @app.post("/assistant/chat", response_model=ChatOut)
    def chat(body: ChatIn, repo: Repository = Depends(get_repository), assistant: LocalAI = Depends(get_ai)):
        try:
            _, text = build_context(repo.get_transactions(), repo.get_tags(), body.months)
        except SQLAlchemyError:
            logger.exception("Failed to load financial context for chat")
            text = ""
        return ChatOut(reply=assistant.chat(body.messages, text))

    @app.post("/assistant/parse", response_model=TransactionCreate)
    def parse_entry(body: ParseIn, assistant: LocalAI = Depends(get_ai)):
        try:
            return assistant.parse_entry(body.text, model=body.model)
        except EntryParseError as e:
            logger.warning("Entry parsing failed: %s", e)
            raise HTTPException(status_code=502, detail=str(e))

    @app.get("/assistant/models", response_model=List[str])
    def list_models(assistant: LocalAI = Depends(get_ai)):
        return assistant.list_models()

    # ---- quotes ----
    @app.get("/quotes/dolar", response_model=DolarSummary)
    def dolar(service: QuoteService = Depends(get_quotes)):
        try:
            return service.get_dolar_summary()
        except QuoteError as e:
            raise HTTPException(status_code=502, detail=str(e))

    @app.get("/quotes/usdc/history", response_model=List[PricePoint])
    def usdc_history(days: int = Query(30, ge=1, le=365), service: QuoteService = Depends(get_quotes)):
        try:
            return service.get_usdc_history(days)
        except QuoteError as e:
            raise HTTPException(status_code=502, detail=str(e))

    @app.get("/quotes/convert", response_model=ConversionOut)
    def convert_amount(amount: str = "1", kind: str = "usdc_to_ars", service: QuoteService = Depends(get_quotes)):
        if kind not in CONVERSIONS:
            raise HTTPException(status_code=422, detail=f"kind must be one of {sorted(CONVERSIONS)}")
        try:
            return convert(amount, kind, service.get_dolar_summary())
        except QuoteError as e:
            raise HTTPException(status_code=502, detail=str(e))

    logger.info("Cuoti API starting up...")
    return app


if __name__ == "__main__":
    import uvicorn
    uvicorn.run(create_app(), host=os.getenv("HOST", "127.0.0.1"), port=int(os.getenv("PORT", "8000")))

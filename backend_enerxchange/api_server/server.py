"""
FastAPI server — HTTP view of the marketplace read model.

Exposes listings, profiles, transaction history (JSON and CSV), analytics,
platform state and balances, plus POST /mutations/{method} for contract writes.
Read-model errors map to status codes: connection 503, timeout 504,
revert 502, mutation in progress 409; bad input is 400, unknown records 404.
"""

from __future__ import annotations

from contextlib import asynccontextmanager
from datetime import date
from decimal import Decimal
from typing import Any

from fastapi import Depends, FastAPI, HTTPException, Query, Request
from fastapi.responses import JSONResponse, PlainTextResponse
from pydantic import BaseModel, Field

from backend_enerxchange import __version__
from backend_enerxchange.analytics.history_filters import HistoryFilter, export_history_csv, filter_history
from backend_enerxchange.analytics.listing_filters import ListingFilter, filter_listings
from backend_enerxchange.config.settings import get_settings
from backend_enerxchange.contract.addresses import ZERO_ADDRESS, normalize_address
from backend_enerxchange.core.exceptions import ErrorKind, ReadModelError
from backend_enerxchange.enerx_logging import get_logger
from backend_enerxchange.read_model.market import MarketplaceReadModel
from backend_enerxchange.read_model.results import FetchResult

logger = get_logger(__name__)

ERROR_STATUS = {
    ErrorKind.CONNECTION: 503,
    ErrorKind.TIMEOUT: 504,
    ErrorKind.REVERTED: 502,
    ErrorKind.PARTIAL: 502,
    ErrorKind.IN_PROGRESS: 409,
}


# -----------------------------------------------------------------------------
# Response models
# -----------------------------------------------------------------------------

class ListingModel(BaseModel):
    """One energy listing; amounts are exact decimal strings."""

    id: int
    seller: str
    amount: str = Field(..., description="Remaining energy tokens")
    price_per_unit: str
    minimum_purchase: str
    expiration_time: str | None = None
    creation_time: str | None = None
    active: bool
    energy_source: str | None = None


class ListingsResponse(BaseModel):
    status: str = Field(..., description="ok, partial or error")
    listings: list[ListingModel]
    failed_ids: list[int] = Field(default_factory=list, description="Listing IDs that could not be read")


class ProfileModel(BaseModel):
    address: str
    is_verified: bool
    total_energy_traded: str
    reputation_score: str
    last_activity_time: str | None = None
    certification_ipfs_hash: str = ""
    certification_timestamp: str | None = None
    certification_type: str = ""
    certification_valid: bool = False


class TransactionModel(BaseModel):
    type: str = Field(..., description="purchase or sale")
    listing_id: int
    amount: str
    price: str = Field(..., description="totalPrice for purchases, pricePerUnit for sales")
    timestamp: str
    energy_source: str
    tx_hash: str = ""


class HistoryResponse(BaseModel):
    address: str
    status: str
    transactions: list[TransactionModel]
    failed_ids: list[int] = Field(default_factory=list, description="Listings whose source could not be resolved")


class PlatformResponse(BaseModel):
    status: str
    platform_fee: int
    fee_collector: str
    paused: bool
    total_supply: str
    next_listing_id: int


class BalanceResponse(BaseModel):
    address: str
    balance: str
    spender: str | None = None
    allowance: str | None = None


class AnalyticsResponse(BaseModel):
    status: str
    volume_by_date: list[dict[str, Any]]
    production_by_hour: list[dict[str, Any]]
    top_producers: list[dict[str, Any]]
    summary: dict[str, Any]
    computed_at: str
    failed_ids: list[Any] = Field(default_factory=list)


class MutationRequest(BaseModel):
    """POST /mutations/{method} body: positional contract arguments (amounts as decimal strings)."""

    args: list[Any] = Field(default_factory=list)
    form: str | None = Field(None, max_length=128, description="Form key used for the in-flight guard")


class MutationResponse(BaseModel):
    method: str
    state: str
    tx_hash: str | None = None
    block_number: int | None = None
    error: dict[str, Any] | None = None
    refreshed: dict[str, str] = Field(default_factory=dict)


# -----------------------------------------------------------------------------
# Helpers and dependency
# -----------------------------------------------------------------------------

def get_read_model(request: Request) -> MarketplaceReadModel:
    """Dependency: the app-scoped read model."""
    model = getattr(request.app.state, "read_model", None)
    if model is None:
        raise HTTPException(status_code=503, detail="read model not started")
    return model


def _address_or_400(address: str) -> str:
    try:
        return normalize_address(address)
    except ValueError as e:
        raise HTTPException(status_code=400, detail=str(e)) from e


def _data(result: FetchResult[Any]) -> Any:
    """Data to serve; an error with nothing previously visible is raised."""
    if result.is_error and not result.data:
        assert result.error is not None
        raise result.error
    return result.data


# -----------------------------------------------------------------------------
# App factory
# -----------------------------------------------------------------------------

def create_app(read_model: MarketplaceReadModel | None = None) -> FastAPI:
    """
    Build the API. With read_model=None the lifespan builds one from settings;
    an injected read model is used as-is (and still started / closed by the lifespan).
    """

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        model = app.state.read_model
        if model is None:
            model = MarketplaceReadModel.from_settings(get_settings())
            app.state.read_model = model
        await model.start()
        logger.info("api_read_model_started", account=model.current_account)
        yield
        await model.close()
        logger.info("api_read_model_stopped")

    app = FastAPI(
        title="EnerXchange Read Model API",
        description="Marketplace listings, profiles, history and analytics reconstructed from the EnerXchange contract.",
        version=__version__,
        lifespan=lifespan,
    )
    app.state.read_model = read_model

    @app.exception_handler(ReadModelError)
    async def read_model_error_handler(request: Request, exc: ReadModelError) -> JSONResponse:
        status = ERROR_STATUS.get(exc.kind, 502)
        logger.warning("api_read_model_error", path=request.url.path, error_kind=exc.kind.value, status=status)
        return JSONResponse(status_code=status, content={"detail": exc.message, "error": exc.to_dict()})

    @app.get("/health")
    def health(model: MarketplaceReadModel = Depends(get_read_model)) -> dict[str, Any]:
        return {
            "status": "ok",
            "version": __version__,
            "account": model.current_account,
            "listings_loaded": model.listings.loaded,
        }

    @app.get("/listings", response_model=ListingsResponse)
    async def list_listings(
        scope: str = Query("active", pattern="^(active|all)$"),
        seller: str | None = Query(None),
        min_price: Decimal | None = Query(None, ge=0),
        max_price: Decimal | None = Query(None, ge=0),
        min_purchase: Decimal | None = Query(None, ge=0),
        energy_source: str | None = Query(None),
        model: MarketplaceReadModel = Depends(get_read_model),
    ):
        """Marketplace listings ascending by id, optionally filtered."""
        try:
            flt = ListingFilter(min_price, max_price, min_purchase, energy_source)
        except ValueError as e:
            raise HTTPException(status_code=400, detail=str(e)) from e
        if seller:
            result = await model.listings.load_seller_listings(_address_or_400(seller))
            if scope == "active":
                result = result.map([item for item in (result.data or []) if item.active])
        elif scope == "all":
            result = await model.listings.load_all_listings()
        else:
            result = await model.listings.load_active_listings()
        listings = filter_listings(_data(result) or [], flt)
        return ListingsResponse(
            status=result.status.value,
            listings=[ListingModel(**item.to_dict()) for item in listings],
            failed_ids=list(result.failed_ids),
        )

    @app.get("/listings/{listing_id}", response_model=ListingModel)
    async def get_listing(listing_id: int, model: MarketplaceReadModel = Depends(get_read_model)):
        if listing_id < 0:
            raise HTTPException(status_code=400, detail="listing_id must be non-negative")
        listing = _data(await model.listings.fetch_listing(listing_id))
        if listing is None or listing.seller == ZERO_ADDRESS:
            raise HTTPException(status_code=404, detail=f"listing {listing_id} not found")
        return ListingModel(**listing.to_dict())

    @app.get("/profiles/{address}", response_model=ProfileModel)
    async def get_profile(address: str, model: MarketplaceReadModel = Depends(get_read_model)):
        profile = _data(await model.profiles.get_profile(_address_or_400(address)))
        return ProfileModel(**profile.to_dict())

    async def _filtered_history(
        address: str,
        model: MarketplaceReadModel,
        type_: str,
        source: str,
        start_date: date | None,
        end_date: date | None,
    ) -> tuple[str, FetchResult[Any], list[Any]]:
        key = _address_or_400(address)
        try:
            flt = HistoryFilter(type=type_, source=source, start_date=start_date, end_date=end_date)
        except ValueError as e:
            raise HTTPException(status_code=400, detail=str(e)) from e
        result = await model.history.build_history(key)
        records = result.data if result.data is not None else _data(result)
        return key, result, filter_history(records or [], flt)

    @app.get("/history/{address}", response_model=HistoryResponse)
    async def get_history(
        address: str,
        type_: str = Query("all", alias="type"),
        source: str = Query("all"),
        start_date: date | None = Query(None),
        end_date: date | None = Query(None),
        model: MarketplaceReadModel = Depends(get_read_model),
    ):
        """Purchases and sales of address, oldest first."""
        key, result, records = await _filtered_history(address, model, type_, source, start_date, end_date)
        return HistoryResponse(
            address=key,
            status=result.status.value,
            transactions=[TransactionModel(**r.to_dict()) for r in records],
            failed_ids=list(result.failed_ids),
        )

    @app.get("/history/{address}/export.csv", response_class=PlainTextResponse)
    async def export_history(
        address: str,
        type_: str = Query("all", alias="type"),
        source: str = Query("all"),
        start_date: date | None = Query(None),
        end_date: date | None = Query(None),
        model: MarketplaceReadModel = Depends(get_read_model),
    ):
        _, _, records = await _filtered_history(address, model, type_, source, start_date, end_date)
        return PlainTextResponse(
            export_history_csv(records),
            media_type="text/csv",
            headers={"Content-Disposition": 'attachment; filename="transaction-history.csv"'},
        )

    @app.get("/analytics", response_model=AnalyticsResponse)
    async def get_analytics(model: MarketplaceReadModel = Depends(get_read_model)):
        result = await model.analytics.build()
        snapshot = _data(result)
        return AnalyticsResponse(status=result.status.value, failed_ids=list(result.failed_ids), **snapshot.to_dict())

    @app.get("/platform", response_model=PlatformResponse)
    async def get_platform(model: MarketplaceReadModel = Depends(get_read_model)):
        result = await model.platform.load()
        state = _data(result)
        return PlatformResponse(status=result.status.value, **state.to_dict())

    @app.get("/balances/{address}", response_model=BalanceResponse)
    async def get_balance(
        address: str,
        spender: str | None = Query(None),
        model: MarketplaceReadModel = Depends(get_read_model),
    ):
        key = _address_or_400(address)
        balance = _data(await model.platform.get_balance(key))
        out = BalanceResponse(address=key, balance=format(balance, "f"))
        if spender:
            spender_key = _address_or_400(spender)
            allowance = _data(await model.platform.get_allowance(key, spender_key))
            out.spender = spender_key
            out.allowance = format(allowance, "f")
        return out

    @app.post("/mutations/{method}", response_model=MutationResponse)
    async def post_mutation(
        method: str,
        body: MutationRequest,
        model: MarketplaceReadModel = Depends(get_read_model),
    ):
        """
        Submit a contract write, wait for confirmation and refresh the read model.
        A reverted or timed-out write returns its error status with the outcome.
        """
        logger.info("api_mutation_called", method=method, form=body.form)
        try:
            if method == "purchaseEnergy":
                if len(body.args) != 2:
                    raise ValueError("purchaseEnergy takes 2 argument(s)")
                outcome = await model.purchase(int(body.args[0]), str(body.args[1]), form=body.form)
            else:
                outcome = await model.mutations.submit_and_refresh(method, body.args, form=body.form)
        except (TypeError, ValueError) as e:
            raise HTTPException(status_code=400, detail=str(e)) from e
        payload = MutationResponse(**outcome.to_dict())
        if outcome.error is not None:
            status = ERROR_STATUS.get(outcome.error.kind, 502)
            return JSONResponse(status_code=status, content=payload.model_dump())
        return payload

    return app

"""FastAPI surface exposing the reward shop and bonus processing.

Authentication and family membership checks belong to the hosting
application; these routes trust the ``familyId`` they are given.
"""

from __future__ import annotations

from typing import Optional

from fastapi import FastAPI, Query, Request
from fastapi.responses import JSONResponse
from pydantic import BaseModel

from .api import ApiExporter
from .config import (
    EXPLORE_DEFAULT_LIMIT,
    FEATURED_DEFAULT_LIMIT,
    RECOMMENDED_DEFAULT_LIMIT,
    WISH_LIST_DEFAULT_LIMIT,
)
from .exceptions import ChildNotFoundError, StoreUnavailableError, WalletNotFoundError
from .persistence import SQLRewardsStore, create_db_and_tables
from .service import KidRewards


class CompletionEvent(BaseModel):
    familyId: str
    childId: str
    completionId: Optional[str] = None


class SweepRequest(BaseModel):
    familyId: str


def create_app(rewards: KidRewards | None = None) -> FastAPI:
    if rewards is None:
        store = SQLRewardsStore()
        create_db_and_tables(store.engine)
        rewards = KidRewards(store)
    exporter = ApiExporter()
    app = FastAPI(title="Kid Rewards")
    app.state.rewards = rewards

    @app.exception_handler(ChildNotFoundError)
    async def _child_not_found(request: Request, exc: ChildNotFoundError) -> JSONResponse:
        return JSONResponse({"error": "Child not found"}, status_code=404)

    @app.exception_handler(WalletNotFoundError)
    async def _wallet_not_found(request: Request, exc: WalletNotFoundError) -> JSONResponse:
        return JSONResponse({"error": "Wallet not found"}, status_code=404)

    @app.exception_handler(StoreUnavailableError)
    async def _store_unavailable(request: Request, exc: StoreUnavailableError) -> JSONResponse:
        return JSONResponse({"error": "Rewards store unavailable"}, status_code=503)

    @app.get("/rewards/recommended")
    def recommended(
        familyId: str,
        childId: str,
        limit: int = Query(RECOMMENDED_DEFAULT_LIMIT, ge=1),
    ) -> dict:
        return exporter.recommendation(rewards.recommended(familyId, childId, limit=limit))

    @app.get("/rewards/birthday-list")
    def birthday_list(
        familyId: str,
        childId: str,
        limit: int = Query(WISH_LIST_DEFAULT_LIMIT, ge=1),
    ) -> dict:
        return exporter.wish_list(rewards.birthday_list(familyId, childId, limit=limit))

    @app.get("/rewards/christmas-list")
    def christmas_list(
        familyId: str,
        childId: str,
        limit: int = Query(WISH_LIST_DEFAULT_LIMIT, ge=1),
    ) -> dict:
        return exporter.wish_list(rewards.christmas_list(familyId, childId, limit=limit))

    @app.get("/rewards/explore")
    def explore(
        ageGroup: Optional[str] = None,
        limit: int = Query(EXPLORE_DEFAULT_LIMIT, ge=1),
    ) -> dict:
        items = rewards.explore(age_group=ageGroup, limit=limit)
        return {"rewards": exporter.rewards(items), "count": len(items)}

    @app.get("/rewards/featured")
    def featured(
        ageGroup: Optional[str] = None,
        limit: int = Query(FEATURED_DEFAULT_LIMIT, ge=1),
    ) -> dict:
        items = rewards.featured(age_group=ageGroup, limit=limit)
        return {"rewards": exporter.rewards(items), "count": len(items)}

    @app.post("/bonuses/evaluate")
    def evaluate(event: CompletionEvent) -> dict:
        results = rewards.evaluate_bonuses(event.familyId, event.childId, completion_id=event.completionId)
        return {"bonuses": [exporter.bonus(result) for result in results]}

    @app.post("/bonuses/process")
    def process(event: CompletionEvent) -> dict:
        receipts = rewards.process_completion(event.familyId, event.childId, completion_id=event.completionId)
        return {"awards": [exporter.receipt(receipt) for receipt in receipts]}

    @app.post("/bonuses/sweep")
    def sweep(payload: SweepRequest) -> dict:
        receipts = rewards.sweep_family(payload.familyId)
        return {
            "children": {
                child_id: [exporter.receipt(receipt) for receipt in batch] for child_id, batch in receipts.items()
            }
        }

    return app


__all__ = ["CompletionEvent", "SweepRequest", "create_app"]

#!/usr/bin/env python3
"""
FastAPI service for the French flashcard content.

The API shares the SQLite database and key/value file with the console
trainer. It lets clients browse and edit content, ask for the next practice
item, log exposures and run maintenance tasks.
"""
from __future__ import annotations

from contextlib import asynccontextmanager
from typing import Any, AsyncIterator, Dict, List, Literal, Optional, Union

from fastapi import Depends, FastAPI, File, HTTPException, Query, Request, Response, UploadFile
from fastapi.middleware.cors import CORSMiddleware
from pydantic import BaseModel, ConfigDict, Field

from . import config
from .data_service import FrenchDataService
from .datasets import import_csv_text
from .logging import get_logger

LOG = get_logger("api")

CategoryName = Literal["word", "verb", "sentence", "number"]


class RecordIn(BaseModel):
    model_config = ConfigDict(extra="allow")

    id: Optional[str] = None
    english: Optional[str] = None
    french: Optional[Union[str, List[str]]] = None
    infinitive: Optional[str] = None
    conjugations: Optional[Dict[str, Union[str, List[str]]]] = None
    hint: Optional[str] = None
    explanation: Optional[str] = None
    category: Optional[str] = None

    def as_record(self) -> Dict[str, Any]:
        return self.model_dump(exclude_none=True)


class SuccessOut(BaseModel):
    success: bool


class SeenRequest(BaseModel):
    item_id: str = Field(..., min_length=1)
    user_id: str = config.GUEST_USER_ID


class RefreshOut(BaseModel):
    message: str
    userId: Optional[str] = None


class DuplicateGroup(BaseModel):
    matchType: str
    key: str
    items: List[Dict[str, Any]]


class PurgeOut(BaseModel):
    table: str
    total: int
    deleted: int
    failed: int
    deletedIds: List[str]


class ImportResult(BaseModel):
    added: int
    skipped: int
    errors: List[str]


def get_service(request: Request) -> FrenchDataService:
    return request.app.state.service


def create_app(service: Optional[FrenchDataService] = None) -> FastAPI:
    @asynccontextmanager
    async def lifespan(app: FastAPI) -> AsyncIterator[None]:
        app.state.service = service or FrenchDataService.from_config()
        await app.state.service.initialize(config.GUEST_USER_ID)
        yield

    app = FastAPI(
        title="French Master API",
        description="Content and practice API for French words, verbs, sentences and numbers.",
        version="0.1.0",
        lifespan=lifespan,
    )
    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],
        allow_methods=["*"],
        allow_headers=["*"],
    )

    @app.get("/")
    def root() -> Dict[str, str]:
        return {"message": "French Master API is ready.", "db": str(config.DB_PATH)}

    @app.get("/status")
    def status(svc: FrenchDataService = Depends(get_service)) -> Dict[str, Any]:
        return svc.status()

    @app.get("/content/{category}", response_model=List[Dict[str, Any]])
    async def list_content(category: CategoryName, svc: FrenchDataService = Depends(get_service)) -> List[Dict[str, Any]]:
        return await svc.get_all(category)

    @app.post("/content/{category}", response_model=SuccessOut, status_code=201)
    async def add_content(
        category: CategoryName,
        payload: RecordIn,
        svc: FrenchDataService = Depends(get_service),
    ) -> SuccessOut:
        if not await svc.add_user_record(category, payload.as_record()):
            raise HTTPException(status_code=400, detail=f"Could not add {category}.")
        return SuccessOut(success=True)

    @app.put("/content/{category}", response_model=SuccessOut)
    async def replace_content(
        category: CategoryName,
        payload: List[RecordIn],
        svc: FrenchDataService = Depends(get_service),
    ) -> SuccessOut:
        records = [item.as_record() for item in payload]
        return SuccessOut(success=await svc.save_user_content(category, records))

    @app.put("/content/{category}/{item_id}", response_model=SuccessOut)
    async def update_content(
        category: CategoryName,
        item_id: str,
        payload: RecordIn,
        svc: FrenchDataService = Depends(get_service),
    ) -> SuccessOut:
        record = payload.as_record()
        record["id"] = item_id
        if not await svc.update_data(category, record):
            raise HTTPException(status_code=400, detail=f"Could not update {category} {item_id}.")
        return SuccessOut(success=True)

    @app.delete("/content/{category}/{item_id}", status_code=204)
    async def delete_content(
        category: CategoryName,
        item_id: str,
        svc: FrenchDataService = Depends(get_service),
    ) -> Response:
        if not await svc.delete_data(category, item_id):
            raise HTTPException(status_code=404, detail=f"{category} {item_id} not found.")
        return Response(status_code=204)

    @app.get("/practice/{category}/next")
    async def next_item(
        category: CategoryName,
        user_id: str = Query(config.GUEST_USER_ID, min_length=1),
        svc: FrenchDataService = Depends(get_service),
    ) -> Dict[str, Any]:
        item = await svc.get_next_item(category, user_id)
        if item is None:
            raise HTTPException(status_code=404, detail=f"No {category} available.")
        return item

    @app.post("/practice/{category}/seen", response_model=SuccessOut)
    async def mark_seen(
        category: CategoryName,
        payload: SeenRequest,
        svc: FrenchDataService = Depends(get_service),
    ) -> SuccessOut:
        if not svc.mark_item_as_seen(category, payload.item_id, payload.user_id):
            raise HTTPException(status_code=400, detail="Could not record exposure.")
        return SuccessOut(success=True)

    @app.post("/refresh", response_model=RefreshOut, status_code=202)
    async def refresh(svc: FrenchDataService = Depends(get_service)) -> RefreshOut:
        return RefreshOut(**svc.force_refresh())

    @app.get("/duplicates/{category}", response_model=List[DuplicateGroup])
    async def duplicates(category: CategoryName, svc: FrenchDataService = Depends(get_service)) -> List[DuplicateGroup]:
        return [DuplicateGroup(**group) for group in await svc.find_duplicates(category)]

    @app.post("/import/{category}", response_model=ImportResult)
    async def import_csv_endpoint(
        category: CategoryName,
        file: UploadFile = File(...),
        svc: FrenchDataService = Depends(get_service),
    ) -> ImportResult:
        if file.content_type not in {"text/csv", "application/vnd.ms-excel", "application/octet-stream"}:
            raise HTTPException(status_code=400, detail="Expected a CSV file.")
        raw = await file.read()
        try:
            text = raw.decode("utf-8")
        except UnicodeDecodeError:
            text = raw.decode("latin-1")
        records, errors = import_csv_text(category, text)
        added = 0
        for record in records:
            if await svc.add_user_record(category, record):
                added += 1
        LOG.info(f"CSV import into {category}: {added} added, {len(records) - added} skipped")
        return ImportResult(added=added, skipped=len(records) - added, errors=errors)

    @app.post("/maintenance/purge/{category}", response_model=PurgeOut)
    async def purge(category: CategoryName, svc: FrenchDataService = Depends(get_service)) -> PurgeOut:
        return PurgeOut(**(await svc.purge_predefined(category)).as_dict())

    return app


app = create_app()

# orgcal/api/v1/events.py

from __future__ import annotations

import logging
from datetime import date
from typing import Any, Literal

from fastapi import APIRouter, BackgroundTasks, Depends, Query, status
from pydantic import BaseModel
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from orgcal.api.deps import get_dispatcher, ok, parse_entity_id
from orgcal.core.auth.actor import Actor
from orgcal.core.auth.security import get_current_actor
from orgcal.core.calendar.queries import CalendarQueries
from orgcal.core.calendar.schemas import EventCreate, EventUpdate
from orgcal.core.calendar.service import CalendarService
from orgcal.core.effects import EffectDispatcher, MutationResult
from orgcal.core.errors import map_integrity_error
from orgcal.db.base import get_async_db_session

router = APIRouter(prefix="/v1/events", tags=["Events"])
log = logging.getLogger(__name__)


def _dump(entity: Any) -> Any:
    if isinstance(entity, BaseModel):
        return entity.model_dump(by_alias=True, mode="json")
    return entity


async def _commit_and_dispatch(
    db: AsyncSession,
    result: MutationResult,
    background_tasks: BackgroundTasks,
    dispatcher: EffectDispatcher,
) -> dict:
    """Effects only run once the mutation is durable."""
    try:
        await db.commit()
    except IntegrityError as exc:
        await db.rollback()
        raise map_integrity_error(exc) from exc
    if result.effects:
        background_tasks.add_task(dispatcher.dispatch, result.effects)
    return ok(_dump(result.entity))


@router.get("", summary="Events and expanded occurrences in a date window")
async def list_events(
    start: date = Query(..., description="First day, inclusive (local)"),
    end: date = Query(..., description="Last day, inclusive (local)"),
    actor: Actor = Depends(get_current_actor),
    db: AsyncSession = Depends(get_async_db_session),
) -> dict:
    items = await CalendarQueries(db, actor).list_window(start, end)
    return ok([_dump(item) for item in items])


@router.get("/search", summary="Free-text search over visible events and series")
async def search_events(
    q: str = Query(""),
    page: int = Query(1, ge=1),
    limit: int = Query(20, ge=1, le=100),
    actor: Actor = Depends(get_current_actor),
    db: AsyncSession = Depends(get_async_db_session),
) -> dict:
    return ok(_dump(await CalendarQueries(db, actor).search(q, page=page, limit=limit)))


@router.get("/{entity_id}", summary="Single event or occurrence")
async def get_event(
    entity_id: str,
    actor: Actor = Depends(get_current_actor),
    db: AsyncSession = Depends(get_async_db_session),
) -> dict:
    return ok(_dump(await CalendarQueries(db, actor).detail(parse_entity_id(entity_id))))


@router.post("", status_code=status.HTTP_201_CREATED, summary="Create an event or a series")
async def create_event(
    payload: EventCreate,
    background_tasks: BackgroundTasks,
    actor: Actor = Depends(get_current_actor),
    db: AsyncSession = Depends(get_async_db_session),
    dispatcher: EffectDispatcher = Depends(get_dispatcher),
) -> dict:
    result = await CalendarService(db, actor).create(payload)
    return await _commit_and_dispatch(db, result, background_tasks, dispatcher)


@router.put("/{entity_id}", summary="Update an event, one occurrence, or a whole series")
async def update_event(
    entity_id: str,
    payload: EventUpdate,
    background_tasks: BackgroundTasks,
    actor: Actor = Depends(get_current_actor),
    db: AsyncSession = Depends(get_async_db_session),
    dispatcher: EffectDispatcher = Depends(get_dispatcher),
) -> dict:
    result = await CalendarService(db, actor).update(parse_entity_id(entity_id), payload)
    return await _commit_and_dispatch(db, result, background_tasks, dispatcher)


@router.delete("/{entity_id}", summary="Delete an event, one occurrence, or a whole series")
async def delete_event(
    entity_id: str,
    background_tasks: BackgroundTasks,
    mode: Literal["single", "series"] = Query("single"),
    actor: Actor = Depends(get_current_actor),
    db: AsyncSession = Depends(get_async_db_session),
    dispatcher: EffectDispatcher = Depends(get_dispatcher),
) -> dict:
    result = await CalendarService(db, actor).delete(parse_entity_id(entity_id), mode=mode)
    return await _commit_and_dispatch(db, result, background_tasks, dispatcher)


@router.post("/{entity_id}/complete", summary="Mark done")
async def complete_event(
    entity_id: str,
    background_tasks: BackgroundTasks,
    mode: Literal["one", "all"] = Query("one"),
    actor: Actor = Depends(get_current_actor),
    db: AsyncSession = Depends(get_async_db_session),
    dispatcher: EffectDispatcher = Depends(get_dispatcher),
) -> dict:
    result = await CalendarService(db, actor).complete(parse_entity_id(entity_id), mode=mode)
    return await _commit_and_dispatch(db, result, background_tasks, dispatcher)


@router.post("/{entity_id}/uncomplete", summary="Reopen")
async def uncomplete_event(
    entity_id: str,
    background_tasks: BackgroundTasks,
    actor: Actor = Depends(get_current_actor),
    db: AsyncSession = Depends(get_async_db_session),
    dispatcher: EffectDispatcher = Depends(get_dispatcher),
) -> dict:
    result = await CalendarService(db, actor).uncomplete(parse_entity_id(entity_id))
    return await _commit_and_dispatch(db, result, background_tasks, dispatcher)

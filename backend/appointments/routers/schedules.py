# backend/appointments/routers/schedules.py
"""
Advanced availability schedules of a template.
"""

from fastapi import APIRouter, Depends, Response, status
from redis import Redis

from ..dependencies import get_redis, get_store
from ..schemas.schedules import ScheduleCreate, ScheduleRead, ScheduleUpdate
from ..services import schedules as schedules_service
from ..services.store import SqlAlchemyStore

router = APIRouter(tags=["schedules"])


@router.get("/templates/{template_id}/schedules", response_model=list[ScheduleRead])
def list_schedules(template_id: int, store: SqlAlchemyStore = Depends(get_store)):
    return schedules_service.list_schedules(store, template_id)


@router.post(
    "/templates/{template_id}/schedules",
    response_model=ScheduleRead,
    status_code=status.HTTP_201_CREATED,
)
def create_schedule(
    template_id: int,
    data: ScheduleCreate,
    store: SqlAlchemyStore = Depends(get_store),
    redis: Redis = Depends(get_redis),
):
    return schedules_service.create_schedule(store, template_id, data.model_dump(), redis=redis)


@router.get("/schedules/{id}", response_model=ScheduleRead)
def get_schedule(id: int, store: SqlAlchemyStore = Depends(get_store)):
    return schedules_service.get_schedule(store, id)


@router.patch("/schedules/{id}", response_model=ScheduleRead)
def update_schedule(
    id: int,
    data: ScheduleUpdate,
    store: SqlAlchemyStore = Depends(get_store),
    redis: Redis = Depends(get_redis),
):
    return schedules_service.update_schedule(store, id, data.model_dump(exclude_unset=True), redis=redis)


@router.delete("/schedules/{id}", status_code=status.HTTP_204_NO_CONTENT)
def delete_schedule(
    id: int,
    store: SqlAlchemyStore = Depends(get_store),
    redis: Redis = Depends(get_redis),
):
    schedules_service.delete_schedule(store, id, redis=redis)
    return Response(status_code=status.HTTP_204_NO_CONTENT)

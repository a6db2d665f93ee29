from fastapi import APIRouter, Depends, Query

from tasktracker.jobs.dead_letter import DeadLetterHandler
from tasktracker.jobs.dependencies import get_dead_letter_handler
from tasktracker.jobs.schemas import DeadLetterRecord


router = APIRouter(
    prefix="/dead-letters",
    tags=["Dead Letters"],
)


@router.get("")
def list_dead_letters(
    limit: int = Query(100, ge=1, le=500),
    offset: int = Query(0, ge=0),
    handler: DeadLetterHandler = Depends(get_dead_letter_handler),
) -> list[DeadLetterRecord]:
    return handler.list_records(limit=limit, offset=offset)

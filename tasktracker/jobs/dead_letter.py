import json
import logging
from uuid import uuid4
from sqlalchemy.exc import IntegrityError

from tasktracker.common.current_datetime import get_current_datetime
from tasktracker.common.database import SessionFactory
from tasktracker.jobs.model import DeadLetterModel
from tasktracker.jobs.schemas import DeadLetterPayload, DeadLetterRecord

logger = logging.getLogger(__name__)


class DeadLetterHandler:
    """Terminal sink for jobs that exhausted their retries.

    ``record`` never raises: the job it describes has already been
    acknowledged, so a failure here can only be logged.
    """

    def __init__(self, session_factory: SessionFactory) -> None:
        self.session_factory = session_factory

    def record(self, payload: DeadLetterPayload) -> DeadLetterRecord | None:
        record = DeadLetterRecord(
            id=str(uuid4()),
            recorded_at=get_current_datetime(),
            **payload.model_dump(),
        )
        try:
            with self.session_factory.begin() as session:
                session.add(
                    DeadLetterModel(
                        id=record.id,
                        original_job_id=record.original_job_id,
                        kind=record.kind,
                        payload=json.dumps(record.original),
                        error=record.error,
                        attempts=record.attempts,
                        failed_at=record.failed_at,
                        recorded_at=record.recorded_at,
                    )
                )
        except IntegrityError:
            logger.warning(
                f"Dead letter for job {payload.original_job_id} already recorded"
            )
            return None
        except Exception:
            logger.exception(
                f"Failed to record dead letter: {payload.model_dump_json()}"
            )
            return None

        logger.error(
            f"Recorded dead letter for job {record.original_job_id} "
            f"[{record.kind}] after {record.attempts} attempt(s): {record.error}"
        )
        return record

    def list_records(self, limit: int = 100, offset: int = 0) -> list[DeadLetterRecord]:
        with self.session_factory() as session:
            rows = (
                session.query(DeadLetterModel)
                .order_by(DeadLetterModel.recorded_at.desc(), DeadLetterModel.id)
                .offset(offset)
                .limit(limit)
                .all()
            )
            return [
                DeadLetterRecord(
                    id=row.id,
                    original=json.loads(row.payload),
                    kind=row.kind,
                    error=row.error,
                    attempts=row.attempts,
                    failed_at=row.failed_at,
                    original_job_id=row.original_job_id,
                    recorded_at=row.recorded_at,
                )
                for row in rows
            ]

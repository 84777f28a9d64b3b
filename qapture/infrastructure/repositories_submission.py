# qapture/infrastructure/repositories_submission.py
from __future__ import annotations

import builtins
from collections.abc import Iterable, Mapping
from datetime import datetime
from typing import Any

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from ..domain.models import ScoreResult, Submission
from ..domain.values import sanitize_answer_keys
from .logging import log_database_operation as log_op
from .models import SubmissionORM
from .repositories_base import BaseRepository as GenericBaseRepository


class SubmissionRepo(GenericBaseRepository[SubmissionORM]):
    """
    Stored evaluations with their computed score fields.

    Answer keys are stored sanitized (spaces as underscores).
    """

    model = SubmissionORM

    def __init__(self, session: Session):
        super().__init__(session)

    @log_op("submission.create")
    def create_scored(
        self,
        *,
        catalog_name: str,
        answers: Mapping[str, Any],
        score: ScoreResult,
        team_name: str = "",
        evaluator: str = "",
        employee: str = "",
        timestamp: datetime | None = None,
    ) -> SubmissionORM:
        try:
            row = SubmissionORM(
                catalog_name=catalog_name,
                team_name=team_name,
                evaluator=evaluator,
                employee=employee,
                timestamp=timestamp,
                answers=sanitize_answer_keys(dict(answers)),
                points=score.points,
                max_points=score.max_points,
                percent=score.percent,
            )
            self.s.add(row)
            self.s.flush()
            return row
        except SQLAlchemyError as e:
            self._handle_error(e, "submission.create")

    @log_op("submission.update_scored")
    def update_scored(
        self, submission_id: int, answers: Mapping[str, Any], score: ScoreResult, **fields: Any
    ) -> SubmissionORM:
        """Replace answers and every computed field of an existing submission."""
        row = self.get_by_id_required(submission_id)
        return self.update(
            row,
            answers=sanitize_answer_keys(dict(answers)),
            points=score.points,
            max_points=score.max_points,
            percent=score.percent,
            **fields,
        )

    @log_op("submission.import_records")
    def import_records(self, records: Iterable[Mapping[str, Any]]) -> int:
        """Store legacy evaluation records as they are, keeping their stored scores."""
        count = 0
        for record in records:
            submission = Submission.from_record(record)
            self.s.add(
                SubmissionORM(
                    catalog_name=submission.catalog_name,
                    team_name=submission.team_name,
                    evaluator=submission.evaluator,
                    employee=submission.employee,
                    timestamp=submission.timestamp,
                    answers=submission.answers,
                    points=submission.points,
                    max_points=submission.max_points,
                    percent=submission.percent,
                )
            )
            count += 1
        self.s.flush()
        return count

    @staticmethod
    def to_domain(row: SubmissionORM) -> Submission:
        return Submission(
            id=row.id,
            catalog_name=row.catalog_name,
            team_name=row.team_name or "",
            evaluator=row.evaluator or "",
            employee=row.employee or "",
            timestamp=row.timestamp,
            answers=dict(row.answers or {}),
            points=float(row.points or 0.0),
            max_points=float(row.max_points or 0.0),
            percent=float(row.percent or 0.0),
        )

    @log_op("submission.list_domain")
    def list_domain(self) -> builtins.list[Submission]:
        rows = self.list(order_by=[SubmissionORM.timestamp, SubmissionORM.id])
        return [self.to_domain(r) for r in rows]

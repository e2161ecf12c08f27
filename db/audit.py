"""
Storage for execution audit records. Every write is scoped by a single
execution id, so parallel firings never touch each other's rows.
"""

import threading
from abc import ABC, abstractmethod
from datetime import datetime
from enum import Enum
from typing import Any, Dict, List

from sqlalchemy import and_, func, select
from sqlalchemy.orm import selectinload, sessionmaker

from models import (
    ActionExecutionRecord,
    AutomationExecutionRecord,
    ExecutionStats,
    ExecutionStatus,
    LastRunSummary,
)

from .converters import action_to_db, db_to_execution, execution_to_db
from .models import ActionExecutionModel, AutomationExecutionModel


def _plain(fields: Dict[str, Any]) -> Dict[str, Any]:
    return {key: value.value if isinstance(value, Enum) else value for key, value in fields.items()}


def _summarize(record: AutomationExecutionRecord) -> LastRunSummary:
    return LastRunSummary(
        automation_id=record.automation_id,
        execution_id=record.id,
        trigger_timestamp=record.trigger_timestamp,
        execution_status=record.execution_status,
        successful_actions=record.successful_actions,
        failed_actions=record.failed_actions,
        execution_duration_ms=record.execution_duration_ms,
    )


class AuditRepository(ABC):
    @abstractmethod
    def insert_execution(self, record: AutomationExecutionRecord) -> None:
        raise NotImplementedError

    @abstractmethod
    def update_execution(self, execution_id: str, **fields: Any) -> None:
        raise NotImplementedError

    @abstractmethod
    def insert_action(self, record: ActionExecutionRecord) -> None:
        raise NotImplementedError

    @abstractmethod
    def update_action(self, action_record_id: str, **fields: Any) -> None:
        raise NotImplementedError

    @abstractmethod
    def list_executions(self, limit: int, offset: int, automation_id: str | None = None) -> List[AutomationExecutionRecord]:
        """Newest first."""
        raise NotImplementedError

    @abstractmethod
    def count_executions(self, automation_id: str | None = None) -> int:
        raise NotImplementedError

    @abstractmethod
    def get_execution(self, execution_id: str, include_actions: bool = True) -> AutomationExecutionRecord | None:
        raise NotImplementedError

    @abstractmethod
    def last_runs(self) -> List[LastRunSummary]:
        """Most recent execution of every automation."""
        raise NotImplementedError

    @abstractmethod
    def stats(
        self,
        automation_id: str | None = None,
        start: datetime | None = None,
        end: datetime | None = None,
        status: ExecutionStatus | None = None,
    ) -> ExecutionStats:
        raise NotImplementedError

    @abstractmethod
    def list_unfinished(self, started_before: datetime) -> List[AutomationExecutionRecord]:
        raise NotImplementedError


class InMemoryAuditRepository(AuditRepository):
    def __init__(self) -> None:
        self._lock = threading.Lock()
        self._executions: Dict[str, AutomationExecutionRecord] = {}
        self._actions: Dict[str, ActionExecutionRecord] = {}

    def insert_execution(self, record: AutomationExecutionRecord) -> None:
        with self._lock:
            self._executions[record.id] = record.model_copy(deep=True)

    def update_execution(self, execution_id: str, **fields: Any) -> None:
        with self._lock:
            current = self._executions[execution_id]
            self._executions[execution_id] = current.model_copy(update=fields)

    def insert_action(self, record: ActionExecutionRecord) -> None:
        with self._lock:
            self._actions[record.id] = record.model_copy(deep=True)

    def update_action(self, action_record_id: str, **fields: Any) -> None:
        with self._lock:
            current = self._actions[action_record_id]
            self._actions[action_record_id] = current.model_copy(update=fields)

    def _with_actions(self, record: AutomationExecutionRecord) -> AutomationExecutionRecord:
        actions = sorted(
            (action for action in self._actions.values() if action.execution_id == record.id),
            key=lambda action: action.action_index,
        )
        return record.model_copy(update={"actions": actions})

    def list_executions(self, limit: int, offset: int, automation_id: str | None = None) -> List[AutomationExecutionRecord]:
        with self._lock:
            records = [r for r in self._executions.values() if automation_id is None or r.automation_id == automation_id]
        records.sort(key=lambda r: r.trigger_timestamp, reverse=True)
        return records[offset:offset + limit]

    def count_executions(self, automation_id: str | None = None) -> int:
        with self._lock:
            return sum(1 for r in self._executions.values() if automation_id is None or r.automation_id == automation_id)

    def get_execution(self, execution_id: str, include_actions: bool = True) -> AutomationExecutionRecord | None:
        with self._lock:
            record = self._executions.get(execution_id)
            if record is None:
                return None
            return self._with_actions(record) if include_actions else record.model_copy()

    def last_runs(self) -> List[LastRunSummary]:
        latest: Dict[str, AutomationExecutionRecord] = {}
        with self._lock:
            for record in self._executions.values():
                current = latest.get(record.automation_id)
                if current is None or record.trigger_timestamp > current.trigger_timestamp:
                    latest[record.automation_id] = record
        return [_summarize(record) for record in latest.values()]

    def stats(self, automation_id=None, start=None, end=None, status=None) -> ExecutionStats:
        with self._lock:
            records = [
                r
                for r in self._executions.values()
                if (automation_id is None or r.automation_id == automation_id)
                and (start is None or r.trigger_timestamp >= start)
                and (end is None or r.trigger_timestamp <= end)
                and (status is None or r.execution_status == status)
            ]
        result = ExecutionStats(total=len(records))
        for record in records:
            if record.execution_status is None:
                result.in_progress += 1
            else:
                key = record.execution_status.value
                setattr(result, key, getattr(result, key) + 1)
        durations = [r.execution_duration_ms for r in records if r.execution_duration_ms is not None]
        if durations:
            result.average_duration_ms = sum(durations) / len(durations)
        return result

    def list_unfinished(self, started_before: datetime) -> List[AutomationExecutionRecord]:
        with self._lock:
            return [
                r.model_copy()
                for r in self._executions.values()
                if r.execution_status is None and r.trigger_timestamp < started_before
            ]


class SqlAlchemyAuditRepository(AuditRepository):
    def __init__(self, session_factory: sessionmaker) -> None:
        self._session_factory = session_factory

    def insert_execution(self, record: AutomationExecutionRecord) -> None:
        with self._session_factory() as session, session.begin():
            session.add(execution_to_db(record))

    def update_execution(self, execution_id: str, **fields: Any) -> None:
        with self._session_factory() as session, session.begin():
            row = session.get(AutomationExecutionModel, execution_id)
            if row is None:
                raise LookupError(f"Unknown execution {execution_id}")
            for key, value in _plain(fields).items():
                setattr(row, key, value)

    def insert_action(self, record: ActionExecutionRecord) -> None:
        with self._session_factory() as session, session.begin():
            session.add(action_to_db(record))

    def update_action(self, action_record_id: str, **fields: Any) -> None:
        with self._session_factory() as session, session.begin():
            row = session.get(ActionExecutionModel, action_record_id)
            if row is None:
                raise LookupError(f"Unknown action execution {action_record_id}")
            for key, value in _plain(fields).items():
                setattr(row, key, value)

    def list_executions(self, limit: int, offset: int, automation_id: str | None = None) -> List[AutomationExecutionRecord]:
        query = select(AutomationExecutionModel).order_by(AutomationExecutionModel.trigger_timestamp.desc())
        if automation_id is not None:
            query = query.where(AutomationExecutionModel.automation_id == automation_id)
        with self._session_factory() as session:
            rows = session.scalars(query.limit(limit).offset(offset)).all()
            return [db_to_execution(row) for row in rows]

    def count_executions(self, automation_id: str | None = None) -> int:
        query = select(func.count(AutomationExecutionModel.id))
        if automation_id is not None:
            query = query.where(AutomationExecutionModel.automation_id == automation_id)
        with self._session_factory() as session:
            return session.scalar(query) or 0

    def get_execution(self, execution_id: str, include_actions: bool = True) -> AutomationExecutionRecord | None:
        query = select(AutomationExecutionModel).where(AutomationExecutionModel.id == execution_id)
        if include_actions:
            query = query.options(selectinload(AutomationExecutionModel.actions))
        with self._session_factory() as session:
            row = session.scalars(query).first()
            return db_to_execution(row, include_actions=include_actions) if row is not None else None

    def last_runs(self) -> List[LastRunSummary]:
        latest = (
            select(
                AutomationExecutionModel.automation_id,
                func.max(AutomationExecutionModel.trigger_timestamp).label("latest"),
            )
            .group_by(AutomationExecutionModel.automation_id)
            .subquery()
        )
        query = select(AutomationExecutionModel).join(
            latest,
            and_(
                AutomationExecutionModel.automation_id == latest.c.automation_id,
                AutomationExecutionModel.trigger_timestamp == latest.c.latest,
            ),
        )
        summaries: Dict[str, LastRunSummary] = {}
        with self._session_factory() as session:
            for row in session.scalars(query).all():
                summaries.setdefault(row.automation_id, _summarize(db_to_execution(row)))
        return list(summaries.values())

    def stats(self, automation_id=None, start=None, end=None, status=None) -> ExecutionStats:
        filters = []
        if automation_id is not None:
            filters.append(AutomationExecutionModel.automation_id == automation_id)
        if start is not None:
            filters.append(AutomationExecutionModel.trigger_timestamp >= start)
        if end is not None:
            filters.append(AutomationExecutionModel.trigger_timestamp <= end)
        if status is not None:
            filters.append(AutomationExecutionModel.execution_status == ExecutionStatus(status).value)
        counts = (
            select(AutomationExecutionModel.execution_status, func.count(AutomationExecutionModel.id))
            .where(*filters)
            .group_by(AutomationExecutionModel.execution_status)
        )
        average = select(func.avg(AutomationExecutionModel.execution_duration_ms)).where(*filters)
        result = ExecutionStats()
        with self._session_factory() as session:
            for row_status, count in session.execute(counts).all():
                result.total += count
                if row_status is None:
                    result.in_progress += count
                else:
                    setattr(result, row_status, getattr(result, row_status) + count)
            avg = session.scalar(average)
        result.average_duration_ms = float(avg) if avg is not None else None
        return result

    def list_unfinished(self, started_before: datetime) -> List[AutomationExecutionRecord]:
        query = select(AutomationExecutionModel).where(
            AutomationExecutionModel.execution_status.is_(None),
            AutomationExecutionModel.trigger_timestamp < started_before,
        )
        with self._session_factory() as session:
            return [db_to_execution(row) for row in session.scalars(query).all()]

import copy
import logging
import threading
import uuid
from abc import ABC, abstractmethod
from typing import Any, Dict, Iterable, Iterator, List

from pydantic import ValidationError
from sqlalchemy import select
from sqlalchemy.orm import sessionmaker

from models import Automation, AutomationConfig
from validations.condition_ids import regenerate_internal_ids

from .converters import db_to_pydantic_automation, dump_automation_config, pydantic_to_db_automation
from .models import AutomationModel

logger = logging.getLogger(__name__)


def _load_rows(rows: Iterable[AutomationModel]) -> List[Automation]:
    # One unreadable row must not hide every other rule from the engine.
    automations: List[Automation] = []
    for row in rows:
        try:
            automations.append(db_to_pydantic_automation(row))
        except ValidationError:
            logger.error("Skipping automation %s: stored config does not validate", row.id, extra={"automation_id": row.id})
    return automations


class AutomationNotFoundError(LookupError):
    """Raised when an automation id does not exist in the store."""


class AutomationRepository(ABC):
    """
    Abstract persistence boundary for rule definitions. Implementations are
    responsible for durability, conflicts, and connectivity. The engine only
    reads through this interface; writes are admin operations.
    """

    @abstractmethod
    def save(self, automation: Automation) -> str:
        """Persist the automation and return its identifier."""
        raise NotImplementedError

    @abstractmethod
    def get(self, record_id: str) -> Automation | None:
        """Fetch an automation by id, or None if missing."""
        raise NotImplementedError

    @abstractmethod
    def list_all(self) -> List[Automation]:
        raise NotImplementedError

    @abstractmethod
    def update(self, record_id: str, automation: Automation) -> None:
        raise NotImplementedError

    @abstractmethod
    def delete(self, record_id: str) -> None:
        raise NotImplementedError

    @abstractmethod
    def set_enabled(self, record_id: str, enabled: bool) -> None:
        raise NotImplementedError

    @abstractmethod
    def iter_raw_configs(self) -> Iterator[tuple[str, Dict[str, Any]]]:
        """Yield (id, stored config JSON) without parsing it, for migrations."""
        raise NotImplementedError

    @abstractmethod
    def write_raw_config(self, record_id: str, config: Dict[str, Any]) -> None:
        raise NotImplementedError

    def list_enabled(self) -> List[Automation]:
        return [automation for automation in self.list_all() if automation.enabled]

    def clone(self, record_id: str) -> str:
        """
        Copy an automation under a new id. The copy starts disabled and gets
        fresh condition node ids so the two trees never share identity.
        """
        source = self.get(record_id)
        if source is None:
            raise AutomationNotFoundError(record_id)
        config = regenerate_internal_ids(dump_automation_config(source.config))
        duplicate = Automation(
            name=f"Copy of {source.name}",
            enabled=False,
            location_scope_id=source.location_scope_id,
            config=AutomationConfig.model_validate(config),
        )
        return self.save(duplicate)


class InMemoryAutomationRepository(AutomationRepository):
    """
    Minimal in-memory implementation for local testing. Not intended for prod.
    """

    def __init__(self) -> None:
        self._lock = threading.Lock()
        self._storage: Dict[str, Automation] = {}
        self._raw: Dict[str, Dict[str, Any]] = {}

    def save(self, automation: Automation) -> str:
        record_id = automation.id or str(uuid.uuid4())
        stored = automation.model_copy(update={"id": record_id}, deep=True)
        with self._lock:
            self._storage[record_id] = stored
            self._raw[record_id] = dump_automation_config(stored.config)
        return record_id

    def get(self, record_id: str) -> Automation | None:
        with self._lock:
            automation = self._storage.get(record_id)
        return automation.model_copy(deep=True) if automation is not None else None

    def list_all(self) -> List[Automation]:
        with self._lock:
            return [automation.model_copy(deep=True) for automation in self._storage.values()]

    def update(self, record_id: str, automation: Automation) -> None:
        with self._lock:
            if record_id not in self._storage:
                raise AutomationNotFoundError(record_id)
        self.save(automation.model_copy(update={"id": record_id}))

    def delete(self, record_id: str) -> None:
        with self._lock:
            if self._storage.pop(record_id, None) is None:
                raise AutomationNotFoundError(record_id)
            self._raw.pop(record_id, None)

    def set_enabled(self, record_id: str, enabled: bool) -> None:
        with self._lock:
            automation = self._storage.get(record_id)
            if automation is None:
                raise AutomationNotFoundError(record_id)
            self._storage[record_id] = automation.model_copy(update={"enabled": enabled})

    def iter_raw_configs(self) -> Iterator[tuple[str, Dict[str, Any]]]:
        with self._lock:
            items = [(record_id, copy.deepcopy(raw)) for record_id, raw in self._raw.items()]
        yield from items

    def write_raw_config(self, record_id: str, config: Dict[str, Any]) -> None:
        parsed = AutomationConfig.model_validate(config)
        with self._lock:
            automation = self._storage.get(record_id)
            if automation is None:
                raise AutomationNotFoundError(record_id)
            self._storage[record_id] = automation.model_copy(update={"config": parsed})
            self._raw[record_id] = copy.deepcopy(config)


class SqlAlchemyAutomationRepository(AutomationRepository):
    def __init__(self, session_factory: sessionmaker) -> None:
        self._session_factory = session_factory

    def save(self, automation: Automation) -> str:
        row = pydantic_to_db_automation(automation, automation.id or str(uuid.uuid4()))
        with self._session_factory() as session, session.begin():
            session.merge(row)
        return row.id

    def get(self, record_id: str) -> Automation | None:
        with self._session_factory() as session:
            row = session.get(AutomationModel, record_id)
            return db_to_pydantic_automation(row) if row is not None else None

    def list_all(self) -> List[Automation]:
        with self._session_factory() as session:
            rows = session.scalars(select(AutomationModel).order_by(AutomationModel.created_at)).all()
            return _load_rows(rows)

    def list_enabled(self) -> List[Automation]:
        with self._session_factory() as session:
            rows = session.scalars(select(AutomationModel).where(AutomationModel.enabled.is_(True))).all()
            return _load_rows(rows)

    def update(self, record_id: str, automation: Automation) -> None:
        with self._session_factory() as session, session.begin():
            row = session.get(AutomationModel, record_id)
            if row is None:
                raise AutomationNotFoundError(record_id)
            row.name = automation.name
            row.enabled = automation.enabled
            row.location_scope_id = automation.location_scope_id
            row.config_json = dump_automation_config(automation.config)

    def delete(self, record_id: str) -> None:
        with self._session_factory() as session, session.begin():
            row = session.get(AutomationModel, record_id)
            if row is None:
                raise AutomationNotFoundError(record_id)
            session.delete(row)

    def set_enabled(self, record_id: str, enabled: bool) -> None:
        with self._session_factory() as session, session.begin():
            row = session.get(AutomationModel, record_id)
            if row is None:
                raise AutomationNotFoundError(record_id)
            row.enabled = enabled

    def iter_raw_configs(self) -> Iterator[tuple[str, Dict[str, Any]]]:
        with self._session_factory() as session:
            rows = session.execute(select(AutomationModel.id, AutomationModel.config_json)).all()
        for record_id, config in rows:
            yield record_id, copy.deepcopy(config)

    def write_raw_config(self, record_id: str, config: Dict[str, Any]) -> None:
        with self._session_factory() as session, session.begin():
            row = session.get(AutomationModel, record_id)
            if row is None:
                raise AutomationNotFoundError(record_id)
            row.config_json = config

import json
from concurrent.futures import wait
from dataclasses import dataclass
from typing import Any, Dict, List

from channels import Broadcaster, ConnectionManager
from config import Settings, configure_logging, get_settings
from db import (
    AutomationRepository,
    SqlAlchemyAuditRepository,
    SqlAlchemyAutomationRepository,
    SqlAlchemySiteRepository,
    create_session_factory,
)
from engine import AuditRecorder, AutomationEngine, SchedulerRunner
from models import Automation
from registry import Registry, create_default_registry
from validations import migrate_internal_ids, parse_and_validate_automation


@dataclass
class Runtime:
    settings: Settings
    automations: AutomationRepository
    registry: Registry
    engine: AutomationEngine
    scheduler: SchedulerRunner
    broadcaster: Broadcaster
    connections: ConnectionManager


def build_runtime(settings: Settings | None = None) -> Runtime:
    """
    Wire the SQL-backed repositories, the action registry and the engine.
    Connector channels registered on `connections` feed `engine.ingest`.
    """
    settings = settings or get_settings()
    _, session_factory = create_session_factory(settings.database_url)
    automations = SqlAlchemyAutomationRepository(session_factory)
    sites = SqlAlchemySiteRepository(session_factory)
    registry = create_default_registry(sites)
    broadcaster = Broadcaster(settings.subscriber_queue_size)
    recorder = AuditRecorder(SqlAlchemyAuditRepository(session_factory), settings)
    engine = AutomationEngine(automations, sites, registry, recorder, settings, broadcaster=broadcaster)
    connections = ConnectionManager(engine.ingest, settings.subscriber_queue_size)
    return Runtime(settings, automations, registry, engine, SchedulerRunner(engine), broadcaster, connections)


def orchestrate_save_automation(payload: str | Dict[str, Any], repository: AutomationRepository, registry: Registry) -> str:
    """
    Orchestrate a rule write:
    1. Parse stringified JSON if needed.
    2. Normalize (condition ids, legacy layout) and validate against schema and registry.
    3. Save to persistence layer.

    Returns the saved automation id.
    """
    parsed_payload = json.loads(payload) if isinstance(payload, str) else payload
    automation: Automation = parse_and_validate_automation(parsed_payload, registry)
    return repository.save(automation)


def orchestrate_raw_event(engine: AutomationEngine, connector_id: str, connector_category: str, raw: Any, timeout: float | None = None) -> List[str]:
    """
    Push one connector payload through the engine and wait for its firings.
    Returns the execution ids that were recorded.
    """
    futures = engine.ingest(connector_id, connector_category, raw)
    done, _ = wait(futures, timeout=timeout)
    return [future.result() for future in done if future.exception() is None]


def _load_json(path: str) -> Any:
    with open(path, encoding="utf-8") as handle:
        return json.load(handle)


if __name__ == "__main__":
    import sys

    configure_logging()
    runtime = build_runtime()
    command = sys.argv[1] if len(sys.argv) > 1 else "run"

    try:
        if command == "save" and len(sys.argv) > 2:
            automation_id = orchestrate_save_automation(_load_json(sys.argv[2]), runtime.automations, runtime.registry)
            print(f"Automation saved with id: {automation_id}")
        elif command == "ingest" and len(sys.argv) > 4:
            execution_ids = orchestrate_raw_event(runtime.engine, sys.argv[2], sys.argv[3], _load_json(sys.argv[4]))
            print(f"Recorded {len(execution_ids)} execution(s): {', '.join(execution_ids)}")
        elif command == "migrate":
            report = migrate_internal_ids(runtime.automations)
            print(f"Migrated {report.migrated}, skipped {report.skipped}, errors {len(report.errors)}")
            sys.exit(0 if report.ok else 1)
        elif command == "stuck":
            for record in runtime.engine.recorder.find_stuck_executions():
                print(f"{record.id} automation={record.automation_id} started={record.trigger_timestamp.isoformat()}")
        elif command == "run":
            print("Scheduler running. Press Ctrl+C to stop.")
            runtime.scheduler.start()
            try:
                runtime.scheduler.wait_until_stopped()
            except KeyboardInterrupt:
                pass
            runtime.scheduler.stop()
        else:
            print("Usage: main.py [run | save <rule.json> | ingest <connector_id> <category> <event.json> | migrate | stuck]")
            sys.exit(1)
    finally:
        runtime.connections.stop_all()
        runtime.engine.shutdown()

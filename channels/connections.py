"""
Connection manager for connector channels (MQTT, WebSocket, webhooks).

The manager owns every live connection, grouped by tenant, and forwards raw
payloads to the engine. Protocol details live in ConnectorConnection
implementations.
"""

import logging
import threading
from abc import ABC, abstractmethod
from typing import Any, Callable, Dict, List

from .broadcast import Broadcaster, Subscription

logger = logging.getLogger(__name__)

RawHandler = Callable[[str, str, Any], Any]


class ConnectorConnection(ABC):
    def __init__(self, connector_id: str, connector_category: str) -> None:
        self.connector_id = connector_id
        self.connector_category = connector_category

    @abstractmethod
    def start(self, on_message: Callable[[Any], None]) -> None:
        """Open the channel; call `on_message(raw_payload)` for every inbound message."""
        raise NotImplementedError

    @abstractmethod
    def stop(self) -> None:
        raise NotImplementedError


class ConnectionManager:
    def __init__(self, on_raw_event: RawHandler, queue_size: int = 500) -> None:
        self._on_raw_event = on_raw_event
        self._queue_size = queue_size
        self._lock = threading.RLock()
        self._connections: Dict[str, Dict[str, ConnectorConnection]] = {}
        self._running: Dict[str, set] = {}
        self._broadcasters: Dict[str, Broadcaster] = {}

    def _broadcaster(self, tenant: str) -> Broadcaster:
        with self._lock:
            if tenant not in self._broadcasters:
                self._broadcasters[tenant] = Broadcaster(self._queue_size)
            return self._broadcasters[tenant]

    def register(self, tenant: str, connection: ConnectorConnection) -> None:
        with self._lock:
            self._connections.setdefault(tenant, {})[connection.connector_id] = connection

    def unregister(self, tenant: str, connector_id: str) -> None:
        with self._lock:
            connection = self._connections.get(tenant, {}).pop(connector_id, None)
            was_running = connector_id in self._running.get(tenant, set())
        if connection is not None and was_running:
            self._stop_connection(tenant, connection)

    def connections(self, tenant: str) -> List[ConnectorConnection]:
        with self._lock:
            return list(self._connections.get(tenant, {}).values())

    def is_running(self, tenant: str, connector_id: str) -> bool:
        with self._lock:
            return connector_id in self._running.get(tenant, set())

    def subscribe(self, tenant: str) -> Subscription:
        """Status changes and inbound events of one tenant, through a bounded queue."""
        return self._broadcaster(tenant).subscribe()

    def unsubscribe(self, tenant: str, subscription: Subscription) -> None:
        self._broadcaster(tenant).unsubscribe(subscription)

    def start(self, tenant: str) -> None:
        for connection in self.connections(tenant):
            if self.is_running(tenant, connection.connector_id):
                continue
            try:
                connection.start(self._deliverer(tenant, connection))
            except Exception:
                logger.exception("Failed to start connector", extra={"tenant": tenant, "connector_id": connection.connector_id})
                self._publish_status(tenant, connection, "error")
                continue
            with self._lock:
                self._running.setdefault(tenant, set()).add(connection.connector_id)
            self._publish_status(tenant, connection, "connected")

    def stop(self, tenant: str) -> None:
        for connection in self.connections(tenant):
            if self.is_running(tenant, connection.connector_id):
                self._stop_connection(tenant, connection)

    def stop_all(self) -> None:
        with self._lock:
            tenants = list(self._connections)
        for tenant in tenants:
            self.stop(tenant)

    def _stop_connection(self, tenant: str, connection: ConnectorConnection) -> None:
        try:
            connection.stop()
        except Exception:
            logger.exception("Failed to stop connector cleanly", extra={"tenant": tenant, "connector_id": connection.connector_id})
        with self._lock:
            self._running.get(tenant, set()).discard(connection.connector_id)
        self._publish_status(tenant, connection, "disconnected")

    def _publish_status(self, tenant: str, connection: ConnectorConnection, status: str) -> None:
        self._broadcaster(tenant).publish("connection.status", {"connectorId": connection.connector_id, "status": status})

    def _deliverer(self, tenant: str, connection: ConnectorConnection) -> Callable[[Any], None]:
        def _deliver(raw: Any) -> None:
            self._broadcaster(tenant).publish("event.received", {"connectorId": connection.connector_id})
            try:
                self._on_raw_event(connection.connector_id, connection.connector_category, raw)
            except Exception:
                # The connection's own thread must survive a bad payload.
                logger.exception("Processing inbound message failed", extra={"tenant": tenant, "connector_id": connection.connector_id})

        return _deliver

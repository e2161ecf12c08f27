from .broadcast import BroadcastMessage, Broadcaster, Subscription
from .connections import ConnectionManager, ConnectorConnection

__all__ = ["BroadcastMessage", "Broadcaster", "ConnectionManager", "ConnectorConnection", "Subscription"]

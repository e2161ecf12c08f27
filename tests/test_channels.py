from channels import BroadcastMessage, Broadcaster, ConnectionManager, ConnectorConnection, Subscription


class FakeConnection(ConnectorConnection):
    def __init__(self, connector_id, category="yolink", fail_on_start=False):
        super().__init__(connector_id, category)
        self.fail_on_start = fail_on_start
        self.on_message = None
        self.stopped = False

    def start(self, on_message):
        if self.fail_on_start:
            raise ConnectionError("broker unreachable")
        self.on_message = on_message

    def stop(self):
        self.stopped = True


def _drain(subscription):
    messages = []
    while True:
        message = subscription.get()
        if message is None:
            return messages
        messages.append(message)


def test_full_subscription_drops_oldest():
    subscription = Subscription(maxsize=2)

    for index in range(3):
        subscription.offer(BroadcastMessage(topic="t", data={"n": index}))

    assert subscription.dropped == 1
    assert [message.data["n"] for message in _drain(subscription)] == [1, 2]


def test_broadcast_reaches_every_subscriber():
    broadcaster = Broadcaster(queue_size=5)
    first, second = broadcaster.subscribe(), broadcaster.subscribe()

    broadcaster.publish("execution.completed", {"executionId": "e-1"})
    broadcaster.unsubscribe(second)
    broadcaster.publish("execution.completed", {"executionId": "e-2"})

    assert [m.data["executionId"] for m in _drain(first)] == ["e-1", "e-2"]
    assert [m.data["executionId"] for m in _drain(second)] == ["e-1"]


def test_slow_subscriber_does_not_block_publisher():
    broadcaster = Broadcaster(queue_size=1)
    subscription = broadcaster.subscribe()

    for index in range(50):
        broadcaster.publish("event.received", {"n": index})

    assert subscription.dropped == 49
    assert subscription.get().data == {"n": 49}


class TestConnectionManager:
    def test_start_forwards_messages_and_reports_status(self):
        received = []
        manager = ConnectionManager(lambda *args: received.append(args))
        connection = FakeConnection("conn-1")
        manager.register("tenant-a", connection)
        subscription = manager.subscribe("tenant-a")

        manager.start("tenant-a")
        connection.on_message({"event": "DoorSensor.Alert"})

        assert manager.is_running("tenant-a", "conn-1")
        assert received == [("conn-1", "yolink", {"event": "DoorSensor.Alert"})]
        topics = [(m.topic, m.data.get("status")) for m in _drain(subscription)]
        assert topics == [("connection.status", "connected"), ("event.received", None)]

    def test_processing_errors_do_not_escape(self):
        def _fail(*args):
            raise ValueError("bad payload")

        manager = ConnectionManager(_fail)
        connection = FakeConnection("conn-1")
        manager.register("tenant-a", connection)
        manager.start("tenant-a")

        connection.on_message({"garbage": True})

        assert manager.is_running("tenant-a", "conn-1")

    def test_failed_start_is_reported(self):
        manager = ConnectionManager(lambda *args: None)
        manager.register("tenant-a", FakeConnection("conn-1", fail_on_start=True))
        subscription = manager.subscribe("tenant-a")

        manager.start("tenant-a")

        assert not manager.is_running("tenant-a", "conn-1")
        assert [m.data["status"] for m in _drain(subscription)] == ["error"]

    def test_stop_and_unregister(self):
        manager = ConnectionManager(lambda *args: None)
        first, second = FakeConnection("conn-1"), FakeConnection("conn-2", category="genea")
        manager.register("tenant-a", first)
        manager.register("tenant-b", second)
        manager.start("tenant-a")
        manager.start("tenant-b")
        subscription = manager.subscribe("tenant-a")

        manager.unregister("tenant-a", "conn-1")
        manager.stop_all()

        assert first.stopped and second.stopped
        assert manager.connections("tenant-a") == []
        assert not manager.is_running("tenant-b", "conn-2")
        assert [m.data["status"] for m in _drain(subscription)] == ["disconnected"]

    def test_tenants_are_isolated(self):
        manager = ConnectionManager(lambda *args: None)
        manager.register("tenant-a", FakeConnection("conn-1"))
        other = manager.subscribe("tenant-b")

        manager.start("tenant-a")

        assert _drain(other) == []

import unittest

from backend.app.core.events import NotificationEmitter


class TestNotificationEmitter(unittest.IsolatedAsyncioTestCase):
    async def test_sync_and_async_listeners_receive_events(self):
        emitter = NotificationEmitter()
        seen_sync, seen_async = [], []

        async def async_listener(event_name, payload):
            seen_async.append((event_name, payload))

        emitter.subscribe(lambda name, payload: seen_sync.append((name, payload)))
        emitter.subscribe(async_listener)
        emitter.publish("bracketUpdated", {"tournamentId": "t-1"})
        await emitter.drain()

        self.assertEqual(seen_sync, [("bracketUpdated", {"tournamentId": "t-1"})])
        self.assertEqual(seen_async, [("bracketUpdated", {"tournamentId": "t-1"})])

    async def test_failing_listener_does_not_stop_others(self):
        emitter = NotificationEmitter()
        seen = []

        def broken(event_name, payload):
            raise RuntimeError("boom")

        emitter.subscribe(broken)
        emitter.subscribe(lambda name, payload: seen.append(name))
        with self.assertLogs("backend.app.core.events", level="ERROR"):
            emitter.publish("tournamentStarted", {})
        self.assertEqual(seen, ["tournamentStarted"])

    async def test_unsubscribe(self):
        emitter = NotificationEmitter()
        seen = []

        def listener(name, payload):
            seen.append(name)

        emitter.subscribe(listener)
        emitter.unsubscribe(listener)
        emitter.unsubscribe(listener)
        emitter.publish("tournamentUpdated", {})
        self.assertEqual(seen, [])


if __name__ == "__main__":
    unittest.main()

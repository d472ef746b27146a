# tests/test_infrastructure.py
import logging
import os
import sys
import tempfile
import unittest

# Add project root to path
sys.path.insert(0, os.path.abspath(os.path.join(os.path.dirname(__file__), '..')))

from aviator_sim.domain.events.event_dispatcher import EventDispatcher
from aviator_sim.domain.events.round_events import RoundEvent, RoundEventType
from aviator_sim.infrastructure.concurrency.task_executor import TaskExecutor, ExecutionMode
from aviator_sim.infrastructure.logging.log_manager import LogManager
from aviator_sim.infrastructure.scheduling.scheduler import VirtualScheduler


class TestVirtualScheduler(unittest.TestCase):

    def setUp(self):
        self.scheduler = VirtualScheduler(frame_interval_ms=10)

    def test_frame_runs_at_next_boundary(self):
        seen = []
        self.scheduler.request_frame(seen.append)
        self.scheduler.run()
        self.assertEqual(seen, [10])
        self.assertEqual(self.scheduler.now(), 10)

    def test_cancelled_frame_does_not_run(self):
        seen = []
        handle = self.scheduler.request_frame(seen.append)
        self.scheduler.cancel_frame(handle)
        self.scheduler.run()
        self.assertEqual(seen, [])
        self.assertFalse(self.scheduler.has_pending())

    def test_frames_requested_inside_frame_run_next_frame(self):
        seen = []

        def on_frame(now):
            seen.append(now)
            if len(seen) < 3:
                self.scheduler.request_frame(on_frame)

        self.scheduler.request_frame(on_frame)
        self.scheduler.run()
        self.assertEqual(seen, [10, 20, 30])

    def test_default_interval_frames_always_advance(self):
        scheduler = VirtualScheduler()
        seen = []

        def on_frame(now):
            seen.append(now)
            scheduler.request_frame(on_frame)

        scheduler.request_frame(on_frame)
        scheduler.run(max_steps=600)

        self.assertEqual(len(seen), 600)
        self.assertTrue(all(b > a for a, b in zip(seen, seen[1:])))
        self.assertAlmostEqual(seen[-1], 600 * 1000.0 / 60.0, places=6)

    def test_frames_after_timer_stay_on_grid(self):
        scheduler = VirtualScheduler(frame_interval_ms=16.667)
        seen = []
        scheduler.call_later(2083.375, lambda: scheduler.request_frame(seen.append))
        scheduler.run(max_steps=10)
        self.assertEqual(len(seen), 1)
        self.assertGreater(seen[0], 2083.375)

    def test_timers_in_order(self):
        order = []
        self.scheduler.call_later(50, lambda: order.append("b"))
        self.scheduler.call_later(20, lambda: order.append("a"))
        cancelled = self.scheduler.call_later(30, lambda: order.append("x"))
        self.scheduler.cancel(cancelled)
        self.scheduler.run()
        self.assertEqual(order, ["a", "b"])
        self.assertEqual(self.scheduler.now(), 50)
        self.assertEqual(self.scheduler.timers_run, 2)

    def test_timer_before_frame_at_same_time(self):
        order = []
        self.scheduler.request_frame(lambda now: order.append("frame"))
        self.scheduler.call_later(10, lambda: order.append("timer"))
        self.scheduler.run()
        self.assertEqual(order, ["timer", "frame"])

    def test_run_until(self):
        order = []
        self.scheduler.call_later(100, lambda: order.append("late"))
        self.scheduler.run(until_ms=50)
        self.assertEqual(order, [])
        self.assertEqual(self.scheduler.now(), 50)
        self.scheduler.advance(50)
        self.assertEqual(order, ["late"])

    def test_invalid_interval(self):
        with self.assertRaises(ValueError):
            VirtualScheduler(frame_interval_ms=0)


class TestEventDispatcher(unittest.TestCase):

    def test_dispatch_to_type_and_global_handlers(self):
        dispatcher = EventDispatcher()
        typed, everything = [], []
        dispatcher.register(RoundEventType.ROUND_WON, typed.append)
        dispatcher.register_all(everything.append)

        dispatcher.dispatch(RoundEvent(type=RoundEventType.ROUND_WON, session_id="s", round_number=1))
        dispatcher.dispatch(RoundEvent(type=RoundEventType.STATUS, session_id="s"))

        self.assertEqual(len(typed), 1)
        self.assertEqual(len(everything), 2)
        self.assertEqual(typed[0].data["session_id"], "s")
        self.assertEqual(typed[0].data["round_number"], 1)
        self.assertTrue(typed[0].is_settlement)

    def test_failing_handler_does_not_propagate(self):
        dispatcher = EventDispatcher()
        received = []

        def broken(event):
            raise RuntimeError("display gone")

        dispatcher.register(RoundEventType.STATUS, broken)
        dispatcher.register(RoundEventType.STATUS, received.append)
        dispatcher.dispatch(RoundEvent(type=RoundEventType.STATUS))
        self.assertEqual(len(received), 1)

    def test_unregister(self):
        dispatcher = EventDispatcher()
        received = []
        dispatcher.register(RoundEventType.STATUS, received.append)
        dispatcher.register_all(received.append)
        self.assertEqual(dispatcher.handler_count(RoundEventType.STATUS), 2)
        self.assertEqual(dispatcher.handler_count(), 1)

        self.assertTrue(dispatcher.unregister(RoundEventType.STATUS, received.append))
        self.assertFalse(dispatcher.unregister(RoundEventType.STATUS, received.append))
        self.assertTrue(dispatcher.unregister_all(received.append))
        self.assertFalse(dispatcher.unregister_all(received.append))
        dispatcher.dispatch(RoundEvent(type=RoundEventType.STATUS))
        self.assertEqual(received, [])

    def test_handler_may_unregister_itself(self):
        dispatcher = EventDispatcher()
        calls = []

        def once(event):
            calls.append(event)
            dispatcher.unregister(RoundEventType.STATUS, once)

        dispatcher.register(RoundEventType.STATUS, once)
        dispatcher.dispatch(RoundEvent(type=RoundEventType.STATUS))
        dispatcher.dispatch(RoundEvent(type=RoundEventType.STATUS))
        self.assertEqual(len(calls), 1)


class TestTaskExecutor(unittest.TestCase):

    def test_modes_preserve_order(self):
        tasks = [lambda i=i: i * i for i in range(20)]
        for mode in (ExecutionMode.SEQUENTIAL, ExecutionMode.MULTITHREAD):
            with self.subTest(mode=mode.name):
                executor = TaskExecutor(mode, max_workers=4)
                self.assertEqual(executor.execute(tasks), [i * i for i in range(20)])

    def test_progress_callback(self):
        progress = []
        executor = TaskExecutor(ExecutionMode.SEQUENTIAL)
        executor.execute_with_progress([lambda: 1, lambda: 2], lambda done, total: progress.append((done, total)))
        self.assertEqual(progress, [(1, 2), (2, 2)])

    def test_threaded_progress_counts_every_task(self):
        progress = []
        executor = TaskExecutor(ExecutionMode.MULTITHREAD, max_workers=3)
        results = executor.execute_with_progress(
            [lambda i=i: i for i in range(6)], lambda done, total: progress.append((done, total))
        )
        self.assertEqual(results, list(range(6)))
        self.assertEqual(sorted(progress), [(i, 6) for i in range(1, 7)])

    def test_threaded_failure_is_raised(self):
        finished = []

        def broken():
            raise RuntimeError("session failed")

        executor = TaskExecutor(ExecutionMode.MULTITHREAD, max_workers=2)
        with self.assertRaises(RuntimeError):
            executor.execute([broken, lambda: finished.append(1)])
        self.assertEqual(finished, [1])


class TestLogManager(unittest.TestCase):

    def setUp(self):
        self.root = logging.getLogger()
        self.saved_handlers = list(self.root.handlers)
        self.saved_level = self.root.level

    def tearDown(self):
        for handler in list(self.root.handlers):
            self.root.removeHandler(handler)
        for handler in self.saved_handlers:
            self.root.addHandler(handler)
        self.root.setLevel(self.saved_level)
        for name in ("domain.round", "domain.session", "application", "infrastructure"):
            logging.getLogger(name).setLevel(logging.NOTSET)

    def test_file_handler_and_logger_levels(self):
        with tempfile.TemporaryDirectory() as tmp:
            path = os.path.join(tmp, "logs", "aviator.log")
            manager = LogManager()
            manager.initialize({
                "level": "INFO",
                "console": False,
                "file": {"enabled": True, "path": path, "level": "DEBUG"},
                "loggers": {"domain.round": {"level": "WARNING"}}
            })

            self.assertIn("file", manager.handlers)
            self.assertNotIn("console", manager.handlers)
            self.assertEqual(logging.getLogger("domain.round").level, logging.WARNING)

            logging.getLogger("aviator.logtest").info("hello from the test")
            manager.handlers["file"].flush()
            with open(path, encoding="utf-8") as f:
                self.assertIn("hello from the test", f.read())
            manager.handlers["file"].close()
            self.root.removeHandler(manager.handlers["file"])

    def test_partial_config_uses_defaults(self):
        manager = LogManager()
        manager.initialize({"console": False})
        self.assertEqual(self.root.level, logging.INFO)
        self.assertEqual(manager.handlers, {})
        self.assertIn("domain.round", manager.loggers)

    def test_explicit_loggers_replace_defaults(self):
        manager = LogManager()
        manager.initialize({"console": False})
        self.assertEqual(logging.getLogger("domain.round").level, logging.INFO)

        manager.initialize({"console": False, "loggers": {"application": {"level": "DEBUG"}}}, force=True)
        self.assertEqual(list(manager.loggers), ["application"])
        self.assertEqual(logging.getLogger("application").level, logging.DEBUG)
        self.assertEqual(logging.getLogger("domain.round").level, logging.NOTSET)

        manager.initialize({"console": False, "loggers": {}}, force=True)
        self.assertEqual(manager.loggers, {})
        self.assertEqual(logging.getLogger("application").level, logging.NOTSET)

    def test_unknown_level_defaults_to_info(self):
        self.assertEqual(LogManager()._get_log_level("LOUD"), logging.INFO)
        self.assertEqual(LogManager()._get_log_level(logging.DEBUG), logging.DEBUG)


if __name__ == "__main__":
    unittest.main()

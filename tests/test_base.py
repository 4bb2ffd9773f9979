# Copyright 2016,2017 by MPI-SWS and Data-Ken Research.
# Licensed under the Apache 2.0 License.
"""Some simple tests for the base layer.
"""

import asyncio
import io
import unittest

from tailflow.base import Scheduler, InputStage, FunctionFilter, FatalError, \
                          ScheduleError, StreamAlreadyClosed, \
                          InvalidParameterError, from_list
from tailflow.filters.where import where
from tailflow.filters.output import output
from tailflow.filters.map import map
from tailflow.filters.take import take
from tailflow.filters.combinators import passthrough, compose
from utils import ValidationInputStage, CaptureInputStage

value_stream = [20, 30, 100, 120, 20, 5, 2222]

expected_stream = [100, 120, 2222]


class DieAfter(InputStage):
    def __init__(self, num_events):
        self.events_left = num_events

    def on_next(self, x):
        self.events_left -= 1
        if self.events_left==0:
            raise FatalError("time to die")


class BaseTestCase(unittest.TestCase):
    def setUp(self):
        self.loop = asyncio.new_event_loop()
        self.scheduler = Scheduler(self.loop)

    def tearDown(self):
        self.loop.close()


class TestPipeline(BaseTestCase):
    def test_where(self):
        """Compose the filters by method chaining"""
        src = from_list(value_stream)
        w = src.where(lambda v: v>=100)
        w.output(io.StringIO())
        vs = ValidationInputStage(expected_stream, self)
        w.connect(vs)
        self.scheduler.schedule_recurring(src)
        src.print_downstream()
        self.scheduler.run_forever()
        self.assertTrue(vs.completed,
                        "Schedule exited before validation stage completed")

    def test_functional_style(self):
        """Compose the filters as thunks"""
        src = from_list(value_stream)
        vs1 = ValidationInputStage(value_stream, self)
        vs2 = ValidationInputStage([v*2 for v in expected_stream], self)
        pipeline = compose(passthrough(vs1), where(lambda v: v>=100),
                           map(lambda v: v*2), vs2)
        pipeline(src)
        self.scheduler.schedule_recurring(src)
        self.scheduler.run_forever()
        self.assertTrue(vs1.completed)
        self.assertTrue(vs2.completed)

    def test_thunk_builder_in_compose(self):
        src = from_list([1, 2])
        buf = io.StringIO()
        vs = ValidationInputStage([1, 2], self)
        compose(passthrough(output(buf)), vs)(src)
        self.scheduler.schedule_recurring(src)
        self.scheduler.run_forever()
        self.assertTrue(vs.completed)
        self.assertEqual('1\n2\n', buf.getvalue())

    def test_connect_callable(self):
        src = from_list([1, 2, 3])
        seen = []
        src.connect(seen.append)
        self.scheduler.schedule_recurring(src)
        self.scheduler.run_forever()
        self.assertEqual([1, 2, 3], seen)

    def test_connect_after_completed(self):
        src = from_list([1])
        src.connect(CaptureInputStage())
        self.scheduler.schedule_recurring(src)
        self.scheduler.run_forever()
        self.assertRaises(StreamAlreadyClosed, src.connect, CaptureInputStage())

    def test_schedule_periodic(self):
        src = from_list([1, 2, 3])
        vs = ValidationInputStage([1, 2, 3], self)
        src.connect(vs)
        self.scheduler.schedule_periodic(src, 0.01)
        self.scheduler.run_forever()
        self.assertTrue(vs.completed)


class TestTake(BaseTestCase):
    def test_take(self):
        src = from_list(value_stream)
        capture = CaptureInputStage()
        src.take(3).connect(capture)
        self.scheduler.schedule_recurring(src)
        self.scheduler.run_forever()
        self.assertEqual([20, 30, 100], capture.events)
        self.assertTrue(capture.completed)

    def test_take_more_than_available(self):
        src = from_list([1, 2])
        vs = ValidationInputStage([1, 2], self)
        src.take(10).connect(vs)
        self.scheduler.schedule_recurring(src)
        self.scheduler.run_forever()
        self.assertTrue(vs.completed)

    def test_take_zero(self):
        src = from_list([1, 2])
        capture = CaptureInputStage()
        take(0)(src).connect(capture)
        self.scheduler.schedule_recurring(src)
        self.scheduler.run_forever()
        self.assertEqual([], capture.events)
        self.assertTrue(capture.completed)

    def test_take_negative(self):
        self.assertRaises(InvalidParameterError, from_list([1]).take, -1)


class TestFunctionFilter(BaseTestCase):
    def test_function_filter(self):
        src = from_list(value_stream)
        captured = []
        got_completed = [False,]
        def on_next(self, x):
            captured.append(x)
            self._dispatch_next(x)
        def on_completed(self):
            got_completed[0] = True
            self._dispatch_completed()
        ff = FunctionFilter(src, on_next=on_next, on_completed=on_completed)
        vs = ValidationInputStage(value_stream, self)
        ff.connect(vs)
        self.scheduler.schedule_recurring(src)
        self.scheduler.run_forever()
        self.assertTrue(vs.completed)
        self.assertEqual(value_stream, captured)
        self.assertTrue(got_completed[0])

    def test_function_filter_error_handling(self):
        """A function filter that raises ends its own path with on_error().
        A second path connected directly to the source is not affected.
        """
        src = from_list(value_stream)
        got_on_error = [False,]
        def on_next_throw_exc(self, x):
            if x==120:
                raise Exception("expected exc")
            self._dispatch_next(x)
        def on_error(self, e):
            got_on_error[0] = True
            self._dispatch_error(e)
        ff = FunctionFilter(src, on_next=on_next_throw_exc, on_error=on_error)
        capture = CaptureInputStage(expecting_error=True)
        ff.map(lambda x: x).connect(capture)
        vs = ValidationInputStage(value_stream, self)
        src.connect(vs)
        self.scheduler.schedule_recurring(src)
        self.scheduler.run_forever()
        self.assertTrue(vs.completed)
        self.assertFalse(capture.completed)
        self.assertTrue(capture.errored)
        self.assertTrue(got_on_error[0])
        self.assertEqual([20, 30, 100], capture.events)


class TestScheduler(BaseTestCase):
    def test_fatal_error_stops_the_loop(self):
        src = from_list(range(100))
        src.connect(DieAfter(3))
        self.scheduler.schedule_recurring(src)
        with self.assertRaises(ScheduleError) as cm:
            self.scheduler.run_forever()
        self.assertIsInstance(cm.exception.__cause__, FatalError)

    def test_cancel(self):
        src = from_list(range(100))
        capture = CaptureInputStage()
        src.connect(capture)
        cancel = self.scheduler.schedule_recurring(src)
        self.loop.call_soon(cancel)
        self.scheduler.run_forever()
        self.assertTrue(capture.completed)
        self.assertLess(len(capture.events), 100)
        self.assertRaises(ScheduleError, cancel)

    def test_deschedule_when_disconnected(self):
        src = from_list(range(100))
        seen = []
        def on_next(x):
            seen.append(x)
            if len(seen)==5:
                disconnect()
        disconnect = src.connect(on_next)
        self.scheduler.schedule_recurring(src)
        self.scheduler.run_forever()
        self.assertEqual([0, 1, 2, 3, 4], seen)


if __name__ == '__main__':
    unittest.main()

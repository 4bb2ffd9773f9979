# Copyright 2016,2017 by MPI-SWS and Data-Ken Research.
# Licensed under the Apache 2.0 License.
"""Common utilities for the tests
"""
import os
import shutil
import tempfile
import unittest

from tailflow.base import InputStage, FatalError, Filter


class ValidationInputStage(InputStage):
    """Compare the events in a stream to the expected values.
    Use the test_case for the assertions (for proper error reporting in a unit
    test).
    """
    def __init__(self, expected_stream, test_case,
                 extract_value_fn=lambda event:event):
        self.expected_stream = expected_stream
        self.next_idx = 0
        self.test_case = test_case
        self.extract_value_fn = extract_value_fn
        self.completed = False

    def on_next(self, x):
        tc = self.test_case
        tc.assertLess(self.next_idx, len(self.expected_stream),
                      "Got an event after reaching the end of the expected stream")
        expected = self.expected_stream[self.next_idx]
        actual = self.extract_value_fn(x)
        tc.assertEqual(actual, expected,
                       "Values for element %d of event stream mismatch" %
                       self.next_idx)
        self.next_idx += 1

    def on_completed(self):
        self.test_case.assertEqual(self.next_idx, len(self.expected_stream),
                                   "Got on_completed() before end of stream")
        self.completed = True

    def on_error(self, exc):
        self.test_case.assertTrue(False,
                                  "Got an unexpected on_error call with parameter: %s" %
                                  exc)

    def __repr__(self):
        return "ValidationInputStage(%s)" % self.test_case.__class__.__name__


class CaptureInputStage(InputStage):
    """Capture the sequence of events in a list for later use.
    """
    def __init__(self, expecting_error=False):
        self.events = []
        self.completed = False
        self.expecting_error = expecting_error
        self.errored = False
        self.error = None

    def on_next(self, x):
        self.events.append(x)

    def on_completed(self):
        self.completed = True

    def on_error(self, e):
        if self.expecting_error:
            self.errored = True
            self.error = e
        else:
            raise FatalError("Should not get on_error, got on_error(%s)" % e)


class StopAfterN(Filter):
    """Filter to call a stop function after N events.
    Usually, the stop function is the cancel function of the upstream
    schedule.
    """
    def __init__(self, previous_in_chain, stop_fn, N=5):
        super().__init__(previous_in_chain)
        self.stop_fn = stop_fn
        self.N = N
        assert N>0
        self.count = 0

    def on_next(self, x):
        self._dispatch_next(x)
        self.count += 1
        if self.count==self.N:
            self.stop_fn()


class TempDirTestCase(unittest.TestCase):
    """Test case that gets a fresh temporary directory.
    """
    def setUp(self):
        self.dir = tempfile.mkdtemp(prefix='tailflow-test-')

    def tearDown(self):
        shutil.rmtree(self.dir, ignore_errors=True)

    def path(self, name):
        return os.path.join(self.dir, name)


def write_file(path, data):
    with open(path, 'wb') as f:
        f.write(data)

def append_to_file(path, data):
    with open(path, 'ab') as f:
        f.write(data)

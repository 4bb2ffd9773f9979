# Copyright 2016,2017 by MPI-SWS and Data-Ken Research.
# Licensed under the Apache 2.0 License.
"""Limit a stream to its first events.

Once take() has its events, it disconnects from upstream. A source with no
connections left is descheduled and closed, so this is also how to stop
tailing a file after a number of records.
"""
from tailflow.base import OutputStage, FunctionFilter, InvalidParameterError, \
                          filtermethod

@filtermethod(OutputStage)
def take(this, count):
    """Pass on the first count events, then complete.
    """
    if count<0:
        raise InvalidParameterError("take() count must not be negative, got %s" % count)
    state = {'remaining': count, 'done': False}

    def finish(self):
        state['done'] = True
        self.disconnect_from_upstream()
        self._dispatch_completed()

    def on_next(self, x):
        if state['done']:
            return
        if state['remaining']>0:
            state['remaining'] -= 1
            self._dispatch_next(x)
        if state['remaining']==0:
            finish(self)

    def on_completed(self):
        # the upstream may end before we got count events
        if not state['done']:
            state['done'] = True
            self._dispatch_completed()

    return FunctionFilter(this, on_next=on_next, on_completed=on_completed,
                          name="take(%s)" % count)

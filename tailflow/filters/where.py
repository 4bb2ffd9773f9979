# Copyright 2016,2017 by MPI-SWS and Data-Ken Research.
# Licensed under the Apache 2.0 License.
from tailflow.base import OutputStage, FunctionFilter, filtermethod

@filtermethod(OutputStage, alias="filter")
def where(this, predicate):
    """Only pass on the events for which predicate returns true.
    """
    def on_next(self, x):
        if predicate(x):
            self._dispatch_next(x)
    return FunctionFilter(this, on_next, name="where")

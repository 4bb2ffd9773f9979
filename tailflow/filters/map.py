# Copyright 2016,2017 by MPI-SWS and Data-Ken Research.
# Licensed under the Apache 2.0 License.
"""
Apply a function to each event. select is an alias for map.
"""
from tailflow.base import OutputStage, FunctionFilter, filtermethod

@filtermethod(OutputStage, alias="select")
def map(this, mapfun):
    """Emit mapfun(x) for each event x. A result of None is not emitted.
    """
    def on_next(self, x):
        y = mapfun(x)
        if y is not None:
            self._dispatch_next(y)
    return FunctionFilter(this, on_next, name='map')

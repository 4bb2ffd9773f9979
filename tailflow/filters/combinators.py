# Copyright 2016,2017 by MPI-SWS and Data-Ken Research.
# Licensed under the Apache 2.0 License.
"""
Combinators for building pipelines out of thunks. A thunk is a function of
one argument, the previous stage in the chain. Calling a filter function
such as split_lines() or take(5) at module level returns one.
"""

from tailflow.base import OutputStage, filtermethod, _make_thunk, \
                          _connect_thunk


def compose(*thunks):
    """Chain thunks and/or input stages into one thunk. Only the last
    element may be a plain input stage.
    """
    def apply(this):
        p = this
        for thunk in thunks:
            assert p, \
                "attempted to compose a terminal input stage in non-final position"
            p = _connect_thunk(p, thunk)
        return p
    _make_thunk(apply)
    return apply


@filtermethod(OutputStage)
def passthrough(this, spur):
    """Connect spur (an input stage, thunk, or function) to this as a side
    branch and continue the chain from this.
    """
    _connect_thunk(this, spur)
    return this

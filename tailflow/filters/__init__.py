# Copyright 2016,2017 by MPI-SWS and Data-Ken Research.
# Licensed under the Apache 2.0 License.
"""
Filters that transform event streams.

Each filter is defined with the @filtermethod decorator, which makes it
available in two forms. As a method on every OutputStage, for chaining::

    reader.split_lines().where(lambda line: 'ERROR' in line).output()

And as a module-level function that returns a thunk (a function taking the
previous stage), for use with the combinators in combinators.py::

    compose(split_lines(), where(lambda line: 'ERROR' in line), output())

A filter function takes the previous stage in the chain as its first
argument, which by convention is called `this`, and returns the stage that
the next filter should connect to. Inside the on_next() functions passed to
FunctionFilter, `self` is the new filter itself. Mixing up the two
connects a filter to itself.

Importing this package loads all the filter methods onto OutputStage.
"""

from . import combinators
from . import map
from . import output
from . import split
from . import take
from . import where

# Copyright 2016,2017 by MPI-SWS and Data-Ken Research.
# Licensed under the Apache 2.0 License.
from sys import stdout
import traceback as tb

from tailflow.base import OutputStage, XformOrDropFilter, filtermethod

class Output(XformOrDropFilter):
    def __init__(self, previous_in_chain, file=stdout):
        super().__init__(previous_in_chain)
        self.file = file

    def _filter(self, x):
        print(x, file=self.file)
        return x

    def on_error(self, e):
        tb.print_exception(type(e), e, e.__traceback__, file=self.file)
        self._dispatch_error(e)

    def __str__(self):
        return 'output()' if self.file==stdout else 'output(%s)' % self.file


@filtermethod(OutputStage)
def output(this, file=stdout):
    """Print each event, and the traceback of an error, to file (stdout by
    default), passing everything on unchanged.
    """
    return Output(this, file=file)

# Copyright 2016,2017 by MPI-SWS and Data-Ken Research.
# Licensed under the Apache 2.0 License.
"""Small helpers shared by the rest of the package.
"""

def noop(*args, **kwargs):
    pass

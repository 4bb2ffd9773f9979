# Copyright 2016,2017 by MPI-SWS and Data-Ken Research.
# Licensed under the Apache 2.0 License.
"""
This is the main package for tailflow. Directly within this package you will
find the following module:

 * `base` - the pipeline abstractions and the scheduler.

The rest of the functionality is in sub-packages:

 * `adapters` - stages that read from or write to the outside world, most
   importantly the incremental file tail in `adapters.file`
 * `internal` - some internal definitions
 * `filters` - filters that transform event streams, including the
   delimiter splitter in `filters.split`
"""

__version__ = "1.0.0"

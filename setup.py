#!/usr/bin/env python
# Copyright 2016,2017 by MPI-SWS and Data-Ken Research.
# Licensed under the Apache 2.0 License.
"""Setup script for the tailflow distribution. Note that we only
package up the python code. The tests, docs, and examples
are all kept only in the full source repository.
"""

import sys
sys.path.insert(0, 'tailflow')
from tailflow import __version__

from setuptools import setup

DESCRIPTION =\
"""
tailflow follows files as other processes append to them and turns the new
bytes into a stream of chunks or delimited text records. It reads each byte
exactly once, waits for growth on an asyncio timer instead of a blocked
thread, stops reading when nobody downstream wants more, and ends the stream
with an error when the file is truncated, deleted, or replaced.

The tail plugs into a small event pipeline (filters like map, where, take,
CSV parsing) driven by a scheduler on the asyncio event loop. There is also
a plain iterator interface for use without an event loop.

tailflow is pure Python (3.6 or later) with no runtime dependencies.
"""

setup(name='tailflow',
      version=__version__,
      description="Incremental file tailing as event streams",
      long_description=DESCRIPTION,
      license="Apache 2.0",
      author="MPI-SWS and Data-Ken Research",
      author_email="info@thingflow.io",
      packages=['tailflow', 'tailflow.internal', 'tailflow.filters',
                'tailflow.adapters'],
      python_requires='>=3.6',
      extras_require={
          'test': ['pytest'],
      },
      classifiers = [
          'Development Status :: 4 - Beta',
          'License :: OSI Approved :: Apache Software License',
          'Programming Language :: Python :: 3',
          'Programming Language :: Python :: 3.6',
          'Programming Language :: Python :: 3.7',
          'Programming Language :: Python :: 3.8',
          'Operating System :: OS Independent',
          'Intended Audience :: Developers' ,
      ],
      keywords = ['tail', 'logs', 'events', 'streams'],
)

# Copyright 2016,2017 by MPI-SWS and Data-Ken Research.
# Licensed under the Apache 2.0 License.
"""
*Adapters* connect tailflow pipelines to the world outside the process.
*Readers* are output stages that bring a stream in: `FileTailReader`
follows a growing file and emits its new bytes, `FileTailLineReader` emits
its new lines, and `DirectoryReader` lists a directory. The CSV stages in
`csv` translate between text records and rows.

Everything in `file` and `csv` uses the standard library only.
"""

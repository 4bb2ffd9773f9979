# Copyright 2016,2017 by MPI-SWS and Data-Ken Research.
# Licensed under the Apache 2.0 License.
"""
Follow a file and print each line as it is appended, like tail -f.

To run this script::

    python tail_file.py [options] FILE

Try it by appending to the file from another terminal::

    echo "hello" >> FILE

Stop with Control-C. The offset printed on exit can be passed back with
--offset to pick up where the last run left off.
"""
import argparse
import asyncio
import logging
import sys

from tailflow.base import Scheduler
from tailflow.adapters.file import FileTailLineReader, DEFAULT_POLL_INTERVAL, \
                                   DEFAULT_CHUNK_SIZE
from tailflow.filters.split import DEFAULT_MAX_LINE_LENGTH
import tailflow.filters.output
import tailflow.filters.take
import tailflow.filters.where

DESCRIPTION = "Follow a growing file and print the lines appended to it."


def run(args):
    reader = FileTailLineReader(args.file, chunk_size=args.chunk_size,
                                starting_offset=args.offset,
                                poll_interval=args.poll_interval,
                                read_once=args.once,
                                encoding=args.encoding,
                                max_line_length=args.max_line_length)
    stage = reader
    if args.grep:
        stage = stage.where(lambda line: args.grep in line)
    if args.max_lines is not None:
        stage = stage.take(args.max_lines)
    stage.output()
    scheduler = Scheduler(asyncio.new_event_loop())
    scheduler.schedule_polling(reader)
    try:
        scheduler.run_forever()
    except KeyboardInterrupt:
        scheduler.stop()
    print("Stopped at offset %d" % reader.offset, file=sys.stderr)


def main(argv=sys.argv[1:]):
    parser = argparse.ArgumentParser(description=DESCRIPTION)
    parser.add_argument("--offset", type=int, default=0,
                        help="Byte offset to start from (default 0)")
    parser.add_argument("--poll-interval", type=float,
                        default=DEFAULT_POLL_INTERVAL,
                        help="Seconds to wait at end of file (default %s)" %
                        DEFAULT_POLL_INTERVAL)
    parser.add_argument("--chunk-size", type=int, default=DEFAULT_CHUNK_SIZE,
                        help="Maximum bytes per read (default %s)" %
                        DEFAULT_CHUNK_SIZE)
    parser.add_argument("--max-line-length", type=int,
                        default=DEFAULT_MAX_LINE_LENGTH,
                        help="Longest line accepted, in bytes (default %s)" %
                        DEFAULT_MAX_LINE_LENGTH)
    parser.add_argument("--encoding", default='utf-8',
                        help="Text encoding of the file (default utf-8)")
    parser.add_argument("--grep", default=None,
                        help="Only print lines containing this text")
    parser.add_argument("-n", "--max-lines", type=int, default=None,
                        help="Stop after printing this many lines")
    parser.add_argument("--once", action='store_true', default=False,
                        help="Read what is in the file now, then exit")
    parser.add_argument("--debug", action='store_true', default=False,
                        help="Log debug messages")
    parser.add_argument("file", metavar="FILE", help="File to follow")
    parsed_args = parser.parse_args(args=argv)
    logging.basicConfig(level=logging.DEBUG if parsed_args.debug
                        else logging.INFO)
    run(parsed_args)
    return 0


if __name__ == '__main__':
    sys.exit(main())

# Copyright 2016,2017 by MPI-SWS and Data-Ken Research.
# Licensed under the Apache 2.0 License.
"""Adapters for the local filesystem.

The main one is the file tail: a reader that follows a file as other
processes append to it, emitting what was added since the last read,
forever, without reading anything twice. There are two ways to use it.

As an output stage driven by the scheduler::

    reader = FileTailLineReader('/var/log/app.log')
    reader.output()
    scheduler = Scheduler(asyncio.new_event_loop())
    scheduler.schedule_polling(reader)
    scheduler.run_forever()

Here, waiting for the file to grow is a timer on the event loop, so nothing
blocks. Or as a plain iterator, which sleeps in the calling thread::

    for line in tail_lines('/var/log/app.log'):
        print(line)

Growth is detected by polling: at end-of-file the reader waits poll_interval
seconds, stats the file, and tries again from the same offset. A file that
shrinks below the offset, disappears, or is replaced by another file cannot
be followed any more and ends the stream with TruncatedFileError.

Resuming after a restart is up to the caller: remember ``offset`` and pass it
back as starting_offset.

This module also has sources that list directories (DirectoryReader).
"""
import collections
import os
import os.path
import stat
import threading
import logging
logger = logging.getLogger(__name__)

from tailflow.base import OutputStage, DirectOutputStageMixin, \
                          IterableAsOutputStage, FatalError, \
                          InvalidParameterError
from tailflow.filters.split import DelimiterSplitter, SplitError, \
    DEFAULT_DELIMITER, DEFAULT_ENCODING, DEFAULT_MAX_LINE_LENGTH

DEFAULT_CHUNK_SIZE = 8192
DEFAULT_POLL_INTERVAL = 0.25 # seconds


class TailError(Exception):
    pass

class TruncatedFileError(TailError):
    """The tailed file shrank below the current offset, was deleted, or was
    replaced. The offset no longer means anything, so we give up.
    """
    pass

class TailIOError(TailError):
    """Any other failure to read or stat the file. The OSError is the
    __cause__.
    """
    pass


class TailCursor:
    """Position of one tail in its file. offset only moves forward and
    always equals the starting offset plus the bytes handed out.
    """
    __slots__ = ('path', 'offset', 'chunk_size', 'poll_interval')
    def __init__(self, path, offset, chunk_size, poll_interval):
        if chunk_size<=0:
            raise InvalidParameterError("chunk_size must be positive, got %s" % chunk_size)
        if offset<0:
            raise InvalidParameterError("starting_offset must not be negative, got %s" %
                                        offset)
        if poll_interval<0:
            raise InvalidParameterError("poll_interval must not be negative, got %s" %
                                        poll_interval)
        self.path = path
        self.offset = offset
        self.chunk_size = chunk_size
        self.poll_interval = poll_interval

    def advance(self, n):
        assert n>=0
        self.offset += n

    def __repr__(self):
        return 'TailCursor(%r, offset=%d, chunk_size=%d, poll_interval=%s)' % \
            (self.path, self.offset, self.chunk_size, self.poll_interval)


class ChunkPoller:
    """Reads a growing file in chunks of at most chunk_size bytes.

    read_chunk() never blocks. It returns the next chunk, or None when we are
    at the current end of the file. The caller decides how to wait (see
    FileTailReader for the event loop version). Iterating over the poller
    waits in the current thread instead, on an Event, so cancel() from
    another thread stops it right away.

    With read_once=True, only the bytes present when the file was opened
    are read, after which the sequence ends (StopIteration).

    The file is opened on the first read. It is closed when the sequence
    ends, on any error (before the error is raised), and on close() or
    cancel().
    """
    def __init__(self, path, chunk_size=DEFAULT_CHUNK_SIZE, starting_offset=0,
                 poll_interval=DEFAULT_POLL_INTERVAL, read_once=False):
        self.cursor = TailCursor(os.fspath(path), starting_offset, chunk_size,
                                 poll_interval)
        if poll_interval==0 and not read_once:
            logger.warning("poll_interval of 0 for %s will busy-poll the file",
                           self.cursor.path)
        self.read_once = read_once
        self.file = None
        self.stop_at = None # size at open, for read_once
        self._identity = None # (st_dev, st_ino) of the file we opened
        self._closed = False
        self._cancelled = False
        self._lock = threading.Lock()
        self._wakeup = threading.Event()

    @property
    def path(self):
        return self.cursor.path

    @property
    def offset(self):
        return self.cursor.offset

    @property
    def poll_interval(self):
        return self.cursor.poll_interval

    @property
    def closed(self):
        return self._closed

    @property
    def cancelled(self):
        return self._cancelled

    def open(self):
        """Open the file and seek to the starting offset. FileNotFoundError
        and PermissionError are passed through.
        """
        if self._closed:
            raise TailError("Tail of %s is already closed" % self.path)
        f = open(self.path, 'rb')
        try:
            st = os.fstat(f.fileno())
            if not stat.S_ISREG(st.st_mode):
                raise TailIOError("%s is not a regular file" % self.path)
            if st.st_size<self.offset:
                raise TruncatedFileError("%s has %d bytes, less than the starting offset %d" %
                                         (self.path, st.st_size, self.offset))
            f.seek(self.offset)
        except Exception:
            f.close()
            raise
        self.file = f
        self._identity = (st.st_dev, st.st_ino)
        if self.read_once:
            self.stop_at = st.st_size
        logger.debug("Opened %s at offset %d", self.path, self.offset)

    def read_chunk(self):
        """Return the next chunk of bytes, or None if there is nothing new
        yet. Raises StopIteration when the sequence is over (read_once pass
        done, or closed). Any other exception closes the file first.
        """
        with self._lock:
            if self._closed:
                raise StopIteration
            try:
                return self._read()
            except Exception:
                self._close_file()
                raise

    def _read(self):
        if self.file is None:
            self.open()
        size = self.cursor.chunk_size
        if self.read_once:
            remaining = self.stop_at - self.offset
            if remaining<=0:
                raise StopIteration
            size = min(size, remaining)
        try:
            data = self.file.read(size)
        except OSError as e:
            raise TailIOError("Error reading %s at offset %d: %s" %
                              (self.path, self.offset, e)) from e
        if data:
            self.cursor.advance(len(data))
            return data
        self._check_file()
        if self.read_once:
            raise TruncatedFileError("%s was truncated to %d bytes while reading it" %
                                     (self.path, self.offset))
        return None

    def _check_file(self):
        """We are at the end of our open file. Make sure the path still
        refers to it and that it did not shrink.
        """
        try:
            st = os.stat(self.path)
        except FileNotFoundError as e:
            raise TruncatedFileError("%s was deleted while tailing it" % self.path) from e
        except OSError as e:
            raise TailIOError("Unable to stat %s: %s" % (self.path, e)) from e
        if (st.st_dev, st.st_ino)!=self._identity:
            raise TruncatedFileError("%s was replaced by a different file" % self.path)
        if st.st_size<self.offset:
            raise TruncatedFileError("%s shrank to %d bytes, below offset %d" %
                                     (self.path, st.st_size, self.offset))

    def _close_file(self):
        if self.file is not None:
            self.file.close()
            self.file = None
            logger.debug("Closed %s at offset %d", self.path, self.offset)
        self._closed = True

    def close(self):
        with self._lock:
            self._close_file()

    def cancel(self):
        """Stop the tail. Safe to call from another thread. An iteration
        waiting for growth wakes up and ends without an error.
        """
        self._cancelled = True
        self._wakeup.set()
        self.close()

    def __iter__(self):
        return self

    def __next__(self):
        while True:
            if self._cancelled:
                raise StopIteration
            chunk = self.read_chunk()
            if chunk is not None:
                return chunk
            self._wakeup.wait(self.poll_interval)

    def __enter__(self):
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        self.close()
        return False

    def __repr__(self):
        return 'ChunkPoller(%r)' % self.cursor


class LineTail:
    """Iterator over the records of a tailed file. Records completed before
    a splitting or decoding error are still returned, then the error is
    raised.
    """
    def __init__(self, poller, splitter):
        self.poller = poller
        self.splitter = splitter
        self._ready = collections.deque()
        self._error = None
        self._finished = False

    @property
    def offset(self):
        return self.poller.offset

    @property
    def closed(self):
        return self.poller.closed

    def cancel(self):
        self.poller.cancel()

    def close(self):
        self.poller.close()

    def __iter__(self):
        return self

    def __next__(self):
        while True:
            if self.poller.cancelled:
                # nothing more after a cancel, not even what is buffered
                self._ready.clear()
                self._error = None
                self._finished = True
                self.splitter.reset()
                raise StopIteration
            if self._ready:
                return self._ready.popleft()
            if self._error is not None:
                e = self._error
                self._error = None
                self._finished = True
                raise e
            if self._finished:
                raise StopIteration
            try:
                chunk = next(self.poller)
            except StopIteration:
                self._finished = True
                if not self.poller.cancelled:
                    self._collect(self.splitter.finish)
                continue
            self._collect(lambda: self.splitter.feed(chunk))

    def _collect(self, records_fn):
        try:
            for record in records_fn():
                self._ready.append(record)
        except SplitError as e:
            self.poller.close()
            self.splitter.reset()
            self._error = e


def tail_chunks(path, chunk_size=DEFAULT_CHUNK_SIZE, starting_offset=0,
                poll_interval=DEFAULT_POLL_INTERVAL, read_once=False):
    """Iterate over the chunks of a growing file, blocking while waiting
    for more data. Returns the ChunkPoller, whose cancel() ends the
    iteration.
    """
    return ChunkPoller(path, chunk_size, starting_offset, poll_interval,
                       read_once)


def tail_lines(path, chunk_size=DEFAULT_CHUNK_SIZE, starting_offset=0,
               poll_interval=DEFAULT_POLL_INTERVAL, read_once=False,
               delimiter=DEFAULT_DELIMITER, encoding=DEFAULT_ENCODING,
               max_line_length=DEFAULT_MAX_LINE_LENGTH, emit_partial=False):
    """Iterate over the delimited text records of a growing file, blocking
    while waiting for more data. Returns a LineTail. emit_partial only
    matters when a read_once pass ends; after cancel() nothing more is
    returned.
    """
    return LineTail(ChunkPoller(path, chunk_size, starting_offset,
                                poll_interval, read_once),
                    DelimiterSplitter(delimiter, encoding, max_line_length,
                                      emit_partial))


class FileTailReader(OutputStage, DirectOutputStageMixin):
    """Output stage that emits the bytes appended to a file as chunks.
    Schedule it with Scheduler.schedule_polling(): each _observe() call
    reads at most one chunk, and a call that finds nothing new tells the
    scheduler to wait poll_interval seconds.

    The stream completes after the first pass in read_once mode, or when the
    schedule is cancelled. Errors are sent downstream after the file has
    been closed.
    """
    def __init__(self, path, chunk_size=DEFAULT_CHUNK_SIZE, starting_offset=0,
                 poll_interval=DEFAULT_POLL_INTERVAL, read_once=False,
                 name=None):
        super().__init__()
        self.poller = ChunkPoller(path, chunk_size, starting_offset,
                                  poll_interval, read_once)
        self.name = name

    @property
    def poll_interval(self):
        return self.poller.poll_interval

    @property
    def offset(self):
        return self.poller.offset

    @property
    def closed(self):
        """True once the file handle has been released.
        """
        return self.poller.closed

    def _observe(self):
        try:
            chunk = self.poller.read_chunk()
        except StopIteration:
            self._dispatch_completed()
        except FatalError:
            raise
        except Exception as e:
            logger.error("%s failed: %s", self, e)
            self._dispatch_error(e)
        else:
            if chunk is None:
                return False
            self._dispatch_next(chunk)
        return True

    @property
    def cancelled(self):
        """True if the stream was ended by a cancel rather than by reaching
        the end of a read_once pass. Downstream splitters check this to
        drop their partial record.
        """
        return self.poller.cancelled

    def _cancel(self):
        if self._is_closed():
            self.poller.close()
            return
        self.poller.cancel()
        self._dispatch_completed()

    def __str__(self):
        return self.name if self.name else 'file_tail(%s)' % self.poller.path


class FileTailLineReader(FileTailReader):
    """Like FileTailReader, but emits the text records of the file,
    split on delimiter and decoded with encoding. The splitting happens
    inside the stage, so a LineTooLongError or RecordDecodeError is
    dispatched only after the file has been closed.
    """
    def __init__(self, path, chunk_size=DEFAULT_CHUNK_SIZE, starting_offset=0,
                 poll_interval=DEFAULT_POLL_INTERVAL, read_once=False,
                 delimiter=DEFAULT_DELIMITER, encoding=DEFAULT_ENCODING,
                 max_line_length=DEFAULT_MAX_LINE_LENGTH, emit_partial=False,
                 name=None):
        super().__init__(path, chunk_size, starting_offset, poll_interval,
                         read_once, name)
        self.splitter = DelimiterSplitter(delimiter, encoding, max_line_length,
                                          emit_partial)

    def _observe(self):
        try:
            chunk = self.poller.read_chunk()
            if chunk is None:
                return False
            for record in self.splitter.feed(chunk):
                self._dispatch_next(record)
                if self._is_closed():
                    break # cancelled by a downstream stage
        except StopIteration:
            self._finish()
        except FatalError:
            self.poller.close()
            raise
        except Exception as e:
            self._fail(e)
        return True

    def _fail(self, e):
        self.poller.close()
        self.splitter.reset()
        logger.error("%s failed: %s", self, e)
        self._dispatch_error(e)

    def _finish(self):
        try:
            records = self.splitter.finish()
        except SplitError as e:
            self._fail(e)
            return
        for record in records:
            self._dispatch_next(record)
        self._dispatch_completed()

    def _cancel(self):
        if self._is_closed():
            self.poller.close()
            return
        # a cancelled tail emits nothing more, so the partial record goes
        self.poller.cancel()
        self.splitter.reset()
        self._dispatch_completed()

    def __str__(self):
        return self.name if self.name else 'file_tail_lines(%s)' % self.poller.path


class DirectoryReader(IterableAsOutputStage):
    """Finite source of the paths in a directory. Use ls() or walk() to
    create one and schedule it with schedule_recurring().
    """
    @classmethod
    def ls(cls, directory):
        """The entries of directory, in name order.
        """
        directory = os.fspath(directory)
        return cls(_ls(directory), name='directory_ls(%s)' % directory)

    @classmethod
    def walk(cls, directory, max_depth=None):
        """directory itself, then everything below it, depth first, each
        directory before its contents. If max_depth is given, entries more
        than max_depth levels below directory are skipped.
        """
        directory = os.fspath(directory)
        if max_depth is not None and max_depth<0:
            raise InvalidParameterError("max_depth must not be negative, got %s" %
                                        max_depth)
        return cls(_walk(directory, max_depth, 0),
                   name='directory_walk(%s)' % directory)

    def _close(self):
        self.iterable.close()


def _sorted_entries(directory):
    with os.scandir(directory) as it:
        return sorted(it, key=lambda entry: entry.name)

def _ls(directory):
    for entry in _sorted_entries(directory):
        yield entry.path

def _walk(directory, max_depth, depth):
    if depth==0 and not stat.S_ISDIR(os.stat(directory).st_mode):
        yield directory # walking a plain file yields just the file
        return
    yield directory
    if max_depth is not None and depth>=max_depth:
        return
    for entry in _sorted_entries(directory):
        if entry.is_dir(follow_symlinks=False):
            yield from _walk(entry.path, max_depth, depth+1)
        else:
            yield entry.path

def directory_ls(directory):
    return DirectoryReader.ls(directory)

def directory_walk(directory, max_depth=None):
    return DirectoryReader.walk(directory, max_depth)

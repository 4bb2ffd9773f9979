# Copyright 2016,2017 by MPI-SWS and Data-Ken Research.
# Licensed under the Apache 2.0 License.
"""Split a stream of byte chunks into delimiter-terminated text records.

Chunks are read from files (or sockets) in arbitrary sizes, so a record may
be spread over several chunks and one chunk may hold many records. The
DelimiterSplitter keeps the bytes of the record currently being assembled
and only emits records once their delimiter has been seen::

    >>> s = DelimiterSplitter()
    >>> list(s.feed(b'a\\nb'))
    ['a']
    >>> list(s.feed(b'c\\n'))
    ['bc']

The buffer is bounded by max_line_length. A stream with no delimiter in
sight fails with LineTooLongError instead of eating all the memory.
"""
import codecs
import logging
logger = logging.getLogger(__name__)

from tailflow.base import OutputStage, Filter, FatalError, \
                          InvalidParameterError, filtermethod

DEFAULT_DELIMITER = b'\n'
DEFAULT_ENCODING = 'utf-8'
DEFAULT_MAX_LINE_LENGTH = 8192


class SplitError(Exception):
    pass

class LineTooLongError(SplitError):
    pass

class RecordDecodeError(SplitError):
    """The bytes of a record are not valid in the configured encoding.
    The underlying UnicodeDecodeError is the __cause__.
    """
    pass


class DelimiterSplitter:
    """Re-segments chunks into records.

    Everything fed in is either part of a record that has been returned
    (with its delimiter dropped) or still held in ``pending``, in order.

    If the stream ends in the middle of a record, finish() throws the
    leftover away unless emit_partial is True, in which case it becomes
    one final record.
    """
    def __init__(self, delimiter=DEFAULT_DELIMITER, encoding=DEFAULT_ENCODING,
                 max_line_length=DEFAULT_MAX_LINE_LENGTH, emit_partial=False):
        try:
            codecs.lookup(encoding)
        except LookupError as e:
            raise InvalidParameterError("Unknown encoding '%s'" % encoding) from e
        if isinstance(delimiter, str):
            delimiter = delimiter.encode(encoding)
            # utf-16, utf-32 and utf-8-sig put a byte order mark first
            bom = ''.encode(encoding)
            if bom and delimiter.startswith(bom):
                delimiter = delimiter[len(bom):]
        if len(delimiter)==0:
            raise InvalidParameterError("Delimiter must not be empty")
        if max_line_length<=0:
            raise InvalidParameterError("max_line_length must be positive, got %s" %
                                        max_line_length)
        self.delimiter = bytes(delimiter)
        self.encoding = encoding
        self.max_line_length = max_line_length
        self.emit_partial = emit_partial
        self.pending = bytearray()
        # where the next delimiter search starts; everything before it is
        # known not to contain a delimiter
        self._scan_from = 0

    def feed(self, chunk):
        """Append chunk to the pending bytes and return an iterator over the
        records it completes. Records are removed from the buffer as the
        iterator advances, so an iterator that is not consumed loses nothing:
        the next feed() picks the records up.

        Raises RecordDecodeError for an undecodable record and, once all
        complete records have been returned, LineTooLongError if the
        remaining partial record is longer than max_line_length.
        """
        self.pending.extend(chunk)
        return self._drain()

    def _drain(self):
        dlen = len(self.delimiter)
        while True:
            idx = self.pending.find(self.delimiter, self._scan_from)
            if idx==-1:
                break
            raw = bytes(self.pending[:idx])
            del self.pending[:idx+dlen]
            self._scan_from = 0
            yield self._decode(raw)
        # a delimiter may straddle this chunk and the next one
        self._scan_from = max(0, len(self.pending)-dlen+1)
        if len(self.pending)>self.max_line_length:
            raise LineTooLongError("Read %d bytes without finding the delimiter %r (max_line_length=%d)" %
                                   (len(self.pending), self.delimiter,
                                    self.max_line_length))

    def _decode(self, raw):
        try:
            return raw.decode(self.encoding)
        except UnicodeDecodeError as e:
            raise RecordDecodeError("Record is not valid %s: %r" %
                                    (self.encoding, raw[:64])) from e

    def finish(self):
        """The upstream has ended. Returns the list of final records: either
        empty, or the unterminated leftover if emit_partial is set.
        """
        leftover = bytes(self.pending)
        self.reset()
        if len(leftover)==0:
            return []
        if self.emit_partial:
            return [self._decode(leftover)]
        logger.debug("Discarding %d bytes of unterminated record at end of stream",
                     len(leftover))
        return []

    def reset(self):
        self.pending.clear()
        self._scan_from = 0

    def __str__(self):
        return 'DelimiterSplitter(%r, %s)' % (self.delimiter, self.encoding)


class SplitLines(Filter):
    """Filter from byte chunks to text records. A splitting or decoding
    error ends the stream with on_error() and disconnects from upstream,
    which lets the scheduler stop the source.

    If the upstream stage has a true ``cancelled`` attribute when it
    completes (as FileTailReader does after a cancel), the partial record
    is dropped even with emit_partial.
    """
    def __init__(self, previous_in_chain, splitter):
        super().__init__(previous_in_chain)
        self.upstream = previous_in_chain
        self.splitter = splitter

    def _fail(self, e):
        logger.error("%s: %s", self, e)
        self.disconnect_from_upstream()
        self.splitter.reset()
        self._dispatch_error(e)

    def on_next(self, chunk):
        try:
            for record in self.splitter.feed(chunk):
                self._dispatch_next(record)
                if self._is_closed():
                    break
        except FatalError:
            raise
        except Exception as e:
            self._fail(e)

    def on_completed(self):
        if getattr(self.upstream, 'cancelled', False):
            self.splitter.reset()
            self._dispatch_completed()
            return
        try:
            records = self.splitter.finish()
        except FatalError:
            raise
        except Exception as e:
            self._fail(e)
        else:
            for record in records:
                self._dispatch_next(record)
            self._dispatch_completed()

    def on_error(self, e):
        self.splitter.reset()
        self._dispatch_error(e)

    def __str__(self):
        return 'split_lines(%r)' % self.splitter.delimiter


@filtermethod(OutputStage)
def split_lines(this, delimiter=DEFAULT_DELIMITER, encoding=DEFAULT_ENCODING,
                max_line_length=DEFAULT_MAX_LINE_LENGTH, emit_partial=False):
    """Split a stream of byte chunks into text records separated by
    delimiter (a newline by default). A partial record left over when the
    stream completes is dropped, unless emit_partial is True.

    On an error, downstream gets on_error() before the source has released
    its file: the source is only closed at its next scheduler step, once it
    sees it has no connections left. Use FileTailLineReader, which splits
    inside the stage, when the file must be closed before the error is
    dispatched.
    """
    return SplitLines(this, DelimiterSplitter(delimiter, encoding,
                                              max_line_length, emit_partial))

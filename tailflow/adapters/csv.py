# Copyright 2016,2017 by MPI-SWS and Data-Ken Research.
# Licensed under the Apache 2.0 License.
"""Stages for CSV (spreadsheet) records.

These work one record at a time, so they compose with the line-oriented
file tail to follow a CSV file that is being appended to::

    FileTailLineReader('readings.csv').parse_csv().csv_to_dict().output()

Each text record must hold one complete CSV row (no quoted newlines).
"""
import io
import csv as csvlib
import logging
logger = logging.getLogger(__name__)

from tailflow.base import OutputStage, XformOrDropFilter, FunctionFilter, \
                          filtermethod

COMMA = ','
SEMICOLON = ';'
TAB = '\t'
DOUBLE_QUOTE = '"'
CR_LF = '\r\n'


@filtermethod(OutputStage)
def parse_csv(this, delimiter=COMMA, quotechar=DOUBLE_QUOTE):
    """Parse each text record into a list of field strings. A malformed
    record ends the stream with csv.Error.
    """
    def on_next(self, line):
        rows = list(csvlib.reader([line], delimiter=delimiter,
                                  quotechar=quotechar, strict=True))
        self._dispatch_next(rows[0] if rows else [])
    return FunctionFilter(this, on_next, name='parse_csv')


class CsvToDict(XformOrDropFilter):
    """Turn rows into dicts. The keys are the given headers or, if there
    are none, the values of the first row, which is not passed on. Fields
    beyond the last header are dropped; a short row gives a dict with fewer
    keys.
    """
    def __init__(self, previous_in_chain, headers=None):
        super().__init__(previous_in_chain)
        self.headers = list(headers) if headers is not None else None

    def _filter(self, row):
        if self.headers is None:
            self.headers = list(row)
            logger.debug("%s: header row is %s", self, ', '.join(self.headers))
            return None
        return dict(zip(self.headers, row))

    def __str__(self):
        return 'csv_to_dict()'


@filtermethod(OutputStage)
def csv_to_dict(this, headers=None):
    """Map each row (a list of fields) to a dict keyed by column name.
    """
    return CsvToDict(this, headers)


@filtermethod(OutputStage)
def format_csv(this, delimiter=COMMA, quotechar=DOUBLE_QUOTE,
               line_terminator=CR_LF):
    """Format each list of fields as one CSV line, quoting only where
    needed. The line ends with line_terminator.
    """
    def on_next(self, fields):
        buf = io.StringIO()
        writer = csvlib.writer(buf, delimiter=delimiter, quotechar=quotechar,
                               lineterminator=line_terminator)
        writer.writerow(fields)
        self._dispatch_next(buf.getvalue())
    return FunctionFilter(this, on_next, name='format_csv')

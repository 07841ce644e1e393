"""
Exception types for table dumps.

Fatal errors (InvalidConfiguration, SourceUnavailable) abort a dump before
any range is exported. RangeExportFailure never propagates out of a dump;
it is stored on the outcome of the range that failed.
"""


class TableDumpError(Exception):
    """Base class for all dump errors"""


class InvalidConfiguration(TableDumpError):
    """Raised for unusable dump settings (zero slice size, bad output path...)"""


class SourceUnavailable(TableDumpError):
    """Raised when the source database cannot be reached or counted"""


class RangeExportFailure(TableDumpError):
    """Failure while exporting a single range"""

    def __init__(self, range_index: int, message: str):
        super().__init__(message)
        self.range_index = range_index
        self.message = message

    def __str__(self):
        return self.message

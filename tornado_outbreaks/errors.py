"""
Exception types raised by the outbreak clustering pipeline
"""


class OutbreakError(Exception):
    """Base class for all pipeline errors"""


class ParseError(OutbreakError):
    """A raw tornado record is missing a field or has an unparseable value"""

    def __init__(self, record_id, field, value=None, message=None):
        self.record_id = record_id
        self.field = field
        self.value = value
        if message is None:
            message = f"Record {record_id}: cannot parse field '{field}' (value={value!r})"
        super().__init__(message)


class GeometryError(OutbreakError):
    """Hull or polygon construction is impossible for the given points"""


class ConfigError(OutbreakError):
    """Configuration value is missing or out of range"""

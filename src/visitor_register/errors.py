"""
Domain errors raised by the visitor register.

The HTTP layer maps each of these to a response; nothing here knows about HTTP.
"""

from typing import Iterable, List, Optional


class RegisterError(Exception):
    """Base class for all visitor register errors."""

    message = "Visitor register error"

    def __init__(self, message: Optional[str] = None):
        super().__init__(message or self.message)
        self.message = message or self.message


# PUBLIC_INTERFACE
class ValidationError(RegisterError):
    """
    Mandatory fields are missing or malformed.

    Attributes:
        fields (List[str]): Names of the offending fields.
    """

    message = "Invalid data"

    def __init__(self, fields: Iterable[str], message: Optional[str] = None):
        self.fields: List[str] = list(dict.fromkeys(fields))
        super().__init__(message or f"Invalid data: {', '.join(self.fields)}")


# PUBLIC_INTERFACE
class NotFound(RegisterError):
    message = "Entry not found"


# PUBLIC_INTERFACE
class AlreadyExited(RegisterError):
    """Exit attempted on an entry that is already in the terminal state."""

    message = "Entry already exited"

    def __init__(self, entry, message: Optional[str] = None):
        self.entry = entry
        super().__init__(message)


# PUBLIC_INTERFACE
class InvalidTransition(RegisterError):
    message = "Only the entered -> exited transition is allowed"


# PUBLIC_INTERFACE
class StorageUnavailable(RegisterError):
    message = "Storage unavailable"


# PUBLIC_INTERFACE
class NoValidRows(RegisterError):
    message = "File does not contain any valid rows. Make sure the Name and Address columns are present."


# PUBLIC_INTERFACE
class UnsupportedFile(RegisterError):
    message = "Unsupported file type; use .xlsx or .csv"


# PUBLIC_INTERFACE
class NothingToExport(RegisterError):
    message = "No entries to export"

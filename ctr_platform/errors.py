"""
Error taxonomy for CTR Platform.

Storage failures are reported distinctly from "key absent": an absent counter
is a normal value (None / 0), never an exception.

    StoreError
    ├── StoreWriteError   increment/flush did not durably apply
    ├── StoreReadError    get/list_keys failed (not the same as "absent")
    ├── ShutdownError     close failed; fatal to the process
    └── StoreClosedError  operation attempted on a closed store

    ValidationError (ValueError)  malformed referer / URL list / metric
"""


class StoreError(Exception):
    """Base class for counter store failures."""


class StoreWriteError(StoreError):
    """An increment (or flush) failed; the caller must not assume it applied."""


class StoreReadError(StoreError):
    """A read failed. Distinct from a missing key, which is not an error."""


class ShutdownError(StoreError):
    """The store could not flush/close cleanly."""


class StoreClosedError(StoreError):
    """The store has already been closed."""


class ValidationError(ValueError):
    """Gateway-level input validation failure."""

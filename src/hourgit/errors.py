from __future__ import annotations


class HourgitError(RuntimeError):
    pass


class NotFoundError(HourgitError):
    pass


class WrongKindError(HourgitError):
    pass


class InvalidInputError(HourgitError, ValueError):
    pass


class PreconditionError(HourgitError):
    pass


class StorageError(HourgitError):
    pass

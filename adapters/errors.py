from __future__ import annotations


class AdapterError(RuntimeError):
    pass


class NoRowsError(AdapterError):
    pass


class ContextError(AdapterError):
    pass


class Cancelled(ContextError):
    pass


class DeadlineExceeded(ContextError):
    pass

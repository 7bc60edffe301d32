"""
Exceptions raised at the persistence boundary
"""


class PersistenceError(Exception):
    """The durable store rejected or failed an operation"""


class StoreUnavailableError(PersistenceError):
    """The durable store cannot be reached"""


class ProgressLoadError(PersistenceError):
    """Progress could not be rehydrated from the durable store"""

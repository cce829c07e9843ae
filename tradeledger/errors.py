"""Exceptions raised at the boundaries of a matching pass or an import."""


class TradeLedgerError(Exception):
    """Base class for TradeLedger failures."""


class StorageError(TradeLedgerError):
    """The store rejected a read or write.

    Raised from the persistence step of a matching pass; it aborts the rest of
    the pass.  Groups committed earlier in the pass stay valid.
    """


class FeedError(TradeLedgerError):
    """A broker export could not be read (missing file, no header row)."""

"""
Transfer Errors

Every failure a session can hit is raised as a subclass of TransferError
and handled once, at the top level (see cli.py). Dial failures are not
errors until a bounded retry policy runs out of attempts.
"""


class TransferError(Exception):
    """Base class for all session failures."""


class DialError(TransferError):
    """The receiver gave up dialing the sender."""


class ConnectionRejected(TransferError):
    """The sender answered with the rejection byte."""


class ProtocolError(TransferError):
    """The peer sent something the protocol does not allow."""


class TransferIOError(TransferError):
    """A socket or file operation failed after the connection was made."""


class SourceChangedError(TransferIOError):
    """The source file yielded fewer bytes than announced in the handshake."""


class NamingError(TransferError):
    """No free destination name was found within the probe limit."""

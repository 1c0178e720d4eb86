"""Exception types raised by the automation client."""


class PBAutoError(Exception):
    """Base class for automation client errors."""


class TransportError(PBAutoError, ConnectionError):
    """Socket-level connect or write failure.

    Connection-fatal: the socket is dropped and nothing reconnects it.
    """


class FrameError(PBAutoError, ValueError):
    """Raised when a frame is too short, has a bad magic marker, belongs to
    another domain, or carries a payload shorter than its command's layout.

    The receive path drops such frames; it never surfaces them to consumers.
    """

"""Exceptions raised by the package."""


class InvalidSizeError(ValueError):
    """A buffer was created with a size that is not allowed."""


class PacketReleasedError(RuntimeError):
    """A packet could not be retained because it was already released."""
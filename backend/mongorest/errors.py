class MapperError(Exception):
    """Base class for errors raised by the REST mapping layer."""


class Forbidden(MapperError):
    def __init__(self, reason: str = "Forbidden"):
        super().__init__(reason)
        self.reason = reason


class InvalidDocumentId(MapperError):
    def __init__(self, value):
        super().__init__(f"Invalid document id: {value!r}")
        self.value = value


class StoreUnavailable(Exception):
    """MongoDB could not be reached after all connection attempts."""

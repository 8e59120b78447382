# src/vendmap/exceptions.py


class VendMapError(Exception):
    """Base class for every exception raised by this application."""

    pass


# --- Location extraction ---


class LocationExtractionError(VendMapError):
    """Raised when a photo cannot provide a usable coordinate."""

    pass


class NoImageDataError(LocationExtractionError):
    """Raised when the image bytes cannot be decoded at all."""

    def __init__(self, detail=""):
        msg = "Image data could not be decoded"
        if detail:
            msg = f"{msg}: {detail}"
        super().__init__(msg)


class NoMetadataError(LocationExtractionError):
    """Raised when the image carries no EXIF block."""

    def __init__(self):
        super().__init__("Image has no embedded metadata")


class NoGPSDataError(LocationExtractionError):
    """Raised when the metadata has no GPS group. Ordinary for untagged photos."""

    def __init__(self):
        super().__init__("Image metadata has no GPS information")


class InvalidCoordinatesError(LocationExtractionError):
    """Raised when a required GPS field is missing or has the wrong type."""

    def __init__(self, field):
        self.field = field
        super().__init__(f"GPS field '{field}' is missing or malformed")


class CoordinatesOutOfRangeError(LocationExtractionError):
    """Raised when the decoded position is outside valid WGS-84 ranges."""

    def __init__(self, latitude, longitude):
        self.latitude = latitude
        self.longitude = longitude
        super().__init__(f"GPS position out of range: ({latitude}, {longitude})")


# --- Registry writes ---


class InvalidRecordError(VendMapError, ValueError):
    """Raised when asset attributes would build an invalid record."""

    pass


class AuthenticationRequiredError(VendMapError):
    """Raised when a write is attempted without a signed-in actor."""

    def __init__(self, action="modify assets"):
        super().__init__(f"Sign-in is required to {action}")


class RecordNotFoundError(VendMapError, KeyError):
    """Raised by record stores for unknown ids."""

    def __init__(self, record_id):
        self.record_id = record_id
        super().__init__(f"Asset record not found: {record_id}")

    def __str__(self):
        return self.args[0]


class MediaUploadError(VendMapError):
    """Raised when the record was written but its photo could not be stored."""

    def __init__(self, record_id, cause=None):
        self.record_id = record_id
        self.cause = cause
        msg = f"Asset {record_id} was saved without its photo"
        if cause is not None:
            msg = f"{msg}: {cause}"
        super().__init__(msg)

import simplekml

from .exceptions import (
    AuthenticationRequiredError,
    CoordinatesOutOfRangeError,
    InvalidCoordinatesError,
    InvalidRecordError,
    MediaUploadError,
    NoGPSDataError,
    NoImageDataError,
    NoMetadataError,
    RecordNotFoundError,
)
from .models import MachineCategory, OperatingState, PaymentMethod

# --- Media storage (durable path contract) ---
MEDIA_PATH_TEMPLATE = "assets/{record_id}/image.jpg"
THUMBNAIL_PATH_TEMPLATE = "assets/{record_id}/thumbnail.jpg"

# --- Map defaults ---
DEFAULT_CENTER = (35.6895, 139.6917)  # Tokyo
DEFAULT_SPAN = 0.05
PHOTO_SPAN_DEFAULT = 0.01
PHOTO_SPAN_MIN = 0.001
PHOTO_SPAN_MAX = 0.05

# Distances at or above this are shown in kilometres.
KILOMETER_DISPLAY_THRESHOLD_M = 500

# --- Presentation tables (icons, colours, labels) ---
CATEGORY_LABELS = {
    MachineCategory.BEVERAGE: "Beverages",
    MachineCategory.FOOD: "Food",
    MachineCategory.ICE: "Ice cream",
    MachineCategory.TOBACCO: "Tobacco",
    MachineCategory.OTHER: "Other",
}

CATEGORY_KML_COLORS = {
    MachineCategory.BEVERAGE: simplekml.Color.blue,
    MachineCategory.FOOD: simplekml.Color.orange,
    MachineCategory.ICE: simplekml.Color.cyan,
    MachineCategory.TOBACCO: simplekml.Color.brown,
    MachineCategory.OTHER: simplekml.Color.gray,
}

STATE_LABELS = {
    OperatingState.OPERATING: "Operating",
    OperatingState.OUT_OF_ORDER: "Out of order",
    OperatingState.MAINTENANCE: "Under maintenance",
}

STATE_ICONS = {
    OperatingState.OPERATING: "🟢",
    OperatingState.OUT_OF_ORDER: "🔴",
    OperatingState.MAINTENANCE: "🟡",
}

PAYMENT_LABELS = {
    PaymentMethod.CASH: "Cash",
    PaymentMethod.CARD: "Card",
    PaymentMethod.ELECTRONIC_MONEY: "E-money",
    PaymentMethod.QR_CODE: "QR code",
}

# --- Excel export ---
EXCEL_HEADERS = {
    "B1": "Nº",
    "C1": "ID",
    "D1": "DESCRIPTION",
    "E1": "Category",
    "F1": "Status",
    "G1": "Payment",
    "H1": "Latitude",
    "I1": "Longitude",
    "J1": "Distance",
    "K1": "Updated",
    "L1": "Photo",
}

COLUMN_WIDTHS = {"A": 3, "B": 6, "C": 34, "D": 40, "E": 14, "F": 18, "G": 26, "H": 12, "I": 12, "J": 14, "K": 22, "L": 50}

# --- KML export ---
KML_MACHINE_ICON = "http://maps.google.com/mapfiles/kml/shapes/convenience.png"
KML_OUT_OF_SERVICE_SCALE = 0.8


class UIMessages:
    ADDED = "✅ Vending machine added."
    UPDATED = "✅ Vending machine updated."
    DELETED = "🗑️ Vending machine deleted."
    NO_RESULTS = "No vending machines in this area."
    LOCATION_FROM_PHOTO = "📍 Location taken from the photo."
    LOCATION_MANUAL = "📍 Using the location picked on the map."
    EXPORTED = "✅ Export finished."


class ErrorMessages:
    NO_IMAGE_DATA = "❌ The photo could not be read."
    NO_METADATA = "⚠️ The photo has no metadata."
    NO_GPS_DATA = "ℹ️ This photo has no location information. Pick the spot on the map."
    INVALID_COORDINATES = "⚠️ The photo's location information is malformed."
    COORDINATES_OUT_OF_RANGE = "⚠️ The photo's location is outside valid ranges."
    INVALID_RECORD = "❌ The vending machine details are not valid."
    SIGN_IN_REQUIRED = "🔒 Sign in to add, edit or delete vending machines."
    NOT_FOUND = "❌ That vending machine no longer exists."
    MEDIA_UPLOAD = "⚠️ The vending machine was saved, but its photo could not be uploaded."
    UNKNOWN = "❌ Something went wrong."


_ERROR_MESSAGES = {
    NoImageDataError: ErrorMessages.NO_IMAGE_DATA,
    NoMetadataError: ErrorMessages.NO_METADATA,
    NoGPSDataError: ErrorMessages.NO_GPS_DATA,
    InvalidCoordinatesError: ErrorMessages.INVALID_COORDINATES,
    CoordinatesOutOfRangeError: ErrorMessages.COORDINATES_OUT_OF_RANGE,
    InvalidRecordError: ErrorMessages.INVALID_RECORD,
    AuthenticationRequiredError: ErrorMessages.SIGN_IN_REQUIRED,
    RecordNotFoundError: ErrorMessages.NOT_FOUND,
    MediaUploadError: ErrorMessages.MEDIA_UPLOAD,
}


def describe_error(error: BaseException) -> str:
    """User-facing text for an error raised anywhere below the CLI."""
    for error_type, message in _ERROR_MESSAGES.items():
        if isinstance(error, error_type):
            return message
    return ErrorMessages.UNKNOWN

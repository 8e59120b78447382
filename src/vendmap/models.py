import logging
import math
from dataclasses import dataclass, replace
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Dict, Iterable, Optional, Tuple

from .exceptions import InvalidRecordError, LocationExtractionError

logger = logging.getLogger(__name__)


def is_valid_coordinate(latitude: float, longitude: float) -> bool:
    """True when both values are finite and inside WGS-84 ranges."""
    try:
        lat = float(latitude)
        lon = float(longitude)
    except (TypeError, ValueError):
        return False
    if not (math.isfinite(lat) and math.isfinite(lon)):
        return False
    return -90.0 <= lat <= 90.0 and -180.0 <= lon <= 180.0


@dataclass(frozen=True)
class Coordinate:
    """WGS-84 position in decimal degrees."""
    latitude: float
    longitude: float

    def __post_init__(self):
        if not is_valid_coordinate(self.latitude, self.longitude):
            raise InvalidRecordError(f"Coordinate out of range: ({self.latitude}, {self.longitude})")

    def __str__(self):
        return f"{self.latitude}, {self.longitude}"


class MachineCategory(str, Enum):
    BEVERAGE = "beverage"
    FOOD = "food"
    ICE = "ice"
    TOBACCO = "tobacco"
    OTHER = "other"


class OperatingState(str, Enum):
    OPERATING = "operating"
    OUT_OF_ORDER = "out_of_order"
    MAINTENANCE = "maintenance"


class PaymentMethod(str, Enum):
    CASH = "cash"
    CARD = "card"
    ELECTRONIC_MONEY = "electronic_money"
    QR_CODE = "qr_code"


# Values written by the first mobile client, which stored display labels.
_LEGACY_VALUES = {
    "飲料": MachineCategory.BEVERAGE,
    "食品": MachineCategory.FOOD,
    "アイス": MachineCategory.ICE,
    "たばこ": MachineCategory.TOBACCO,
    "その他": MachineCategory.OTHER,
    "営業中": OperatingState.OPERATING,
    "故障中": OperatingState.OUT_OF_ORDER,
    "メンテナンス中": OperatingState.MAINTENANCE,
    "現金": PaymentMethod.CASH,
    "カード": PaymentMethod.CARD,
    "電子マネー": PaymentMethod.ELECTRONIC_MONEY,
    "QRコード": PaymentMethod.QR_CODE,
}


def _parse_enum(enum_cls, value):
    if isinstance(value, enum_cls):
        return value
    legacy = _LEGACY_VALUES.get(value)
    if isinstance(legacy, enum_cls):
        return legacy
    return enum_cls(value)


def default_payment_methods() -> Tuple[PaymentMethod, ...]:
    """Payment methods assumed when none were given: cash, whatever the category."""
    return (PaymentMethod.CASH,)


def normalize_payment_methods(methods: Optional[Iterable[Any]]) -> Tuple[PaymentMethod, ...]:
    """Parse and de-duplicate payment methods, keeping first-seen order."""
    result = []
    for m in methods or ():
        method = _parse_enum(PaymentMethod, m)
        if method not in result:
            result.append(method)
    return tuple(result)


def _field(data: Dict[str, Any], key: str, legacy_key: str) -> Any:
    # First mobile client: machineType, operatingStatus, imageURL, hasImage, imageUploadedAt
    value = data.get(key)
    return data.get(legacy_key) if value is None else value


def _to_datetime(value) -> Optional[datetime]:
    if value is None or value == "":
        return None
    if isinstance(value, datetime):
        dt = value
    elif isinstance(value, (int, float)):
        dt = datetime.fromtimestamp(value, tz=timezone.utc)
    else:
        dt = datetime.fromisoformat(str(value))
    if dt.tzinfo is None:
        dt = dt.replace(tzinfo=timezone.utc)
    return dt


@dataclass(frozen=True)
class AssetRecord:
    """One registered vending machine.

    ``has_media`` is derived from ``media_url`` so the two can never disagree.
    Instances are only ever built from validated attributes; ``__post_init__``
    refuses anything else.
    """
    id: str
    latitude: float
    longitude: float
    description: str
    category: MachineCategory = MachineCategory.BEVERAGE
    operating_state: OperatingState = OperatingState.OPERATING
    payment_methods: Tuple[PaymentMethod, ...] = (PaymentMethod.CASH,)
    last_updated: Optional[datetime] = None
    media_url: Optional[str] = None
    thumbnail_url: Optional[str] = None
    media_uploaded_at: Optional[datetime] = None

    def __post_init__(self):
        try:
            object.__setattr__(self, "category", _parse_enum(MachineCategory, self.category))
            object.__setattr__(self, "operating_state", _parse_enum(OperatingState, self.operating_state))
            object.__setattr__(self, "payment_methods", normalize_payment_methods(self.payment_methods))
        except ValueError as e:
            raise InvalidRecordError(f"Asset {self.id!r}: {e}") from e
        if not is_valid_coordinate(self.latitude, self.longitude):
            raise InvalidRecordError(
                f"Asset {self.id!r} has coordinates out of range: ({self.latitude}, {self.longitude})"
            )
        if not isinstance(self.description, str) or not self.description.strip():
            raise InvalidRecordError(f"Asset {self.id!r} needs a description")
        if not self.payment_methods:
            raise InvalidRecordError(f"Asset {self.id!r} needs at least one payment method")
        if self.media_url is None and (self.thumbnail_url is not None or self.media_uploaded_at is not None):
            raise InvalidRecordError(f"Asset {self.id!r} has media fields but no media URL")

    @property
    def has_media(self) -> bool:
        return self.media_url is not None

    @property
    def coordinate(self) -> Coordinate:
        return Coordinate(self.latitude, self.longitude)

    def with_media(self, media_url: str, thumbnail_url: str, uploaded_at: datetime) -> "AssetRecord":
        return replace(self, media_url=media_url, thumbnail_url=thumbnail_url, media_uploaded_at=uploaded_at)

    # --- Store documents ---

    @classmethod
    def from_document(cls, record_id: str, data: Dict[str, Any]) -> "AssetRecord":
        """Build a record from a store document.

        Missing optional fields fall back to the defaults the mobile client
        used. Raises ``InvalidRecordError`` when the document cannot form a valid
        record.
        """
        try:
            latitude = float(data["latitude"])
            longitude = float(data["longitude"])
            description = data["description"]
        except KeyError as e:
            raise InvalidRecordError(f"Document {record_id!r} is missing field {e.args[0]!r}") from e
        except (TypeError, ValueError) as e:
            raise InvalidRecordError(f"Document {record_id!r} has non-numeric coordinates") from e

        media_url = _field(data, "mediaURL", "imageURL") or None
        thumbnail_url = None
        uploaded_at = None
        try:
            category = _parse_enum(
                MachineCategory, _field(data, "category", "machineType") or MachineCategory.BEVERAGE
            )
            state = _parse_enum(
                OperatingState, _field(data, "operatingState", "operatingStatus") or OperatingState.OPERATING
            )
            payments = normalize_payment_methods(data.get("paymentMethods")) or default_payment_methods()
            last_updated = _to_datetime(data.get("lastUpdated")) or datetime.now(timezone.utc)
            if media_url:
                thumbnail_url = data.get("thumbnailURL") or None
                uploaded_at = _to_datetime(_field(data, "mediaUploadedAt", "imageUploadedAt"))
        except (TypeError, ValueError) as e:
            raise InvalidRecordError(f"Document {record_id!r}: {e}") from e

        if not media_url and _field(data, "hasMedia", "hasImage"):
            logger.warning(f"Document {record_id} flags media but has no media URL. Treating as no media.")

        return cls(
            id=record_id,
            latitude=latitude,
            longitude=longitude,
            description=description,
            category=category,
            operating_state=state,
            payment_methods=payments,
            last_updated=last_updated,
            media_url=media_url,
            thumbnail_url=thumbnail_url,
            media_uploaded_at=uploaded_at,
        )

    def to_document(self) -> Dict[str, Any]:
        doc: Dict[str, Any] = {
            "latitude": self.latitude,
            "longitude": self.longitude,
            "description": self.description,
            "category": self.category.value,
            "operatingState": self.operating_state.value,
            "paymentMethods": [m.value for m in self.payment_methods],
            "lastUpdated": self.last_updated,
            "hasMedia": self.has_media,
        }
        if self.has_media:
            doc["mediaURL"] = self.media_url
            doc["thumbnailURL"] = self.thumbnail_url
            doc["mediaUploadedAt"] = self.media_uploaded_at
        return doc


@dataclass(frozen=True)
class GeoExtractionResult:
    """Position read from a photo. Optional fields are None when the camera didn't record them."""
    coordinate: Coordinate
    accuracy_meters: Optional[float] = None
    altitude_meters: Optional[float] = None
    captured_at: Optional[datetime] = None


@dataclass(frozen=True)
class ViewportBounds:
    north: float
    south: float
    east: float
    west: float

    def contains(self, latitude: float, longitude: float) -> bool:
        # No wraparound at the antimeridian.
        return self.south <= latitude <= self.north and self.west <= longitude <= self.east


@dataclass(frozen=True)
class Viewport:
    """Visible map region: a centre plus angular height and width in degrees."""
    center: Coordinate
    latitude_delta: float
    longitude_delta: float

    @property
    def bounds(self) -> ViewportBounds:
        half_lat = self.latitude_delta / 2
        half_lon = self.longitude_delta / 2
        return ViewportBounds(
            north=self.center.latitude + half_lat,
            south=self.center.latitude - half_lat,
            east=self.center.longitude + half_lon,
            west=self.center.longitude - half_lon,
        )


@dataclass(frozen=True)
class RecordFilter:
    """Attribute filters. Both set means both must match."""
    category: Optional[MachineCategory] = None
    operating_state: Optional[OperatingState] = None


@dataclass
class PhotoPlacement:
    """Outcome of placing a chosen photo on the map."""
    coordinate: Coordinate
    extraction: Optional[GeoExtractionResult] = None
    error: Optional[LocationExtractionError] = None
    viewport: Optional[Viewport] = None

    @property
    def from_image(self) -> bool:
        return self.extraction is not None and self.coordinate == self.extraction.coordinate

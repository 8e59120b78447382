import io
import logging
import math
import numbers
from datetime import datetime, timezone
from typing import Any, Dict, Optional

from PIL import ExifTags, Image, UnidentifiedImageError
import pillow_heif

from .constants import PHOTO_SPAN_DEFAULT, PHOTO_SPAN_MAX, PHOTO_SPAN_MIN
from .exceptions import (
    CoordinatesOutOfRangeError,
    InvalidCoordinatesError,
    NoGPSDataError,
    NoImageDataError,
    NoMetadataError,
)
from .models import Coordinate, GeoExtractionResult, Viewport, is_valid_coordinate

# Register HEIF opener (phone cameras default to HEIC)
pillow_heif.register_heif_opener()

logger = logging.getLogger(__name__)

GPS = ExifTags.GPS
GPS_DATETIME_FORMAT = "%Y:%m:%d %H:%M:%S"


class LocationExtractor:
    def extract_location(self, image_bytes: bytes) -> GeoExtractionResult:
        """
        Reads the GPS block of an in-memory photo and returns a validated position.

        Only latitude, longitude, their hemisphere references and range
        validity are required. Accuracy, altitude and the GPS timestamp are
        read opportunistically and left as None when absent or unreadable.

        Raises:
            NoImageDataError: bytes are empty or not a decodable image.
            NoMetadataError: the image has no EXIF block.
            NoGPSDataError: EXIF exists but has no GPS group.
            InvalidCoordinatesError: a required GPS field is missing or malformed.
            CoordinatesOutOfRangeError: the decoded position is not on Earth.
        """
        gps_info = self._read_gps_info(image_bytes)

        # 1=LatRef, 2=Lat, 3=LonRef, 4=Lon
        lat_ref = self._read_ref(gps_info, GPS.GPSLatitudeRef)
        lon_ref = self._read_ref(gps_info, GPS.GPSLongitudeRef)
        lat = self._to_degrees(gps_info.get(GPS.GPSLatitude), "GPSLatitude")
        lon = self._to_degrees(gps_info.get(GPS.GPSLongitude), "GPSLongitude")

        lat = -lat if lat_ref == "S" else lat
        lon = -lon if lon_ref == "W" else lon

        if not is_valid_coordinate(lat, lon):
            raise CoordinatesOutOfRangeError(lat, lon)

        result = GeoExtractionResult(
            coordinate=Coordinate(lat, lon),
            accuracy_meters=self._get_accuracy(gps_info),
            altitude_meters=self._get_altitude(gps_info),
            captured_at=self._get_timestamp(gps_info),
        )
        logger.debug(f"Extracted photo location {result.coordinate} (accuracy={result.accuracy_meters})")
        return result

    def _read_gps_info(self, image_bytes: bytes) -> Dict[int, Any]:
        if not image_bytes:
            raise NoImageDataError("empty payload")
        try:
            with Image.open(io.BytesIO(image_bytes)) as image:
                exif = image.getexif()
                if not exif:
                    raise NoMetadataError()
                gps_info = exif.get_ifd(ExifTags.IFD.GPSInfo)
        except (UnidentifiedImageError, Image.DecompressionBombError) as e:
            raise NoImageDataError(str(e)) from e
        except (OSError, SyntaxError, ValueError) as e:
            # Truncated or corrupt containers surface as these from Pillow.
            raise NoImageDataError(str(e)) from e

        if not gps_info:
            logger.debug("Photo has EXIF but no GPS group")
            raise NoGPSDataError()
        return dict(gps_info)

    def _read_ref(self, gps_info: Dict[int, Any], tag: int) -> str:
        ref = gps_info.get(tag)
        if isinstance(ref, bytes):
            ref = ref.decode("ascii", errors="ignore")
        if not isinstance(ref, str) or not ref.strip("\x00 "):
            raise InvalidCoordinatesError(GPS(tag).name)
        return ref.strip("\x00 ").upper()

    def _to_degrees(self, value: Any, field: str) -> float:
        """Degree magnitude from a (deg, min, sec) rational triple or a plain number."""
        try:
            if isinstance(value, (tuple, list)):
                if len(value) != 3 or not all(self._is_number(v) for v in value):
                    raise InvalidCoordinatesError(field)
                d, m, s = (float(v) for v in value)
                decimal = d + (m / 60.0) + (s / 3600.0)
            elif self._is_number(value):
                decimal = float(value)
            else:
                raise InvalidCoordinatesError(field)
        except ZeroDivisionError as e:
            raise InvalidCoordinatesError(field) from e

        if not math.isfinite(decimal):
            raise InvalidCoordinatesError(field)
        # The hemisphere reference alone decides the sign.
        return abs(decimal)

    @staticmethod
    def _is_number(value: Any) -> bool:
        return isinstance(value, numbers.Real) and not isinstance(value, bool)

    def _rational(self, value: Any) -> Optional[float]:
        if isinstance(value, tuple) and len(value) == 2:
            try:
                value = float(value[0]) / float(value[1])
            except (ZeroDivisionError, TypeError, ValueError):
                return None
        if not self._is_number(value):
            return None
        value = float(value)
        return value if math.isfinite(value) else None

    def _get_accuracy(self, gps_info: Dict[int, Any]) -> Optional[float]:
        accuracy = self._rational(gps_info.get(GPS.GPSHPositioningError))
        if accuracy is None or accuracy < 0:
            return None
        return accuracy

    def _get_altitude(self, gps_info: Dict[int, Any]) -> Optional[float]:
        altitude = self._rational(gps_info.get(GPS.GPSAltitude))
        if altitude is None:
            return None
        # AltitudeRef 1 = below sea level
        ref = gps_info.get(GPS.GPSAltitudeRef, 0)
        if isinstance(ref, bytes):
            ref = ref[0] if ref else 0
        return -altitude if ref == 1 else altitude

    def _get_timestamp(self, gps_info: Dict[int, Any]) -> Optional[datetime]:
        date_str = gps_info.get(GPS.GPSDateStamp)
        time_val = gps_info.get(GPS.GPSTimeStamp)
        if not isinstance(date_str, str) or time_val is None:
            return None

        if isinstance(time_val, str):
            time_str = time_val
        elif isinstance(time_val, (tuple, list)) and len(time_val) == 3:
            try:
                h, m, s = (int(float(v)) for v in time_val)
            except (TypeError, ValueError, ZeroDivisionError):
                return None
            time_str = f"{h:02d}:{m:02d}:{s:02d}"
        else:
            return None

        try:
            parsed = datetime.strptime(f"{date_str.strip()} {time_str.strip()}", GPS_DATETIME_FORMAT)
        except ValueError:
            logger.warning(f"Invalid GPS date format: {date_str} {time_str}")
            return None
        return parsed.replace(tzinfo=timezone.utc)


def resolve_effective_coordinate(
    user_picked: Coordinate,
    extraction: Optional[GeoExtractionResult] = None,
    prefer_image: bool = True,
) -> Coordinate:
    """Photo position when one was extracted and preferred, otherwise the user's pick."""
    if extraction is not None and prefer_image:
        return extraction.coordinate
    return user_picked


def camera_viewport(result: GeoExtractionResult) -> Viewport:
    """Map region to show after a photo was located; tighter for more accurate fixes."""
    if result.accuracy_meters is not None:
        delta = min(PHOTO_SPAN_MAX, max(PHOTO_SPAN_MIN, result.accuracy_meters / 100000))
    else:
        delta = PHOTO_SPAN_DEFAULT
    return Viewport(center=result.coordinate, latitude_delta=delta, longitude_delta=delta)

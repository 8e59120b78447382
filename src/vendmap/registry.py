"""
Asset registry service for VendMap.

This module contains the AssetRegistry class which handles:
- Keeping the working set of records in sync with the record store
- Placing a chosen photo on the map (EXIF location vs. the user's pick)
- Adding, updating and deleting assets, including their photos
- Viewport queries over the working set
"""

import logging
import threading
from concurrent.futures import Future, ThreadPoolExecutor
from typing import Any, Callable, Dict, Iterable, List, Optional, Tuple

from .config import DEFAULT_CONFIG
from .constants import MEDIA_PATH_TEMPLATE, THUMBNAIL_PATH_TEMPLATE
from .exceptions import (
    AuthenticationRequiredError,
    InvalidRecordError,
    LocationExtractionError,
    MediaUploadError,
    NoGPSDataError,
)
from .extractor import LocationExtractor, camera_viewport, resolve_effective_coordinate
from .media import encode_jpeg, make_thumbnail
from .models import (
    AssetRecord,
    Coordinate,
    MachineCategory,
    OperatingState,
    PaymentMethod,
    PhotoPlacement,
    RecordFilter,
    Viewport,
    default_payment_methods,
    normalize_payment_methods,
)
from .spatial import visible_records
from .stores import SERVER_TIMESTAMP, AuthProvider, MediaStore, RecordStore, Snapshot

logger = logging.getLogger(__name__)

# Id used while validating attributes before the store assigns the real one
_PENDING_ID = "pending"


class AssetRegistry:
    """Composes the record, media and auth collaborators around the pure core.

    Attributes:
        record_store: Source of truth for asset documents.
        media_store: Binary storage for photos and thumbnails.
        auth: Tells whether someone is signed in.
        extractor: Reads photo locations.
        settings: Media and placement settings (see ``config.DEFAULT_CONFIG``).
    """

    def __init__(
        self,
        record_store: RecordStore,
        media_store: MediaStore,
        auth: AuthProvider,
        extractor: Optional[LocationExtractor] = None,
        settings: Optional[Dict[str, Any]] = None,
        max_workers: int = 2,
    ) -> None:
        self.record_store = record_store
        self.media_store = media_store
        self.auth = auth
        self.extractor = extractor or LocationExtractor()
        self.settings = {**DEFAULT_CONFIG, **(settings or {})}
        self._records: Tuple[AssetRecord, ...] = ()
        self._lock = threading.Lock()
        self._unsubscribe: Optional[Callable[[], None]] = None
        self._executor = ThreadPoolExecutor(max_workers=max_workers, thread_name_prefix="vendmap")

    # --- Working set ---

    @property
    def records(self) -> Tuple[AssetRecord, ...]:
        """Latest snapshot delivered by the record store."""
        with self._lock:
            return self._records

    def start_listening(self) -> None:
        if self._unsubscribe is not None:
            return
        self._unsubscribe = self.record_store.subscribe(self._on_snapshot)

    def stop_listening(self) -> None:
        if self._unsubscribe is not None:
            self._unsubscribe()
            self._unsubscribe = None

    def _on_snapshot(self, documents: Snapshot) -> None:
        records: List[AssetRecord] = []
        for doc in documents:
            record_id = str(doc.get("id", ""))
            try:
                records.append(AssetRecord.from_document(record_id, doc))
            except InvalidRecordError as e:
                logger.warning(f"Skipping undecodable record {record_id}: {e}")
        with self._lock:
            self._records = tuple(records)
        logger.debug(f"Working set refreshed: {len(records)} records")

    def find(self, record_id: str) -> Optional[AssetRecord]:
        return next((r for r in self.records if r.id == record_id), None)

    def visible_records(
        self,
        viewport: Viewport,
        filters: Optional[RecordFilter] = None,
        reference: Optional[Coordinate] = None,
    ) -> List[AssetRecord]:
        return visible_records(self.records, viewport, filters, reference)

    # --- Photo placement ---

    def place_photo(
        self, image_bytes: bytes, fallback: Coordinate, prefer_image: Optional[bool] = None
    ) -> PhotoPlacement:
        """Work out where a chosen photo puts the new asset.

        Extraction errors never propagate: they are returned on the placement
        so the caller can explain them, and ``fallback`` (the user's pick,
        current location or map centre) is used instead.
        """
        if prefer_image is None:
            prefer_image = bool(self.settings.get("prefer_image_location", True))

        try:
            result = self.extractor.extract_location(image_bytes)
        except NoGPSDataError as e:
            logger.info("Photo has no location; keeping the picked coordinate")
            return PhotoPlacement(coordinate=fallback, error=e)
        except LocationExtractionError as e:
            logger.warning(f"Could not read photo location: {e}")
            return PhotoPlacement(coordinate=fallback, error=e)

        coordinate = resolve_effective_coordinate(fallback, result, prefer_image)
        viewport = camera_viewport(result) if coordinate == result.coordinate else None
        return PhotoPlacement(coordinate=coordinate, extraction=result, viewport=viewport)

    # --- Writes ---

    def _require_actor(self, action: str) -> str:
        actor = self.auth.current_actor()
        if not actor:
            raise AuthenticationRequiredError(action)
        return actor

    def add_asset(
        self,
        coordinate: Coordinate,
        description: str,
        category: MachineCategory = MachineCategory.BEVERAGE,
        operating_state: OperatingState = OperatingState.OPERATING,
        payment_methods: Optional[Iterable[PaymentMethod]] = None,
        image_bytes: Optional[bytes] = None,
    ) -> str:
        """Create an asset and, when ``image_bytes`` is given, attach its photo.

        The record is written first without media. If storing the photo
        fails afterwards the record stays as written and MediaUploadError is
        raised with its id.

        Raises:
            AuthenticationRequiredError: nobody is signed in.
            InvalidRecordError: the attributes would form an invalid record.
            MediaUploadError: the record exists but its photo could not be stored.
        """
        actor = self._require_actor("add vending machines")

        payments = normalize_payment_methods(payment_methods) or default_payment_methods()
        # Validate before anything is written
        draft = AssetRecord(
            id=_PENDING_ID,
            latitude=coordinate.latitude,
            longitude=coordinate.longitude,
            description=(description or "").strip(),
            category=category,
            operating_state=operating_state,
            payment_methods=payments,
        )

        document = draft.to_document()
        document["lastUpdated"] = SERVER_TIMESTAMP
        document["hasMedia"] = False
        record_id = self.record_store.create(document)
        logger.info(f"Asset {record_id} added by {actor} at {coordinate}")

        if image_bytes:
            self._attach_media(record_id, image_bytes)
        return record_id

    def _attach_media(self, record_id: str, image_bytes: bytes) -> None:
        try:
            image_url = self.media_store.upload(
                encode_jpeg(image_bytes, int(self.settings["jpeg_quality"])),
                MEDIA_PATH_TEMPLATE.format(record_id=record_id),
            )
            thumbnail_url = self.media_store.upload(
                make_thumbnail(
                    image_bytes,
                    int(self.settings["thumbnail_size"]),
                    int(self.settings["thumbnail_quality"]),
                ),
                THUMBNAIL_PATH_TEMPLATE.format(record_id=record_id),
            )
            self.record_store.update(
                record_id,
                {
                    "hasMedia": True,
                    "mediaURL": image_url,
                    "thumbnailURL": thumbnail_url,
                    "mediaUploadedAt": SERVER_TIMESTAMP,
                },
            )
        except Exception as e:
            logger.error(f"Photo upload failed for asset {record_id}: {e}")
            raise MediaUploadError(record_id, e) from e

    def update_asset(
        self,
        record_id: str,
        operating_state: Optional[OperatingState] = None,
        payment_methods: Optional[Iterable[PaymentMethod]] = None,
    ) -> None:
        """Replace the operating state and/or the whole payment method set."""
        self._require_actor("edit vending machines")

        partial: Dict[str, Any] = {}
        if operating_state is not None:
            partial["operatingState"] = OperatingState(operating_state).value
        if payment_methods is not None:
            methods = normalize_payment_methods(payment_methods)
            if not methods:
                raise InvalidRecordError("At least one payment method is required")
            partial["paymentMethods"] = [m.value for m in methods]
        if not partial:
            return
        self.record_store.update(record_id, partial)

    def delete_asset(self, record: AssetRecord) -> None:
        """Delete an asset and its photos. Photo deletion failures don't block it."""
        self._require_actor("delete vending machines")

        if record.has_media:
            for template in (MEDIA_PATH_TEMPLATE, THUMBNAIL_PATH_TEMPLATE):
                path = template.format(record_id=record.id)
                try:
                    self.media_store.delete(path)
                except Exception as e:
                    logger.warning(f"Could not delete media {path}: {e}")

        self.record_store.delete(record.id)
        logger.info(f"Asset {record.id} deleted")

    # --- Background variants ---

    def submit_add_asset(self, *args: Any, **kwargs: Any) -> "Future[str]":
        """Run add_asset on the registry's worker pool."""
        return self._executor.submit(self.add_asset, *args, **kwargs)

    def submit_delete_asset(self, record: AssetRecord) -> "Future[None]":
        return self._executor.submit(self.delete_asset, record)

    def close(self) -> None:
        self.stop_listening()
        self._executor.shutdown(wait=True)

    def __enter__(self) -> "AssetRegistry":
        return self

    def __exit__(self, *exc_info: Any) -> None:
        self.close()

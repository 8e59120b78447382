#!/usr/bin/env python3
"""
VendMap command line.

Browse, add and maintain crowdsourced vending machine locations.

Usage:
    vendmap locate --file "photo.jpg"
    vendmap list --lat 35.6895 --lon 139.6917 --span 0.05 --category beverage
    vendmap --actor alice add --description "Station exit" --photo "photo.jpg"
    vendmap --actor alice update <id> --state out_of_order
    vendmap --actor alice delete <id>
    vendmap export --kmz out/machines.kmz --xlsx out/machines.xlsx
"""

import argparse
import logging
import sys
from pathlib import Path
from typing import List, Optional

from .config import ConfigManager
from .constants import (
    CATEGORY_LABELS,
    PAYMENT_LABELS,
    STATE_ICONS,
    STATE_LABELS,
    UIMessages,
    describe_error,
)
from .exceptions import MediaUploadError, NoGPSDataError, RecordNotFoundError, VendMapError
from .extractor import LocationExtractor
from .main import build_registry, configure_logging, default_viewport, export_records_backend
from .models import (
    Coordinate,
    MachineCategory,
    OperatingState,
    PaymentMethod,
    RecordFilter,
    Viewport,
)
from .registry import AssetRegistry
from .spatial import distance_meters, format_distance

logger = logging.getLogger(__name__)


def _read_photo(path: str) -> bytes:
    photo = Path(path)
    if not photo.is_file():
        raise FileNotFoundError(f"Photo not found: {photo}")
    return photo.read_bytes()


def _viewport_from_args(args: argparse.Namespace, config: dict) -> Viewport:
    viewport = default_viewport(config)
    lat = args.lat if args.lat is not None else viewport.center.latitude
    lon = args.lon if args.lon is not None else viewport.center.longitude
    span = args.span if args.span is not None else viewport.latitude_delta
    return Viewport(center=Coordinate(lat, lon), latitude_delta=span, longitude_delta=span)


def cmd_locate(args: argparse.Namespace, config: dict) -> int:
    print(f"\n--- Reading location from: {args.file} ---")
    try:
        result = LocationExtractor().extract_location(_read_photo(args.file))
    except NoGPSDataError as e:
        print(describe_error(e))
        return 0

    print(f"📍 Latitude:  {result.coordinate.latitude:.6f}")
    print(f"📍 Longitude: {result.coordinate.longitude:.6f}")
    if result.accuracy_meters is not None:
        print(f"🎯 Accuracy:  ±{result.accuracy_meters:.0f} m")
    if result.altitude_meters is not None:
        print(f"⛰️ Altitude:  {result.altitude_meters:.1f} m")
    if result.captured_at is not None:
        print(f"🕒 Captured:  {result.captured_at.isoformat()}")
    return 0


def cmd_list(args: argparse.Namespace, config: dict, registry: AssetRegistry) -> int:
    viewport = _viewport_from_args(args, config)
    filters = RecordFilter(
        category=MachineCategory(args.category) if args.category else None,
        operating_state=OperatingState(args.state) if args.state else None,
    )
    records = registry.visible_records(viewport, filters)
    if not records:
        print(UIMessages.NO_RESULTS)
        return 0

    for record in records:
        distance = format_distance(distance_meters(viewport.center, record.coordinate))
        payments = ", ".join(PAYMENT_LABELS[m] for m in record.payment_methods)
        photo = " 📷" if record.has_media else ""
        print(
            f"{STATE_ICONS[record.operating_state]} {record.description}{photo}  [{distance}]\n"
            f"    {CATEGORY_LABELS[record.category]} · {STATE_LABELS[record.operating_state]} · {payments}\n"
            f"    id={record.id}  ({record.latitude:.6f}, {record.longitude:.6f})"
        )
    return 0


def cmd_add(args: argparse.Namespace, config: dict, registry: AssetRegistry) -> int:
    picked = None
    if args.lat is not None and args.lon is not None:
        picked = Coordinate(args.lat, args.lon)

    image_bytes = _read_photo(args.photo) if args.photo else None
    coordinate = picked
    if image_bytes:
        fallback = picked or default_viewport(config).center
        placement = registry.place_photo(image_bytes, fallback, prefer_image=not args.ignore_photo_location)
        if placement.error is not None:
            print(describe_error(placement.error))
        # The map centre is only a fallback for the interactive client
        if picked is not None or placement.from_image:
            coordinate = placement.coordinate
            print(UIMessages.LOCATION_FROM_PHOTO if placement.from_image else UIMessages.LOCATION_MANUAL)

    if coordinate is None:
        print("❌ Give --lat/--lon or a geotagged --photo.")
        return 2

    try:
        record_id = registry.add_asset(
            coordinate=coordinate,
            description=args.description,
            category=MachineCategory(args.category),
            operating_state=OperatingState(args.state),
            payment_methods=[PaymentMethod(p) for p in args.payment] if args.payment else None,
            image_bytes=image_bytes,
        )
    except MediaUploadError as e:
        print(describe_error(e))
        print(f"   id={e.record_id}")
        return 1

    print(UIMessages.ADDED)
    print(f"   id={record_id}  ({coordinate.latitude:.6f}, {coordinate.longitude:.6f})")
    return 0


def cmd_update(args: argparse.Namespace, config: dict, registry: AssetRegistry) -> int:
    registry.update_asset(
        args.id,
        operating_state=OperatingState(args.state) if args.state else None,
        payment_methods=[PaymentMethod(p) for p in args.payment] if args.payment else None,
    )
    print(UIMessages.UPDATED)
    return 0


def cmd_delete(args: argparse.Namespace, config: dict, registry: AssetRegistry) -> int:
    record = registry.find(args.id)
    if record is None:
        raise RecordNotFoundError(args.id)
    registry.delete_asset(record)
    print(UIMessages.DELETED)
    return 0


def cmd_export(args: argparse.Namespace, config: dict, registry: AssetRegistry) -> int:
    viewport = None
    if not args.all:
        viewport = _viewport_from_args(args, config)
    message = export_records_backend(registry, kmz_path=args.kmz, xlsx_path=args.xlsx, viewport=viewport)
    print(UIMessages.EXPORTED)
    print(message)
    return 0


def _add_area_arguments(parser: argparse.ArgumentParser) -> None:
    parser.add_argument("--lat", type=float, help="Map centre latitude (default from settings)")
    parser.add_argument("--lon", type=float, help="Map centre longitude (default from settings)")
    parser.add_argument("--span", type=float, help="Map span in degrees (default from settings)")


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="vendmap",
        description="Crowdsourced vending machine map.",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog=__doc__,
    )
    parser.add_argument("--actor", type=str, help="Signed-in user id (default from settings)")
    parser.add_argument("--data-dir", type=str, help="Directory holding records and photos")
    parser.add_argument("-v", "--verbose", action="store_true", help="Debug logging")
    sub = parser.add_subparsers(dest="command", required=True)

    p = sub.add_parser("locate", help="Read the GPS position embedded in a photo")
    p.add_argument("--file", type=str, required=True, help="Photo to analyse")

    p = sub.add_parser("list", help="Vending machines in the map area, nearest first")
    _add_area_arguments(p)
    p.add_argument("--category", choices=[c.value for c in MachineCategory])
    p.add_argument("--state", choices=[s.value for s in OperatingState])

    p = sub.add_parser("add", help="Register a vending machine")
    p.add_argument("--description", type=str, required=True)
    p.add_argument("--lat", type=float, help="Picked latitude")
    p.add_argument("--lon", type=float, help="Picked longitude")
    p.add_argument("--photo", type=str, help="Photo of the machine (its GPS position is used when present)")
    p.add_argument(
        "--ignore-photo-location", action="store_true", help="Keep --lat/--lon even if the photo is geotagged"
    )
    p.add_argument("--category", choices=[c.value for c in MachineCategory], default=MachineCategory.BEVERAGE.value)
    p.add_argument("--state", choices=[s.value for s in OperatingState], default=OperatingState.OPERATING.value)
    p.add_argument("--payment", action="append", choices=[m.value for m in PaymentMethod])

    p = sub.add_parser("update", help="Change status or payment methods")
    p.add_argument("id")
    p.add_argument("--state", choices=[s.value for s in OperatingState])
    p.add_argument("--payment", action="append", choices=[m.value for m in PaymentMethod])

    p = sub.add_parser("delete", help="Remove a vending machine and its photo")
    p.add_argument("id")

    p = sub.add_parser("export", help="Write KMZ and/or Excel files")
    _add_area_arguments(p)
    p.add_argument("--all", action="store_true", help="Export every record, not just the map area")
    p.add_argument("--kmz", type=str)
    p.add_argument("--xlsx", type=str)

    return parser


COMMANDS = {
    "list": cmd_list,
    "add": cmd_add,
    "update": cmd_update,
    "delete": cmd_delete,
    "export": cmd_export,
}


def main(argv: Optional[List[str]] = None) -> int:
    """Main entry point for the CLI tool."""
    args = build_parser().parse_args(argv)
    configure_logging(logging.DEBUG if args.verbose else logging.WARNING)

    config = ConfigManager.load_config()
    if args.data_dir:
        config["data_dir"] = args.data_dir

    try:
        if args.command == "locate":
            return cmd_locate(args, config)

        registry = build_registry(config, actor_id=args.actor)
        try:
            return COMMANDS[args.command](args, config, registry)
        finally:
            registry.close()
    except VendMapError as e:
        logger.info(f"{args.command} failed: {e}")
        print(describe_error(e))
        return 1
    except FileNotFoundError as e:
        print(f"\n❌ ERROR: {e}")
        return 1
    except ValueError as e:
        print(f"\n❌ ERROR: {e}")
        return 1


if __name__ == "__main__":
    sys.exit(main())

# src/vendmap/main.py
"""Composition root and backend helpers for VendMap."""

import logging
from logging.handlers import RotatingFileHandler
from pathlib import Path
from typing import Any, Dict, Optional

from .config import ConfigManager
from .exporters import ExcelExporter, KmzExporter
from .models import Coordinate, RecordFilter, Viewport
from .registry import AssetRegistry
from .stores import JsonRecordStore, LocalMediaStore, StaticAuth

LOG_DIR = Path.home() / ".vendmap_logs"
LOG_FORMAT = "%(asctime)s - %(levelname)s - %(message)s"

logger = logging.getLogger(__name__)


def configure_logging(level: int = logging.INFO, log_dir: Optional[Path] = None) -> None:
    """Send logs to a rotating file plus stderr."""
    log_dir = Path(log_dir or LOG_DIR)
    log_dir.mkdir(parents=True, exist_ok=True)
    log_file = log_dir / "app.log"

    logging.basicConfig(
        level=level,
        format=LOG_FORMAT,
        handlers=[
            RotatingFileHandler(log_file, maxBytes=1_000_000, backupCount=5, encoding="utf-8"),
            logging.StreamHandler(),
        ],
    )


def build_registry(config: Optional[Dict[str, Any]] = None, actor_id: Optional[str] = None) -> AssetRegistry:
    """Wire the local stores from settings and start syncing the working set."""
    config = config or ConfigManager.load_config()
    data_dir = Path(config["data_dir"]).expanduser()

    registry = AssetRegistry(
        record_store=JsonRecordStore(data_dir / "assets.json"),
        media_store=LocalMediaStore(data_dir / "media"),
        auth=StaticAuth(actor_id or config.get("actor_id")),
        settings=config,
    )
    registry.start_listening()
    logger.info(f"Registry ready: {len(registry.records)} records in {data_dir}")
    return registry


def default_viewport(config: Dict[str, Any]) -> Viewport:
    span = float(config["default_span"])
    center = Coordinate(float(config["default_latitude"]), float(config["default_longitude"]))
    return Viewport(center=center, latitude_delta=span, longitude_delta=span)


def export_records_backend(
    registry: AssetRegistry,
    kmz_path: Optional[str] = None,
    xlsx_path: Optional[str] = None,
    viewport: Optional[Viewport] = None,
    filters: Optional[RecordFilter] = None,
) -> str:
    """
    Export records to KMZ and/or Excel.

    With a viewport only the visible records are exported, nearest to its
    centre first; otherwise the whole working set in store order.

    Returns:
        Summary message listing the files written.

    Raises:
        ValueError: If neither output path is given.
    """
    if not kmz_path and not xlsx_path:
        raise ValueError("Nothing to export: give a KMZ and/or an Excel path")

    if viewport is not None:
        records = registry.visible_records(viewport, filters)
        reference = viewport.center
    else:
        records = list(registry.records)
        reference = None

    written = []
    if kmz_path:
        kmz_gen = KmzExporter()
        for record in records:
            kmz_gen.add_record(record)
        Path(kmz_path).parent.mkdir(parents=True, exist_ok=True)
        kmz_gen.save(kmz_path)
        written.append(Path(kmz_path).name)

    if xlsx_path:
        excel_gen = ExcelExporter()
        for record in records:
            excel_gen.add_record(record, reference)
        Path(xlsx_path).parent.mkdir(parents=True, exist_ok=True)
        excel_gen.save(xlsx_path)
        written.append(Path(xlsx_path).name)

    logger.info(f"Exported {len(records)} records to {', '.join(written)}")
    return f"Exported: {len(records)} vending machines.\nGenerated:\n" + "\n".join(f"- {name}" for name in written)

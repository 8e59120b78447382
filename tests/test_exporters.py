import pytest
import sys
import os
import zipfile
from datetime import datetime, timezone

import openpyxl

# Add src to path
sys.path.append(os.path.abspath(os.path.join(os.path.dirname(__file__), '../src')))

from vendmap.exporters import ExcelExporter, KmzExporter
from vendmap.main import export_records_backend
from vendmap.models import AssetRecord, Coordinate, MachineCategory, OperatingState, PaymentMethod, Viewport
from vendmap.registry import AssetRegistry
from vendmap.stores import InMemoryRecordStore, LocalMediaStore, StaticAuth

UPDATED = datetime(2024, 6, 1, 9, 30, 0, tzinfo=timezone.utc)


def make_record(record_id="abc", lat=35.6895, lon=139.6917, **kwargs):
    return AssetRecord(
        id=record_id,
        latitude=lat,
        longitude=lon,
        description=kwargs.pop("description", "Station <east> exit"),
        last_updated=UPDATED,
        **kwargs,
    )


class TestExcelExporter:
    def test_create_workbook(self):
        generator = ExcelExporter()
        assert generator.wb is not None
        assert generator.ws.title == "Vending machines"
        assert generator.ws['D1'].value == "DESCRIPTION"
        assert generator.row_count == 0

    def test_add_record(self):
        generator = ExcelExporter()
        record = make_record(
            payment_methods=[PaymentMethod.CASH, PaymentMethod.QR_CODE],
            operating_state=OperatingState.OUT_OF_ORDER,
        )

        generator.add_record(record, Coordinate(35.6895, 139.6917))

        assert generator.ws['B2'].value == 1
        assert generator.ws['C2'].value == "abc"
        assert generator.ws['D2'].value == "Station <east> exit"
        assert generator.ws['E2'].value == "Beverages"
        assert generator.ws['F2'].value == "Out of order"
        assert generator.ws['G2'].value == "Cash, QR code"
        assert generator.ws['H2'].value == 35.6895
        assert generator.ws['I2'].value == 139.6917
        assert generator.ws['J2'].value == "0 m"
        assert generator.ws['K2'].value == "2024-06-01 09:30:00"
        assert generator.ws['L2'].value == ""
        assert generator.row_count == 1

    def test_no_reference_leaves_distance_empty(self):
        generator = ExcelExporter()
        generator.add_record(make_record())
        assert generator.ws['J2'].value == ""

    def test_save(self, tmp_path):
        generator = ExcelExporter()
        generator.add_record(make_record("one"))
        generator.add_record(make_record("two"))
        path = tmp_path / "machines.xlsx"

        generator.save(path)

        ws = openpyxl.load_workbook(path).active
        assert ws['C3'].value == "two"
        assert ws['B3'].value == 2


class TestKmzExporter:
    def test_save_writes_kml_inside_kmz(self, tmp_path):
        generator = KmzExporter()
        generator.add_record(make_record())
        generator.add_record(make_record("m", category=MachineCategory.ICE).with_media(
            "file:///img.jpg", "file:///thumb.jpg", UPDATED
        ))
        path = tmp_path / "machines.kmz"

        generator.save(path)

        assert generator.point_count == 2
        with zipfile.ZipFile(path) as kmz:
            kml = kmz.read("doc.kml").decode("utf-8")
        assert "139.6917,35.6895" in kml
        assert "file:///thumb.jpg" in kml

    def test_out_of_service_icon_is_smaller(self):
        generator = KmzExporter()
        generator.add_record(make_record(operating_state=OperatingState.MAINTENANCE))
        kml = generator.kml.kml()
        assert "<scale>0.8</scale>" in kml


class TestExportRecordsBackend:
    @pytest.fixture
    def registry(self, tmp_path):
        reg = AssetRegistry(InMemoryRecordStore(), LocalMediaStore(tmp_path / "media"), StaticAuth("alice"))
        reg.start_listening()
        reg.add_asset(Coordinate(35.6895, 139.6917), "Centre")
        reg.add_asset(Coordinate(35.70, 139.70), "Nearby")
        reg.add_asset(Coordinate(34.69, 135.50), "Osaka")
        yield reg
        reg.close()

    def test_requires_an_output(self, registry):
        with pytest.raises(ValueError):
            export_records_backend(registry)

    def test_exports_visible_records_nearest_first(self, registry, tmp_path):
        viewport = Viewport(center=Coordinate(35.6895, 139.6917), latitude_delta=0.05, longitude_delta=0.05)
        xlsx = tmp_path / "out" / "machines.xlsx"
        kmz = tmp_path / "out" / "machines.kmz"

        message = export_records_backend(registry, kmz_path=str(kmz), xlsx_path=str(xlsx), viewport=viewport)

        assert "Exported: 2 vending machines." in message
        assert kmz.exists()
        ws = openpyxl.load_workbook(xlsx).active
        assert [ws['D2'].value, ws['D3'].value, ws['D4'].value] == ["Centre", "Nearby", None]

    def test_exports_everything_without_viewport(self, registry, tmp_path):
        xlsx = tmp_path / "all.xlsx"

        message = export_records_backend(registry, xlsx_path=str(xlsx))

        assert "Exported: 3 vending machines." in message
        assert "- all.xlsx" in message

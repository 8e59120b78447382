from html import escape
from typing import Optional

import openpyxl
import simplekml
from openpyxl.styles import Border, Font, Side

from .constants import (
    CATEGORY_KML_COLORS,
    CATEGORY_LABELS,
    COLUMN_WIDTHS,
    EXCEL_HEADERS,
    KML_MACHINE_ICON,
    KML_OUT_OF_SERVICE_SCALE,
    PAYMENT_LABELS,
    STATE_LABELS,
)
from .models import AssetRecord, Coordinate, OperatingState
from .spatial import distance_meters, format_distance


def _payments_text(record: AssetRecord) -> str:
    return ", ".join(PAYMENT_LABELS[m] for m in record.payment_methods)


class ExcelExporter:
    def __init__(self, title="Vending machines"):
        self.wb = openpyxl.Workbook()
        self.ws = self.wb.active
        self.ws.title = title
        self.thin_border = Border(
            left=Side(style="thin"), right=Side(style="thin"), top=Side(style="thin"), bottom=Side(style="thin")
        )
        self._row = 2
        self._setup_headers()

    def _setup_headers(self):
        for cell_coord, text in EXCEL_HEADERS.items():
            cell = self.ws[cell_coord]
            cell.value = text
            cell.font = Font(bold=True)
            cell.border = self.thin_border

        # Column widths
        for col, width in COLUMN_WIDTHS.items():
            self.ws.column_dimensions[col].width = width

    def add_record(self, record: AssetRecord, reference: Optional[Coordinate] = None):
        distance = format_distance(distance_meters(reference, record.coordinate)) if reference else ""
        updated = record.last_updated.strftime("%Y-%m-%d %H:%M:%S") if record.last_updated else ""

        cells = [
            (2, self._row - 1),
            (3, record.id),
            (4, record.description),
            (5, CATEGORY_LABELS[record.category]),
            (6, STATE_LABELS[record.operating_state]),
            (7, _payments_text(record)),
            (8, record.latitude),
            (9, record.longitude),
            (10, distance),
            (11, updated),
            (12, record.media_url or ""),
        ]
        for col_idx, val in cells:
            c = self.ws.cell(row=self._row, column=col_idx, value=val)
            c.border = self.thin_border
        self._row += 1

    @property
    def row_count(self) -> int:
        return self._row - 2

    def save(self, path):
        self.wb.save(str(path))


class KmzExporter:
    def __init__(self, name="Vending machines"):
        self.kml = simplekml.Kml(name=name)
        self._count = 0

    def add_record(self, record: AssetRecord):
        pnt = self.kml.newpoint(name=escape(record.description))
        pnt.coords = [(record.longitude, record.latitude)]

        pnt.style.iconstyle.icon.href = KML_MACHINE_ICON
        pnt.style.iconstyle.color = CATEGORY_KML_COLORS[record.category]
        if record.operating_state != OperatingState.OPERATING:
            pnt.style.iconstyle.scale = KML_OUT_OF_SERVICE_SCALE

        img_html = ""
        if record.thumbnail_url:
            img_html = f'<img src="{escape(record.thumbnail_url)}" style="max-width:200px; display:block; margin-bottom:10px;"/>'

        table_html = f"""
        <table border="1" style="border-collapse: collapse; width: 100%;">
            <tr><td><b>Category</b></td><td>{CATEGORY_LABELS[record.category]}</td></tr>
            <tr><td><b>Status</b></td><td>{STATE_LABELS[record.operating_state]}</td></tr>
            <tr><td><b>Payment</b></td><td>{_payments_text(record)}</td></tr>
            <tr><td><b>Latitude</b></td><td>{record.latitude}</td></tr>
            <tr><td><b>Longitude</b></td><td>{record.longitude}</td></tr>
            <tr><td><b>Updated</b></td><td>{record.last_updated or ""}</td></tr>
        </table>
        """
        pnt.description = f"{img_html}{table_html}"
        self._count += 1

    @property
    def point_count(self) -> int:
        return self._count

    def save(self, path):
        self.kml.savekmz(str(path))

"""GST report extraction over assigned orders.

Operators upload the India Post article list (CSV or XLSX with an
"Article Number" column). Each article number is matched to the order
carrying it as tracking number, and one tax line per order is written to
a CSV report in the report directory.

Example:
    svc = GSTReportService(SqlOrderDataSource(db), report_dir)
    report = svc.generate(Path("articles.xlsx"))
    print(report.report_id, report.rows_written)
"""

import csv
import io
import logging
import re
import secrets
import zipfile
from dataclasses import dataclass
from datetime import date
from pathlib import Path

from openpyxl import load_workbook
from openpyxl.utils.exceptions import InvalidFileException

from src.errors import NotFoundError, ValidationError
from src.services.order_source import TRACKING_META_KEY, OrderDataSource, OrderRecord

logger = logging.getLogger(__name__)

ARTICLE_COLUMN = "Article Number"
SUPPORTED_EXTENSIONS = (".csv", ".xlsx")
REPORT_ID_PATTERN = re.compile(r"^gst_report_[0-9a-f]+$")

REPORT_COLUMNS = [
    "Month",
    "Order date",
    "Order Number",
    "Tracking Number",
    "Order Status",
    "State",
    "Pin",
    "GST number",
    "HSNcode",
    "CGST rate",
    "SGST rate",
    "CGST amount",
    "SGST amount",
    "Total amount",
]

INDIAN_STATES = {
    "AN": "Andaman and Nicobar Islands",
    "AP": "Andhra Pradesh",
    "AR": "Arunachal Pradesh",
    "AS": "Assam",
    "BR": "Bihar",
    "CH": "Chandigarh",
    "CT": "Chhattisgarh",
    "DD": "Daman and Diu",
    "DH": "Dadra and Nagar Haveli and Daman and Diu",
    "DL": "Delhi",
    "DN": "Dadra and Nagar Haveli",
    "GA": "Goa",
    "GJ": "Gujarat",
    "HP": "Himachal Pradesh",
    "HR": "Haryana",
    "JH": "Jharkhand",
    "JK": "Jammu and Kashmir",
    "KA": "Karnataka",
    "KL": "Kerala",
    "LA": "Ladakh",
    "LD": "Lakshadeep",
    "MH": "Maharashtra",
    "ML": "Meghalaya",
    "MN": "Manipur",
    "MP": "Madhya Pradesh",
    "MZ": "Mizoram",
    "NL": "Nagaland",
    "OR": "Odisha",
    "PB": "Punjab",
    "PY": "Pondicherry (Puducherry)",
    "RJ": "Rajasthan",
    "SK": "Sikkim",
    "TN": "Tamil Nadu",
    "TR": "Tripura",
    "TS": "Telangana",
    "UK": "Uttarakhand",
    "UP": "Uttar Pradesh",
    "WB": "West Bengal",
}


@dataclass
class GSTReport:
    """A generated report file."""

    report_id: str
    path: Path
    rows_written: int
    skipped: int


def state_name(code: str | None) -> str:
    """Full state name for a shipping state code; unknown codes pass through."""
    if not code:
        return ""
    return INDIAN_STATES.get(code.upper(), code)


def _money(value: float) -> str:
    return f"{value:.2f}"


def read_article_numbers(source_path: Path) -> list[str]:
    """Read the non-empty Article Number cells from a CSV or XLSX file.

    Raises:
        ValidationError: Unsupported type, empty file, or missing column.
    """
    suffix = source_path.suffix.lower()
    if suffix not in SUPPORTED_EXTENSIONS:
        raise ValidationError.from_code(
            "E-2004", extension=suffix or "(none)", expected=" or ".join(SUPPORTED_EXTENSIONS)
        )

    if suffix == ".xlsx":
        try:
            wb = load_workbook(source_path, read_only=True, data_only=True)
        except (InvalidFileException, zipfile.BadZipFile) as e:
            raise ValidationError(f"Could not read workbook {source_path.name}: {e}") from e
        try:
            rows = [list(row) for row in wb.active.iter_rows(values_only=True)]
        finally:
            wb.close()
    else:
        text = source_path.read_bytes().decode("utf-8-sig", errors="replace")
        rows = list(csv.reader(io.StringIO(text)))

    if not rows:
        raise ValidationError.from_code("E-1002", file_name=source_path.name)

    header = [str(cell).strip() if cell is not None else "" for cell in rows[0]]
    if ARTICLE_COLUMN not in header:
        raise ValidationError.from_code("E-1003", column=ARTICLE_COLUMN)
    col = header.index(ARTICLE_COLUMN)

    numbers = []
    for row in rows[1:]:
        if col >= len(row) or row[col] is None:
            continue
        value = str(row[col]).strip()
        if value:
            numbers.append(value)
    return numbers


class GSTReportService:
    """Builds GST report CSVs from uploaded article lists."""

    def __init__(self, source: OrderDataSource, report_dir: str | Path) -> None:
        self.source = source
        self.report_dir = Path(report_dir)

    def build_row(self, order: OrderRecord, tracking_number: str, today: date) -> list[str]:
        """One report line for an order."""
        hsn_codes: list[str] = []
        gst_rates: list[float] = []
        total_tax = 0.0

        for item in self.source.get_order_line_items(order):
            product = self.source.get_product(item.product_id) if item.product_id else None
            if product is None:
                continue
            if product.hsn_code and product.hsn_code not in hsn_codes:
                hsn_codes.append(product.hsn_code)
            if product.gst_rate:
                gst_rates.append(float(product.gst_rate))
                total_tax += item.line_total * product.gst_rate / 100

        status = self.source.get_order_status(order)
        row = [
            today.isoformat(),
            (order.created_at or "")[:10],
            order.id,
            tracking_number,
            "completed" if status == "completed" else "",
            state_name(order.shipping_state),
            order.shipping_postcode or "",
            "",
            ",".join(hsn_codes),
            "",
            "",
            "",
            "",
            _money(order.total) if order.total is not None else "",
        ]

        if len(set(gst_rates)) == 1:
            half_rate = gst_rates[0] / 2
            half_tax = total_tax / 2
            row[9] = row[10] = _money(half_rate)
            row[11] = row[12] = _money(half_tax)

        return row

    def generate(self, source_path: str | Path, today: date | None = None) -> GSTReport:
        """Generate a report from an article list.

        Article numbers with no matching order are skipped. Nothing is
        left in the report directory when generation fails.

        Raises:
            ValidationError: Unreadable input.
        """
        source_path = Path(source_path)
        today = today or date.today()
        numbers = read_article_numbers(source_path)

        report_id = f"gst_report_{secrets.token_hex(7)}"
        self.report_dir.mkdir(parents=True, exist_ok=True)
        report_path = self.report_dir / f"{report_id}.csv"
        partial_path = self.report_dir / f"{report_id}.csv.part"

        written = skipped = 0
        try:
            with open(partial_path, "w", newline="", encoding="utf-8") as fh:
                writer = csv.writer(fh)
                writer.writerow(REPORT_COLUMNS)
                for tracking_number in numbers:
                    order = self.source.find_order_by_meta(TRACKING_META_KEY, tracking_number)
                    if order is None:
                        skipped += 1
                        continue
                    writer.writerow(self.build_row(order, tracking_number, today))
                    written += 1
            partial_path.replace(report_path)
        except BaseException:
            partial_path.unlink(missing_ok=True)
            raise

        logger.info(
            "GST report %s: %d orders, %d article numbers without an order",
            report_id, written, skipped,
        )
        return GSTReport(report_id=report_id, path=report_path, rows_written=written, skipped=skipped)

    def report_path(self, report_id: str) -> Path:
        """Locate a generated report.

        Raises:
            ValidationError: Malformed report id.
            NotFoundError: No such report.
        """
        if not REPORT_ID_PATTERN.match(report_id or ""):
            raise ValidationError(f"Invalid report id '{report_id}'")
        path = self.report_dir / f"{report_id}.csv"
        if not path.is_file():
            raise NotFoundError("GST report", report_id)
        return path

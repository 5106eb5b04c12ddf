"""Hosting-list and system-info reports.

Reports are embedded into recurring messages through the ``hostingList`` and
``systemInfo`` template variables, so the HTML produced here is inserted
without escaping. The hosting list can also be rendered as a PDF attachment.
"""

import io
import logging
import shutil
from dataclasses import dataclass
from datetime import date, datetime, timedelta, timezone
from pathlib import Path
from typing import Callable, Dict, List, Optional, Union

from jinja2 import Environment, PackageLoader, StrictUndefined, TemplateError, select_autoescape
from reportlab.lib import colors
from reportlab.lib.pagesizes import A4, landscape
from reportlab.lib.styles import ParagraphStyle, getSampleStyleSheet
from reportlab.lib.units import inch
from reportlab.platypus import Paragraph, SimpleDocTemplate, Spacer, Table, TableStyle
from sqlalchemy.exc import SQLAlchemyError

from hosting_notifier.domain.models import (
    EntityScope,
    HostingStatus,
    NotifiableItem,
    ReportConfig,
    ReportSortField,
    SystemConfig,
)
from hosting_notifier.persistence import (
    HostingRepository,
    NotificationLogRepository,
    PersistenceError,
    get_database_size,
    get_session,
)
from hosting_notifier.scheduler.expiry_window import days_until
from hosting_notifier.utils.timestamps import format_display_date, utc_now

from .models import Attachment, ReportRenderError

logger = logging.getLogger(__name__)

STATUS_ORDER = [
    HostingStatus.DELETED,
    HostingStatus.FOR_DELETION,
    HostingStatus.RED,
    HostingStatus.ORANGE,
    HostingStatus.YELLOW,
    HostingStatus.GREEN,
]

STATUS_LABELS = {
    HostingStatus.DELETED: "Deleted",
    HostingStatus.FOR_DELETION: "For deletion",
    HostingStatus.RED: "Expired",
    HostingStatus.ORANGE: "Expiring within 7 days",
    HostingStatus.YELLOW: "Expiring within 31 days",
    HostingStatus.GREEN: "Active",
}

STATUS_COLOURS = {
    HostingStatus.DELETED: "#6b7280",
    HostingStatus.FOR_DELETION: "#7c3aed",
    HostingStatus.RED: "#dc2626",
    HostingStatus.ORANGE: "#ea580c",
    HostingStatus.YELLOW: "#ca8a04",
    HostingStatus.GREEN: "#16a34a",
}

PERIOD_LABELS = {
    "today": "today",
    "last7days": "last 7 days",
    "last30days": "last 30 days",
    "all": "all time",
}

PDF_REPORT_FILENAME = "hosting-report.pdf"


def hosting_status(days_until_expiry: int) -> HostingStatus:
    """Status band for an item ``days_until_expiry`` days from expiry."""
    if days_until_expiry <= -60:
        return HostingStatus.DELETED
    if days_until_expiry <= -30:
        return HostingStatus.FOR_DELETION
    if days_until_expiry <= 0:
        return HostingStatus.RED
    if days_until_expiry <= 7:
        return HostingStatus.ORANGE
    if days_until_expiry <= 31:
        return HostingStatus.YELLOW
    return HostingStatus.GREEN


def period_start(period: str, now: datetime) -> Optional[datetime]:
    """Lower bound of a system report period; None for ``all``."""
    if period == "today":
        return now.replace(hour=0, minute=0, second=0, microsecond=0)
    if period == "last7days":
        return now - timedelta(days=7)
    if period == "last30days":
        return now - timedelta(days=30)
    return None


def format_bytes(size: Optional[int]) -> str:
    if size is None:
        return "n/a"
    value = float(size)
    for unit in ("B", "KB", "MB", "GB"):
        if value < 1024 or unit == "GB":
            return f"{value:.0f} {unit}" if unit == "B" else f"{value:.1f} {unit}"
        value /= 1024
    return f"{value:.1f} GB"


@dataclass
class ReportRow:
    item: NotifiableItem
    days: int
    status: HostingStatus

    @property
    def sort_keys(self) -> Dict[ReportSortField, object]:
        return {
            ReportSortField.DOMAIN_NAME: (self.item.domain_name or "").lower(),
            ReportSortField.CLIENT_NAME: (self.item.client_name or "").lower(),
            ReportSortField.EXPIRY_DATE: self.item.expiry_date,
        }


@dataclass
class ReportGroup:
    status: HostingStatus
    label: str
    colour: str
    rows: List[ReportRow]


class ReportRenderer:
    """Builds the hosting list and system info from the dashboard database.

    Args:
        upload_dir: Directory holding uploaded domain documents
        clock: Source of the current UTC time (tests pass a fixed one)
    """

    def __init__(
        self,
        upload_dir: Union[str, Path],
        clock: Callable[[], datetime] = utc_now,
    ):
        self.upload_dir = Path(upload_dir)
        self.clock = clock
        self.env = Environment(
            loader=PackageLoader("hosting_notifier.notifications", "email_templates"),
            autoescape=select_autoescape(enabled_extensions=("html.j2",)),
            undefined=StrictUndefined,
            trim_blocks=True,
            lstrip_blocks=True,
        )
        self.env.filters["display_date"] = format_display_date
        self.env.filters["bytes"] = format_bytes

    # Hosting list

    def build_rows(self, config: ReportConfig, today: date) -> List[ReportRow]:
        """Hosting records filtered by status and sorted per ``config``.

        Raises:
            ReportRenderError: If the records cannot be loaded
        """
        try:
            with get_session() as session:
                items = HostingRepository(session).list_all(EntityScope.ALL)
        except PersistenceError as e:
            raise ReportRenderError(f"Cannot load hosting records: {e}") from e

        wanted = set(config.statuses)
        rows = []
        for item in items:
            days = days_until(item.expiry_date, today)
            status = hosting_status(days)
            if status in wanted:
                rows.append(ReportRow(item=item, days=days, status=status))

        rows.sort(
            key=lambda row: (row.sort_keys[config.sort_field], row.item.id),
            reverse=config.sort_direction == "desc",
        )
        return rows

    def group_rows(self, rows: List[ReportRow]) -> List[ReportGroup]:
        """Non-empty groups in urgency order, keeping row order inside a group."""
        groups = []
        for status in STATUS_ORDER:
            members = [row for row in rows if row.status == status]
            if members:
                groups.append(
                    ReportGroup(status, STATUS_LABELS[status], STATUS_COLOURS[status], members)
                )
        return groups

    def render_html_fragment(self, config: ReportConfig, today: Optional[date] = None) -> str:
        """HTML table(s) for the ``hostingList`` variable.

        Raises:
            ReportRenderError: If loading or rendering fails
        """
        today = today or self.clock().date()
        rows = self.build_rows(config, today)

        if config.group_by_status:
            groups = self.group_rows(rows)
        else:
            groups = [ReportGroup(None, "", "", rows)] if rows else []

        html = self._render_template(
            "hosting_report.html.j2",
            {
                "groups": groups,
                "grouped": config.group_by_status,
                "total": len(rows),
                "today": today,
                "labels": STATUS_LABELS,
                "colours": STATUS_COLOURS,
            },
        )
        logger.debug(f"Rendered hosting report with {len(rows)} rows")
        return html

    def render_pdf(self, config: ReportConfig, today: Optional[date] = None) -> bytes:
        """The hosting list as an A4 landscape PDF.

        Raises:
            ReportRenderError: If loading or PDF generation fails
        """
        today = today or self.clock().date()
        rows = self.build_rows(config, today)

        try:
            buffer = io.BytesIO()
            doc = SimpleDocTemplate(
                buffer,
                pagesize=landscape(A4),
                rightMargin=0.5 * inch,
                leftMargin=0.5 * inch,
                topMargin=0.5 * inch,
                bottomMargin=0.5 * inch,
                title="Hosting Report",
            )

            styles = getSampleStyleSheet()
            title_style = ParagraphStyle(
                "ReportTitle",
                parent=styles["Heading1"],
                fontSize=18,
                textColor=colors.HexColor("#1f2937"),
                spaceAfter=6,
            )
            subtitle_style = ParagraphStyle(
                "ReportSubtitle",
                parent=styles["Normal"],
                fontSize=10,
                textColor=colors.HexColor("#6b7280"),
                spaceAfter=12,
            )
            section_style = ParagraphStyle(
                "ReportSection",
                parent=styles["Heading3"],
                spaceBefore=10,
                spaceAfter=6,
            )

            story = [
                Paragraph("Hosting Report", title_style),
                Paragraph(
                    f"Generated {format_display_date(today)}, {len(rows)} records",
                    subtitle_style,
                ),
            ]

            if not rows:
                story.append(Paragraph("No records match the selected statuses.", styles["Normal"]))
            elif config.group_by_status:
                for group in self.group_rows(rows):
                    story.append(
                        Paragraph(f"{group.label} ({len(group.rows)})", section_style)
                    )
                    story.append(self._pdf_table(group.rows))
                    story.append(Spacer(1, 0.15 * inch))
            else:
                story.append(self._pdf_table(rows))

            doc.build(story)
            pdf_bytes = buffer.getvalue()

        except (ValueError, TypeError, OSError) as e:
            logger.error(f"Error generating hosting report PDF: {e}", exc_info=True)
            raise ReportRenderError(f"PDF generation failed: {e}") from e

        logger.info(f"Generated hosting report PDF ({len(pdf_bytes)} bytes)")
        return pdf_bytes

    def render_pdf_attachment(self, config: ReportConfig, today: Optional[date] = None) -> Attachment:
        return Attachment(
            filename=PDF_REPORT_FILENAME,
            content=self.render_pdf(config, today),
            mime_type="application/pdf",
        )

    def _pdf_table(self, rows: List[ReportRow]) -> Table:
        data = [["Domain", "Client", "Package", "Expiry date", "Days", "Status"]]
        for row in rows:
            data.append(
                [
                    row.item.domain_name or "-",
                    row.item.client_name or "-",
                    row.item.package_name or "-",
                    format_display_date(row.item.expiry_date),
                    str(row.days),
                    STATUS_LABELS[row.status],
                ]
            )

        table = Table(
            data,
            colWidths=[2.4 * inch, 2.2 * inch, 1.8 * inch, 1.1 * inch, 0.7 * inch, 1.8 * inch],
            repeatRows=1,
        )
        style = [
            ("BACKGROUND", (0, 0), (-1, 0), colors.HexColor("#1f2937")),
            ("TEXTCOLOR", (0, 0), (-1, 0), colors.white),
            ("FONTNAME", (0, 0), (-1, 0), "Helvetica-Bold"),
            ("FONTSIZE", (0, 0), (-1, -1), 9),
            ("ALIGN", (4, 0), (4, -1), "RIGHT"),
            ("GRID", (0, 0), (-1, -1), 0.5, colors.HexColor("#e5e7eb")),
            ("ROWBACKGROUNDS", (0, 1), (-1, -1), [colors.white, colors.HexColor("#f9fafb")]),
            ("VALIGN", (0, 0), (-1, -1), "MIDDLE"),
        ]
        for index, row in enumerate(rows, start=1):
            style.append(
                ("TEXTCOLOR", (5, index), (5, index), colors.HexColor(STATUS_COLOURS[row.status]))
            )
        table.setStyle(TableStyle(style))
        return table

    # System info

    def collect_system_info(self, config: SystemConfig, now: Optional[datetime] = None) -> Dict:
        """Data for each enabled section.

        Raises:
            ReportRenderError: If the notification log cannot be read
        """
        now = now or self.clock()
        sections = config.sections
        info: Dict = {"period_label": PERIOD_LABELS[config.period]}

        if sections.resource_usage:
            info["resource_usage"] = self._resource_usage()

        if sections.database_size:
            info["database_size"] = get_database_size()

        if sections.email_logs:
            since = period_start(config.period, now)
            try:
                with get_session() as session:
                    counts = NotificationLogRepository(session).count_by_status(since)
            except (PersistenceError, SQLAlchemyError) as e:
                raise ReportRenderError(f"Cannot read notification log: {e}") from e
            info["email_logs"] = {
                "sent": counts.get("sent", 0),
                "failed": counts.get("failed", 0),
            }

        if sections.pdf_documents:
            info["pdf_documents"] = self._pdf_documents()

        return info

    def render_system_fragment(self, config: SystemConfig, now: Optional[datetime] = None) -> str:
        """HTML for the ``systemInfo`` variable.

        Raises:
            ReportRenderError: If loading or rendering fails
        """
        info = self.collect_system_info(config, now)
        return self._render_template("system_info.html.j2", {"info": info})

    def _resource_usage(self) -> Dict:
        uploads_size = 0
        if self.upload_dir.is_dir():
            uploads_size = sum(p.stat().st_size for p in self.upload_dir.rglob("*") if p.is_file())

        disk_path = self.upload_dir if self.upload_dir.exists() else Path(".")
        usage = shutil.disk_usage(disk_path)
        return {
            "uploads_size": uploads_size,
            "disk_total": usage.total,
            "disk_used": usage.used,
            "disk_free": usage.free,
            "disk_percent": round(usage.used / usage.total * 100, 1) if usage.total else 0.0,
        }

    def _pdf_documents(self) -> Dict:
        if not self.upload_dir.is_dir():
            return {"count": 0, "total_size": 0, "latest": []}

        files = [p for p in self.upload_dir.iterdir() if p.is_file() and p.suffix.lower() == ".pdf"]
        files.sort(key=lambda p: p.stat().st_mtime, reverse=True)
        latest = [
            {
                "name": p.name,
                "size": p.stat().st_size,
                "modified": datetime.fromtimestamp(p.stat().st_mtime, tz=timezone.utc),
            }
            for p in files[:10]
        ]
        return {
            "count": len(files),
            "total_size": sum(p.stat().st_size for p in files),
            "latest": latest,
        }

    def _render_template(self, name: str, context: Dict) -> str:
        try:
            return self.env.get_template(name).render(context)
        except TemplateError as e:
            logger.error(f"Report template {name} failed: {e}", exc_info=True)
            raise ReportRenderError(f"Report rendering failed: {e}") from e

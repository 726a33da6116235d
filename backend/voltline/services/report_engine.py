"""
Report Engine — generates branded PDF and Excel deliverables.

Outputs:
  - Cable Schedule PDF (A4 landscape, one row per cable entry)
  - Cable Schedule Excel workbook (Schedule / Summary sheets)
  - Cost Report PDF (executive summary, category table, variations)
  - Handover Completion PDF (tenant document status)

All outputs saved to DOWNLOAD_DIR and path returned for FileResponse.
"""
import os
import logging
from datetime import datetime
from typing import Dict, Any, List, Optional

from voltline.services.cable_schedule_engine import summarize_schedule
from voltline.services.cost_report_engine import CostReportSummary, format_currency

logger = logging.getLogger("voltline-report")

DOWNLOAD_DIR = os.getenv("DOWNLOAD_DIR", "/tmp/downloads")
DEFAULT_COMPANY_NAME = "VOLTLINE ELECTRICAL CONSULTING"
DEFAULT_COMPANY_SUB = "Electrical engineering  |  SANS 10142-1 compliant installations"

# (header, entry key, column width in cm, is numeric)
CABLE_SCHEDULE_COLUMNS = [
    ("Cable Tag", "cable_tag", 5.0, False),
    ("From", "from_location", 3.2, False),
    ("To", "to_location", 3.2, False),
    ("V", "voltage", 1.1, True),
    ("Load (A)", "load_amps", 1.6, True),
    ("Size", "cable_size", 1.8, False),
    ("No.", "cable_number", 0.9, True),
    ("Length (m)", "total_length", 1.8, True),
    ("VD (V)", "volt_drop", 1.5, True),
    ("Supply (R)", "supply_cost", 2.1, True),
    ("Install (R)", "install_cost", 2.1, True),
    ("Total (R)", "total_cost", 2.2, True),
]


def _ensure_dir():
    os.makedirs(DOWNLOAD_DIR, exist_ok=True)


def _hex_to_rgb(hex_color: str) -> tuple:
    """Convert '#RRGGBB' to (r, g, b) floats 0-1."""
    h = hex_color.lstrip("#")
    if len(h) != 6:
        return (0.08, 0.12, 0.2)
    return (int(h[0:2], 16) / 255, int(h[2:4], 16) / 255, int(h[4:6], 16) / 255)


def _safe_name(text: str) -> str:
    return "".join(ch if ch.isalnum() or ch in "-_" else "_" for ch in (text or "report"))[:40]


def _fmt_cell(value: Any, numeric: bool) -> str:
    if value is None or value == "":
        return "-"
    if numeric and isinstance(value, (int, float)):
        return f"{value:,.2f}" if isinstance(value, float) and not value.is_integer() else f"{value:,.0f}"
    return str(value)


# ── PDF helpers ───────────────────────────────────────────────────────────────

def _draw_header(c, page_w, page_h, company_name: str = None, company_sub: str = None, theme_rgb: tuple = None):
    from reportlab.lib.units import cm
    bg = theme_rgb or (0.08, 0.12, 0.2)
    c.setFillColorRGB(*bg)
    c.rect(0, page_h - 2.6*cm, page_w, 2.6*cm, fill=1, stroke=0)
    c.setFillColorRGB(1, 1, 1)
    c.setFont("Helvetica-Bold", 13)
    c.drawString(1.5*cm, page_h - 1.3*cm, company_name or DEFAULT_COMPANY_NAME)
    c.setFont("Helvetica", 8)
    c.drawString(1.5*cm, page_h - 1.9*cm, company_sub or DEFAULT_COMPANY_SUB)
    c.setStrokeColorRGB(0.96, 0.62, 0.04)
    c.setLineWidth(2)
    c.line(0, page_h - 2.6*cm, page_w, page_h - 2.6*cm)
    c.setLineWidth(1)
    c.setStrokeColorRGB(0, 0, 0)


def _draw_footer(c, page_w, page_num: int, company_name: str = None):
    from reportlab.lib.units import cm
    c.setFillColorRGB(0.5, 0.5, 0.5)
    c.setFont("Helvetica", 7)
    c.drawString(1.5*cm, 0.8*cm, f"{company_name or DEFAULT_COMPANY_NAME}  |  {datetime.now().strftime('%d %b %Y')}")
    c.drawRightString(page_w - 1.5*cm, 0.8*cm, f"Page {page_num}")
    c.setStrokeColorRGB(0.7, 0.7, 0.7)
    c.line(1.5*cm, 1.2*cm, page_w - 1.5*cm, 1.2*cm)


def _draw_title(c, y, title: str, subtitle: str = ""):
    from reportlab.lib.units import cm
    c.setFillColorRGB(0.08, 0.08, 0.12)
    c.setFont("Helvetica-Bold", 16)
    c.drawString(1.5*cm, y, title)
    if subtitle:
        y -= 0.6*cm
        c.setFont("Helvetica", 9)
        c.setFillColorRGB(0.4, 0.4, 0.4)
        c.drawString(1.5*cm, y, subtitle)
    return y - 0.9*cm


class ReportEngine:

    def __init__(self, company_settings: Optional[Dict[str, Any]] = None):
        cs = company_settings or {}
        self.company_name = cs.get("company_name") or DEFAULT_COMPANY_NAME
        self.company_sub = cs.get("report_header_text") or DEFAULT_COMPANY_SUB
        self.theme_rgb = _hex_to_rgb(cs.get("theme_color_hex") or "#142033")

    def _new_page(self, c, page_w, page_h):
        c.showPage()
        _draw_header(c, page_w, page_h, self.company_name, self.company_sub, self.theme_rgb)
        _draw_footer(c, page_w, c.getPageNumber(), self.company_name)

    # ── Cable schedule ──────────────────────────────────────────────────────

    def generate_cable_schedule_pdf(self, schedule: Dict[str, Any], entries: List[Dict[str, Any]]) -> Optional[str]:
        try:
            from reportlab.pdfgen import canvas as rl_canvas
            from reportlab.lib.pagesizes import A4, landscape
            from reportlab.lib.units import cm

            _ensure_dir()
            filename = f"CableSchedule_{_safe_name(schedule.get('schedule_number') or schedule.get('schedule_name'))}.pdf"
            path = os.path.join(DOWNLOAD_DIR, filename)
            page_w, page_h = landscape(A4)
            c = rl_canvas.Canvas(path, pagesize=(page_w, page_h))

            _draw_header(c, page_w, page_h, self.company_name, self.company_sub, self.theme_rgb)
            _draw_footer(c, page_w, 1, self.company_name)
            y = _draw_title(
                c, page_h - 3.6*cm,
                f"CABLE SCHEDULE: {(schedule.get('schedule_name') or '').upper()}",
                f"Schedule No: {schedule.get('schedule_number') or '-'}  |  "
                f"Revision: {schedule.get('revision') or 'Rev 0'}  |  "
                f"Layout: {schedule.get('layout_name') or '-'}",
            )

            def draw_column_headers(y_pos):
                c.setFillColorRGB(*self.theme_rgb)
                c.rect(1.5*cm, y_pos - 0.15*cm, page_w - 3*cm, 0.55*cm, fill=1, stroke=0)
                c.setFillColorRGB(1, 1, 1)
                c.setFont("Helvetica-Bold", 7)
                x = 1.6*cm
                for header, _, width, _ in CABLE_SCHEDULE_COLUMNS:
                    c.drawString(x, y_pos, header)
                    x += width*cm
                return y_pos - 0.55*cm

            y = draw_column_headers(y)
            c.setFont("Helvetica", 7)
            for i, entry in enumerate(entries):
                if y < 2*cm:
                    self._new_page(c, page_w, page_h)
                    y = draw_column_headers(page_h - 3.4*cm)
                    c.setFont("Helvetica", 7)
                if i % 2 == 1:
                    c.setFillColorRGB(0.95, 0.96, 0.98)
                    c.rect(1.5*cm, y - 0.12*cm, page_w - 3*cm, 0.45*cm, fill=1, stroke=0)
                c.setFillColorRGB(0.15, 0.15, 0.15)
                x = 1.6*cm
                for _, key, width, numeric in CABLE_SCHEDULE_COLUMNS:
                    text = _fmt_cell(entry.get(key), numeric)
                    max_chars = int(width * 4.2)
                    c.drawString(x, y, text[:max_chars])
                    x += width*cm
                y -= 0.45*cm

            summary = summarize_schedule(entries)
            y -= 0.4*cm
            if y < 3*cm:
                self._new_page(c, page_w, page_h)
                y = page_h - 3.6*cm
            c.setFont("Helvetica-Bold", 9)
            c.setFillColorRGB(0.08, 0.08, 0.12)
            c.drawString(1.5*cm, y, f"{summary['cable_count']} cables / {summary['entry_count']} entries  |  "
                                    f"Total length {summary['total_length']:,.1f} m")
            c.drawRightString(page_w - 1.5*cm, y, f"TOTAL {format_currency(summary['total_cost'])}")

            c.save()
            logger.info(f"Cable schedule PDF generated: {path}")
            return path

        except Exception as e:
            logger.error(f"Cable schedule PDF failed: {e}")
            return None

    def generate_cable_schedule_excel(self, schedule: Dict[str, Any], entries: List[Dict[str, Any]]) -> Optional[str]:
        try:
            import xlsxwriter

            _ensure_dir()
            filename = f"CableSchedule_{_safe_name(schedule.get('schedule_number') or schedule.get('schedule_name'))}.xlsx"
            path = os.path.join(DOWNLOAD_DIR, filename)
            wb = xlsxwriter.Workbook(path)

            hdr = wb.add_format({"bold": True, "bg_color": "#142033", "font_color": "#FFFFFF",
                                 "border": 1, "font_size": 10})
            money = wb.add_format({"num_format": "#,##0.00", "border": 1})
            number = wb.add_format({"num_format": "#,##0.00", "border": 1})
            normal = wb.add_format({"border": 1, "font_size": 9})
            title_fmt = wb.add_format({"bold": True, "font_size": 14, "font_color": "#142033"})
            total_fmt = wb.add_format({"bold": True, "bg_color": "#F59E0B", "num_format": "#,##0.00", "border": 1})

            ws = wb.add_worksheet("Cable Schedule")
            ws.write("A1", f"CABLE SCHEDULE: {schedule.get('schedule_name') or ''}", title_fmt)
            ws.write("A2", f"Schedule No: {schedule.get('schedule_number') or '-'}", normal)
            ws.write("A3", f"Generated: {datetime.now().strftime('%d %b %Y %H:%M')}", normal)

            headers = [h for h, _, _, _ in CABLE_SCHEDULE_COLUMNS] + ["Notes"]
            ws.write_row(4, 0, headers, hdr)
            for col, (_, _, width, _) in enumerate(CABLE_SCHEDULE_COLUMNS):
                ws.set_column(col, col, max(8, width * 5))
            ws.set_column(len(CABLE_SCHEDULE_COLUMNS), len(CABLE_SCHEDULE_COLUMNS), 40)

            for i, entry in enumerate(entries):
                row = 5 + i
                for col, (_, key, _, numeric) in enumerate(CABLE_SCHEDULE_COLUMNS):
                    value = entry.get(key)
                    if numeric and isinstance(value, (int, float)):
                        ws.write_number(row, col, value, money if key.endswith("_cost") else number)
                    else:
                        ws.write(row, col, value if value is not None else "", normal)
                ws.write(row, len(CABLE_SCHEDULE_COLUMNS), entry.get("notes") or "", normal)

            summary = summarize_schedule(entries)
            ws2 = wb.add_worksheet("Summary")
            ws2.set_column("A:A", 30)
            ws2.set_column("B:B", 18)
            ws2.write_row(0, 0, ["Item", "Value"], hdr)
            rows = [
                ("Cable entries", summary["entry_count"]),
                ("Cables (parallel groups counted once)", summary["cable_count"]),
                ("Parallel groups", summary["parallel_groups"]),
                ("Total length (m)", summary["total_length"]),
                ("Supply cost (R)", summary["total_supply_cost"]),
                ("Install cost (R)", summary["total_install_cost"]),
                ("TOTAL COST (R)", summary["total_cost"]),
            ]
            for i, (label, val) in enumerate(rows):
                ws2.write(1 + i, 0, label, normal)
                ws2.write(1 + i, 1, val, total_fmt if "TOTAL" in label else number)

            wb.close()
            logger.info(f"Cable schedule Excel generated: {path}")
            return path

        except Exception as e:
            logger.error(f"Cable schedule Excel failed: {e}")
            return None

    # ── Cost report ─────────────────────────────────────────────────────────

    def generate_cost_report_pdf(
        self,
        report: Dict[str, Any],
        summary: CostReportSummary,
        variations: Optional[List[Dict[str, Any]]] = None,
    ) -> Optional[str]:
        try:
            from reportlab.pdfgen import canvas as rl_canvas
            from reportlab.lib.pagesizes import A4
            from reportlab.lib.units import cm

            _ensure_dir()
            filename = f"CostReport_{_safe_name(report.get('project_name'))}_{report.get('report_number') or 1}.pdf"
            path = os.path.join(DOWNLOAD_DIR, filename)
            page_w, page_h = A4
            c = rl_canvas.Canvas(path, pagesize=A4)

            _draw_header(c, page_w, page_h, self.company_name, self.company_sub, self.theme_rgb)
            _draw_footer(c, page_w, 1, self.company_name)
            y = _draw_title(
                c, page_h - 3.8*cm, "COST REPORT",
                f"{report.get('project_name') or 'Project'}  |  Report #{report.get('report_number') or 1}  |  "
                f"{report.get('report_date') or datetime.now().strftime('%d %b %Y')}",
            )

            grand = summary.grand_totals
            c.setFont("Helvetica-Bold", 11)
            c.setFillColorRGB(0.08, 0.08, 0.12)
            c.drawString(1.5*cm, y, "EXECUTIVE SUMMARY")
            y -= 0.4*cm
            c.line(1.5*cm, y, page_w - 1.5*cm, y)
            y -= 0.55*cm
            exec_rows = [
                ("Client", report.get("client_name") or "-"),
                ("Original Budget", format_currency(grand.original_budget)),
                ("Previous Report", format_currency(grand.previous_report)),
                ("Approved Variations", format_currency(grand.approved_variations)),
                ("Pending Variations", format_currency(grand.pending_variations)),
                ("Current Anticipated Final", format_currency(grand.anticipated_final)),
                ("Variance (Current)", format_currency(grand.current_variance)),
                ("Variance (Original)", format_currency(grand.original_variance)),
            ]
            for label, value in exec_rows:
                c.setFont("Helvetica", 10)
                c.setFillColorRGB(0.2, 0.2, 0.2)
                c.drawString(1.5*cm, y, label)
                c.setFont("Helvetica-Bold", 10)
                c.setFillColorRGB(0.08, 0.08, 0.12)
                c.drawRightString(page_w - 1.5*cm, y, value)
                y -= 0.55*cm

            # Category table
            y -= 0.8*cm
            cols = [("Code", 1.5), ("Category", 6.0), ("Original", 3.4), ("Anticipated", 3.4), ("Variance", 3.0), ("%", 1.2)]

            def draw_cat_headers(y_pos):
                c.setFillColorRGB(*self.theme_rgb)
                c.rect(1.5*cm, y_pos - 0.15*cm, page_w - 3*cm, 0.55*cm, fill=1, stroke=0)
                c.setFillColorRGB(1, 1, 1)
                c.setFont("Helvetica-Bold", 8)
                x = 1.6*cm
                for header, width in cols:
                    c.drawString(x, y_pos, header)
                    x += width*cm
                return y_pos - 0.55*cm

            y = draw_cat_headers(y)
            for row in summary.categories:
                if y < 2.5*cm:
                    self._new_page(c, page_w, page_h)
                    y = draw_cat_headers(page_h - 3.6*cm)
                c.setFont("Helvetica", 8)
                c.setFillColorRGB(0.15, 0.15, 0.15)
                values = [
                    row.code, row.description[:38],
                    format_currency(row.original_budget), format_currency(row.anticipated_final),
                    format_currency(row.original_variance), f"{row.percent_of_total:.1f}",
                ]
                x = 1.6*cm
                for (_, width), value in zip(cols, values):
                    c.drawString(x, y, value)
                    x += width*cm
                y -= 0.45*cm

            c.setFont("Helvetica-Bold", 9)
            c.setFillColorRGB(0.08, 0.08, 0.12)
            c.drawString(1.6*cm, y - 0.1*cm, "TOTAL")
            c.drawRightString(page_w - 1.5*cm, y - 0.1*cm, format_currency(grand.anticipated_final))

            if variations:
                self._new_page(c, page_w, page_h)
                y = _draw_title(c, page_h - 3.8*cm, "VARIATION ORDERS SUMMARY", "Overview of all variation orders")
                for v in variations:
                    if y < 2.5*cm:
                        self._new_page(c, page_w, page_h)
                        y = page_h - 3.8*cm
                    credit = bool(v.get("is_credit"))
                    c.setFont("Helvetica-Bold", 8)
                    c.setFillColorRGB(0.08, 0.08, 0.12)
                    c.drawString(1.5*cm, y, v.get("code") or "-")
                    c.setFont("Helvetica", 8)
                    c.drawString(3.2*cm, y, (v.get("description") or "-")[:70])
                    c.drawRightString(page_w - 3.5*cm, y, format_currency(float(v.get("total_amount") or 0)))
                    if credit:
                        c.setFillColorRGB(0.1, 0.55, 0.2)
                    else:
                        c.setFillColorRGB(0.75, 0.1, 0.1)
                    c.setFont("Helvetica-Bold", 8)
                    c.drawRightString(page_w - 1.5*cm, y, "Credit" if credit else "Debit")
                    y -= 0.45*cm

            c.save()
            logger.info(f"Cost report PDF generated: {path}")
            return path

        except Exception as e:
            logger.error(f"Cost report PDF failed: {e}")
            return None

    # ── Handover ────────────────────────────────────────────────────────────

    def generate_handover_pdf(self, project_name: str, dashboard: Dict[str, Any]) -> Optional[str]:
        try:
            from reportlab.pdfgen import canvas as rl_canvas
            from reportlab.lib.pagesizes import A4
            from reportlab.lib.units import cm

            _ensure_dir()
            filename = f"Handover_{_safe_name(project_name)}.pdf"
            path = os.path.join(DOWNLOAD_DIR, filename)
            page_w, page_h = A4
            c = rl_canvas.Canvas(path, pagesize=A4)

            _draw_header(c, page_w, page_h, self.company_name, self.company_sub, self.theme_rgb)
            _draw_footer(c, page_w, 1, self.company_name)
            stats = dashboard.get("stats", {})
            y = _draw_title(
                c, page_h - 3.8*cm, "HANDOVER DOCUMENTATION STATUS",
                f"{project_name}  |  Overall completion {stats.get('overall_percentage', 0)}%  |  "
                f"Documents {dashboard.get('total_file_size', '0.0 KB')}",
            )

            c.setFont("Helvetica", 10)
            for label, key in (("Tenants", "total"), ("Complete", "complete"),
                               ("In progress", "in_progress"), ("Not started", "not_started")):
                c.setFillColorRGB(0.2, 0.2, 0.2)
                c.drawString(1.5*cm, y, label)
                c.drawRightString(8*cm, y, str(stats.get(key, 0)))
                y -= 0.5*cm

            y -= 0.6*cm
            c.setFont("Helvetica-Bold", 11)
            c.setFillColorRGB(0.08, 0.08, 0.12)
            c.drawString(1.5*cm, y, "TENANT COMPLETION")
            y -= 0.6*cm
            for tenant in dashboard.get("tenants", []):
                if y < 2.5*cm:
                    self._new_page(c, page_w, page_h)
                    y = page_h - 3.8*cm
                pct = tenant.get("completion_percentage", 0)
                c.setFont("Helvetica", 9)
                c.setFillColorRGB(0.15, 0.15, 0.15)
                c.drawString(1.5*cm, y, f"{tenant.get('shop_number', '')} - {tenant.get('shop_name', '')}"[:50])
                c.drawRightString(page_w - 6.5*cm, y, f"{tenant.get('completed_count', 0)}/{tenant.get('total_count', 0)}")
                # Progress bar
                bar_x, bar_w = page_w - 6*cm, 4.5*cm
                c.setFillColorRGB(0.9, 0.9, 0.9)
                c.rect(bar_x, y - 0.05*cm, bar_w, 0.3*cm, fill=1, stroke=0)
                if pct >= 100:
                    c.setFillColorRGB(0.1, 0.55, 0.2)
                elif pct > 0:
                    c.setFillColorRGB(0.96, 0.62, 0.04)
                else:
                    c.setFillColorRGB(0.75, 0.1, 0.1)
                c.rect(bar_x, y - 0.05*cm, bar_w * pct / 100, 0.3*cm, fill=1, stroke=0)
                y -= 0.5*cm

            c.save()
            logger.info(f"Handover PDF generated: {path}")
            return path

        except Exception as e:
            logger.error(f"Handover PDF failed: {e}")
            return None

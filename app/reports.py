import csv
import re
import time
from io import StringIO
from urllib.parse import quote

from .business_context import BusinessContextSnapshot
from .config import settings

REPORT_TYPES = ("revenue", "bookings", "services", "customers")
DOWNLOAD_PATH = "/api/admin/download-report"

_FENCE_RE = re.compile(r"```(?:html)?\n?")


def _money(value) -> str:
    return f"${float(value or 0):.2f}"


def export_report_csv(report_type: str, snapshot: BusinessContextSnapshot) -> str:
    if report_type not in REPORT_TYPES:
        raise ValueError(f"Unknown report type: {report_type}")

    stats = snapshot.statistics
    out = StringIO()
    w = csv.writer(out, lineterminator="\n")

    if report_type == "revenue":
        w.writerow(["Period", "Revenue"])
        w.writerow(["Total (All Time)", _money(stats["total_revenue"])])
        w.writerow(["This Month", _money(stats["month_revenue"])])
        w.writerow(["Last Month", _money(stats["last_month_revenue"])])
        w.writerow(["This Year", _money(stats["year_revenue"])])
    elif report_type == "bookings":
        w.writerow(["Period", "Count"])
        w.writerow(["Total (All Time)", stats["total_bookings"]])
        w.writerow(["Today", stats["today_bookings"]])
        w.writerow(["This Week", stats["week_bookings"]])
        w.writerow(["This Month", stats["month_bookings"]])
        w.writerow(["This Year", stats["year_bookings"]])
    elif report_type == "services":
        w.writerow(["Service Name", "Booking Count", "Price", "Duration (min)", "Total Revenue"])
        for row in snapshot.service_popularity:
            service = snapshot.find_service(row["id"]) or {}
            w.writerow(
                [
                    row["name"],
                    row["booking_count"],
                    _money(service.get("price")),
                    service.get("duration_minutes", 0),
                    _money(row["total_revenue"]),
                ]
            )
    else:
        w.writerow(["Customer Name", "Email", "Phone", "Total Bookings", "Total Spent", "First Booking", "Last Booking"])
        for c in snapshot.all_customers:
            w.writerow(
                [
                    c["customer_name"],
                    c["customer_email"],
                    c["customer_phone"],
                    c["booking_count"],
                    _money(c["total_spent"]),
                    c["first_booking"],
                    c["last_booking"],
                ]
            )

    return out.getvalue()


def artifact_filename(stem: str, extension: str) -> str:
    return f"{stem}_{int(time.time() * 1000)}.{extension}"


def download_url(data: str, filename: str) -> str:
    return f"{DOWNLOAD_PATH}?data={quote(data, safe='')}&filename={quote(filename, safe='')}"


def newsletter_prompt(snapshot: BusinessContextSnapshot, topic: str, promotion: str | None = None) -> str:
    services = "\n".join(
        f"- {s['name']}: {_money(s['price'])}" for s in snapshot.services if s["is_active"]
    )
    promo_line = f"Special Promotion: {promotion}\n" if promotion else ""
    return (
        f"Create a professional HTML email newsletter for {settings.BUSINESS_NAME}, "
        f"{settings.BUSINESS_DESCRIPTION}.\n\n"
        f"Topic: {topic}\n"
        f"{promo_line}\n"
        f"Services offered:\n{services}\n\n"
        "Create an engaging HTML email with:\n"
        "- Eye-catching subject line\n"
        "- Professional header with business name\n"
        "- Brief intro paragraph\n"
        "- Highlight the promotion/topic\n"
        "- Call-to-action button to book\n"
        "- Footer with contact info\n\n"
        "Use these colors:\n"
        "- Primary: #CC0000 (red)\n"
        "- Dark: #1a1a1a (dark grey)\n"
        "- Light: #b8b8b8 (light grey)\n\n"
        "Respond with ONLY the complete HTML code, no explanations."
    )


def finish_newsletter_html(raw: str) -> str:
    html = _FENCE_RE.sub("", raw.strip()).strip()
    if "<!DOCTYPE" in html or "<html" in html:
        return html
    return (
        "<!DOCTYPE html>\n"
        "<html>\n"
        "<head>\n"
        '    <meta charset="UTF-8">\n'
        '    <meta name="viewport" content="width=device-width, initial-scale=1.0">\n'
        f"    <title>{settings.BUSINESS_NAME} Newsletter</title>\n"
        "</head>\n"
        "<body>\n"
        f"{html}\n"
        "</body>\n"
        "</html>"
    )


def media_type_for(filename: str) -> str:
    lowered = (filename or "").lower()
    if lowered.endswith(".html") or lowered.endswith(".htm"):
        return "text/html"
    if lowered.endswith(".csv"):
        return "text/csv"
    return "text/plain"

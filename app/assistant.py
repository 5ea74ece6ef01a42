"""
Admin business assistant: grounds a question in a fresh metrics snapshot,
asks the text generator, and runs at most one whitelisted action it asks for.

One pass per question:

    context built -> generated -> parsed action -> executed -> responded
    context built -> generated -> plain answer -------------> responded

Only the handlers in `ACTION_HANDLERS` can write to storage. A reply that does
not carry a usable directive is returned as plain text, never as an error.
"""
import json
import math
from dataclasses import dataclass, field
from datetime import date, datetime, timezone
from enum import Enum
from typing import Callable

import structlog
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from . import services
from .business_context import BusinessContextSnapshot, build_business_context
from .config import settings
from .errors import DuplicateBlock, InternalError, NotFoundError, UpstreamGenerationError, ValidationError
from .generation import TextGenerator
from .reports import (
    REPORT_TYPES,
    artifact_filename,
    download_url,
    export_report_csv,
    finish_newsletter_html,
    newsletter_prompt,
)

log = structlog.get_logger("bizops.assistant")

# SQLite INTEGER upper bound.
MAX_ROW_ID = 2**63 - 1


class ActionName(str, Enum):
    BLOCK_DATE = "BLOCK_DATE"
    UPDATE_SERVICE_PRICE = "UPDATE_SERVICE_PRICE"
    GENERATE_REPORT = "GENERATE_REPORT"
    VIEW_CUSTOMER = "VIEW_CUSTOMER"
    GENERATE_NEWSLETTER = "GENERATE_NEWSLETTER"


@dataclass(frozen=True)
class ActionDirective:
    action: str
    params: dict


@dataclass(frozen=True)
class PlainText:
    text: str


@dataclass(frozen=True)
class ParsedAction:
    directive: ActionDirective
    text: str


@dataclass
class ActionOutcome:
    answer: str
    result: dict


@dataclass
class AssistantResponse:
    question: str
    answer: str
    action_executed: bool = False
    action_result: dict | None = None
    timestamp: datetime = field(default_factory=lambda: datetime.now(timezone.utc))

    def as_dict(self) -> dict:
        return {
            "success": True,
            "question": self.question,
            "answer": self.answer,
            "actionExecuted": self.action_executed,
            "actionResult": self.action_result,
            "timestamp": self.timestamp.isoformat(),
        }


def parse_generation_output(text: str) -> PlainText | ParsedAction:
    """Find the first embedded `{"action": ..., "params": {...}}` object.

    Objects without both keys are skipped; a matching object whose values
    have the wrong types makes the whole reply plain text.
    """
    decoder = json.JSONDecoder()
    pos = text.find("{")
    while pos != -1:
        try:
            obj, end = decoder.raw_decode(text, pos)
        except ValueError:
            pos = text.find("{", pos + 1)
            continue
        if isinstance(obj, dict) and "action" in obj and "params" in obj:
            action, params = obj["action"], obj["params"]
            if not isinstance(action, str) or not isinstance(params, dict):
                return PlainText(text)
            return ParsedAction(ActionDirective(action=action, params=params), text)
        pos = text.find("{", end)
    return PlainText(text)


def _money(value) -> str:
    return f"${float(value or 0):.2f}"


def _quoted(value) -> str:
    # The question is embedded inside a double-quoted line of the template.
    return json.dumps(str(value), ensure_ascii=False)


def build_prompt(snapshot: BusinessContextSnapshot, question: str) -> str:
    stats = snapshot.statistics
    services_block = "\n".join(
        f"- {s['name']} (ID: {s['id']}): {_money(s['price'])} ({s['duration_minutes']} min)"
        f"{'' if s['is_active'] else ' [INACTIVE]'}"
        for s in snapshot.services
    )
    performance_block = "\n".join(
        f"{i}. {s['name']}: {s['booking_count']} bookings, {_money(s['total_revenue'])} revenue"
        for i, s in enumerate(snapshot.service_popularity, start=1)
    )
    upcoming_block = (
        "\n".join(f"- {b['date']} at {b['time']}: {b['customer']} ({_money(b['price'])})" for b in snapshot.upcoming_bookings)
        or "No upcoming bookings"
    )
    top_repeat = ", ".join(
        f"{c['customer_name']} ({c['booking_count']} bookings, {_money(c['total_spent'])})"
        for c in snapshot.repeat_customers[:3]
    )
    total_bookings = stats["total_bookings"]
    avg_per_booking = stats["total_revenue"] / total_bookings if total_bookings else 0
    total_customers = stats["total_customer_count"]
    retention = round(stats["repeat_customer_count"] / total_customers * 100, 1) if total_customers else 0

    return f"""You are an AI business assistant and strategic advisor for {settings.BUSINESS_NAME}, {settings.BUSINESS_DESCRIPTION}.
You have access to comprehensive business data and can provide insights, recommendations, and execute actions.

CURRENT DATE: {snapshot.current_date.isoformat()}

SERVICES OFFERED:
{services_block}

BOOKING STATISTICS & TRENDS:
- Total bookings (all time): {total_bookings}
- Bookings today: {stats['today_bookings']}
- Bookings this week: {stats['week_bookings']}
- Bookings this month: {stats['month_bookings']}
- Last month bookings: {stats['last_month_bookings']}
- Booking growth: {stats['booking_growth']}% (month-over-month)
- Bookings this year: {stats['year_bookings']}
- Busiest day of week: {snapshot.busiest_day}

REVENUE & FINANCIAL:
- Total revenue (all time): {_money(stats['total_revenue'])}
- Revenue this month: {_money(stats['month_revenue'])}
- Last month revenue: {_money(stats['last_month_revenue'])}
- Revenue growth: {stats['revenue_growth']}% (month-over-month)
- Revenue this year: {_money(stats['year_revenue'])}
- Average revenue per booking: {_money(avg_per_booking)}
- Pending payments: {stats['pending_payments_count']} bookings ({_money(stats['pending_payments_amount'])})

CUSTOMER INSIGHTS:
- Total customers: {total_customers}
- Repeat customers: {stats['repeat_customer_count']}
- Customer retention rate: {retention}%
- Top 3 repeat customers: {top_repeat or 'None yet'}

SERVICE PERFORMANCE:
{performance_block}

UPCOMING BOOKINGS (next 10):
{upcoming_block}

The business owner is asking you: {_quoted(question)}

CAPABILITIES:
1. BUSINESS INSIGHTS: Analyze data and provide strategic recommendations for growth, pricing, marketing, etc.
2. CUSTOMER HISTORY: View specific customer booking history and spending patterns
3. MARKETING: Generate newsletters and promotional content
4. ACTIONS: Block dates, update prices, generate reports

If the user requests an action, respond with ONLY a JSON object:
{{"action": "ACTION_TYPE", "params": {{...}}}}

Available actions:
1. Block date: {{"action": "BLOCK_DATE", "params": {{"date": "YYYY-MM-DD", "reason": "text"}}}}
2. Update service price: {{"action": "UPDATE_SERVICE_PRICE", "params": {{"service_id": NUMBER, "price": NUMBER}}}}
3. Generate report: {{"action": "GENERATE_REPORT", "params": {{"type": "revenue|bookings|services|customers"}}}}
4. View customer history: {{"action": "VIEW_CUSTOMER", "params": {{"email": "customer@email.com"}}}}
5. Generate newsletter: {{"action": "GENERATE_NEWSLETTER", "params": {{"topic": "description", "promotion": "optional promo details"}}}}

For business insights/recommendations, analyze the data and provide:
- Specific, actionable suggestions based on trends
- Identify opportunities (underperforming services, pricing adjustments, etc.)
- Marketing strategies based on customer behavior
- Revenue optimization ideas

Be professional, data-driven, and strategic. Format currency as {settings.CURRENCY_LABEL} dollars."""


def _failure(answer: str, error: str, **extra) -> ActionOutcome:
    return ActionOutcome(answer=answer, result={"success": False, "error": error, **extra})


def _block_date(dispatcher: "AssistantDispatcher", params: dict) -> ActionOutcome:
    raw_date = str(params.get("date") or "").strip()
    reason = str(params.get("reason") or "").strip() or "Blocked via AI Assistant"
    try:
        day = date.fromisoformat(raw_date)
    except ValueError:
        return _failure(f"❌ I couldn't block that date: {raw_date or 'no date'} is not a valid YYYY-MM-DD date.", "Invalid date")

    try:
        row = services.block_date(dispatcher.db, day, reason)
    except DuplicateBlock as exc:
        return _failure(f"⚠️ {day.isoformat()} is already blocked, so nothing was changed.", exc.detail)

    return ActionOutcome(
        answer=f"✅ I've blocked {day.isoformat()} for you. Reason: {row.reason}. This date is now unavailable for bookings.",
        result={"success": True, "blocked_date": {"id": row.id, "date": row.blocked_on.isoformat(), "reason": row.reason}},
    )


def _parse_service_id(raw) -> int | None:
    if isinstance(raw, bool):
        return None
    if isinstance(raw, int):
        value = raw
    elif isinstance(raw, str) and raw.strip().isascii() and raw.strip().isdigit() and len(raw.strip()) <= 19:
        value = int(raw.strip())
    else:
        return None
    return value if 0 < value <= MAX_ROW_ID else None


def _parse_price(raw) -> float | None:
    if isinstance(raw, bool) or not isinstance(raw, (int, float, str)):
        return None
    try:
        value = float(raw)
    except (ValueError, OverflowError):
        return None
    return value if math.isfinite(value) else None


def _update_service_price(dispatcher: "AssistantDispatcher", params: dict) -> ActionOutcome:
    service_id = _parse_service_id(params.get("service_id"))
    price = _parse_price(params.get("price"))
    if service_id is None or price is None:
        return _failure("❌ I couldn't update the price: a whole-number service_id and a finite price are required.", "Invalid parameters")

    try:
        service = services.update_service_price(dispatcher.db, service_id, price)
    except NotFoundError as exc:
        return _failure(f"❌ I couldn't find a service with ID {service_id}; no price was changed.", exc.detail)
    except ValidationError as exc:
        return _failure(f"❌ I couldn't update the price: {exc.detail}.", exc.detail)

    return ActionOutcome(
        answer=f'✅ I\'ve updated the price for "{service.name}" to {_money(service.price)}. The change is now live on your booking page.',
        result={"success": True, "service": {"id": service.id, "name": service.name, "price": float(service.price)}},
    )


def _generate_report(dispatcher: "AssistantDispatcher", params: dict) -> ActionOutcome:
    report_type = str(params.get("type") or "").strip().lower()
    if report_type not in REPORT_TYPES:
        return _failure(
            f"❌ I can't build a \"{report_type}\" report. Available reports: {', '.join(REPORT_TYPES)}.",
            "Unknown report type",
        )

    csv_data = export_report_csv(report_type, dispatcher.snapshot)
    filename = artifact_filename(f"{report_type}_report", "csv")
    return ActionOutcome(
        answer=f"✅ I've generated a {report_type} report. You can download it using the link provided.",
        result={
            "success": True,
            "reportType": report_type,
            "csvData": csv_data,
            "filename": filename,
            "downloadUrl": download_url(csv_data, filename),
        },
    )


def _view_customer(dispatcher: "AssistantDispatcher", params: dict) -> ActionOutcome:
    email = str(params.get("email") or "").strip()
    customer = dispatcher.snapshot.find_customer(email) if email else None
    if not customer:
        return ActionOutcome(answer=f"❌ Customer not found with email: {email}", result={"success": False, "customer": None})

    recent = ", ".join(customer["booking_dates"][:5])
    answer = "\n".join(
        [
            f"📊 Customer History for {customer['customer_name']}:",
            f"- Total bookings: {customer['booking_count']}",
            f"- Total spent: {_money(customer['total_spent'])}",
            f"- First booking: {customer['first_booking']}",
            f"- Last booking: {customer['last_booking']}",
            f"- Email: {customer['customer_email']}",
            f"- Phone: {customer['customer_phone']}",
            f"- Recent booking dates: {recent}",
        ]
    )
    return ActionOutcome(answer=answer, result={"success": True, "customer": customer})


def _generate_newsletter(dispatcher: "AssistantDispatcher", params: dict) -> ActionOutcome:
    topic = str(params.get("topic") or "").strip()
    if not topic:
        return _failure("❌ I need a topic to write a newsletter.", "Topic is required")
    promotion = str(params.get("promotion") or "").strip() or None

    try:
        raw = dispatcher.generator.generate(newsletter_prompt(dispatcher.snapshot, topic, promotion))
    except UpstreamGenerationError as exc:
        log.error("newsletter_generation_failed", error=exc.detail)
        return _failure("❌ I couldn't generate the newsletter right now. Please try again.", "Failed to generate newsletter")

    html = finish_newsletter_html(raw)
    filename = artifact_filename("newsletter", "html")
    return ActionOutcome(
        answer="✅ I've generated a newsletter for you! The HTML email is ready to send. Check the download link below.",
        result={
            "success": True,
            "newsletterContent": html,
            "filename": filename,
            "downloadUrl": download_url(html, filename),
        },
    )


ACTION_HANDLERS: dict[str, Callable[["AssistantDispatcher", dict], ActionOutcome]] = {
    ActionName.BLOCK_DATE.value: _block_date,
    ActionName.UPDATE_SERVICE_PRICE.value: _update_service_price,
    ActionName.GENERATE_REPORT.value: _generate_report,
    ActionName.VIEW_CUSTOMER.value: _view_customer,
    ActionName.GENERATE_NEWSLETTER.value: _generate_newsletter,
}


class AssistantDispatcher:
    def __init__(self, db: Session, generator: TextGenerator, today: date | None = None):
        self.db = db
        self.generator = generator
        self.today = today
        self.snapshot: BusinessContextSnapshot | None = None

    def ask(self, question: str) -> AssistantResponse:
        question = (question or "").strip()
        if not question:
            raise ValidationError("Question is required")

        try:
            self.snapshot = build_business_context(self.db, self.today)
        except SQLAlchemyError as exc:
            log.error("business_context_failed", error=str(exc))
            raise InternalError("Failed to get business context") from exc

        generated = self.generator.generate(build_prompt(self.snapshot, question))
        answer = generated.strip()

        parsed = parse_generation_output(answer)
        if isinstance(parsed, PlainText):
            return AssistantResponse(question=question, answer=answer)

        handler = ACTION_HANDLERS.get(parsed.directive.action)
        if handler is None:
            log.info("assistant_unknown_action", action=parsed.directive.action)
            return AssistantResponse(question=question, answer=answer)

        outcome = self._execute(handler, parsed.directive)
        return AssistantResponse(
            question=question,
            answer=outcome.answer,
            action_executed=True,
            action_result=outcome.result,
        )

    def _execute(self, handler, directive: ActionDirective) -> ActionOutcome:
        log.info("assistant_action", action=directive.action)
        try:
            outcome = handler(self, directive.params)
        except SQLAlchemyError as exc:
            self.db.rollback()
            log.error("assistant_action_failed", action=directive.action, error=str(exc))
            return _failure(
                f"❌ I couldn't complete {directive.action}: the change could not be saved.",
                "Action failed",
            )
        log.info("assistant_action_done", action=directive.action, success=outcome.result.get("success"))
        return outcome

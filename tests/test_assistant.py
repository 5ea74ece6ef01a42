from datetime import date, time

import pytest
from fastapi import FastAPI
from fastapi.testclient import TestClient
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker

from app import services
from app.api import get_db, router
from app.assistant import AssistantDispatcher, ParsedAction, PlainText, parse_generation_output
from app.auth_api import router as auth_router
from app.core.middleware import register_error_handlers
from app.db import Base, seed_defaults
from app.errors import UpstreamGenerationError, ValidationError
from app.generation import get_generator
from app.sessions import InMemorySessionStore

TODAY = date(2030, 1, 15)

BLOCK_XMAS = '{"action": "BLOCK_DATE", "params": {"date": "2024-12-25", "reason": "Holiday"}}'


class FakeGenerator:
    def __init__(self, *replies):
        self.replies = list(replies)
        self.prompts = []

    def generate(self, prompt: str) -> str:
        self.prompts.append(prompt)
        reply = self.replies.pop(0)
        if isinstance(reply, Exception):
            raise reply
        return reply


def make_session(tmp_path):
    engine = create_engine(f"sqlite:///{tmp_path / 'test_bizops_assistant.db'}", connect_args={"check_same_thread": False})
    testing_session_local = sessionmaker(bind=engine, autoflush=False, autocommit=False)
    Base.metadata.create_all(bind=engine)
    db = testing_session_local()
    seed_defaults(db)
    return db


def add_history(db):
    def book(name, email, service_id, day, at):
        return services.create_booking(
            db,
            customer_name=name,
            customer_email=email,
            customer_phone="555-0100",
            service_ids=[service_id],
            booking_date=day,
            booking_time=at,
        )

    book("Jane Doe", "jane@example.com", 1, date(2030, 1, 7), time(10, 0))
    book("Jane Doe", "jane@example.com", 2, date(2030, 1, 8), time(10, 0))
    book("Bob Ray", "bob@example.com", 3, date(2030, 1, 9), time(11, 0))
    book("Bob Ray", "bob@example.com", 1, date(2030, 1, 14), time(9, 0))
    carl = book("Carl Cole", "carl@example.com", 1, date(2030, 1, 7), time(11, 0))
    services.update_booking(db, carl.id, status="cancelled")


def ask(db, *replies, question="How is business?"):
    generator = FakeGenerator(*replies)
    response = AssistantDispatcher(db, generator, today=TODAY).ask(question)
    return response, generator


def test_parse_plain_text():
    assert parse_generation_output("Revenue is up 10% this month.") == PlainText("Revenue is up 10% this month.")
    assert isinstance(parse_generation_output("{not json at all"), PlainText)


def test_parse_finds_embedded_directive():
    parsed = parse_generation_output(f"Sure, doing that now: {BLOCK_XMAS} Anything else?")
    assert isinstance(parsed, ParsedAction)
    assert parsed.directive.action == "BLOCK_DATE"
    assert parsed.directive.params == {"date": "2024-12-25", "reason": "Holiday"}


def test_parse_skips_objects_without_action_keys():
    parsed = parse_generation_output('Context {"note": 1} then {"action": "GENERATE_REPORT", "params": {"type": "revenue"}}')
    assert isinstance(parsed, ParsedAction)
    assert parsed.directive.action == "GENERATE_REPORT"


def test_parse_wrong_value_types_is_plain_text():
    assert isinstance(parse_generation_output('{"action": "BLOCK_DATE", "params": "2024-12-25"}'), PlainText)
    assert isinstance(parse_generation_output('{"action": 7, "params": {}}'), PlainText)


def test_plain_answer_is_returned_stripped(tmp_path):
    db = make_session(tmp_path)
    response, generator = ask(db, "  Business looks healthy.  \n", question='Say "hi"')

    body = response.as_dict()
    assert body["success"] is True
    assert body["answer"] == "Business looks healthy."
    assert body["actionExecuted"] is False
    assert body["actionResult"] is None
    assert '"Say \\"hi\\""' in generator.prompts[0]
    assert "CURRENT DATE: 2030-01-15" in generator.prompts[0]


def test_empty_question_is_rejected(tmp_path):
    db = make_session(tmp_path)
    with pytest.raises(ValidationError):
        AssistantDispatcher(db, FakeGenerator()).ask("   ")


def test_block_date_action_persists_and_reports_duplicates(tmp_path):
    db = make_session(tmp_path)

    first, _ = ask(db, BLOCK_XMAS, question="Block Christmas")
    assert first.action_executed is True
    assert first.action_result["success"] is True
    assert "2024-12-25" in first.answer
    rows = services.list_blocked_dates(db, date(2024, 12, 25))
    assert [r.reason for r in rows] == ["Holiday"]

    second, _ = ask(db, BLOCK_XMAS, question="Block Christmas")
    assert second.action_executed is True
    assert second.action_result == {"success": False, "error": "Date already blocked"}
    assert "already blocked" in second.answer
    assert not second.answer.startswith("✅")


def test_block_date_rejects_bad_date(tmp_path):
    db = make_session(tmp_path)
    response, _ = ask(db, '{"action": "BLOCK_DATE", "params": {"date": "tomorrow"}}')
    assert response.action_executed is True
    assert response.action_result["error"] == "Invalid date"
    assert services.list_blocked_dates(db) == []


def test_unknown_action_falls_back_to_raw_answer(tmp_path):
    db = make_session(tmp_path)
    reply = '{"action": "DROP_TABLES", "params": {}}'
    response, _ = ask(db, reply)
    assert response.action_executed is False
    assert response.answer == reply
    assert response.action_result is None


def test_update_service_price_action(tmp_path):
    db = make_session(tmp_path)

    ok, _ = ask(db, '{"action": "UPDATE_SERVICE_PRICE", "params": {"service_id": 1, "price": 175}}')
    assert ok.action_result["success"] is True
    assert ok.action_result["service"]["price"] == 175.0
    assert float(services.get_service(db, 1).price) == 175.0

    missing, _ = ask(db, '{"action": "UPDATE_SERVICE_PRICE", "params": {"service_id": 99, "price": 10}}')
    assert missing.action_result == {"success": False, "error": "Service not found"}

    garbled, _ = ask(db, '{"action": "UPDATE_SERVICE_PRICE", "params": {"service_id": "one", "price": 10}}')
    assert garbled.action_result["error"] == "Invalid parameters"

    negative, _ = ask(db, '{"action": "UPDATE_SERVICE_PRICE", "params": {"service_id": 1, "price": -5}}')
    assert negative.action_result["success"] is False
    assert float(services.get_service(db, 1).price) == 175.0


def test_generate_report_action(tmp_path):
    db = make_session(tmp_path)
    add_history(db)

    response, _ = ask(db, '{"action": "GENERATE_REPORT", "params": {"type": "revenue"}}')
    result = response.action_result
    assert result["success"] is True
    assert result["csvData"].startswith("Period,Revenue\nTotal (All Time),$920.00\n")
    assert result["filename"].startswith("revenue_report_")
    assert result["filename"].endswith(".csv")
    assert result["downloadUrl"].startswith("/api/admin/download-report?data=Period%2CRevenue")

    unknown, _ = ask(db, '{"action": "GENERATE_REPORT", "params": {"type": "weather"}}')
    assert unknown.action_executed is True
    assert unknown.action_result["success"] is False


def test_view_customer_action(tmp_path):
    db = make_session(tmp_path)
    add_history(db)

    found, _ = ask(db, '{"action": "VIEW_CUSTOMER", "params": {"email": "JANE@example.com"}}')
    customer = found.action_result["customer"]
    assert customer["booking_count"] == 2
    assert customer["total_spent"] == 270.0
    assert customer["booking_dates"] == ["2030-01-08", "2030-01-07"]
    assert "Jane Doe" in found.answer

    missing, _ = ask(db, '{"action": "VIEW_CUSTOMER", "params": {"email": "nobody@example.com"}}')
    assert missing.action_result == {"success": False, "customer": None}


def test_generate_newsletter_action(tmp_path):
    db = make_session(tmp_path)
    directive = '{"action": "GENERATE_NEWSLETTER", "params": {"topic": "Spring cleaning", "promotion": "10% off"}}'

    response, generator = ask(db, directive, "```html\n<h1>Spring</h1>\n```")
    html = response.action_result["newsletterContent"]
    assert html.startswith("<!DOCTYPE html>")
    assert "<h1>Spring</h1>" in html
    assert "```" not in html
    assert "Topic: Spring cleaning" in generator.prompts[1]
    assert "Special Promotion: 10% off" in generator.prompts[1]


def test_newsletter_generation_failure_is_not_fatal(tmp_path):
    db = make_session(tmp_path)
    directive = '{"action": "GENERATE_NEWSLETTER", "params": {"topic": "Winter"}}'

    response, _ = ask(db, directive, UpstreamGenerationError("timeout"))
    assert response.action_executed is True
    assert response.action_result == {"success": False, "error": "Failed to generate newsletter"}


def test_generation_failure_propagates(tmp_path):
    db = make_session(tmp_path)
    with pytest.raises(UpstreamGenerationError):
        ask(db, UpstreamGenerationError("connection refused"))


def test_assistant_endpoint(tmp_path):
    engine = create_engine(f"sqlite:///{tmp_path / 'test_bizops_api.db'}", connect_args={"check_same_thread": False})
    testing_session_local = sessionmaker(bind=engine, autoflush=False, autocommit=False)
    Base.metadata.create_all(bind=engine)
    with testing_session_local() as db:
        seed_defaults(db)

    app = FastAPI()
    app.state.session_store = InMemorySessionStore()
    register_error_handlers(app)
    app.include_router(router)
    app.include_router(auth_router)

    def override_get_db():
        db = testing_session_local()
        try:
            yield db
        finally:
            db.close()

    generator = FakeGenerator(BLOCK_XMAS, UpstreamGenerationError("upstream down"))
    app.dependency_overrides[get_db] = override_get_db
    app.dependency_overrides[get_generator] = lambda: generator
    client = TestClient(app)

    assert client.post("/api/admin/ai-assistant", json={"question": "hi"}).status_code == 401
    client.post("/api/admin/login", json={"password": "admin123"})

    assert client.post("/api/admin/ai-assistant", json={}).status_code == 400

    ok = client.post("/api/admin/ai-assistant", json={"question": "Block Christmas"})
    assert ok.status_code == 200
    body = ok.json()
    assert body["actionExecuted"] is True
    assert body["actionResult"]["blocked_date"]["date"] == "2024-12-25"
    assert "timestamp" in body

    failed = client.post("/api/admin/ai-assistant", json={"question": "Anything"})
    assert failed.status_code == 502
    assert failed.json() == {"error": "Failed to get AI response", "details": "upstream down"}


def test_action_names_must_match_exactly(tmp_path):
    db = make_session(tmp_path)
    reply = '{"action": "block_date", "params": {"date": "2024-12-25", "reason": "Holiday"}}'

    response, _ = ask(db, reply)
    assert response.action_executed is False
    assert response.answer == reply
    assert services.list_blocked_dates(db) == []


@pytest.mark.parametrize(
    "params",
    [
        '{"service_id": 1, "price": NaN}',
        '{"service_id": 1, "price": Infinity}',
        '{"service_id": 1, "price": -Infinity}',
        '{"service_id": 1.9, "price": 99}',
        '{"service_id": true, "price": 99}',
        '{"service_id": 100000000000000000000000, "price": 99}',
        '{"service_id": "100000000000000000000000", "price": 99}',
    ],
)
def test_update_service_price_rejects_unusable_numbers(tmp_path, params):
    db = make_session(tmp_path)

    response, _ = ask(db, f'{{"action": "UPDATE_SERVICE_PRICE", "params": {params}}}')
    assert response.action_executed is True
    assert response.action_result == {"success": False, "error": "Invalid parameters"}
    assert float(services.get_service(db, 1).price) == 150.0


def test_update_service_price_accepts_digit_strings(tmp_path):
    db = make_session(tmp_path)

    response, _ = ask(db, '{"action": "UPDATE_SERVICE_PRICE", "params": {"service_id": "2", "price": "130.5"}}')
    assert response.action_result["success"] is True
    assert float(services.get_service(db, 2).price) == 130.5


def test_service_price_guard_rejects_non_finite_values(tmp_path):
    db = make_session(tmp_path)

    for bad in (float("nan"), float("inf"), -1, 10**12):
        with pytest.raises(ValidationError):
            services.update_service_price(db, 1, bad)
    assert float(services.get_service(db, 1).price) == 150.0

from app.main import app

EXPECTED_ROUTES = {
    ("/api/services", "get"),
    ("/api/business-hours", "get"),
    ("/api/availability/{day}", "get"),
    ("/api/bookings", "post"),
    ("/api/gallery", "get"),
    ("/api/admin/login", "post"),
    ("/api/admin/logout", "post"),
    ("/api/admin/check-auth", "get"),
    ("/api/admin/bookings", "get"),
    ("/api/admin/bookings/{booking_id}", "patch"),
    ("/api/admin/bookings/{booking_id}", "delete"),
    ("/api/admin/business-hours/{day_of_week}", "put"),
    ("/api/admin/blocked-dates", "get"),
    ("/api/admin/blocked-dates", "post"),
    ("/api/admin/blocked-dates/{day}", "delete"),
    ("/api/admin/services", "get"),
    ("/api/admin/services", "post"),
    ("/api/admin/services/{service_id}", "put"),
    ("/api/admin/services/{service_id}", "delete"),
    ("/api/admin/gallery/upload", "post"),
    ("/api/admin/gallery/{item_id}", "delete"),
    ("/api/admin/ai-assistant", "post"),
    ("/api/admin/download-report", "get"),
    ("/health", "get"),
    ("/health/ready", "get"),
}


def test_openapi_exposes_route_surface():
    paths = app.openapi()["paths"]
    current = {(path, method) for path, ops in paths.items() for method in ops}
    missing = EXPECTED_ROUTES - current
    assert not missing, f"routes missing from OpenAPI: {sorted(missing)}"

# KomePOS Black-Box API Tests - Shared Configuration and Fixtures
#
# This module provides:
# - Test database provisioning (ephemeral SQLite per test run)
# - A seeded company with one location, staff and a small menu
# - An httpx client speaking HTTP to the WSGI app in-process
# - Failure message formatting

import os
import sys
from dataclasses import dataclass
from decimal import Decimal
from pathlib import Path
from typing import Any, Dict, Generator, Optional

import httpx
import pytest

# Add backend to path for imports
REPO_ROOT = Path(__file__).parent.parent
BACKEND_DIR = REPO_ROOT / "backend"
sys.path.insert(0, str(BACKEND_DIR))


# =============================================================================
# CONFIGURATION
# =============================================================================

@dataclass
class TestConfig:
    """Test configuration with environment variable overrides."""
    base_url: str = os.environ.get("TEST_BACKEND_URL", "http://komepos.test")
    request_timeout: float = float(os.environ.get("TEST_REQUEST_TIMEOUT", "30"))
    timezone: str = os.environ.get("TEST_TIMEZONE", "America/Panama")
    tax_rate: str = os.environ.get("TEST_TAX_RATE", "0.07")


# =============================================================================
# FAILURE MESSAGE HELPER
# =============================================================================

class TestFailure(Exception):
    """
    Custom exception with detailed, human-readable failure messages.

    Structure:
    1. Scenario: What was being tested
    2. Expected: What should have happened
    3. Actual: What actually happened
    4. Likely Cause: Most probable reason for failure
    5. Code Location: Where to look in the codebase
    """

    def __init__(
        self,
        scenario: str,
        expected: str,
        actual: str,
        likely_cause: str,
        code_location: str,
        response: Optional[httpx.Response] = None,
        extra_context: Optional[Dict[str, Any]] = None
    ):
        self.scenario = scenario
        self.expected = expected
        self.actual = actual
        self.likely_cause = likely_cause
        self.code_location = code_location
        self.response = response
        self.extra_context = extra_context or {}
        super().__init__(self._format_message())

    def _format_message(self) -> str:
        lines = [
            "",
            "=" * 80,
            "TEST FAILURE DETAILS",
            "=" * 80,
            f"SCENARIO: {self.scenario}",
            "-" * 80,
            f"EXPECTED: {self.expected}",
            f"ACTUAL: {self.actual}",
            "-" * 80,
            f"LIKELY CAUSE: {self.likely_cause}",
            f"CODE LOCATION: {self.code_location}",
        ]

        if self.response is not None:
            lines.extend([
                "-" * 80,
                f"HTTP STATUS: {self.response.status_code}",
                f"RESPONSE BODY: {self.response.text[:1000]}",
            ])

        if self.extra_context:
            lines.append("-" * 80)
            lines.append("EXTRA CONTEXT:")
            for key, value in self.extra_context.items():
                lines.append(f"  {key}: {value}")

        lines.append("=" * 80)
        return "\n".join(lines)


def assert_response(
    response: httpx.Response,
    expected_status: int,
    scenario: str,
    code_location: str,
    expected_body_contains: Optional[str] = None
):
    """
    Assert HTTP response status and optionally body content.
    Raises TestFailure with detailed message on failure.
    """
    if response.status_code != expected_status:
        raise TestFailure(
            scenario=scenario,
            expected=f"HTTP {expected_status}",
            actual=f"HTTP {response.status_code}",
            likely_cause=_infer_cause(response),
            code_location=code_location,
            response=response
        )

    if expected_body_contains and expected_body_contains not in response.text:
        raise TestFailure(
            scenario=scenario,
            expected=f"Response body contains: {expected_body_contains}",
            actual=f"Response body: {response.text[:500]}",
            likely_cause="Response format changed or wrong endpoint hit",
            code_location=code_location,
            response=response
        )


def assert_field(response: httpx.Response, value: Any, expected: Any, scenario: str, code_location: str):
    """Compare one decoded field and fail with the full response attached."""
    if value != expected:
        raise TestFailure(
            scenario=scenario,
            expected=repr(expected),
            actual=repr(value),
            likely_cause="Pricing or persistence changed the computed value",
            code_location=code_location,
            response=response
        )


def _infer_cause(response: httpx.Response) -> str:
    """Infer likely cause from response status/body."""
    if response.status_code == 401:
        return "Identity rejected - X-User-Id missing, unknown or inactive"
    elif response.status_code == 403:
        return "Location belongs to another company"
    elif response.status_code == 404:
        return "Resource not found - wrong ID or wrong location"
    elif response.status_code == 400:
        return "Invalid request - missing required field or validation failed"
    elif response.status_code == 409:
        return "Conflict - already refunded, closed shift or illegal status change"
    elif response.status_code == 500:
        return "Server error - check backend logs for stack trace"
    else:
        return f"Unexpected status code {response.status_code}"


# =============================================================================
# HTTP CLIENT WITH IDENTITY HEADERS
# =============================================================================

class APIClient:
    """
    HTTP client wrapper that acts as one user at one location.

    Requests go through httpx's WSGI transport, so the full Flask request
    cycle runs without binding a port.
    """

    def __init__(self, app, base_url: str, timeout: float = 30.0):
        self.client = httpx.Client(
            transport=httpx.WSGITransport(app=app),
            base_url=base_url,
            timeout=timeout,
        )
        self.user_id: Optional[int] = None
        self.location_id: Optional[int] = None

    def act_as(self, user_id: int, location_id: Optional[int] = None) -> "APIClient":
        self.user_id = user_id
        self.location_id = location_id
        return self

    def _headers(self, extra: Optional[Dict] = None) -> Dict:
        headers = {"Content-Type": "application/json"}
        if self.user_id is not None:
            headers["X-User-Id"] = str(self.user_id)
        if self.location_id is not None:
            headers["X-Location-Id"] = str(self.location_id)
        if extra:
            headers.update(extra)
        return headers

    def get(self, path: str, params: Optional[Dict] = None, **kwargs) -> httpx.Response:
        return self.client.get(path, headers=self._headers(), params=params, **kwargs)

    def post(self, path: str, json: Optional[Dict] = None, **kwargs) -> httpx.Response:
        return self.client.post(path, headers=self._headers(), json=json, **kwargs)

    def close(self):
        self.client.close()


# =============================================================================
# SEED DATA
# =============================================================================

@dataclass
class SeedData:
    location_id: int
    cashier_id: int
    manager_id: int
    ramen_id: int
    broth_light_id: int
    tea_id: int
    gyoza_id: int
    zone_id: int


def seed_database(app, config: TestConfig) -> SeedData:
    """Create schema plus one company, location, staff and a small menu."""
    from komepos.extensions import db
    from komepos.models import (
        Company, DeliveryZone, Location, Option, OptionGroup, Product, User,
    )
    from komepos.models.auth import ROLE_CASHIER, ROLE_MANAGER

    with app.app_context():
        db.create_all()

        company = Company(name="Kome Ramen", timezone=config.timezone, tax_rate=Decimal(config.tax_rate))
        db.session.add(company)
        db.session.flush()

        location = Location(company_id=company.id, name="Casco Viejo")
        db.session.add(location)
        db.session.flush()

        cashier = User(company_id=company.id, username="cashier", full_name="Ana Cashier",
                       role=ROLE_CASHIER, location_id=location.id)
        manager = User(company_id=company.id, username="manager", full_name="Marta Manager",
                       role=ROLE_MANAGER, location_id=location.id)

        ramen = Product(company_id=company.id, name="Shoyu Ramen", base_price=Decimal("8.00"))
        tea = Product(company_id=company.id, name="Iced Tea", base_price=Decimal("5.00"), is_taxable=False)
        gyoza = Product(company_id=company.id, name="Gyoza", base_price=Decimal("6.00"))
        db.session.add_all([cashier, manager, ramen, tea, gyoza])
        db.session.flush()

        broth = OptionGroup(product_id=ramen.id, name="Broth", is_required=True, min_selections=1)
        db.session.add(broth)
        db.session.flush()
        light = Option(group_id=broth.id, name="Light")
        db.session.add(light)

        zone = DeliveryZone(company_id=company.id, name="Centro", price=Decimal("3.00"))
        zone.locations.append(location)
        db.session.add(zone)
        db.session.commit()

        return SeedData(
            location_id=location.id,
            cashier_id=cashier.id,
            manager_id=manager.id,
            ramen_id=ramen.id,
            broth_light_id=light.id,
            tea_id=tea.id,
            gyoza_id=gyoza.id,
            zone_id=zone.id,
        )


# =============================================================================
# FIXTURES
# =============================================================================

@pytest.fixture(scope="session")
def test_config() -> TestConfig:
    return TestConfig()


@pytest.fixture(scope="session")
def api_app(tmp_path_factory, test_config: TestConfig):
    """Flask app bound to an ephemeral SQLite file for the whole run."""
    from komepos import create_app

    db_file = tmp_path_factory.mktemp("komepos_api") / "test_komepos.sqlite3"
    app = create_app({
        "TESTING": True,
        "SQLALCHEMY_DATABASE_URI": f"sqlite:///{db_file}",
    })
    app.config["SEED"] = seed_database(app, test_config)
    return app


@pytest.fixture(scope="session")
def seed(api_app) -> SeedData:
    return api_app.config["SEED"]


@pytest.fixture
def client(api_app, test_config: TestConfig) -> Generator[APIClient, None, None]:
    """Anonymous client (no identity headers)."""
    api_client = APIClient(api_app, test_config.base_url, timeout=test_config.request_timeout)
    yield api_client
    api_client.close()


@pytest.fixture
def cashier_client(client: APIClient, seed: SeedData) -> APIClient:
    return client.act_as(seed.cashier_id, seed.location_id)


@pytest.fixture
def manager_client(api_app, test_config: TestConfig, seed: SeedData) -> Generator[APIClient, None, None]:
    api_client = APIClient(api_app, test_config.base_url, timeout=test_config.request_timeout)
    yield api_client.act_as(seed.manager_id, seed.location_id)
    api_client.close()


@pytest.fixture
def open_shift(cashier_client: APIClient) -> Generator[Dict, None, None]:
    """An open shift for the cashier, closed again after the test."""
    response = cashier_client.post("/api/shifts", json={"starting_cash": "100.00"})
    assert_response(response, 201, scenario="Open cashier shift", code_location="backend/komepos/routes/shifts.py")
    shift = response.json()["shift"]
    yield shift
    cashier_client.post(f"/api/shifts/{shift['id']}/close", json={"ending_cash": "0.00"})

"""
Shared fixtures: an in-memory DuckDB seeded with the monthly supervision
scenario and a few renderer doubles.
"""
import asyncio
from datetime import date, datetime

import pytest

from workflow_reports.database import connect_duckdb, execute
from workflow_reports.errors import RendererError
from workflow_reports.pdf import RenderStrategy
from workflow_reports.pdf_legacy import FallbackRenderer
from workflow_reports.report_store import ReportStore
from workflow_reports.service import ReportService

EVIDENCE = (
    "https://res.cloudinary.com/example/inventory_report.xlsx",
    "https://res.cloudinary.com/example/photo-1.png",
)


def insert_user(conn, user_id, name, email=None, role="reviewer"):
    execute(conn, "INSERT INTO users (id, name, email, role) VALUES (?, ?, ?, ?)", [user_id, name, email, role])


def insert_process(
    conn,
    process_id,
    name,
    created_by,
    status="pending",
    description=None,
    reviewer=None,
    due_date=None,
    created_at=datetime(2026, 9, 1, 8, 0),
):
    execute(
        conn,
        "INSERT INTO processes (id, name, description, status, assigned_reviewer, due_date, created_by, created_at, updated_at) "
        "VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?)",
        [process_id, name, description, status, reviewer, due_date, created_by, created_at, created_at],
    )


def insert_incident(
    conn,
    incident_id,
    process_id,
    description,
    created_by,
    status="pending",
    evidence=None,
    created_at=datetime(2026, 10, 1, 10, 0),
    resolved_at=None,
    approved_at=None,
):
    execute(
        conn,
        "INSERT INTO incidents (id, process_id, description, status, evidence, created_by, resolved_at, approved_at, created_at, updated_at) "
        "VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?)",
        [
            incident_id,
            process_id,
            description,
            status,
            list(evidence) if evidence else None,
            created_by,
            resolved_at,
            approved_at,
            created_at,
            created_at,
        ],
    )


def seed_scenario(conn):
    """
    P1 "Inventory Audit": in review, two incidents (one pending, one resolved).
    P2 "Supplier Onboarding": pending, no reviewer, no deadline, no incidents.
    """
    insert_user(conn, "u-sup", "Sam Supervisor", "sam@example.com", role="supervisor")
    insert_user(conn, "u-rev", "Rita Reviewer", "rita@example.com")
    insert_process(
        conn,
        "P1",
        "Inventory Audit",
        "u-sup",
        status="in-review",
        description="Quarterly stock reconciliation",
        reviewer="u-rev",
        due_date=date(2026, 11, 30),
    )
    insert_process(conn, "P2", "Supplier Onboarding", "u-sup")
    insert_incident(
        conn,
        "I1",
        "P1",
        "Missing pallet in aisle 4",
        "u-rev",
        status="pending",
        created_at=datetime(2026, 10, 1, 10, 0),
    )
    insert_incident(
        conn,
        "I2",
        "P1",
        "Counting sheet mismatch",
        "u-rev",
        status="resolved",
        evidence=EVIDENCE,
        created_at=datetime(2026, 10, 5, 14, 30),
        resolved_at=datetime(2026, 10, 6, 9, 0),
    )


class StubRenderer(RenderStrategy):
    name = "stub"

    def __init__(self, payload=b"%PDF-1.4\n/Type /Page\n%%EOF"):
        self.payload = payload
        self.documents = []

    async def render(self, document):
        self.documents.append(document)
        return self.payload


class BrokenRenderer(RenderStrategy):
    name = "broken"

    def __init__(self, message="simulated launch failure"):
        self.message = message
        self.calls = 0

    async def render(self, document):
        self.calls += 1
        raise RendererError(self.name, self.message)


@pytest.fixture
def conn():
    connection = connect_duckdb(":memory:")
    seed_scenario(connection)
    yield connection
    connection.close()


@pytest.fixture
def store(conn):
    return ReportStore(conn)


@pytest.fixture
def broken_primary():
    return BrokenRenderer()


@pytest.fixture
def service(conn, store, broken_primary):
    """Primary forced to fail so every report goes through the FPDF fallback."""
    return ReportService(conn, store, [broken_primary, FallbackRenderer()])


@pytest.fixture
def run():
    return asyncio.run

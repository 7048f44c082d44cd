"""
Pytest configuration and fixtures
"""
import pytest
import sys
from datetime import datetime, timezone
from pathlib import Path

# Add project root to path
project_root = Path(__file__).parent.parent
sys.path.insert(0, str(project_root))

from graftwatch.auth.identity import CurrentUser, UserRole
from graftwatch.store.memory import MemoryDocumentStore, TickingClock


@pytest.fixture
def clock():
    return TickingClock()


@pytest.fixture
def store(clock):
    """In-memory store with a deterministic clock."""
    return MemoryDocumentStore(clock=clock)


@pytest.fixture
def author():
    return CurrentUser(uid="author-1", email="author@example.com")


@pytest.fixture
def voter():
    return CurrentUser(uid="voter-1", email="voter@example.com")


@pytest.fixture
def admin():
    return CurrentUser(uid="admin-1", email="admin@example.com", role=UserRole.ADMIN)


@pytest.fixture
def dhaka():
    """Dhaka city center."""
    return {"lat": 23.8103, "lng": 90.4125}


@pytest.fixture
def sample_report_data(dhaka):
    """Report document as the client writes it."""
    return {
        "userId": "author-1",
        "description": "Bribe demanded at the land office",
        "corruptionType": "bribery",
        "location": {"lat": dhaka["lat"], "lng": dhaka["lng"], "address": "Motijheel, Dhaka"},
        "evidenceBase64": [],
        "evidenceLinks": ["https://example.com/receipt.jpg"],
        "status": "approved",
        "votes": {"true": 0, "suspicious": 0, "needEvidence": 0},
        "createdAt": datetime(2024, 3, 1, 8, 0, tzinfo=timezone.utc),
        "updatedAt": datetime(2024, 3, 1, 8, 0, tzinfo=timezone.utc),
    }

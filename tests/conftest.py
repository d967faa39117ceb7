"""
Shared fixtures.

Every test runs against the in-memory row store; nothing talks to
Supabase or sends mail.
"""

import asyncio
from uuid import uuid4

import pytest

from prospera.audit import AuditLogger
from prospera.services.email import LoggingEmailSender
from prospera.services.storage import FinanceRepository, InMemoryRowStore


def seed(store: InMemoryRowStore, table: str, *models) -> None:
    """Insert model rows straight into the store."""
    asyncio.run(store.insert(table, [m.to_row() for m in models]))


@pytest.fixture
def store() -> InMemoryRowStore:
    return InMemoryRowStore()


@pytest.fixture
def repository(store) -> FinanceRepository:
    return FinanceRepository(store)


@pytest.fixture
def audit_logger() -> AuditLogger:
    return AuditLogger()


class RecordingEmailSender(LoggingEmailSender):
    """Keeps every delivered message for assertions."""

    def __init__(self, from_address: str):
        super().__init__(from_address)
        self.sent: list[dict] = []

    async def send(self, to: str, subject: str, body: str) -> None:
        await super().send(to, subject, body)
        self.sent.append({"to": to, "subject": subject, "body": body})


@pytest.fixture
def sender() -> RecordingEmailSender:
    return RecordingEmailSender(from_address="alertas@prospera.ai")


@pytest.fixture
def user_id():
    return uuid4()

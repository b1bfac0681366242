"""Fixtures compartidas de los tests del motor de progreso."""

from datetime import datetime, timedelta, timezone

import pytest


class FakeClock:
    """Reloj controlable inyectado en los componentes."""

    def __init__(self, start: datetime = datetime(2026, 1, 31, 1, 0, tzinfo=timezone.utc)):
        self.now = start

    def __call__(self) -> datetime:
        return self.now

    def advance(self, seconds: float) -> datetime:
        self.now = self.now + timedelta(seconds=seconds)
        return self.now


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()

import pytest

from otp_core.otp import OTPConfig, OTPService
from otp_core.store import InMemoryRecordStore


class FakeClock:
    """Manually advanced monotonic clock."""

    def __init__(self, start: float = 1000.0):
        self.now = start

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def config():
    return OTPConfig(
        code_length=6,
        expiry_seconds=600,
        max_attempts=3,
        store_timeout_seconds=0.5,
        retry_base_delay=0.001,
    )


@pytest.fixture
def store(clock):
    return InMemoryRecordStore(clock=clock)


@pytest.fixture
def service(store, config):
    return OTPService(store, config)

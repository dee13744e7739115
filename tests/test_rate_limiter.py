import asyncio

import pytest
from starlette.requests import Request

from app.core.config import Settings
from app.services.rate_limiter import (
    AdmissionGate,
    InMemoryRateLimitStore,
    RedisRateLimitStore,
    build_admission_gate,
    client_key,
)


class FakeClock:
    def __init__(self, now: float = 1_000_000.0) -> None:
        self.now = now

    def __call__(self) -> float:
        return self.now


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def gate(clock: FakeClock) -> AdmissionGate:
    return AdmissionGate(InMemoryRateLimitStore(), max_attempts=5, window_seconds=900, clock=clock)


def _attempts(gate: AdmissionGate, key: str, n: int) -> list[bool]:
    async def _go():
        return [await gate.allow(key) for _ in range(n)]

    return asyncio.run(_go())


def test_five_attempts_allowed_sixth_denied(gate: AdmissionGate) -> None:
    assert _attempts(gate, "203.0.113.7", 6) == [True] * 5 + [False]


def test_keys_are_independent(gate: AdmissionGate) -> None:
    _attempts(gate, "a", 5)
    assert _attempts(gate, "a", 1) == [False]
    assert _attempts(gate, "b", 1) == [True]


def test_counter_resets_after_window(gate: AdmissionGate, clock: FakeClock) -> None:
    assert _attempts(gate, "k", 6)[-1] is False
    clock.now += 899
    assert _attempts(gate, "k", 1) == [False]
    clock.now += 1
    assert _attempts(gate, "k", 6) == [True] * 5 + [False]


def test_time_until_reset(gate: AdmissionGate, clock: FakeClock) -> None:
    assert asyncio.run(gate.time_until_reset("k")) == 0.0
    _attempts(gate, "k", 1)
    clock.now += 300
    assert asyncio.run(gate.time_until_reset("k")) == pytest.approx(600)
    clock.now += 600
    assert asyncio.run(gate.time_until_reset("k")) == 0.0


def test_memory_store_prunes_expired_records(clock: FakeClock) -> None:
    store = InMemoryRateLimitStore()
    gate = AdmissionGate(store, max_attempts=5, window_seconds=60, clock=clock)
    _attempts(gate, "old", 1)
    clock.now += 120
    _attempts(gate, "new", 1)
    assert len(store) == 1


class _FakePipeline:
    def __init__(self, client: "_FakeRedis") -> None:
        self.client = client
        self.ops: list[tuple[str, str]] = []

    def incr(self, key: str) -> None:
        self.ops.append(("incr", key))

    def ttl(self, key: str) -> None:
        self.ops.append(("ttl", key))

    def get(self, key: str) -> None:
        self.ops.append(("get", key))

    async def execute(self) -> list:
        out = []
        for op, key in self.ops:
            if op == "incr":
                self.client.values[key] = self.client.values.get(key, 0) + 1
                out.append(self.client.values[key])
            elif op == "get":
                value = self.client.values.get(key)
                out.append(None if value is None else str(value))
            else:
                out.append(self.client.ttls.get(key, -2 if key not in self.client.values else -1))
        return out


class _FakeRedis:
    """Records the commands RedisRateLimitStore issues; enough of redis.asyncio for these tests."""

    def __init__(self) -> None:
        self.values: dict[str, int] = {}
        self.ttls: dict[str, int] = {}
        self.closed = False

    def pipeline(self) -> _FakePipeline:
        return _FakePipeline(self)

    async def expire(self, key: str, seconds: int) -> None:
        self.ttls[key] = seconds

    async def aclose(self) -> None:
        self.closed = True


def test_redis_store_sets_expiry_when_window_opens() -> None:
    fake = _FakeRedis()
    gate = AdmissionGate(RedisRateLimitStore(fake), max_attempts=5, window_seconds=900, clock=FakeClock())
    assert _attempts(gate, "1.2.3.4", 6) == [True] * 5 + [False]
    assert fake.values["rate_limit:1.2.3.4"] == 6
    assert fake.ttls["rate_limit:1.2.3.4"] == 900
    assert asyncio.run(gate.time_until_reset("1.2.3.4")) == pytest.approx(900)


def test_build_admission_gate_from_settings() -> None:
    s = Settings(database_url="sqlite://", rate_limit_max_attempts=3, rate_limit_window_seconds=60)
    gate = build_admission_gate(s)
    assert isinstance(gate.store, InMemoryRateLimitStore)
    assert (gate.max_attempts, gate.window_seconds) == (3, 60)


def test_redis_backend_requires_url() -> None:
    with pytest.raises(ValueError, match="REDIS_URL"):
        build_admission_gate(Settings(database_url="sqlite://", rate_limit_backend="redis", redis_url=""))


def test_closing_gate_releases_redis_connection() -> None:
    fake = _FakeRedis()
    gate = AdmissionGate(RedisRateLimitStore(fake), clock=FakeClock())
    asyncio.run(gate.close())
    assert fake.closed is True


def test_closing_memory_gate_drops_counters(gate: AdmissionGate) -> None:
    _attempts(gate, "k", 3)
    asyncio.run(gate.close())
    assert len(gate.store) == 0


def _request(forwarded: str | None = None, peer: str = "10.0.0.9") -> Request:
    headers = [(b"x-forwarded-for", forwarded.encode())] if forwarded is not None else []
    return Request({"type": "http", "method": "POST", "path": "/", "headers": headers, "client": (peer, 50000)})


@pytest.mark.parametrize(
    "forwarded, trusted_hops, expected",
    [
        (None, 1, "10.0.0.9"),
        ("198.51.100.4", 1, "198.51.100.4"),
        ("1.1.1.1, 198.51.100.4", 1, "198.51.100.4"),
        ("1.1.1.1, 198.51.100.4, 10.0.0.1", 2, "198.51.100.4"),
        ("198.51.100.4", 3, "198.51.100.4"),
        ("1.1.1.1, 198.51.100.4", 0, "10.0.0.9"),
        (" , ", 1, "10.0.0.9"),
    ],
)
def test_client_key_trusts_only_proxy_appended_hops(forwarded, trusted_hops: int, expected: str) -> None:
    assert client_key(_request(forwarded), trusted_hops) == expected


def test_client_key_ignores_spoofed_leading_hops() -> None:
    keys = {client_key(_request(f"203.0.113.{i}, 198.51.100.4")) for i in range(10)}
    assert keys == {"198.51.100.4"}

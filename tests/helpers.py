# tests/helpers.py
"""Test doubles shared across the suite."""


class FakeClock:
    """Manually advanced monotonic clock (seconds)."""

    def __init__(self, start: float = 1000.0):
        self.now = start

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


class SleepRecorder:
    """Stands in for asyncio.sleep: records delays and moves the fake clock."""

    def __init__(self, clock: FakeClock = None):
        self.delays = []
        self.clock = clock

    async def __call__(self, delay: float) -> None:
        self.delays.append(delay)
        if self.clock is not None:
            self.clock.advance(delay)


class StubTransport:
    """
    In-memory word service.

    `failures` are raised, in order, by successive generate() calls before
    it starts answering with `combinations`.
    """

    def __init__(self, combinations=None, failures=None, valid_words=None, lookup_errors=None, health=None):
        self.combinations = combinations if combinations is not None else []
        self.failures = list(failures or [])
        self.valid_words = set(valid_words) if valid_words is not None else None
        self.lookup_errors = dict(lookup_errors or {})
        self.health_body = health or {"status": "ok", "services": {"dictionary": True}}
        self.generate_calls = []
        self.lookup_calls = []
        self.health_calls = 0

    async def generate(self, payload):
        self.generate_calls.append(payload)
        if self.failures:
            raise self.failures.pop(0)
        return [dict(c) for c in self.combinations]

    async def lookup(self, word, language):
        self.lookup_calls.append((word, language))
        if word in self.lookup_errors:
            raise self.lookup_errors[word]
        return self.valid_words is None or word in self.valid_words

    async def health(self):
        self.health_calls += 1
        if isinstance(self.health_body, Exception):
            raise self.health_body
        return self.health_body

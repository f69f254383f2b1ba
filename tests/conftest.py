"""
Shared test doubles: a scripted provider gateway and a fake clock.
"""

import asyncio

import pytest

from generation_studio.api.adapter import GenerationOutcome, StatusReport


class FakeClock:
    """Millisecond clock whose sleeps advance time instantly and are recorded."""

    def __init__(self, start: float = 0.0):
        self.now_ms = start
        self.sleeps = []

    def now(self) -> float:
        return self.now_ms

    async def sleep(self, delay_ms: float) -> None:
        self.sleeps.append(delay_ms)
        self.now_ms += delay_ms
        await asyncio.sleep(0)


def _next(script, key, default):
    """Scripts map a key to a value or a list of values; the last value repeats."""
    value = script.get(key, default)
    if isinstance(value, list):
        return value.pop(0) if len(value) > 1 else value[0]
    return value


class FakeGateway:
    """
    Provider gateway driven by per-prompt scripts.

    outcomes:     prompt -> GenerationOutcome | Exception (or a list of them)
    gated:        prompts whose calls wait until release(prompt)
    workflow_ids: prompt -> workflow id returned by submit
    reports:      workflow id -> StatusReport | Exception (or a list of them)
    """

    def __init__(self):
        self.outcomes = {}
        self.gated = set()
        self.workflow_ids = {}
        self.reports = {}
        self.generate_calls = []
        self.submit_calls = []
        self.poll_calls = []
        self.active = 0
        self.max_active = 0
        self._gates = {}

    def _gate(self, prompt) -> asyncio.Event:
        if prompt not in self._gates:
            self._gates[prompt] = asyncio.Event()
        return self._gates[prompt]

    def release(self, prompt) -> None:
        self.gated.discard(prompt)
        self._gate(prompt).set()

    async def prepare(self, ref):
        return ref

    async def generate(self, prompt, input_refs, model_params=None):
        self.generate_calls.append(prompt)
        self.active += 1
        self.max_active = max(self.max_active, self.active)
        try:
            if prompt in self.gated:
                await self._gate(prompt).wait()
            else:
                await asyncio.sleep(0)
            outcome = _next(self.outcomes, prompt,
                            GenerationOutcome(asset_url=f"https://cdn.example/{len(self.generate_calls)}.png"))
            if isinstance(outcome, Exception):
                raise outcome
            return outcome
        finally:
            self.active -= 1

    async def submit(self, prompt, input_refs, model_params=None):
        self.submit_calls.append(prompt)
        await asyncio.sleep(0)
        workflow_id = _next(self.workflow_ids, prompt, f"wf-{len(self.submit_calls)}")
        if isinstance(workflow_id, Exception):
            raise workflow_id
        return workflow_id

    async def poll_status(self, workflow_id):
        self.poll_calls.append(workflow_id)
        report = _next(self.reports, workflow_id, StatusReport(status="processing"))
        if isinstance(report, Exception):
            raise report
        return report


async def _settle(rounds: int = 20) -> None:
    """Let scheduled tasks run until they block."""
    for _ in range(rounds):
        await asyncio.sleep(0)


@pytest.fixture
def gateway():
    return FakeGateway()


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def settle():
    return _settle

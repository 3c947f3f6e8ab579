"""
Shared pytest fixtures for plotpipe tests.
"""
import sys
from pathlib import Path

import pytest

from plotpipe.core.events import EventSystem
from plotpipe.core.process.supervisor import RendererSupervisor
from plotpipe.core.settings import RendererSettings
from plotpipe.rendering.api import RenderContext

FAKE_RENDERER = Path(__file__).resolve().parent / "fake_renderer.py"


class CountingFactory:
    """Command factory that records how many times a spawn was requested."""

    def __init__(self, *flags):
        self.flags = list(flags)
        self.calls = 0

    def __call__(self):
        self.calls += 1
        return [sys.executable, str(FAKE_RENDERER), *self.flags]


@pytest.fixture
def fake_command():
    """Factory for fake renderer command factories: fake_command("--no-handshake")."""
    return CountingFactory


@pytest.fixture
def settings():
    """Short timeouts so failing tests do not hang the suite."""
    return RendererSettings(
        startup_timeout_s=10.0,
        read_timeout_s=10.0,
        graceful_shutdown_timeout_s=2.0,
        terminate_timeout_s=2.0,
        warm_up=False,
    )


@pytest.fixture
def event_system():
    """Create EventSystem instance for testing."""
    system = EventSystem()
    yield system
    system.clear()


@pytest.fixture
def make_supervisor(settings, event_system):
    """Build supervisors on the fake renderer and shut them all down afterwards."""
    created = []

    def _make(factory, **overrides):
        sup = RendererSupervisor(factory, settings.merged(**overrides), event_system)
        created.append(sup)
        return sup

    yield _make
    for sup in created:
        sup.shutdown()


@pytest.fixture
def context(settings, event_system):
    """RenderContext wired to a healthy fake renderer."""
    factory = CountingFactory()
    ctx = RenderContext(settings=settings, command_factory=factory, event_system=event_system)
    ctx.factory = factory
    yield ctx
    ctx.shutdown()

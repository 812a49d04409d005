import sys
from pathlib import Path

import pytest

ROOT = Path(__file__).resolve().parents[1]
root_str = str(ROOT)
if root_str not in sys.path:
    sys.path.insert(0, root_str)


@pytest.fixture(autouse=True)
def _scripted_generation(monkeypatch):
    """Never reach a real model in tests; restore the default deploy sink afterwards."""
    from src.nova.services import deploy_sink, generation

    monkeypatch.delenv("NOVA_TURN_LOCK_TIMEOUT", raising=False)
    monkeypatch.delenv("NOVA_PUBLIC_BASE_URL", raising=False)
    generation.set_generation_client(generation.ScriptedClient())
    yield
    generation.set_generation_client(None)
    deploy_sink.set_deploy_sink(None)

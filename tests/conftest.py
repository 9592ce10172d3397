import pytest

import assessflow.persistence as persistence
from assessflow import FlowRunner
from assessflow.config import AssessFlowConfig
from assessflow.persistence import InMemoryFlowRepository
from tests.fixtures.flows import build_trt_flow


@pytest.fixture(autouse=True)
def _isolated_environment(monkeypatch, tmp_path):
    for name in ("ASSESSFLOW_CONFIG", "ASSESSFLOW_DATABASE_URL", "DATABASE_URL", "ASSESSFLOW_TRACE_CONDITIONS"):
        monkeypatch.delenv(name, raising=False)
    monkeypatch.chdir(tmp_path)
    monkeypatch.setattr(persistence, "_repository_instance", None)


@pytest.fixture
def trt_flow():
    return build_trt_flow()


@pytest.fixture
def memory_repo():
    return InMemoryFlowRepository()


@pytest.fixture
def runner(memory_repo):
    return FlowRunner(memory_repo, config=AssessFlowConfig())

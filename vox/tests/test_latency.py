import pytest
from vox.core.metrics import metrics

@pytest.fixture(autouse=True)
def clean_metrics():
    metrics.reset()
    yield
    metrics.reset()

def test_metrics_recording():
    metrics.record_latency("test_op", 100.0)
    assert "test_op" in metrics.latencies
    assert metrics.latencies["test_op"][-1] == 100.0

def test_tagged_latency():
    metrics.record_latency("synthesis", 250.0, tags={"voice": "5"})
    assert metrics.latencies["synthesis[voice=5]"] == [250.0]

def test_counters():
    metrics.increment("chunks_played")
    metrics.increment("chunks_played")
    metrics.increment("synthesis_failures", tags={"voice": "2"})

    assert metrics.count("chunks_played") == 2
    assert metrics.count("synthesis_failures", tags={"voice": "2"}) == 1
    assert metrics.count("synthesis_failures") == 0

import pytest

from tests.fakes import FakeClock, FakeCluster
from topic_browser.core.backoff import ExponentialBackoff
from topic_browser.core.config import Settings
from topic_browser.domain.services.consumption_engine import WindowedConsumptionEngine
from topic_browser.domain.services.topic_lifecycle import TopicLifecycle
from topic_browser.domain.services.topic_service import TopicService
from topic_browser.domain.services.watermark_resolver import WatermarkResolver


@pytest.fixture
def settings():
    """Settings isolated from the environment and any .env file."""
    return Settings(_env_file=None, kafka_bootstrap="localhost:9092")


@pytest.fixture
def cluster():
    """Cluster with `orders` (watermarks 0/50 and 0/30) and `payments` (one partition of 10)."""
    c = FakeCluster()
    c.add_topic("orders", [50, 30])
    c.add_topic("payments", [10])
    return c


@pytest.fixture
def resolver(cluster, settings):
    return WatermarkResolver(cluster, settings)


@pytest.fixture
def engine(cluster, resolver, settings):
    return WindowedConsumptionEngine(cluster, resolver, settings)


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def backoff():
    return ExponentialBackoff(initial_interval=0.1, multiplier=2.0, max_interval=1.0, max_elapsed=5.0, jitter=0.0)


@pytest.fixture
def lifecycle(cluster, resolver, settings, backoff, clock):
    return TopicLifecycle(cluster, resolver, settings, backoff=backoff, sleep=clock.sleep, clock=clock)


@pytest.fixture
def service(cluster, settings, resolver, engine, lifecycle):
    return TopicService(cluster, settings, resolver=resolver, engine=engine, lifecycle=lifecycle)

from __future__ import annotations

import dataclasses
import random

import fakeredis
import pytest
from sqlalchemy.pool import StaticPool

from salesflow.core.config import get_config
from salesflow.core.container import ServiceContainer, bind_container
from salesflow.database.db import Base, build_engine, build_session_factory
from salesflow.database import models  # noqa: F401
from salesflow.tasks.job_store import JobStore

from tests.fakes import BUSINESS_OPEN, FakeCompletionClient, FakeMessagingClient, SleepRecorder


@pytest.fixture
def config():
    return dataclasses.replace(
        get_config(),
        ENV="test",
        DATABASE_URL="sqlite://",
        WEBHOOK_SECRET=None,
        LEAD_LOCK_WAIT_SECONDS=0.1,
        CELERY_TASK_ALWAYS_EAGER=True,
    )


@pytest.fixture
def engine():
    engine = build_engine("sqlite://", poolclass=StaticPool)
    Base.metadata.create_all(bind=engine)
    yield engine
    engine.dispose()


@pytest.fixture
def session_factory(engine):
    return build_session_factory(engine)


@pytest.fixture
def db(session_factory):
    session = session_factory()
    yield session
    session.close()


@pytest.fixture
def fake_redis():
    return fakeredis.FakeRedis(decode_responses=True)


@pytest.fixture
def job_store(fake_redis, config):
    return JobStore(fake_redis, config, clock=lambda: BUSINESS_OPEN.timestamp())


@pytest.fixture
def completion():
    return FakeCompletionClient()


@pytest.fixture
def messaging():
    return FakeMessagingClient()


@pytest.fixture
def sleeper():
    return SleepRecorder()


@pytest.fixture
def dispatched():
    return []


@pytest.fixture
def container(config, engine, session_factory, fake_redis, completion, messaging, sleeper, dispatched):
    def _dispatch(**kwargs):
        dispatched.append(kwargs)

    container = ServiceContainer(
        config=config,
        session_factory=session_factory,
        redis=fake_redis,
        completion=completion,
        messaging=messaging,
        clock=lambda: BUSINESS_OPEN,
        rng=random.Random(7),
        sleep=sleeper,
        engine=engine,
        dispatch=_dispatch,
    )
    bind_container(container)
    yield container
    bind_container(None)

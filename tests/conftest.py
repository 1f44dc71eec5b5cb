import pytest
from fastapi.testclient import TestClient

from privsalary.api import create_app
from privsalary.config import Settings

from support import OWNER, World


@pytest.fixture
def world():
    return World()


@pytest.fixture
def client(world):
    app = create_app(world.agg, world.oracle, Settings(env="dev"))
    return TestClient(app)


@pytest.fixture
def as_owner():
    return {"X-Caller-Address": OWNER}

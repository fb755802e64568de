import httpx
import pytest
import pytest_asyncio

from bundler_client.client import BundlerClient
from bundler_client.transport import HTTPTransport
from bundler_client.user_op import UserOp
from tests.utils.fake_bundler import DEFAULTS_FOR_USER_OP, FakeBundler


@pytest.fixture(scope="function")
def bundler() -> FakeBundler:
    return FakeBundler()


@pytest_asyncio.fixture(scope="function")
async def client(bundler) -> BundlerClient:
    async with httpx.AsyncClient(
        transport=httpx.ASGITransport(app=bundler.create_app()),
        base_url="http://bundler",
    ) as http_client:
        transport = HTTPTransport("http://bundler/", client=http_client)
        async with BundlerClient(transport) as client:
            yield client


@pytest.fixture(scope="function")
def user_op() -> UserOp:
    return UserOp(**DEFAULTS_FOR_USER_OP)

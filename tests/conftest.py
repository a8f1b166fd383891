from collections.abc import AsyncGenerator, Callable, Iterable

import jwt
import pytest
from httpx import ASGITransport, AsyncClient

from app.core.config import settings

# Override settings for tests
settings.jwt_secret_key = "test-secret-key-that-is-at-least-32-bytes-long"
settings.app_env = "development"

from app.api.ai import get_generation_service  # noqa: E402
from app.core.security import TokenVerifier  # noqa: E402
from app.gateway.backend_clients import BaseBackendClient  # noqa: E402
from app.gateway.fallback import FallbackOrchestrator  # noqa: E402
from app.gateway.rate_limiter import RateWindowStore  # noqa: E402
from app.gateway.request_gate import RequestGate  # noqa: E402
from app.gateway.roster import BackendRoster  # noqa: E402
from app.gateway.types import (  # noqa: E402
    AttemptOutcome,
    BackendDescriptor,
    BackendProvider,
    BackendReply,
    RetryPolicy,
)
from app.main import app  # noqa: E402
from app.metadata.service import GenerationService  # noqa: E402

VALID_METADATA_JSON = (
    '{"description": "A thief who steals corporate secrets through dream-sharing technology.",'
    ' "summary": "A heist inside dreams.", "category": "Sci-Fi", "year": 2010,'
    ' "director": "Christopher Nolan", "cast": "Leonardo DiCaprio, Joseph Gordon-Levitt",'
    ' "rating": "8.8/10", "tags": "dreams, heist, mind-bending"}'
)


class FakeClock:
    """Manually advanced monotonic clock."""

    def __init__(self, start: float = 1000.0):
        self.now = start

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


class ScriptedClient(BaseBackendClient):
    """Backend client that replays scripted outcomes per backend id.

    A script entry is an AttemptOutcome, a string (SUCCESS with that text),
    or an exception instance to raise. The last entry repeats forever.
    """

    provider = BackendProvider.OPENROUTER

    def __init__(self, scripts: dict[str, list], default: object = AttemptOutcome.UNAVAILABLE):
        super().__init__(api_key="test-key")
        self.scripts = {k: list(v) for k, v in scripts.items()}
        self.default = default
        self.calls: list[str] = []

    async def send(self, backend: BackendDescriptor, prompt: str) -> BackendReply:
        self.calls.append(backend.id)
        script = self.scripts.get(backend.id) or [self.default]
        step = script.pop(0) if len(script) > 1 else script[0]

        if isinstance(step, Exception):
            raise step
        if isinstance(step, str) and not isinstance(step, AttemptOutcome):
            return BackendReply(backend_id=backend.id, outcome=AttemptOutcome.SUCCESS, text=step, status_code=200)

        status = {
            AttemptOutcome.RATE_LIMITED: 429,
            AttemptOutcome.UNAVAILABLE: 404,
            AttemptOutcome.TRANSIENT: 500,
        }.get(step, 200)
        return BackendReply(backend_id=backend.id, outcome=step, status_code=status, error_message=step.value)


class RecordingSleep:
    """Stand-in for asyncio.sleep that records requested delays."""

    def __init__(self):
        self.delays: list[float] = []

    async def __call__(self, seconds: float) -> None:
        self.delays.append(seconds)


def make_token(role: str = "admin", user_id: str = "user-1", secret: str | None = None) -> str:
    payload = {"user": {"id": user_id, "role": role}}
    return jwt.encode(payload, secret or settings.jwt_secret_key, algorithm="HS256")


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def recording_sleep() -> RecordingSleep:
    return RecordingSleep()


@pytest.fixture
def scripted_client() -> Callable[..., ScriptedClient]:
    return ScriptedClient


@pytest.fixture
def token_factory() -> Callable[..., str]:
    return make_token


@pytest.fixture
def build_service(clock, recording_sleep) -> Callable[..., GenerationService]:
    """Factory for a GenerationService wired to scripted backends."""

    def _build(
        client: ScriptedClient,
        backend_ids: Iterable[str] = ("model-a", "model-b"),
        limit: int = 5,
        policy: RetryPolicy | None = None,
    ) -> GenerationService:
        store = RateWindowStore(limit=limit, window=60.0, clock=clock)
        gate = RequestGate(TokenVerifier(settings.jwt_secret_key, "HS256"), store, required_role="admin")
        orchestrator = FallbackOrchestrator(
            BackendRoster.from_ids(list(backend_ids)),
            {BackendProvider.OPENROUTER: client},
            policy or RetryPolicy(max_retries=2, initial_backoff=3.0),
            sleep=recording_sleep,
        )
        return GenerationService(gate, orchestrator)

    return _build


@pytest.fixture
def admin_headers() -> dict[str, str]:
    return {"Authorization": f"Bearer {make_token('admin')}"}


@pytest.fixture
async def client() -> AsyncGenerator[AsyncClient, None]:
    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://test") as c:
        yield c
    app.dependency_overrides.clear()


@pytest.fixture
def use_service() -> Callable[[GenerationService], GenerationService]:
    """Route API requests to the given service instead of the lifespan one."""

    def _use(service: GenerationService) -> GenerationService:
        app.dependency_overrides[get_generation_service] = lambda: service
        return service

    return _use

import asyncio
import json

import httpx
import pytest

from ai_jobs.auth.security import StaticSessionProvider
from ai_jobs.domain.errors import (
    AuthError,
    ConfigurationError,
    ReauthenticationRequired,
    TransportError,
    TransportTimeout,
)
from ai_jobs.services.execution import ExecutionTrigger
from ai_jobs.settings import Settings
from executor_sdk import TriggerResponse


def _settings(**overrides):
    values = {"EXECUTOR_URL": "http://executor.test", "DEV_MODE": False}
    values.update(overrides)
    return Settings(**values)


@pytest.mark.asyncio
async def test_trigger_posts_job_id_with_bearer(trigger, executor):
    outcome = await trigger.trigger_execution("job-1")

    assert outcome.ok
    assert len(executor.calls) == 1
    request = executor.calls[0]
    assert request.method == "POST"
    assert str(request.url) == "http://executor.test/executor"
    assert request.headers["Authorization"] == "Bearer token-abc"
    assert json.loads(request.content) == {"job_id": "job-1"}


@pytest.mark.asyncio
async def test_explicit_token_overrides_session(trigger, executor):
    await trigger.trigger_execution("job-1", access_token="relayed-token")

    assert executor.calls[0].headers["Authorization"] == "Bearer relayed-token"


@pytest.mark.asyncio
async def test_slow_executor_counts_as_triggered():
    async def slow(request):
        await asyncio.sleep(1.0)
        return httpx.Response(200)

    trigger = ExecutionTrigger(
        StaticSessionProvider("token-abc"),
        _settings(TRIGGER_TIMEOUT_SECONDS=0.05),
        transport=httpx.MockTransport(slow),
    )
    try:
        outcome = await trigger.trigger_execution("job-1")
    finally:
        await trigger.close()

    assert outcome.ok


@pytest.mark.asyncio
async def test_transport_timeout_counts_as_triggered():
    def times_out(request):
        raise httpx.ReadTimeout("read timed out", request=request)

    trigger = ExecutionTrigger(StaticSessionProvider("token-abc"), _settings(), transport=httpx.MockTransport(times_out))
    try:
        outcome = await trigger.trigger_execution("job-1")
    finally:
        await trigger.close()

    assert outcome.ok


@pytest.mark.asyncio
async def test_connection_failure_is_transport_error():
    def refuses(request):
        raise httpx.ConnectError("connection refused", request=request)

    trigger = ExecutionTrigger(StaticSessionProvider("token-abc"), _settings(), transport=httpx.MockTransport(refuses))
    try:
        outcome = await trigger.trigger_execution("job-1")
    finally:
        await trigger.close()

    assert isinstance(outcome.error, TransportError)
    assert outcome.error.status_code is None


@pytest.mark.asyncio
async def test_invalid_token_requires_reauthentication(trigger, executor):
    executor.status_code = 401
    executor.body = '{"message": "Invalid token"}'

    outcome = await trigger.trigger_execution("job-1")

    assert isinstance(outcome.error, ReauthenticationRequired)
    assert isinstance(outcome.error, AuthError)


@pytest.mark.asyncio
async def test_other_401_is_transport_error(trigger, executor):
    executor.status_code = 401
    executor.body = "missing role"

    outcome = await trigger.trigger_execution("job-1")

    assert isinstance(outcome.error, TransportError)
    assert outcome.error.status_code == 401


@pytest.mark.asyncio
async def test_server_error_carries_status_and_truncated_body(trigger, executor):
    executor.status_code = 500
    executor.body = "x" * 500

    outcome = await trigger.trigger_execution("job-1")

    assert isinstance(outcome.error, TransportError)
    assert outcome.error.status_code == 500
    assert outcome.error.body == "x" * 200


@pytest.mark.asyncio
async def test_no_session_is_auth_error(settings, executor):
    trigger = ExecutionTrigger(StaticSessionProvider(None), settings, transport=executor.transport)

    outcome = await trigger.trigger_execution("job-1")

    assert isinstance(outcome.error, AuthError)
    assert not isinstance(outcome.error, ReauthenticationRequired)
    assert executor.calls == []


@pytest.mark.asyncio
async def test_signed_out_session_is_auth_error(settings, executor):
    provider = StaticSessionProvider("token-abc")
    trigger = ExecutionTrigger(provider, settings, transport=executor.transport)
    provider.sign_out()

    outcome = await trigger.trigger_execution("job-1")

    assert isinstance(outcome.error, AuthError)


@pytest.mark.asyncio
async def test_missing_url_is_configuration_error(executor):
    trigger = ExecutionTrigger(StaticSessionProvider("token-abc"), _settings(EXECUTOR_URL=""), transport=executor.transport)

    outcome = await trigger.trigger_execution("job-1")

    assert isinstance(outcome.error, ConfigurationError)
    assert executor.calls == []


@pytest.mark.asyncio
async def test_url_without_scheme_is_configuration_error(executor):
    trigger = ExecutionTrigger(
        StaticSessionProvider("token-abc"),
        _settings(EXECUTOR_URL="executor.internal"),
        transport=executor.transport,
    )

    outcome = await trigger.trigger_execution("job-1")

    assert isinstance(outcome.error, ConfigurationError)


def test_dev_mode_resolves_dev_url_then_fallback():
    dev = ExecutionTrigger(StaticSessionProvider(), _settings(EXECUTOR_URL="", DEV_MODE=True, EXECUTOR_DEV_URL="http://dev.local:9000/"))
    assert dev.resolve_base_url() == "http://dev.local:9000"

    fallback = ExecutionTrigger(StaticSessionProvider(), _settings(EXECUTOR_URL="", DEV_MODE=True, EXECUTOR_DEV_URL=""))
    assert fallback.resolve_base_url() == "http://localhost:8888"

    with pytest.raises(ConfigurationError):
        ExecutionTrigger(StaticSessionProvider(), _settings(EXECUTOR_URL="")).resolve_base_url()


@pytest.mark.parametrize(
    "response, error_type",
    [
        (TriggerResponse(accepted=True, status_code=202), None),
        (TriggerResponse(timed_out=True), TransportTimeout),
        (TriggerResponse(transport_error="ConnectError: refused"), TransportError),
        (TriggerResponse(status_code=401, body="Invalid Token"), ReauthenticationRequired),
        (TriggerResponse(status_code=502, body="bad gateway"), TransportError),
    ],
)
def test_classify_response(response, error_type):
    trigger = ExecutionTrigger(StaticSessionProvider("token-abc"), _settings())

    error = trigger.classify_response("job-1", response)

    if error_type is None:
        assert error is None
    else:
        assert type(error) is error_type


@pytest.mark.asyncio
async def test_timeout_is_classified_then_swallowed():
    def times_out(request):
        raise httpx.ConnectTimeout("connect timed out", request=request)

    trigger = ExecutionTrigger(StaticSessionProvider("token-abc"), _settings(), transport=httpx.MockTransport(times_out))
    try:
        response = await trigger._client_for(trigger.resolve_base_url()).trigger("job-1", "token-abc")
        outcome = await trigger.trigger_execution("job-1")
    finally:
        await trigger.close()

    assert isinstance(trigger.classify_response("job-1", response), TransportTimeout)
    assert outcome.ok
    assert outcome.error is None

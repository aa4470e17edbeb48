"""Single refresh-and-retry policy for storage provider calls."""

from typing import Awaitable, Callable, TypeVar

from tenacity import (
    AsyncRetrying,
    RetryCallState,
    retry_if_exception,
    stop_after_attempt,
)

from .._utils import logger
from ..exceptions import TransportFailed
from .tokens import TokenManager

T = TypeVar("T")


def is_auth_failure(error: BaseException) -> bool:
    return isinstance(error, TransportFailed) and error.is_auth_error


def _log_auth_retry(retry_state: RetryCallState) -> None:
    error = retry_state.outcome.exception()
    logger.info(f"Provider rejected access token ({error.status}), refreshing and retrying once")


async def with_auth_retry(
    token_manager: TokenManager,
    operation: Callable[[str], Awaitable[T]],
) -> T:
    """Run ``operation(access_token)`` with exactly one retry on auth failure.

    The first attempt uses ``ensure_valid()``. When the provider answers with
    an auth-classified transport failure, the token is force-refreshed and
    the operation runs once more. Any other failure, and any failure of the
    second attempt, propagates unchanged.

    Raises:
        AuthRequired: no valid token before either attempt.
        TransportFailed: the operation failed.
    """
    retrying = AsyncRetrying(
        stop=stop_after_attempt(2),
        retry=retry_if_exception(is_auth_failure),
        before_sleep=_log_auth_retry,
        reraise=True,
    )
    result = None
    async for attempt in retrying:
        with attempt:
            force_refresh = attempt.retry_state.attempt_number > 1
            token = await token_manager.ensure_valid(force_refresh=force_refresh)
            result = await operation(token)
    return result

"""Single retry after a credential refresh."""

from __future__ import annotations

import logging
from collections.abc import Awaitable, Callable
from typing import TypeVar

logger = logging.getLogger(__name__)

CredentialT = TypeVar("CredentialT")
ResultT = TypeVar("ResultT")


async def call_with_refresh(
    call: Callable[[CredentialT], Awaitable[ResultT]],
    credential: CredentialT,
    *,
    refresh: Callable[[], Awaitable[CredentialT | None]] | None,
    is_auth_failure: Callable[[ResultT], bool],
) -> ResultT:
    """Run ``call`` and retry it once with a refreshed credential.

    Args:
        call: Operation taking the credential to authenticate with.
        credential: Credential for the first attempt.
        refresh: Produces a new credential, or None when none is available.
            When omitted the first result is returned as-is.
        is_auth_failure: Classifies a result as an authentication failure.

    Returns:
        The first result when it is not an auth failure or no fresh credential
        could be obtained, otherwise the result of the single retry.
    """
    result = await call(credential)
    if refresh is None or not is_auth_failure(result):
        return result

    fresh = await refresh()
    if fresh is None:
        return result

    logger.debug("Retrying call once with refreshed credential")
    return await call(fresh)

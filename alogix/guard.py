"""
Guarded mutation of user-owned resources.

Every change to an owned resource runs the same sequence, stopping at the
first failure:

1. authenticate            -> Unauthorized
2. validate payload        -> InvalidInput   (before any store access)
3. lookup_or_not_found     -> NotFound
4. assert_owner_or_forbidden -> Forbidden    (only ever after step 3)
5. run the operation
6. return its result

Steps 3 and 4 are separate functions called in a fixed order so existence
is always confirmed before ownership is compared. Unexpected failures in
steps 3 and 5 are logged under the caller's tag and surfaced as
InternalError; the raw exception never reaches the client.
"""
import logging
from typing import Any, Awaitable, Callable, TypeVar

import pydantic
from pydantic import BaseModel

from alogix.errors import Forbidden, InternalError, InvalidInput, MutationError, NotFound, Unauthorized
from alogix.schemas import Identity

logger = logging.getLogger(__name__)

T = TypeVar("T")
R = TypeVar("R")
M = TypeVar("M", bound=BaseModel)


def authenticate(identity: Identity | None) -> Identity:
    if identity is None:
        raise Unauthorized()
    return identity


def validate_input(payload: Any, schema: type[M]) -> M:
    """
    Validate a raw decoded request body against *schema*.

    A missing body, a non-object body and any field-level failure all
    collapse into a single InvalidInput; pydantic's details are not echoed.
    """
    try:
        return schema.model_validate(payload)
    except pydantic.ValidationError:
        raise InvalidInput()


async def lookup_or_not_found(
    find: Callable[[str], Awaitable[T | None]],
    resource_id: str,
    message: str | None = None,
) -> T:
    resource = await find(resource_id)
    if resource is None:
        raise NotFound(message)
    return resource


def assert_owner_or_forbidden(
    identity: Identity, resource: T, owner_of: Callable[[T], str]
) -> None:
    if owner_of(resource) != identity.id:
        raise Forbidden()


async def guarded_mutate(
    identity: Identity | None,
    resource_id: str,
    operation: Callable[[T, Any], Awaitable[R]],
    *,
    find: Callable[[str], Awaitable[T | None]],
    owner_of: Callable[[T], str],
    tag: str,
    payload: Any = None,
    schema: type[BaseModel] | None = None,
    not_found_message: str | None = None,
) -> R:
    """
    Run *operation* against the resource *resource_id* on behalf of
    *identity*, enforcing authentication, input validation, existence and
    ownership in that order.

    *operation* receives the loaded resource and the validated payload
    (``None`` when no *schema* is given, e.g. for deletes).
    """
    actor = authenticate(identity)
    data = validate_input(payload, schema) if schema is not None else None

    try:
        resource = await lookup_or_not_found(find, resource_id, not_found_message)
        assert_owner_or_forbidden(actor, resource, owner_of)
        return await operation(resource, data)
    except MutationError:
        raise
    except Exception as exc:
        logger.exception("[%s] resource=%s user=%s", tag, resource_id, actor.id)
        raise InternalError() from exc


async def guarded_create(
    identity: Identity | None,
    payload: Any,
    operation: Callable[[Identity, M], Awaitable[R]],
    *,
    schema: type[M],
    tag: str,
) -> R:
    """
    Create a resource owned by *identity*: authenticate, validate, persist.

    There is nothing to look up or authorize against, so only the first
    two guard steps apply.
    """
    actor = authenticate(identity)
    data = validate_input(payload, schema)

    try:
        return await operation(actor, data)
    except MutationError:
        raise
    except Exception as exc:
        logger.exception("[%s] user=%s", tag, actor.id)
        raise InternalError() from exc

"""Actor resolution and the ambient actor context.

The ambient actor lives in a ContextVar, so each thread and each asyncio
task sees its own value. Hosts establish it around a unit of work:

    with acting_as("nightly-import"):
        await service.record_change(...)

    run_as(NamedUser(name="ops"), sync_block)
    await run_as_async(LinkedUser(user_id=42), async_block)

On exit the ambient actor is cleared to unset, not restored to any outer
value. Nested scopes therefore lose the outer actor once the inner scope
ends; callers must not rely on nesting.
"""

from __future__ import annotations

from collections.abc import Awaitable, Callable, Iterator
from contextlib import contextmanager
from contextvars import ContextVar
from typing import Any, TypeVar

from aumos_audit_trail.core.types import NO_ACTOR, ActorRef, EntityRef, LinkedUser, NamedUser, NoActor

T = TypeVar("T")

_ambient_actor: ContextVar[ActorRef | None] = ContextVar("aumos_audit_ambient_actor", default=None)


def coerce_actor(actor: Any, user_type_tag: str | None = None) -> ActorRef:
    """Normalise the accepted actor spellings to an ActorRef.

    Args:
        actor: A str (named user), an EntityRef (linked user), an ActorRef
            variant, or None (no actor).
        user_type_tag: When set, an EntityRef actor must carry this type tag.

    Returns:
        The corresponding ActorRef.

    Raises:
        TypeError: For any other type, or an EntityRef of another
            type than `user_type_tag`.
    """
    if actor is None:
        return NO_ACTOR
    if isinstance(actor, (NamedUser, LinkedUser, NoActor)):
        return actor
    if isinstance(actor, str):
        return NamedUser(name=actor)
    if isinstance(actor, EntityRef):
        if user_type_tag is not None and actor.type_tag != user_type_tag:
            raise TypeError(
                f"Actor {actor.type_tag}:{actor.id} is not a {user_type_tag} reference"
            )
        return LinkedUser(user_id=actor.id)
    raise TypeError(f"Unsupported actor type: {type(actor).__name__}")


def current_actor() -> ActorRef | None:
    """Return the ambient actor for this thread/task, or None if unset."""
    return _ambient_actor.get()


def resolve_actor(explicit: Any = None, user_type_tag: str | None = None) -> ActorRef:
    """Determine the actor attributed to a new audit record.

    An explicit actor always wins, including an explicit NoActor. Without
    one, the ambient actor is used; without that, NoActor.
    """
    if explicit is not None:
        return coerce_actor(explicit, user_type_tag)
    ambient = _ambient_actor.get()
    return ambient if ambient is not None else NO_ACTOR


@contextmanager
def acting_as(actor: Any, *, user_type_tag: str | None = None) -> Iterator[ActorRef]:
    """Attribute every change recorded inside the block to `actor`.

    The ambient actor is cleared to unset when the block exits, whether it
    returns or raises. An EntityRef actor is checked against `user_type_tag`
    here, on entry, since the ambient value no longer carries its type tag.

    Raises:
        TypeError: If `actor` is not an accepted actor spelling.
    """
    resolved = coerce_actor(actor, user_type_tag)
    _ambient_actor.set(resolved)
    try:
        yield resolved
    finally:
        _ambient_actor.set(None)


def run_as(actor: Any, block: Callable[[], T], *, user_type_tag: str | None = None) -> T:
    """Run a synchronous callable with `actor` as the ambient actor."""
    with acting_as(actor, user_type_tag=user_type_tag):
        return block()


async def run_as_async(
    actor: Any,
    block: Callable[[], Awaitable[T]],
    *,
    user_type_tag: str | None = None,
) -> T:
    """Await a coroutine function with `actor` as the ambient actor."""
    with acting_as(actor, user_type_tag=user_type_tag):
        return await block()

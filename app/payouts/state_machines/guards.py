"""
Helpers that translate django-fsm failures into domain exceptions.

Usage:
    from payouts.state_machines.guards import legal_transition

    with legal_transition(payout, "complete"):
        payout.complete(transfer_reference="tr_123", now=now)
    payout.save()
"""

from __future__ import annotations

from contextlib import contextmanager
from typing import TYPE_CHECKING

from django_fsm import TransitionNotAllowed

from payouts.exceptions import IllegalTransitionError

if TYPE_CHECKING:
    from collections.abc import Generator

    from django.db import models


@contextmanager
def legal_transition(
    instance: models.Model,
    transition: str,
    field: str = "status",
) -> Generator[None, None, None]:
    """
    Raise IllegalTransitionError if the wrapped FSM transition is refused.

    django-fsm leaves the state field untouched when it refuses a
    transition, so the instance is unchanged when this raises.
    """
    try:
        yield
    except TransitionNotAllowed as exc:
        current = getattr(instance, field)
        raise IllegalTransitionError(
            f"Cannot {transition} {instance.__class__.__name__} "
            f"from '{current}' state",
            details={
                "id": str(instance.pk),
                "current_state": str(current),
                "transition": transition,
            },
        ) from exc

"""Idempotency utilities for order creation.

A client retrying ``POST /api/orders/`` with the same ``Idempotency-Key``
gets the stored response back instead of creating a second order and
reserving stock twice. Keys are scoped to the requesting user, and reusing a
key with a different payload is a conflict.
"""

import hashlib
import json

from django.db import IntegrityError, transaction

from apps.common.errors import DomainError

from .models import IdempotencyKey


class IdempotencyConflict(DomainError):
    code = "IDEMPOTENCY_CONFLICT"
    status_code = 409


def _hash(payload) -> str:
    """Stable SHA-256 of a JSON-serializable payload (sorted keys, compact)."""
    body = json.dumps(payload, sort_keys=True, separators=(",", ":"), default=str)
    return hashlib.sha256(body.encode("utf-8")).hexdigest()


def scoped_key(user_id, key: str) -> str:
    return f"{user_id}:{key}"


@transaction.atomic
def get_or_create_idempotent(key: str, payload) -> tuple[bool, IdempotencyKey]:
    """Get-or-create the idempotency record for ``key``.

    Returns:
        tuple[bool, IdempotencyKey]: ``(existing, rec)``; ``existing`` is
        False when the record was created by this call and the caller must
        ``finalize`` it.

    Raises:
        IdempotencyConflict: If the key was used with a different payload.
    """
    h = _hash(payload)

    try:
        # savepoint so the IntegrityError only rolls back the insert
        with transaction.atomic():
            rec = IdempotencyKey.objects.create(
                key=key, request_hash=h, response_status=0, response_body={}
            )
            return False, rec
    except IntegrityError:
        rec = IdempotencyKey.objects.select_for_update().get(key=key)
        if rec.request_hash != h:
            raise IdempotencyConflict("Idempotency-Key was already used with a different payload")
        return True, rec


def finalize(rec: IdempotencyKey, status_code: int, body: dict, order_id=None) -> None:
    """Store the response so retries can replay it without side effects."""
    rec.response_status = status_code
    rec.response_body = body
    if order_id is not None:
        rec.order_id = order_id
    rec.save(update_fields=["response_status", "response_body", "order_id"])

"""
Synthetic payload generators for load-test requests.

Create and update calls need bodies that are valid but never identical,
otherwise the server answers from a cache or trips over a uniqueness
constraint.  The helpers here combine Faker's realistic values with a
timestamp + random suffix so parallel workers (or back-to-back CI runs)
do not produce duplicates.

Key Concepts Demonstrated:
- Collision-free identifiers using timestamp + random suffix
- Faker-backed names, phone numbers and addresses
- Schema-driven payload generation for arbitrary endpoints
"""

from __future__ import annotations

import random
import string
import time
import uuid
from datetime import datetime, timezone
from typing import Any, Mapping, Sequence, TypeVar

from faker import Faker

fake = Faker()

T = TypeVar("T")


def _suffix(length: int = 6, alphabet: str = string.ascii_lowercase + string.digits) -> str:
    return "".join(random.choices(alphabet, k=length))


def generate_email(prefix: str = "user", domain: str = "example.com") -> str:
    """Return an address such as ``user_a7k9m2845123@example.com``."""
    ts = str(int(time.time() * 1000))[-6:]
    return f"{prefix}_{_suffix()}{ts}@{domain}"


def generate_user_id(prefix: str = "USER") -> str:
    """Return an identifier such as ``USER_1706267845123_A7K9``."""
    ts = int(time.time() * 1000)
    return f"{prefix}_{ts}_{_suffix(4, string.ascii_uppercase + string.digits)}"


def generate_random_string(
    length: int,
    *,
    uppercase: bool = True,
    lowercase: bool = True,
    numbers: bool = True,
) -> str:
    """
    Return a random string drawn from the selected character classes.

    Raises:
        ValueError: If every character class is disabled.
    """
    alphabet = ""
    if uppercase:
        alphabet += string.ascii_uppercase
    if lowercase:
        alphabet += string.ascii_lowercase
    if numbers:
        alphabet += string.digits
    if not alphabet:
        raise ValueError("At least one character class must be enabled")
    return "".join(random.choices(alphabet, k=length))


def generate_phone_number(fmt: str = "US") -> str:
    """Return a ``NXX-NXX-XXXX`` number for ``"US"``, ten digits otherwise."""
    if fmt == "US":
        return f"{random.randint(200, 999)}-{random.randint(200, 999)}-{random.randint(1000, 9999)}"
    return generate_random_string(10, uppercase=False, lowercase=False, numbers=True)


def generate_uuid() -> str:
    return str(uuid.uuid4())


def generate_timestamp(fmt: str = "iso") -> str | int:
    """Return the current time as ISO-8601 (``"iso"``), seconds (``"unix"``) or ms (``"ms"``)."""
    now = datetime.now(timezone.utc)
    if fmt == "unix":
        return int(now.timestamp())
    if fmt == "ms":
        return int(now.timestamp() * 1000)
    return now.isoformat()


def generate_user_payload(overrides: Mapping[str, Any] | None = None) -> dict[str, Any]:
    """
    Build a user-create body.

    Args:
        overrides: Fields that replace the generated defaults.
    """
    payload: dict[str, Any] = {
        "email": generate_email(),
        "firstName": fake.first_name(),
        "lastName": fake.last_name(),
        "phone": generate_phone_number(),
        "userId": generate_user_id(),
        "createdAt": generate_timestamp("iso"),
    }
    payload.update(overrides or {})
    return payload


def generate_order_payload(overrides: Mapping[str, Any] | None = None) -> dict[str, Any]:
    """Build an order-create body with a unique order id."""
    order_ts = int(time.time() * 1000)
    payload: dict[str, Any] = {
        "orderId": f"ORD_{order_ts}_{generate_random_string(4, lowercase=False)}",
        "amount": random.randint(10, 1000),
        "currency": "USD",
        "status": "pending",
        "createdAt": generate_timestamp("iso"),
    }
    payload.update(overrides or {})
    return payload


def generate_address() -> dict[str, str]:
    return {
        "street": fake.street_address(),
        "city": fake.city(),
        "state": fake.state_abbr(),
        "zipCode": fake.zipcode(),
        "country": "USA",
    }


# Field type -> value factory for ``generate_payload``.
_FIELD_FACTORIES = {
    "string": lambda: generate_random_string(10),
    "number": lambda: random.randint(1, 100),
    "email": generate_email,
    "boolean": lambda: random.random() > 0.5,
    "uuid": generate_uuid,
    "timestamp": generate_timestamp,
    "name": fake.name,
}


def generate_payload(schema: Mapping[str, str]) -> dict[str, Any]:
    """
    Build a body from a ``field -> type`` schema.

    Unknown types produce ``None`` for that field.

    Example::

        generate_payload({"name": "string", "age": "number", "email": "email"})
    """
    payload: dict[str, Any] = {}
    for field, kind in schema.items():
        factory = _FIELD_FACTORIES.get(kind)
        payload[field] = factory() if factory else None
    return payload


def add_jitter(value: float, percentage: float = 10) -> float:
    """Return *value* moved by up to ``percentage`` percent either way."""
    spread = value * (percentage / 100)
    return value + random.uniform(-spread, spread)


def select_random(items: Sequence[T]) -> T:
    return random.choice(items)

"""Workflow instance identifiers."""

from __future__ import annotations

import re
import uuid
from datetime import datetime, timezone
from typing import Optional

from .utils.time import epoch_millis, utc_now

_INSTANCE_ID = re.compile(r"^(?P<kind>[a-z][a-z0-9-]*?)-(?P<millis>\d{10,})-(?P<suffix>[0-9a-f]+)$")


def generate_instance_id(kind: str, now: Optional[datetime] = None) -> str:
    """Return ``<kind>-<epoch ms>-<random suffix>``.

    The suffix comes from ``uuid4`` so two ids created in the same
    millisecond collide only with negligible probability.
    """
    millis = epoch_millis(now or utc_now())
    return f"{kind}-{millis}-{uuid.uuid4().hex[:12]}"


def instance_timestamp(instance_id: str) -> Optional[datetime]:
    """Recover the creation time embedded in an instance id.

    Also accepts keys that embed an id, such as ``stored-data-<id>``.
    Returns ``None`` when no timestamp can be found.
    """
    match = _INSTANCE_ID.match(instance_id)
    if match is None:
        return None
    millis = int(match.group("millis"))
    return datetime.fromtimestamp(millis / 1000, tz=timezone.utc)

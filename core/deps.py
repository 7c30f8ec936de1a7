from datetime import datetime
from typing import Optional

from fastapi import Header


def get_actor(x_actor: Optional[str] = Header(default=None, alias="X-Actor")) -> Optional[str]:
    """Admin identity forwarded by the authenticating proxy, recorded on history rows and ledger entries."""
    if x_actor is None:
        return None
    return x_actor.strip() or None


def get_now() -> datetime:
    """Request clock. The only place the order core reads the system time; override in tests."""
    return datetime.utcnow()

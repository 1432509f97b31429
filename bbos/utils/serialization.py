"""
Shared helpers for turning ORM values into JSON-friendly values
"""
from datetime import date, datetime
from typing import Optional, Union


def iso(value: Optional[Union[date, datetime]]) -> Optional[str]:
    return value.isoformat() if value else None

"""JSON-safe payloads for backups and data statistics.

Rows read from Supabase are already JSON, but imported backups can carry
``datetime``/``UUID`` values and the pandas-computed statistics come back as
NumPy scalars, which ``json.dumps`` rejects or writes as ``NaN``.
"""
from __future__ import annotations

import json
import math
import uuid
from datetime import date, datetime

import numpy as np


def _clean_scalar(v):
    if isinstance(v, np.generic):
        v = v.item()
    if isinstance(v, float) and not math.isfinite(v):
        return None
    if isinstance(v, (datetime, date)):
        return v.isoformat()
    if isinstance(v, uuid.UUID):
        return str(v)
    if v is None or isinstance(v, (bool, int, float, str)):
        return v
    return str(v)


def clean_jsonable(obj):
    """Recursively convert ``obj`` into plain JSON values."""
    if isinstance(obj, dict):
        return {str(k): clean_jsonable(v) for k, v in obj.items()}
    if isinstance(obj, (list, tuple)):
        return [clean_jsonable(v) for v in obj]
    return _clean_scalar(obj)


def assert_jsonable(obj):
    try:
        json.dumps(obj, ensure_ascii=False, allow_nan=False)
    except (TypeError, ValueError) as e:
        raise RuntimeError(f"Payload not JSON-serializable: {e}\nFirst part: {str(obj)[:500]}") from e

"""Database layer - engine, base classes, column types, and immutability."""

from points_kernel.db.base import AwareDateTime, Base, TrackedBase
from points_kernel.db.engine import (
    create_tables,
    get_engine,
    get_session,
    get_session_factory,
    init_engine_from_url,
    session_scope,
)
from points_kernel.db.types import Points, Rate, Spend, round_points

__all__ = [
    "get_engine",
    "get_session",
    "get_session_factory",
    "init_engine_from_url",
    "session_scope",
    "create_tables",
    "Base",
    "TrackedBase",
    "AwareDateTime",
    "Points",
    "Spend",
    "Rate",
    "round_points",
]

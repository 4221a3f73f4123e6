"""Routers package."""

from . import (
    health,
    credits,
    paid_actions,
    photos,
    uploads,
)

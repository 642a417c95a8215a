"""Shared test helpers for building event ids and canonical source lines."""

from __future__ import annotations


def uid(n: int) -> str:
    """Deterministic UUID for test event number n"""
    return f"00000000-0000-4000-8000-{n:012d}"


def canonical_line(
    n: int,
    start: str,
    end: str,
    parent: int | None = None,
    name: str | None = None,
    description: str = "",
) -> str:
    parent_field = uid(parent) if parent is not None else "NULL"
    return f"{uid(n)}|{name or f'Event {n}'}|{start}|{end}|{parent_field}|{description}"

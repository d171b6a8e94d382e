"""Heatmap and trend data for the dashboard. The browser only draws these."""

from __future__ import annotations

from datetime import date, timedelta
from typing import Iterable, Mapping

from .activities import UNIT_DIVISORS, ActivityKind
from .schema import ActivityConfig

HEATMAP_WEEKS = 53
MONTH_NAMES = ["Jan", "Feb", "Mar", "Apr", "May", "Jun", "Jul", "Aug", "Sep", "Oct", "Nov", "Dec"]

# (exclusive lower bound in activity units, level)
HEAT_LEVELS = [(5, 4), (2, 3), (0.5, 2), (0, 1)]


def activity_units(entry: Mapping[str, int], activities: Mapping[str, ActivityConfig]) -> float:
    """Weigh one day's counts: an hour of a timed activity or 50 reps is one unit."""
    units = 0.0
    for name, value in entry.items():
        cfg = activities.get(name)
        kind = cfg.kind if cfg else ActivityKind.COUNT
        units += value / UNIT_DIVISORS[kind]
    return units


def heat_level(units: float) -> int:
    for bound, level in HEAT_LEVELS:
        if units > bound:
            return level
    return 0


def heatmap(
    logs: Mapping[str, Mapping[str, int]],
    activities: Mapping[str, ActivityConfig],
    year: int,
    today: date,
) -> dict:
    """Week-column grid for one year, starting on the Sunday on or before Jan 1."""
    year_start = date(year, 1, 1)
    # date.weekday(): Monday=0 ... Sunday=6
    grid_start = year_start - timedelta(days=(year_start.weekday() + 1) % 7)

    cells = []
    months = []
    current_month = None
    for i in range(HEATMAP_WEEKS * 7):
        day = grid_start + timedelta(days=i)
        key = day.isoformat()
        in_year = day.year == year
        if in_year and day.month != current_month:
            current_month = day.month
            months.append({"label": MONTH_NAMES[day.month - 1], "column": i // 7 + 1})

        units = activity_units(logs.get(key, {}), activities)
        cells.append({
            "date": key,
            "units": round(units, 2),
            "level": heat_level(units),
            "inYear": in_year,
            "isToday": day == today,
        })

    return {"year": year, "weeks": HEATMAP_WEEKS, "months": months, "cells": cells}


def trend(
    logs: Mapping[str, Mapping[str, int]],
    today: date,
    names: Iterable[str],
    days: int = 7,
) -> dict:
    """Hours per day for the given timed activities over the last `days` days."""
    dates = [(today - timedelta(days=days - 1 - i)).isoformat() for i in range(days)]
    series = {
        name: [round(logs.get(d, {}).get(name, 0) / 3600, 2) for d in dates]
        for name in names
    }
    labels = ["/".join(d.split("-")[1:]) for d in dates]
    return {"dates": dates, "labels": labels, "series": series}

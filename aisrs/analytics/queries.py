"""
Data-loading helpers for analytics.
"""

from __future__ import annotations

from typing import Callable, Optional

import pandas as pd
from sqlalchemy.orm import Session

from aisrs import srs
from aisrs.analytics.constants import EVENT_COLUMNS, FACET_COLUMNS


def load_review_events_df(
    owner_id: str,
    session_factory: Optional[Callable[[], Session]] = None
) -> pd.DataFrame:
    """
    Load an owner's review events into a dataframe, oldest first.
    """
    rows = srs.get_review_events(owner_id, session_factory=session_factory)
    if not rows:
        return pd.DataFrame(columns=EVENT_COLUMNS)

    df = pd.DataFrame([
        {
            "facet_id": row.facet_id,
            "timestamp": row.timestamp,
            "outcome": row.outcome,
            "resulting_stage": row.resulting_stage,
        }
        for row in rows
    ])
    df["timestamp"] = pd.to_datetime(df["timestamp"], utc=True, errors="coerce")
    df = df.dropna(subset=["facet_id", "timestamp"])
    df["day_utc"] = df["timestamp"].dt.floor("D")
    df = df.sort_values("timestamp").reset_index(drop=True)
    return df


def load_facets_df(
    owner_id: str,
    session_factory: Optional[Callable[[], Session]] = None
) -> pd.DataFrame:
    """
    Load current facet snapshots (kind and stage) for an owner.
    """
    store = srs.ReviewFacetStore(fact_store=None, session_factory=session_factory)
    snapshots = store.list_facets(owner_id)
    if not snapshots:
        return pd.DataFrame(columns=FACET_COLUMNS)

    return pd.DataFrame(
        [{"facet_id": s.id, "facet_kind": s.facet_kind, "stage": s.stage} for s in snapshots]
    )

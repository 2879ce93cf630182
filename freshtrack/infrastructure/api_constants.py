"""
Backend endpoint constants and configuration.

This module contains the table paths and query filters of the PostgREST-style
backend. Centralizing these values makes it easy to swap out tables or
update API versions.
"""
from typing import Optional


class BackendEndpoints:
    """REST paths of the inventory backend."""

    # Base path
    REST_BASE = "/rest/v1"

    # Tables
    BATCHES = f"{REST_BASE}/batches"
    SENSOR_ALERTS = f"{REST_BASE}/sensor_alerts"
    ALERTS = f"{REST_BASE}/alerts"

    @classmethod
    def active_batches_params(cls, warehouse_id: Optional[str] = None) -> dict[str, str]:
        """
        Query parameters for the non-expired batch listing.

        Args:
            warehouse_id: Optional warehouse to restrict to

        Returns:
            PostgREST filter parameters, newest entry first
        """
        params = {
            "select": "*",
            "status": "neq.expired",
            "order": "entry_date.desc",
        }
        if warehouse_id:
            params["warehouse_id"] = f"eq.{warehouse_id}"
        return params

    @classmethod
    def row_filter(cls, record_id: str) -> dict[str, str]:
        """Filter selecting a single row by its internal id."""
        return {"id": f"eq.{record_id}"}


class AlertSourceIds:
    """Logical alert sources and the tables/filters behind them."""

    SENSOR = "sensor_alerts"
    ORDER = "order_alerts"

    QUERIES: dict[str, tuple[str, dict[str, str]]] = {
        SENSOR: (BackendEndpoints.SENSOR_ALERTS, {"acknowledged": "eq.false"}),
        ORDER: (
            BackendEndpoints.ALERTS,
            {"type": "eq.order", "is_acknowledged": "eq.false"},
        ),
    }

    @classmethod
    def query_for(cls, source_id: str, warehouse_id: str) -> tuple[str, dict[str, str]]:
        """
        Endpoint and filters counting a source's unacknowledged alerts.

        Raises:
            KeyError: If the source id is unknown
        """
        endpoint, filters = cls.QUERIES[source_id]
        params = {"select": "id", **filters, "warehouse_id": f"eq.{warehouse_id}"}
        return endpoint, params


class APIConstants:
    """General API configuration constants."""

    # HTTP Headers
    CONTENT_TYPE_JSON = "application/json"
    PREFER_REPRESENTATION = "return=representation"
    PREFER_COUNT_EXACT = "count=exact"

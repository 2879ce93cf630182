"""
Dependency injection for FastAPI.

Long-lived collaborators are built once in the application lifespan and kept
on ``app.state``; these factories hand them to the routes.
"""
from typing import Annotated
from fastapi import Depends, Request

from freshtrack.infrastructure.backend_client import BackendClient
from freshtrack.infrastructure.change_feed import LocalChangeFeed
from freshtrack.infrastructure.signals import SignalBus
from freshtrack.services.application.alert_aggregator import (
    AlertAggregator,
    AlertCountMonitor,
    default_alert_sources,
)
from freshtrack.services.application.batch_service import BatchService
from freshtrack.services.application.inventory_view import InventoryView
from freshtrack.services.domain.allocation_ranker import AllocationRanker


def get_backend_client(request: Request) -> BackendClient:
    """Backend client created in the lifespan."""
    return request.app.state.backend_client


def get_change_feed(request: Request) -> LocalChangeFeed:
    """In-process change feed created in the lifespan."""
    return request.app.state.change_feed


def get_signal_bus(request: Request) -> SignalBus:
    """Signal bus created in the lifespan."""
    return request.app.state.signal_bus


def get_inventory_view(request: Request) -> InventoryView:
    """The service-wide inventory view."""
    return request.app.state.inventory_view


def get_alert_monitor(request: Request) -> AlertCountMonitor:
    """Alert monitor for the default scope."""
    return request.app.state.alert_monitor


def get_alert_aggregator(
    client: Annotated[BackendClient, Depends(get_backend_client)],
) -> AlertAggregator:
    """
    Dependency factory for AlertAggregator.

    Args:
        client: Backend client (injected)

    Returns:
        Aggregator over the standard alert sources
    """
    return AlertAggregator(default_alert_sources(client))


def get_batch_service(
    client: Annotated[BackendClient, Depends(get_backend_client)],
    feed: Annotated[LocalChangeFeed, Depends(get_change_feed)],
) -> BatchService:
    """
    Dependency factory for BatchService.

    Args:
        client: Backend client (injected)
        feed: Change feed the service publishes to (injected)

    Returns:
        BatchService instance
    """
    return BatchService(client=client, feed=feed)


def get_allocation_ranker() -> AllocationRanker:
    """Dependency factory for AllocationRanker."""
    return AllocationRanker()


# Type aliases for cleaner route signatures
InventoryViewDep = Annotated[InventoryView, Depends(get_inventory_view)]
AlertAggregatorDep = Annotated[AlertAggregator, Depends(get_alert_aggregator)]
AlertMonitorDep = Annotated[AlertCountMonitor, Depends(get_alert_monitor)]
SignalBusDep = Annotated[SignalBus, Depends(get_signal_bus)]
BatchServiceDep = Annotated[BatchService, Depends(get_batch_service)]
AllocationRankerDep = Annotated[AllocationRanker, Depends(get_allocation_ranker)]

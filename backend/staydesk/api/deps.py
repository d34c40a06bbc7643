"""Shared API dependencies: the wired core services and the caller's identity.

Router modules import everything they need from here::

    from staydesk.api.deps import Services, get_services, get_current_actor
"""

import logging
from collections.abc import Callable
from dataclasses import dataclass
from datetime import datetime
from functools import lru_cache

from staydesk.auth.dependencies import get_current_actor, require_roles
from staydesk.config import Settings, settings
from staydesk.domain.policy import BookingPolicy, utcnow
from staydesk.domain.repositories import UnitOfWorkFactory
from staydesk.services.availability import AvailabilityEngine
from staydesk.services.booking import BookingOrchestrator
from staydesk.services.clients import ClientResolver
from staydesk.services.notifications import InvoiceIssuer, Notifier
from staydesk.services.pricing import PricingCalculator
from staydesk.services.reservations import ReservationStateMachine

logger = logging.getLogger(__name__)

__all__ = [
    "Services",
    "build_services",
    "get_services",
    "get_current_actor",
    "require_roles",
]


@dataclass(frozen=True)
class Services:
    policy: BookingPolicy
    pricing: PricingCalculator
    availability: AvailabilityEngine
    clients: ClientResolver
    reservations: ReservationStateMachine
    booking: BookingOrchestrator
    clock: Callable[[], datetime]


def build_services(
    uow_factory: UnitOfWorkFactory,
    config: Settings = settings,
    clock: Callable[[], datetime] = utcnow,
    notifier: Notifier | None = None,
    invoices: InvoiceIssuer | None = None,
) -> Services:
    """Wire every core component on top of one unit-of-work factory."""
    policy = BookingPolicy.from_settings(config)
    pricing = PricingCalculator(policy.tax_rate)
    availability = AvailabilityEngine(uow_factory, clock)
    clients = ClientResolver(uow_factory)
    reservations = ReservationStateMachine(uow_factory, pricing, policy, notifier, invoices, clock)
    booking = BookingOrchestrator(uow_factory, availability, pricing, clients, reservations, clock)
    return Services(policy, pricing, availability, clients, reservations, booking, clock)


def default_uow_factory(config: Settings = settings) -> UnitOfWorkFactory:
    if config.repository_backend == "memory":
        from staydesk.repositories.memory import InMemoryStore, memory_uow_factory

        logger.warning("Using the in-memory repository backend; data is lost on restart")
        return memory_uow_factory(InMemoryStore())

    from staydesk.database import async_session_factory
    from staydesk.repositories.sql import sql_uow_factory

    return sql_uow_factory(async_session_factory)


@lru_cache
def get_services() -> Services:
    """Application-wide services. Tests swap this via ``app.dependency_overrides``."""
    return build_services(default_uow_factory())

"""Pricing providers and the repository that caches their prices."""

from __future__ import annotations

import threading
from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Protocol

OnDemandPriceList = dict[str, float]
"""Instance type to on-demand hourly price."""

SpotPriceList = dict[str, dict[str, float]]
"""Instance type to availability zone to spot hourly price."""


@dataclass(frozen=True)
class FargatePrice:
    """Hourly Fargate prices per vCPU and per GB of memory."""

    vcpu_per_hour: float = 0.0
    gb_per_hour: float = 0.0


class Provider(Protocol):
    """A source of EC2 and Fargate prices."""

    def get_on_demand_pricing(self) -> OnDemandPriceList:
        """Return on-demand prices by instance type."""

    def get_spot_pricing(self) -> SpotPriceList:
        """Return spot prices by instance type and zone."""

    def get_fargate_pricing(self) -> FargatePrice:
        """Return the Fargate per-vCPU and per-GB prices."""


class PricingUpdateError(Exception):
    """One or more pricing updates failed."""

    def __init__(self, errors: list[BaseException]) -> None:
        self.errors = list(errors)
        super().__init__("; ".join(str(error) for error in self.errors))


class Repository:
    """Thread-safe cache of the latest prices fetched from a provider."""

    def __init__(self, provider: Provider) -> None:
        self._provider = provider
        self._lock = threading.RLock()
        self._on_demand_prices: OnDemandPriceList = {}
        self._on_demand_updated: datetime | None = None
        self._spot_prices: SpotPriceList = {}
        self._spot_updated: datetime | None = None
        self._fargate_price = FargatePrice()
        self._fargate_updated: datetime | None = None

    def update_on_demand_pricing(self) -> None:
        prices = self._provider.get_on_demand_pricing()
        with self._lock:
            self._on_demand_prices = prices
            self._on_demand_updated = datetime.now(timezone.utc)

    def update_spot_pricing(self) -> None:
        prices = self._provider.get_spot_pricing()
        with self._lock:
            self._spot_prices = prices
            self._spot_updated = datetime.now(timezone.utc)

    def update_fargate_pricing(self) -> None:
        price = self._provider.get_fargate_pricing()
        with self._lock:
            self._fargate_price = price
            self._fargate_updated = datetime.now(timezone.utc)

    def update_pricing(self) -> None:
        """Refresh all prices concurrently.

        Every update is attempted; failures are gathered into a
        :class:`PricingUpdateError`.
        """
        updates = (
            self.update_on_demand_pricing,
            self.update_spot_pricing,
            self.update_fargate_pricing,
        )
        with ThreadPoolExecutor(max_workers=len(updates)) as pool:
            futures = [pool.submit(update) for update in updates]
        errors = [f.exception() for f in futures if f.exception() is not None]
        if errors:
            raise PricingUpdateError(errors)

    def instance_types(self) -> list[str]:
        """Instance types with a known on-demand or spot price."""
        with self._lock:
            return list(dict.fromkeys([*self._on_demand_prices, *self._spot_prices]))

    def on_demand_last_updated(self) -> datetime | None:
        with self._lock:
            return self._on_demand_updated

    def spot_last_updated(self) -> datetime | None:
        with self._lock:
            return self._spot_updated

    def fargate_last_updated(self) -> datetime | None:
        with self._lock:
            return self._fargate_updated

    def on_demand_price(self, instance_type: str) -> float | None:
        """Last known on-demand price of an instance type, or None."""
        with self._lock:
            return self._on_demand_prices.get(instance_type)

    def fargate_price(self, cpu: float, memory: float) -> float | None:
        """Hourly price of a Fargate task of this size, or None if unknown."""
        with self._lock:
            price = self._fargate_price
        if price.gb_per_hour == 0 or price.vcpu_per_hour == 0:
            return None
        return cpu * price.vcpu_per_hour + memory * price.gb_per_hour

    def spot_price(self, instance_type: str, zone: str) -> float | None:
        """Last known spot price of an instance type in a zone, or None."""
        with self._lock:
            return self._spot_prices.get(instance_type, {}).get(zone)
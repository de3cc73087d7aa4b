"""Pricing provider backed by the AWS Price List and EC2 APIs."""

from __future__ import annotations

import json
import logging
import os
from collections.abc import Iterator, Mapping
from dataclasses import replace
from datetime import datetime, timezone
from typing import Any

from .aws_api import Credentials, EC2Client, PricingClient, pricing_api_region
from .repository import FargatePrice, OnDemandPriceList, SpotPriceList

log = logging.getLogger(__name__)

SPOT_PRODUCT_DESCRIPTIONS = ("Linux/UNIX", "Linux/UNIX (Amazon VPC)")


class PricingError(Exception):
    """Prices could not be fetched or understood."""


def _field(obj: Any, *path: str) -> Any:
    """Follow ``path`` through nested objects, matching keys case-insensitively."""
    for name in path:
        if not isinstance(obj, Mapping):
            return None
        obj = obj[name] if name in obj else next(
            (v for k, v in obj.items() if k.lower() == name.lower()), None
        )
    return obj


def _items(price_list) -> Iterator[Any]:
    for raw in price_list:
        if isinstance(raw, Mapping):
            yield raw
            continue
        try:
            yield json.loads(raw)
        except (TypeError, ValueError) as exc:
            raise PricingError(f"decoding: {exc}") from exc


def _on_demand_prices(item: Any) -> Iterator[float]:
    """Non-zero USD prices of every on-demand price dimension of ``item``."""
    terms = _field(item, "Terms", "OnDemand")
    for term in terms.values() if isinstance(terms, Mapping) else ():
        dimensions = _field(term, "PriceDimensions")
        for dimension in dimensions.values() if isinstance(dimensions, Mapping) else ():
            try:
                price = float(_field(dimension, "PricePerUnit", "USD"))
            except (TypeError, ValueError):
                continue
            if price != 0:
                yield price


def parse_on_demand_page(prices: OnDemandPriceList, price_list) -> OnDemandPriceList:
    """Record the on-demand price of each instance type in ``price_list`` into ``prices``."""
    for item in _items(price_list):
        instance_type = _field(item, "Product", "Attributes", "InstanceType")
        if isinstance(instance_type, str) and instance_type:
            for price in _on_demand_prices(item):
                prices[instance_type] = price
    return prices


def parse_fargate_page(fargate_price: FargatePrice, price_list) -> FargatePrice:
    """Return ``fargate_price`` updated with the Fargate prices in ``price_list``."""
    for item in _items(price_list):
        name = _field(item, "Product", "Attributes", "UsageType")
        if not isinstance(name, str) or "Fargate" not in name:
            continue
        for price in _on_demand_prices(item):
            if "vCPU-Hours" in name:
                fargate_price = replace(fargate_price, vcpu_per_hour=price)
            elif "GB-Hours" in name:
                fargate_price = replace(fargate_price, gb_per_hour=price)
            else:
                raise PricingError(f"unsupported fargate price information found: {name}")
    return fargate_price


class AWSProvider:
    """Fetches on-demand, spot and Fargate prices for one region."""

    def __init__(self, region: str, ec2_client: Any, pricing_client: Any) -> None:
        self.region = region
        self.ec2_client = ec2_client
        self.pricing_client = pricing_client

    @classmethod
    def from_environment(cls, region: str | None = None) -> AWSProvider:
        """Build a provider from the AWS region and credentials in the environment."""
        region = region or os.environ.get("AWS_REGION") or os.environ.get("AWS_DEFAULT_REGION")
        if not region:
            raise PricingError("no AWS region configured")
        credentials = Credentials.from_environment()
        return cls(
            region,
            EC2Client(credentials, region),
            PricingClient(credentials, pricing_api_region(region)),
        )

    def get_on_demand_pricing(self) -> OnDemandPriceList:
        shared = self._fetch_on_demand_pricing(
            ("tenancy", "Shared"), ("productFamily", "Compute Instance")
        )
        metal = self._fetch_on_demand_pricing(
            ("tenancy", "Dedicated"), ("productFamily", "Compute Instance (bare metal)")
        )
        if not shared or not metal:
            raise PricingError("no on-demand pricing found")
        return {**shared, **metal}

    def get_spot_pricing(self) -> SpotPriceList:
        prices: SpotPriceList = {}
        records = self.ec2_client.describe_spot_price_history(
            SPOT_PRODUCT_DESCRIPTIONS, datetime.now(timezone.utc)
        )
        for record in records:
            try:
                spot_price = float(record.get("spot_price"))
            except (TypeError, ValueError):
                log.warning("unable to parse price record %r", record)
                continue
            if record.get("timestamp") is None:
                continue
            zones = prices.setdefault(record.get("instance_type") or "", {})
            zones[record.get("availability_zone") or ""] = spot_price
        if not prices:
            raise PricingError("no spot pricing found")
        return prices

    def get_fargate_pricing(self) -> FargatePrice:
        price_list = self.pricing_client.get_products("AmazonEKS", [("regionCode", self.region)])
        return parse_fargate_page(FargatePrice(), price_list)

    def _fetch_on_demand_pricing(self, *additional_filters: tuple[str, str]) -> OnDemandPriceList:
        filters = [
            ("regionCode", self.region),
            ("serviceCode", "AmazonEC2"),
            ("preInstalledSw", "NA"),
            ("operatingSystem", "Linux"),
            ("capacitystatus", "Used"),
            ("marketoption", "OnDemand"),
            *additional_filters,
        ]
        return parse_on_demand_page({}, self.pricing_client.get_products("AmazonEC2", filters))
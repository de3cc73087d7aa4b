"""Signed clients for the AWS Price List and EC2 APIs."""

from __future__ import annotations

import hashlib
import hmac
import json
import os
import xml.etree.ElementTree as ET
from collections.abc import Iterable, Iterator, Mapping
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any
from urllib.parse import parse_qsl, quote, urlencode, urlsplit

import requests

from .paginator import Paginator

ALGORITHM = "AWS4-HMAC-SHA256"
EC2_API_VERSION = "2016-11-15"
DEFAULT_TIMEOUT = 60.0

_SAFE = "-_.~"
_GENERATED_HEADERS = {"host", "x-amz-date", "x-amz-security-token", "authorization"}


class AWSAPIError(Exception):
    """An AWS API call failed."""

    def __init__(self, message: str, code: str = "") -> None:
        super().__init__(message)
        self.code = code


@dataclass(frozen=True)
class Credentials:
    """AWS access credentials."""

    access_key_id: str
    secret_access_key: str = field(repr=False)
    session_token: str | None = field(default=None, repr=False)

    @classmethod
    def from_environment(cls) -> Credentials:
        """Read credentials from the standard AWS environment variables."""
        key_id = os.environ.get("AWS_ACCESS_KEY_ID")
        secret_key = os.environ.get("AWS_SECRET_ACCESS_KEY")
        if not key_id or not secret_key:
            raise AWSAPIError("AWS credentials not found in the environment")
        return cls(key_id, secret_key, os.environ.get("AWS_SESSION_TOKEN") or None)


def pricing_api_region(region: str) -> str:
    """The region whose Price List endpoint serves ``region``."""
    # The Price List API has endpoints in only a few regions.
    if region.startswith("ap-"):
        return "ap-south-1"
    return "us-east-1"


def _hmac(key: bytes, message: str) -> bytes:
    return hmac.new(key, message.encode(), hashlib.sha256).digest()


def sign_request(method, url, headers, body, credentials, region, service, now=None):
    """Return ``headers`` completed with a Signature Version 4 signature."""
    now = (now or datetime.now(timezone.utc))
    if now.tzinfo is not None:
        now = now.astimezone(timezone.utc)
    amz_date = now.strftime("%Y%m%dT%H%M%SZ")
    datestamp = amz_date[:8]
    parts = urlsplit(url)
    payload = body.encode("utf-8") if isinstance(body, str) else body or b""

    result = {k: v for k, v in headers.items() if k.lower() not in _GENERATED_HEADERS}
    result["Host"] = parts.netloc
    result["X-Amz-Date"] = amz_date
    if credentials.session_token:
        result["X-Amz-Security-Token"] = credentials.session_token

    canonical = {k.lower(): " ".join(str(v).split()) for k, v in result.items()}
    names = sorted(canonical)
    signed_headers = ";".join(names)
    query = "&".join(
        f"{k}={v}"
        for k, v in sorted(
            (quote(k, safe=_SAFE), quote(v, safe=_SAFE))
            for k, v in parse_qsl(parts.query, keep_blank_values=True)
        )
    )
    canonical_request = "\n".join([
        method.upper(),
        quote(parts.path or "/", safe="/" + _SAFE),
        query,
        "".join(f"{n}:{canonical[n]}\n" for n in names),
        signed_headers,
        hashlib.sha256(payload).hexdigest(),
    ])
    scope = f"{datestamp}/{region}/{service}/aws4_request"
    string_to_sign = "\n".join(
        [ALGORITHM, amz_date, scope, hashlib.sha256(canonical_request.encode()).hexdigest()]
    )
    key = ("AWS4" + credentials.secret_access_key).encode()
    for part in (datestamp, region, service, "aws4_request"):
        key = _hmac(key, part)
    signature = hmac.new(key, string_to_sign.encode(), hashlib.sha256).hexdigest()
    result["Authorization"] = (
        f"{ALGORITHM} Credential={credentials.access_key_id}/{scope}, "
        f"SignedHeaders={signed_headers}, Signature={signature}"
    )
    return result


class _SignedClient:
    service = ""
    default_endpoint = ""

    def __init__(self, credentials, region="us-east-1", session=None,
                 timeout=DEFAULT_TIMEOUT, endpoint=None):
        self.credentials = credentials
        self.region = region
        self.endpoint = endpoint or self.default_endpoint.format(region=region)
        self.session = session if session is not None else requests.Session()
        self.timeout = timeout

    def _post(self, headers: Mapping[str, str], body: bytes) -> Any:
        signed = sign_request(
            "POST", self.endpoint, headers, body, self.credentials, self.region, self.service
        )
        try:
            return self.session.post(self.endpoint, data=body, headers=signed, timeout=self.timeout)
        except requests.RequestException as exc:
            raise AWSAPIError(f"{self.service} request failed: {exc}") from exc


class PricingClient(_SignedClient):
    """Client for the Price List query API."""

    service = "pricing"
    default_endpoint = "https://api.pricing.{region}.amazonaws.com/"

    def get_products(self, service_code: str, filters: Iterable[tuple[str, str]]) -> Iterator[str]:
        """Yield the JSON price documents matching every ``(field, value)`` term."""
        filter_list = [{"Type": "TERM_MATCH", "Field": f, "Value": v} for f, v in filters]
        headers = {
            "Content-Type": "application/x-amz-json-1.1",
            "X-Amz-Target": "AWSPriceListService.GetProducts",
        }

        def page(next_token: str) -> tuple[list[str], str]:
            payload: dict[str, Any] = {"ServiceCode": service_code, "Filters": filter_list}
            if next_token:
                payload["NextToken"] = next_token
            response = self._post(headers, json.dumps(payload).encode("utf-8"))
            try:
                data = response.json()
            except ValueError:
                data = None
            if response.status_code != 200:
                code, message = "", response.text
                if isinstance(data, dict):
                    code = str(data.get("__type", "")).rsplit("#", 1)[-1]
                    message = data.get("Message") or data.get("message") or message
                raise AWSAPIError(f"GetProducts failed ({response.status_code}): {message}", code)
            if not isinstance(data, dict):
                raise AWSAPIError("GetProducts returned a malformed response")
            return list(data.get("PriceList") or []), data.get("NextToken") or ""

        return iter(Paginator(page))


def _parse_timestamp(text: str | None) -> datetime | None:
    try:
        return datetime.fromisoformat(text.replace("Z", "+00:00")) if text else None
    except ValueError:
        return None


class EC2Client(_SignedClient):
    """Client for the EC2 query API."""

    service = "ec2"
    default_endpoint = "https://ec2.{region}.amazonaws.com/"

    def describe_spot_price_history(
        self, product_descriptions: Iterable[str], start_time: datetime
    ) -> Iterator[dict[str, Any]]:
        """Yield spot price records (instance_type, product_description,
        spot_price as a string, availability_zone, timestamp or None)."""
        if start_time.tzinfo is not None:
            start_time = start_time.astimezone(timezone.utc)
        base = {
            "Action": "DescribeSpotPriceHistory",
            "Version": EC2_API_VERSION,
            "StartTime": start_time.strftime("%Y-%m-%dT%H:%M:%SZ"),
        }
        for number, description in enumerate(product_descriptions, start=1):
            base[f"ProductDescription.{number}"] = description

        def page(next_token: str) -> tuple[list[dict[str, Any]], str]:
            root = self._call({**base, "NextToken": next_token} if next_token else base)
            records = [
                {
                    "instance_type": item.findtext("{*}instanceType") or "",
                    "product_description": item.findtext("{*}productDescription") or "",
                    "spot_price": item.findtext("{*}spotPrice"),
                    "availability_zone": item.findtext("{*}availabilityZone") or "",
                    "timestamp": _parse_timestamp(item.findtext("{*}timestamp")),
                }
                for item in root.findall("{*}spotPriceHistorySet/{*}item")
            ]
            return records, root.findtext("{*}nextToken") or ""

        return iter(Paginator(page))

    def _call(self, params: Mapping[str, str]) -> ET.Element:
        headers = {"Content-Type": "application/x-www-form-urlencoded; charset=utf-8"}
        response = self._post(headers, urlencode(params).encode("utf-8"))
        root, parse_error = None, None
        try:
            root = ET.fromstring(response.text)
        except ET.ParseError as exc:
            parse_error = exc
        if response.status_code != 200:
            error = root.find(".//{*}Error") if root is not None else None
            code = (error.findtext("{*}Code") or "") if error is not None else ""
            message = (error.findtext("{*}Message") or "") if error is not None else ""
            raise AWSAPIError(
                f"{params.get('Action')} failed ({response.status_code}): {message or response.text}",
                code,
            )
        if root is None:
            raise AWSAPIError(f"malformed response: {parse_error}")
        return root
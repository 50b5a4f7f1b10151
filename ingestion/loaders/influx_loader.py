"""
Write metric records to InfluxDB v2 over its HTTP API.

Records are encoded as line protocol and posted to ``/api/v2/write`` with
second precision. Responses are classified so the batch writer can decide
whether a failed delivery is worth retrying:
- 2xx: delivered
- 408, 429, 5xx and transport errors: DeliveryError (retryable)
- any other 4xx: DeliveryRejectedError (permanent)
"""

from typing import Dict, Optional, Sequence

import httpx

from core.config import Settings
from core.exceptions import DeliveryError, DeliveryRejectedError, DestinationConnectionError
from schemas.metric import MetricRecord
import logging

logger = logging.getLogger(__name__)

RETRYABLE_STATUS_CODES = {408, 429}


# ============================================================================
# Line protocol
# ============================================================================

def _escape_measurement(value: str) -> str:
    return value.replace("\\", "\\\\").replace(",", "\\,").replace(" ", "\\ ")


def _escape_tag(value: str) -> str:
    return (
        value.replace("\\", "\\\\")
        .replace(",", "\\,")
        .replace("=", "\\=")
        .replace(" ", "\\ ")
    )


def _escape_field_key(value: str) -> str:
    return _escape_tag(value)


def encode_line(record: MetricRecord, field_name: str = "field") -> str:
    """
    Encode one record as an InfluxDB line protocol line.

    Tags are sorted by key and empty tag values are omitted, since InfluxDB
    rejects them.

    Example:
        system.cpu.load[all\\,avg1],dns=None,endpoint=WEB01,... field=0.42 1705276800
    """
    tags = ",".join(
        f"{_escape_tag(key)}={_escape_tag(value)}"
        for key, value in sorted(record.tags().items())
        if value != ""
    )
    series = _escape_measurement(record.measurement)
    if tags:
        series = f"{series},{tags}"
    return f"{series} {_escape_field_key(field_name)}={float(record.value)!r} {record.epoch_seconds}"


def encode_batch(records: Sequence[MetricRecord], field_name: str = "field") -> str:
    return "\n".join(encode_line(record, field_name) for record in records)


# ============================================================================
# Loader
# ============================================================================

class InfluxLoader:
    """
    InfluxDB v2 destination client.

    Attributes:
        url: Base URL of the InfluxDB server (scheme://host:port)
        org: Organization name
        bucket: Target bucket
        field_name: Field key used for the metric value
    """

    def __init__(
        self,
        url: str,
        token: str,
        org: str,
        bucket: str,
        field_name: str = "field",
        timeout: float = 30.0,
        transport: Optional[httpx.AsyncBaseTransport] = None
    ):
        self.url = url.rstrip("/")
        self.org = org
        self.bucket = bucket
        self.field_name = field_name
        self.client = httpx.AsyncClient(
            base_url=self.url,
            headers=self._auth_headers(token),
            timeout=timeout,
            transport=transport,
        )

    @classmethod
    def from_settings(cls, settings: Settings, transport: Optional[httpx.AsyncBaseTransport] = None) -> "InfluxLoader":
        return cls(
            url=settings.influx_url,
            token=settings.INFLUX_TOKEN,
            org=settings.INFLUX_ORG,
            bucket=settings.INFLUX_BUCKET,
            field_name=settings.INFLUX_FIELD_NAME,
            timeout=settings.INFLUX_TIMEOUT,
            transport=transport,
        )

    @staticmethod
    def _auth_headers(token: str) -> Dict[str, str]:
        headers = {"Content-Type": "text/plain; charset=utf-8"}
        if token:
            headers["Authorization"] = f"Token {token}"
        return headers

    async def ping(self) -> None:
        """
        Check that the destination answers.

        Raises:
            DestinationConnectionError: On transport errors or a non-2xx answer
        """
        try:
            response = await self.client.get("/ping")
        except httpx.HTTPError as e:
            raise DestinationConnectionError(
                f"InfluxDB at {self.url} is unreachable",
                context={"url": self.url},
                original_exception=e
            )

        if not response.is_success:
            raise DestinationConnectionError(
                f"InfluxDB at {self.url} failed its health check",
                context={"url": self.url, "status_code": response.status_code}
            )

    async def write(self, records: Sequence[MetricRecord]) -> int:
        """
        Deliver a batch of records in one request.

        Returns:
            Number of records delivered

        Raises:
            DeliveryError: Transient failure, safe to retry
            DeliveryRejectedError: The destination refused the batch
        """
        if not records:
            return 0

        body = encode_batch(records, self.field_name)
        params = {"org": self.org, "bucket": self.bucket, "precision": "s"}

        try:
            response = await self.client.post("/api/v2/write", params=params, content=body.encode("utf-8"))
        except httpx.HTTPError as e:
            raise DeliveryError(
                f"Failed to reach InfluxDB at {self.url}",
                context={"url": self.url, "batch_size": len(records)},
                original_exception=e
            )

        if response.is_success:
            logger.debug(f"Delivered {len(records)} records to bucket {self.bucket}")
            return len(records)

        context = {
            "url": self.url,
            "bucket": self.bucket,
            "status_code": response.status_code,
            "batch_size": len(records),
            "response_body": response.text[:500],
        }

        if response.status_code in RETRYABLE_STATUS_CODES or response.status_code >= 500:
            raise DeliveryError(
                f"InfluxDB write failed with HTTP {response.status_code}",
                context=context
            )

        raise DeliveryRejectedError(
            f"InfluxDB rejected write with HTTP {response.status_code}",
            context=context
        )

    async def write_one(self, record: MetricRecord) -> int:
        return await self.write([record])

    async def aclose(self) -> None:
        await self.client.aclose()

    async def __aenter__(self) -> "InfluxLoader":
        return self

    async def __aexit__(self, exc_type, exc, tb) -> None:
        await self.aclose()

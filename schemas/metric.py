"""
Pydantic schemas for raw Zabbix history rows and normalized metric records
"""

from datetime import datetime, timezone
from decimal import Decimal
from typing import Dict, NamedTuple, Union

from pydantic import BaseModel, ConfigDict, Field, field_validator

DNS_SENTINEL = "None"


class RawRow(NamedTuple):
    """One history observation as returned by the extraction query, in column order"""
    host_name: str
    item_key: str
    clock: int
    value: Union[Decimal, float]
    ip: str
    dns: str
    port: str
    host_group: str
    group_id: int


def normalize_tag(value: str) -> str:
    """Strip spaces and hyphens and upper-case: "My Group-1" -> "MYGROUP1" """
    return value.replace(" ", "").replace("-", "").upper()


class MetricRecord(BaseModel):
    """
    Normalized metric point ready for delivery.

    Ensures:
    - endpoint and host_group tags are normalized
    - empty dns is replaced by the "None" sentinel
    - time is timezone-aware UTC
    """

    model_config = ConfigDict(frozen=True)

    time: datetime
    measurement: str = Field(..., min_length=1)

    # Tags
    endpoint: str
    group_id: int
    host_group: str
    ip: str
    dns: str
    port: str

    value: float

    @field_validator("endpoint", "host_group")
    @classmethod
    def clean_tag(cls, v: str) -> str:
        return normalize_tag(v)

    @field_validator("dns")
    @classmethod
    def clean_dns(cls, v: str) -> str:
        """Replace empty dns with the sentinel"""
        return v if v else DNS_SENTINEL

    @field_validator("time")
    @classmethod
    def ensure_utc(cls, v: datetime) -> datetime:
        if v.tzinfo is None:
            return v.replace(tzinfo=timezone.utc)
        return v.astimezone(timezone.utc)

    @property
    def epoch_seconds(self) -> int:
        return int(self.time.timestamp())

    def tags(self) -> Dict[str, str]:
        """Tag set as written to the destination"""
        return {
            "dns": self.dns,
            "endpoint": self.endpoint,
            "groupid": str(self.group_id),
            "host_group": self.host_group,
            "ip": self.ip,
            "port": self.port,
        }

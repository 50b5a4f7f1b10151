"""
Read-only SQLAlchemy Core definitions of the Zabbix tables the extractor joins.

Only the columns the sync needs are declared. These tables live in the
Zabbix database and are owned by Zabbix; they are kept on their own
``MetaData`` so nothing in this project ever creates or alters them in
production. Tests create them on SQLite to stand in for the source.
"""

from sqlalchemy import BigInteger, Column, Float, Integer, MetaData, Numeric, String, Table

from models.base import HistoryTable

zabbix_metadata = MetaData()

hosts = Table(
    "hosts",
    zabbix_metadata,
    Column("hostid", BigInteger, primary_key=True),
    Column("name", String(128), nullable=False),
)

items = Table(
    "items",
    zabbix_metadata,
    Column("itemid", BigInteger, primary_key=True),
    Column("hostid", BigInteger, nullable=False),
    Column("key_", String(2048), nullable=False),
)

interface = Table(
    "interface",
    zabbix_metadata,
    Column("interfaceid", BigInteger, primary_key=True),
    Column("hostid", BigInteger, nullable=False),
    Column("ip", String(64), nullable=False),
    Column("dns", String(255), nullable=False),
    Column("port", String(64), nullable=False),
)

hosts_groups = Table(
    "hosts_groups",
    zabbix_metadata,
    Column("hostgroupid", BigInteger, primary_key=True),
    Column("hostid", BigInteger, nullable=False),
    Column("groupid", BigInteger, nullable=False),
)

hstgrp = Table(
    "hstgrp",
    zabbix_metadata,
    Column("groupid", BigInteger, primary_key=True),
    Column("name", String(255), nullable=False),
)

history = Table(
    "history",
    zabbix_metadata,
    Column("itemid", BigInteger, nullable=False),
    Column("clock", Integer, nullable=False),
    Column("value", Float, nullable=False),
    Column("ns", Integer, nullable=False, default=0),
)

history_uint = Table(
    "history_uint",
    zabbix_metadata,
    Column("itemid", BigInteger, nullable=False),
    Column("clock", Integer, nullable=False),
    Column("value", Numeric(20, 0, asdecimal=True), nullable=False),
    Column("ns", Integer, nullable=False, default=0),
)

HISTORY_TABLES = {
    HistoryTable.HISTORY: history,
    HistoryTable.HISTORY_UINT: history_uint,
}

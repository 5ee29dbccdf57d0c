"""
数据库连接和管理模块
提供 DuckDB 连接、表结构初始化和事务控制

数据库表说明：
- profiles: 用户联系方式与管理员标记
- reservations: 桌位预订
- orders: 订单（堂食订单同样占用桌位）
- payment_sessions: 每个订单申请过的支付会话，确认支付时逐个核对
- logs: 系统操作日志
"""

import json
import logging
import threading
from contextlib import contextmanager
from pathlib import Path
from typing import Any, Dict, Generator, List, Optional

import duckdb

from .exceptions import BaseApplicationError, ConcurrencyError, StorageError
from ..config.settings import settings

logger = logging.getLogger(__name__)

# 完整的表结构定义
SCHEMA_SQL = r"""
CREATE TABLE IF NOT EXISTS profiles (
  principal_id TEXT PRIMARY KEY,
  display_name TEXT,
  email TEXT,
  phone TEXT,
  is_admin BOOLEAN DEFAULT FALSE,
  created_at TIMESTAMP DEFAULT now(),
  updated_at TIMESTAMP DEFAULT now()
);

CREATE SEQUENCE IF NOT EXISTS reservations_id_seq;
CREATE TABLE IF NOT EXISTS reservations (
  id INTEGER DEFAULT nextval('reservations_id_seq') PRIMARY KEY,
  owner_id TEXT NOT NULL,
  table_number INTEGER NOT NULL,
  date DATE NOT NULL,
  start_time TEXT NOT NULL,
  name TEXT NOT NULL,
  email TEXT NOT NULL,
  phone TEXT NOT NULL,
  people INTEGER NOT NULL,
  event_type TEXT,
  services_json TEXT,
  notes TEXT,
  status TEXT CHECK(status IN ('confirmed','canceled')) NOT NULL,
  created_at TIMESTAMP DEFAULT now(),
  updated_at TIMESTAMP DEFAULT now()
);

CREATE INDEX IF NOT EXISTS idx_reservations_slot ON reservations(table_number, date);
CREATE INDEX IF NOT EXISTS idx_reservations_owner ON reservations(owner_id);

CREATE SEQUENCE IF NOT EXISTS orders_id_seq;
CREATE TABLE IF NOT EXISTS orders (
  id INTEGER DEFAULT nextval('orders_id_seq') PRIMARY KEY,
  owner_id TEXT NOT NULL,
  order_code TEXT NOT NULL,
  dining_type TEXT CHECK(dining_type IN ('pickup','dine-in')) NOT NULL,
  table_number INTEGER,
  date DATE NOT NULL,
  start_time TEXT NOT NULL,
  name TEXT NOT NULL,
  phone TEXT NOT NULL,
  items_json TEXT NOT NULL,
  total_amount_cents INTEGER NOT NULL,
  status TEXT CHECK(status IN ('pending_payment','paid','fulfilled','canceled')) NOT NULL,
  payment_status TEXT CHECK(payment_status IN ('pending','paid')) NOT NULL,
  holds_table BOOLEAN NOT NULL DEFAULT FALSE,
  payment_session_id TEXT,
  payment_session_url TEXT,
  paid_at TIMESTAMP,
  created_at TIMESTAMP DEFAULT now(),
  updated_at TIMESTAMP DEFAULT now()
);

CREATE INDEX IF NOT EXISTS idx_orders_slot ON orders(table_number, date);
CREATE INDEX IF NOT EXISTS idx_orders_owner ON orders(owner_id);
CREATE INDEX IF NOT EXISTS idx_orders_code ON orders(order_code);

CREATE SEQUENCE IF NOT EXISTS payment_sessions_id_seq;
CREATE TABLE IF NOT EXISTS payment_sessions (
  id INTEGER DEFAULT nextval('payment_sessions_id_seq') PRIMARY KEY,
  order_id INTEGER NOT NULL,
  session_id TEXT NOT NULL,
  url TEXT NOT NULL,
  created_at TIMESTAMP DEFAULT now()
);

CREATE INDEX IF NOT EXISTS idx_payment_sessions_order ON payment_sessions(order_id);

CREATE SEQUENCE IF NOT EXISTS logs_id_seq;
CREATE TABLE IF NOT EXISTS logs (
  log_id INTEGER DEFAULT nextval('logs_id_seq') PRIMARY KEY,
  actor_id TEXT,
  action TEXT,
  detail_json TEXT,
  created_at TIMESTAMP DEFAULT now()
);

CREATE INDEX IF NOT EXISTS idx_logs_action ON logs(action);
"""


class DatabaseManager:
    """数据库管理器，封装所有数据库操作"""

    def __init__(self, db_path: Optional[str] = None):
        self._connection: Optional[duckdb.DuckDBPyConnection] = None
        self._lock = threading.RLock()
        self.db_path = db_path or self._get_db_path_from_settings()

    def _get_db_path_from_settings(self) -> str:
        """从设置中获取数据库路径"""
        db_url = settings.database_url
        if db_url.startswith("duckdb://"):
            return db_url[len("duckdb://"):]
        return db_url

    @property
    def connection(self) -> duckdb.DuckDBPyConnection:
        """获取数据库连接"""
        with self._lock:
            if self._connection is None:
                if self.db_path != ":memory:":
                    Path(self.db_path).parent.mkdir(parents=True, exist_ok=True)
                self._connection = duckdb.connect(self.db_path)
                self._init_schema()
            return self._connection

    def _init_schema(self):
        """初始化数据库表结构"""
        try:
            self._connection.execute(SCHEMA_SQL)
        except duckdb.Error as e:
            raise StorageError(f"Failed to initialize schema: {e}")

    def init_database(self):
        """初始化数据库"""
        return self.connection

    def close(self):
        with self._lock:
            if self._connection is not None:
                self._connection.close()
                self._connection = None

    @contextmanager
    def transaction(self) -> Generator[duckdb.DuckDBPyConnection, None, None]:
        """
        数据库事务上下文管理器

        持有全局可重入锁，同一进程内的写事务串行执行；
        业务异常原样抛出，数据库异常统一转换为 StorageError。
        """
        with self._lock:
            conn = self.connection
            conn.execute("BEGIN TRANSACTION")
            try:
                yield conn
                conn.execute("COMMIT")
            except BaseApplicationError:
                conn.execute("ROLLBACK")
                raise
            except duckdb.Error as e:
                try:
                    conn.execute("ROLLBACK")
                except duckdb.Error:
                    logger.warning("Rollback failed after %s", e)

                if "conflict" in str(e).lower() or "serialization" in str(e).lower():
                    raise ConcurrencyError()
                raise StorageError(f"Database operation failed: {e}")
            except Exception:
                conn.execute("ROLLBACK")
                raise

    def execute_one(self, query: str, params: list = None) -> Optional[tuple]:
        """执行查询并返回单条结果"""
        with self._lock:
            try:
                return self.connection.execute(query, params or []).fetchone()
            except duckdb.Error as e:
                raise StorageError(f"Query execution failed: {e}")

    def fetch_dicts(self, query: str, params: list = None, conn=None) -> List[Dict[str, Any]]:
        """执行查询，按列名返回字典列表"""
        with self._lock:
            con = conn or self.connection
            try:
                cursor = con.execute(query, params or [])
                columns = [d[0] for d in cursor.description]
                return [dict(zip(columns, row)) for row in cursor.fetchall()]
            except duckdb.Error as e:
                raise StorageError(f"Query execution failed: {e}")

    def fetch_dict(self, query: str, params: list = None, conn=None) -> Optional[Dict[str, Any]]:
        rows = self.fetch_dicts(query, params, conn)
        return rows[0] if rows else None

    def write_log(self, actor_id: Optional[str], action: str, detail: Dict[str, Any], conn=None):
        """写入操作日志"""
        with self._lock:
            con = conn or self.connection
            try:
                con.execute(
                    "INSERT INTO logs(actor_id, action, detail_json) VALUES (?,?,?)",
                    [actor_id, action, json.dumps(detail, default=str)],
                )
            except duckdb.Error as e:
                raise StorageError(f"Failed to write log: {e}")


# 全局数据库管理器实例
db_manager = DatabaseManager()

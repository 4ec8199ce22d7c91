"""SQLite database backing the alert store, holdings store and trigger history."""
import sqlite3
import logging
import threading
from contextlib import contextmanager
from datetime import date, datetime
from pathlib import Path

from models.alerts import Alert, TriggerEvent
from models.enums import Condition
from models.portfolio import Holding
from utils.errors import StoreUnavailable, StorePersistFailure

logger = logging.getLogger("coinwatch.db")

ALERT_FIELDS = {"coin_id", "coin_name", "symbol", "target_price", "condition", "is_active", "owner"}
HOLDING_FIELDS = {"coin_id", "coin_name", "symbol", "quantity", "purchase_price", "purchase_date", "owner"}


def _to_column(value):
    """Python value -> sqlite column value. Decimals are kept as exact text."""
    if isinstance(value, Condition):
        return value.value
    if isinstance(value, bool):
        return int(value)
    if isinstance(value, (datetime, date)):
        return value.isoformat()
    if value is None or isinstance(value, (int, str)):
        return value
    return str(value)


class Database:
    """Implements the alert store and holdings store contracts over sqlite.

    Every sqlite failure is re-raised as ``StoreUnavailable`` (reads) or
    ``StorePersistFailure`` (writes) so callers never see driver exceptions.
    """

    def __init__(self, db_path="data/coinwatch.db", owner=""):
        self.db_path = db_path
        self.owner = owner
        self.conn = None
        self._lock = threading.RLock()

    def connect(self):
        if self.db_path != ":memory:":
            Path(self.db_path).parent.mkdir(parents=True, exist_ok=True)
        self.conn = sqlite3.connect(self.db_path, check_same_thread=False)
        self.conn.row_factory = sqlite3.Row
        self.conn.execute("PRAGMA journal_mode=WAL")
        self._create_tables()
        return self

    def close(self):
        if self.conn:
            self.conn.close()
            self.conn = None

    def __enter__(self):
        self.connect()
        return self

    def __exit__(self, *args):
        self.close()

    def _create_tables(self):
        self.conn.executescript("""
            CREATE TABLE IF NOT EXISTS alerts (
                id INTEGER PRIMARY KEY AUTOINCREMENT,
                coin_id TEXT NOT NULL,
                coin_name TEXT NOT NULL DEFAULT '',
                symbol TEXT NOT NULL DEFAULT '',
                target_price TEXT NOT NULL,
                condition TEXT NOT NULL CHECK (condition IN ('above', 'below')),
                is_active INTEGER NOT NULL DEFAULT 1,
                owner TEXT NOT NULL DEFAULT '',
                created_at TEXT NOT NULL
            );

            CREATE INDEX IF NOT EXISTS idx_alerts_owner_active
                ON alerts(owner, is_active);

            CREATE TABLE IF NOT EXISTS holdings (
                id INTEGER PRIMARY KEY AUTOINCREMENT,
                coin_id TEXT NOT NULL,
                coin_name TEXT NOT NULL DEFAULT '',
                symbol TEXT NOT NULL DEFAULT '',
                quantity TEXT NOT NULL,
                purchase_price TEXT NOT NULL,
                purchase_date TEXT,
                owner TEXT NOT NULL DEFAULT ''
            );

            CREATE INDEX IF NOT EXISTS idx_holdings_owner
                ON holdings(owner);

            CREATE TABLE IF NOT EXISTS trigger_history (
                id INTEGER PRIMARY KEY AUTOINCREMENT,
                alert_id INTEGER,
                coin_id TEXT NOT NULL,
                coin_name TEXT,
                symbol TEXT,
                evaluated_price TEXT NOT NULL,
                condition TEXT NOT NULL,
                target_price TEXT NOT NULL,
                triggered_at TEXT NOT NULL
            );

            CREATE INDEX IF NOT EXISTS idx_triggers_at
                ON trigger_history(triggered_at);
        """)
        self.conn.commit()

    @contextmanager
    def _read(self, what):
        if self.conn is None:
            raise StoreUnavailable(f"Database not connected ({what})")
        with self._lock:
            try:
                yield self.conn
            except sqlite3.Error as e:
                raise StoreUnavailable(f"Failed to {what}: {e}") from e

    @contextmanager
    def _write(self, what):
        if self.conn is None:
            raise StorePersistFailure(f"Database not connected ({what})")
        with self._lock:
            try:
                yield self.conn
                self.conn.commit()
            except sqlite3.Error as e:
                self.conn.rollback()
                raise StorePersistFailure(f"Failed to {what}: {e}") from e
            except Exception:
                self.conn.rollback()
                raise

    def _update(self, table, allowed, row_id, changes, what):
        unknown = set(changes) - allowed
        if unknown:
            raise ValueError(f"Unknown {table} fields: {sorted(unknown)}")
        if not changes:
            return
        columns = ", ".join(f"{k} = ?" for k in changes)
        params = [_to_column(v) for v in changes.values()] + [row_id]
        with self._write(what) as conn:
            cur = conn.execute(f"UPDATE {table} SET {columns} WHERE id = ?", params)
            if cur.rowcount == 0:
                raise KeyError(f"{table} row {row_id} not found")

    # --- Alerts ---

    @staticmethod
    def _row_to_alert(row):
        return Alert(
            id=row["id"],
            coin_id=row["coin_id"],
            coin_name=row["coin_name"],
            symbol=row["symbol"],
            target_price=row["target_price"],
            condition=row["condition"],
            is_active=bool(row["is_active"]),
            owner=row["owner"],
            created_at=datetime.fromisoformat(row["created_at"]),
        )

    def list_alerts(self):
        with self._read("list alerts") as conn:
            rows = conn.execute(
                "SELECT * FROM alerts WHERE owner = ? ORDER BY id", (self.owner,)
            ).fetchall()
        return [self._row_to_alert(r) for r in rows]

    def get_alert(self, alert_id):
        with self._read("get alert") as conn:
            row = conn.execute("SELECT * FROM alerts WHERE id = ?", (alert_id,)).fetchone()
        return self._row_to_alert(row) if row else None

    def create_alert(self, alert):
        alert.validate()
        owner = alert.owner or self.owner
        with self._write("create alert") as conn:
            cur = conn.execute("""
                INSERT INTO alerts
                (coin_id, coin_name, symbol, target_price, condition, is_active, owner, created_at)
                VALUES (?, ?, ?, ?, ?, ?, ?, ?)
            """, (
                alert.coin_id, alert.coin_name, alert.symbol, _to_column(alert.target_price),
                alert.condition.value, int(alert.is_active), owner, alert.created_at.isoformat(),
            ))
            alert_id = cur.lastrowid
        logger.debug(f"Created alert {alert_id} for {alert.coin_id}")
        return alert.copy(id=alert_id, owner=owner)

    def update_alert(self, alert_id, **changes):
        """Partial update. Returns the stored alert after the change."""
        if "condition" in changes:
            changes["condition"] = Condition(changes["condition"])
        self._update("alerts", ALERT_FIELDS, alert_id, changes, f"update alert {alert_id}")
        return self.get_alert(alert_id)

    def delete_alert(self, alert_id):
        with self._write(f"delete alert {alert_id}") as conn:
            conn.execute("DELETE FROM alerts WHERE id = ?", (alert_id,))

    # --- Holdings ---

    @staticmethod
    def _row_to_holding(row):
        return Holding(
            id=row["id"],
            coin_id=row["coin_id"],
            coin_name=row["coin_name"],
            symbol=row["symbol"],
            quantity=row["quantity"],
            purchase_price=row["purchase_price"],
            purchase_date=row["purchase_date"],
            owner=row["owner"],
        )

    def list_holdings(self):
        with self._read("list holdings") as conn:
            rows = conn.execute(
                "SELECT * FROM holdings WHERE owner = ? ORDER BY id", (self.owner,)
            ).fetchall()
        return [self._row_to_holding(r) for r in rows]

    def get_holding(self, holding_id):
        with self._read("get holding") as conn:
            row = conn.execute("SELECT * FROM holdings WHERE id = ?", (holding_id,)).fetchone()
        return self._row_to_holding(row) if row else None

    def create_holding(self, holding):
        holding.validate()
        owner = holding.owner or self.owner
        with self._write("create holding") as conn:
            cur = conn.execute("""
                INSERT INTO holdings
                (coin_id, coin_name, symbol, quantity, purchase_price, purchase_date, owner)
                VALUES (?, ?, ?, ?, ?, ?, ?)
            """, (
                holding.coin_id, holding.coin_name, holding.symbol,
                _to_column(holding.quantity), _to_column(holding.purchase_price),
                _to_column(holding.purchase_date), owner,
            ))
            holding_id = cur.lastrowid
        logger.debug(f"Created holding {holding_id} for {holding.coin_id}")
        return holding.copy(id=holding_id, owner=owner)

    def update_holding(self, holding_id, **changes):
        self._update("holdings", HOLDING_FIELDS, holding_id, changes, f"update holding {holding_id}")
        return self.get_holding(holding_id)

    def delete_holding(self, holding_id):
        with self._write(f"delete holding {holding_id}") as conn:
            conn.execute("DELETE FROM holdings WHERE id = ?", (holding_id,))

    # --- Trigger history ---

    def save_trigger(self, event: TriggerEvent):
        with self._write("save trigger") as conn:
            conn.execute("""
                INSERT INTO trigger_history
                (alert_id, coin_id, coin_name, symbol, evaluated_price, condition, target_price, triggered_at)
                VALUES (?, ?, ?, ?, ?, ?, ?, ?)
            """, (
                event.alert_id, event.coin_id, event.coin_name, event.symbol,
                str(event.evaluated_price), event.condition.value, str(event.target_price),
                event.triggered_at.isoformat(),
            ))

    def get_recent_triggers(self, limit=50):
        with self._read("read trigger history") as conn:
            rows = conn.execute(
                "SELECT * FROM trigger_history ORDER BY triggered_at DESC LIMIT ?", (limit,)
            ).fetchall()
        return [
            TriggerEvent(
                alert_id=r["alert_id"],
                coin_id=r["coin_id"],
                evaluated_price=r["evaluated_price"],
                condition=Condition(r["condition"]),
                target_price=r["target_price"],
                coin_name=r["coin_name"] or "",
                symbol=r["symbol"] or "",
                triggered_at=datetime.fromisoformat(r["triggered_at"]),
            )
            for r in rows
        ]

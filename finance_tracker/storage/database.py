"""Database storage layer using SQLite."""
import logging
import sqlite3
import uuid
from contextlib import contextmanager
from datetime import date, datetime, timedelta, timezone, tzinfo
from typing import Dict, List, Optional, Tuple
from pydantic import ValidationError
from finance_tracker.models.budget import Budget, BudgetCreate, BudgetUpdate
from finance_tracker.models.category import Category, CategoryCreate, CategoryUpdate
from finance_tracker.models.report import ExportDocument
from finance_tracker.models.transaction import Transaction, TransactionCreate, TransactionUpdate
from finance_tracker.config import settings
from finance_tracker.utils.timestamp import day_start, ensure_utc

logger = logging.getLogger(__name__)


SCHEMA = [
    """
    CREATE TABLE IF NOT EXISTS categories (
        id TEXT PRIMARY KEY,
        owner_id TEXT NOT NULL,
        name TEXT NOT NULL,
        color TEXT NOT NULL,
        icon TEXT NOT NULL,
        type TEXT NOT NULL,
        created_at TEXT NOT NULL
    )
    """,
    """
    CREATE INDEX IF NOT EXISTS idx_categories_owner
    ON categories(owner_id, name)
    """,
    """
    CREATE TABLE IF NOT EXISTS transactions (
        id TEXT PRIMARY KEY,
        owner_id TEXT NOT NULL,
        category_id TEXT NOT NULL,
        date TEXT NOT NULL,
        amount REAL NOT NULL,
        type TEXT NOT NULL,
        description TEXT NOT NULL,
        created_at TEXT NOT NULL
    )
    """,
    """
    CREATE INDEX IF NOT EXISTS idx_transactions_owner_date
    ON transactions(owner_id, date)
    """,
    """
    CREATE TABLE IF NOT EXISTS budgets (
        id TEXT PRIMARY KEY,
        owner_id TEXT NOT NULL,
        category_id TEXT NOT NULL,
        name TEXT NOT NULL,
        amount REAL NOT NULL,
        type TEXT NOT NULL,
        period_start TEXT NOT NULL,
        period_end TEXT,
        created_at TEXT NOT NULL
    )
    """,
    """
    CREATE INDEX IF NOT EXISTS idx_budgets_owner
    ON budgets(owner_id, period_start)
    """,
]


class CategoryInUseError(Exception):
    """Raised when deleting a category that transactions or budgets still reference."""
    
    def __init__(self, category_id: str, transactions: int, budgets: int):
        self.category_id = category_id
        self.transactions = transactions
        self.budgets = budgets
        super().__init__(
            f"Category {category_id} is referenced by {transactions} transaction(s) "
            f"and {budgets} budget(s)"
        )


def _utc_iso(dt: datetime) -> str:
    # Fixed width so lexical order in SQLite matches chronological order
    return ensure_utc(dt).astimezone(timezone.utc).isoformat(timespec="microseconds")


def _now() -> str:
    return datetime.now(timezone.utc).isoformat()


class SQLiteStore:
    """Base for stores sharing one SQLite file."""
    
    def __init__(self, db_path: str):
        self.db_path = db_path
    
    @contextmanager
    def _get_conn(self):
        """Get database connection."""
        conn = sqlite3.connect(self.db_path)
        conn.row_factory = sqlite3.Row
        try:
            yield conn
        finally:
            conn.close()


class CategoryStore(SQLiteStore):
    """Storage for categories."""
    
    @staticmethod
    def _row(row: sqlite3.Row) -> Category:
        return Category(
            id=row["id"],
            owner_id=row["owner_id"],
            name=row["name"],
            color=row["color"],
            icon=row["icon"],
            type=row["type"],
        )
    
    def add(self, owner_id: str, data: CategoryCreate, category_id: Optional[str] = None) -> Category:
        category = Category(id=category_id or str(uuid.uuid4()), owner_id=owner_id, **data.model_dump())
        with self._get_conn() as conn:
            conn.execute("""
                INSERT INTO categories (id, owner_id, name, color, icon, type, created_at)
                VALUES (?, ?, ?, ?, ?, ?, ?)
            """, (
                category.id,
                owner_id,
                category.name,
                category.color,
                category.icon,
                category.type.value,
                _now(),
            ))
            conn.commit()
        logger.debug("Created category %s for %s", category.id, owner_id)
        return category
    
    def get(self, owner_id: str, category_id: str) -> Optional[Category]:
        with self._get_conn() as conn:
            row = conn.execute(
                "SELECT * FROM categories WHERE id = ? AND owner_id = ?",
                (category_id, owner_id),
            ).fetchone()
        return self._row(row) if row else None
    
    def list(self, owner_id: str) -> List[Category]:
        """All of a user's categories, ordered by name."""
        with self._get_conn() as conn:
            rows = conn.execute(
                "SELECT * FROM categories WHERE owner_id = ? ORDER BY name ASC",
                (owner_id,),
            ).fetchall()
        return [self._row(r) for r in rows]
    
    def update(self, owner_id: str, category_id: str, data: CategoryUpdate) -> Optional[Category]:
        current = self.get(owner_id, category_id)
        if current is None:
            return None
        updated = current.model_copy(update=data.model_dump(exclude_unset=True, exclude_none=True))
        with self._get_conn() as conn:
            conn.execute("""
                UPDATE categories SET name = ?, color = ?, icon = ?, type = ?
                WHERE id = ? AND owner_id = ?
            """, (updated.name, updated.color, updated.icon, updated.type.value, category_id, owner_id))
            conn.commit()
        return updated
    
    def usage_counts(self, owner_id: str, category_id: str) -> Tuple[int, int]:
        """(transaction count, budget count) referencing a category."""
        with self._get_conn() as conn:
            tx_count = conn.execute(
                "SELECT COUNT(*) FROM transactions WHERE category_id = ? AND owner_id = ?",
                (category_id, owner_id),
            ).fetchone()[0]
            budget_count = conn.execute(
                "SELECT COUNT(*) FROM budgets WHERE category_id = ? AND owner_id = ?",
                (category_id, owner_id),
            ).fetchone()[0]
        return tx_count, budget_count
    
    def delete(self, owner_id: str, category_id: str) -> bool:
        """
        Delete a category.
        
        Raises:
            CategoryInUseError: If any transaction or budget references it
        """
        if self.get(owner_id, category_id) is None:
            return False
        tx_count, budget_count = self.usage_counts(owner_id, category_id)
        if tx_count or budget_count:
            raise CategoryInUseError(category_id, tx_count, budget_count)
        with self._get_conn() as conn:
            conn.execute("DELETE FROM categories WHERE id = ? AND owner_id = ?", (category_id, owner_id))
            conn.commit()
        logger.debug("Deleted category %s for %s", category_id, owner_id)
        return True


class TransactionStore(SQLiteStore):
    """Storage for transactions."""
    
    @staticmethod
    def _row(row: sqlite3.Row) -> Transaction:
        return Transaction(
            id=row["id"],
            owner_id=row["owner_id"],
            category_id=row["category_id"],
            date=datetime.fromisoformat(row["date"]),
            amount=row["amount"],
            type=row["type"],
            description=row["description"],
        )
    
    def add(self, owner_id: str, data: TransactionCreate, transaction_id: Optional[str] = None) -> Transaction:
        return self.add_many(owner_id, [data], [transaction_id] if transaction_id else None)[0]
    
    def add_many(
        self,
        owner_id: str,
        items: List[TransactionCreate],
        ids: Optional[List[str]] = None,
    ) -> List[Transaction]:
        """Add transactions in one database transaction."""
        created = [
            Transaction(
                id=(ids[i] if ids else None) or str(uuid.uuid4()),
                owner_id=owner_id,
                **item.model_dump(),
            )
            for i, item in enumerate(items)
        ]
        with self._get_conn() as conn:
            conn.executemany("""
                INSERT INTO transactions
                (id, owner_id, category_id, date, amount, type, description, created_at)
                VALUES (?, ?, ?, ?, ?, ?, ?, ?)
            """, [
                (
                    tx.id,
                    owner_id,
                    tx.category_id,
                    _utc_iso(tx.date),
                    tx.amount,
                    tx.type.value,
                    tx.description,
                    _now(),
                )
                for tx in created
            ])
            conn.commit()
        logger.debug("Stored %d transaction(s) for %s", len(created), owner_id)
        return created
    
    def get(self, owner_id: str, transaction_id: str) -> Optional[Transaction]:
        with self._get_conn() as conn:
            row = conn.execute(
                "SELECT * FROM transactions WHERE id = ? AND owner_id = ?",
                (transaction_id, owner_id),
            ).fetchone()
        return self._row(row) if row else None
    
    def list(
        self,
        owner_id: str,
        start_date: Optional[date] = None,
        end_date: Optional[date] = None,
        category_id: Optional[str] = None,
        tz: tzinfo = timezone.utc,
    ) -> List[Transaction]:
        """
        Get a user's transactions, newest first.

        `start_date` and `end_date` are inclusive calendar days in `tz`.
        """
        query = "SELECT * FROM transactions WHERE owner_id = ?"
        params: list = [owner_id]

        if start_date:
            query += " AND date >= ?"
            params.append(_utc_iso(day_start(start_date, tz)))

        if end_date:
            query += " AND date < ?"
            params.append(_utc_iso(day_start(end_date + timedelta(days=1), tz)))
        
        if category_id:
            query += " AND category_id = ?"
            params.append(category_id)
        
        query += " ORDER BY date DESC"
        
        with self._get_conn() as conn:
            rows = conn.execute(query, params).fetchall()
        return [self._row(r) for r in rows]
    
    def update(self, owner_id: str, transaction_id: str, data: TransactionUpdate) -> Optional[Transaction]:
        current = self.get(owner_id, transaction_id)
        if current is None:
            return None
        updated = current.model_copy(update=data.model_dump(exclude_unset=True, exclude_none=True))
        with self._get_conn() as conn:
            conn.execute("""
                UPDATE transactions
                SET category_id = ?, date = ?, amount = ?, type = ?, description = ?
                WHERE id = ? AND owner_id = ?
            """, (
                updated.category_id,
                _utc_iso(updated.date),
                updated.amount,
                updated.type.value,
                updated.description,
                transaction_id,
                owner_id,
            ))
            conn.commit()
        return updated
    
    def delete(self, owner_id: str, transaction_id: str) -> bool:
        with self._get_conn() as conn:
            cur = conn.execute(
                "DELETE FROM transactions WHERE id = ? AND owner_id = ?",
                (transaction_id, owner_id),
            )
            conn.commit()
            return cur.rowcount > 0
    
    def stats(self, owner_id: str) -> dict:
        """Get basic statistics about user's transactions."""
        with self._get_conn() as conn:
            row = conn.execute(
                "SELECT COUNT(*) AS n, MIN(date) AS first, MAX(date) AS last FROM transactions WHERE owner_id = ?",
                (owner_id,),
            ).fetchone()
        if not row["n"]:
            return {
                "count": 0,
                "date_range_start": None,
                "date_range_end": None,
            }
        return {
            "count": row["n"],
            "date_range_start": datetime.fromisoformat(row["first"]),
            "date_range_end": datetime.fromisoformat(row["last"]),
        }


class BudgetStore(SQLiteStore):
    """Storage for budgets."""
    
    @staticmethod
    def _row(row: sqlite3.Row) -> Budget:
        return Budget(
            id=row["id"],
            owner_id=row["owner_id"],
            category_id=row["category_id"],
            name=row["name"],
            amount=row["amount"],
            type=row["type"],
            period_start=date.fromisoformat(row["period_start"]),
            period_end=date.fromisoformat(row["period_end"]) if row["period_end"] else None,
        )
    
    def add(self, owner_id: str, data: BudgetCreate, budget_id: Optional[str] = None) -> Budget:
        budget = Budget(id=budget_id or str(uuid.uuid4()), owner_id=owner_id, **data.model_dump())
        with self._get_conn() as conn:
            conn.execute("""
                INSERT INTO budgets
                (id, owner_id, category_id, name, amount, type, period_start, period_end, created_at)
                VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?)
            """, (
                budget.id,
                owner_id,
                budget.category_id,
                budget.name,
                budget.amount,
                budget.type.value,
                budget.period_start.isoformat(),
                budget.period_end.isoformat() if budget.period_end else None,
                _now(),
            ))
            conn.commit()
        logger.debug("Created budget %s for %s", budget.id, owner_id)
        return budget
    
    def get(self, owner_id: str, budget_id: str) -> Optional[Budget]:
        with self._get_conn() as conn:
            row = conn.execute(
                "SELECT * FROM budgets WHERE id = ? AND owner_id = ?",
                (budget_id, owner_id),
            ).fetchone()
        return self._row(row) if row else None
    
    def list(self, owner_id: str) -> List[Budget]:
        """All of a user's budgets, latest period first."""
        with self._get_conn() as conn:
            rows = conn.execute(
                "SELECT * FROM budgets WHERE owner_id = ? ORDER BY period_start DESC",
                (owner_id,),
            ).fetchall()
        return [self._row(r) for r in rows]
    
    def update(self, owner_id: str, budget_id: str, data: BudgetUpdate) -> Optional[Budget]:
        current = self.get(owner_id, budget_id)
        if current is None:
            return None
        changes = data.model_dump(exclude_unset=True)
        # period_end may be cleared explicitly; other fields ignore nulls
        changes = {k: v for k, v in changes.items() if v is not None or k == "period_end"}
        updated = current.model_copy(update=changes)
        with self._get_conn() as conn:
            conn.execute("""
                UPDATE budgets
                SET category_id = ?, name = ?, amount = ?, type = ?, period_start = ?, period_end = ?
                WHERE id = ? AND owner_id = ?
            """, (
                updated.category_id,
                updated.name,
                updated.amount,
                updated.type.value,
                updated.period_start.isoformat(),
                updated.period_end.isoformat() if updated.period_end else None,
                budget_id,
                owner_id,
            ))
            conn.commit()
        return updated
    
    def delete(self, owner_id: str, budget_id: str) -> bool:
        with self._get_conn() as conn:
            cur = conn.execute(
                "DELETE FROM budgets WHERE id = ? AND owner_id = ?",
                (budget_id, owner_id),
            )
            conn.commit()
            return cur.rowcount > 0


class Database:
    """The three stores over one SQLite file."""
    
    def __init__(self, db_path: str = "finance_tracker.db"):
        self.db_path = db_path
        self._init_db()
        self.categories = CategoryStore(db_path)
        self.transactions = TransactionStore(db_path)
        self.budgets = BudgetStore(db_path)
    
    def _init_db(self):
        """Initialize database tables."""
        conn = sqlite3.connect(self.db_path)
        try:
            for statement in SCHEMA:
                conn.execute(statement)
            conn.commit()
        finally:
            conn.close()
    
    def export_document(self, owner_id: str) -> ExportDocument:
        return ExportDocument(
            user_id=owner_id,
            exported_at=datetime.now(timezone.utc),
            categories=self.categories.list(owner_id),
            transactions=self.transactions.list(owner_id),
            budgets=self.budgets.list(owner_id),
        )
    
    def import_document(self, owner_id: str, doc: ExportDocument) -> Dict[str, int]:
        """
        Load an export into `owner_id`'s data.
        
        Every row gets a fresh id; category references are remapped to the
        new ids. Rows pointing at a category missing from the document are
        skipped, as are transactions whose type differs from their category's
        and budgets that fail validation.
        """
        id_map: Dict[str, Category] = {}
        for category in doc.categories:
            created = self.categories.add(
                owner_id,
                CategoryCreate(name=category.name, color=category.color, icon=category.icon, type=category.type),
            )
            if category.id:
                id_map[category.id] = created

        transactions = []
        for tx in doc.transactions:
            category = id_map.get(tx.category_id)
            if category is None:
                logger.warning("Import skipped transaction %s: unknown category %s", tx.id, tx.category_id)
                continue
            if category.type != tx.type:
                logger.warning(
                    "Import skipped transaction %s: %s transaction in %s category '%s'",
                    tx.id, tx.type.value, category.type.value, category.name,
                )
                continue
            transactions.append(TransactionCreate(
                amount=tx.amount,
                date=tx.date,
                type=tx.type,
                category_id=category.id,
                description=tx.description,
            ))
        if transactions:
            self.transactions.add_many(owner_id, transactions)
        
        budgets = 0
        for budget in doc.budgets:
            if budget.category_id not in id_map:
                logger.warning("Import skipped budget %s: unknown category %s", budget.id, budget.category_id)
                continue
            try:
                payload = BudgetCreate(
                    name=budget.name,
                    amount=budget.amount,
                    type=budget.type,
                    category_id=id_map[budget.category_id].id,
                    period_start=budget.period_start,
                    period_end=budget.period_end,
                )
            except ValidationError as e:
                logger.warning("Import skipped budget %s: %s", budget.id, e.errors()[0].get("msg"))
                continue
            self.budgets.add(owner_id, payload)
            budgets += 1
        
        dropped = len(doc.transactions) - len(transactions) + len(doc.budgets) - budgets
        if dropped:
            logger.warning("Import for %s dropped %d invalid row(s)", owner_id, dropped)
        
        return {
            "categories": len(doc.categories),
            "transactions": len(transactions),
            "budgets": budgets,
        }


_database: Optional[Database] = None


def get_db() -> Database:
    """FastAPI dependency returning the configured database."""
    global _database
    if _database is None:
        _database = Database(settings.database_path)
    return _database

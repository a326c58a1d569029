"""轻量 SQL 迁移：为旧版 SQLite 数据库补齐新列与索引。

新建数据库由 ``create_all`` 直接得到完整结构，迁移脚本对其是幂等的；
其他数据库方言只依赖 ``create_all``。
"""

from __future__ import annotations

import shutil
from pathlib import Path
from typing import Iterable, List, Optional

from sqlalchemy import text
from sqlalchemy.engine import Engine
from sqlalchemy.exc import OperationalError

from portal.utils.logging import get_logger

logger = get_logger(__name__)

MIGRATIONS_DIR = Path(__file__).resolve().parents[1] / "migrations" / "sql"


def run_migrations(engine: Engine, migrations_dir: Optional[Path] = None) -> List[str]:
    """执行尚未应用的迁移，返回本次应用的版本号。"""

    if engine.url.get_backend_name() != "sqlite":
        return []

    directory = migrations_dir or MIGRATIONS_DIR
    _backup_sqlite_db(engine)

    with engine.begin() as conn:
        conn.execute(
            text(
                "CREATE TABLE IF NOT EXISTS schema_migrations ("
                "version TEXT PRIMARY KEY, "
                "applied_at DATETIME DEFAULT CURRENT_TIMESTAMP"
                ")"
            )
        )
        applied = {
            row[0]
            for row in conn.execute(text("SELECT version FROM schema_migrations")).fetchall()
        }

    newly_applied: List[str] = []
    for path in _iter_migration_files(directory):
        version = path.stem.split("_", 1)[0]
        if version in applied:
            continue
        with engine.begin() as conn:
            for stmt in _split_sql(path.read_text(encoding="utf-8")):
                try:
                    conn.execute(text(stmt))
                except OperationalError as exc:
                    if _is_ignorable_sqlite_error(exc):
                        logger.debug("migration_statement_skipped", version=version, reason=str(exc.orig))
                        continue
                    raise
            conn.execute(
                text("INSERT INTO schema_migrations (version) VALUES (:version)"),
                {"version": version},
            )
        newly_applied.append(version)
        logger.info("migration_applied", version=version, file=path.name)
    return newly_applied


def _iter_migration_files(directory: Path) -> Iterable[Path]:
    if not directory.exists():
        return []
    return sorted(directory.glob("*.sql"))


def _split_sql(sql: str) -> List[str]:
    statements = []
    for chunk in sql.split(";"):
        lines = [line for line in chunk.splitlines() if not line.strip().startswith("--")]
        stmt = "\n".join(lines).strip()
        if stmt:
            statements.append(stmt)
    return statements


def _is_ignorable_sqlite_error(exc: OperationalError) -> bool:
    message = str(exc).lower()
    return "duplicate column name" in message or "already exists" in message


def _backup_sqlite_db(engine: Engine) -> None:
    db_path = engine.url.database
    if not db_path or db_path == ":memory:":
        return
    source = Path(db_path)
    if source.exists():
        backup = source.with_suffix(source.suffix + ".bak")
        shutil.copy2(source, backup)

"""
Armazenamento em tabelas JSON (um arquivo por tabela em DATA_DIR).

Cada tabela é uma lista de linhas (dicts). As escritas regravam o arquivo
inteiro sob um lock de processo; `transaction()` mantém o lock durante uma
sequência ler-validar-gravar.
"""
import os
import json
import uuid
import threading
from contextlib import contextmanager
from datetime import datetime, timezone
from pathlib import Path
from typing import Dict, List, Optional

from flask import current_app

from errors import StorageError

TABLES = (
    "polls",
    "poll_options",
    "votes",
    "vote_options",
    "vote_rankings",
    "participants",
    "participant_attributes",
    "admin_audit_logs",
    "access_logs",
)

_lock = threading.RLock()


# =============== Utils ===============
def now_utc() -> datetime:
    return datetime.now(timezone.utc)


def iso(dt: datetime) -> str:
    # microssegundos fixos: strings ISO ficam ordenáveis lexicograficamente
    return dt.astimezone(timezone.utc).isoformat(timespec="microseconds")


def data_dir() -> Path:
    return Path(current_app.config["DATA_DIR"])


def table_path(table: str) -> Path:
    if table not in TABLES:
        raise StorageError(f"tabela desconhecida: {table}")
    return data_dir() / f"{table}.json"


def _read_json(path, default):
    if not os.path.exists(path):
        return default
    try:
        with open(path, "r", encoding="utf-8") as f:
            return json.load(f)
    except ValueError as e:
        raise StorageError(f"arquivo corrompido: {path}: {e}") from e


def _write_json(path, data):
    path = Path(path)
    path.parent.mkdir(parents=True, exist_ok=True)
    tmp = path.with_suffix(".tmp")
    with open(tmp, "w", encoding="utf-8") as f:
        json.dump(data, f, ensure_ascii=False, indent=2)
    os.replace(tmp, path)


@contextmanager
def transaction():
    with _lock:
        yield


# =============== Tabelas ===============
def load_table(table: str) -> List[dict]:
    return _read_json(table_path(table), [])


def save_table(table: str, rows: List[dict]):
    _write_json(table_path(table), rows)


def _matches(row: dict, filters: Dict) -> bool:
    for col, expected in filters.items():
        value = row.get(col)
        if isinstance(expected, (list, tuple, set, frozenset)):
            if value not in expected:
                return False
        elif value != expected:
            return False
    return True


def select(table: str, order_by: Optional[str] = None, desc: bool = False,
           limit: Optional[int] = None, **filters) -> List[dict]:
    """Linhas que casam com todos os filtros (valor lista = IN)."""
    with _lock:
        rows = [dict(r) for r in load_table(table) if _matches(r, filters)]
    if order_by:
        present = [r for r in rows if r.get(order_by) is not None]
        missing = [r for r in rows if r.get(order_by) is None]
        present.sort(key=lambda r: r[order_by], reverse=desc)
        rows = present + missing
    if limit is not None:
        rows = rows[:limit]
    return rows


def get_one(table: str, **filters) -> Optional[dict]:
    rows = select(table, **filters)
    return rows[0] if rows else None


def insert(table: str, row: dict) -> dict:
    return insert_many(table, [row])[0]


def insert_many(table: str, rows: List[dict]) -> List[dict]:
    created = []
    ts = iso(now_utc())
    for row in rows:
        item = dict(row)
        item.setdefault("id", str(uuid.uuid4()))
        item.setdefault("created_at", ts)
        created.append(item)
    with _lock:
        current = load_table(table)
        current.extend(created)
        save_table(table, current)
    return [dict(r) for r in created]


def update(table: str, values: dict, **filters) -> List[dict]:
    """Aplica `values` às linhas filtradas e devolve as linhas atualizadas."""
    changed = []
    with _lock:
        current = load_table(table)
        for row in current:
            if _matches(row, filters):
                row.update(values)
                changed.append(dict(row))
        if changed:
            save_table(table, current)
    return changed


def delete(table: str, **filters) -> int:
    with _lock:
        current = load_table(table)
        kept = [r for r in current if not _matches(r, filters)]
        removed = len(current) - len(kept)
        if removed:
            save_table(table, kept)
    return removed


def upsert(table: str, row: dict, on_conflict: str) -> dict:
    """Atualiza a linha com o mesmo valor em `on_conflict` ou insere."""
    with _lock:
        existing = update(table, row, **{on_conflict: row[on_conflict]})
        if existing:
            return existing[0]
        return insert(table, row)

# aplicaciones/infra/db.py
"""
Conexión SQLite y transacciones compartidas entre repositorios.
"""

from __future__ import annotations

import sqlite3
from contextlib import contextmanager
from typing import Iterator, Optional


@contextmanager
def connect(db_path: str, conn: Optional[sqlite3.Connection] = None) -> Iterator[sqlite3.Connection]:
    """
    Abre una conexión con foreign_keys ON y filas `sqlite3.Row`.

    Hace commit al salir y rollback ante cualquier excepción. Si se pasa
    `conn`, la operación se suma a esa transacción y el commit queda a cargo
    de quien la abrió; así varios repositorios escriben todo o nada.
    """
    if conn is not None:
        yield conn
        return

    nueva = sqlite3.connect(db_path)
    try:
        nueva.row_factory = sqlite3.Row
        nueva.execute("PRAGMA foreign_keys = ON;")
        yield nueva
        nueva.commit()
    except Exception:
        nueva.rollback()
        raise
    finally:
        nueva.close()

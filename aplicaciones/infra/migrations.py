# aplicaciones/infra/migrations.py
"""
Migraciones de esquema usando PRAGMA user_version.

V1: tablas base (catálogo, aplicaciones, movimientos, cierres)
V2: tamaño de presentación estructurado en el catálogo de productos
"""

from __future__ import annotations

from typing import List
from .db import connect


SCHEMA_V1: List[str] = [
    # Parámetros K/V
    """
    CREATE TABLE IF NOT EXISTS params (
        chave TEXT PRIMARY KEY,
        valor TEXT
    );
    """,
    # Catálogo de lotes con censo de árboles
    """
    CREATE TABLE IF NOT EXISTS lote (
        id TEXT PRIMARY KEY,
        nombre TEXT NOT NULL,
        area_hectareas REAL DEFAULT 0,
        arboles_grandes INTEGER DEFAULT 0,
        arboles_medianos INTEGER DEFAULT 0,
        arboles_pequenos INTEGER DEFAULT 0,
        arboles_clonales INTEGER DEFAULT 0,
        total_arboles INTEGER DEFAULT 0
    );
    """,
    """
    CREATE TABLE IF NOT EXISTS sublote (
        id TEXT PRIMARY KEY,
        lote_id TEXT NOT NULL,
        nombre TEXT,
        FOREIGN KEY (lote_id) REFERENCES lote(id) ON DELETE CASCADE
    );
    """,
    # Catálogo de productos e inventario actual
    """
    CREATE TABLE IF NOT EXISTS producto (
        id TEXT PRIMARY KEY,
        nombre TEXT NOT NULL,
        categoria TEXT,
        unidad_medida TEXT,          -- 'Litros' | 'Kilos' | 'Unidades'
        estado_fisico TEXT,          -- 'liquido' | 'solido'
        presentacion_comercial TEXT,
        precio_unitario REAL,
        cantidad_actual REAL DEFAULT 0
    );
    """,
    # Agregado Aplicación (partes derivadas como JSON)
    """
    CREATE TABLE IF NOT EXISTS aplicacion (
        id TEXT PRIMARY KEY,
        nombre TEXT,
        tipo_aplicacion TEXT NOT NULL,
        estado TEXT NOT NULL,
        configuracion TEXT NOT NULL,
        mezclas TEXT NOT NULL,
        calculos TEXT,
        lista_compras TEXT,
        fecha_inicio_ejecucion TEXT,
        fecha_cierre TEXT,
        updated_at TEXT
    );
    """,
    # Movimientos diarios (solo inserción / borrado)
    """
    CREATE TABLE IF NOT EXISTS movimiento_diario (
        id INTEGER PRIMARY KEY AUTOINCREMENT,
        aplicacion_id TEXT NOT NULL,
        fecha_movimiento TEXT NOT NULL,
        lote_id TEXT NOT NULL,
        lote_nombre TEXT,
        producto_id TEXT NOT NULL,
        producto_nombre TEXT,
        producto_unidad TEXT,
        cantidad_utilizada REAL NOT NULL,
        responsable TEXT,
        notas TEXT,
        numero_canecas REAL,
        costo_unitario REAL,
        created_at TEXT DEFAULT CURRENT_TIMESTAMP,
        FOREIGN KEY (aplicacion_id) REFERENCES aplicacion(id) ON DELETE CASCADE
    );
    """,
    # Registro de cierre
    """
    CREATE TABLE IF NOT EXISTS cierre_aplicacion (
        aplicacion_id TEXT PRIMARY KEY,
        datos TEXT NOT NULL,
        requiere_aprobacion INTEGER NOT NULL,
        desviacion_maxima REAL,
        aprobado_por TEXT,
        fecha_aprobacion TEXT,
        created_at TEXT DEFAULT CURRENT_TIMESTAMP,
        FOREIGN KEY (aplicacion_id) REFERENCES aplicacion(id) ON DELETE CASCADE
    );
    """,
]


def _ensure_column(conn, table: str, column: str, ddl: str) -> None:
    """Agrega la columna si no existe."""
    cur = conn.execute(f"PRAGMA table_info({table});")
    cols = [r[1] for r in cur.fetchall()]
    if column not in cols:
        conn.execute(f"ALTER TABLE {table} ADD COLUMN {ddl};")


def _apply_v1(conn) -> None:
    for sql in SCHEMA_V1:
        conn.executescript(sql)


def _apply_v2(conn) -> None:
    # tamaño de compra numérico; `presentacion_comercial` queda solo para mostrar
    _ensure_column(conn, "producto", "tamano_presentacion", "tamano_presentacion REAL")


def apply_migrations(db_path: str) -> None:
    """Aplica migraciones incrementales según PRAGMA user_version."""
    with connect(db_path) as conn:
        ver = conn.execute("PRAGMA user_version;").fetchone()[0] or 0

        if ver < 1:
            _apply_v1(conn)
            conn.execute("PRAGMA user_version = 1;")
            ver = 1

        if ver < 2:
            _apply_v2(conn)
            conn.execute("PRAGMA user_version = 2;")
            ver = 2

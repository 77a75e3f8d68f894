# aplicaciones/infra/repositories.py
"""
Repositorios (DAO) de acceso a datos en SQLite.

Clases:
- ParamsRepo
- LoteRepo
- ProductoRepo
- AplicacionRepo
- MovimientoRepo
- CierreRepo
"""

from __future__ import annotations

import json
import sqlite3
from dataclasses import asdict, is_dataclass
from datetime import datetime
from typing import Any, Dict, Iterable, List, Optional, Tuple

from .db import connect
from aplicaciones.domain.models import (
    Aplicacion,
    CalculoLote,
    CierreAplicacion,
    ConfiguracionAplicacion,
    EstadoAplicacion,
    ListaCompras,
    Mezcla,
    MovimientoDiario,
    ProductoCatalogo,
)


# -------------------------
# Helpers
# -------------------------

def _as_dict(row: Any) -> Dict[str, Any]:
    if isinstance(row, dict):
        return row
    if is_dataclass(row):
        return asdict(row)
    raise TypeError("row must be dict or dataclass")


def _rows(cur) -> List[Dict[str, Any]]:
    cols = [d[0] for d in cur.description]
    return [dict(zip(cols, row)) for row in cur.fetchall()]


def _placeholders(n: int) -> str:
    return ",".join(["?"] * n)


# -------------------------
# Params
# -------------------------

class ParamsRepo:
    def __init__(self, db_path: str):
        self.db_path = db_path

    def set_many(self, items: Iterable[Tuple[str, str]]) -> None:
        with connect(self.db_path) as c:
            c.executemany(
                """
                INSERT INTO params (chave, valor)
                VALUES (?, ?)
                ON CONFLICT(chave) DO UPDATE SET valor=excluded.valor
                """,
                list(items),
            )

    def get(self, key: str, default: Optional[str] = None) -> Optional[str]:
        with connect(self.db_path) as c:
            row = c.execute("SELECT valor FROM params WHERE chave = ?", (key,)).fetchone()
            return row[0] if row else default

    def get_float(self, key: str, default: float) -> float:
        v = self.get(key, None)
        if v is None:
            return default
        try:
            return float(v)
        except ValueError:
            return default


# -------------------------
# Catálogo: lotes
# -------------------------

class LoteRepo:
    def __init__(self, db_path: str):
        self.db_path = db_path

    def upsert(self, rows: Iterable[Dict[str, Any]]) -> None:
        """Inserta/actualiza lotes. `total_arboles` se deriva de las cuatro clases."""
        rows = [_as_dict(r) for r in rows]
        with connect(self.db_path) as c:
            for r in rows:
                payload = {
                    "id": r["id"],
                    "nombre": r.get("nombre") or r["id"],
                    "area_hectareas": float(r.get("area_hectareas") or 0.0),
                    "arboles_grandes": int(r.get("arboles_grandes") or 0),
                    "arboles_medianos": int(r.get("arboles_medianos") or 0),
                    "arboles_pequenos": int(r.get("arboles_pequenos") or 0),
                    "arboles_clonales": int(r.get("arboles_clonales") or 0),
                }
                payload["total_arboles"] = (
                    payload["arboles_grandes"] + payload["arboles_medianos"]
                    + payload["arboles_pequenos"] + payload["arboles_clonales"]
                )
                c.execute(
                    """
                    INSERT INTO lote
                        (id, nombre, area_hectareas, arboles_grandes, arboles_medianos,
                         arboles_pequenos, arboles_clonales, total_arboles)
                    VALUES
                        (:id, :nombre, :area_hectareas, :arboles_grandes, :arboles_medianos,
                         :arboles_pequenos, :arboles_clonales, :total_arboles)
                    ON CONFLICT(id) DO UPDATE SET
                        nombre=excluded.nombre,
                        area_hectareas=excluded.area_hectareas,
                        arboles_grandes=excluded.arboles_grandes,
                        arboles_medianos=excluded.arboles_medianos,
                        arboles_pequenos=excluded.arboles_pequenos,
                        arboles_clonales=excluded.arboles_clonales,
                        total_arboles=excluded.total_arboles
                    """,
                    payload,
                )
                for s in r.get("sublotes") or []:
                    c.execute(
                        """
                        INSERT INTO sublote (id, lote_id, nombre) VALUES (?, ?, ?)
                        ON CONFLICT(id) DO UPDATE SET lote_id=excluded.lote_id, nombre=excluded.nombre
                        """,
                        (s["id"], r["id"], s.get("nombre")),
                    )

    def get_all(self) -> List[Dict[str, Any]]:
        with connect(self.db_path) as c:
            return _rows(c.execute("SELECT * FROM lote ORDER BY nombre"))

    def map_by_id(self, ids: Iterable[str]) -> Dict[str, Dict[str, Any]]:
        """Lotes con sus sublotes, indexados por id."""
        ids = list(ids)
        if not ids:
            return {}
        with connect(self.db_path) as c:
            lotes = _rows(c.execute(f"SELECT * FROM lote WHERE id IN ({_placeholders(len(ids))})", ids))
            subs = _rows(c.execute(
                f"SELECT id, lote_id, nombre FROM sublote WHERE lote_id IN ({_placeholders(len(ids))})", ids
            ))
        out = {l["id"]: {**l, "sublotes": []} for l in lotes}
        for s in subs:
            out[s["lote_id"]]["sublotes"].append({"id": s["id"], "nombre": s["nombre"]})
        return out


# -------------------------
# Catálogo: productos
# -------------------------

class ProductoRepo:
    COLS = (
        "id", "nombre", "categoria", "unidad_medida", "estado_fisico",
        "presentacion_comercial", "tamano_presentacion", "precio_unitario", "cantidad_actual",
    )

    def __init__(self, db_path: str):
        self.db_path = db_path

    def upsert(self, rows: Iterable[Any]) -> None:
        rows = [_as_dict(r) for r in rows]
        with connect(self.db_path) as c:
            for r in rows:
                payload = {k: r.get(k) for k in self.COLS}
                payload["cantidad_actual"] = float(payload.get("cantidad_actual") or 0.0)
                c.execute(
                    """
                    INSERT INTO producto
                        (id, nombre, categoria, unidad_medida, estado_fisico,
                         presentacion_comercial, tamano_presentacion, precio_unitario, cantidad_actual)
                    VALUES
                        (:id, :nombre, :categoria, :unidad_medida, :estado_fisico,
                         :presentacion_comercial, :tamano_presentacion, :precio_unitario, :cantidad_actual)
                    ON CONFLICT(id) DO UPDATE SET
                        nombre=excluded.nombre,
                        categoria=excluded.categoria,
                        unidad_medida=excluded.unidad_medida,
                        estado_fisico=excluded.estado_fisico,
                        presentacion_comercial=excluded.presentacion_comercial,
                        tamano_presentacion=excluded.tamano_presentacion,
                        precio_unitario=excluded.precio_unitario,
                        cantidad_actual=excluded.cantidad_actual
                    """,
                    payload,
                )

    @staticmethod
    def _to_model(r: Dict[str, Any]) -> ProductoCatalogo:
        return ProductoCatalogo(
            id=str(r["id"]),
            nombre=r["nombre"],
            categoria=r.get("categoria") or "",
            unidad_medida=r.get("unidad_medida") or "Litros",
            estado_fisico=r.get("estado_fisico") or "liquido",
            presentacion_comercial=r.get("presentacion_comercial") or "",
            tamano_presentacion=r.get("tamano_presentacion"),
            precio_unitario=r.get("precio_unitario"),
            cantidad_actual=float(r.get("cantidad_actual") or 0.0),
        )

    def get_all(self) -> List[ProductoCatalogo]:
        with connect(self.db_path) as c:
            return [self._to_model(r) for r in _rows(c.execute("SELECT * FROM producto ORDER BY nombre"))]

    def map_by_id(self, ids: Iterable[str]) -> Dict[str, ProductoCatalogo]:
        ids = list(ids)
        if not ids:
            return {}
        with connect(self.db_path) as c:
            cur = c.execute(f"SELECT * FROM producto WHERE id IN ({_placeholders(len(ids))})", ids)
            return {str(r["id"]): self._to_model(r) for r in _rows(cur)}


# -------------------------
# Agregado Aplicación
# -------------------------

class AplicacionRepo:
    def __init__(self, db_path: str):
        self.db_path = db_path

    def exists(self, aplicacion_id: str) -> bool:
        with connect(self.db_path) as c:
            return c.execute("SELECT 1 FROM aplicacion WHERE id = ?", (aplicacion_id,)).fetchone() is not None

    def save(self, app: Aplicacion, conn: Optional[sqlite3.Connection] = None) -> None:
        """Crea o reemplaza el agregado (sin el cierre, que vive en CierreRepo)."""
        d = app.to_dict()
        payload = {
            "id": app.id,
            "nombre": app.configuracion.nombre,
            "tipo_aplicacion": app.tipo.value,
            "estado": app.estado.value,
            "configuracion": json.dumps(d["configuracion"], ensure_ascii=False),
            "mezclas": json.dumps(d["mezclas"], ensure_ascii=False),
            "calculos": json.dumps(d["calculos"], ensure_ascii=False),
            "lista_compras": json.dumps(d["lista_compras"], ensure_ascii=False) if d["lista_compras"] else None,
            "fecha_inicio_ejecucion": app.fecha_inicio_ejecucion,
            "fecha_cierre": app.fecha_cierre,
            "updated_at": datetime.now().isoformat(timespec="seconds"),
        }
        with connect(self.db_path, conn) as c:
            c.execute(
                """
                INSERT INTO aplicacion
                    (id, nombre, tipo_aplicacion, estado, configuracion, mezclas, calculos,
                     lista_compras, fecha_inicio_ejecucion, fecha_cierre, updated_at)
                VALUES
                    (:id, :nombre, :tipo_aplicacion, :estado, :configuracion, :mezclas, :calculos,
                     :lista_compras, :fecha_inicio_ejecucion, :fecha_cierre, :updated_at)
                ON CONFLICT(id) DO UPDATE SET
                    nombre=excluded.nombre,
                    tipo_aplicacion=excluded.tipo_aplicacion,
                    estado=excluded.estado,
                    configuracion=excluded.configuracion,
                    mezclas=excluded.mezclas,
                    calculos=excluded.calculos,
                    lista_compras=excluded.lista_compras,
                    fecha_inicio_ejecucion=excluded.fecha_inicio_ejecucion,
                    fecha_cierre=excluded.fecha_cierre,
                    updated_at=excluded.updated_at
                """,
                payload,
            )

    def get(self, aplicacion_id: str) -> Optional[Aplicacion]:
        with connect(self.db_path) as c:
            row = c.execute("SELECT * FROM aplicacion WHERE id = ?", (aplicacion_id,)).fetchone()
            cierre_row = c.execute(
                "SELECT datos FROM cierre_aplicacion WHERE aplicacion_id = ?", (aplicacion_id,)
            ).fetchone()
        if row is None:
            return None
        return Aplicacion(
            id=row["id"],
            configuracion=ConfiguracionAplicacion.from_dict(json.loads(row["configuracion"])),
            estado=EstadoAplicacion(row["estado"]),
            mezclas=[Mezcla.from_dict(m) for m in json.loads(row["mezclas"])],
            calculos=[CalculoLote.from_dict(x) for x in json.loads(row["calculos"] or "[]")],
            lista_compras=ListaCompras.from_dict(json.loads(row["lista_compras"])) if row["lista_compras"] else None,
            cierre=CierreAplicacion.from_dict(json.loads(cierre_row["datos"])) if cierre_row else None,
            fecha_inicio_ejecucion=row["fecha_inicio_ejecucion"],
            fecha_cierre=row["fecha_cierre"],
        )

    def require(self, aplicacion_id: str) -> Aplicacion:
        app = self.get(aplicacion_id)
        if app is None:
            raise LookupError(f"aplicación {aplicacion_id} no encontrada")
        return app

    def list_resumen(self) -> List[Dict[str, Any]]:
        with connect(self.db_path) as c:
            return _rows(c.execute("SELECT * FROM vw_aplicaciones_estado ORDER BY id"))


# -------------------------
# Movimientos diarios
# -------------------------

class MovimientoRepo:
    COLS = (
        "aplicacion_id", "fecha_movimiento", "lote_id", "lote_nombre", "producto_id",
        "producto_nombre", "producto_unidad", "cantidad_utilizada", "responsable",
        "notas", "numero_canecas", "costo_unitario",
    )

    def __init__(self, db_path: str):
        self.db_path = db_path

    def insert(self, mov: MovimientoDiario) -> int:
        row = {k: getattr(mov, k) for k in self.COLS}
        with connect(self.db_path) as c:
            cur = c.execute(
                f"INSERT INTO movimiento_diario ({','.join(self.COLS)}) "
                f"VALUES ({','.join(':' + k for k in self.COLS)})",
                row,
            )
            return int(cur.lastrowid)

    def insert_many(self, movs: Iterable[MovimientoDiario]) -> int:
        rows = [{k: getattr(m, k) for k in self.COLS} for m in movs]
        if not rows:
            return 0
        with connect(self.db_path) as c:
            c.executemany(
                f"INSERT INTO movimiento_diario ({','.join(self.COLS)}) "
                f"VALUES ({','.join(':' + k for k in self.COLS)})",
                rows,
            )
        return len(rows)

    def list_by_aplicacion(self, aplicacion_id: str, lote_id: Optional[str] = None) -> List[MovimientoDiario]:
        """Movimientos en orden de registro (fecha, id)."""
        sql = f"SELECT id, {','.join(self.COLS)} FROM movimiento_diario WHERE aplicacion_id = ?"
        args: List[Any] = [aplicacion_id]
        if lote_id is not None:
            sql += " AND lote_id = ?"
            args.append(lote_id)
        sql += " ORDER BY fecha_movimiento, id"
        with connect(self.db_path) as c:
            return [MovimientoDiario.from_dict(r) for r in _rows(c.execute(sql, args))]

    def get(self, movimiento_id: int) -> Optional[MovimientoDiario]:
        with connect(self.db_path) as c:
            rows = _rows(c.execute(
                f"SELECT id, {','.join(self.COLS)} FROM movimiento_diario WHERE id = ?", (movimiento_id,)
            ))
        return MovimientoDiario.from_dict(rows[0]) if rows else None

    def delete(self, movimiento_id: int) -> int:
        with connect(self.db_path) as c:
            return c.execute("DELETE FROM movimiento_diario WHERE id = ?", (movimiento_id,)).rowcount

    def consumo_por_lote_producto(self, aplicacion_id: str) -> List[Dict[str, Any]]:
        with connect(self.db_path) as c:
            return _rows(c.execute(
                "SELECT * FROM vw_consumo_lote_producto WHERE aplicacion_id = ? ORDER BY lote_id, producto_id",
                (aplicacion_id,),
            ))


# -------------------------
# Cierres
# -------------------------

class CierreRepo:
    def __init__(self, db_path: str):
        self.db_path = db_path

    def save(self, cierre: CierreAplicacion, conn: Optional[sqlite3.Connection] = None) -> None:
        with connect(self.db_path, conn) as c:
            c.execute(
                """
                INSERT INTO cierre_aplicacion
                    (aplicacion_id, datos, requiere_aprobacion, desviacion_maxima, aprobado_por, fecha_aprobacion)
                VALUES (?, ?, ?, ?, ?, ?)
                ON CONFLICT(aplicacion_id) DO UPDATE SET
                    datos=excluded.datos,
                    requiere_aprobacion=excluded.requiere_aprobacion,
                    desviacion_maxima=excluded.desviacion_maxima,
                    aprobado_por=excluded.aprobado_por,
                    fecha_aprobacion=excluded.fecha_aprobacion
                """,
                (
                    cierre.aplicacion_id,
                    json.dumps(cierre.to_dict(), ensure_ascii=False),
                    1 if cierre.requiere_aprobacion else 0,
                    cierre.desviacion_maxima,
                    cierre.aprobado_por,
                    cierre.fecha_aprobacion,
                ),
            )


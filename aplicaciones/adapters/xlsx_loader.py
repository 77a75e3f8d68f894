# aplicaciones/adapters/xlsx_loader.py
"""
Loader de planillas XLSX de movimientos diarios de campo.

Esta función:
- lee la planilla con pandas;
- normaliza encabezados (acentos, mayúsculas, sinónimos);
- devuelve una lista de dicts con las claves de `MovimientoDiario`.

Observaciones:
- La cantidad puede venir como número o como texto con unidad
  ("12,5 L - Litros"); solo se conserva el número.
- Las fechas se normalizan a ISO (YYYY-MM-DD) cuando es posible.
- Las filas vacías se descartan; las incompletas se devuelven tal cual para
  que la validación del caso de uso las informe.
"""

from __future__ import annotations

import re
from datetime import datetime
from typing import Any, Dict, List, Optional

import pandas as pd

from aplicaciones.adapters.parsers import parse_cantidad_raw


# ---------------------------
# utilidades de normalización
# ---------------------------

def _slug(s: str) -> str:
    """Normaliza encabezados: minúsculas, sin acentos, sin no-alfanuméricos."""
    if s is None:
        return ""
    s = str(s).strip().lower()
    acentos = dict(zip("áàâãäéèêëíìîïóòôõöúùûüçñ", "aaaaaeeeeiiiiooooouuuucn"))
    s = "".join(acentos.get(ch, ch) for ch in s)
    s = re.sub(r"[^a-z0-9]+", " ", s)
    s = re.sub(r"\s+", " ", s).strip()
    return s


def _safe_get(row, key):
    """Lee un valor de la fila tratando NA como None."""
    val = row.get(key)
    if val is None or pd.isna(val):
        return None
    s = str(val).strip()
    return s or None


def _to_date_iso(val: Any) -> Optional[str]:
    """Convierte a fecha ISO (YYYY-MM-DD) si es posible."""
    if val is None:
        return None
    if isinstance(val, pd.Timestamp):
        return val.date().isoformat()
    s = str(val).strip()
    if not s:
        return None
    for fmt in ("%Y-%m-%d", "%Y-%m-%d %H:%M:%S", "%d/%m/%Y", "%d-%m-%Y", "%d/%m/%y"):
        try:
            return datetime.strptime(s, fmt).date().isoformat()
        except ValueError:
            continue
    d = pd.to_datetime(s, dayfirst=True, errors="coerce")
    if pd.isna(d):
        return None
    return d.date().isoformat()


def _to_float(val: Any) -> Optional[float]:
    if val is None:
        return None
    num, _, _ = parse_cantidad_raw(val)
    return num


def _normalize_columns(df: pd.DataFrame) -> pd.DataFrame:
    """Renombra columnas según sinónimos/variaciones."""
    aliases = {
        "fecha": "fecha_movimiento",
        "fecha movimiento": "fecha_movimiento",
        "fecha de movimiento": "fecha_movimiento",
        "dia": "fecha_movimiento",

        "lote": "lote_id",
        "lote id": "lote_id",
        "id lote": "lote_id",
        "nombre lote": "lote_nombre",

        "producto": "producto_id",
        "producto id": "producto_id",
        "id producto": "producto_id",
        "codigo": "producto_id",
        "nombre producto": "producto_nombre",

        "cantidad": "cantidad_utilizada",
        "cantidad utilizada": "cantidad_utilizada",
        "cantidad usada": "cantidad_utilizada",
        "consumo": "cantidad_utilizada",

        "responsable": "responsable",
        "encargado": "responsable",

        "notas": "notas",
        "nota": "notas",
        "observaciones": "notas",

        "canecas": "numero_canecas",
        "numero canecas": "numero_canecas",
        "numero de canecas": "numero_canecas",
        "canecas utilizadas": "numero_canecas",
    }
    new_cols = {}
    for col in df.columns:
        key = _slug(col)
        new_cols[col] = aliases.get(key, key.replace(" ", "_"))
    return df.rename(columns=new_cols)


# ---------------------------
# loader público (XLSX)
# ---------------------------

def load_movimientos_from_xlsx(path: str, aplicacion_id: str) -> List[Dict[str, Any]]:
    """Lee un XLSX de movimientos y devuelve registros para `MovimientoDiario`.

    Claves de salida por fila:
      - aplicacion_id, fecha_movimiento (ISO | None), lote_id, lote_nombre,
        producto_id, producto_nombre, cantidad_utilizada (float | None),
        responsable, notas, numero_canecas (float | None)
    """
    df = pd.read_excel(path, dtype="string")
    df = _normalize_columns(df)
    out: List[Dict[str, Any]] = []
    for _, row in df.iterrows():
        rec = {
            "aplicacion_id": aplicacion_id,
            "fecha_movimiento": _to_date_iso(_safe_get(row, "fecha_movimiento")),
            "lote_id": _safe_get(row, "lote_id"),
            "lote_nombre": _safe_get(row, "lote_nombre"),
            "producto_id": _safe_get(row, "producto_id"),
            "producto_nombre": _safe_get(row, "producto_nombre"),
            "cantidad_utilizada": _to_float(_safe_get(row, "cantidad_utilizada")),
            "responsable": _safe_get(row, "responsable"),
            "notas": _safe_get(row, "notas"),
            "numero_canecas": _to_float(_safe_get(row, "numero_canecas")),
        }
        if all(v is None for k, v in rec.items() if k != "aplicacion_id"):
            continue
        out.append(rec)
    return out

"""
Utilidades de parsing para textos con cantidades.

Este módulo interpreta cadenas libres de dos orígenes:

- la presentación comercial del catálogo ("Bulto 25kg", "Tarro de 1L"),
  de la que se extrae el tamaño de compra;
- la columna de cantidad de las planillas de movimientos
  ("12,5 L - Litros"), de la que se extrae número y unidad.
"""

from __future__ import annotations

import re
from typing import Optional, Tuple

_NUM_RE = re.compile(r"[-+]?\d+(?:[.,]\d+)?")
_PRESENTACION_RE = re.compile(r"(\d+(?:[.,]\d+)?)")


def extraer_tamano_presentacion(presentacion: Optional[str]) -> float:
    """Primer número de la presentación comercial; 1 si no hay ninguno.

    Ejemplos:
        "Bulto de 25kg" → 25.0
        "Tarro de 1L"   → 1.0
        "Bolsa 2,5 kg"  → 2.5
        "Unidad"        → 1.0
    """
    if not presentacion:
        return 1.0
    m = _PRESENTACION_RE.search(str(presentacion))
    if not m:
        return 1.0
    tamano = float(m.group(1).replace(",", "."))
    return tamano if tamano > 0 else 1.0


def parse_cantidad_raw(txt) -> Tuple[Optional[float], Optional[str], Optional[str]]:
    """Interpreta una cantidad con unidad.

    La cadena suele seguir el patrón "<valor> <unidad> - <descripción>". El
    valor admite coma o punto decimal; la unidad se devuelve en mayúsculas.

    Ejemplos:
        "12,5 L - Litros" → (12.5, "L", "Litros")
        "3 KG"            → (3.0, "KG", None)
        "7"               → (7.0, None, None)

    Returns:
        Tupla (numero, unidad, descripcion); lo que no se pueda determinar
        se devuelve como None.
    """
    if txt is None:
        return None, None, None
    s = str(txt).strip()
    if not s:
        return None, None, None
    head, desc = (s.split(" - ", 1) + [""])[:2]
    head = head.strip()
    desc = desc.strip() or None
    parts = head.split()
    num = None
    unidad = None
    if parts:
        m = _NUM_RE.search(parts[0])
        if m:
            num = float(m.group(0).replace(",", "."))
    if len(parts) >= 2:
        unidad = parts[1].strip().upper() or None
    return num, unidad, desc

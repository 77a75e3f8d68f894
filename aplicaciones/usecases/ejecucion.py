# aplicaciones/usecases/ejecucion.py
"""
UC: Iniciar la ejecución de una aplicación (Calculada → En ejecución).

La verificación de inventario es una compuerta blanda: si falta producto se
devuelve la lista de faltantes con `requiere_confirmacion=True` y el llamador
decide si continúa repitiendo la llamada con `confirmar=True`.
"""

from __future__ import annotations

from datetime import date
from typing import Any, Dict, Iterable, List, Optional

from aplicaciones.config import DB_PATH
from aplicaciones.domain.estados import ContextoTransicion, validar_operacion, validar_transicion
from aplicaciones.domain.formulas import calcular_totales_productos
from aplicaciones.domain.models import (
    ErrorValidacion,
    EstadoAplicacion,
    ProductoCatalogo,
    ProductoEnMezcla,
)
from aplicaciones.infra.repositories import AplicacionRepo, ProductoRepo
from aplicaciones.infra.logger import log_transaction, log_database_operation, log_system_event


def verificar_stock(
    productos: Iterable[ProductoEnMezcla],
    inventario: Dict[str, ProductoCatalogo],
) -> List[Dict[str, Any]]:
    """Productos cuyo inventario no cubre lo necesario (ausentes cuentan como 0)."""
    faltantes: List[Dict[str, Any]] = []
    for p in productos:
        cat = inventario.get(p.producto_id)
        disponible = float(cat.cantidad_actual or 0.0) if cat else 0.0
        necesario = float(p.cantidad_total_necesaria)
        if disponible < necesario:
            faltantes.append({
                "producto_id": p.producto_id,
                "producto_nombre": p.producto_nombre,
                "unidad": p.producto_unidad,
                "necesario": necesario,
                "disponible": disponible,
                "faltante": necesario - disponible,
            })
    return faltantes


def run_iniciar_ejecucion(
    aplicacion_id: str,
    fecha_inicio: Optional[str],
    confirmar: bool = False,
    hoy: Optional[date] = None,
    db_path: str = DB_PATH,
) -> Dict[str, Any]:
    log_system_event("iniciar_ejecucion_start", {"aplicacion_id": aplicacion_id, "fecha_inicio": fecha_inicio})

    try:
        repo = AplicacionRepo(db_path)
        app = repo.require(aplicacion_id)
        base = {"ok": False, "requiere_confirmacion": False, "faltantes": []}

        motivos = validar_operacion(app.estado, "iniciar_ejecucion")
        if motivos:
            return {**base, "errores": [ErrorValidacion("estado", m) for m in motivos]}

        try:
            inicio = date.fromisoformat(fecha_inicio) if fecha_inicio else None
        except ValueError:
            return {**base, "errores": [ErrorValidacion("ejecución", f"fecha inválida: {fecha_inicio!r}")]}

        ctx = ContextoTransicion(fecha_inicio=inicio, hoy=hoy)
        motivos = validar_transicion(app.estado, EstadoAplicacion.EN_EJECUCION, ctx)
        if motivos:
            return {**base, "errores": [ErrorValidacion("ejecución", m) for m in motivos]}

        productos = calcular_totales_productos(app.calculos, app.mezclas)
        inventario = ProductoRepo(db_path).map_by_id([p.producto_id for p in productos])
        faltantes = verificar_stock(productos, inventario)
        if faltantes and not confirmar:
            log_system_event("iniciar_ejecucion_stock_insuficiente",
                             {"aplicacion_id": app.id, "faltantes": len(faltantes)}, level="warning")
            return {**base, "errores": [], "requiere_confirmacion": True, "faltantes": faltantes}

        app.estado = EstadoAplicacion.EN_EJECUCION
        app.fecha_inicio_ejecucion = inicio.isoformat()
        repo.save(app)
        log_database_operation("aplicacion", "UPDATE", 1, aplicacion_id=app.id, estado=app.estado.value)

        log_transaction("iniciar_ejecucion", {"id": app.id, "confirmado": confirmar},
                        result={"estado": app.estado.value, "faltantes": len(faltantes)})
        return {"ok": True, "errores": [], "requiere_confirmacion": False, "faltantes": faltantes}

    except Exception as e:
        error_msg = str(e)
        log_transaction("iniciar_ejecucion", {"id": aplicacion_id}, error=error_msg)
        log_system_event("iniciar_ejecucion_error", {"error": error_msg}, level="error")
        raise

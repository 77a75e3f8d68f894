# aplicaciones/usecases/calcular_aplicacion.py
"""
UC: Crear una aplicación y recalcular sus mezclas.

Flujo:
1) Completa el censo de cada lote seleccionado desde el catálogo de lotes.
2) Completa nombre/categoría/unidad de cada producto desde el catálogo.
3) Valida la configuración completa (sin validación no hay cálculo).
4) Calcula cada (mezcla, lote) asignado y los totales por producto.
5) Persiste el agregado en estado `Calculada`.

Obs.:
- Todo lo derivado se recalcula completo; nunca se ajustan totales a mano.
- Editar mezclas solo es posible mientras la aplicación está `Calculada`.
"""

from __future__ import annotations

import uuid
from typing import Any, Dict, Iterable, List, Optional

from aplicaciones.config import DB_PATH
from aplicaciones.domain.estados import validar_operacion
from aplicaciones.domain.formulas import calcular_lote, calcular_totales_productos
from aplicaciones.domain.models import (
    Aplicacion,
    CalculoLote,
    ConfiguracionAplicacion,
    ConteoArboles,
    ErrorValidacion,
    EstadoAplicacion,
    Mezcla,
    ProductoCatalogo,
)
from aplicaciones.domain.policies import validar_configuracion
from aplicaciones.infra.migrations import apply_migrations
from aplicaciones.infra.views import create_views
from aplicaciones.infra.repositories import AplicacionRepo, LoteRepo, ProductoRepo
from aplicaciones.infra.logger import (
    log_transaction, log_database_operation, log_system_event, print_system
)


def tamanos_presentacion(catalogo: Dict[str, ProductoCatalogo]) -> Dict[str, float]:
    """producto_id -> tamaño de presentación estructurado (solo los conocidos)."""
    return {
        pid: float(p.tamano_presentacion)
        for pid, p in catalogo.items()
        if p.tamano_presentacion and p.tamano_presentacion > 0
    }


def calcular_aplicacion(
    config: ConfiguracionAplicacion,
    mezclas: Iterable[Mezcla],
    tamanos: Optional[Dict[str, float]] = None,
) -> Dict[str, Any]:
    """Valida y calcula una aplicación completa (función pura).

    Returns:
        {"ok": bool, "errores": [ErrorValidacion], "calculos": [CalculoLote],
         "productos": [ProductoEnMezcla]}  (totales por producto)
    """
    mezclas = list(mezclas)
    errores = validar_configuracion(config, mezclas)
    if errores:
        return {"ok": False, "errores": errores, "calculos": [], "productos": []}

    calculos: List[CalculoLote] = []
    for m in mezclas:
        for lote_id in m.lotes_asignados:
            calculos.append(calcular_lote(config.tipo_aplicacion, config.lote(lote_id), m, tamanos))

    productos = calcular_totales_productos(calculos, mezclas)
    return {"ok": True, "errores": [], "calculos": calculos, "productos": productos}


def _completar_lotes(config: ConfiguracionAplicacion, db_path: str) -> List[ErrorValidacion]:
    """Reemplaza el censo de cada lote por el del catálogo."""
    catalogo = LoteRepo(db_path).map_by_id(l.lote_id for l in config.lotes_seleccionados)
    errores: List[ErrorValidacion] = []
    for lote in config.lotes_seleccionados:
        row = catalogo.get(lote.lote_id)
        if row is None:
            errores.append(ErrorValidacion(f"lote {lote.lote_id}", "no existe en el catálogo de lotes"))
            continue
        lote.nombre = row["nombre"]
        lote.area_hectareas = float(row["area_hectareas"] or 0.0)
        lote.conteo_arboles = ConteoArboles(
            grandes=int(row["arboles_grandes"] or 0),
            medianos=int(row["arboles_medianos"] or 0),
            pequenos=int(row["arboles_pequenos"] or 0),
            clonales=int(row["arboles_clonales"] or 0),
            total=int(row["total_arboles"] or 0),
        )
        if not lote.sublotes_ids:
            lote.sublotes_ids = [s["id"] for s in row["sublotes"]]
    return errores


def _completar_productos(mezclas: List[Mezcla], catalogo: Dict[str, ProductoCatalogo]) -> List[ErrorValidacion]:
    errores: List[ErrorValidacion] = []
    for m in mezclas:
        for p in m.productos:
            cat = catalogo.get(p.producto_id)
            if cat is None:
                errores.append(ErrorValidacion(f"producto {p.producto_id}", "no existe en el catálogo de productos"))
                continue
            p.producto_nombre = cat.nombre
            p.producto_categoria = cat.categoria
            p.producto_unidad = cat.unidad_medida
    return errores


def _recalcular(app: Aplicacion, db_path: str) -> List[ErrorValidacion]:
    """Completa catálogos, valida y recalcula todo lo derivado de `app`."""
    errores = _completar_lotes(app.configuracion, db_path)
    ids = {p.producto_id for m in app.mezclas for p in m.productos}
    catalogo = ProductoRepo(db_path).map_by_id(sorted(ids))
    errores.extend(_completar_productos(app.mezclas, catalogo))
    if errores:
        return errores

    res = calcular_aplicacion(app.configuracion, app.mezclas, tamanos_presentacion(catalogo))
    if not res["ok"]:
        return res["errores"]
    app.calculos = res["calculos"]
    # la lista de compras depende de los totales: queda obsoleta
    app.lista_compras = None
    return []


def run_crear_aplicacion(
    datos: Dict[str, Any],
    db_path: str = DB_PATH,
    aplicacion_id: Optional[str] = None,
) -> Dict[str, Any]:
    """Crea una aplicación `Calculada` a partir de {"configuracion": ..., "mezclas": [...]}."""
    log_system_event("crear_aplicacion_start", {"aplicacion_id": aplicacion_id})

    try:
        apply_migrations(db_path)
        create_views(db_path)

        app = Aplicacion(
            id=aplicacion_id or uuid.uuid4().hex[:12],
            configuracion=ConfiguracionAplicacion.from_dict(datos["configuracion"]),
            estado=EstadoAplicacion.CALCULADA,
            mezclas=[Mezcla.from_dict(m) for m in datos.get("mezclas") or []],
        )

        repo = AplicacionRepo(db_path)
        # crear nunca reemplaza: el estado de una existente solo cambia por transición
        if repo.exists(app.id):
            error = ErrorValidacion("aplicación", f"ya existe una aplicación con id {app.id}")
            log_transaction("crear_aplicacion", {"id": app.id}, error=str(error))
            return {"ok": False, "errores": [error], "aplicacion": None}

        errores = _recalcular(app, db_path)
        if errores:
            print_system(f">> Configuración inválida ({len(errores)} errores).")
            log_transaction("crear_aplicacion", {"id": app.id}, error="; ".join(map(str, errores)))
            return {"ok": False, "errores": errores, "aplicacion": None}

        repo.save(app)
        log_database_operation("aplicacion", "INSERT", 1, aplicacion_id=app.id)

        result = {"ok": True, "errores": [], "aplicacion": app}
        log_transaction("crear_aplicacion", {"id": app.id, "tipo": app.tipo.value},
                        result={"calculos": len(app.calculos)})
        log_system_event("crear_aplicacion_success", {"aplicacion_id": app.id})
        return result

    except Exception as e:
        error_msg = str(e)
        log_transaction("crear_aplicacion", {"id": aplicacion_id}, error=error_msg)
        log_system_event("crear_aplicacion_error", {"error": error_msg}, level="error")
        raise


def run_actualizar_mezclas(
    aplicacion_id: str,
    mezclas: List[Dict[str, Any]],
    db_path: str = DB_PATH,
) -> Dict[str, Any]:
    """Reemplaza las mezclas y recalcula. Solo en estado `Calculada`."""
    log_system_event("actualizar_mezclas_start", {"aplicacion_id": aplicacion_id})

    try:
        repo = AplicacionRepo(db_path)
        app = repo.require(aplicacion_id)

        motivos = validar_operacion(app.estado, "editar_mezclas")
        if motivos:
            return {"ok": False, "errores": [ErrorValidacion("estado", m) for m in motivos], "aplicacion": app}

        app.mezclas = [Mezcla.from_dict(m) for m in mezclas]
        errores = _recalcular(app, db_path)
        if errores:
            return {"ok": False, "errores": errores, "aplicacion": None}

        repo.save(app)
        log_database_operation("aplicacion", "UPDATE", 1, aplicacion_id=app.id)
        log_transaction("actualizar_mezclas", {"id": app.id}, result={"calculos": len(app.calculos)})
        return {"ok": True, "errores": [], "aplicacion": app}

    except Exception as e:
        error_msg = str(e)
        log_transaction("actualizar_mezclas", {"id": aplicacion_id}, error=error_msg)
        log_system_event("actualizar_mezclas_error", {"error": error_msg}, level="error")
        raise

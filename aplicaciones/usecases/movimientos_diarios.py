# aplicaciones/usecases/movimientos_diarios.py
"""
UC: Movimientos diarios de campo (registro, borrado, importación XLSX) y
resumen de consumo contra lo planeado.

El resumen y las alertas se recalculan SIEMPRE desde la lista completa de
movimientos; no se mantiene ningún acumulado.

Alertas por producto (la primera regla que aplica gana):
    excedido            → error
    >= 90 % utilizado   → warning
    75 % a < 90 %       → info
"""

from __future__ import annotations

from collections import OrderedDict
from datetime import date
from math import fsum
from typing import Any, Dict, Iterable, List, Optional

from aplicaciones.config import DB_PATH
from aplicaciones.adapters.xlsx_loader import load_movimientos_from_xlsx
from aplicaciones.domain.estados import validar_operacion
from aplicaciones.domain.formulas import calcular_totales_productos
from aplicaciones.domain.models import (
    AlertaMovimiento,
    Aplicacion,
    ErrorValidacion,
    MovimientoDiario,
    ProductoEnMezcla,
    ResumenMovimiento,
    TipoAplicacion,
)
from aplicaciones.domain.policies import clasificar_consumo
from aplicaciones.infra.repositories import AplicacionRepo, MovimientoRepo, ProductoRepo
from aplicaciones.infra.logger import (
    log_transaction, log_movimiento, log_database_operation,
    log_system_event, log_file_operation, print_system
)


# ----------------------
# cálculos puros
# ----------------------

def calcular_resumen_movimientos(
    movimientos: Iterable[MovimientoDiario],
    productos_planeados: Iterable[ProductoEnMezcla],
) -> List[ResumenMovimiento]:
    """Consumo por producto contra lo planeado.

    Incluye los productos planeados (en su orden) y, al final, los que solo
    aparecen en movimientos (planeado 0, por lo tanto excedidos).
    """
    usados: Dict[str, List[float]] = OrderedDict()
    info: Dict[str, MovimientoDiario] = {}
    for m in movimientos:
        usados.setdefault(m.producto_id, []).append(float(m.cantidad_utilizada))
        info.setdefault(m.producto_id, m)

    resumen: List[ResumenMovimiento] = []
    vistos = set()
    for p in productos_planeados:
        if p.producto_id in vistos:
            continue
        vistos.add(p.producto_id)
        resumen.append(_linea(p.producto_id, p.producto_nombre, p.producto_unidad,
                              fsum(usados.get(p.producto_id, [])), float(p.cantidad_total_necesaria)))

    for pid, cantidades in usados.items():
        if pid in vistos:
            continue
        m = info[pid]
        resumen.append(_linea(pid, m.producto_nombre or pid, m.producto_unidad or "", fsum(cantidades), 0.0))
    return resumen


def _linea(pid: str, nombre: str, unidad: str, total: float, planeado: float) -> ResumenMovimiento:
    return ResumenMovimiento(
        producto_id=pid,
        producto_nombre=nombre,
        producto_unidad=unidad,
        total_utilizado=total,
        cantidad_planeada=planeado,
        diferencia=planeado - total,
        porcentaje_usado=(total * 100.0 / planeado) if planeado > 0 else 0.0,
        excede_planeado=total > planeado,
    )


def generar_alertas(resumen: Iterable[ResumenMovimiento]) -> List[AlertaMovimiento]:
    alertas: List[AlertaMovimiento] = []
    for r in resumen:
        tipo = clasificar_consumo(r.porcentaje_usado, r.excede_planeado)
        if tipo is None:
            continue
        if tipo == "error":
            mensaje = f"Se ha excedido lo planeado en {abs(r.diferencia):.2f} {r.producto_unidad}".rstrip()
        elif tipo == "warning":
            mensaje = f"Se ha utilizado el {r.porcentaje_usado:.0f}% de lo planeado"
        else:
            mensaje = f"Llevas el {r.porcentaje_usado:.0f}% de lo planeado"
        alertas.append(AlertaMovimiento(
            tipo=tipo,
            producto_id=r.producto_id,
            producto_nombre=r.producto_nombre,
            mensaje=mensaje,
            porcentaje_usado=r.porcentaje_usado,
        ))
    return alertas


def validar_nuevo_movimiento(
    producto_id: str,
    cantidad_nueva: float,
    movimientos: Iterable[MovimientoDiario],
    productos_planeados: Iterable[ProductoEnMezcla],
) -> Dict[str, Any]:
    """¿El nuevo consumo excedería lo planeado? Aviso, no bloquea el registro."""
    planeado = next((p for p in productos_planeados if p.producto_id == producto_id), None)
    if planeado is None:
        return {"valido": False, "mensaje": "Producto no encontrado en la planificación", "porcentaje": None}

    total = fsum(m.cantidad_utilizada for m in movimientos if m.producto_id == producto_id)
    nuevo_total = total + float(cantidad_nueva)
    necesario = float(planeado.cantidad_total_necesaria)
    porcentaje = nuevo_total * 100.0 / necesario if necesario > 0 else None

    if nuevo_total > necesario:
        exceso = nuevo_total - necesario
        return {
            "valido": False,
            "mensaje": f"Esta cantidad excedería lo planeado en {exceso:.2f} {planeado.producto_unidad}",
            "porcentaje": porcentaje,
        }
    return {"valido": True, "mensaje": None, "porcentaje": porcentaje}


def validar_datos_movimiento(
    datos: Dict[str, Any],
    tipo: TipoAplicacion,
    lotes_ids: Iterable[str],
) -> List[ErrorValidacion]:
    """Campos obligatorios de un movimiento antes de registrarlo."""
    errores: List[ErrorValidacion] = []
    ent = "movimiento"
    if not datos.get("fecha_movimiento"):
        errores.append(ErrorValidacion(ent, "debe indicar la fecha"))
    lote_id = datos.get("lote_id")
    if not lote_id:
        errores.append(ErrorValidacion(ent, "debe indicar el lote"))
    elif lote_id not in set(lotes_ids):
        errores.append(ErrorValidacion(ent, f"el lote {lote_id} no pertenece a la aplicación"))
    if not datos.get("producto_id"):
        errores.append(ErrorValidacion(ent, "debe indicar el producto"))
    cantidad = datos.get("cantidad_utilizada")
    if cantidad is None or float(cantidad) <= 0:
        errores.append(ErrorValidacion(ent, "la cantidad utilizada debe ser mayor a 0"))
    if not (datos.get("responsable") or "").strip():
        errores.append(ErrorValidacion(ent, "debe indicar el responsable"))
    if tipo.usa_canecas:
        canecas = datos.get("numero_canecas")
        if canecas is None or float(canecas) <= 0:
            errores.append(ErrorValidacion(ent, "debe indicar el número de canecas utilizadas"))
    return errores


def validar_fecha_movimiento(
    fecha_movimiento: str,
    fecha_inicio: Optional[str],
    fecha_cierre: Optional[str] = None,
    hoy: Optional[date] = None,
) -> List[ErrorValidacion]:
    try:
        fecha = date.fromisoformat(str(fecha_movimiento))
    except ValueError:
        return [ErrorValidacion("movimiento", f"fecha inválida: {fecha_movimiento!r}")]

    hoy = hoy or date.today()
    if fecha_inicio and fecha < date.fromisoformat(fecha_inicio):
        return [ErrorValidacion("movimiento", "la fecha no puede ser anterior al inicio de la aplicación")]
    if fecha > hoy:
        return [ErrorValidacion("movimiento", "la fecha no puede ser futura")]
    if fecha_cierre and fecha > date.fromisoformat(fecha_cierre):
        return [ErrorValidacion("movimiento", "la fecha no puede ser posterior al cierre de la aplicación")]
    return []


def agrupar_por_fecha(movimientos: Iterable[MovimientoDiario]) -> Dict[str, List[MovimientoDiario]]:
    grupos: Dict[str, List[MovimientoDiario]] = OrderedDict()
    for m in movimientos:
        grupos.setdefault(m.fecha_movimiento, []).append(m)
    return grupos


def agrupar_por_lote(movimientos: Iterable[MovimientoDiario]) -> Dict[str, List[MovimientoDiario]]:
    grupos: Dict[str, List[MovimientoDiario]] = OrderedDict()
    for m in movimientos:
        grupos.setdefault(m.lote_id, []).append(m)
    return grupos


def calcular_estadisticas(movimientos: Iterable[MovimientoDiario]) -> Dict[str, Any]:
    movimientos = list(movimientos)
    fechas = sorted({m.fecha_movimiento for m in movimientos})
    if fechas:
        inicio, fin = fechas[0], fechas[-1]
        dias = (date.fromisoformat(fin) - date.fromisoformat(inicio)).days + 1
    else:
        inicio = fin = None
        dias = 0
    return {
        "total_movimientos": len(movimientos),
        "fechas_unicas": len(fechas),
        "lotes_unicos": len({m.lote_id for m in movimientos}),
        "productos_unicos": len({m.producto_id for m in movimientos}),
        "responsables_unicos": len({m.responsable for m in movimientos}),
        "fecha_inicio": inicio,
        "fecha_fin": fin,
        "dias_transcurridos": dias,
        "promedio_movimientos_por_dia": len(movimientos) / dias if dias > 0 else 0.0,
        "total_canecas": fsum(m.numero_canecas or 0.0 for m in movimientos),
    }


# ----------------------
# orquestación
# ----------------------

def _planeados(app: Aplicacion, lote_id: Optional[str] = None) -> List[ProductoEnMezcla]:
    """Totales planeados por producto; con `lote_id`, solo los de ese lote."""
    calculos = app.calculos if lote_id is None else [c for c in app.calculos if c.lote_id == lote_id]
    return calcular_totales_productos(calculos, app.mezclas)


def _estado_actual(
    app: Aplicacion, movimientos: List[MovimientoDiario], lote_id: Optional[str] = None
) -> Dict[str, Any]:
    resumen = calcular_resumen_movimientos(movimientos, _planeados(app, lote_id))
    return {"resumen": resumen, "alertas": generar_alertas(resumen)}


def _construir_movimiento(app: Aplicacion, datos: Dict[str, Any], catalogo) -> MovimientoDiario:
    """Completa nombres/unidad y captura el precio de catálogo vigente."""
    pid = str(datos["producto_id"])
    cat = catalogo.get(pid)
    planeado = next((p for p in _planeados(app) if p.producto_id == pid), None)
    lote = app.configuracion.lote(str(datos["lote_id"]))
    return MovimientoDiario(
        aplicacion_id=app.id,
        fecha_movimiento=str(datos["fecha_movimiento"]),
        lote_id=str(datos["lote_id"]),
        producto_id=pid,
        cantidad_utilizada=float(datos["cantidad_utilizada"]),
        responsable=str(datos["responsable"]).strip(),
        lote_nombre=datos.get("lote_nombre") or (lote.nombre if lote else None),
        producto_nombre=(planeado.producto_nombre if planeado else None) or (cat.nombre if cat else datos.get("producto_nombre")),
        producto_unidad=(planeado.producto_unidad if planeado else None) or (cat.unidad_medida if cat else None),
        notas=datos.get("notas"),
        numero_canecas=float(datos["numero_canecas"]) if datos.get("numero_canecas") is not None else None,
        costo_unitario=cat.precio_unitario if cat else None,
    )


def _validar(app: Aplicacion, datos: Dict[str, Any], hoy: Optional[date]) -> List[ErrorValidacion]:
    errores = validar_datos_movimiento(datos, app.tipo, [l.lote_id for l in app.configuracion.lotes_seleccionados])
    if datos.get("fecha_movimiento"):
        errores.extend(validar_fecha_movimiento(
            datos["fecha_movimiento"], app.fecha_inicio_ejecucion, app.fecha_cierre, hoy
        ))
    return errores


def run_registrar_movimiento(
    aplicacion_id: str,
    datos: Dict[str, Any],
    db_path: str = DB_PATH,
    hoy: Optional[date] = None,
) -> Dict[str, Any]:
    """Registra un movimiento y devuelve resumen + alertas recalculados."""
    log_system_event("registrar_movimiento_start", {"aplicacion_id": aplicacion_id})

    try:
        app = AplicacionRepo(db_path).require(aplicacion_id)
        mov_repo = MovimientoRepo(db_path)

        motivos = validar_operacion(app.estado, "registrar_movimiento")
        if motivos:
            return {"ok": False, "errores": [ErrorValidacion("estado", m) for m in motivos]}

        errores = _validar(app, datos, hoy)
        if errores:
            return {"ok": False, "errores": errores}

        existentes = mov_repo.list_by_aplicacion(app.id)
        aviso = validar_nuevo_movimiento(
            str(datos["producto_id"]), float(datos["cantidad_utilizada"]), existentes, _planeados(app)
        )

        catalogo = ProductoRepo(db_path).map_by_id([str(datos["producto_id"])])
        mov = _construir_movimiento(app, datos, catalogo)
        mov.id = mov_repo.insert(mov)
        log_movimiento("insert", app.id, mov.producto_id, mov.cantidad_utilizada, mov.lote_id,
                       fecha=mov.fecha_movimiento, costo_unitario=mov.costo_unitario)
        log_database_operation("movimiento_diario", "INSERT", 1, aplicacion_id=app.id)

        if not aviso["valido"]:
            print_system(f">> Aviso: {aviso['mensaje']}")

        result = {"ok": True, "errores": [], "movimiento": mov, "aviso": aviso["mensaje"]}
        result.update(_estado_actual(app, existentes + [mov]))
        log_transaction("registrar_movimiento", {"id": app.id, "producto_id": mov.producto_id},
                        result={"movimiento_id": mov.id, "alertas": len(result["alertas"])})
        return result

    except Exception as e:
        error_msg = str(e)
        log_transaction("registrar_movimiento", {"id": aplicacion_id}, error=error_msg)
        log_system_event("registrar_movimiento_error", {"error": error_msg}, level="error")
        raise


def run_eliminar_movimiento(aplicacion_id: str, movimiento_id: int, db_path: str = DB_PATH) -> Dict[str, Any]:
    log_system_event("eliminar_movimiento_start", {"aplicacion_id": aplicacion_id, "movimiento_id": movimiento_id})

    try:
        app = AplicacionRepo(db_path).require(aplicacion_id)
        mov_repo = MovimientoRepo(db_path)

        motivos = validar_operacion(app.estado, "eliminar_movimiento")
        if motivos:
            return {"ok": False, "errores": [ErrorValidacion("estado", m) for m in motivos]}

        mov = mov_repo.get(movimiento_id)
        if mov is None or mov.aplicacion_id != app.id:
            return {"ok": False, "errores": [ErrorValidacion("movimiento", f"movimiento {movimiento_id} no encontrado")]}

        mov_repo.delete(movimiento_id)
        log_movimiento("delete", app.id, mov.producto_id, mov.cantidad_utilizada, mov.lote_id, movimiento_id=movimiento_id)
        log_database_operation("movimiento_diario", "DELETE", 1, movimiento_id=movimiento_id)

        result = {"ok": True, "errores": []}
        result.update(_estado_actual(app, mov_repo.list_by_aplicacion(app.id)))
        log_transaction("eliminar_movimiento", {"id": app.id, "movimiento_id": movimiento_id}, result="success")
        return result

    except Exception as e:
        error_msg = str(e)
        log_transaction("eliminar_movimiento", {"id": aplicacion_id}, error=error_msg)
        log_system_event("eliminar_movimiento_error", {"error": error_msg}, level="error")
        raise


def run_movimientos_lote(
    path: str,
    aplicacion_id: str,
    db_path: str = DB_PATH,
    hoy: Optional[date] = None,
) -> Dict[str, Any]:
    """Importa un XLSX de movimientos. Si alguna fila es inválida no se inserta ninguna."""
    log_system_event("movimientos_lote_start", {"file_path": path, "aplicacion_id": aplicacion_id})
    log_file_operation("import", path)

    try:
        app = AplicacionRepo(db_path).require(aplicacion_id)
        mov_repo = MovimientoRepo(db_path)

        motivos = validar_operacion(app.estado, "registrar_movimiento")
        if motivos:
            return {"ok": False, "errores": [ErrorValidacion("estado", m) for m in motivos], "insertados": 0}

        rows = load_movimientos_from_xlsx(path, app.id)
        log_file_operation("import", path, rows_processed=len(rows))

        errores: List[ErrorValidacion] = []
        for n, row in enumerate(rows, start=2):  # fila 1 = encabezado
            for e in _validar(app, row, hoy):
                errores.append(ErrorValidacion(f"fila {n}", e.mensaje))
        if errores:
            return {"ok": False, "errores": errores, "insertados": 0}

        catalogo = ProductoRepo(db_path).map_by_id(sorted({str(r["producto_id"]) for r in rows}))
        movs = [_construir_movimiento(app, r, catalogo) for r in rows]
        insertados = mov_repo.insert_many(movs)
        for m in movs:
            log_movimiento("import", app.id, m.producto_id, m.cantidad_utilizada, m.lote_id, fecha=m.fecha_movimiento)
        log_database_operation("movimiento_diario", "INSERT_MANY", insertados, file_path=path)

        result = {"ok": True, "errores": [], "insertados": insertados}
        result.update(_estado_actual(app, mov_repo.list_by_aplicacion(app.id)))
        log_transaction("movimientos_lote", {"file": path, "rows_count": len(rows)},
                        result={"insertados": insertados})
        log_system_event("movimientos_lote_success", {"file_path": path, "rows_inserted": insertados})
        return result

    except Exception as e:
        error_msg = str(e)
        log_transaction("movimientos_lote", {"file": path}, error=error_msg)
        log_system_event("movimientos_lote_error", {"file_path": path, "error": error_msg}, level="error")
        raise


def run_resumen_movimientos(
    aplicacion_id: str,
    db_path: str = DB_PATH,
    lote_id: Optional[str] = None,
) -> Dict[str, Any]:
    """Resumen, alertas y estadísticas; de solo lectura, válido en cualquier estado.

    Con `lote_id` el consumo de ese lote se compara contra lo planeado para él.
    """
    app = AplicacionRepo(db_path).require(aplicacion_id)
    movimientos = MovimientoRepo(db_path).list_by_aplicacion(app.id, lote_id)
    result = {"aplicacion": app, "movimientos": movimientos, "estadisticas": calcular_estadisticas(movimientos)}
    result.update(_estado_actual(app, movimientos, lote_id))
    return result

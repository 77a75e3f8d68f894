# aplicaciones/usecases/cierre.py
"""
UC: Cierre de una aplicación (conciliación planeado vs. real, costos y
decisión de aprobación).

Pasos del cálculo:
1) Comparación por producto (planeado ∪ movido). El costo unitario de cada
   producto es el primer `costo_unitario` no nulo visto en los movimientos,
   en orden de registro; los siguientes no lo reemplazan.
2) Desviación máxima = max(|desviación|). Si supera 20 % el cierre queda
   `Pendiente de Aprobación`.
3) Por lote: los jornales se reparten según la proporción de árboles del lote,
   redondeando cada actividad por separado (la suma repartida puede no
   coincidir con el total). Costos de insumos, mano de obra, costo por árbol y
   eficiencias.
4) Desviación por dimensión (canecas, litros, kilos) por lote; indefinida sin
   planeado o sin dato real.

Los indicadores sin dato quedan en None (no 0) para distinguir "sin datos" de
"cero confirmado".
"""

from __future__ import annotations

from datetime import date
from math import fsum
from typing import Any, Dict, Iterable, List, Optional

from aplicaciones.config import DB_PATH, DEFAULTS
from aplicaciones.domain.estados import (
    ContextoTransicion,
    destino_cierre,
    validar_operacion,
    validar_transicion,
)
from aplicaciones.domain.formulas import (
    calcular_totales_productos,
    ceil2,
    desviacion_porcentual,
    redondear_entero,
)
from aplicaciones.domain.models import (
    Aplicacion,
    CierreAplicacion,
    ComparacionProducto,
    DetalleCierreLote,
    ErrorValidacion,
    EstadoAplicacion,
    JornalesPorActividad,
    MovimientoDiario,
    ProductoEnMezcla,
)
from aplicaciones.domain.policies import requiere_aprobacion
from aplicaciones.infra.db import connect
from aplicaciones.infra.repositories import AplicacionRepo, CierreRepo, MovimientoRepo, ParamsRepo
from aplicaciones.infra.logger import (
    log_transaction, log_cierre, log_database_operation, log_system_event
)

OBSERVACIONES = (
    "observaciones_generales",
    "condiciones_meteorologicas",
    "problemas_encontrados",
    "ajustes_realizados",
)


def _en_orden(movimientos: Iterable[MovimientoDiario]) -> List[MovimientoDiario]:
    return sorted(movimientos, key=lambda m: (m.fecha_movimiento, m.id or 0))


def resolver_costos_unitarios(movimientos: Iterable[MovimientoDiario]) -> Dict[str, float]:
    """Primer costo no nulo por producto, en el orden recibido."""
    costos: Dict[str, float] = {}
    for m in movimientos:
        if m.costo_unitario and m.producto_id not in costos:
            costos[m.producto_id] = float(m.costo_unitario)
    return costos


def comparar_productos(
    planeados: Iterable[ProductoEnMezcla],
    movimientos: Iterable[MovimientoDiario],
    costos: Dict[str, float],
) -> List[ComparacionProducto]:
    filas: Dict[str, Dict[str, Any]] = {}
    for p in planeados:
        filas.setdefault(p.producto_id, {
            "nombre": p.producto_nombre,
            "unidad": p.producto_unidad,
            "planeado": float(p.cantidad_total_necesaria),
            "reales": [],
        })
    for m in movimientos:
        fila = filas.setdefault(m.producto_id, {
            "nombre": m.producto_nombre or m.producto_id,
            "unidad": m.producto_unidad or "",
            "planeado": 0.0,
            "reales": [],
        })
        fila["reales"].append(float(m.cantidad_utilizada))

    out: List[ComparacionProducto] = []
    for pid, f in filas.items():
        real = fsum(f["reales"])
        costo = costos.get(pid, 0.0)
        out.append(ComparacionProducto(
            producto_id=pid,
            producto_nombre=f["nombre"],
            producto_unidad=f["unidad"],
            cantidad_planeada=f["planeado"],
            cantidad_real=real,
            diferencia=real - f["planeado"],
            porcentaje_desviacion=desviacion_porcentual(real, f["planeado"]) or 0.0,
            costo_unitario=costo,
            costo_total=real * costo,
        ))
    return out


def repartir_jornales(jornales: JornalesPorActividad, arboles_lote: int, arboles_totales: int) -> JornalesPorActividad:
    """Jornales por actividad del lote, cada uno redondeado por separado."""
    if arboles_totales <= 0:
        return JornalesPorActividad()

    def parte(x: float) -> int:
        return redondear_entero(x * arboles_lote / arboles_totales)

    return JornalesPorActividad(
        aplicacion=parte(jornales.aplicacion),
        mezcla=parte(jornales.mezcla),
        transporte=parte(jornales.transporte),
        otros=parte(jornales.otros),
    )


def _suma_opcional(valores: Iterable[Optional[float]]) -> Optional[float]:
    valores = [v for v in valores if v is not None]
    return ceil2(fsum(valores)) if valores else None


def _positivo(x: float) -> Optional[float]:
    return x if x > 0 else None


def calcular_detalles_lotes(
    aplicacion: Aplicacion,
    movimientos: Iterable[MovimientoDiario],
    jornales: JornalesPorActividad,
    valor_jornal: float,
    costos: Dict[str, float],
) -> List[DetalleCierreLote]:
    movimientos = list(movimientos)
    lotes = aplicacion.configuracion.lotes_seleccionados
    arboles_totales = sum(int(l.conteo_arboles.total or 0) for l in lotes)
    total_jornales = jornales.total

    detalles: List[DetalleCierreLote] = []
    for lote in lotes:
        arboles = int(lote.conteo_arboles.total or 0)
        calcs = [c for c in aplicacion.calculos if c.lote_id == lote.lote_id]
        movs = [m for m in movimientos if m.lote_id == lote.lote_id]

        litros_reales = _positivo(fsum(
            m.cantidad_utilizada for m in movs if (m.producto_unidad or "").lower() == "litros"
        ))
        kilos_reales = _positivo(fsum(
            m.cantidad_utilizada for m in movs if (m.producto_unidad or "").lower() == "kilos"
        ))
        canecas_reales = _positivo(fsum(m.numero_canecas or 0.0 for m in movs))

        canecas_planeadas = _suma_opcional(c.numero_canecas for c in calcs)
        litros_planeados = _suma_opcional(c.litros_mezcla for c in calcs)
        kilos_planeados = _suma_opcional(c.kilos_totales for c in calcs)

        jornales_lote = redondear_entero(total_jornales * arboles / arboles_totales) if arboles_totales > 0 else 0
        costo_mano_obra = jornales_lote * valor_jornal
        costo_insumos = fsum(m.cantidad_utilizada * costos.get(m.producto_id, 0.0) for m in movs)
        costo_total = costo_insumos + costo_mano_obra

        detalles.append(DetalleCierreLote(
            lote_id=lote.lote_id,
            lote_nombre=lote.nombre,
            total_arboles=arboles,
            jornales=repartir_jornales(jornales, arboles, arboles_totales),
            jornales_lote=jornales_lote,
            costo_insumos=costo_insumos,
            costo_mano_obra=costo_mano_obra,
            costo_total=costo_total,
            costo_por_arbol=costo_total / arboles if arboles > 0 else 0.0,
            canecas_planeadas=canecas_planeadas,
            litros_planeados=litros_planeados,
            kilos_planeados=kilos_planeados,
            canecas_reales=canecas_reales,
            litros_reales=litros_reales,
            kilos_reales=kilos_reales,
            desviacion_canecas=desviacion_porcentual(canecas_reales, canecas_planeadas) if canecas_reales else None,
            desviacion_litros=desviacion_porcentual(litros_reales, litros_planeados) if litros_reales else None,
            desviacion_kilos=desviacion_porcentual(kilos_reales, kilos_planeados) if kilos_reales else None,
            arboles_por_jornal=arboles / jornales_lote if jornales_lote > 0 else None,
            litros_por_arbol=litros_reales / arboles if litros_reales and arboles > 0 else None,
            kilos_por_arbol=kilos_reales / arboles if kilos_reales and arboles > 0 else None,
        ))
    return detalles


def calcular_cierre(
    aplicacion: Aplicacion,
    movimientos: Iterable[MovimientoDiario],
    jornales: JornalesPorActividad,
    valor_jornal: float,
    fecha_final: str,
    observaciones: Optional[Dict[str, Optional[str]]] = None,
) -> CierreAplicacion:
    """Conciliación completa; pura y determinista para las mismas entradas."""
    movs = _en_orden(movimientos)
    costos = resolver_costos_unitarios(movs)
    planeados = calcular_totales_productos(aplicacion.calculos, aplicacion.mezclas)

    comparacion = comparar_productos(planeados, movs, costos)
    desviacion_maxima = max((abs(c.porcentaje_desviacion) for c in comparacion), default=0.0)
    detalles = calcular_detalles_lotes(aplicacion, movs, jornales, valor_jornal, costos)

    costo_insumos = fsum(c.costo_total for c in comparacion)
    costo_mano_obra = jornales.total * valor_jornal
    costo_total = costo_insumos + costo_mano_obra
    arboles = sum(d.total_arboles for d in detalles)

    inicio = aplicacion.fecha_inicio_ejecucion
    dias = (date.fromisoformat(fecha_final) - date.fromisoformat(inicio)).days + 1 if inicio else 1

    obs = observaciones or {}
    return CierreAplicacion(
        aplicacion_id=aplicacion.id,
        fecha_inicio=inicio,
        fecha_final=fecha_final,
        dias_aplicacion=dias,
        valor_jornal=valor_jornal,
        jornales_totales=jornales,
        detalles_lotes=detalles,
        comparacion_productos=comparacion,
        costo_insumos_total=costo_insumos,
        costo_mano_obra_total=costo_mano_obra,
        costo_total=costo_total,
        costo_promedio_por_arbol=costo_total / arboles if arboles > 0 else 0.0,
        total_arboles_tratados=arboles,
        total_jornales=jornales.total,
        arboles_por_jornal=arboles / jornales.total if jornales.total > 0 else 0.0,
        requiere_aprobacion=requiere_aprobacion(desviacion_maxima),
        desviacion_maxima=desviacion_maxima,
        **{k: obs.get(k) for k in OBSERVACIONES},
    )


# ----------------------
# orquestación
# ----------------------

def run_cierre(
    aplicacion_id: str,
    jornales: JornalesPorActividad,
    fecha_final: str,
    valor_jornal: Optional[float] = None,
    observaciones: Optional[Dict[str, Optional[str]]] = None,
    db_path: str = DB_PATH,
) -> Dict[str, Any]:
    """Calcula y registra el cierre; pasa a `Cerrada` o `Pendiente de Aprobación`."""
    log_system_event("cierre_start", {"aplicacion_id": aplicacion_id})

    try:
        repo = AplicacionRepo(db_path)
        app = repo.require(aplicacion_id)
        base = {"ok": False, "cierre": None, "estado": app.estado}

        motivos = validar_operacion(app.estado, "cerrar")
        if motivos:
            return {**base, "errores": [ErrorValidacion("estado", m) for m in motivos]}

        if valor_jornal is None:
            valor_jornal = ParamsRepo(db_path).get_float("valor_jornal", DEFAULTS.valor_jornal)
        errores: List[ErrorValidacion] = []
        if valor_jornal <= 0:
            errores.append(ErrorValidacion("cierre", "el valor del jornal debe ser mayor a 0"))
        try:
            final = date.fromisoformat(fecha_final)
        except ValueError:
            final = None
            errores.append(ErrorValidacion("cierre", f"fecha final inválida: {fecha_final!r}"))
        if final and app.fecha_inicio_ejecucion and final < date.fromisoformat(app.fecha_inicio_ejecucion):
            errores.append(ErrorValidacion("cierre", "la fecha final no puede ser anterior al inicio"))
        if errores:
            return {**base, "errores": errores}

        movimientos = MovimientoRepo(db_path).list_by_aplicacion(app.id)
        cierre = calcular_cierre(app, movimientos, jornales, valor_jornal, fecha_final, observaciones)

        destino = destino_cierre(cierre.requiere_aprobacion)
        ctx = ContextoTransicion(
            num_movimientos=len(movimientos),
            total_jornales=jornales.total,
            requiere_aprobacion=cierre.requiere_aprobacion,
        )
        motivos = validar_transicion(app.estado, destino, ctx)
        if motivos:
            return {**base, "errores": [ErrorValidacion("cierre", m) for m in motivos]}

        app.cierre = cierre
        app.estado = destino
        app.fecha_cierre = fecha_final
        # cierre y estado en una sola transacción
        with connect(db_path) as c:
            CierreRepo(db_path).save(cierre, conn=c)
            repo.save(app, conn=c)
        log_database_operation("cierre_aplicacion", "UPSERT", 1, aplicacion_id=app.id)
        log_cierre("registrado", app.id, estado=destino.value,
                   desviacion_maxima=cierre.desviacion_maxima, costo_total=cierre.costo_total)

        log_transaction("cierre", {"id": app.id}, result={"estado": destino.value})
        return {"ok": True, "errores": [], "cierre": cierre, "estado": destino}

    except Exception as e:
        error_msg = str(e)
        log_transaction("cierre", {"id": aplicacion_id}, error=error_msg)
        log_system_event("cierre_error", {"error": error_msg}, level="error")
        raise


def run_aprobar_cierre(
    aplicacion_id: str,
    aprobado_por: Optional[str],
    fecha_aprobacion: Optional[str] = None,
    db_path: str = DB_PATH,
) -> Dict[str, Any]:
    """Aprobación de gerencia: `Pendiente de Aprobación` → `Cerrada`."""
    log_system_event("aprobar_cierre_start", {"aplicacion_id": aplicacion_id})

    try:
        repo = AplicacionRepo(db_path)
        app = repo.require(aplicacion_id)

        motivos = validar_operacion(app.estado, "aprobar_cierre")
        if not motivos:
            ctx = ContextoTransicion(aprobado_por=(aprobado_por or "").strip() or None)
            motivos = validar_transicion(app.estado, EstadoAplicacion.CERRADA, ctx)
        if motivos:
            return {"ok": False, "errores": [ErrorValidacion("aprobación", m) for m in motivos], "cierre": app.cierre}

        cierre = app.cierre
        if cierre is None:
            raise LookupError(f"aplicación {aplicacion_id} sin registro de cierre")
        cierre.aprobado_por = aprobado_por.strip()
        cierre.fecha_aprobacion = fecha_aprobacion or date.today().isoformat()

        app.estado = EstadoAplicacion.CERRADA
        with connect(db_path) as c:
            CierreRepo(db_path).save(cierre, conn=c)
            repo.save(app, conn=c)
        log_cierre("aprobado", app.id, aprobado_por=cierre.aprobado_por, fecha=cierre.fecha_aprobacion)
        log_database_operation("cierre_aplicacion", "UPDATE", 1, aplicacion_id=app.id)

        log_transaction("aprobar_cierre", {"id": app.id}, result={"estado": app.estado.value})
        return {"ok": True, "errores": [], "cierre": cierre}

    except Exception as e:
        error_msg = str(e)
        log_transaction("aprobar_cierre", {"id": aplicacion_id}, error=error_msg)
        log_system_event("aprobar_cierre_error", {"error": error_msg}, level="error")
        raise

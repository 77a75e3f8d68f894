# aplicaciones/usecases/reportes.py
"""
Reportes de aplicaciones:
- datos del reporte de cierre (objeto plano para el renderizador)
- consumo real por lote y producto (desde la view)
- listado de aplicaciones por estado
"""

from __future__ import annotations

from dataclasses import asdict
from typing import Any, Dict, List, Optional, Tuple

from aplicaciones.config import DB_PATH
from aplicaciones.domain.models import Aplicacion
from aplicaciones.infra.migrations import apply_migrations
from aplicaciones.infra.views import create_views
from aplicaciones.infra.repositories import AplicacionRepo, MovimientoRepo
from aplicaciones.infra.logger import log_system_event, log_database_operation, system_logger


def datos_reporte_cierre(aplicacion: Aplicacion) -> Dict[str, Any]:
    """Aplana el cierre en un dict listo para un generador de documentos.

    Los montos se entregan como números; el formato de moneda es asunto de
    la presentación.
    """
    cierre = aplicacion.cierre
    if cierre is None:
        raise ValueError(f"la aplicación {aplicacion.id} no tiene cierre")
    config = aplicacion.configuracion
    j = cierre.jornales_totales

    return {
        "aplicacion_id": aplicacion.id,
        "nombre": config.nombre,
        "tipo_aplicacion": aplicacion.tipo.value,
        "estado": aplicacion.estado.value,
        "proposito": config.proposito,
        "agronomo_responsable": config.agronomo_responsable,
        "blanco_biologico": list(config.blanco_biologico),
        "fecha_inicio": cierre.fecha_inicio,
        "fecha_final": cierre.fecha_final,
        "dias_aplicacion": cierre.dias_aplicacion,
        "valor_jornal": cierre.valor_jornal,
        "jornales_aplicacion": j.aplicacion,
        "jornales_mezcla": j.mezcla,
        "jornales_transporte": j.transporte,
        "jornales_otros": j.otros,
        "total_jornales": cierre.total_jornales,
        "costo_insumos_total": cierre.costo_insumos_total,
        "costo_mano_obra_total": cierre.costo_mano_obra_total,
        "costo_total": cierre.costo_total,
        "costo_promedio_por_arbol": cierre.costo_promedio_por_arbol,
        "total_arboles_tratados": cierre.total_arboles_tratados,
        "arboles_por_jornal": cierre.arboles_por_jornal,
        "desviacion_maxima": cierre.desviacion_maxima,
        "requiere_aprobacion": cierre.requiere_aprobacion,
        "aprobado_por": cierre.aprobado_por,
        "fecha_aprobacion": cierre.fecha_aprobacion,
        "observaciones_generales": cierre.observaciones_generales,
        "condiciones_meteorologicas": cierre.condiciones_meteorologicas,
        "problemas_encontrados": cierre.problemas_encontrados,
        "ajustes_realizados": cierre.ajustes_realizados,
        "productos": [asdict(c) for c in cierre.comparacion_productos],
        "lotes": [_lote_plano(d) for d in cierre.detalles_lotes],
    }


def _lote_plano(detalle) -> Dict[str, Any]:
    d = asdict(detalle)
    jornales = d.pop("jornales")
    for k, v in jornales.items():
        d[f"jornales_{k}"] = v
    return d


def relatorio_consumo(aplicacion_id: str, db_path: str = DB_PATH) -> Tuple[List[str], List[List], Optional[str]]:
    """Columnas, filas y mensaje con el consumo real por lote y producto."""
    log_system_event("relatorio_consumo_start", {"aplicacion_id": aplicacion_id})
    system_logger.info(f"REPORT_CONSUMO: aplicacion={aplicacion_id}")

    apply_migrations(db_path)
    create_views(db_path)
    rows = MovimientoRepo(db_path).consumo_por_lote_producto(aplicacion_id)
    log_database_operation("vw_consumo_lote_producto", "SELECT", len(rows), aplicacion_id=aplicacion_id)

    columns = ["Lote", "Producto", "Unidad", "Cantidad", "Canecas", "Movimientos", "Primera fecha", "Última fecha"]
    data = [
        [
            r["lote_nombre"] or r["lote_id"],
            r["producto_nombre"] or r["producto_id"],
            r["producto_unidad"] or "",
            round(float(r["cantidad_total"]), 2),
            round(float(r["canecas_total"]), 2),
            int(r["num_movimientos"]),
            r["primera_fecha"],
            r["ultima_fecha"],
        ]
        for r in rows
    ]
    msg = None if data else "Sin movimientos registrados."
    return columns, data, msg


def relatorio_aplicaciones(db_path: str = DB_PATH) -> Tuple[List[str], List[List], Optional[str]]:
    apply_migrations(db_path)
    create_views(db_path)
    rows = AplicacionRepo(db_path).list_resumen()
    columns = ["ID", "Nombre", "Tipo", "Estado", "Inicio", "Cierre", "Movimientos"]
    data = [
        [r["id"], r["nombre"], r["tipo_aplicacion"], r["estado"],
         r["fecha_inicio_ejecucion"] or "", r["fecha_cierre"] or "", int(r["num_movimientos"])]
        for r in rows
    ]
    msg = None if data else "No hay aplicaciones registradas."
    return columns, data, msg

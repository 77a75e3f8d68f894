"""
Máquina de estados de una aplicación.

    Calculada ──► En ejecución ──► Cerrada
                        │             ▲
                        └─► Pendiente de Aprobación

Las transiciones válidas y sus guardas viven en una única tabla
(`TRANSICIONES`). Cualquier par (origen, destino) fuera de la tabla se
rechaza. Las operaciones permitidas por estado viven en `OPERACIONES`.

Ambas consultas devuelven listas de mensajes (vacía = permitido) en lugar de
lanzar excepciones; quien llama decide cómo informarlas.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import date
from typing import Callable, Dict, List, Optional, Tuple

from aplicaciones.domain.models import EstadoAplicacion


@dataclass
class ContextoTransicion:
    """Hechos que las guardas necesitan conocer."""
    fecha_inicio: Optional[date] = None
    hoy: Optional[date] = None
    num_movimientos: int = 0
    total_jornales: float = 0.0
    requiere_aprobacion: bool = False
    aprobado_por: Optional[str] = None


Guarda = Callable[[ContextoTransicion], Optional[str]]


def _fecha_inicio_valida(ctx: ContextoTransicion) -> Optional[str]:
    if ctx.fecha_inicio is None:
        return "debe seleccionar una fecha de inicio"
    hoy = ctx.hoy or date.today()
    if ctx.fecha_inicio > hoy:
        return "la fecha de inicio no puede ser futura"
    return None


def _hay_movimientos(ctx: ContextoTransicion) -> Optional[str]:
    if ctx.num_movimientos < 1:
        return "no hay movimientos diarios registrados"
    return None


def _hay_jornales(ctx: ContextoTransicion) -> Optional[str]:
    if not ctx.total_jornales or ctx.total_jornales <= 0:
        return "debe registrar al menos un jornal"
    return None


def _sin_aprobacion(ctx: ContextoTransicion) -> Optional[str]:
    if ctx.requiere_aprobacion:
        return "la desviación requiere aprobación de gerencia"
    return None


def _con_aprobacion(ctx: ContextoTransicion) -> Optional[str]:
    if not ctx.requiere_aprobacion:
        return "la desviación no requiere aprobación"
    return None


def _aprobador(ctx: ContextoTransicion) -> Optional[str]:
    if not ctx.aprobado_por:
        return "falta quien aprueba"
    return None


E = EstadoAplicacion

TRANSICIONES: Dict[Tuple[EstadoAplicacion, EstadoAplicacion], List[Guarda]] = {
    (E.CALCULADA, E.EN_EJECUCION): [_fecha_inicio_valida],
    (E.EN_EJECUCION, E.CERRADA): [_hay_movimientos, _hay_jornales, _sin_aprobacion],
    (E.EN_EJECUCION, E.PENDIENTE_APROBACION): [_hay_movimientos, _hay_jornales, _con_aprobacion],
    (E.PENDIENTE_APROBACION, E.CERRADA): [_aprobador],
}

OPERACIONES: Dict[str, Tuple[EstadoAplicacion, ...]] = {
    "editar_configuracion": (E.CALCULADA,),
    "editar_mezclas": (E.CALCULADA,),
    "generar_lista_compras": (E.CALCULADA,),
    "iniciar_ejecucion": (E.CALCULADA,),
    "registrar_movimiento": (E.EN_EJECUCION,),
    "eliminar_movimiento": (E.EN_EJECUCION,),
    "cerrar": (E.EN_EJECUCION,),
    "aprobar_cierre": (E.PENDIENTE_APROBACION,),
}


def validar_transicion(
    origen: EstadoAplicacion,
    destino: EstadoAplicacion,
    ctx: ContextoTransicion,
) -> List[str]:
    """Devuelve los motivos de rechazo; lista vacía si la transición es válida."""
    guardas = TRANSICIONES.get((origen, destino))
    if guardas is None:
        return [f"transición no permitida: {origen.value} → {destino.value}"]
    motivos = []
    for g in guardas:
        m = g(ctx)
        if m:
            motivos.append(m)
    return motivos


def destino_cierre(requiere_aprobacion: bool) -> EstadoAplicacion:
    """Estado al que lleva un cierre exitoso."""
    return E.PENDIENTE_APROBACION if requiere_aprobacion else E.CERRADA


def validar_operacion(estado: EstadoAplicacion, operacion: str) -> List[str]:
    permitidos = OPERACIONES.get(operacion)
    if permitidos is None:
        return [f"operación desconocida: {operacion}"]
    if estado not in permitidos:
        aceptados = ", ".join(e.value for e in permitidos)
        return [f"'{operacion}' solo se permite en estado {aceptados} (actual: {estado.value})"]
    return []

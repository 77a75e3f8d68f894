"""
Políticas de validación y clasificación del motor de aplicaciones.

Este módulo reúne las reglas de negocio que no son fórmulas: qué configuración
es válida antes de calcular, cómo se etiqueta un ítem de la lista de compras,
qué alerta merece el consumo de un producto y cuándo un cierre necesita
aprobación de gerencia.

Las validaciones nunca lanzan excepciones: devuelven listas de
`ErrorValidacion` para que la capa de casos de uso las presente.
"""

from __future__ import annotations

from typing import Iterable, List, Optional

from aplicaciones.config import DEFAULTS, TAMANOS_CANECA
from aplicaciones.domain.models import (
    ConfiguracionAplicacion,
    DosisFertilizacion,
    DosisFumigacion,
    ErrorValidacion,
    LoteSeleccionado,
    Mezcla,
    ProductoEnMezcla,
    TipoAplicacion,
)


# -------------------------
# Validación de configuración
# -------------------------

def validar_lote(tipo: TipoAplicacion, lote: LoteSeleccionado) -> List[ErrorValidacion]:
    """Valida censo y, para tipos por caneca, calibración y tamaño de caneca."""
    errores: List[ErrorValidacion] = []
    entidad = f"lote {lote.nombre}"
    conteo = lote.conteo_arboles
    if conteo.total != conteo.suma_clases():
        errores.append(ErrorValidacion(
            entidad,
            f"el total de árboles ({conteo.total}) no coincide con la suma por tamaño ({conteo.suma_clases()})",
        ))
    if tipo.usa_canecas:
        if not lote.calibracion_litros_arbol or lote.calibracion_litros_arbol <= 0:
            errores.append(ErrorValidacion(entidad, "necesita calibración (L/árbol)"))
        if not lote.tamano_caneca:
            errores.append(ErrorValidacion(entidad, "necesita tamaño de caneca"))
        elif lote.tamano_caneca not in TAMANOS_CANECA:
            errores.append(ErrorValidacion(
                entidad,
                f"tamaño de caneca {lote.tamano_caneca} no admitido {TAMANOS_CANECA}",
            ))
    return errores


def validar_producto(tipo: TipoAplicacion, producto: ProductoEnMezcla) -> List[ErrorValidacion]:
    entidad = f"producto {producto.producto_nombre}"
    if tipo.usa_canecas:
        if not isinstance(producto.dosis, DosisFumigacion):
            return [ErrorValidacion(entidad, "necesita dosis por caneca")]
        if producto.dosis.dosis_por_caneca <= 0:
            return [ErrorValidacion(entidad, "necesita dosis por caneca")]
        return []
    if not isinstance(producto.dosis, DosisFertilizacion):
        return [ErrorValidacion(entidad, "necesita dosis por tipo de árbol")]
    if not producto.dosis.tiene_alguna():
        return [ErrorValidacion(entidad, "necesita al menos una dosis por tipo de árbol")]
    return []


def validar_configuracion(
    config: ConfiguracionAplicacion,
    mezclas: Iterable[Mezcla],
) -> List[ErrorValidacion]:
    """Valida la configuración completa antes de cualquier cálculo.

    Reglas:
        - al menos un lote seleccionado y cada lote válido;
        - al menos una mezcla;
        - cada mezcla con productos y con lotes asignados;
        - cada lote asignado debe existir en la configuración;
        - cada producto con la dosis del tipo correcto.
    """
    mezclas = list(mezclas)
    tipo = config.tipo_aplicacion
    errores: List[ErrorValidacion] = []

    if not config.lotes_seleccionados:
        errores.append(ErrorValidacion("configuración", "no hay lotes seleccionados"))
    for lote in config.lotes_seleccionados:
        errores.extend(validar_lote(tipo, lote))

    if not mezclas:
        errores.append(ErrorValidacion("configuración", "no hay mezclas definidas"))

    for m in mezclas:
        entidad = f"mezcla {m.nombre}"
        if not m.productos:
            errores.append(ErrorValidacion(entidad, "no tiene productos"))
        if not m.lotes_asignados:
            errores.append(ErrorValidacion(entidad, "no tiene lotes asignados"))
        for lote_id in m.lotes_asignados:
            if config.lote(lote_id) is None:
                errores.append(ErrorValidacion(entidad, f"lote asignado {lote_id} no está en la configuración"))
        for p in m.productos:
            errores.extend(validar_producto(tipo, p))

    return errores


# -------------------------
# Clasificaciones
# -------------------------

def clasificar_item_compra(precio_unitario: Optional[float], inventario_actual: float, faltante: float) -> str:
    """Etiqueta de un ítem de compra.

    - ``'sin_precio'`` si el precio es cero o no existe;
    - ``'sin_stock'`` si no hay inventario y falta producto;
    - ``'normal'`` en otro caso.
    """
    if not precio_unitario:
        return "sin_precio"
    if inventario_actual == 0 and faltante > 0:
        return "sin_stock"
    return "normal"


def clasificar_consumo(porcentaje_usado: float, excede_planeado: bool) -> Optional[str]:
    """Tipo de alerta para el consumo de un producto (la primera regla gana).

    - excedido                    → ``'error'``
    - ``porcentaje >= 90``        → ``'warning'``
    - ``75 <= porcentaje < 90``   → ``'info'``
    - resto                       → ``None``
    """
    if excede_planeado:
        return "error"
    if porcentaje_usado >= DEFAULTS.alerta_advertencia:
        return "warning"
    if porcentaje_usado >= DEFAULTS.alerta_info:
        return "info"
    return None


def requiere_aprobacion(desviacion_maxima: float) -> bool:
    """Un cierre requiere aprobación si la desviación supera el umbral (estricto)."""
    return desviacion_maxima > DEFAULTS.umbral_aprobacion

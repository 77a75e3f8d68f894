"""
Fórmulas de dosificación para aplicaciones de agroinsumos.

Estas funciones convierten el censo de árboles de un lote y las reglas de
dosis de una mezcla en volúmenes/masas de mezcla y cantidades por producto.
Hay dos algoritmos, elegidos por el tipo de aplicación:

- Fumigación / drench (por caneca):
      litros_mezcla = árboles × calibración (L/árbol)
      canecas       = litros_mezcla / tamaño_caneca
      producto      = (canecas × dosis_por_caneca) / 1000

  La dosis se expresa en unidad fina (cc o gramos) por caneca; dividir por
  1000 la lleva a la unidad de inventario (litros o kilos).

- Fertilización (por árbol):
      producto = Σ (árboles de la clase × dosis de la clase)

Todo redondeo es hacia arriba a 2 decimales: quedarse corto en campo es el
error más caro.

Las funciones son puras: dependen solo de sus argumentos y no modifican
estado externo (salvo `calcular_totales_productos`, que refresca el campo
derivado `cantidad_total_necesaria` de las mezclas recibidas).
"""

from __future__ import annotations

from decimal import ROUND_CEILING, ROUND_HALF_UP, Decimal
from math import ceil
from typing import Dict, Iterable, List, Optional

from aplicaciones.config import DEFAULTS
from aplicaciones.domain.models import (
    CalculoLote,
    DosisFertilizacion,
    DosisFumigacion,
    LoteSeleccionado,
    Mezcla,
    ProductoCalculado,
    ProductoEnMezcla,
    TipoAplicacion,
)

_CENTESIMA = Decimal("0.01")


def ceil2(x: float) -> float:
    """Redondea ``x`` hacia arriba a 2 decimales.

    El valor se normaliza a 9 decimales antes del techo para absorber el ruido
    binario de los flotantes (``5.000000000001`` no debe convertirse en 5.01).
    """
    d = Decimal(repr(round(float(x), 9)))
    return float(d.quantize(_CENTESIMA, rounding=ROUND_CEILING))


def redondear_entero(x: float) -> int:
    """Redondeo al entero más cercano, mitades hacia arriba (no bancario)."""
    return int(Decimal(repr(float(x))).quantize(Decimal("1"), rounding=ROUND_HALF_UP))


def desviacion_porcentual(real: float, planeado: Optional[float]) -> Optional[float]:
    """(real − planeado) / planeado × 100; ``None`` si no hay planeado."""
    if not planeado:
        return None
    return round((float(real) - float(planeado)) * 100.0 / float(planeado), 9)


def calcular_fumigacion(lote: LoteSeleccionado, mezcla: Mezcla) -> CalculoLote:
    """Cálculo por caneca para fumigación y drench.

    El lote debe venir validado (calibración y tamaño de caneca presentes).
    """
    total_arboles = int(lote.conteo_arboles.total or 0)
    calibracion = float(lote.calibracion_litros_arbol)
    tamano_caneca = float(lote.tamano_caneca)

    litros_mezcla = total_arboles * calibracion
    numero_canecas = litros_mezcla / tamano_caneca

    productos: List[ProductoCalculado] = []
    for p in mezcla.productos:
        dosis = p.dosis if isinstance(p.dosis, DosisFumigacion) else DosisFumigacion()
        cantidad = (numero_canecas * dosis.dosis_por_caneca) / 1000.0
        productos.append(ProductoCalculado(p.producto_id, ceil2(cantidad)))

    return CalculoLote(
        mezcla_id=mezcla.id,
        lote_id=lote.lote_id,
        lote_nombre=lote.nombre,
        total_arboles=total_arboles,
        litros_mezcla=ceil2(litros_mezcla),
        numero_canecas=ceil2(numero_canecas),
        productos=productos,
    )


def calcular_fertilizacion(
    lote: LoteSeleccionado,
    mezcla: Mezcla,
    tamanos_presentacion: Optional[Dict[str, float]] = None,
) -> CalculoLote:
    """Cálculo por árbol para fertilización.

    ``tamanos_presentacion`` mapea producto_id → kilos por bulto. Los productos
    sin tamaño conocido se agrupan en bultos de referencia de 25 kg.
    """
    conteo = lote.conteo_arboles
    tamanos = tamanos_presentacion or {}

    kilos_grandes = kilos_medianos = kilos_pequenos = kilos_clonales = 0.0
    productos: List[ProductoCalculado] = []
    for p in mezcla.productos:
        dosis = p.dosis if isinstance(p.dosis, DosisFertilizacion) else DosisFertilizacion()
        kg_g = conteo.grandes * dosis.grandes
        kg_m = conteo.medianos * dosis.medianos
        kg_p = conteo.pequenos * dosis.pequenos
        kg_c = conteo.clonales * dosis.clonales
        kilos_grandes += kg_g
        kilos_medianos += kg_m
        kilos_pequenos += kg_p
        kilos_clonales += kg_c
        productos.append(ProductoCalculado(p.producto_id, ceil2(kg_g + kg_m + kg_p + kg_c)))

    kilos_totales = sum(p.cantidad_necesaria for p in productos)

    bultos = 0
    kilos_sin_presentacion = 0.0
    for p in productos:
        tam = tamanos.get(p.producto_id)
        if tam and tam > 0:
            bultos += ceil(p.cantidad_necesaria / tam)
        else:
            kilos_sin_presentacion += p.cantidad_necesaria
    bultos += ceil(ceil2(kilos_sin_presentacion) / DEFAULTS.tamano_bulto_kg)

    return CalculoLote(
        mezcla_id=mezcla.id,
        lote_id=lote.lote_id,
        lote_nombre=lote.nombre,
        total_arboles=int(conteo.total or 0),
        kilos_totales=ceil2(kilos_totales),
        numero_bultos=bultos,
        kilos_grandes=ceil2(kilos_grandes),
        kilos_medianos=ceil2(kilos_medianos),
        kilos_pequenos=ceil2(kilos_pequenos),
        kilos_clonales=ceil2(kilos_clonales),
        productos=productos,
    )


def calcular_lote(
    tipo: TipoAplicacion,
    lote: LoteSeleccionado,
    mezcla: Mezcla,
    tamanos_presentacion: Optional[Dict[str, float]] = None,
) -> CalculoLote:
    """Elige el algoritmo según el tipo de aplicación."""
    if tipo.usa_canecas:
        return calcular_fumigacion(lote, mezcla)
    return calcular_fertilizacion(lote, mezcla, tamanos_presentacion)


def calcular_totales_productos(
    calculos: Iterable[CalculoLote],
    mezclas: Iterable[Mezcla],
) -> List[ProductoEnMezcla]:
    """Suma las cantidades necesarias de cada producto en todos los lotes.

    Devuelve un `ProductoEnMezcla` por producto (primera aparición en orden de
    mezcla) con el total de la aplicación. De paso refresca el
    `cantidad_total_necesaria` de cada producto dentro de su propia mezcla.
    """
    calculos = list(calculos)
    mezclas = list(mezclas)

    por_mezcla: Dict[tuple, float] = {}
    por_producto: Dict[str, float] = {}
    for c in calculos:
        for item in c.productos:
            k = (c.mezcla_id, item.producto_id)
            por_mezcla[k] = por_mezcla.get(k, 0.0) + item.cantidad_necesaria
            por_producto[item.producto_id] = por_producto.get(item.producto_id, 0.0) + item.cantidad_necesaria

    totales: Dict[str, ProductoEnMezcla] = {}
    for m in mezclas:
        for p in m.productos:
            p.cantidad_total_necesaria = ceil2(por_mezcla.get((m.id, p.producto_id), 0.0))
            if p.producto_id not in totales:
                totales[p.producto_id] = ProductoEnMezcla(
                    producto_id=p.producto_id,
                    producto_nombre=p.producto_nombre,
                    producto_categoria=p.producto_categoria,
                    producto_unidad=p.producto_unidad,
                    dosis=p.dosis,
                    cantidad_total_necesaria=ceil2(por_producto.get(p.producto_id, 0.0)),
                )
    return list(totales.values())

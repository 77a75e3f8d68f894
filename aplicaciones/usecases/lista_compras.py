# aplicaciones/usecases/lista_compras.py
"""
UC: Lista de compras (conciliación de lo necesario contra el inventario).

Para cada producto con total necesario en la aplicación:
    faltante  = max(0, necesario − inventario)
    unidades  = ceil(faltante / tamaño_presentación)      (0 si no falta)
    costo     = unidades × tamaño_presentación × precio

El tamaño de presentación sale del campo estructurado del catálogo y, si no
existe, del primer número del texto de presentación (1 si no hay ninguno).

Productos que no están en el inventario se omiten con una advertencia: sin
cifra de stock no hay conciliación posible.
"""

from __future__ import annotations

import logging
from math import ceil, fsum
from typing import Any, Dict, Iterable, List

from aplicaciones.config import DB_PATH
from aplicaciones.adapters.parsers import extraer_tamano_presentacion
from aplicaciones.domain.estados import validar_operacion
from aplicaciones.domain.formulas import calcular_totales_productos
from aplicaciones.domain.models import (
    ErrorValidacion,
    ItemListaCompras,
    ListaCompras,
    ProductoCatalogo,
    ProductoEnMezcla,
)
from aplicaciones.domain.policies import clasificar_item_compra
from aplicaciones.infra.repositories import AplicacionRepo, ProductoRepo
from aplicaciones.infra.logger import log_transaction, log_database_operation, log_system_event

logger = logging.getLogger(__name__)


def tamano_compra(producto: ProductoCatalogo) -> float:
    if producto.tamano_presentacion and producto.tamano_presentacion > 0:
        return float(producto.tamano_presentacion)
    return extraer_tamano_presentacion(producto.presentacion_comercial)


def generar_lista_compras(
    productos: Iterable[ProductoEnMezcla],
    inventario: Dict[str, ProductoCatalogo],
) -> ListaCompras:
    items: List[ItemListaCompras] = []
    advertencias: List[str] = []
    sin_precio = 0
    sin_stock = 0

    for p in productos:
        cat = inventario.get(p.producto_id)
        if cat is None:
            msg = f"producto {p.producto_nombre} ({p.producto_id}) no está en el inventario; se omite"
            logger.warning(msg)
            advertencias.append(msg)
            continue

        necesario = float(p.cantidad_total_necesaria)
        stock = float(cat.cantidad_actual or 0.0)
        faltante = max(0.0, necesario - stock)
        tamano = tamano_compra(cat)
        unidades = ceil(round(faltante / tamano, 9)) if faltante > 0 else 0
        precio = float(cat.precio_unitario or 0.0)

        alerta = clasificar_item_compra(cat.precio_unitario, stock, faltante)
        if not precio:
            sin_precio += 1
        if stock == 0 and faltante > 0:
            sin_stock += 1

        items.append(ItemListaCompras(
            producto_id=p.producto_id,
            producto_nombre=p.producto_nombre,
            producto_categoria=p.producto_categoria,
            unidad=p.producto_unidad,
            inventario_actual=stock,
            cantidad_necesaria=necesario,
            cantidad_faltante=faltante,
            presentacion_comercial=cat.presentacion_comercial,
            tamano_presentacion=tamano,
            unidades_a_comprar=unidades,
            precio_unitario=precio,
            costo_estimado=unidades * tamano * precio,
            alerta=alerta,
        ))

    total = fsum(i.costo_estimado for i in items)
    return ListaCompras(
        items=items,
        costo_total_estimado=float(ceil(round(total, 9))),
        productos_sin_precio=sin_precio,
        productos_sin_stock=sin_stock,
        advertencias=advertencias,
    )


def run_lista_compras(aplicacion_id: str, db_path: str = DB_PATH) -> Dict[str, Any]:
    """Genera y guarda la lista de compras de una aplicación `Calculada`."""
    log_system_event("lista_compras_start", {"aplicacion_id": aplicacion_id})

    try:
        repo = AplicacionRepo(db_path)
        app = repo.require(aplicacion_id)

        motivos = validar_operacion(app.estado, "generar_lista_compras")
        if motivos:
            return {"ok": False, "errores": [ErrorValidacion("estado", m) for m in motivos], "lista": None}

        productos = calcular_totales_productos(app.calculos, app.mezclas)
        inventario = ProductoRepo(db_path).map_by_id([p.producto_id for p in productos])
        lista = generar_lista_compras(productos, inventario)

        app.lista_compras = lista
        repo.save(app)
        log_database_operation("aplicacion", "UPDATE", 1, aplicacion_id=app.id, campo="lista_compras")

        log_transaction("lista_compras", {"id": app.id}, result={
            "items": len(lista.items),
            "costo_total_estimado": lista.costo_total_estimado,
        })
        return {"ok": True, "errores": [], "lista": lista}

    except Exception as e:
        error_msg = str(e)
        log_transaction("lista_compras", {"id": aplicacion_id}, error=error_msg)
        log_system_event("lista_compras_error", {"error": error_msg}, level="error")
        raise

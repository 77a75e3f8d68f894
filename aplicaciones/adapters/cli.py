# aplicaciones/adapters/cli.py
"""
CLI del motor de aplicaciones (Typer).

Comandos principales:
- migrate                          -> aplica migraciones y crea views
- params set/get/show              -> parámetros globales (valor del jornal)
- catalogo lote/producto/listar    -> catálogo de lotes y productos
- crear <json>                     -> crea una aplicación (Calculada)
- compras <id>                     -> genera la lista de compras
- iniciar <id>                     -> Calculada -> En ejecución
- movimiento <id>                  -> registra un movimiento diario
- movimientos-lote <id> <xlsx>     -> importa movimientos desde un XLSX
- eliminar-movimiento <id> <mov>   -> borra un movimiento
- resumen <id>                     -> consumo vs. planeado y alertas
- cerrar <id>                      -> cierre con jornales y costos
- aprobar <id>                     -> aprobación de gerencia
- reporte <id>                     -> reporte de cierre / consumo por lote
- ver [id]                         -> listado o detalle de aplicaciones
"""

from __future__ import annotations

import json
from dataclasses import asdict, is_dataclass
from datetime import date
from typing import Any, Dict, List, Optional, Sequence

import typer
from rich.console import Console
from rich.table import Table
from rich.panel import Panel
from rich import box

from aplicaciones.config import DB_PATH, DEFAULTS
from aplicaciones.domain.models import JornalesPorActividad, ProductoCatalogo
from aplicaciones.infra.migrations import apply_migrations
from aplicaciones.infra.views import create_views
from aplicaciones.infra.repositories import AplicacionRepo, LoteRepo, ParamsRepo, ProductoRepo
from aplicaciones.usecases.calcular_aplicacion import run_crear_aplicacion
from aplicaciones.usecases.lista_compras import run_lista_compras
from aplicaciones.usecases.ejecucion import run_iniciar_ejecucion
from aplicaciones.usecases.movimientos_diarios import (
    run_registrar_movimiento,
    run_eliminar_movimiento,
    run_movimientos_lote,
    run_resumen_movimientos,
)
from aplicaciones.usecases.cierre import run_cierre, run_aprobar_cierre
from aplicaciones.usecases.reportes import datos_reporte_cierre, relatorio_consumo, relatorio_aplicaciones


app = typer.Typer(help="Aplicaciones de agroinsumos — CLI")
console = Console()


# -----------------------
# util
# -----------------------

def _print_json(obj) -> None:
    typer.echo(json.dumps(obj, ensure_ascii=False, indent=2, default=str))


def _fmt(val: Any) -> str:
    """Números con formato es-CO (1.234,56); None como '-'."""
    if val is None:
        return "-"
    if isinstance(val, bool):
        return "sí" if val else "no"
    if isinstance(val, (int, float)):
        return f"{val:,.2f}".replace(",", "X").replace(".", ",").replace("X", ".")
    return str(val)


def _display_table(data: Any, title: str = "Resultado", columns: Optional[Sequence[str]] = None) -> None:
    """Muestra listas de dicts/dataclasses como tabla Rich."""
    if not data:
        console.print(Panel("No se encontraron datos", title=title, border_style="yellow"))
        return

    rows = [asdict(r) if is_dataclass(r) else r for r in data]
    columns = list(columns or rows[0].keys())
    table = Table(title=title, box=box.ROUNDED)
    for col in columns:
        numerico = any(isinstance(r.get(col), (int, float)) and not isinstance(r.get(col), bool) for r in rows)
        table.add_column(col, justify="right" if numerico else "left")
    for r in rows:
        table.add_row(*[_fmt(r.get(c)) for c in columns])
    console.print(table)


def _display_tabular(columns: List[str], rows: List[List], msg: Optional[str], title: str) -> None:
    if msg:
        console.print(Panel(msg, title=title, border_style="yellow"))
        return
    _display_table([dict(zip(columns, r)) for r in rows], title=title, columns=columns)


def _display_alertas(alertas) -> None:
    colores = {"error": "bold red", "warning": "bold yellow", "info": "cyan"}
    for a in alertas:
        console.print(f"[{colores.get(a.tipo, 'white')}]{a.tipo.upper()}[/] {a.producto_nombre}: {a.mensaje}")


def _fail(res: Dict[str, Any], title: str = "Errores") -> None:
    errores = res.get("errores") or []
    console.print(Panel("\n".join(f"- {e}" for e in errores) or "Operación rechazada",
                        title=title, border_style="red"))
    raise typer.Exit(code=1)


# -----------------------
# comandos de infra
# -----------------------

@app.command("migrate")
def cmd_migrate(db_path: str = typer.Option(DB_PATH, "--db", help="Ruta del SQLite")):
    """Aplica migraciones y recrea las views auxiliares."""
    apply_migrations(db_path)
    create_views(db_path)
    typer.echo(f">> Migraciones aplicadas y views creadas en: {db_path}")


params_app = typer.Typer(help="Parámetros globales (valor del jornal).")
app.add_typer(params_app, name="params")


@params_app.command("set")
def cmd_params_set(
    valor_jornal: Optional[float] = typer.Option(None, help="Valor de un jornal (ej.: 60000)"),
    db_path: str = typer.Option(DB_PATH, "--db", help="Ruta del SQLite"),
):
    """Define parámetros globales (solo se cambian los informados)."""
    items = []
    if valor_jornal is not None:
        items.append(("valor_jornal", str(valor_jornal)))
    if not items:
        typer.echo("Nada que cambiar. Informe al menos un parámetro.")
        raise typer.Exit(code=1)
    ParamsRepo(db_path).set_many(items)
    typer.echo(">> Parámetros actualizados.")


@params_app.command("get")
def cmd_params_get(
    chave: str = typer.Argument(..., help="Ej.: valor_jornal"),
    db_path: str = typer.Option(DB_PATH, "--db", help="Ruta del SQLite"),
):
    val = ParamsRepo(db_path).get(chave)
    typer.echo("(None)" if val is None else val)


@params_app.command("show")
def cmd_params_show(db_path: str = typer.Option(DB_PATH, "--db", help="Ruta del SQLite")):
    """Muestra los parámetros efectivos en JSON (con fallback a los defaults)."""
    repo = ParamsRepo(db_path)
    _print_json({
        "valor_jornal": repo.get_float("valor_jornal", DEFAULTS.valor_jornal),
        "umbral_aprobacion": DEFAULTS.umbral_aprobacion,
        "_defaults": asdict(DEFAULTS),
        "_db": db_path,
    })


# -----------------------
# catálogo
# -----------------------

cat_app = typer.Typer(help="Catálogo de lotes y productos.")
app.add_typer(cat_app, name="catalogo")


@cat_app.command("lote")
def cmd_catalogo_lote(
    lote_id: str = typer.Option(..., "--id", help="Identificador del lote"),
    nombre: str = typer.Option(..., help="Nombre del lote"),
    area: float = typer.Option(0.0, help="Área en hectáreas"),
    grandes: int = typer.Option(0, help="Árboles grandes"),
    medianos: int = typer.Option(0, help="Árboles medianos"),
    pequenos: int = typer.Option(0, help="Árboles pequeños"),
    clonales: int = typer.Option(0, help="Árboles clonales"),
    db_path: str = typer.Option(DB_PATH, "--db", help="Ruta del SQLite"),
):
    """Crea o actualiza un lote con su censo de árboles."""
    apply_migrations(db_path)
    LoteRepo(db_path).upsert([{
        "id": lote_id, "nombre": nombre, "area_hectareas": area,
        "arboles_grandes": grandes, "arboles_medianos": medianos,
        "arboles_pequenos": pequenos, "arboles_clonales": clonales,
    }])
    typer.echo(f">> Lote {lote_id} guardado ({grandes + medianos + pequenos + clonales} árboles).")


@cat_app.command("producto")
def cmd_catalogo_producto(
    producto_id: str = typer.Option(..., "--id", help="Identificador del producto"),
    nombre: str = typer.Option(..., help="Nombre comercial"),
    categoria: str = typer.Option("", help="Categoría"),
    unidad: str = typer.Option("Litros", help="Litros | Kilos | Unidades"),
    estado_fisico: str = typer.Option("liquido", help="liquido | solido"),
    presentacion: str = typer.Option("", help="Presentación comercial (ej.: 'Bulto 25kg')"),
    tamano: Optional[float] = typer.Option(None, help="Tamaño de presentación en unidades de inventario"),
    precio: Optional[float] = typer.Option(None, help="Precio por unidad de inventario"),
    stock: float = typer.Option(0.0, help="Cantidad actual en inventario"),
    db_path: str = typer.Option(DB_PATH, "--db", help="Ruta del SQLite"),
):
    """Crea o actualiza un producto del catálogo."""
    apply_migrations(db_path)
    ProductoRepo(db_path).upsert([ProductoCatalogo(
        id=producto_id, nombre=nombre, categoria=categoria, unidad_medida=unidad,
        estado_fisico=estado_fisico, presentacion_comercial=presentacion,
        tamano_presentacion=tamano, precio_unitario=precio, cantidad_actual=stock,
    )])
    typer.echo(f">> Producto {producto_id} guardado.")


@cat_app.command("listar")
def cmd_catalogo_listar(db_path: str = typer.Option(DB_PATH, "--db", help="Ruta del SQLite")):
    apply_migrations(db_path)
    _display_table(LoteRepo(db_path).get_all(), title="Lotes",
                   columns=["id", "nombre", "area_hectareas", "total_arboles"])
    _display_table(ProductoRepo(db_path).get_all(), title="Productos",
                   columns=["id", "nombre", "unidad_medida", "presentacion_comercial",
                            "precio_unitario", "cantidad_actual"])


# -----------------------
# ciclo de vida
# -----------------------

@app.command("crear")
def cmd_crear(
    path: str = typer.Argument(..., help="JSON con 'configuracion' y 'mezclas'"),
    aplicacion_id: Optional[str] = typer.Option(None, "--id", help="Identificador (opcional)"),
    db_path: str = typer.Option(DB_PATH, "--db", help="Ruta del SQLite"),
):
    """Crea una aplicación y calcula sus mezclas."""
    with open(path, "r", encoding="utf-8") as f:
        datos = json.load(f)
    res = run_crear_aplicacion(datos, db_path=db_path, aplicacion_id=aplicacion_id)
    if not res["ok"]:
        _fail(res, title="Configuración inválida")
    aplicacion = res["aplicacion"]
    typer.echo(f">> Aplicación {aplicacion.id} creada ({aplicacion.estado.value}).")
    _display_table(aplicacion.calculos, title="Cálculos por lote",
                   columns=["mezcla_id", "lote_nombre", "total_arboles", "litros_mezcla",
                            "numero_canecas", "kilos_totales", "numero_bultos"])


@app.command("compras")
def cmd_compras(aplicacion_id: str = typer.Argument(...), db_path: str = typer.Option(DB_PATH, "--db", help="Ruta del SQLite")):
    """Genera la lista de compras contra el inventario."""
    res = run_lista_compras(aplicacion_id, db_path=db_path)
    if not res["ok"]:
        _fail(res)
    lista = res["lista"]
    _display_table(lista.items, title="Lista de compras",
                   columns=["producto_nombre", "unidad", "inventario_actual", "cantidad_necesaria",
                            "cantidad_faltante", "tamano_presentacion", "unidades_a_comprar",
                            "costo_estimado", "alerta"])
    console.print(f"Costo total estimado: [bold]{_fmt(lista.costo_total_estimado)}[/]  "
                  f"sin precio: {lista.productos_sin_precio}  sin stock: {lista.productos_sin_stock}")
    for adv in lista.advertencias:
        console.print(f"[yellow]Advertencia:[/] {adv}")


@app.command("iniciar")
def cmd_iniciar(
    aplicacion_id: str = typer.Argument(...),
    fecha: str = typer.Option(date.today().isoformat(), help="Fecha de inicio (YYYY-MM-DD)"),
    confirmar: bool = typer.Option(False, "--confirmar", help="Continuar aunque falte inventario"),
    db_path: str = typer.Option(DB_PATH, "--db", help="Ruta del SQLite"),
):
    """Inicia la ejecución (verifica inventario como compuerta blanda)."""
    res = run_iniciar_ejecucion(aplicacion_id, fecha, confirmar=confirmar, db_path=db_path)
    if res["requiere_confirmacion"]:
        _display_table(res["faltantes"], title="Inventario insuficiente")
        if not typer.confirm("¿Iniciar de todos modos?"):
            raise typer.Exit(code=1)
        res = run_iniciar_ejecucion(aplicacion_id, fecha, confirmar=True, db_path=db_path)
    if not res["ok"]:
        _fail(res)
    typer.echo(f">> Aplicación {aplicacion_id} en ejecución desde {fecha}.")


@app.command("movimiento")
def cmd_movimiento(
    aplicacion_id: str = typer.Argument(...),
    fecha: str = typer.Option(date.today().isoformat(), help="Fecha del movimiento (YYYY-MM-DD)"),
    lote: str = typer.Option(..., help="Id del lote"),
    producto: str = typer.Option(..., help="Id del producto"),
    cantidad: float = typer.Option(..., help="Cantidad utilizada (L/Kg)"),
    responsable: str = typer.Option(..., help="Responsable en campo"),
    canecas: Optional[float] = typer.Option(None, help="Canecas utilizadas"),
    notas: Optional[str] = typer.Option(None, help="Notas"),
    db_path: str = typer.Option(DB_PATH, "--db", help="Ruta del SQLite"),
):
    """Registra un movimiento diario."""
    res = run_registrar_movimiento(aplicacion_id, {
        "fecha_movimiento": fecha, "lote_id": lote, "producto_id": producto,
        "cantidad_utilizada": cantidad, "responsable": responsable,
        "numero_canecas": canecas, "notas": notas,
    }, db_path=db_path)
    if not res["ok"]:
        _fail(res)
    typer.echo(f">> Movimiento {res['movimiento'].id} registrado.")
    if res["aviso"]:
        console.print(f"[yellow]Aviso:[/] {res['aviso']}")
    _display_alertas(res["alertas"])


@app.command("movimientos-lote")
def cmd_movimientos_lote(
    aplicacion_id: str = typer.Argument(...),
    path: str = typer.Argument(..., help="XLSX de movimientos"),
    db_path: str = typer.Option(DB_PATH, "--db", help="Ruta del SQLite"),
):
    """Importa movimientos desde un XLSX (todo o nada)."""
    res = run_movimientos_lote(path, aplicacion_id, db_path=db_path)
    if not res["ok"]:
        _fail(res, title="Filas inválidas")
    typer.echo(f">> {res['insertados']} movimientos importados.")
    _display_alertas(res["alertas"])


@app.command("eliminar-movimiento")
def cmd_eliminar_movimiento(
    aplicacion_id: str = typer.Argument(...),
    movimiento_id: int = typer.Argument(...),
    db_path: str = typer.Option(DB_PATH, "--db", help="Ruta del SQLite"),
):
    res = run_eliminar_movimiento(aplicacion_id, movimiento_id, db_path=db_path)
    if not res["ok"]:
        _fail(res)
    typer.echo(f">> Movimiento {movimiento_id} eliminado.")
    _display_alertas(res["alertas"])


@app.command("resumen")
def cmd_resumen(
    aplicacion_id: str = typer.Argument(...),
    lote: Optional[str] = typer.Option(None, help="Filtrar por lote"),
    db_path: str = typer.Option(DB_PATH, "--db", help="Ruta del SQLite"),
):
    """Consumo real contra lo planeado, con alertas."""
    res = run_resumen_movimientos(aplicacion_id, db_path=db_path, lote_id=lote)
    _display_table(res["resumen"], title="Consumo vs. planeado",
                   columns=["producto_nombre", "producto_unidad", "cantidad_planeada",
                            "total_utilizado", "diferencia", "porcentaje_usado", "excede_planeado"])
    _display_alertas(res["alertas"])
    est = res["estadisticas"]
    console.print(f"[dim]{est['total_movimientos']} movimientos en {est['fechas_unicas']} días, "
                  f"{est['lotes_unicos']} lotes[/dim]")


@app.command("cerrar")
def cmd_cerrar(
    aplicacion_id: str = typer.Argument(...),
    fecha_final: str = typer.Option(date.today().isoformat(), help="Fecha final (YYYY-MM-DD)"),
    jornales_aplicacion: float = typer.Option(0.0, help="Jornales de aplicación"),
    jornales_mezcla: float = typer.Option(0.0, help="Jornales de mezcla"),
    jornales_transporte: float = typer.Option(0.0, help="Jornales de transporte"),
    jornales_otros: float = typer.Option(0.0, help="Otros jornales"),
    valor_jornal: Optional[float] = typer.Option(None, help="Valor del jornal (default: params)"),
    observaciones: Optional[str] = typer.Option(None, help="Observaciones generales"),
    condiciones: Optional[str] = typer.Option(None, help="Condiciones meteorológicas"),
    problemas: Optional[str] = typer.Option(None, help="Problemas encontrados"),
    ajustes: Optional[str] = typer.Option(None, help="Ajustes realizados"),
    db_path: str = typer.Option(DB_PATH, "--db", help="Ruta del SQLite"),
):
    """Cierra la aplicación: conciliación, costos y decisión de aprobación."""
    jornales = JornalesPorActividad(jornales_aplicacion, jornales_mezcla, jornales_transporte, jornales_otros)
    res = run_cierre(
        aplicacion_id, jornales, fecha_final, valor_jornal=valor_jornal,
        observaciones={
            "observaciones_generales": observaciones,
            "condiciones_meteorologicas": condiciones,
            "problemas_encontrados": problemas,
            "ajustes_realizados": ajustes,
        },
        db_path=db_path,
    )
    if not res["ok"]:
        _fail(res, title="Cierre rechazado")
    cierre = res["cierre"]
    _display_table(cierre.comparacion_productos, title="Planeado vs. real",
                   columns=["producto_nombre", "cantidad_planeada", "cantidad_real",
                            "porcentaje_desviacion", "costo_total"])
    console.print(f"Desviación máxima: {_fmt(cierre.desviacion_maxima)}%  "
                  f"Costo total: {_fmt(cierre.costo_total)}")
    typer.echo(f">> Estado: {res['estado'].value}")


@app.command("aprobar")
def cmd_aprobar(
    aplicacion_id: str = typer.Argument(...),
    por: str = typer.Option(..., "--por", help="Quien aprueba"),
    db_path: str = typer.Option(DB_PATH, "--db", help="Ruta del SQLite"),
):
    """Aprueba un cierre pendiente."""
    res = run_aprobar_cierre(aplicacion_id, por, db_path=db_path)
    if not res["ok"]:
        _fail(res)
    typer.echo(f">> Cierre aprobado por {res['cierre'].aprobado_por}.")


@app.command("reporte")
def cmd_reporte(
    aplicacion_id: str = typer.Argument(...),
    consumo: bool = typer.Option(False, "--consumo", help="Consumo real por lote y producto"),
    as_json: bool = typer.Option(False, "--json", help="Datos planos en JSON"),
    db_path: str = typer.Option(DB_PATH, "--db", help="Ruta del SQLite"),
):
    """Reporte de cierre (o de consumo por lote)."""
    if consumo:
        columns, rows, msg = relatorio_consumo(aplicacion_id, db_path=db_path)
        _display_tabular(columns, rows, msg, title="Consumo por lote y producto")
        return

    aplicacion = AplicacionRepo(db_path).require(aplicacion_id)
    if aplicacion.cierre is None:
        typer.echo("La aplicación no tiene cierre registrado.")
        raise typer.Exit(code=1)
    datos = datos_reporte_cierre(aplicacion)
    if as_json:
        _print_json(datos)
        return
    console.print(Panel(
        f"{datos['nombre']} ({datos['tipo_aplicacion']}) - {datos['estado']}\n"
        f"{datos['fecha_inicio']} a {datos['fecha_final']} ({datos['dias_aplicacion']} días)\n"
        f"Insumos: {_fmt(datos['costo_insumos_total'])}  Mano de obra: {_fmt(datos['costo_mano_obra_total'])}  "
        f"Total: {_fmt(datos['costo_total'])}",
        title="Reporte de cierre",
    ))
    _display_table(datos["productos"], title="Productos",
                   columns=["producto_nombre", "cantidad_planeada", "cantidad_real",
                            "porcentaje_desviacion", "costo_unitario", "costo_total"])
    _display_table(datos["lotes"], title="Lotes",
                   columns=["lote_nombre", "total_arboles", "jornales_lote", "costo_insumos",
                            "costo_mano_obra", "costo_total", "costo_por_arbol", "arboles_por_jornal"])


@app.command("ver")
def cmd_ver(
    aplicacion_id: Optional[str] = typer.Argument(None),
    db_path: str = typer.Option(DB_PATH, "--db", help="Ruta del SQLite"),
):
    """Lista las aplicaciones o muestra una en JSON."""
    if aplicacion_id is None:
        columns, rows, msg = relatorio_aplicaciones(db_path=db_path)
        _display_tabular(columns, rows, msg, title="Aplicaciones")
        return
    _print_json(AplicacionRepo(db_path).require(aplicacion_id).to_dict())


# Entry point opcional:
def main():
    app()


if __name__ == "__main__":
    main()

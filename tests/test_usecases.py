import sqlite3
from datetime import date

import pandas as pd
import pytest

from aplicaciones.domain.models import EstadoAplicacion, JornalesPorActividad
from aplicaciones.infra.migrations import apply_migrations
from aplicaciones.infra.views import create_views
from aplicaciones.infra.repositories import (
    AplicacionRepo,
    LoteRepo,
    MovimientoRepo,
    ProductoRepo,
)
from aplicaciones.usecases.calcular_aplicacion import run_actualizar_mezclas, run_crear_aplicacion
from aplicaciones.usecases.cierre import run_aprobar_cierre, run_cierre
from aplicaciones.usecases.ejecucion import run_iniciar_ejecucion
from aplicaciones.usecases.lista_compras import run_lista_compras
from aplicaciones.usecases.movimientos_diarios import (
    run_eliminar_movimiento,
    run_movimientos_lote,
    run_registrar_movimiento,
    run_resumen_movimientos,
)
from aplicaciones.usecases.reportes import datos_reporte_cierre, relatorio_aplicaciones, relatorio_consumo

HOY = date(2025, 3, 10)


def _seed(db_path):
    apply_migrations(db_path)
    create_views(db_path)
    LoteRepo(db_path).upsert([
        {"id": "L1", "nombre": "Lote 1", "area_hectareas": 2.5, "arboles_grandes": 1000,
         "sublotes": [{"id": "L1-A", "nombre": "Sublote A"}]},
        {"id": "L2", "nombre": "Lote 2", "area_hectareas": 1.0, "arboles_grandes": 500},
    ])
    ProductoRepo(db_path).upsert([
        {"id": "P1", "nombre": "Fungicida", "categoria": "Fungicida", "unidad_medida": "Litros",
         "estado_fisico": "liquido", "presentacion_comercial": "Tarro 1L",
         "precio_unitario": 50000, "cantidad_actual": 2},
        {"id": "P2", "nombre": "Coadyuvante", "categoria": "Coadyuvante", "unidad_medida": "Litros",
         "estado_fisico": "liquido", "presentacion_comercial": "Galón 4L",
         "precio_unitario": 30000, "cantidad_actual": 100},
    ])


def _datos(lotes=("L1", "L2")):
    # L1: 100 canecas -> P1 5 L, P2 10 L ; L2: 50 canecas -> P1 2.5 L, P2 5 L
    return {
        "configuracion": {
            "nombre": "Fumigación marzo",
            "tipo_aplicacion": "Fumigación",
            "proposito": "Control de trips",
            "agronomo_responsable": "Ing. Pérez",
            "blanco_biologico": ["Trips"],
            "lotes_seleccionados": [
                {"lote_id": l, "calibracion_litros_arbol": 20, "tamano_caneca": 200} for l in lotes
            ],
        },
        "mezclas": [{
            "id": "M1",
            "nombre": "Mezcla 1",
            "productos": [
                {"producto_id": "P1", "dosis": {"tipo": "fumigacion", "dosis_por_caneca": 50, "unidad_dosis": "cc"}},
                {"producto_id": "P2", "dosis": {"tipo": "fumigacion", "dosis_por_caneca": 100, "unidad_dosis": "cc"}},
            ],
            "lotes_asignados": list(lotes),
        }],
    }


def _mov(lote, producto, cantidad, canecas, fecha="2025-03-02"):
    return {
        "fecha_movimiento": fecha,
        "lote_id": lote,
        "producto_id": producto,
        "cantidad_utilizada": cantidad,
        "responsable": "Carlos",
        "numero_canecas": canecas,
    }


@pytest.fixture
def db(tmp_path):
    db_path = str(tmp_path / "aplicaciones_test.sqlite")
    _seed(db_path)
    return db_path


@pytest.fixture
def en_ejecucion(db):
    res = run_crear_aplicacion(_datos(), db_path=db, aplicacion_id="FUM-01")
    assert res["ok"], res["errores"]
    res = run_iniciar_ejecucion("FUM-01", "2025-03-01", confirmar=True, hoy=HOY, db_path=db)
    assert res["ok"], res["errores"]
    return db


def test_crear_aplicacion_calcula_y_persiste(db):
    res = run_crear_aplicacion(_datos(), db_path=db, aplicacion_id="FUM-01")
    assert res["ok"], res["errores"]
    app = AplicacionRepo(db).require("FUM-01")
    assert app.estado is EstadoAplicacion.CALCULADA
    assert len(app.calculos) == 2
    lote1 = app.configuracion.lote("L1")
    assert lote1.nombre == "Lote 1"
    assert lote1.conteo_arboles.total == 1000
    assert lote1.sublotes_ids == ["L1-A"]
    producto = app.mezclas[0].productos[0]
    assert producto.producto_nombre == "Fungicida"
    assert producto.cantidad_total_necesaria == 7.5
    assert app.mezclas[0].productos[1].cantidad_total_necesaria == 15.0


def test_crear_aplicacion_no_reemplaza_una_existente(en_ejecucion):
    db = en_ejecucion
    assert run_registrar_movimiento("FUM-01", _mov("L1", "P1", 5, 100), db_path=db, hoy=HOY)["ok"]

    res = run_crear_aplicacion(_datos(lotes=("L1",)), db_path=db, aplicacion_id="FUM-01")
    assert res["ok"] is False
    assert [e.entidad for e in res["errores"]] == ["aplicación"]
    assert "ya existe" in res["errores"][0].mensaje

    app = AplicacionRepo(db).require("FUM-01")
    assert app.estado is EstadoAplicacion.EN_EJECUCION
    assert app.fecha_inicio_ejecucion == "2025-03-01"
    assert len(app.calculos) == 2
    assert len(MovimientoRepo(db).list_by_aplicacion("FUM-01")) == 1


def test_crear_aplicacion_con_lote_o_producto_desconocido(db):
    datos = _datos(lotes=("L1", "L9"))
    datos["mezclas"][0]["productos"].append(
        {"producto_id": "P9", "dosis": {"tipo": "fumigacion", "dosis_por_caneca": 10}}
    )
    res = run_crear_aplicacion(datos, db_path=db, aplicacion_id="X")
    assert res["ok"] is False
    msgs = {(e.entidad, e.mensaje) for e in res["errores"]}
    assert ("lote L9", "no existe en el catálogo de lotes") in msgs
    assert ("producto P9", "no existe en el catálogo de productos") in msgs
    assert AplicacionRepo(db).get("X") is None


def test_crear_aplicacion_invalida_no_calcula(db):
    datos = _datos()
    datos["configuracion"]["lotes_seleccionados"][0]["tamano_caneca"] = None
    res = run_crear_aplicacion(datos, db_path=db, aplicacion_id="X")
    assert res["ok"] is False
    assert any("tamaño de caneca" in e.mensaje for e in res["errores"])


def test_lista_compras(db):
    run_crear_aplicacion(_datos(), db_path=db, aplicacion_id="FUM-01")
    res = run_lista_compras("FUM-01", db_path=db)
    assert res["ok"], res["errores"]
    items = {i.producto_id: i for i in res["lista"].items}
    # P1: faltan 5.5 L en tarros de 1 L
    assert items["P1"].cantidad_faltante == 5.5
    assert items["P1"].unidades_a_comprar == 6
    assert items["P1"].costo_estimado == 300000.0
    assert items["P2"].unidades_a_comprar == 0
    assert res["lista"].costo_total_estimado == 300000.0
    assert AplicacionRepo(db).require("FUM-01").lista_compras is not None


def test_actualizar_mezclas_recalcula_e_invalida_compras(db):
    run_crear_aplicacion(_datos(), db_path=db, aplicacion_id="FUM-01")
    run_lista_compras("FUM-01", db_path=db)
    mezclas = _datos()["mezclas"]
    mezclas[0]["productos"] = mezclas[0]["productos"][:1]
    res = run_actualizar_mezclas("FUM-01", mezclas, db_path=db)
    assert res["ok"], res["errores"]
    app = AplicacionRepo(db).require("FUM-01")
    assert app.lista_compras is None
    assert [p.producto_id for c in app.calculos for p in c.productos] == ["P1", "P1"]


def test_iniciar_ejecucion_pide_confirmacion_por_stock(db):
    run_crear_aplicacion(_datos(), db_path=db, aplicacion_id="FUM-01")

    futura = run_iniciar_ejecucion("FUM-01", "2025-03-11", hoy=HOY, db_path=db)
    assert futura["ok"] is False
    assert futura["errores"][0].mensaje == "la fecha de inicio no puede ser futura"

    res = run_iniciar_ejecucion("FUM-01", "2025-03-01", hoy=HOY, db_path=db)
    assert res["ok"] is False
    assert res["requiere_confirmacion"] is True
    assert [f["producto_id"] for f in res["faltantes"]] == ["P1"]
    assert res["faltantes"][0]["faltante"] == 5.5
    assert AplicacionRepo(db).require("FUM-01").estado is EstadoAplicacion.CALCULADA

    res = run_iniciar_ejecucion("FUM-01", "2025-03-01", confirmar=True, hoy=HOY, db_path=db)
    assert res["ok"] is True
    app = AplicacionRepo(db).require("FUM-01")
    assert app.estado is EstadoAplicacion.EN_EJECUCION
    assert app.fecha_inicio_ejecucion == "2025-03-01"


def test_en_ejecucion_no_admite_edicion(en_ejecucion):
    db = en_ejecucion
    res = run_actualizar_mezclas("FUM-01", _datos()["mezclas"], db_path=db)
    assert res["ok"] is False and res["errores"][0].entidad == "estado"
    assert run_lista_compras("FUM-01", db_path=db)["ok"] is False
    assert run_iniciar_ejecucion("FUM-01", "2025-03-01", hoy=HOY, db_path=db)["ok"] is False


def test_registrar_movimiento_y_resumen(en_ejecucion):
    db = en_ejecucion
    res = run_registrar_movimiento("FUM-01", _mov("L1", "P1", 5, 100), db_path=db, hoy=HOY)
    assert res["ok"], res["errores"]
    mov = res["movimiento"]
    assert mov.id is not None
    assert mov.costo_unitario == 50000
    assert mov.producto_unidad == "Litros"
    assert mov.lote_nombre == "Lote 1"
    assert res["aviso"] is None
    p1 = next(r for r in res["resumen"] if r.producto_id == "P1")
    assert p1.total_utilizado == 5.0
    assert [a.tipo for a in res["alertas"]] == []

    res = run_registrar_movimiento("FUM-01", _mov("L2", "P1", 1, 40), db_path=db, hoy=HOY)
    assert res["ok"]
    assert [(a.producto_id, a.tipo) for a in res["alertas"]] == [("P1", "info")]

    res = run_registrar_movimiento("FUM-01", _mov("L2", "P1", 2, 10), db_path=db, hoy=HOY)
    assert res["ok"]
    assert res["aviso"].startswith("Esta cantidad excedería lo planeado")
    assert [(a.producto_id, a.tipo) for a in res["alertas"]] == [("P1", "error")]

    resumen = run_resumen_movimientos("FUM-01", db_path=db)
    assert resumen["estadisticas"]["total_movimientos"] == 3
    assert resumen["estadisticas"]["total_canecas"] == 150.0
    solo_l2 = run_resumen_movimientos("FUM-01", db_path=db, lote_id="L2")
    assert len(solo_l2["movimientos"]) == 2
    # por lote se compara contra lo planeado para ese lote
    p1_l2 = next(r for r in solo_l2["resumen"] if r.producto_id == "P1")
    assert p1_l2.cantidad_planeada == 2.5
    assert p1_l2.total_utilizado == 3.0
    solo_l1 = run_resumen_movimientos("FUM-01", db_path=db, lote_id="L1")
    p1_l1 = next(r for r in solo_l1["resumen"] if r.producto_id == "P1")
    assert p1_l1.cantidad_planeada == 5.0
    assert p1_l1.porcentaje_usado == 100.0
    assert [(a.producto_id, a.tipo) for a in solo_l1["alertas"]] == [("P1", "warning")]


def test_registrar_movimiento_invalido(en_ejecucion):
    db = en_ejecucion
    sin_canecas = _mov("L1", "P1", 5, None)
    res = run_registrar_movimiento("FUM-01", sin_canecas, db_path=db, hoy=HOY)
    assert res["ok"] is False
    assert [e.mensaje for e in res["errores"]] == ["debe indicar el número de canecas utilizadas"]

    antes = run_registrar_movimiento("FUM-01", _mov("L1", "P1", 5, 10, fecha="2025-02-28"), db_path=db, hoy=HOY)
    assert antes["ok"] is False
    futura = run_registrar_movimiento("FUM-01", _mov("L1", "P1", 5, 10, fecha="2025-03-11"), db_path=db, hoy=HOY)
    assert futura["ok"] is False
    assert MovimientoRepo(db).list_by_aplicacion("FUM-01") == []


def test_eliminar_movimiento(en_ejecucion):
    db = en_ejecucion
    mov_id = run_registrar_movimiento("FUM-01", _mov("L1", "P1", 5, 100), db_path=db, hoy=HOY)["movimiento"].id
    res = run_eliminar_movimiento("FUM-01", mov_id, db_path=db)
    assert res["ok"], res["errores"]
    assert MovimientoRepo(db).list_by_aplicacion("FUM-01") == []
    assert next(r for r in res["resumen"] if r.producto_id == "P1").total_utilizado == 0.0

    res = run_eliminar_movimiento("FUM-01", 999, db_path=db)
    assert res["ok"] is False
    assert res["errores"][0].mensaje == "movimiento 999 no encontrado"


def test_cierre_sin_desviacion(en_ejecucion):
    db = en_ejecucion
    for datos in (_mov("L1", "P1", 5, 100), _mov("L1", "P2", 10, 100),
                  _mov("L2", "P1", 2.5, 50), _mov("L2", "P2", 5, 50)):
        assert run_registrar_movimiento("FUM-01", datos, db_path=db, hoy=HOY)["ok"]

    sin_jornales = run_cierre("FUM-01", JornalesPorActividad(), "2025-03-05", db_path=db)
    assert sin_jornales["ok"] is False
    assert "debe registrar al menos un jornal" in [e.mensaje for e in sin_jornales["errores"]]

    antes = run_cierre("FUM-01", JornalesPorActividad(aplicacion=3), "2025-02-20", db_path=db)
    assert antes["ok"] is False

    res = run_cierre("FUM-01", JornalesPorActividad(aplicacion=3), "2025-03-05",
                     observaciones={"condiciones_meteorologicas": "Soleado"}, db_path=db)
    assert res["ok"], res["errores"]
    assert res["estado"] is EstadoAplicacion.CERRADA
    cierre = res["cierre"]
    assert cierre.desviacion_maxima == 0.0
    assert cierre.costo_insumos_total == 825000.0
    assert cierre.costo_mano_obra_total == 180000.0
    assert cierre.dias_aplicacion == 5
    assert [d.jornales_lote for d in cierre.detalles_lotes] == [2, 1]

    app = AplicacionRepo(db).require("FUM-01")
    assert app.estado is EstadoAplicacion.CERRADA
    assert app.fecha_cierre == "2025-03-05"
    assert app.cierre.condiciones_meteorologicas == "Soleado"
    assert app.cierre.costo_total == cierre.costo_total

    # cerrada es terminal
    assert run_registrar_movimiento("FUM-01", _mov("L1", "P1", 1, 1), db_path=db, hoy=HOY)["ok"] is False
    assert run_cierre("FUM-01", JornalesPorActividad(aplicacion=3), "2025-03-05", db_path=db)["ok"] is False

    datos = datos_reporte_cierre(app)
    assert datos["total_jornales"] == 3
    assert datos["jornales_aplicacion"] == 3
    assert datos["lotes"][0]["jornales_aplicacion"] == 2
    assert datos["blanco_biologico"] == ["Trips"]

    columns, rows, msg = relatorio_consumo("FUM-01", db_path=db)
    assert msg is None
    assert len(rows) == 4
    assert "Cantidad" in columns


def test_cierre_fallido_no_deja_estado_parcial(en_ejecucion, monkeypatch):
    db = en_ejecucion
    assert run_registrar_movimiento("FUM-01", _mov("L1", "P1", 5, 100), db_path=db, hoy=HOY)["ok"]

    def _falla(self, app, conn=None):
        raise sqlite3.OperationalError("database is locked")

    monkeypatch.setattr(AplicacionRepo, "save", _falla)
    with pytest.raises(sqlite3.OperationalError):
        run_cierre("FUM-01", JornalesPorActividad(aplicacion=3), "2025-03-05", db_path=db)
    monkeypatch.undo()

    app = AplicacionRepo(db).require("FUM-01")
    assert app.estado is EstadoAplicacion.EN_EJECUCION
    assert app.cierre is None
    assert app.fecha_cierre is None


def test_cierre_con_desviacion_requiere_aprobacion(en_ejecucion):
    db = en_ejecucion
    assert run_registrar_movimiento("FUM-01", _mov("L1", "P1", 10, 100), db_path=db, hoy=HOY)["ok"]
    assert run_registrar_movimiento("FUM-01", _mov("L1", "P2", 15, 100), db_path=db, hoy=HOY)["ok"]

    res = run_cierre("FUM-01", JornalesPorActividad(aplicacion=2, mezcla=1), "2025-03-05",
                     valor_jornal=70000, db_path=db)
    assert res["ok"], res["errores"]
    assert res["estado"] is EstadoAplicacion.PENDIENTE_APROBACION
    assert res["cierre"].requiere_aprobacion is True
    assert res["cierre"].costo_mano_obra_total == 210000.0

    vacio = run_aprobar_cierre("FUM-01", "  ", db_path=db)
    assert vacio["ok"] is False
    assert vacio["errores"][0].mensaje == "falta quien aprueba"

    res = run_aprobar_cierre("FUM-01", "Gerente", fecha_aprobacion="2025-03-06", db_path=db)
    assert res["ok"], res["errores"]
    app = AplicacionRepo(db).require("FUM-01")
    assert app.estado is EstadoAplicacion.CERRADA
    assert app.cierre.aprobado_por == "Gerente"
    assert app.cierre.fecha_aprobacion == "2025-03-06"


def test_aprobar_sin_pendiente_se_rechaza(en_ejecucion):
    res = run_aprobar_cierre("FUM-01", "Gerente", db_path=en_ejecucion)
    assert res["ok"] is False


def test_aplicacion_inexistente(db):
    with pytest.raises(LookupError):
        run_lista_compras("NOPE", db_path=db)
    with pytest.raises(LookupError):
        run_registrar_movimiento("NOPE", _mov("L1", "P1", 1, 1), db_path=db, hoy=HOY)


def _xlsx(path, filas):
    df = pd.DataFrame(filas, columns=["Fecha", "Lote", "Producto", "Cantidad", "Responsable", "Canecas"])
    df.to_excel(path, index=False)
    return str(path)


def test_importacion_xlsx_todo_o_nada(en_ejecucion, tmp_path):
    db = en_ejecucion
    malo = _xlsx(tmp_path / "malo.xlsx", [
        ["02/03/2025", "L1", "P1", "3", "Carlos", "60"],
        ["03/03/2025", "L2", "P1", "0", "Carlos", "20"],
    ])
    res = run_movimientos_lote(malo, "FUM-01", db_path=db, hoy=HOY)
    assert res["ok"] is False
    assert res["insertados"] == 0
    assert [e.entidad for e in res["errores"]] == ["fila 3"]
    assert MovimientoRepo(db).list_by_aplicacion("FUM-01") == []

    bueno = _xlsx(tmp_path / "bueno.xlsx", [
        ["02/03/2025", "L1", "P1", "3", "Carlos", "60"],
        ["03/03/2025", "L2", "P1", "1,5 L - Litros", "Carlos", "20"],
    ])
    res = run_movimientos_lote(bueno, "FUM-01", db_path=db, hoy=HOY)
    assert res["ok"], res["errores"]
    assert res["insertados"] == 2
    movs = MovimientoRepo(db).list_by_aplicacion("FUM-01")
    assert [m.fecha_movimiento for m in movs] == ["2025-03-02", "2025-03-03"]
    assert movs[1].cantidad_utilizada == 1.5
    assert movs[0].costo_unitario == 50000


def test_relatorio_aplicaciones(en_ejecucion):
    columns, rows, msg = relatorio_aplicaciones(db_path=en_ejecucion)
    assert msg is None
    assert rows[0][0] == "FUM-01"
    assert rows[0][3] == EstadoAplicacion.EN_EJECUCION.value

from math import isclose

from aplicaciones.domain.formulas import (
    ceil2,
    redondear_entero,
    desviacion_porcentual,
    calcular_fumigacion,
    calcular_fertilizacion,
    calcular_lote,
    calcular_totales_productos,
)
from aplicaciones.domain.models import (
    ConteoArboles,
    DosisFertilizacion,
    DosisFumigacion,
    LoteSeleccionado,
    Mezcla,
    ProductoEnMezcla,
    TipoAplicacion,
)


def _lote(lote_id="L1", grandes=1000, medianos=0, pequenos=0, clonales=0, calibracion=20.0, caneca=200):
    return LoteSeleccionado(
        lote_id=lote_id,
        nombre=f"Lote {lote_id}",
        conteo_arboles=ConteoArboles(grandes, medianos, pequenos, clonales),
        calibracion_litros_arbol=calibracion,
        tamano_caneca=caneca,
    )


def _prod_fum(pid, dosis, unidad="Litros"):
    return ProductoEnMezcla(pid, f"Prod {pid}", producto_unidad=unidad, dosis=DosisFumigacion(dosis, "cc"))


def _prod_fert(pid, g=0.0, m=0.0, p=0.0, c=0.0):
    return ProductoEnMezcla(pid, f"Prod {pid}", producto_unidad="Kilos", dosis=DosisFertilizacion(g, m, p, c))


def test_ceil2_redondea_hacia_arriba():
    assert ceil2(1.001) == 1.01
    assert ceil2(2.0) == 2.0
    assert ceil2(0.03375) == 0.04
    # ruido binario no sube un centavo
    assert ceil2(5.000000000001) == 5.0
    assert ceil2(0.1 + 0.2) == 0.3


def test_redondear_entero_mitades_hacia_arriba():
    assert redondear_entero(2.5) == 3
    assert redondear_entero(3.5) == 4
    assert redondear_entero(2.4999) == 2
    assert redondear_entero(0) == 0


def test_desviacion_porcentual():
    assert desviacion_porcentual(650, 500) == 30.0
    assert desviacion_porcentual(600, 500) == 20.0
    assert desviacion_porcentual(400, 500) == -20.0
    assert desviacion_porcentual(5, 0) is None
    assert desviacion_porcentual(5, None) is None


def test_fumigacion_ejemplo_base():
    # 1000 árboles × 20 L = 20000 L; /200 = 100 canecas; 100 × 50 cc / 1000 = 5 L
    mezcla = Mezcla("M1", "Mezcla 1", productos=[_prod_fum("P1", 50)], lotes_asignados=["L1"])
    calc = calcular_fumigacion(_lote(), mezcla)
    assert calc.litros_mezcla == 20000.0
    assert calc.numero_canecas == 100.0
    assert calc.productos[0].producto_id == "P1"
    assert calc.productos[0].cantidad_necesaria == 5.0
    assert calc.kilos_totales is None
    assert calc.total_arboles == 1000


def test_fumigacion_fracciones_redondean_con_techo():
    # 150 × 1.5 = 225 L -> 1.125 canecas -> 1.13; 1.125 × 30 / 1000 = 0.03375 -> 0.04
    mezcla = Mezcla("M1", "M", productos=[_prod_fum("P1", 30)], lotes_asignados=["L1"])
    calc = calcular_fumigacion(_lote(grandes=150, calibracion=1.5), mezcla)
    assert calc.litros_mezcla == 225.0
    assert calc.numero_canecas == 1.13
    assert calc.productos[0].cantidad_necesaria == 0.04
    assert isclose(calc.numero_canecas, calc.litros_mezcla / 200, abs_tol=0.01)


def test_fertilizacion_suma_por_clase():
    lote = _lote(grandes=10, medianos=20, pequenos=0, clonales=5, calibracion=None, caneca=None)
    mezcla = Mezcla("M1", "Fert", productos=[
        _prod_fert("P1", g=0.5, m=0.25, c=0.1),   # 5 + 5 + 0.5 = 10.5
        _prod_fert("P2", g=1.0),                  # 10
    ], lotes_asignados=["L1"])
    calc = calcular_fertilizacion(lote, mezcla)
    cantidades = {p.producto_id: p.cantidad_necesaria for p in calc.productos}
    assert cantidades == {"P1": 10.5, "P2": 10.0}
    assert calc.kilos_totales == 20.5
    assert calc.kilos_grandes == 15.0
    assert calc.kilos_medianos == 5.0
    assert calc.kilos_pequenos == 0.0
    assert calc.kilos_clonales == 0.5
    assert calc.numero_bultos == 1  # ceil(20.5 / 25)
    assert calc.litros_mezcla is None


def test_fertilizacion_bultos_con_presentacion_conocida():
    lote = _lote(grandes=10, medianos=20, clonales=5, calibracion=None, caneca=None)
    mezcla = Mezcla("M1", "Fert", productos=[
        _prod_fert("P1", g=0.5, m=0.25, c=0.1),
        _prod_fert("P2", g=1.0),
    ], lotes_asignados=["L1"])
    # P2 en bultos de 4 kg: ceil(10/4) = 3; P1 sin tamaño: ceil(10.5/25) = 1
    calc = calcular_fertilizacion(lote, mezcla, {"P2": 4.0})
    assert calc.numero_bultos == 4


def test_calcular_lote_despacha_por_tipo():
    lote = _lote()
    mezcla_fum = Mezcla("M1", "M", productos=[_prod_fum("P1", 50)], lotes_asignados=["L1"])
    assert calcular_lote(TipoAplicacion.DRENCH, lote, mezcla_fum).numero_canecas == 100.0

    mezcla_fert = Mezcla("M2", "F", productos=[_prod_fert("P1", g=0.1)], lotes_asignados=["L1"])
    assert calcular_lote(TipoAplicacion.FERTILIZACION, lote, mezcla_fert).kilos_totales == 100.0


def test_totales_por_producto_suman_lotes_y_mezclas():
    l1 = _lote("L1", grandes=1000)
    l2 = _lote("L2", grandes=500)
    m1 = Mezcla("M1", "A", productos=[_prod_fum("P1", 50), _prod_fum("P2", 100)], lotes_asignados=["L1", "L2"])
    m2 = Mezcla("M2", "B", productos=[_prod_fum("P1", 10)], lotes_asignados=["L2"])
    calculos = [
        calcular_fumigacion(l1, m1),
        calcular_fumigacion(l2, m1),
        calcular_fumigacion(l2, m2),
    ]
    totales = {p.producto_id: p.cantidad_total_necesaria for p in calcular_totales_productos(calculos, [m1, m2])}
    # P1: 5 + 2.5 + 0.5 ; P2: 10 + 5
    assert totales == {"P1": 8.0, "P2": 15.0}
    # cada mezcla conserva su propio total
    assert m1.productos[0].cantidad_total_necesaria == 7.5
    assert m2.productos[0].cantidad_total_necesaria == 0.5

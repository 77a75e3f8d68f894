import pytest
from aplicaciones.adapters.parsers import parse_cantidad_raw, extraer_tamano_presentacion

@pytest.mark.parametrize(
    "txt,exp_num,exp_unit,exp_desc",
    [
        ("12,5 L - Litros", 12.5, "L", "Litros"),
        ("2 KG - Kilos", 2.0, "KG", "Kilos"),
        ("0.75 l - litro", 0.75, "L", "litro"),
        ("3 kg", 3.0, "KG", None),
        ("7", 7.0, None, None),
        ("", None, None, None),
        (None, None, None, None),
    ],
)
def test_parse_cantidad_raw(txt, exp_num, exp_unit, exp_desc):
    num, unit, desc = parse_cantidad_raw(txt)
    assert (num == exp_num) or (num is None and exp_num is None)
    assert unit == exp_unit
    assert desc == exp_desc


@pytest.mark.parametrize(
    "presentacion,esperado",
    [
        ("Bulto 25kg", 25.0),
        ("Bulto de 50 kg", 50.0),
        ("Tarro de 1L", 1.0),
        ("Galón 4L", 4.0),
        ("Bolsa 2,5 kg", 2.5),
        ("Unidad", 1.0),
        ("", 1.0),
        (None, 1.0),
        ("Caja 0 L", 1.0),
    ],
)
def test_extraer_tamano_presentacion(presentacion, esperado):
    assert extraer_tamano_presentacion(presentacion) == esperado

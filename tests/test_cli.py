import json
from pathlib import Path
from typer.testing import CliRunner

from aplicaciones.adapters.cli import app

runner = CliRunner()


def _invoke(args, db_path, **kw):
    return runner.invoke(app, args + ["--db", str(db_path)], **kw)


def _seed_catalogo(db_path, stock="100"):
    result = _invoke(["catalogo", "lote", "--id", "L1", "--nombre", "Lote 1", "--grandes", "100"], db_path)
    assert result.exit_code == 0, result.output
    result = _invoke([
        "catalogo", "producto", "--id", "P1", "--nombre", "Fungicida",
        "--unidad", "Litros", "--presentacion", "Tarro 1L", "--precio", "1000", "--stock", stock,
    ], db_path)
    assert result.exit_code == 0, result.output


def _crear(tmp_path: Path, db_path):
    # 100 árboles × 20 L = 2000 L -> 10 canecas -> 0.5 L de P1
    datos = {
        "configuracion": {
            "nombre": "Fumigación enero",
            "tipo_aplicacion": "Fumigación",
            "lotes_seleccionados": [{"lote_id": "L1", "calibracion_litros_arbol": 20, "tamano_caneca": 200}],
        },
        "mezclas": [{
            "id": "M1",
            "nombre": "Mezcla 1",
            "productos": [{"producto_id": "P1", "dosis": {"tipo": "fumigacion", "dosis_por_caneca": 50}}],
            "lotes_asignados": ["L1"],
        }],
    }
    path = tmp_path / "aplicacion.json"
    path.write_text(json.dumps(datos), encoding="utf-8")
    result = _invoke(["crear", str(path), "--id", "FUM-01"], db_path)
    assert result.exit_code == 0, result.output
    assert "FUM-01" in result.stdout


def test_cli_migrate_and_params_show(tmp_path: Path):
    db_path = tmp_path / "aplicaciones_test.sqlite"
    result = runner.invoke(app, ["migrate", "--db", str(db_path)])
    assert result.exit_code == 0, result.output

    # sin parámetros guardados se usan los defaults
    result = runner.invoke(app, ["params", "show", "--db", str(db_path)])
    assert result.exit_code == 0, result.output
    data = json.loads(result.stdout)
    assert data["valor_jornal"] == 60000.0
    assert data["umbral_aprobacion"] == 20.0
    assert "_defaults" in data


def test_cli_params_set_and_get(tmp_path: Path):
    db_path = tmp_path / "aplicaciones_test.sqlite"
    result = runner.invoke(app, ["migrate", "--db", str(db_path)])
    assert result.exit_code == 0

    result = _invoke(["params", "set", "--valor-jornal", "65000"], db_path)
    assert result.exit_code == 0, result.output

    result = _invoke(["params", "get", "valor_jornal"], db_path)
    assert result.exit_code == 0
    assert result.stdout.strip() == "65000.0"

    result = _invoke(["params", "set"], db_path)
    assert result.exit_code == 1


def test_cli_ciclo_completo(tmp_path: Path):
    db_path = tmp_path / "aplicaciones_test.sqlite"
    assert runner.invoke(app, ["migrate", "--db", str(db_path)]).exit_code == 0
    _seed_catalogo(db_path)
    _crear(tmp_path, db_path)

    result = _invoke(["compras", "FUM-01"], db_path)
    assert result.exit_code == 0, result.output
    assert "Costo total estimado" in result.stdout

    result = _invoke(["iniciar", "FUM-01", "--fecha", "2025-01-01"], db_path)
    assert result.exit_code == 0, result.output
    assert "en ejecución" in result.stdout

    # fumigación exige canecas
    result = _invoke([
        "movimiento", "FUM-01", "--fecha", "2025-01-02", "--lote", "L1", "--producto", "P1",
        "--cantidad", "0.5", "--responsable", "Ana",
    ], db_path)
    assert result.exit_code == 1

    result = _invoke([
        "movimiento", "FUM-01", "--fecha", "2025-01-02", "--lote", "L1", "--producto", "P1",
        "--cantidad", "0.5", "--responsable", "Ana", "--canecas", "10",
    ], db_path)
    assert result.exit_code == 0, result.output
    assert "registrado" in result.stdout

    result = _invoke(["resumen", "FUM-01"], db_path)
    assert result.exit_code == 0, result.output

    result = _invoke(["cerrar", "FUM-01", "--fecha-final", "2025-01-03", "--jornales-aplicacion", "1",
                      "--valor-jornal", "50000"], db_path)
    assert result.exit_code == 0, result.output
    assert "Cerrada" in result.stdout

    result = _invoke(["reporte", "FUM-01", "--json"], db_path)
    assert result.exit_code == 0, result.output
    datos = json.loads(result.stdout)
    assert datos["estado"] == "Cerrada"
    assert datos["dias_aplicacion"] == 3
    assert datos["costo_insumos_total"] == 500.0
    assert datos["costo_mano_obra_total"] == 50000.0
    assert datos["productos"][0]["porcentaje_desviacion"] == 0.0

    result = _invoke(["reporte", "FUM-01", "--consumo"], db_path)
    assert result.exit_code == 0, result.output

    result = _invoke(["ver"], db_path)
    assert result.exit_code == 0, result.output

    result = _invoke(["ver", "FUM-01"], db_path)
    assert result.exit_code == 0, result.output
    assert json.loads(result.stdout)["estado"] == "Cerrada"


def test_cli_iniciar_pide_confirmacion(tmp_path: Path):
    db_path = tmp_path / "aplicaciones_test.sqlite"
    assert runner.invoke(app, ["migrate", "--db", str(db_path)]).exit_code == 0
    _seed_catalogo(db_path, stock="0")
    _crear(tmp_path, db_path)

    result = _invoke(["iniciar", "FUM-01", "--fecha", "2025-01-01"], db_path, input="n\n")
    assert result.exit_code == 1

    result = _invoke(["iniciar", "FUM-01", "--fecha", "2025-01-01"], db_path, input="y\n")
    assert result.exit_code == 0, result.output
    assert "en ejecución" in result.stdout


def test_cli_reporte_sin_cierre(tmp_path: Path):
    db_path = tmp_path / "aplicaciones_test.sqlite"
    assert runner.invoke(app, ["migrate", "--db", str(db_path)]).exit_code == 0
    _seed_catalogo(db_path)
    _crear(tmp_path, db_path)

    result = _invoke(["reporte", "FUM-01"], db_path)
    assert result.exit_code == 1
    assert "no tiene cierre" in result.stdout


def test_cli_crear_con_id_existente_falla(tmp_path: Path):
    db_path = tmp_path / "aplicaciones_test.sqlite"
    assert runner.invoke(app, ["migrate", "--db", str(db_path)]).exit_code == 0
    _seed_catalogo(db_path)
    _crear(tmp_path, db_path)
    assert _invoke(["iniciar", "FUM-01", "--fecha", "2025-01-01"], db_path).exit_code == 0

    result = _invoke(["crear", str(tmp_path / "aplicacion.json"), "--id", "FUM-01"], db_path)
    assert result.exit_code == 1

    result = _invoke(["ver", "FUM-01"], db_path)
    assert json.loads(result.stdout)["estado"] == "En ejecución"

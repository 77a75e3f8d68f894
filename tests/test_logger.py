from pathlib import Path

from aplicaciones.infra import logger as log


def _tmp_logger(monkeypatch, tmp_path: Path, attr: str, key: str):
    path = tmp_path / "logs" / f"{key}.log"
    monkeypatch.setattr(log, attr, log.setup_logger(f"aplicaciones.test.{key}", str(path)))
    monkeypatch.setitem(log.LOG_FILES, key, path)
    return path


def test_setup_logger_escribe_en_archivo(tmp_path: Path):
    path = tmp_path / "logs" / "prueba.log"
    lg = log.setup_logger("aplicaciones.test.setup", str(path))
    lg.info("hola")
    assert lg.propagate is False
    assert len(lg.handlers) == 1
    assert "INFO - hola" in path.read_text(encoding="utf-8")

    # reconfigurar no duplica handlers
    lg = log.setup_logger("aplicaciones.test.setup", str(path))
    assert len(lg.handlers) == 1


def test_helpers_deshabilitados_no_escriben(monkeypatch, tmp_path: Path):
    monkeypatch.setattr(log, "ENABLE_LOGGING", False)
    monkeypatch.setattr(log, "ENABLE_OUTPUT", False)
    path = _tmp_logger(monkeypatch, tmp_path, "transaction_logger", "transactions")

    log.log_transaction("crear_aplicacion", {"id": "A1"}, result="ok")
    assert not path.exists()
    assert log.get_log_summary("transactions") is None


def test_transacciones_exito_y_error(monkeypatch, tmp_path: Path):
    monkeypatch.setattr(log, "ENABLE_LOGGING", True)
    _tmp_logger(monkeypatch, tmp_path, "transaction_logger", "transactions")

    log.log_transaction("crear_aplicacion", {"id": "A1"}, result={"calculos": 2})
    log.log_transaction("cierre", {"id": "A1"}, error="sin jornales")

    resumen = log.get_log_summary("transactions", lines=5)
    assert "TRANSACTION_SUCCESS: crear_aplicacion" in resumen
    assert "TRANSACTION_FAILED: cierre - sin jornales" in resumen
    assert "ERROR" in resumen


def test_movimientos_cierres_y_sistema(monkeypatch, tmp_path: Path):
    monkeypatch.setattr(log, "ENABLE_LOGGING", True)
    _tmp_logger(monkeypatch, tmp_path, "movimiento_logger", "movimientos")
    _tmp_logger(monkeypatch, tmp_path, "cierre_logger", "cierres")
    _tmp_logger(monkeypatch, tmp_path, "database_logger", "database")
    _tmp_logger(monkeypatch, tmp_path, "system_logger", "system")

    log.log_movimiento("insert", "A1", "P1", 5.0, "L1", fecha="2025-03-02")
    log.log_cierre("aprobado", "A1", aprobado_por="Gerente")
    log.log_database_operation("movimiento_diario", "DELETE", 1, movimiento_id=7)
    log.log_system_event("cierre_error", {"error": "x"}, level="error")
    log.log_file_operation("import", "movimientos.xlsx", rows_processed=12)

    assert "MOVIMIENTO_INSERT" in log.get_log_summary("movimientos")
    assert "'aprobado_por': 'Gerente'" in log.get_log_summary("cierres")
    assert "DB_DELETE" in log.get_log_summary("database")
    sistema = log.get_log_summary("system")
    assert "ERROR - SYSTEM_EVENT: cierre_error" in sistema
    assert "FILE_IMPORT" in sistema
    assert log.get_log_summary("inexistente") == "Log inexistente no encontrado."

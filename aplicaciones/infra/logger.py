# aplicaciones/infra/logger.py
"""
Sistema de logging del motor de aplicaciones.

Configura un logger por asunto (transacciones, movimientos diarios, cierres,
base de datos y sistema), cada uno con su propio archivo bajo `logs/`, y
expone funciones auxiliares para registrar las operaciones críticas.
"""

import logging
from pathlib import Path
from typing import Any, Dict, Optional


# Flag global para habilitar/deshabilitar el logging
ENABLE_LOGGING = False
# Flag global para habilitar/deshabilitar la salida por consola
ENABLE_OUTPUT = False


def print_system(*args, **kwargs):
    """Print controlado por ENABLE_OUTPUT."""
    if ENABLE_OUTPUT:
        print(*args, **kwargs)


LOG_FORMAT = '%(asctime)s - %(name)s - %(levelname)s - %(message)s'
DATE_FORMAT = '%Y-%m-%d %H:%M:%S'


def setup_logger(name: str, log_file: str, level: int = logging.INFO) -> logging.Logger:
    """
    Configura un logger con salida a archivo.

    Args:
        name: Nombre del logger
        log_file: Ruta del archivo de log
        level: Nivel de logging

    Returns:
        Logger configurado
    """
    log_path = Path(log_file)
    log_path.parent.mkdir(parents=True, exist_ok=True)

    logger = logging.getLogger(name)
    logger.setLevel(level)
    # no duplicar en el logger raíz
    logger.propagate = False

    while logger.handlers:
        logger.removeHandler(logger.handlers[0])

    file_handler = logging.FileHandler(log_file, encoding='utf-8', delay=True)
    file_handler.setLevel(level)
    file_handler.setFormatter(logging.Formatter(LOG_FORMAT, DATE_FORMAT))
    logger.addHandler(file_handler)

    return logger


# Directorio base de logs (dentro del paquete)
BASE_DIR = Path(__file__).parent.parent
LOGS_DIR = BASE_DIR / "logs"

LOG_FILES = {
    "transactions": LOGS_DIR / "transactions.log",
    "movimientos": LOGS_DIR / "movimientos.log",
    "cierres": LOGS_DIR / "cierres.log",
    "database": LOGS_DIR / "database.log",
    "system": LOGS_DIR / "system.log",
}

transaction_logger = setup_logger('aplicaciones.transactions', str(LOG_FILES["transactions"]))
movimiento_logger = setup_logger('aplicaciones.movimientos', str(LOG_FILES["movimientos"]))
cierre_logger = setup_logger('aplicaciones.cierres', str(LOG_FILES["cierres"]))
database_logger = setup_logger('aplicaciones.database', str(LOG_FILES["database"]))
system_logger = setup_logger('aplicaciones.system', str(LOG_FILES["system"]))


def log_transaction(operation: str, data: Dict[str, Any], result: Optional[Any] = None, error: Optional[str] = None) -> None:
    """
    Registra una transacción completa.

    Args:
        operation: Tipo de operación (crear, iniciar, cierre, ...)
        data: Datos de la transacción
        result: Resultado (opcional)
        error: Mensaje de error (opcional)
    """
    if not (ENABLE_LOGGING or ENABLE_OUTPUT):
        return
    if error:
        transaction_logger.error(f"TRANSACTION_FAILED: {operation} - {error} - Data: {data}")
    else:
        transaction_logger.info(f"TRANSACTION_SUCCESS: {operation} - Result: {result} - Data: {data}")


def log_movimiento(action: str, aplicacion_id: str, producto_id: Optional[str] = None,
                   cantidad: Optional[float] = None, lote_id: Optional[str] = None, **kwargs) -> None:
    """
    Log específico de movimientos diarios.

    Args:
        action: Acción (insert, delete, import)
        aplicacion_id: Aplicación afectada
        producto_id: Producto movido
        cantidad: Cantidad consumida
        lote_id: Lote (opcional)
        **kwargs: Datos adicionales
    """
    if not (ENABLE_LOGGING or ENABLE_OUTPUT):
        return
    log_data = {
        "action": action,
        "aplicacion_id": aplicacion_id,
        "producto_id": producto_id,
        "cantidad": cantidad,
        "lote_id": lote_id,
        **kwargs,
    }
    movimiento_logger.info(f"MOVIMIENTO_{action.upper()}: {log_data}")


def log_cierre(action: str, aplicacion_id: str, **kwargs) -> None:
    """Log de cierres y aprobaciones."""
    if not (ENABLE_LOGGING or ENABLE_OUTPUT):
        return
    log_data = {"action": action, "aplicacion_id": aplicacion_id, **kwargs}
    cierre_logger.info(f"CIERRE_{action.upper()}: {log_data}")


def log_database_operation(table: str, operation: str, affected_rows: int = 0, **kwargs) -> None:
    """
    Log de operaciones en la base de datos.

    Args:
        table: Tabla
        operation: Operación SQL (INSERT, UPDATE, DELETE, SELECT)
        affected_rows: Filas afectadas
        **kwargs: Datos adicionales
    """
    if not (ENABLE_LOGGING or ENABLE_OUTPUT):
        return
    log_data = {
        "table": table,
        "operation": operation,
        "affected_rows": affected_rows,
        **kwargs,
    }
    database_logger.info(f"DB_{operation}: {log_data}")


def log_system_event(event: str, details: Dict[str, Any] = None, level: str = "info") -> None:
    """
    Log de eventos del sistema.

    Args:
        event: Descripción del evento
        details: Detalles adicionales (opcional)
        level: Nivel (info, warning, error)
    """
    if not (ENABLE_LOGGING or ENABLE_OUTPUT):
        return
    log_data = {"event": event, "details": details or {}}
    log_method = getattr(system_logger, level.lower(), system_logger.info)
    log_method(f"SYSTEM_EVENT: {event} - {log_data}")


def log_file_operation(operation: str, file_path: str, rows_processed: int = 0, **kwargs) -> None:
    """Log de importaciones de archivos."""
    if not (ENABLE_LOGGING or ENABLE_OUTPUT):
        return
    log_data = {
        "operation": operation,
        "file_path": file_path,
        "rows_processed": rows_processed,
        **kwargs,
    }
    system_logger.info(f"FILE_{operation.upper()}: {log_data}")


def get_log_summary(log_type: str = "transactions", lines: int = 100) -> Optional[str]:
    """
    Devuelve las últimas líneas de un log.

    Args:
        log_type: transactions, movimientos, cierres, database, system
        lines: Número de líneas

    Returns:
        Contenido del log como string
    """
    if not (ENABLE_LOGGING or ENABLE_OUTPUT):
        return None

    log_file = LOG_FILES.get(log_type)
    if not log_file or not log_file.exists():
        return f"Log {log_type} no encontrado."

    with open(log_file, 'r', encoding='utf-8') as f:
        all_lines = f.readlines()
    return ''.join(all_lines[-lines:])

# aplicaciones/infra/views.py
"""
Creación de views auxiliares para consultas frecuentes.

Views creadas:
- vw_consumo_lote_producto: consumo real por aplicación, lote y producto.
- vw_aplicaciones_estado:   resumen de aplicaciones con número de movimientos.

Obs.:
- Las views asumen que las migraciones V1→V2 ya se aplicaron.
- También se crean índices útiles si no existen.
"""

from __future__ import annotations

from .db import connect


def create_views(db_path: str) -> None:
    with connect(db_path) as c:
        c.executescript(
            """
            DROP VIEW IF EXISTS vw_consumo_lote_producto;
            CREATE VIEW vw_consumo_lote_producto AS
            SELECT
                aplicacion_id,
                lote_id,
                MAX(lote_nombre)          AS lote_nombre,
                producto_id,
                MAX(producto_nombre)      AS producto_nombre,
                MAX(producto_unidad)      AS producto_unidad,
                SUM(cantidad_utilizada)   AS cantidad_total,
                COALESCE(SUM(numero_canecas), 0.0) AS canecas_total,
                COUNT(*)                  AS num_movimientos,
                MIN(fecha_movimiento)     AS primera_fecha,
                MAX(fecha_movimiento)     AS ultima_fecha
            FROM movimiento_diario
            GROUP BY aplicacion_id, lote_id, producto_id;

            DROP VIEW IF EXISTS vw_aplicaciones_estado;
            CREATE VIEW vw_aplicaciones_estado AS
            SELECT
                a.id,
                a.nombre,
                a.tipo_aplicacion,
                a.estado,
                a.fecha_inicio_ejecucion,
                a.fecha_cierre,
                COUNT(m.id) AS num_movimientos
            FROM aplicacion a
            LEFT JOIN movimiento_diario m ON m.aplicacion_id = a.id
            GROUP BY a.id;
            """
        )

        c.executescript(
            """
            CREATE INDEX IF NOT EXISTS idx_mov_aplicacion ON movimiento_diario(aplicacion_id);
            CREATE INDEX IF NOT EXISTS idx_mov_lote       ON movimiento_diario(aplicacion_id, lote_id);
            CREATE INDEX IF NOT EXISTS idx_mov_fecha      ON movimiento_diario(fecha_movimiento);
            CREATE INDEX IF NOT EXISTS idx_app_estado     ON aplicacion(estado);
            """
        )

# aplicaciones/config.py
"""
Configuración global y valores por defecto del motor de aplicaciones.
"""

import os
from dataclasses import dataclass


# Ruta por defecto de la base de datos SQLite
DB_PATH = os.path.join(os.getcwd(), "aplicaciones.db")

# Tamaños de caneca admitidos (litros)
TAMANOS_CANECA = (20, 200, 500, 1000)


@dataclass
class DefaultConfig:
    """Valores por defecto de los parámetros del sistema."""
    valor_jornal: float = 60000.0     # COP por jornal
    umbral_aprobacion: float = 20.0   # % de desviación máxima sin aprobación (política fija)
    tamano_bulto_kg: float = 25.0     # bulto de referencia cuando no hay presentación
    alerta_advertencia: float = 90.0  # % usado → warning
    alerta_info: float = 75.0         # % usado → info


# Instancia global de los valores por defecto
DEFAULTS = DefaultConfig()

# app.py
"""
Entrypoint de la aplicación.

Uso:
  python app.py migrate --db aplicaciones.db
  python app.py params show
  python app.py crear aplicacion.json --id FUM-01
  python app.py iniciar FUM-01 --fecha 2025-03-01
  python app.py movimientos-lote FUM-01 movimientos.xlsx
  python app.py cerrar FUM-01 --jornales-aplicacion 12
"""

from aplicaciones.adapters.cli import main

if __name__ == "__main__":
    main()

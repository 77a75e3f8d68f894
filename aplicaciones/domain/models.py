# aplicaciones/domain/models.py
"""
Modelos (dataclasses) del dominio de aplicaciones.

Observación importante:
- El agregado `Aplicacion` se persiste como JSON; cada dataclass expone
  `to_dict()` y `from_dict()` para ese propósito.
- Las cantidades derivadas (cálculos por lote, totales, lista de compras,
  cierre) nunca se editan a mano: se recalculan completas en cada cambio.
"""

from __future__ import annotations

from dataclasses import asdict, dataclass, field
from enum import Enum
from typing import Any, Dict, List, Optional, Union


class TipoAplicacion(str, Enum):
    FUMIGACION = "Fumigación"
    FERTILIZACION = "Fertilización"
    DRENCH = "Drench"

    @property
    def usa_canecas(self) -> bool:
        """Fumigación y drench comparten el cálculo por caneca."""
        return self in (TipoAplicacion.FUMIGACION, TipoAplicacion.DRENCH)


class EstadoAplicacion(str, Enum):
    CALCULADA = "Calculada"
    EN_EJECUCION = "En ejecución"
    PENDIENTE_APROBACION = "Pendiente de Aprobación"
    CERRADA = "Cerrada"


def _opt_float(val: Any) -> Optional[float]:
    if val is None or val == "":
        return None
    return float(val)


def _opt_int(val: Any) -> Optional[int]:
    if val is None or val == "":
        return None
    return int(float(val))


# -------------------------
# Configuración y lotes
# -------------------------

@dataclass
class ConteoArboles:
    """Censo de árboles por tamaño. `total` debe ser la suma de las cuatro clases."""
    grandes: int = 0
    medianos: int = 0
    pequenos: int = 0
    clonales: int = 0
    total: Optional[int] = None

    def __post_init__(self) -> None:
        if self.total is None:
            self.total = self.suma_clases()

    def suma_clases(self) -> int:
        return self.grandes + self.medianos + self.pequenos + self.clonales

    @classmethod
    def from_dict(cls, d: Dict[str, Any]) -> "ConteoArboles":
        return cls(
            grandes=int(d.get("grandes") or 0),
            medianos=int(d.get("medianos") or 0),
            pequenos=int(d.get("pequenos") or 0),
            clonales=int(d.get("clonales") or 0),
            total=_opt_int(d.get("total")),
        )


@dataclass
class LoteSeleccionado:
    lote_id: str
    nombre: str
    area_hectareas: float = 0.0
    conteo_arboles: ConteoArboles = field(default_factory=ConteoArboles)
    sublotes_ids: List[str] = field(default_factory=list)
    # Solo fumigación / drench
    calibracion_litros_arbol: Optional[float] = None
    tamano_caneca: Optional[int] = None           # 20 | 200 | 500 | 1000

    @classmethod
    def from_dict(cls, d: Dict[str, Any]) -> "LoteSeleccionado":
        return cls(
            lote_id=str(d["lote_id"]),
            nombre=str(d.get("nombre") or d["lote_id"]),
            area_hectareas=float(d.get("area_hectareas") or 0.0),
            conteo_arboles=ConteoArboles.from_dict(d.get("conteo_arboles") or {}),
            sublotes_ids=[str(s) for s in d.get("sublotes_ids") or []],
            calibracion_litros_arbol=_opt_float(d.get("calibracion_litros_arbol")),
            tamano_caneca=_opt_int(d.get("tamano_caneca")),
        )


@dataclass
class ConfiguracionAplicacion:
    nombre: str
    tipo_aplicacion: TipoAplicacion
    fecha_inicio_planeada: Optional[str] = None
    fecha_fin_planeada: Optional[str] = None
    fecha_recomendacion: Optional[str] = None
    proposito: Optional[str] = None
    agronomo_responsable: Optional[str] = None
    blanco_biologico: List[str] = field(default_factory=list)  # solo registro
    lotes_seleccionados: List[LoteSeleccionado] = field(default_factory=list)

    def lote(self, lote_id: str) -> Optional[LoteSeleccionado]:
        for l in self.lotes_seleccionados:
            if l.lote_id == lote_id:
                return l
        return None

    def to_dict(self) -> Dict[str, Any]:
        d = asdict(self)
        d["tipo_aplicacion"] = self.tipo_aplicacion.value
        return d

    @classmethod
    def from_dict(cls, d: Dict[str, Any]) -> "ConfiguracionAplicacion":
        return cls(
            nombre=str(d.get("nombre") or ""),
            tipo_aplicacion=TipoAplicacion(d["tipo_aplicacion"]),
            fecha_inicio_planeada=d.get("fecha_inicio_planeada"),
            fecha_fin_planeada=d.get("fecha_fin_planeada"),
            fecha_recomendacion=d.get("fecha_recomendacion"),
            proposito=d.get("proposito"),
            agronomo_responsable=d.get("agronomo_responsable"),
            blanco_biologico=list(d.get("blanco_biologico") or []),
            lotes_seleccionados=[LoteSeleccionado.from_dict(x) for x in d.get("lotes_seleccionados") or []],
        )


# -------------------------
# Dosis (unión etiquetada) y mezclas
# -------------------------

@dataclass
class DosisFumigacion:
    """Dosis por caneca, en unidad fina (cc o gramos)."""
    dosis_por_caneca: float = 0.0
    unidad_dosis: str = "cc"              # 'cc' | 'gramos'

    TIPO = "fumigacion"


@dataclass
class DosisFertilizacion:
    """Dosis por árbol (kg) según tamaño."""
    grandes: float = 0.0
    medianos: float = 0.0
    pequenos: float = 0.0
    clonales: float = 0.0

    TIPO = "fertilizacion"

    def tiene_alguna(self) -> bool:
        return any(v > 0 for v in (self.grandes, self.medianos, self.pequenos, self.clonales))


Dosis = Union[DosisFumigacion, DosisFertilizacion]


def dosis_to_dict(dosis: Optional[Dosis]) -> Optional[Dict[str, Any]]:
    if dosis is None:
        return None
    d = asdict(dosis)
    d["tipo"] = dosis.TIPO
    return d


def dosis_from_dict(d: Optional[Dict[str, Any]]) -> Optional[Dosis]:
    if not d:
        return None
    tipo = d.get("tipo")
    if tipo == DosisFumigacion.TIPO:
        return DosisFumigacion(
            dosis_por_caneca=float(d.get("dosis_por_caneca") or 0.0),
            unidad_dosis=str(d.get("unidad_dosis") or "cc"),
        )
    if tipo == DosisFertilizacion.TIPO:
        return DosisFertilizacion(
            grandes=float(d.get("grandes") or 0.0),
            medianos=float(d.get("medianos") or 0.0),
            pequenos=float(d.get("pequenos") or 0.0),
            clonales=float(d.get("clonales") or 0.0),
        )
    raise ValueError(f"tipo de dosis desconocido: {tipo!r}")


@dataclass
class ProductoEnMezcla:
    producto_id: str
    producto_nombre: str
    producto_categoria: str = ""
    producto_unidad: str = "Litros"       # 'Litros' | 'Kilos' | 'Unidades'
    dosis: Optional[Dosis] = None
    cantidad_total_necesaria: float = 0.0  # derivada

    def to_dict(self) -> Dict[str, Any]:
        return {
            "producto_id": self.producto_id,
            "producto_nombre": self.producto_nombre,
            "producto_categoria": self.producto_categoria,
            "producto_unidad": self.producto_unidad,
            "dosis": dosis_to_dict(self.dosis),
            "cantidad_total_necesaria": self.cantidad_total_necesaria,
        }

    @classmethod
    def from_dict(cls, d: Dict[str, Any]) -> "ProductoEnMezcla":
        return cls(
            producto_id=str(d["producto_id"]),
            producto_nombre=str(d.get("producto_nombre") or d["producto_id"]),
            producto_categoria=str(d.get("producto_categoria") or ""),
            producto_unidad=str(d.get("producto_unidad") or "Litros"),
            dosis=dosis_from_dict(d.get("dosis")),
            cantidad_total_necesaria=float(d.get("cantidad_total_necesaria") or 0.0),
        )


@dataclass
class Mezcla:
    id: str
    nombre: str
    numero_orden: int = 1
    productos: List[ProductoEnMezcla] = field(default_factory=list)
    lotes_asignados: List[str] = field(default_factory=list)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "nombre": self.nombre,
            "numero_orden": self.numero_orden,
            "productos": [p.to_dict() for p in self.productos],
            "lotes_asignados": list(self.lotes_asignados),
        }

    @classmethod
    def from_dict(cls, d: Dict[str, Any]) -> "Mezcla":
        return cls(
            id=str(d["id"]),
            nombre=str(d.get("nombre") or d["id"]),
            numero_orden=int(d.get("numero_orden") or 1),
            productos=[ProductoEnMezcla.from_dict(p) for p in d.get("productos") or []],
            lotes_asignados=[str(x) for x in d.get("lotes_asignados") or []],
        )


# -------------------------
# Cálculos
# -------------------------

@dataclass
class ProductoCalculado:
    producto_id: str
    cantidad_necesaria: float


@dataclass
class CalculoLote:
    mezcla_id: str
    lote_id: str
    lote_nombre: str
    total_arboles: int
    # Fumigación / drench
    litros_mezcla: Optional[float] = None
    numero_canecas: Optional[float] = None
    # Fertilización
    kilos_totales: Optional[float] = None
    numero_bultos: Optional[int] = None
    kilos_grandes: Optional[float] = None
    kilos_medianos: Optional[float] = None
    kilos_pequenos: Optional[float] = None
    kilos_clonales: Optional[float] = None
    productos: List[ProductoCalculado] = field(default_factory=list)

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)

    @classmethod
    def from_dict(cls, d: Dict[str, Any]) -> "CalculoLote":
        d = dict(d)
        d["productos"] = [ProductoCalculado(**p) for p in d.get("productos") or []]
        return cls(**d)


# -------------------------
# Catálogo y lista de compras
# -------------------------

@dataclass
class ProductoCatalogo:
    id: str
    nombre: str
    categoria: str = ""
    unidad_medida: str = "Litros"
    estado_fisico: str = "liquido"         # 'liquido' | 'solido'
    presentacion_comercial: str = ""       # texto de exhibición, ej.: "Bulto 25kg"
    tamano_presentacion: Optional[float] = None
    precio_unitario: Optional[float] = None  # por L/Kg
    cantidad_actual: float = 0.0


@dataclass
class ItemListaCompras:
    producto_id: str
    producto_nombre: str
    producto_categoria: str
    unidad: str
    inventario_actual: float
    cantidad_necesaria: float
    cantidad_faltante: float
    presentacion_comercial: str
    tamano_presentacion: float
    unidades_a_comprar: int
    precio_unitario: float
    costo_estimado: float
    alerta: str = "normal"                 # 'sin_precio' | 'sin_stock' | 'normal'


@dataclass
class ListaCompras:
    items: List[ItemListaCompras] = field(default_factory=list)
    costo_total_estimado: float = 0.0
    productos_sin_precio: int = 0
    productos_sin_stock: int = 0
    advertencias: List[str] = field(default_factory=list)

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)

    @classmethod
    def from_dict(cls, d: Dict[str, Any]) -> "ListaCompras":
        return cls(
            items=[ItemListaCompras(**i) for i in d.get("items") or []],
            costo_total_estimado=float(d.get("costo_total_estimado") or 0.0),
            productos_sin_precio=int(d.get("productos_sin_precio") or 0),
            productos_sin_stock=int(d.get("productos_sin_stock") or 0),
            advertencias=list(d.get("advertencias") or []),
        )


# -------------------------
# Movimientos diarios
# -------------------------

@dataclass
class MovimientoDiario:
    aplicacion_id: str
    fecha_movimiento: str                  # ISO (YYYY-MM-DD)
    lote_id: str
    producto_id: str
    cantidad_utilizada: float
    responsable: str
    lote_nombre: Optional[str] = None
    producto_nombre: Optional[str] = None
    producto_unidad: Optional[str] = None
    notas: Optional[str] = None
    numero_canecas: Optional[float] = None
    costo_unitario: Optional[float] = None  # precio de catálogo al registrar
    id: Optional[int] = None

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)

    @classmethod
    def from_dict(cls, d: Dict[str, Any]) -> "MovimientoDiario":
        return cls(
            aplicacion_id=str(d["aplicacion_id"]),
            fecha_movimiento=str(d["fecha_movimiento"]),
            lote_id=str(d["lote_id"]),
            producto_id=str(d["producto_id"]),
            cantidad_utilizada=float(d.get("cantidad_utilizada") or 0.0),
            responsable=str(d.get("responsable") or ""),
            lote_nombre=d.get("lote_nombre"),
            producto_nombre=d.get("producto_nombre"),
            producto_unidad=d.get("producto_unidad"),
            notas=d.get("notas"),
            numero_canecas=_opt_float(d.get("numero_canecas")),
            costo_unitario=_opt_float(d.get("costo_unitario")),
            id=_opt_int(d.get("id")),
        )


@dataclass
class ResumenMovimiento:
    producto_id: str
    producto_nombre: str
    producto_unidad: str
    total_utilizado: float
    cantidad_planeada: float
    diferencia: float
    porcentaje_usado: float
    excede_planeado: bool


@dataclass
class AlertaMovimiento:
    tipo: str                              # 'error' | 'warning' | 'info'
    producto_id: str
    producto_nombre: str
    mensaje: str
    porcentaje_usado: float


# -------------------------
# Cierre
# -------------------------

@dataclass
class JornalesPorActividad:
    aplicacion: float = 0.0
    mezcla: float = 0.0
    transporte: float = 0.0
    otros: float = 0.0

    @property
    def total(self) -> float:
        return self.aplicacion + self.mezcla + self.transporte + self.otros


@dataclass
class ComparacionProducto:
    producto_id: str
    producto_nombre: str
    producto_unidad: str
    cantidad_planeada: float
    cantidad_real: float
    diferencia: float
    porcentaje_desviacion: float
    costo_unitario: float
    costo_total: float


@dataclass
class DetalleCierreLote:
    lote_id: str
    lote_nombre: str
    total_arboles: int
    jornales: JornalesPorActividad
    jornales_lote: int
    costo_insumos: float
    costo_mano_obra: float
    costo_total: float
    costo_por_arbol: float
    canecas_planeadas: Optional[float] = None
    litros_planeados: Optional[float] = None
    kilos_planeados: Optional[float] = None
    canecas_reales: Optional[float] = None
    litros_reales: Optional[float] = None
    kilos_reales: Optional[float] = None
    desviacion_canecas: Optional[float] = None
    desviacion_litros: Optional[float] = None
    desviacion_kilos: Optional[float] = None
    arboles_por_jornal: Optional[float] = None
    litros_por_arbol: Optional[float] = None
    kilos_por_arbol: Optional[float] = None

    @classmethod
    def from_dict(cls, d: Dict[str, Any]) -> "DetalleCierreLote":
        d = dict(d)
        d["jornales"] = JornalesPorActividad(**d["jornales"])
        return cls(**d)


@dataclass
class CierreAplicacion:
    aplicacion_id: str
    fecha_inicio: Optional[str]
    fecha_final: str
    dias_aplicacion: int
    valor_jornal: float
    jornales_totales: JornalesPorActividad
    detalles_lotes: List[DetalleCierreLote]
    comparacion_productos: List[ComparacionProducto]
    costo_insumos_total: float
    costo_mano_obra_total: float
    costo_total: float
    costo_promedio_por_arbol: float
    total_arboles_tratados: int
    total_jornales: float
    arboles_por_jornal: float
    requiere_aprobacion: bool
    desviacion_maxima: float
    observaciones_generales: Optional[str] = None
    condiciones_meteorologicas: Optional[str] = None
    problemas_encontrados: Optional[str] = None
    ajustes_realizados: Optional[str] = None
    aprobado_por: Optional[str] = None
    fecha_aprobacion: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)

    @classmethod
    def from_dict(cls, d: Dict[str, Any]) -> "CierreAplicacion":
        d = dict(d)
        d["jornales_totales"] = JornalesPorActividad(**d["jornales_totales"])
        d["detalles_lotes"] = [DetalleCierreLote.from_dict(x) for x in d.get("detalles_lotes") or []]
        d["comparacion_productos"] = [ComparacionProducto(**x) for x in d.get("comparacion_productos") or []]
        return cls(**d)


# -------------------------
# Agregado raíz
# -------------------------

@dataclass
class Aplicacion:
    id: str
    configuracion: ConfiguracionAplicacion
    estado: EstadoAplicacion = EstadoAplicacion.CALCULADA
    mezclas: List[Mezcla] = field(default_factory=list)
    calculos: List[CalculoLote] = field(default_factory=list)
    lista_compras: Optional[ListaCompras] = None
    cierre: Optional[CierreAplicacion] = None
    fecha_inicio_ejecucion: Optional[str] = None
    fecha_cierre: Optional[str] = None

    @property
    def tipo(self) -> TipoAplicacion:
        return self.configuracion.tipo_aplicacion

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "configuracion": self.configuracion.to_dict(),
            "estado": self.estado.value,
            "mezclas": [m.to_dict() for m in self.mezclas],
            "calculos": [c.to_dict() for c in self.calculos],
            "lista_compras": self.lista_compras.to_dict() if self.lista_compras else None,
            "cierre": self.cierre.to_dict() if self.cierre else None,
            "fecha_inicio_ejecucion": self.fecha_inicio_ejecucion,
            "fecha_cierre": self.fecha_cierre,
        }

    @classmethod
    def from_dict(cls, d: Dict[str, Any]) -> "Aplicacion":
        return cls(
            id=str(d["id"]),
            configuracion=ConfiguracionAplicacion.from_dict(d["configuracion"]),
            estado=EstadoAplicacion(d.get("estado") or EstadoAplicacion.CALCULADA.value),
            mezclas=[Mezcla.from_dict(m) for m in d.get("mezclas") or []],
            calculos=[CalculoLote.from_dict(c) for c in d.get("calculos") or []],
            lista_compras=ListaCompras.from_dict(d["lista_compras"]) if d.get("lista_compras") else None,
            cierre=CierreAplicacion.from_dict(d["cierre"]) if d.get("cierre") else None,
            fecha_inicio_ejecucion=d.get("fecha_inicio_ejecucion"),
            fecha_cierre=d.get("fecha_cierre"),
        )


@dataclass
class ErrorValidacion:
    """Mensaje legible asociado a la entidad que lo origina."""
    entidad: str
    mensaje: str

    def __str__(self) -> str:
        return f"{self.entidad}: {self.mensaje}"

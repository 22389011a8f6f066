from dataclasses import dataclass, field
from enum import Enum
from typing import ClassVar


class RowKind(str, Enum):
    INGRESS = "ingress"
    EGRESS = "egress"


@dataclass(frozen=True)
class IngressRow:
    """One line of an "Informe de Ingresos" table (income/donations)."""

    KEY_FIELD: ClassVar[str] = "reciboNumero"
    KIND: ClassVar[RowKind] = RowKind.INGRESS
    CHOICES: ClassVar[dict[str, tuple[str, ...]]] = {}

    page_number: int
    fecha: str | None = None
    recibo_numero: str | None = None
    contribuyente_nombre: str | None = None
    representante_legal: str | None = None
    cedula_ruc: str | None = None
    direccion: str | None = None
    telefono: str | None = None
    correo_electronico: str | None = None
    donaciones_privadas_efectivo: float | None = None
    donaciones_privadas_cheque_ach: float | None = None
    donaciones_privadas_especie: float | None = None
    recursos_propios_efectivo_cheque: float | None = None
    recursos_propios_especie: float | None = None
    total: float | None = None
    # Declared by the extraction model; meaningless once a human reviewed the row.
    unreadable_fields: tuple[str, ...] | None = None
    # Declared by a human reviewer.
    human_unreadable_fields: tuple[str, ...] | None = None


@dataclass(frozen=True)
class EgressRow:
    """One line of an "Informe de Gastos" table (campaign spending)."""

    KEY_FIELD: ClassVar[str] = "numeroFacturaRecibo"
    KIND: ClassVar[RowKind] = RowKind.EGRESS
    CHOICES: ClassVar[dict[str, tuple[str, ...]]] = {
        "pago_tipo": ("Efectivo", "Especie", "Cheque"),
    }

    page_number: int
    fecha: str | None = None
    numero_factura_recibo: str | None = None
    cedula_ruc: str | None = None
    proveedor_nombre: str | None = None
    detalle_gasto: str | None = None
    pago_tipo: str | None = None
    movilizacion: float | None = None
    combustible: float | None = None
    hospedaje: float | None = None
    activistas: float | None = None
    caravana_concentraciones: float | None = None
    comida_brindis: float | None = None
    alquiler_local_servicios_basicos: float | None = None
    cargos_bancarios: float | None = None
    total_gastos_campania: float | None = None
    personalizacion_articulos_promocionales: float | None = None
    propaganda_electoral: float | None = None
    total_gastos_propaganda: float | None = None
    total_de_gastos_de_propaganda_y_campania: float | None = None
    unreadable_fields: tuple[str, ...] | None = None
    human_unreadable_fields: tuple[str, ...] | None = None


Row = IngressRow | EgressRow

ROW_TYPES: dict[RowKind, type[IngressRow] | type[EgressRow]] = {
    RowKind.INGRESS: IngressRow,
    RowKind.EGRESS: EgressRow,
}


@dataclass(frozen=True)
class RowSet:
    """Ingress and egress rows for one document (or one unit of it)."""

    ingress: list[IngressRow] = field(default_factory=list)
    egress: list[EgressRow] = field(default_factory=list)

    def rows(self, kind: RowKind) -> list[Row]:
        if kind is RowKind.INGRESS:
            return list(self.ingress)
        return list(self.egress)

    def __len__(self) -> int:
        return len(self.ingress) + len(self.egress)


@dataclass(frozen=True)
class PageUnit:
    """An independently extractable slice of a source document.

    ``ordinal`` identifies the unit within its document; ``first_page`` is the
    1-indexed page the unit starts on.
    """

    ordinal: int
    first_page: int
    page_count: int
    data: bytes

    @property
    def last_page(self) -> int:
        return self.first_page + self.page_count - 1


@dataclass(frozen=True)
class UnitResult:
    """Outcome of extracting one unit. Failed units carry empty rows and an error.

    ``page_number`` is the unit's first page and ``page_count`` the number of
    pages it covers. In a multi-page unit each row's own ``page_number`` is
    relative to the unit (1-based); 0 means the model did not say.
    """

    ordinal: int
    page_number: int
    ingress: list[IngressRow] = field(default_factory=list)
    egress: list[EgressRow] = field(default_factory=list)
    error: str | None = None
    page_count: int = 1

    @property
    def failed(self) -> bool:
        return self.error is not None


@dataclass(frozen=True)
class DisclosureSummary:
    """Totals and signatories of a "Resumen de Ingresos y Gastos" form.

    ``page_number`` is where the form was found, 1-indexed within the pages
    that were sent to the model.
    """

    saldo_primarias_recoleccion_firmas: float | None = None
    donaciones_recibidas_efectivo_cheque_ach: float | None = None
    donaciones_en_especie: float | None = None
    aporte_recursos_propios: float | None = None
    total_ingresos: float | None = None

    gastos_compras_efectuadas: float | None = None
    gastos_donacion_en_especie: float | None = None
    cargos_bancarios: float | None = None
    total_gastos: float | None = None
    total_resultado: float | None = None

    form_type: str | None = None
    candidato_nombre: str | None = None
    candidato_cedula: str | None = None
    candidato_fecha: str | None = None
    contador_nombre: str | None = None
    contador_cedula: str | None = None
    contador_cpa_no: str | None = None
    contador_fecha: str | None = None
    contador_celular: str | None = None
    tesorero_nombre: str | None = None
    tesorero_cedula: str | None = None
    tesorero_fecha: str | None = None

    unreadable_fields: tuple[str, ...] | None = None
    page_number: int | None = None

    @property
    def found(self) -> bool:
        """True when the model located a summary form at all."""
        return any(
            value is not None
            for value in (self.total_ingresos, self.total_gastos, self.total_resultado, self.form_type)
        )

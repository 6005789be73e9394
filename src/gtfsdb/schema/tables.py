"""
Registro de Tabelas GTFS.

Catálogo estático de todas as tabelas do feed: colunas ordenadas, tipos,
obrigatoriedade, papel de chave, referências entre tabelas, colunas de
extensão (GTFS-Flex) e colunas exclusivas do editor. A mesma tupla de
colunas gera o DDL, o INSERT parametrizado, o decodificador de linhas e o
cabeçalho do exportador.
"""

from dataclasses import dataclass
from enum import Enum
from typing import Any, Dict, List, Optional, Tuple

import sqlalchemy as sa

from ..common.constants import ID_COLUMN
from .fields import Field, FieldKind, RowReader, is_missing


class KeyRole(str, Enum):
    """Papel de chave natural de uma tabela."""

    NONE = "none"
    PRIMARY = "primary"
    COMPOUND = "compound"


SQL_TYPES = {
    FieldKind.STRING: sa.String,
    FieldKind.INTEGER: sa.Integer,
    FieldKind.DOUBLE: sa.Double,
    FieldKind.TIME: sa.Integer,
    FieldKind.DATE: sa.String,
    FieldKind.URL: sa.String,
    FieldKind.COLOR: sa.String,
}


@dataclass(frozen=True)
class TableDefinition:
    """
    Definição de uma tabela do feed.

    Attributes:
        name: Nome da tabela (e do arquivo `<name>.txt`)
        fields: Colunas em ordem canônica
        key_role: NONE, PRIMARY ou COMPOUND
        key_fields: Colunas da chave natural (a primeira agrupa)
        required: Se a ausência do arquivo é erro fatal
    """

    name: str
    fields: Tuple[Field, ...]
    key_role: KeyRole = KeyRole.NONE
    key_fields: Tuple[str, ...] = ()
    required: bool = False

    @property
    def filename(self) -> str:
        return f"{self.name}.txt"

    @property
    def id_field(self) -> Optional[str]:
        """Coluna cujos valores já vistos servem de alvo para referências."""
        return self.key_fields[0] if self.key_fields else None

    def field(self, name: str) -> Field:
        for candidate in self.fields:
            if candidate.name == name:
                return candidate
        raise KeyError(f"{self.name} has no column {name}")

    def columns(self, editor: bool = False) -> List[Field]:
        """
        Colunas armazenadas na tabela.

        Args:
            editor: Inclui colunas exclusivas do editor

        Returns:
            Lista ordenada de campos
        """
        return [f for f in self.fields if editor or not f.editor_only]

    def column_names(self, editor: bool = False) -> List[str]:
        return [f.name for f in self.columns(editor)]

    def export_columns(self) -> List[Field]:
        """Colunas publicáveis: nunca o id substituto nem colunas do editor."""
        return self.columns(editor=False)

    def editor_columns(self) -> List[Field]:
        return [f for f in self.fields if f.editor_only]

    def required_columns(self) -> List[str]:
        return [f.name for f in self.columns() if f.required]

    def decode_row(self, reader: RowReader) -> Dict[str, Any]:
        """
        Decodifica todas as colunas (não-editor) de uma linha.

        Raises:
            RowRejected: Se algum campo obrigatório for inválido
        """
        return {f.name: f.decode(reader) for f in self.columns()}

    def key_of(self, record: Dict[str, Any]) -> Tuple[Any, ...]:
        return tuple(record[name] for name in self.key_fields)

    def to_sql_row(self, record: Dict[str, Any], row_id: int) -> Dict[str, Any]:
        """
        Converte um registro decodificado em parâmetros do INSERT.

        Sentinelas viram NULL, exceto em colunas de chave (alguns bancos
        tratam mal NULL em chaves compostas).
        """
        row = {ID_COLUMN: row_id}
        for f in self.columns():
            value = record.get(f.name)
            if value is not None and f.name not in self.key_fields and is_missing(value):
                value = None
            row[f.name] = value
        return row

    def build_table(
        self,
        metadata: sa.MetaData,
        table_name: str,
        schema: Optional[str] = None,
        editor: bool = False,
    ) -> sa.Table:
        """
        Constrói a tabela SQLAlchemy desta definição.

        Tabelas de carga têm `id` simples (número da linha no arquivo) e
        nenhuma restrição de chave, para inserção rápida. Tabelas de edição
        têm `id` auto-incremental como chave primária, unicidade da chave
        natural e as colunas exclusivas do editor.

        Args:
            metadata: MetaData de destino
            table_name: Nome físico da tabela
            schema: Schema (namespace) físico, se o banco suportar
            editor: Gera a variante de edição

        Returns:
            sa.Table
        """
        if editor:
            columns = [sa.Column(ID_COLUMN, sa.Integer, primary_key=True, autoincrement=True)]
        else:
            columns = [sa.Column(ID_COLUMN, sa.Integer, nullable=False)]

        for f in self.columns(editor):
            server_default = None
            if f.editor_only and f.default is not None:
                server_default = sa.text(repr(f.default))
            columns.append(
                sa.Column(
                    f.name,
                    SQL_TYPES[f.kind](),
                    nullable=not f.required,
                    server_default=server_default,
                )
            )

        constraints = []
        if editor and self.key_fields:
            constraints.append(sa.UniqueConstraint(*self.key_fields, name=f"{table_name}_key"))

        return sa.Table(table_name, metadata, *columns, *constraints, schema=schema)


# =============================================================================
# Field helpers
# =============================================================================


def _str(name, required=False, references=()):
    return Field(name, FieldKind.STRING, required, references=tuple(references))


def _int(name, required=False, min_value=0, max_value=None):
    return Field(name, FieldKind.INTEGER, required, min_value, max_value)


def _double(name, required=False, min_value=None, max_value=None):
    return Field(name, FieldKind.DOUBLE, required, min_value, max_value)


def _time(name, required=False):
    return Field(name, FieldKind.TIME, required)


def _date(name, required=False):
    return Field(name, FieldKind.DATE, required)


def _url(name, required=False):
    return Field(name, FieldKind.URL, required)


def _color(name):
    return Field(name, FieldKind.COLOR)


def _editor(name, kind=FieldKind.INTEGER, default=None):
    return Field(name, kind, editor_only=True, default=default)


# =============================================================================
# GTFS Tables (em ordem de carga)
# =============================================================================

AGENCY = TableDefinition(
    "agency",
    (
        _str("agency_id"),
        _str("agency_name", True),
        _url("agency_url", True),
        _str("agency_timezone", True),
        _str("agency_lang"),
        _str("agency_phone"),
        _url("agency_fare_url"),
        _str("agency_email"),
        _url("agency_branding_url"),
    ),
    KeyRole.PRIMARY,
    ("agency_id",),
    required=True,
)

CALENDAR = TableDefinition(
    "calendar",
    (
        _str("service_id", True),
        _int("monday", True, 0, 1),
        _int("tuesday", True, 0, 1),
        _int("wednesday", True, 0, 1),
        _int("thursday", True, 0, 1),
        _int("friday", True, 0, 1),
        _int("saturday", True, 0, 1),
        _int("sunday", True, 0, 1),
        _date("start_date", True),
        _date("end_date", True),
        _editor("description", FieldKind.STRING),
    ),
    KeyRole.PRIMARY,
    ("service_id",),
)

CALENDAR_DATES = TableDefinition(
    "calendar_dates",
    (
        _str("service_id", True),
        _date("date", True),
        _int("exception_type", True, 1, 2),
    ),
    KeyRole.COMPOUND,
    ("service_id", "date"),
)

# GTFS-Flex
BOOKING_RULES = TableDefinition(
    "booking_rules",
    (
        _str("booking_rule_id", True),
        _int("booking_type", True, 0, 2),
        _int("prior_notice_duration_min"),
        _int("prior_notice_duration_max"),
        _int("prior_notice_last_day"),
        _time("prior_notice_last_time"),
        _int("prior_notice_start_day"),
        _time("prior_notice_start_time"),
        _str("prior_notice_service_id"),
        _str("message"),
        _str("pickup_message"),
        _str("drop_off_message"),
        _str("phone_number"),
        _url("info_url"),
        _url("booking_url"),
    ),
    KeyRole.PRIMARY,
    ("booking_rule_id",),
)

# GTFS-Flex
LOCATIONS = TableDefinition(
    "locations",
    (
        _str("location_id", True),
        _str("location_stop_name"),
        _str("zone_id"),
        _url("location_stop_url"),
    ),
    KeyRole.PRIMARY,
    ("location_id",),
)

FARE_ATTRIBUTES = TableDefinition(
    "fare_attributes",
    (
        _str("fare_id", True),
        _double("price", True, 0.0),
        _str("currency_type", True),
        _int("payment_method", True, 0, 1),
        _int("transfers", False, 0, 2),
        _str("agency_id", references=("agency",)),
        _int("transfer_duration"),
    ),
    KeyRole.PRIMARY,
    ("fare_id",),
)

STOPS = TableDefinition(
    "stops",
    (
        _str("stop_id", True),
        _str("stop_code"),
        _str("stop_name"),
        _str("stop_desc"),
        _double("stop_lat", False, -90.0, 90.0),
        _double("stop_lon", False, -180.0, 180.0),
        _str("zone_id"),
        _url("stop_url"),
        _int("location_type", False, 0, 4),
        _str("parent_station"),
        _str("stop_timezone"),
        _int("wheelchair_boarding", False, 0, 2),
        _str("platform_code"),
        _editor("status", default=0),
    ),
    KeyRole.PRIMARY,
    ("stop_id",),
    required=True,
)

ROUTES = TableDefinition(
    "routes",
    (
        _str("route_id", True),
        _str("agency_id", references=("agency",)),
        _str("route_short_name"),
        _str("route_long_name"),
        _str("route_desc"),
        _int("route_type", True, 0, 1702),
        _url("route_url"),
        _color("route_color"),
        _color("route_text_color"),
        _int("route_sort_order"),
        _int("continuous_pickup", False, 0, 3),
        _int("continuous_drop_off", False, 0, 3),
        _url("route_branding_url"),
        _editor("publicly_visible", default=0),
        _editor("wheelchair_accessible", default=0),
        _editor("status", default=0),
    ),
    KeyRole.PRIMARY,
    ("route_id",),
    required=True,
)

SHAPES = TableDefinition(
    "shapes",
    (
        _str("shape_id", True),
        _double("shape_pt_lat", True, -90.0, 90.0),
        _double("shape_pt_lon", True, -180.0, 180.0),
        _int("shape_pt_sequence", True),
        _double("shape_dist_traveled", False, 0.0),
    ),
    KeyRole.COMPOUND,
    ("shape_id", "shape_pt_sequence"),
)

TRIPS = TableDefinition(
    "trips",
    (
        _str("route_id", True, references=("routes",)),
        _str("service_id", True, references=("calendar", "calendar_dates")),
        _str("trip_id", True),
        _str("trip_headsign"),
        _str("trip_short_name"),
        _int("direction_id", False, 0, 1),
        _str("block_id"),
        _str("shape_id", references=("shapes",)),
        _int("wheelchair_accessible", False, 0, 2),
        _int("bikes_allowed", False, 0, 2),
        _editor("pattern_id", FieldKind.STRING),
    ),
    KeyRole.PRIMARY,
    ("trip_id",),
    required=True,
)

FREQUENCIES = TableDefinition(
    "frequencies",
    (
        _str("trip_id", True, references=("trips",)),
        _time("start_time", True),
        _time("end_time", True),
        _int("headway_secs", True),
        _int("exact_times", False, 0, 1),
    ),
)

STOP_TIMES = TableDefinition(
    "stop_times",
    (
        _str("trip_id", True, references=("trips",)),
        _time("arrival_time"),
        _time("departure_time"),
        _str("stop_id", True, references=("stops",)),
        _int("stop_sequence", True),
        _str("stop_headsign"),
        _int("pickup_type", False, 0, 3),
        _int("drop_off_type", False, 0, 3),
        _int("continuous_pickup", False, 0, 3),
        _int("continuous_drop_off", False, 0, 3),
        _double("shape_dist_traveled", False, 0.0),
        _int("timepoint", False, 0, 1),
        # GTFS-Flex
        _str("location_id", references=("locations",)),
        _time("start_pickup_drop_off_window"),
        _time("end_pickup_drop_off_window"),
        _str("pickup_booking_rule_id", references=("booking_rules",)),
        _str("drop_off_booking_rule_id", references=("booking_rules",)),
        _double("mean_duration_factor"),
        _double("mean_duration_offset"),
        _double("safe_duration_factor"),
        _double("safe_duration_offset"),
    ),
    KeyRole.COMPOUND,
    ("trip_id", "stop_sequence"),
    required=True,
)

TRANSFERS = TableDefinition(
    "transfers",
    (
        _str("from_stop_id", True, references=("stops",)),
        _str("to_stop_id", True, references=("stops",)),
        _int("transfer_type", True, 0, 5),
        _int("min_transfer_time"),
    ),
)

FARE_RULES = TableDefinition(
    "fare_rules",
    (
        _str("fare_id", True, references=("fare_attributes",)),
        _str("route_id", references=("routes",)),
        _str("origin_id"),
        _str("destination_id"),
        _str("contains_id"),
    ),
)

FEED_INFO = TableDefinition(
    "feed_info",
    (
        _str("feed_publisher_name", True),
        _url("feed_publisher_url", True),
        _str("feed_lang", True),
        _str("default_lang"),
        _date("feed_start_date"),
        _date("feed_end_date"),
        _str("feed_version"),
        _str("feed_contact_email"),
        _url("feed_contact_url"),
        _str("feed_id"),
    ),
)


# =============================================================================
# Editor Tables (somente em snapshots)
# =============================================================================

# Viagens da mesma rota que visitam as mesmas paradas, na mesma ordem e com
# os mesmos tipos de embarque/desembarque
PATTERNS = TableDefinition(
    "patterns",
    (
        _str("pattern_id", True),
        _str("route_id", True),
        _str("name"),
        _int("direction_id", False, 0, 1),
        _str("shape_id"),
    ),
    KeyRole.PRIMARY,
    ("pattern_id",),
)

# Tempos padrão vêm da primeira viagem encontrada de cada padrão
PATTERN_STOPS = TableDefinition(
    "pattern_stops",
    (
        _str("pattern_id", True),
        _int("stop_sequence", True),
        _str("stop_id"),
        _int("default_travel_time"),
        _int("default_dwell_time"),
        _double("shape_dist_traveled", False, 0.0),
        _int("pickup_type", False, 0, 3),
        _int("drop_off_type", False, 0, 3),
        _int("timepoint", False, 0, 1),
        _int("continuous_pickup", False, 0, 3),
        _int("continuous_drop_off", False, 0, 3),
        # GTFS-Flex
        _str("location_id"),
        _time("start_pickup_drop_off_window"),
        _time("end_pickup_drop_off_window"),
        _str("pickup_booking_rule_id"),
        _str("drop_off_booking_rule_id"),
        _double("mean_duration_factor"),
        _double("mean_duration_offset"),
        _double("safe_duration_factor"),
        _double("safe_duration_offset"),
    ),
    KeyRole.COMPOUND,
    ("pattern_id", "stop_sequence"),
)


# =============================================================================
# Registry
# =============================================================================

TABLES: Tuple[TableDefinition, ...] = (
    AGENCY,
    CALENDAR,
    CALENDAR_DATES,
    BOOKING_RULES,
    LOCATIONS,
    FARE_ATTRIBUTES,
    STOPS,
    ROUTES,
    SHAPES,
    TRIPS,
    FREQUENCIES,
    STOP_TIMES,
    TRANSFERS,
    FARE_RULES,
    FEED_INFO,
)

# Tabelas criadas apenas em namespaces de edição; nunca carregadas nem exportadas
EDITOR_TABLES: Tuple[TableDefinition, ...] = (PATTERNS, PATTERN_STOPS)

TABLES_BY_NAME: Dict[str, TableDefinition] = {
    table.name: table for table in TABLES + EDITOR_TABLES
}

# Pelo menos uma destas precisa existir no feed
SERVICE_TABLES: Tuple[str, ...] = ("calendar", "calendar_dates")


def get_table(name: str) -> TableDefinition:
    """
    Retorna a definição de uma tabela pelo nome.

    Raises:
        KeyError: Se a tabela não existir no registro
    """
    try:
        return TABLES_BY_NAME[name]
    except KeyError:
        raise KeyError(f"Unknown GTFS table: {name}") from None

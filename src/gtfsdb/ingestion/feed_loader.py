"""
Carregador de Feeds GTFS.

Lê cada tabela do zip em ordem de registro e insere as linhas decodificadas
em um namespace novo, tudo em uma única transação:

    criar schema → carregar tabelas → registrar feed → commit

Erros de linha (campo inválido, referência inexistente, chave duplicada)
são registrados e a linha é descartada; a carga continua. Erros
estruturais (zip inválido, cabeçalho malformado, tabela obrigatória
ausente, rejeição do banco) abortam e revertem tudo.
"""

import time
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Dict, List, Optional, Set, Union

import sqlalchemy as sa
from sqlalchemy.engine import Connection, Engine
from sqlalchemy.exc import SQLAlchemyError

from ..common.config import get_config
from ..common.constants import Operation
from ..common.exceptions import RowInsertException, TransactionFailedException
from ..common.logging_config import get_logger
from ..common.metrics import record_table_load
from ..common.utils import elapsed_since, file_checksums
from ..schema.fields import LoadError, LoadErrorType, RowReader, RowRejected
from ..schema.tables import TABLES, KeyRole, TableDefinition
from ..storage.namespace_store import FeedRecord, NamespaceStore
from .archive import GTFSArchive, TableReader

# Linha do cabeçalho (erros de coluna)
HEADER_LINE = 1


# =============================================================================
# Results
# =============================================================================


@dataclass
class TableLoadResult:
    """Contagens de uma tabela carregada."""

    row_count: int = 0
    rejected_count: int = 0
    error_count: int = 0

    def to_dict(self) -> Dict[str, int]:
        return {
            "row_count": self.row_count,
            "rejected_count": self.rejected_count,
            "error_count": self.error_count,
        }


@dataclass
class LoadResult:
    """
    Resumo de uma carga.

    Attributes:
        namespace: Namespace criado
        filename: Nome do arquivo carregado
        md5: Checksum MD5 do arquivo
        sha1: Checksum SHA-1 do arquivo
        tables: Contagens por tabela carregada
        errors: Erros e avisos de linha (não fatais)
        elapsed_seconds: Duração da carga
        completed: Se a transação foi confirmada
    """

    namespace: Optional[str] = None
    filename: Optional[str] = None
    md5: Optional[str] = None
    sha1: Optional[str] = None
    tables: Dict[str, TableLoadResult] = field(default_factory=dict)
    errors: List[LoadError] = field(default_factory=list)
    elapsed_seconds: float = 0.0
    completed: bool = False

    @property
    def error_count(self) -> int:
        return len(self.errors)

    def to_dict(self, include_errors: bool = True) -> Dict[str, Any]:
        """Converte para dicionário serializável."""
        data = {
            "namespace": self.namespace,
            "filename": self.filename,
            "md5": self.md5,
            "sha1": self.sha1,
            "tables": {name: result.to_dict() for name, result in self.tables.items()},
            "error_count": self.error_count,
            "elapsed_seconds": self.elapsed_seconds,
            "completed": self.completed,
        }
        if include_errors:
            data["errors"] = [error.to_dict() for error in self.errors]
        return data


# =============================================================================
# Loader
# =============================================================================


class FeedLoader:
    """
    Carrega um zip GTFS em um namespace novo.

    Verificações entre tabelas usam somente os conjuntos de chaves já
    vistas (tabelas anteriores na ordem de registro), nunca registros
    completos.
    """

    def __init__(
        self,
        file_path: Union[str, Path],
        engine: Engine,
        batch_size: Optional[int] = None,
    ):
        """
        Inicializa o carregador.

        Args:
            file_path: Caminho do zip GTFS
            engine: Provedor de conexões
            batch_size: Linhas por INSERT em lote (padrão: INSERT_BATCH_SIZE)
        """
        self.file_path = Path(file_path)
        self.engine = engine
        self.batch_size = batch_size or get_config().INSERT_BATCH_SIZE
        self.store = NamespaceStore(engine)
        self.logger = get_logger(self.__class__.__name__, operation=Operation.LOAD.value)

        # Valores da primeira coluna de chave aceitos, por tabela
        self._seen_ids: Dict[str, Set[Any]] = {}
        self._agency_ids: List[Optional[str]] = []
        self._feed_info: Optional[Dict[str, Any]] = None

    def load_tables(self) -> LoadResult:
        """
        Executa a carga completa.

        Returns:
            LoadResult com namespace, contagens e erros de linha

        Raises:
            MalformedArchiveException: Zip ou cabeçalho inválido
            MissingRequiredTableException: Tabela obrigatória ausente
            RowInsertException: Banco rejeitou linha decodificada
            TransactionFailedException: Falha de DDL/DML; nada é mantido
        """
        start = time.monotonic()
        result = LoadResult(filename=self.file_path.name)

        with GTFSArchive(self.file_path) as archive:
            archive.check_required_tables()
            checksums = file_checksums(self.file_path)
            result.md5 = checksums["md5"]
            result.sha1 = checksums["sha1"]

            self.logger.info(
                f"Loading feed {self.file_path.name}",
                extra={"archive": str(self.file_path), "tables_found": archive.table_names},
            )

            try:
                with self.engine.begin() as conn:
                    namespace = self.store.generate_namespace_id(conn)
                    result.namespace = namespace
                    self.store.create_schema(conn, namespace)

                    for definition in TABLES:
                        if not archive.has_table(definition.name):
                            self.logger.debug(f"Table {definition.name} not in feed, skipping")
                            continue
                        result.tables[definition.name] = self._load_table(
                            conn, archive, namespace, definition, result.errors
                        )

                    feed_info = self._feed_info or {}
                    self.store.register_feed(
                        conn,
                        FeedRecord(
                            namespace=namespace,
                            filename=result.filename,
                            md5=result.md5,
                            sha1=result.sha1,
                            feed_id=feed_info.get("feed_id"),
                            feed_version=feed_info.get("feed_version"),
                        ),
                    )
            except SQLAlchemyError as e:
                raise TransactionFailedException(
                    Operation.LOAD.value, result.namespace, str(e)
                ) from e

        result.completed = True
        result.elapsed_seconds = elapsed_since(start)

        self.logger.info(
            f"Feed loaded into {result.namespace} in {result.elapsed_seconds:.2f}s",
            extra={
                "namespace": result.namespace,
                "error_count": result.error_count,
                "tables": {name: t.row_count for name, t in result.tables.items()},
            },
        )
        return result

    # =========================================================================
    # Per-table load
    # =========================================================================

    def _load_table(
        self,
        conn: Connection,
        archive: GTFSArchive,
        namespace: str,
        definition: TableDefinition,
        errors: List[LoadError],
    ) -> TableLoadResult:
        table_result = TableLoadResult()
        errors_before = len(errors)

        with archive.open_table(definition) as reader:
            known = set(definition.column_names())
            unknown = [name for name in reader.header if name and name not in known]
            if unknown:
                self.logger.debug(
                    f"Ignoring unknown columns in {definition.name}: {', '.join(unknown)}",
                    extra={"table": definition.name},
                )

            missing = [name for name in definition.required_columns() if name not in reader.header]
            if missing:
                errors.append(
                    LoadError(
                        definition.name,
                        HEADER_LINE,
                        ",".join(missing),
                        LoadErrorType.MISSING_COLUMN,
                    )
                )
                table_result.rejected_count = sum(1 for _ in reader)
            else:
                self._load_rows(conn, reader, namespace, definition, errors, table_result)

        self.store.create_key_index(conn, namespace, definition)

        table_result.error_count = len(errors) - errors_before
        record_table_load(definition.name, table_result.row_count, table_result.rejected_count)

        self.logger.info(
            f"Loaded {table_result.row_count} rows into {definition.name}",
            extra={
                "namespace": namespace,
                "table": definition.name,
                "rejected": table_result.rejected_count,
            },
        )
        return table_result

    def _load_rows(
        self,
        conn: Connection,
        reader: TableReader,
        namespace: str,
        definition: TableDefinition,
        errors: List[LoadError],
        table_result: TableLoadResult,
    ) -> None:
        statement = sa.insert(self.store.table(namespace, definition))
        seen_ids = self._seen_ids.setdefault(definition.name, set())
        seen_keys: Set[tuple] = set()
        batch: List[Dict[str, Any]] = []

        for line_number, row in reader:
            row_reader = RowReader(definition.name, line_number, row)
            try:
                record = definition.decode_row(row_reader)
                self._apply_defaults(definition, record, row_reader)
                self._check_key(definition, record, row_reader, seen_ids, seen_keys)
                self._check_references(definition, record, row_reader)
            except RowRejected as rejection:
                errors.extend(row_reader.warnings)
                errors.append(rejection.error)
                table_result.rejected_count += 1
                continue

            errors.extend(row_reader.warnings)
            self._remember(definition, record, seen_ids, seen_keys)

            batch.append(definition.to_sql_row(record, line_number))
            table_result.row_count += 1
            if len(batch) >= self.batch_size:
                self._flush(conn, statement, batch, definition)
                batch = []

        if batch:
            self._flush(conn, statement, batch, definition)

    def _flush(
        self,
        conn: Connection,
        statement,
        batch: List[Dict[str, Any]],
        definition: TableDefinition,
    ) -> None:
        try:
            conn.execute(statement, batch)
        except SQLAlchemyError as e:
            raise RowInsertException(definition.name, str(e)) from e

    # =========================================================================
    # Row checks
    # =========================================================================

    def _apply_defaults(
        self, definition: TableDefinition, record: Dict[str, Any], reader: RowReader
    ) -> None:
        """Rota sem agency_id herda a agência de feeds com uma só agência."""
        if definition.name != "routes" or record.get("agency_id") is not None:
            return

        if len(self._agency_ids) == 1:
            record["agency_id"] = self._agency_ids[0]
        elif not self._agency_ids:
            reader.warnings.append(
                LoadError(
                    definition.name,
                    reader.line_number,
                    "agency_id",
                    LoadErrorType.NO_AGENCY_IN_FEED,
                    rejected=False,
                )
            )
        else:
            # Obrigatório quando o feed tem mais de uma agência
            reader.warnings.append(
                LoadError(
                    definition.name,
                    reader.line_number,
                    "agency_id",
                    LoadErrorType.MISSING_FIELD,
                    rejected=False,
                )
            )

    def _check_key(
        self,
        definition: TableDefinition,
        record: Dict[str, Any],
        reader: RowReader,
        seen_ids: Set[Any],
        seen_keys: Set[tuple],
    ) -> None:
        if definition.key_role is KeyRole.PRIMARY:
            key_value = record[definition.id_field]
            if key_value is not None and key_value in seen_ids:
                raise RowRejected(
                    LoadError(
                        definition.name,
                        reader.line_number,
                        definition.id_field,
                        LoadErrorType.DUPLICATE_ID,
                        bad_value=str(key_value),
                    )
                )
        elif definition.key_role is KeyRole.COMPOUND:
            key = definition.key_of(record)
            if key in seen_keys:
                raise RowRejected(
                    LoadError(
                        definition.name,
                        reader.line_number,
                        ",".join(definition.key_fields),
                        LoadErrorType.DUPLICATE_KEY,
                        bad_value=":".join(str(part) for part in key),
                    )
                )

    def _check_references(
        self, definition: TableDefinition, record: Dict[str, Any], reader: RowReader
    ) -> None:
        for f in definition.columns():
            if not f.references:
                continue
            value = record.get(f.name)
            if value is None:
                continue
            if any(value in self._seen_ids.get(target, ()) for target in f.references):
                continue

            error = LoadError(
                definition.name,
                reader.line_number,
                f.name,
                LoadErrorType.REFERENTIAL_INTEGRITY,
                bad_value=str(value),
                rejected=f.required,
            )
            if f.required:
                raise RowRejected(error)
            reader.warnings.append(error)

    def _remember(
        self,
        definition: TableDefinition,
        record: Dict[str, Any],
        seen_ids: Set[Any],
        seen_keys: Set[tuple],
    ) -> None:
        if definition.key_role is KeyRole.COMPOUND:
            seen_keys.add(definition.key_of(record))
        if definition.id_field is not None and record[definition.id_field] is not None:
            seen_ids.add(record[definition.id_field])

        if definition.name == "agency":
            self._agency_ids.append(record.get("agency_id"))
        elif definition.name == "feed_info" and self._feed_info is None:
            self._feed_info = record

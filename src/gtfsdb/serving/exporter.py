"""
Exportador de Feeds GTFS.

Escreve as tabelas de um namespace de volta no formato de distribuição
(zip de arquivos `<tabela>.txt`). Linhas saem ordenadas pelo `id`, com
colunas na ordem do registro, e as entradas do zip usam timestamp fixo:
exportar duas vezes o mesmo namespace gera bytes idênticos.

A chave substituta `id` e as colunas exclusivas do editor nunca são
exportadas.
"""

import csv
import io
import time
import zipfile
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Dict, Iterable, List, Mapping, Optional, Union

import sqlalchemy as sa
from sqlalchemy.engine import Connection, Engine
from sqlalchemy.exc import SQLAlchemyError

from ..common.config import get_config
from ..common.constants import (
    EXPORT_ENCODING,
    EXPORT_ZIP_DATE_TIME,
    ID_COLUMN,
    Operation,
)
from ..common.exceptions import StorageWriteException, TransactionFailedException
from ..common.logging_config import get_logger
from ..common.utils import elapsed_since
from ..schema.fields import Field
from ..schema.tables import TABLES, TableDefinition
from ..storage.namespace_store import NamespaceStore, ensure_valid_namespace


@dataclass
class ExportResult:
    """Resumo de uma exportação: linhas escritas por tabela."""

    namespace: str
    out_file: str
    tables: Dict[str, int] = field(default_factory=dict)
    elapsed_seconds: float = 0.0
    completed: bool = False

    def to_dict(self) -> Dict[str, Any]:
        return {
            "namespace": self.namespace,
            "out_file": self.out_file,
            "tables": dict(self.tables),
            "elapsed_seconds": self.elapsed_seconds,
            "completed": self.completed,
        }


class FeedExporter:
    """
    Exporta um namespace para um zip GTFS.

    Tabelas sem linhas são omitidas, exceto as obrigatórias, que saem só
    com o cabeçalho.
    """

    def __init__(
        self,
        namespace: str,
        out_file: Union[str, Path],
        engine: Engine,
        from_editor: bool = False,
        table_columns: Optional[Mapping[str, Iterable[str]]] = None,
        fetch_size: Optional[int] = None,
    ):
        """
        Args:
            namespace: Namespace a exportar
            out_file: Caminho do zip de saída
            engine: Provedor de conexões
            from_editor: Se o chamador espera um snapshot de edição
            table_columns: Restringe as colunas exportadas por tabela
            fetch_size: Linhas buscadas por lote do cursor
        """
        self.namespace = namespace
        self.out_file = Path(out_file)
        self.engine = engine
        self.from_editor = from_editor
        self.table_columns = {name: set(cols) for name, cols in (table_columns or {}).items()}
        self.fetch_size = fetch_size or get_config().EXPORT_FETCH_SIZE
        self.store = NamespaceStore(engine)
        self.logger = get_logger(
            self.__class__.__name__, namespace=namespace, operation=Operation.EXPORT.value
        )

    def export_tables(self) -> ExportResult:
        """
        Executa a exportação.

        Returns:
            ExportResult com linhas escritas por tabela

        Raises:
            InvalidNamespaceException: Namespace malformado
            NamespaceNotFoundException: Namespace não registrado
            StorageWriteException: Falha ao escrever o zip (arquivo removido)
            TransactionFailedException: Falha de leitura no banco (arquivo removido)
        """
        ensure_valid_namespace(self.namespace)
        start = time.monotonic()
        result = ExportResult(namespace=self.namespace, out_file=str(self.out_file))

        try:
            with self.engine.connect() as conn:
                record = self.store.require_namespace(conn, self.namespace)
                if record.is_editor != self.from_editor:
                    self.logger.warning(
                        f"Namespace {self.namespace} is_editor={record.is_editor}, "
                        f"exporting with the registered schema",
                        extra={"from_editor": self.from_editor},
                    )
                self._export_from(conn, record.is_editor, result)
        except SQLAlchemyError as e:
            # Falha antes de abrir o zip: nenhum arquivo a remover
            raise TransactionFailedException(
                Operation.EXPORT.value, self.namespace, str(e)
            ) from e

        result.completed = True
        result.elapsed_seconds = elapsed_since(start)

        self.logger.info(
            f"Exported {len(result.tables)} tables to {self.out_file} "
            f"in {result.elapsed_seconds:.2f}s",
            extra={"tables": result.tables},
        )
        return result

    def _export_from(self, conn: Connection, editor: bool, result: ExportResult) -> None:
        """Escreve o zip; em qualquer falha remove o arquivo parcial."""
        try:
            self._write_archive(conn, editor, result)
        except SQLAlchemyError as e:
            self._remove_partial_output()
            raise TransactionFailedException(
                Operation.EXPORT.value, self.namespace, str(e)
            ) from e
        except (OSError, zipfile.BadZipFile) as e:
            self._remove_partial_output()
            raise StorageWriteException(str(self.out_file), str(e)) from e
        except Exception:
            self._remove_partial_output()
            raise

    def _write_archive(self, conn: Connection, editor: bool, result: ExportResult) -> None:
        with zipfile.ZipFile(self.out_file, "w", zipfile.ZIP_DEFLATED) as archive:
            for definition in TABLES:
                row_count = self._export_table(conn, archive, definition, editor)
                if row_count is not None:
                    result.tables[definition.name] = row_count

    def columns_for(self, definition: TableDefinition) -> List[Field]:
        """Colunas exportadas de uma tabela, na ordem do registro."""
        columns = definition.export_columns()
        requested = self.table_columns.get(definition.name)
        if requested is None:
            return columns
        return [f for f in columns if f.name in requested]

    def _export_table(
        self,
        conn: Connection,
        archive: zipfile.ZipFile,
        definition: TableDefinition,
        editor: bool,
    ) -> Optional[int]:
        table = self.store.table(self.namespace, definition, editor=editor)
        columns = self.columns_for(definition)
        if not columns:
            self.logger.debug(f"No columns selected for {definition.name}, skipping")
            return None

        total = self.store.count_rows(conn, table)
        if total == 0 and not definition.required:
            return None

        info = zipfile.ZipInfo(definition.filename, date_time=EXPORT_ZIP_DATE_TIME)
        info.compress_type = zipfile.ZIP_DEFLATED
        info.external_attr = 0o644 << 16

        statement = (
            sa.select(*(table.c[f.name] for f in columns))
            .order_by(table.c[ID_COLUMN])
            .execution_options(yield_per=self.fetch_size)
        )

        row_count = 0
        with io.TextIOWrapper(archive.open(info, "w"), encoding=EXPORT_ENCODING, newline="") as out:
            writer = csv.writer(out, lineterminator="\n")
            writer.writerow([f.name for f in columns])
            for row in conn.execute(statement):
                writer.writerow([f.format(value) for f, value in zip(columns, row)])
                row_count += 1

        self.logger.debug(
            f"Wrote {row_count} rows to {definition.filename}",
            extra={"table": definition.name},
        )
        return row_count

    def _remove_partial_output(self) -> None:
        try:
            self.out_file.unlink()
        except FileNotFoundError:
            pass

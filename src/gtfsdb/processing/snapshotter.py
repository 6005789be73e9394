"""
Snapshot de Namespaces.

Copia todas as tabelas de um namespace para um namespace de edição novo,
em uma única transação. A origem nunca é alterada.

O schema de edição difere do de carga em três pontos:
- `id` vira chave substituta auto-incremental, atribuída na ordem das
  linhas de origem;
- colunas exclusivas do editor são adicionadas com seus valores padrão;
- a chave natural de cada tabela ganha restrição de unicidade.

Snapshots de uma carga ganham ainda os padrões de viagem (`patterns`,
`pattern_stops`, `trips.pattern_id`); snapshots de outro snapshot copiam
os padrões existentes.
"""

import time
from dataclasses import dataclass, field
from typing import Any, Dict, Optional

import sqlalchemy as sa
from sqlalchemy.engine import Connection, Engine
from sqlalchemy.exc import SQLAlchemyError

from ..common.constants import ID_COLUMN, Operation
from ..common.exceptions import TransactionFailedException
from ..common.logging_config import get_logger
from ..common.utils import elapsed_since
from ..schema.tables import EDITOR_TABLES, TABLES, TableDefinition
from ..storage.namespace_store import FeedRecord, NamespaceStore, ensure_valid_namespace
from .patterns import PatternBuilder


@dataclass
class SnapshotResult:
    """Resumo de um snapshot: namespace novo e linhas copiadas por tabela."""

    namespace: Optional[str] = None
    source_namespace: Optional[str] = None
    tables: Dict[str, int] = field(default_factory=dict)
    elapsed_seconds: float = 0.0
    completed: bool = False

    def to_dict(self) -> Dict[str, Any]:
        return {
            "namespace": self.namespace,
            "source_namespace": self.source_namespace,
            "tables": dict(self.tables),
            "elapsed_seconds": self.elapsed_seconds,
            "completed": self.completed,
        }


class FeedSnapshotter:
    """Cria um snapshot de edição a partir de um namespace existente."""

    def __init__(self, source_namespace: str, engine: Engine):
        """
        Args:
            source_namespace: Namespace de origem (carga ou outro snapshot)
            engine: Provedor de conexões
        """
        self.source_namespace = source_namespace
        self.engine = engine
        self.store = NamespaceStore(engine)
        self.logger = get_logger(
            self.__class__.__name__,
            namespace=source_namespace,
            operation=Operation.SNAPSHOT.value,
        )

    def copy_tables(self) -> SnapshotResult:
        """
        Executa o snapshot.

        Returns:
            SnapshotResult com o namespace novo

        Raises:
            InvalidNamespaceException: Namespace de origem malformado
            NamespaceNotFoundException: Namespace de origem não registrado
            TransactionFailedException: Falha na cópia; nada é mantido
        """
        ensure_valid_namespace(self.source_namespace)
        start = time.monotonic()
        result = SnapshotResult(source_namespace=self.source_namespace)

        try:
            with self.engine.begin() as conn:
                source = self.store.require_namespace(conn, self.source_namespace)
                namespace = self.store.generate_namespace_id(conn)
                result.namespace = namespace

                self.store.create_schema(conn, namespace, editor=True)
                for definition in TABLES:
                    result.tables[definition.name] = self._copy_table(
                        conn, definition, namespace, source.is_editor
                    )

                if source.is_editor:
                    for definition in EDITOR_TABLES:
                        result.tables[definition.name] = self._copy_table(
                            conn, definition, namespace, True
                        )
                else:
                    PatternBuilder(self.store, namespace).build(conn)
                    for definition in EDITOR_TABLES:
                        result.tables[definition.name] = self.store.count_rows(
                            conn, self.store.table(namespace, definition, editor=True)
                        )

                self.store.register_feed(
                    conn,
                    FeedRecord(
                        namespace=namespace,
                        filename=source.filename,
                        md5=source.md5,
                        sha1=source.sha1,
                        feed_id=source.feed_id,
                        feed_version=source.feed_version,
                        snapshot_of=self.source_namespace,
                        is_editor=True,
                    ),
                )
        except SQLAlchemyError as e:
            raise TransactionFailedException(
                Operation.SNAPSHOT.value, self.source_namespace, str(e)
            ) from e

        result.completed = True
        result.elapsed_seconds = elapsed_since(start)

        self.logger.info(
            f"Snapshot {result.namespace} created from {self.source_namespace} "
            f"in {result.elapsed_seconds:.2f}s",
            extra={"snapshot": result.namespace, "tables": result.tables},
        )
        return result

    def _copy_table(
        self,
        conn: Connection,
        definition: TableDefinition,
        namespace: str,
        source_is_editor: bool,
    ) -> int:
        """Copia uma tabela via INSERT ... SELECT ordenado pelo id de origem."""
        source_table = self.store.table(self.source_namespace, definition, editor=source_is_editor)
        target_table = self.store.table(namespace, definition, editor=True)

        # Colunas do editor só existem na origem se ela também for snapshot
        columns = definition.column_names(editor=source_is_editor)
        select = sa.select(*(source_table.c[name] for name in columns)).order_by(
            source_table.c[ID_COLUMN]
        )
        conn.execute(sa.insert(target_table).from_select(columns, select))

        row_count = self.store.count_rows(conn, target_table)
        self.logger.debug(
            f"Copied {row_count} rows into {definition.name}",
            extra={"table": definition.name},
        )
        return row_count

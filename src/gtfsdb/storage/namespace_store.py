"""
Namespace Store.

Cria e remove schemas por feed, gera identificadores de namespace e
mantém a tabela global `feeds`, único índice para listar e remover
namespaces.

No PostgreSQL cada namespace é um schema real. No SQLite (testes e uso
local) o schema é emulado por um prefixo `<namespace>__` no nome das
tabelas.
"""

import re
from dataclasses import asdict, dataclass
from datetime import datetime
from typing import Any, Dict, List, Optional, Tuple, Union

import sqlalchemy as sa
from sqlalchemy.engine import Connection, Engine
from sqlalchemy.exc import SQLAlchemyError

from ..common.constants import (
    FEEDS_TABLE,
    NAMESPACE_ID_LENGTH,
    NAMESPACE_ID_MAX_ATTEMPTS,
    NAMESPACE_ID_SUFFIX_LENGTH,
    NAMESPACE_PATTERN,
    NAMESPACE_TABLE_SEPARATOR,
)
from ..common.exceptions import (
    InvalidNamespaceException,
    NamespaceNotFoundException,
    StorageException,
    StorageUnavailableException,
)
from ..common.logging_config import get_logger
from ..common.utils import random_lowercase
from ..schema.tables import EDITOR_TABLES, TABLES, TableDefinition, get_table

NAMESPACE_REGEX = re.compile(NAMESPACE_PATTERN)

# Schemas do PostgreSQL que nunca são namespaces de feed
SYSTEM_SCHEMAS = ("public", "information_schema")


@dataclass
class FeedRecord:
    """Linha da tabela global de feeds."""

    namespace: str
    filename: Optional[str] = None
    md5: Optional[str] = None
    sha1: Optional[str] = None
    feed_id: Optional[str] = None
    feed_version: Optional[str] = None
    loaded_date: Optional[datetime] = None
    snapshot_of: Optional[str] = None
    is_editor: bool = False

    def to_dict(self) -> Dict[str, Any]:
        """Converte para dicionário serializável."""
        data = asdict(self)
        if self.loaded_date is not None:
            data["loaded_date"] = self.loaded_date.isoformat()
        return data


def ensure_valid_namespace(namespace: Any) -> str:
    """
    Valida a sintaxe de um identificador de namespace.

    Executada antes de qualquer SQL, impede injeção via nome de schema.

    Args:
        namespace: Identificador informado pelo chamador

    Returns:
        O próprio identificador

    Raises:
        InvalidNamespaceException: Se contiver caracteres ilegais
    """
    if not isinstance(namespace, str) or not NAMESPACE_REGEX.match(namespace):
        raise InvalidNamespaceException(namespace)
    if NAMESPACE_TABLE_SEPARATOR in namespace:
        # Ambíguo com o prefixo de emulação de schema
        raise InvalidNamespaceException(namespace)
    return namespace


class NamespaceStore:
    """
    Acesso aos namespaces e ao registro de feeds.

    Toda operação de escrita recebe uma `Connection` já dentro de uma
    transação; o chamador decide o escopo (commit ou rollback).
    """

    def __init__(self, engine: Engine):
        """
        Inicializa o store e garante a existência da tabela `feeds`.

        Args:
            engine: Provedor de conexões
        """
        self.engine = engine
        self.uses_schemas = engine.dialect.name == "postgresql"
        self.logger = get_logger(self.__class__.__name__)

        self.metadata = sa.MetaData()
        self.feeds = sa.Table(
            FEEDS_TABLE,
            self.metadata,
            sa.Column("namespace", sa.String, primary_key=True),
            sa.Column("filename", sa.String),
            sa.Column("md5", sa.String),
            sa.Column("sha1", sa.String),
            sa.Column("feed_id", sa.String),
            sa.Column("feed_version", sa.String),
            sa.Column("loaded_date", sa.DateTime),
            sa.Column("snapshot_of", sa.String),
            sa.Column("is_editor", sa.Boolean, nullable=False, server_default=sa.false()),
        )
        self._namespace_metadata: Dict[Tuple[str, bool], sa.MetaData] = {}

        self._ensure_registry()

    def _ensure_registry(self) -> None:
        """
        Cria a tabela `feeds` se ainda não existir.

        Outra conexão pode criá-la entre o `checkfirst` e o CREATE; nesse
        caso o erro é ignorado se a tabela existir ao final.

        Raises:
            StorageUnavailableException: Banco inacessível ou tabela não criada
        """
        try:
            with self.engine.begin() as conn:
                self.feeds.create(conn, checkfirst=True)
        except SQLAlchemyError as e:
            if not self._registry_exists():
                raise StorageUnavailableException(str(e)) from e
            self.logger.debug(f"Table {FEEDS_TABLE} created concurrently")

    def _registry_exists(self) -> bool:
        try:
            with self.engine.connect() as conn:
                return sa.inspect(conn).has_table(FEEDS_TABLE)
        except SQLAlchemyError:
            return False

    # =========================================================================
    # Identifiers
    # =========================================================================

    def generate_namespace_id(self, conn: Connection) -> str:
        """
        Gera um identificador de namespace inédito.

        O identificador nunca deriva de dados do chamador. Colisões com o
        registro ou com schemas existentes são tentadas novamente.

        Raises:
            StorageException: Se todas as tentativas colidirem
        """
        existing = set(self.list_physical_namespaces(conn))
        for _ in range(NAMESPACE_ID_MAX_ATTEMPTS):
            candidate = (
                f"{random_lowercase(NAMESPACE_ID_LENGTH)}_"
                f"{random_lowercase(NAMESPACE_ID_SUFFIX_LENGTH)}"
            )
            if candidate not in existing and self.get_feed(conn, candidate) is None:
                return candidate

        raise StorageException(
            "Não foi possível gerar um namespace inédito",
            error_code="NAMESPACE_ID_EXHAUSTED",
            details={"attempts": NAMESPACE_ID_MAX_ATTEMPTS},
        )

    def physical_name(self, namespace: str, table_name: str) -> Tuple[Optional[str], str]:
        """Retorna (schema, nome da tabela) físicos de uma tabela do namespace."""
        if self.uses_schemas:
            return namespace, table_name
        return None, f"{namespace}{NAMESPACE_TABLE_SEPARATOR}{table_name}"

    # =========================================================================
    # Tables
    # =========================================================================

    def _metadata_for(self, namespace: str, editor: bool) -> sa.MetaData:
        key = (namespace, editor)
        metadata = self._namespace_metadata.get(key)
        if metadata is None:
            metadata = sa.MetaData()
            for definition in TABLES + (EDITOR_TABLES if editor else ()):
                schema, name = self.physical_name(namespace, definition.name)
                definition.build_table(metadata, name, schema=schema, editor=editor)
            self._namespace_metadata[key] = metadata
        return metadata

    def table(
        self,
        namespace: str,
        definition: Union[TableDefinition, str],
        editor: bool = False,
    ) -> sa.Table:
        """
        Retorna a tabela SQLAlchemy de um namespace.

        Args:
            namespace: Namespace (já validado)
            definition: Definição ou nome da tabela
            editor: Variante de edição (snapshot)
        """
        if isinstance(definition, str):
            definition = get_table(definition)
        schema, name = self.physical_name(namespace, definition.name)
        key = f"{schema}.{name}" if schema else name
        return self._metadata_for(namespace, editor).tables[key]

    def create_schema(self, conn: Connection, namespace: str, editor: bool = False) -> None:
        """
        Cria o namespace com todas as tabelas do registro.

        Args:
            conn: Conexão em transação
            namespace: Namespace a criar
            editor: Cria tabelas de edição (chave substituta, unicidade,
                colunas do editor)
        """
        ensure_valid_namespace(namespace)
        if self.uses_schemas:
            conn.execute(sa.schema.CreateSchema(namespace))

        self._metadata_for(namespace, editor).create_all(conn, checkfirst=False)
        self.logger.info(
            f"Created {'editor' if editor else 'load'} schema {namespace}",
            extra={"namespace": namespace},
        )

    def create_key_index(self, conn: Connection, namespace: str, definition: TableDefinition) -> None:
        """Indexa a chave natural de uma tabela de carga após a inserção em massa."""
        if not definition.key_fields:
            return
        table = self.table(namespace, definition)
        index = sa.Index(
            f"{table.name}_key_idx",
            *(table.c[name] for name in definition.key_fields),
        )
        index.create(conn)

    def drop_schema(self, conn: Connection, namespace: str) -> None:
        """Remove o namespace e todas as suas tabelas."""
        ensure_valid_namespace(namespace)
        if self.uses_schemas:
            conn.execute(sa.schema.DropSchema(namespace, cascade=True))
        else:
            existing = set(sa.inspect(conn).get_table_names())
            for definition in TABLES + EDITOR_TABLES:
                _, name = self.physical_name(namespace, definition.name)
                if name in existing:
                    sa.Table(name, sa.MetaData()).drop(conn)

        self._namespace_metadata.pop((namespace, False), None)
        self._namespace_metadata.pop((namespace, True), None)
        self.logger.info(f"Dropped schema {namespace}", extra={"namespace": namespace})

    def list_physical_namespaces(self, conn: Optional[Connection] = None) -> List[str]:
        """
        Lista os namespaces fisicamente presentes no banco.

        Inclui schemas órfãos (sem linha em `feeds`), o que permite aos
        testes verificar que operações abortadas não deixam resíduos.
        """
        if conn is None:
            with self.engine.connect() as own_conn:
                return self.list_physical_namespaces(own_conn)

        inspector = sa.inspect(conn)
        if self.uses_schemas:
            return sorted(
                name
                for name in inspector.get_schema_names()
                if name not in SYSTEM_SCHEMAS and not name.startswith("pg_")
            )

        suffixes = [f"{NAMESPACE_TABLE_SEPARATOR}{definition.name}" for definition in TABLES]
        namespaces = set()
        for name in inspector.get_table_names():
            for suffix in suffixes:
                if name.endswith(suffix) and len(name) > len(suffix):
                    namespaces.add(name[: -len(suffix)])
        return sorted(namespaces)

    def count_rows(self, conn: Connection, table: sa.Table) -> int:
        return conn.execute(sa.select(sa.func.count()).select_from(table)).scalar_one()

    # =========================================================================
    # Feed Registry
    # =========================================================================

    def register_feed(self, conn: Connection, record: FeedRecord) -> None:
        """Insere a linha do namespace no registro global de feeds."""
        ensure_valid_namespace(record.namespace)
        values = asdict(record)
        if values["loaded_date"] is None:
            values["loaded_date"] = datetime.now()
        conn.execute(sa.insert(self.feeds).values(**values))

    def get_feed(self, conn: Connection, namespace: str) -> Optional[FeedRecord]:
        row = conn.execute(
            sa.select(self.feeds).where(self.feeds.c.namespace == namespace)
        ).mappings().first()
        if row is None:
            return None
        return FeedRecord(**dict(row))

    def require_namespace(self, conn: Connection, namespace: str) -> FeedRecord:
        """
        Retorna o registro do namespace, validando sintaxe e existência.

        Raises:
            InvalidNamespaceException: Identificador com caracteres ilegais
            NamespaceNotFoundException: Namespace não registrado
        """
        ensure_valid_namespace(namespace)
        record = self.get_feed(conn, namespace)
        if record is None:
            raise NamespaceNotFoundException(namespace)
        return record

    def list_feeds(self) -> List[FeedRecord]:
        """Lista todos os feeds registrados, do mais antigo ao mais novo."""
        with self.engine.connect() as conn:
            rows = conn.execute(
                sa.select(self.feeds).order_by(self.feeds.c.loaded_date, self.feeds.c.namespace)
            ).mappings()
            return [FeedRecord(**dict(row)) for row in rows]

    def unregister_feed(self, conn: Connection, namespace: str) -> int:
        """Remove a linha do namespace do registro. Retorna linhas removidas."""
        result = conn.execute(sa.delete(self.feeds).where(self.feeds.c.namespace == namespace))
        return result.rowcount

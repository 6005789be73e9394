"""
API pública do GTFS DB.

Ponto de entrada das operações do ciclo de vida de um namespace. Toda
operação recebe o provedor de conexões (Engine) explicitamente; não há
estado global de banco no processo.

Usage:
    engine = create_data_source("postgresql+psycopg2://localhost/gtfs")
    result = load("feed.zip", engine)
    validate(result.namespace, engine)
    snapshot = make_snapshot(result.namespace, engine)
    export(snapshot.namespace, "out.zip", engine, from_editor=True)
    delete(result.namespace, engine)
"""

from pathlib import Path
from typing import Iterable, Mapping, Optional, Union

from sqlalchemy.engine import Engine
from sqlalchemy.exc import SQLAlchemyError

from .common.constants import Operation
from .common.exceptions import NamespaceNotFoundException, TransactionFailedException
from .common.logging_config import get_logger
from .common.metrics import track_operation
from .ingestion.feed_loader import FeedLoader, LoadResult
from .processing.snapshotter import FeedSnapshotter, SnapshotResult
from .serving.exporter import ExportResult, FeedExporter
from .storage.connection import create_engine_from_url
from .storage.namespace_store import NamespaceStore, ensure_valid_namespace
from .validation.engine import ValidationEngine, ValidationResult

logger = get_logger(__name__)


def create_data_source(
    url: Optional[str] = None,
    user: Optional[str] = None,
    password: Optional[str] = None,
) -> Engine:
    """
    Cria o provedor de conexões (pool) a partir de URL e credenciais.

    Args:
        url: URL SQLAlchemy do banco (padrão: DATABASE_URL)
        user: Usuário do banco
        password: Senha do banco

    Returns:
        Engine SQLAlchemy
    """
    return create_engine_from_url(url, user=user, password=password)


@track_operation(Operation.LOAD.value)
def load(file_path: Union[str, Path], engine: Engine) -> LoadResult:
    """
    Carrega um zip GTFS em um namespace novo.

    Args:
        file_path: Caminho do zip
        engine: Provedor de conexões

    Returns:
        LoadResult (erros de linha em `errors`; o chamador decide se bloqueiam)
    """
    return FeedLoader(file_path, engine).load_tables()


@track_operation(Operation.EXPORT.value)
def export(
    namespace: str,
    out_file: Union[str, Path],
    engine: Engine,
    from_editor: bool = False,
    table_columns: Optional[Mapping[str, Iterable[str]]] = None,
) -> ExportResult:
    """
    Exporta um namespace para um zip GTFS.

    Args:
        namespace: Namespace a exportar
        out_file: Caminho do zip de saída
        engine: Provedor de conexões
        from_editor: Se o namespace é um snapshot de edição
        table_columns: Restrição opcional de colunas por tabela
    """
    return FeedExporter(namespace, out_file, engine, from_editor, table_columns).export_tables()


@track_operation(Operation.SNAPSHOT.value)
def make_snapshot(namespace: str, engine: Engine) -> SnapshotResult:
    """Copia um namespace para um snapshot de edição novo."""
    return FeedSnapshotter(namespace, engine).copy_tables()


@track_operation(Operation.VALIDATE.value)
def validate(namespace: str, engine: Engine) -> ValidationResult:
    """Executa as regras de validação padrão sobre um namespace."""
    return ValidationEngine(engine).validate(namespace)


@track_operation(Operation.DELETE.value)
def delete(namespace: str, engine: Engine) -> None:
    """
    Remove um namespace: linha do registro e schema, em uma transação.

    Snapshots derivados do namespace não são afetados.

    Raises:
        InvalidNamespaceException: Namespace malformado (nenhum SQL emitido)
        NamespaceNotFoundException: Namespace não registrado
        TransactionFailedException: Falha na remoção; nada é removido
    """
    ensure_valid_namespace(namespace)
    store = NamespaceStore(engine)
    log = get_logger(__name__, namespace=namespace, operation=Operation.DELETE.value)

    try:
        with engine.begin() as conn:
            store.require_namespace(conn, namespace)
            if store.unregister_feed(conn, namespace) != 1:
                raise NamespaceNotFoundException(namespace)
            store.drop_schema(conn, namespace)
    except SQLAlchemyError as e:
        raise TransactionFailedException(Operation.DELETE.value, namespace, str(e)) from e

    log.info(f"Namespace {namespace} deleted")

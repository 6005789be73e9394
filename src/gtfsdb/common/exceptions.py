"""
Exceções Customizadas para o GTFS DB.

Define a hierarquia de exceções fatais das operações de namespace.
Erros de linha (LoadError) e achados de validação (ValidationError) são
dados, não exceções, e nunca são lançados.
"""

from typing import Any, Dict, Optional


# =============================================================================
# Base Exception
# =============================================================================


class GTFSStoreException(Exception):
    """Exceção base para todos os erros do GTFS DB."""

    def __init__(
        self,
        message: str,
        error_code: Optional[str] = None,
        details: Optional[Dict[str, Any]] = None,
    ):
        """
        Inicializa a exceção.

        Args:
            message: Mensagem de erro
            error_code: Código de erro (opcional)
            details: Detalhes adicionais (opcional)
        """
        self.message = message
        self.error_code = error_code or self.__class__.__name__
        self.details = details or {}
        super().__init__(self.message)

    def __str__(self) -> str:
        """Representação em string da exceção."""
        base = f"[{self.error_code}] {self.message}"
        if self.details:
            base += f" | Details: {self.details}"
        return base

    def to_dict(self) -> Dict[str, Any]:
        """Converte a exceção para dicionário."""
        return {
            "error_code": self.error_code,
            "message": self.message,
            "details": self.details,
            "exception_type": self.__class__.__name__,
        }


# =============================================================================
# Namespace Exceptions
# =============================================================================


class NamespaceException(GTFSStoreException):
    """Erro relacionado a um namespace (schema de feed)."""

    pass


class InvalidNamespaceException(NamespaceException):
    """Identificador de namespace com caracteres ilegais."""

    def __init__(self, namespace: Any):
        super().__init__(
            message=f"Namespace inválido: {namespace!r}",
            error_code="INVALID_NAMESPACE",
            details={"namespace": str(namespace)},
        )


class NamespaceNotFoundException(NamespaceException):
    """Namespace não registrado na tabela de feeds."""

    def __init__(self, namespace: str):
        super().__init__(
            message=f"Namespace desconhecido: {namespace}",
            error_code="UNKNOWN_NAMESPACE",
            details={"namespace": namespace},
        )


# =============================================================================
# Archive Exceptions
# =============================================================================


class ArchiveException(GTFSStoreException):
    """Erro ao ler o arquivo zip do feed."""

    pass


class MalformedArchiveException(ArchiveException):
    """Arquivo zip ou tabela estruturalmente inválidos."""

    def __init__(self, location: str, reason: str):
        super().__init__(
            message=f"Arquivo GTFS malformado: {location}",
            error_code="MALFORMED_ARCHIVE",
            details={"location": location, "reason": reason},
        )


class MissingRequiredTableException(ArchiveException):
    """Tabela obrigatória ausente do feed."""

    def __init__(self, table_name: str, location: str):
        super().__init__(
            message=f"Tabela obrigatória ausente: {table_name}",
            error_code="MISSING_REQUIRED_TABLE",
            details={"table": table_name, "location": location},
        )


# =============================================================================
# Storage Exceptions
# =============================================================================


class StorageException(GTFSStoreException):
    """Erro relacionado ao banco de dados ou ao arquivo de saída."""

    pass


class StorageUnavailableException(StorageException):
    """Banco inacessível ou registro de feeds indisponível."""

    def __init__(self, reason: str):
        super().__init__(
            message="Banco de dados indisponível",
            error_code="STORAGE_UNAVAILABLE",
            details={"reason": reason},
        )


class TransactionFailedException(StorageException):
    """Transação abortada e revertida."""

    def __init__(self, operation: str, namespace: Optional[str], reason: str):
        super().__init__(
            message=f"Transação de '{operation}' falhou e foi revertida",
            error_code="TRANSACTION_FAILED",
            details={"operation": operation, "namespace": namespace, "reason": reason},
        )


class RowInsertException(StorageException):
    """Banco rejeitou uma linha já decodificada (divergência codec/registro)."""

    def __init__(self, table_name: str, reason: str):
        super().__init__(
            message=f"Banco rejeitou linhas decodificadas da tabela '{table_name}'",
            error_code="ROW_INSERT_REJECTED",
            details={"table": table_name, "reason": reason},
        )


class StorageWriteException(StorageException):
    """Erro ao escrever o arquivo de saída."""

    def __init__(self, location: str, reason: str):
        super().__init__(
            message=f"Erro ao escrever em: {location}",
            error_code="STORAGE_WRITE_ERROR",
            details={"location": location, "reason": reason},
        )


# =============================================================================
# Utility Functions
# =============================================================================


def handle_exception(exc: Exception, logger, context: Optional[Dict[str, Any]] = None) -> None:
    """
    Trata exceção de forma padronizada com logging.

    Args:
        exc: Exceção capturada
        logger: Logger para registrar o erro
        context: Contexto adicional (opcional)
    """
    if isinstance(exc, GTFSStoreException):
        error_dict = exc.to_dict()
        if context:
            error_dict["context"] = context

        # "message" é atributo reservado do LogRecord
        logger.error(
            f"Operation error: {exc.message}",
            extra={"error": error_dict},
            exc_info=True,
        )
    else:
        logger.error(
            f"Unhandled exception: {str(exc)}",
            extra={"exception_type": type(exc).__name__, "context": context},
            exc_info=True,
        )

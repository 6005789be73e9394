"""
Configuração de Logging Estruturado para o GTFS DB.

Fornece logging estruturado com suporte a JSON para produção
e formato legível para desenvolvimento.
"""

import logging
import sys
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Dict, Optional

from pythonjsonlogger import jsonlogger

# Campos de contexto propagados via LoggerAdapter
CONTEXT_FIELDS = ("namespace", "operation", "table")


class CustomJsonFormatter(jsonlogger.JsonFormatter):
    """Formatador JSON customizado com campos adicionais."""

    def add_fields(
        self,
        log_record: Dict[str, Any],
        record: logging.LogRecord,
        message_dict: Dict[str, Any],
    ) -> None:
        """Adiciona campos customizados ao log JSON."""
        super().add_fields(log_record, record, message_dict)

        # Timestamp ISO 8601
        log_record["timestamp"] = datetime.now(timezone.utc).isoformat()
        log_record["level"] = record.levelname
        log_record["logger"] = record.name
        log_record["module"] = record.module
        log_record["function"] = record.funcName
        log_record["line"] = record.lineno

        for field in CONTEXT_FIELDS:
            if hasattr(record, field):
                log_record[field] = getattr(record, field)


class ColoredConsoleFormatter(logging.Formatter):
    """Formatador colorido para console (desenvolvimento)."""

    # Códigos ANSI para cores
    COLORS = {
        "DEBUG": "\033[36m",  # Ciano
        "INFO": "\033[32m",  # Verde
        "WARNING": "\033[33m",  # Amarelo
        "ERROR": "\033[31m",  # Vermelho
        "CRITICAL": "\033[35m",  # Magenta
    }
    RESET = "\033[0m"
    BOLD = "\033[1m"

    def format(self, record: logging.LogRecord) -> str:
        """Formata o log com cores."""
        color = self.COLORS.get(record.levelname, self.RESET)

        timestamp = datetime.fromtimestamp(record.created).strftime(
            "%Y-%m-%d %H:%M:%S"
        )
        level = f"{color}{self.BOLD}{record.levelname:8s}{self.RESET}"
        logger_name = f"{color}{record.name}{self.RESET}"

        # Namespace em foco, quando houver
        context = ""
        namespace = getattr(record, "namespace", None)
        if namespace:
            context = f"[{namespace}] "

        message = record.getMessage()

        exc_info = ""
        if record.exc_info:
            exc_info = f"\n{self.formatException(record.exc_info)}"

        return f"{timestamp} | {level} | {logger_name:30s} | {context}{message}{exc_info}"


def setup_logging(
    log_level: str = "INFO",
    log_format: str = "console",
    log_file: Optional[Path] = None,
) -> None:
    """
    Configura o sistema de logging.

    Args:
        log_level: Nível de log (DEBUG, INFO, WARNING, ERROR, CRITICAL)
        log_format: Formato do log ('json' ou 'console')
        log_file: Caminho opcional para arquivo de log
    """
    root_logger = logging.getLogger()
    root_logger.setLevel(getattr(logging, log_level.upper()))

    # Remove handlers existentes
    root_logger.handlers.clear()

    console_handler = logging.StreamHandler(sys.stderr)
    console_handler.setLevel(getattr(logging, log_level.upper()))

    if log_format.lower() == "json":
        formatter = CustomJsonFormatter(
            "%(timestamp)s %(level)s %(name)s %(message)s"
        )
    else:
        formatter = ColoredConsoleFormatter()

    console_handler.setFormatter(formatter)
    root_logger.addHandler(console_handler)

    if log_file:
        log_file.parent.mkdir(parents=True, exist_ok=True)
        file_handler = logging.FileHandler(log_file)
        file_handler.setLevel(getattr(logging, log_level.upper()))

        # Sempre usar JSON para arquivo
        json_formatter = CustomJsonFormatter(
            "%(timestamp)s %(level)s %(name)s %(message)s"
        )
        file_handler.setFormatter(json_formatter)
        root_logger.addHandler(file_handler)

    # Configura loggers de bibliotecas externas
    logging.getLogger("sqlalchemy.engine").setLevel(logging.WARNING)
    logging.getLogger("sqlalchemy.pool").setLevel(logging.WARNING)

    root_logger.debug(
        "Logging configured",
        extra={
            "log_level": log_level,
            "log_format": log_format,
            "log_file": str(log_file) if log_file else None,
        },
    )


class ContextAdapter(logging.LoggerAdapter):
    """LoggerAdapter que mescla o contexto fixo com o `extra` de cada chamada."""

    def process(self, msg, kwargs):
        kwargs["extra"] = {**self.extra, **kwargs.get("extra", {})}
        return msg, kwargs


def get_logger(
    name: str,
    namespace: Optional[str] = None,
    operation: Optional[str] = None,
) -> ContextAdapter:
    """
    Retorna um logger configurado com contexto adicional.

    Args:
        name: Nome do logger (geralmente __name__)
        namespace: Namespace do feed em foco (opcional)
        operation: Operação em execução (load/snapshot/export/...)

    Returns:
        Logger adaptado com contexto adicional
    """
    logger = logging.getLogger(name)

    extra = {}
    if namespace:
        extra["namespace"] = namespace
    if operation:
        extra["operation"] = operation

    return ContextAdapter(logger, extra)

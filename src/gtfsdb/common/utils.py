"""
Funções Utilitárias para o GTFS DB.

Helpers de hashing de arquivos, identificadores aleatórios e medição
de tempo usados pelas operações de namespace.
"""

import hashlib
import secrets
import string
import time
from pathlib import Path
from typing import Dict, Union


def file_checksums(path: Union[str, Path], chunk_size: int = 65536) -> Dict[str, str]:
    """
    Calcula MD5 e SHA-1 de um arquivo em streaming.

    Args:
        path: Caminho do arquivo
        chunk_size: Tamanho do bloco de leitura

    Returns:
        Dicionário {"md5": ..., "sha1": ...}
    """
    md5 = hashlib.md5()
    sha1 = hashlib.sha1()
    with open(path, "rb") as f:
        for chunk in iter(lambda: f.read(chunk_size), b""):
            md5.update(chunk)
            sha1.update(chunk)
    return {"md5": md5.hexdigest(), "sha1": sha1.hexdigest()}


def random_lowercase(length: int) -> str:
    """Gera string aleatória de letras minúsculas (fonte criptográfica)."""
    return "".join(secrets.choice(string.ascii_lowercase) for _ in range(length))


def elapsed_since(start: float) -> float:
    """Segundos decorridos desde `start` (time.monotonic), arredondados."""
    return round(time.monotonic() - start, 3)

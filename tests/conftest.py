"""
Pytest Configuration and Fixtures
==================================
Configurações globais e fixtures para todos os testes.

Os testes rodam contra SQLite em arquivo temporário; schemas de
namespace são emulados por prefixo de tabela.
"""

import os
import sys
import zipfile
from pathlib import Path
from typing import Callable, Dict, List, Optional

import pytest

# Adicionar src ao path
sys.path.insert(0, os.path.abspath(os.path.join(os.path.dirname(__file__), "..", "src")))

from gtfsdb.common.config import reset_config
from gtfsdb.schema.fields import format_time
from gtfsdb.storage.connection import create_engine_from_url
from gtfsdb.storage.namespace_store import NamespaceStore


# ============================================================================
# FEED DE EXEMPLO
# ============================================================================

NUM_ROUTES = 3
NUM_TRIPS = 10
STOPS_PER_TRIP = 50
FIRST_DEPARTURE = 6 * 3600
TRIP_INTERVAL = 2 * 3600


def csv_text(rows: List[List[str]]) -> str:
    """Monta o conteúdo de um arquivo GTFS a partir de linhas."""
    return "".join(",".join(str(cell) for cell in row) + "\n" for row in rows)


def stop_times_rows(trip_id: str, start: int, stop_count: int = STOPS_PER_TRIP) -> List[List[str]]:
    """Linhas de stop_times de uma viagem, uma parada por minuto."""
    rows = []
    for seq in range(1, stop_count + 1):
        t = format_time(start + (seq - 1) * 60)
        rows.append([trip_id, t, t, f"S{seq}", seq])
    return rows


def sample_feed_files() -> Dict[str, str]:
    """
    Feed com 3 rotas, 10 viagens e 500 stop_times.

    Todas as viagens compartilham o bloco B1, sem sobreposição
    (uma a cada duas horas, 49 minutos cada).
    """
    agency = [
        ["agency_id", "agency_name", "agency_url", "agency_timezone", "agency_lang"],
        ["A1", "SPTrans", "https://www.sptrans.com.br", "America/Sao_Paulo", "pt"],
    ]
    calendar = [
        ["service_id", "monday", "tuesday", "wednesday", "thursday", "friday",
         "saturday", "sunday", "start_date", "end_date"],
        ["WK", 1, 1, 1, 1, 1, 0, 0, "20240101", "20241231"],
    ]
    calendar_dates = [
        ["service_id", "date", "exception_type"],
        ["WK", "20240101", 2],
    ]
    stops = [["stop_id", "stop_name", "stop_lat", "stop_lon"]]
    for i in range(1, STOPS_PER_TRIP + 1):
        stops.append([f"S{i}", f"Parada {i}", f"{-23.5 - i / 1000:.4f}", f"{-46.6 - i / 1000:.4f}"])
    routes = [
        ["route_id", "agency_id", "route_short_name", "route_long_name", "route_type", "route_color"],
        ["R1", "A1", "8000-10", "Terminal Lapa", 3, "FF0000"],
        ["R2", "A1", "8000-11", "Terminal Pinheiros", 3, ""],
        ["R3", "", "8000-12", "Terminal Santana", 3, ""],
    ]
    trips = [["route_id", "service_id", "trip_id", "trip_headsign", "direction_id", "block_id"]]
    stop_times = [["trip_id", "arrival_time", "departure_time", "stop_id", "stop_sequence"]]
    for i in range(NUM_TRIPS):
        trip_id = f"T{i + 1}"
        trips.append([f"R{i % NUM_ROUTES + 1}", "WK", trip_id, f"Destino {i}", i % 2, "B1"])
        stop_times.extend(stop_times_rows(trip_id, FIRST_DEPARTURE + i * TRIP_INTERVAL))
    feed_info = [
        ["feed_publisher_name", "feed_publisher_url", "feed_lang", "feed_version", "feed_id"],
        ["SPTrans", "https://www.sptrans.com.br", "pt", "2024-01", "sptrans"],
    ]

    return {
        "agency.txt": csv_text(agency),
        "calendar.txt": csv_text(calendar),
        "calendar_dates.txt": csv_text(calendar_dates),
        "stops.txt": csv_text(stops),
        "routes.txt": csv_text(routes),
        "trips.txt": csv_text(trips),
        "stop_times.txt": csv_text(stop_times),
        "feed_info.txt": csv_text(feed_info),
    }


def write_zip(path: Path, files: Dict[str, str]) -> Path:
    with zipfile.ZipFile(path, "w", zipfile.ZIP_DEFLATED) as archive:
        for name, content in files.items():
            archive.writestr(name, content)
    return path


# ============================================================================
# FIXTURES
# ============================================================================


@pytest.fixture(autouse=True)
def reset_settings():
    """Garante configuração limpa em cada teste."""
    reset_config()
    yield
    reset_config()


@pytest.fixture
def engine(tmp_path):
    """Engine SQLite em arquivo temporário."""
    engine = create_engine_from_url(f"sqlite:///{tmp_path / 'gtfs.db'}")
    yield engine
    engine.dispose()


@pytest.fixture
def store(engine) -> NamespaceStore:
    return NamespaceStore(engine)


@pytest.fixture
def make_feed(tmp_path) -> Callable[..., Path]:
    """
    Fábrica de zips GTFS.

    Usage:
        path = make_feed()                                  # feed de exemplo
        path = make_feed({"stop_times.txt": "..."})         # substitui arquivo
        path = make_feed({"shapes.txt": None})              # remove arquivo
    """
    counter = {"n": 0}

    def _make(overrides: Optional[Dict[str, Optional[str]]] = None, name: Optional[str] = None) -> Path:
        files = sample_feed_files()
        for filename, content in (overrides or {}).items():
            if content is None:
                files.pop(filename, None)
            else:
                files[filename] = content
        counter["n"] += 1
        return write_zip(tmp_path / (name or f"feed_{counter['n']}.zip"), files)

    return _make


@pytest.fixture
def sample_feed(make_feed) -> Path:
    return make_feed(name="sample.zip")

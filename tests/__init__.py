# =============================================================================
# GTFS DB - TESTS PACKAGE
# =============================================================================

"""
Tests Package

    - unit/: codec, registro de tabelas, leitura de zip, store, CLI
    - integration/: ciclo de vida completo contra SQLite
      (carga, snapshot, exportação, remoção, validação)
"""

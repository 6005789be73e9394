"""
Testes de Integração - GTFS DB

Validam o ciclo de vida de namespaces em banco real (SQLite em arquivo):
carga, snapshot, exportação, remoção e validação.
"""

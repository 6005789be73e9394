"""
Unit Tests Package

Testes de componentes isolados: codec de campos, registro de tabelas,
leitura do zip, store de namespaces, módulo common e CLI.
"""

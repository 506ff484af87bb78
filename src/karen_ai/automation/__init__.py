"""Camada de automação de navegador (executor, driver, sessões, adapters)."""

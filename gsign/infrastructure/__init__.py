"""
============================================================
TARJETA CRC — infrastructure/__init__.py
============================================================
Module: infrastructure (adapters concretos)

Responsibilities:
  - Agrupar los adapters de los puertos de domain.services:
    http/ (backend REST) y realtime/ (websockets).

Policy:
  - Sin lógica de negocio ni side effects al importar.
============================================================
"""

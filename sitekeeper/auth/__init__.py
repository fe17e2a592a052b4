"""
auth/ — Todo lo relacionado con credenciales.

Módulos:
- session.py      → SessionContext: key en memoria + token cacheado
- vault.py        → Key cifrada en disco, unlock/lock
- token_broker.py → JWT → Installation Token
"""

"""
Triage feature package.

Every layer of the ingestion and admission pipeline lives here: domain
types, provider clients, source adapters, scoring, queue repositories,
the sync orchestrator, the periodic job and the HTTP router.
"""

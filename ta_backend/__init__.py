"""ICS TA Bot backend — retrieval-augmented tutoring and bearer-token auth.

Provides:
- RAG engine: ingestion and query pipelines over one vector collection (rag_engine.py)
- FastAPI dependencies resolving the caller from a session token (auth.py)
"""

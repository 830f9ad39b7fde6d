"""
rag — Retrieval Module

Chunking, document loading, lexical search, rank fusion, reranking and
the two-index retrieval engine that ties them together.
Part of Persona Hub — Retrieval-Augmented Persona Agent.
"""

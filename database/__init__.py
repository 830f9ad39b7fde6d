"""
database — Storage Module

Vector store port with ChromaDB and in-memory backends.
Part of Persona Hub — Retrieval-Augmented Persona Agent.
"""

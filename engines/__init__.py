"""
engines — LLM Engine Module

Contains the LLM engine implementations and the provider router.
Each engine implements the BaseEngine streaming interface for consistent
access to different LLM providers (OpenAI, Gemini).
Part of Persona Hub — Retrieval-Augmented Persona Agent.
"""

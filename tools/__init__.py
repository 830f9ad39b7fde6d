"""
tools — Tool Module

Tool interface, call/result types and the registry that runs tools
under guardrails and per-tool timeouts.
Part of Persona Hub — Retrieval-Augmented Persona Agent.
"""

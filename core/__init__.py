"""
core — Core Logic Module

Contains the orchestrator, intent classifier, model selector, context
builder, personas, learning and chat session. These are the central
components that turn a user message into a grounded, tool-using answer.
Part of Persona Hub — Retrieval-Augmented Persona Agent.
"""

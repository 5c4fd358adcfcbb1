"""Relay server: session registry, message pipeline and room fan-out."""

"""Core del pipeline de ingesta sísmica.

- domain/        → Sample, Channel, variantes de frame
- protocol/      → gramática de líneas y envelopes
- timing/        → síntesis de timestamps
- pipeline/      → processor, stream decoder, dispatcher push
- subscriptions/ → fan-out a suscriptores
- monitoring/    → stats, health, métricas
"""

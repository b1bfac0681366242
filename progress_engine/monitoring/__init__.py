"""Monitoring layer - salud del canal push, estadísticas y métricas.

- health.py: HealthMonitor (máquina de estados de salud)
- stats.py: EngineStats
- metrics.py: Métricas Prometheus
"""

"""Upload progress reconciliation engine.

Estructura:
- domain/: modelos, agregación de ground truth, proyección de progreso
- push/: canal push (MQTT / memoria), validación y cache de snapshots
- monitoring/: health monitor, estadísticas y métricas Prometheus
- polling/: scheduler de tareas nombradas y cadencia de resync
- api/: cliente REST del ground-truth store
- sync/: relay de progreso push hacia el backend
- session.py: MonitoringSession, dueña del estado por sesión
"""

__version__ = "0.1.0"

"""Monitor de cadena de frío para farmacias.

Estructura:
- identity/        → Nombres del proveedor → sitios internos
- classification/  → Liveness y valores de respaldo
- auth/            → Rol del caller y alcance por sitio
- provider/        → Cliente de telemetría (SensorPush) y proveedor estático
- store/           → Persistencia (SQLAlchemy Core)
- telemetry/       → Agregación de sensores y gateways
- alerts/          → Motor de alertas
- assignments/     → Asignación de sensores a sitios
- endpoints/       → Superficie HTTP (FastAPI)
"""

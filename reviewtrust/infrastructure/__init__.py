# Infrastructure Layer
# ====================
# Contains all external service integrations:
# - persistence/: SQLite store implementing every store port
# - notifications/: HTTP email and realtime push providers
# - config/: Environment and settings management
#
# This layer can be replaced entirely without affecting domain/application layers.

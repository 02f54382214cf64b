# Infrastructure Layer
# ====================
# Contains all external service integrations:
# - facebook/:    Graph API, cookie sessions, identifier extraction
# - commands/:    "[App][Section][Action, ...]" routing to handlers
# - persistence/: SQLite notification and bookmark repository
# - audit/:       encrypted append-only audit trail
# - importer/:    CSV/Excel comment import
# - device/:      machine serial lookup
# - config/:      environment and settings management

# NexusSales - Facebook Sales Automation
# ======================================
# Layered layout:
# - Application:    notification feed and reply runs (orchestration only)
# - Infrastructure: Facebook HTTP/Graph access, command routing, SQLite,
#                   audit trail, spreadsheet import, configuration
# - Web:            FastAPI dashboard and JSON API

__version__ = "1.0.0"

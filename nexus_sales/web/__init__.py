# Web Layer
# =========
# FastAPI dashboard and JSON API (app.py).

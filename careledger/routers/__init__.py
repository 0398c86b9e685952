"""
FastAPI routers grouped by domain (members, care, notifications, dashboard).

Each module exposes an APIRouter included by careledger.app. Services are
read from app.state so tests can swap them.
"""

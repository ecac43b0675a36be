"""
routers/ — FastAPI route modules.

Each file holds one thin APIRouter. Coverage math and the sync engine
live in services/; routers validate input, call them, and shape responses.
"""

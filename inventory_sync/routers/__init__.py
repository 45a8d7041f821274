"""
routers/ — FastAPI route modules.

Each file contains a thin APIRouter. All sync logic lives in
services/. Routers validate input, call services, and translate
typed errors into HTTP status codes.
"""

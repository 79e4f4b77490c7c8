from .equipment_api import router as equipment_api_router
from .requests_api import router as requests_api_router

ALL_ROUTERS = (
    equipment_api_router,
    requests_api_router,
)

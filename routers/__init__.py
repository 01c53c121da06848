from routers.admin import router as admin_router
from routers.students import router as students_router
from routers.teachers import router as teachers_router

__all__ = ["admin_router", "students_router", "teachers_router"]
